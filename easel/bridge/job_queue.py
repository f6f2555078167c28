"""Outbound job queue for fire-and-forget work (image metadata regeneration).

Two backends:

1. **SQLite queue** (``queue_db_path`` provided): persistent, survives a
   restart of the editing process.  Recommended for production.
2. **In-memory deque** (``queue_db_path`` is None): volatile, suitable for
   tests and single-process deployments.

Both are bounded (default 1024 jobs).  Delivery is at-least-once: a job
leaves the queue only after the consumer's handler returns.  Enqueueing a
job whose idempotency key matches a job that is still pending coalesces
into the pending one, so repeated primary-image changes before the worker
runs produce a single regeneration.

A job handed to a handler is *claimed*.  Claimed jobs never absorb new
requests: a request made while its twin is being handled queues a fresh
job behind it.  Jobs left claimed by a crashed process are released when
the SQLite queue is reopened.
"""

from __future__ import annotations

import collections
import json
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from easel.core.hasher import canonical_json_bytes
from easel.models.jobs import JOB_TYPE_MAP, ImageMetadataJob, JobBase, JobKind

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobBase], None]

# One unclaimed job per idempotency key; a claimed twin may sit alongside.
_CREATE_JOBS = """
CREATE TABLE IF NOT EXISTS jobs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    idempotency_key  TEXT NOT NULL,
    job_id           TEXT NOT NULL,
    payload          BLOB NOT NULL,
    claimed          INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT DEFAULT (datetime('now'))
)
"""

_CREATE_IDX_PENDING_KEY = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_pending_key
    ON jobs(idempotency_key) WHERE claimed = 0
"""


class JobQueueError(RuntimeError):
    """Raised when a job cannot be enqueued."""


def decode_job(payload: bytes) -> JobBase:
    """Rebuild a typed job from its canonical JSON payload."""
    data = json.loads(payload)
    job_cls = JOB_TYPE_MAP[JobKind(data["job_kind"])]
    return job_cls.model_validate(data)


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


class JobQueue:
    """Bounded, coalescing FIFO of outbound jobs.

    Parameters
    ----------
    max_depth:
        Maximum number of jobs held, claimed ones included (both backends).
    queue_db_path:
        Path to a SQLite database file for persistent queue storage.
        When ``None``, an in-memory deque is used (volatile).
    """

    def __init__(
        self,
        *,
        max_depth: int = 1024,
        queue_db_path: Path | None = None,
    ) -> None:
        self._max_depth = max_depth

        self._db: sqlite3.Connection | None = None
        if queue_db_path is not None:
            Path(queue_db_path).parent.mkdir(parents=True, exist_ok=True)
            self._db = sqlite3.connect(str(queue_db_path), check_same_thread=False)
            self._db.execute(_CREATE_JOBS)
            self._db.execute(_CREATE_IDX_PENDING_KEY)
            self._release_stale_claims()
            self._db.commit()
            logger.info(
                "JobQueue: using SQLite queue at %s (max_depth=%d).",
                queue_db_path,
                max_depth,
            )
        else:
            logger.info("JobQueue: using in-memory queue (max_depth=%d).", max_depth)

        # (idempotency_key, job_id, payload); unclaimed jobs only.
        self._local_queue: collections.deque[tuple[str, str, bytes]] = (
            collections.deque()
        )
        self._local_claimed: list[tuple[str, str, bytes]] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_persistent(self) -> bool:
        return self._db is not None

    @property
    def depth(self) -> int:
        """Number of jobs in the queue, including claimed ones."""
        if self._db is not None:
            row = self._db.execute("SELECT COUNT(*) FROM jobs").fetchone()
            return row[0] if row else 0
        return len(self._local_queue) + len(self._local_claimed)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(self, job: JobBase) -> str:
        """Queue *job* and return the id of the pending job that carries it.

        When an unclaimed job with the same idempotency key is pending,
        nothing is added and that job's id is returned.

        Raises
        ------
        JobQueueError
            If the queue is full or the SQLite backend fails.
        """
        key = job.idempotency_key
        payload = canonical_json_bytes(job.model_dump(mode="json"))

        if self._db is not None:
            try:
                row = self._db.execute(
                    "SELECT job_id FROM jobs WHERE idempotency_key = ? AND claimed = 0",
                    (key,),
                ).fetchone()
                if row is not None:
                    logger.debug("JobQueue: coalesced job %s into %s.", job.job_id, row[0])
                    return row[0]
                depth = self.depth
                if depth >= self._max_depth:
                    raise JobQueueError(
                        f"Job queue is full (depth={depth}).  Job {job.job_id} dropped."
                    )
                self._db.execute(
                    "INSERT INTO jobs (idempotency_key, job_id, payload) VALUES (?, ?, ?)",
                    (key, job.job_id, payload),
                )
                self._db.commit()
            except sqlite3.Error as exc:
                raise JobQueueError(str(exc)) from exc
            logger.debug(
                "JobQueue: queued %s %s in SQLite (depth=%d).",
                job.job_kind.value,
                job.job_id,
                depth + 1,
            )
            return job.job_id

        for pending_key, pending_id, _ in self._local_queue:
            if pending_key == key:
                logger.debug("JobQueue: coalesced job %s into %s.", job.job_id, pending_id)
                return pending_id
        depth = self.depth
        if depth >= self._max_depth:
            raise JobQueueError(
                f"Job queue is full (depth={depth}).  Job {job.job_id} dropped."
            )
        self._local_queue.append((key, job.job_id, payload))
        logger.debug(
            "JobQueue: queued %s %s locally (depth=%d).",
            job.job_kind.value,
            job.job_id,
            depth + 1,
        )
        return job.job_id

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def peek(self) -> JobBase | None:
        """Return the oldest unclaimed job without removing it."""
        if self._db is not None:
            row = self._db.execute(
                "SELECT payload FROM jobs WHERE claimed = 0 ORDER BY id LIMIT 1"
            ).fetchone()
            return decode_job(bytes(row[0])) if row is not None else None
        return decode_job(self._local_queue[0][2]) if self._local_queue else None

    def pending(self) -> list[JobBase]:
        """All jobs in the queue, oldest first."""
        if self._db is not None:
            rows = self._db.execute("SELECT payload FROM jobs ORDER BY id").fetchall()
            return [decode_job(bytes(row[0])) for row in rows]
        entries = [*self._local_claimed, *self._local_queue]
        return [decode_job(payload) for _, _, payload in entries]

    def receive(self) -> JobBase | None:
        """Remove and return the oldest job (at-most-once for this caller)."""
        claim = self._claim()
        if claim is None:
            return None
        handle, _, payload = claim
        self._ack(handle)
        return decode_job(payload)

    def drain(self, *, max_jobs: int = 100) -> list[JobBase]:
        """Remove up to *max_jobs* jobs, oldest first."""
        jobs: list[JobBase] = []
        for _ in range(max_jobs):
            job = self.receive()
            if job is None:
                break
            jobs.append(job)
        return jobs

    def process(self, handler: JobHandler, *, max_jobs: int = 100) -> int:
        """Hand pending jobs to *handler*, removing each only after it returns.

        Each job is claimed while the handler runs.  Only jobs already
        waiting when the call starts are handled; anything queued by the
        handlers waits for the next call.  Stops at the first handler
        failure; that job goes back to the head of the queue unless an
        identical request arrived meanwhile, in which case the newer job
        carries it.  Returns the number of jobs processed.
        """
        processed = 0
        for _ in range(min(max_jobs, self._unclaimed_count())):
            claim = self._claim()
            if claim is None:
                break
            handle, key, payload = claim
            job = decode_job(payload)
            try:
                handler(job)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "JobQueue: handler failed for %s (%s); job left queued.",
                    job.job_id,
                    exc,
                )
                self._release(handle, key)
                break
            self._ack(handle)
            processed += 1
        return processed

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None
        self._local_queue.clear()
        self._local_claimed.clear()

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> JobQueue:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        backend = "sqlite-queue" if self._db is not None else "local-queue"
        return f"JobQueue(backend={backend}, depth={self.depth})"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _unclaimed_count(self) -> int:
        if self._db is not None:
            row = self._db.execute(
                "SELECT COUNT(*) FROM jobs WHERE claimed = 0"
            ).fetchone()
            return row[0] if row else 0
        return len(self._local_queue)

    def _claim(self) -> tuple[Any, str, bytes] | None:
        """Mark the oldest unclaimed job in flight as (handle, key, payload)."""
        if self._db is not None:
            row = self._db.execute(
                "SELECT id, idempotency_key, payload FROM jobs "
                "WHERE claimed = 0 ORDER BY id LIMIT 1"
            ).fetchone()
            if row is None:
                return None
            row_id, key, payload = row
            self._db.execute("UPDATE jobs SET claimed = 1 WHERE id = ?", (row_id,))
            self._db.commit()
            return row_id, key, bytes(payload)
        if not self._local_queue:
            return None
        entry = self._local_queue.popleft()
        self._local_claimed.append(entry)
        return entry, entry[0], entry[2]

    def _ack(self, handle: Any) -> None:
        if self._db is not None:
            self._db.execute("DELETE FROM jobs WHERE id = ?", (handle,))
            self._db.commit()
            logger.debug("JobQueue: removed job row %d.", handle)
            return
        self._local_claimed.remove(handle)
        logger.debug("JobQueue: removed local job (remaining=%d).", self.depth)

    def _release(self, handle: Any, key: str) -> None:
        """Put a claimed job back at the head unless a fresh twin is pending."""
        if self._db is not None:
            twin = self._db.execute(
                "SELECT 1 FROM jobs WHERE idempotency_key = ? AND claimed = 0", (key,)
            ).fetchone()
            if twin is not None:
                self._db.execute("DELETE FROM jobs WHERE id = ?", (handle,))
            else:
                self._db.execute("UPDATE jobs SET claimed = 0 WHERE id = ?", (handle,))
            self._db.commit()
            return
        self._local_claimed.remove(handle)
        if all(pending_key != key for pending_key, _, _ in self._local_queue):
            self._local_queue.appendleft(handle)

    def _release_stale_claims(self) -> None:
        if self._db is None:
            return
        self._db.execute(
            "DELETE FROM jobs WHERE claimed = 1 AND idempotency_key IN "
            "(SELECT idempotency_key FROM jobs WHERE claimed = 0)"
        )
        released = self._db.execute(
            "UPDATE jobs SET claimed = 0 WHERE claimed = 1"
        ).rowcount
        if released:
            logger.warning("JobQueue: released %d job(s) claimed before a restart.", released)


# ---------------------------------------------------------------------------
# Image job trigger
# ---------------------------------------------------------------------------


@runtime_checkable
class ImageJobTrigger(Protocol):
    """Starts external image-metadata regeneration for a record."""

    def request_image_metadata_regeneration(
        self,
        record_id: str,
        *,
        force_watermark: bool = False,
        force_visualization: bool = False,
    ) -> str: ...


class QueuedImageJobTrigger:
    """``ImageJobTrigger`` that enqueues an ``ImageMetadataJob``."""

    def __init__(self, queue: JobQueue) -> None:
        self._queue = queue

    @property
    def queue(self) -> JobQueue:
        return self._queue

    def request_image_metadata_regeneration(
        self,
        record_id: str,
        *,
        force_watermark: bool = False,
        force_visualization: bool = False,
    ) -> str:
        job = ImageMetadataJob(
            record_id=record_id,
            force_watermark=force_watermark,
            force_visualization=force_visualization,
        )
        job_id = self._queue.enqueue(job)
        logger.info(
            "Requested image metadata regeneration for record %s (job %s)",
            record_id,
            job_id,
        )
        return job_id
