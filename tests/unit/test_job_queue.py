"""Unit tests for JobQueue and the queued image job trigger."""

from __future__ import annotations

import pytest

from easel.bridge.job_queue import (
    ImageJobTrigger,
    JobQueue,
    JobQueueError,
    QueuedImageJobTrigger,
    decode_job,
)
from easel.core.hasher import canonical_json_bytes
from easel.models.jobs import ImageMetadataJob


@pytest.fixture(params=["memory", "sqlite"])
def queue(request, tmp_path):
    path = tmp_path / "jobs.db" if request.param == "sqlite" else None
    q = JobQueue(max_depth=3, queue_db_path=path)
    yield q
    q.close()


class TestEnqueue:
    def test_fifo(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="r1"))
        queue.enqueue(ImageMetadataJob(record_id="r2"))
        assert [j.record_id for j in queue.drain()] == ["r1", "r2"]
        assert queue.depth == 0

    def test_duplicate_coalesces(self, queue):
        first = queue.enqueue(ImageMetadataJob(record_id="r1", force_watermark=True))
        second = queue.enqueue(ImageMetadataJob(record_id="r1", force_watermark=True))
        assert second == first
        assert queue.depth == 1

    def test_different_flags_do_not_coalesce(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="r1"))
        queue.enqueue(ImageMetadataJob(record_id="r1", force_visualization=True))
        assert queue.depth == 2

    def test_full_queue_raises(self, queue):
        for n in range(3):
            queue.enqueue(ImageMetadataJob(record_id=f"r{n}"))
        with pytest.raises(JobQueueError):
            queue.enqueue(ImageMetadataJob(record_id="r9"))

    def test_full_queue_still_coalesces(self, queue):
        for n in range(3):
            queue.enqueue(ImageMetadataJob(record_id=f"r{n}"))
        queue.enqueue(ImageMetadataJob(record_id="r0"))
        assert queue.depth == 3

    def test_peek_does_not_remove(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="r1"))
        assert queue.peek().record_id == "r1"
        assert queue.depth == 1


class TestProcess:
    def test_handler_success_removes(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="r1"))
        queue.enqueue(ImageMetadataJob(record_id="r2"))
        seen = []
        assert queue.process(lambda job: seen.append(job.record_id)) == 2
        assert seen == ["r1", "r2"]
        assert queue.depth == 0

    def test_handler_failure_leaves_job(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="r1"))

        def boom(job):
            raise RuntimeError("worker down")

        assert queue.process(boom) == 0
        assert [j.record_id for j in queue.pending()] == ["r1"]

    def test_redelivery_after_failure(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="r1"))
        attempts = []

        def flaky(job):
            attempts.append(job.job_id)
            if len(attempts) == 1:
                raise RuntimeError("transient")

        queue.process(flaky)
        queue.process(flaky)
        assert len(attempts) == 2
        assert attempts[0] == attempts[1]
        assert queue.depth == 0

    def test_request_during_handling_is_kept(self, queue):
        trigger = QueuedImageJobTrigger(queue)
        trigger.request_image_metadata_regeneration("rec-1")
        seen = []

        def handler(job):
            seen.append(job.job_id)
            trigger.request_image_metadata_regeneration("rec-1")

        assert queue.process(handler) == 1
        assert queue.depth == 1
        follow_up = queue.peek()
        assert follow_up.record_id == "rec-1"
        assert follow_up.job_id != seen[0]

    def test_requests_during_handling_coalesce_with_each_other(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="rec-1"))

        def handler(job):
            queue.enqueue(ImageMetadataJob(record_id="rec-1"))
            queue.enqueue(ImageMetadataJob(record_id="rec-1"))

        queue.process(handler)
        assert [j.record_id for j in queue.pending()] == ["rec-1"]

    def test_claimed_job_counts_toward_depth(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="rec-1"))
        depths = []
        queue.process(lambda job: depths.append(queue.depth))
        assert depths == [1]
        assert queue.depth == 0

    def test_failure_with_fresh_twin_keeps_one_job(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="rec-1"))

        def handler(job):
            queue.enqueue(ImageMetadataJob(record_id="rec-1"))
            raise RuntimeError("worker down")

        assert queue.process(handler) == 0
        assert [j.record_id for j in queue.pending()] == ["rec-1"]

    def test_failed_job_returns_to_head(self, queue):
        queue.enqueue(ImageMetadataJob(record_id="r1"))
        queue.enqueue(ImageMetadataJob(record_id="r2"))

        def boom(job):
            raise RuntimeError("worker down")

        queue.process(boom)
        assert queue.peek().record_id == "r1"

    def test_receive_empty(self, queue):
        assert queue.receive() is None
        assert queue.peek() is None


class TestPersistentQueue:
    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "jobs.db"
        with JobQueue(queue_db_path=path) as q:
            q.enqueue(ImageMetadataJob(record_id="r1"))
        with JobQueue(queue_db_path=path) as reopened:
            assert reopened.is_persistent
            assert [j.record_id for j in reopened.pending()] == ["r1"]

    def test_claim_released_on_reopen(self, tmp_path):
        path = tmp_path / "jobs.db"

        class WorkerCrashed(BaseException):
            pass

        def crash(job):
            raise WorkerCrashed()

        with JobQueue(queue_db_path=path) as q:
            q.enqueue(ImageMetadataJob(record_id="r1"))
            with pytest.raises(WorkerCrashed):
                q.process(crash)
            assert q.peek() is None
        with JobQueue(queue_db_path=path) as reopened:
            assert reopened.peek().record_id == "r1"
            assert reopened.depth == 1


class TestTrigger:
    def test_satisfies_protocol(self, job_queue):
        assert isinstance(QueuedImageJobTrigger(job_queue), ImageJobTrigger)

    def test_enqueues_image_job(self, queued_trigger, job_queue):
        job_id = queued_trigger.request_image_metadata_regeneration(
            "r1", force_watermark=True, force_visualization=True
        )
        job = job_queue.peek()
        assert job.job_id == job_id
        assert isinstance(job, ImageMetadataJob)
        assert job.force_watermark and job.force_visualization

    def test_decode_job(self):
        job = ImageMetadataJob(record_id="r1")
        assert decode_job(canonical_json_bytes(job.model_dump(mode="json"))) == job
