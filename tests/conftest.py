"""Shared test fixtures for Easel."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from easel.bridge.job_queue import JobQueue, JobQueueError, QueuedImageJobTrigger
from easel.bridge.object_storage import LocalObjectStorage
from easel.bridge.persistence import PersistenceError, SqlitePersistence
from easel.editor.session import EditorServices
from easel.models.catalogue import Collection
from easel.models.images import ArtworkImage
from easel.models.record import (
    ArtworkRecord,
    ArtworkStatus,
    CreationDate,
    DateType,
    Dimensions,
)
from easel.routing.dispatcher import NotificationDispatcher
from easel.routing.sinks.memory import MemorySink

OWNER_ID = "artist-001"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FlakyPersistence(SqlitePersistence):
    """SqlitePersistence that fails the operations named in ``failing``."""

    def __init__(self, db_path: Path) -> None:
        super().__init__(db_path)
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise PersistenceError(f"{name} unavailable")

    def generate_unique_slug(self, title, record_id=None):
        self._maybe_fail("generate_unique_slug")
        return super().generate_unique_slug(title, record_id)

    def upsert_record(self, record, owner_id=None):
        self._maybe_fail("upsert_record")
        return super().upsert_record(record, owner_id)

    def replace_memberships(self, record_id, collection_ids):
        self._maybe_fail("replace_memberships")
        return super().replace_memberships(record_id, collection_ids)

    def update_edition_sale(self, record_id, identifier, sold):
        self._maybe_fail("update_edition_sale")
        return super().update_edition_sale(record_id, identifier, sold)

    def insert_image(self, record_id, url):
        self._maybe_fail("insert_image")
        return super().insert_image(record_id, url)

    def update_image_url(self, image_id, url):
        self._maybe_fail("update_image_url")
        return super().update_image_url(image_id, url)

    def delete_image(self, image_id):
        self._maybe_fail("delete_image")
        return super().delete_image(image_id)

    def set_image_order(self, record_id, ordered_ids):
        self._maybe_fail("set_image_order")
        return super().set_image_order(record_id, ordered_ids)


class RecordingTrigger:
    """ImageJobTrigger that records requests (or fails when ``fail`` is set)."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[dict[str, Any]] = []

    def request_image_metadata_regeneration(
        self,
        record_id: str,
        *,
        force_watermark: bool = False,
        force_visualization: bool = False,
    ) -> str:
        if self.fail:
            raise JobQueueError("image worker unreachable")
        self.requests.append(
            {
                "record_id": record_id,
                "force_watermark": force_watermark,
                "force_visualization": force_visualization,
            }
        )
        return f"job-{len(self.requests)}"


# ---------------------------------------------------------------------------
# Bridges
# ---------------------------------------------------------------------------


@pytest.fixture
def owner_id() -> str:
    return OWNER_ID


@pytest.fixture
def persistence(tmp_path: Path) -> FlakyPersistence:
    """Provide a fresh SQLite persistence in a temp directory."""
    return FlakyPersistence(tmp_path / "easel.db")


@pytest.fixture
def storage(tmp_path: Path) -> LocalObjectStorage:
    return LocalObjectStorage(tmp_path / "objects")


@pytest.fixture
def job_queue() -> JobQueue:
    return JobQueue(max_depth=16)


@pytest.fixture
def queued_trigger(job_queue: JobQueue) -> QueuedImageJobTrigger:
    return QueuedImageJobTrigger(job_queue)


@pytest.fixture
def trigger() -> RecordingTrigger:
    return RecordingTrigger()


@pytest.fixture
def failing_trigger() -> RecordingTrigger:
    return RecordingTrigger(fail=True)


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def notifier(memory_sink: MemorySink) -> NotificationDispatcher:
    dispatcher = NotificationDispatcher()
    dispatcher.register_sink(memory_sink)
    return dispatcher


@pytest.fixture
def services(
    persistence: FlakyPersistence,
    storage: LocalObjectStorage,
    trigger: RecordingTrigger,
    notifier: NotificationDispatcher,
) -> EditorServices:
    """Editor services wired to the temp bridges and a recording trigger."""
    return EditorServices(
        persistence, storage=storage, job_trigger=trigger, notifier=notifier
    )


@pytest.fixture
def system_collection(persistence: FlakyPersistence, owner_id: str) -> Collection:
    return persistence.create_collection(owner_id, "Available works", is_system=True)


@pytest.fixture
def user_collection(persistence: FlakyPersistence, owner_id: str) -> Collection:
    return persistence.create_collection(owner_id, "Landscapes")


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_record() -> Callable[..., ArtworkRecord]:
    """Factory fixture: a record that passes every validation rule."""

    def _factory(**overrides: Any) -> ArtworkRecord:
        defaults: dict[str, Any] = {
            "owner_id": OWNER_ID,
            "title": "Untitled Work",
            "medium": "Oil",
            "status": ArtworkStatus.PENDING,
            "dimensions": Dimensions(width=10, height=10),
            "creation_date": CreationDate(type=DateType.YEAR_ONLY, value="2024"),
        }
        defaults.update(overrides)
        return ArtworkRecord(**defaults)

    return _factory


@pytest.fixture
def make_image() -> Callable[..., ArtworkImage]:
    """Factory fixture: images with sequential ids."""
    counter = {"n": 0}

    def _factory(**overrides: Any) -> ArtworkImage:
        counter["n"] += 1
        n = counter["n"]
        defaults: dict[str, Any] = {
            "id": f"img-{n}",
            "url": f"https://cdn.example.test/img-{n}.jpg",
            "position": n - 1,
        }
        defaults.update(overrides)
        return ArtworkImage(**defaults)

    return _factory
