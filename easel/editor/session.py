"""Artwork editor session — the stateful facade a UI drives.

One ``ArtworkEditor`` edits one record.  It routes attribute edits through
the ``AttributeStateStore`` and image edits through the
``ImageCollectionManager``, re-runs validation after every change, and
tracks which fields the user has touched so errors only show once a field
has been visited.  Saving is delegated to the ``SaveOrchestrator``.

Image edits on a stored record are written through immediately (object
upload, image row, full ordering).  On a record that has no id yet the
images are staged locally and attached right after the insert lands.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from pathlib import PurePosixPath
from typing import Any

from easel.bridge.job_queue import ImageJobTrigger, JobQueue, QueuedImageJobTrigger
from easel.bridge.object_storage import LocalObjectStorage, ObjectStorage
from easel.bridge.persistence import (
    PersistenceError,
    PersistenceService,
    RecordNotFoundError,
    SqlitePersistence,
)
from easel.config import EaselConfig, config
from easel.core import edition_inventory
from easel.core.attribute_store import (
    AttributeStateStore,
    EditionUpdate,
    PricingModeUpdate,
    ResetGroupUpdate,
    ScalarUpdate,
    default_date_value,
)
from easel.core.image_collection import ImageCollectionManager
from easel.core.membership import (
    SystemCollectionNotEditableError,
    initial_selection,
    system_collection_id,
    user_selectable,
)
from easel.core.save_orchestrator import (
    CancellationToken,
    CreatedCallback,
    SaveLatch,
    SaveOrchestrator,
    keywords_from_tags,
)
from easel.models.catalogue import Collection, Tag
from easel.models.images import ArtworkImage, CollectionChange, ImageEvent, ImageEventKind
from easel.models.record import (
    ArtworkRecord,
    ArtworkStatus,
    CreationDate,
    DateType,
    Dimensions,
    EditionInfo,
    FramingInfo,
    HistoricalEntry,
    HistoricalKind,
    PricingMode,
    SignatureInfo,
)
from easel.models.results import SaveErrorKind, SaveResult, ValidationReport
from easel.routing.dispatcher import NotificationDispatcher
from easel.routing.sinks.logging_sink import LoggingSink

logger = logging.getLogger(__name__)


class RecordNotPersistedError(RuntimeError):
    """Raised when an operation needs a stored record and the record has no id."""


# Edits that should reveal errors on a related field.
_TOUCH_ALIASES: dict[str, tuple[str, ...]] = {
    "pricing_mode": ("price",),
    "min_price": ("price",),
    "max_price": ("price",),
    "has_certificate_of_authenticity": ("certificate_details",),
}


def touched_keys(path: str) -> set[str]:
    """Touched-field keys marked by an edit of *path*."""
    head = path.split(".", 1)[0]
    return {path, head, *_TOUCH_ALIASES.get(head, ())}


def default_record(
    owner_id: str | None,
    *,
    currency: str | None = None,
    provenance: str | None = None,
) -> ArtworkRecord:
    """A blank record as the editor presents it for a new artwork."""
    return ArtworkRecord(
        owner_id=owner_id,
        status=ArtworkStatus.PENDING,
        pricing_mode=PricingMode.ON_REQUEST,
        currency=currency or config.default_currency,
        provenance=provenance or config.default_provenance,
        creation_date=CreationDate(
            type=DateType.YEAR_ONLY,
            value=default_date_value(DateType.YEAR_ONLY),
        ),
        dimensions=Dimensions(),
        framing=FramingInfo(),
        signature=SignatureInfo(),
        edition=EditionInfo(),
    )


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


class EditorServices:
    """The external services one or more editors share.

    Parameters
    ----------
    persistence:
        System of record.
    storage:
        Object storage for image uploads.  Required for ``upload_image``
        and ``replace_image``.
    job_trigger:
        Image-metadata regeneration trigger.
    notifier:
        Notification dispatcher.  A dispatcher without sinks is created
        when omitted.
    latch:
        Single-flight save latch shared by every editor on these services.
    """

    def __init__(
        self,
        persistence: PersistenceService,
        *,
        storage: ObjectStorage | None = None,
        job_trigger: ImageJobTrigger | None = None,
        notifier: NotificationDispatcher | None = None,
        latch: SaveLatch | None = None,
    ) -> None:
        self.persistence = persistence
        self.storage = storage
        self.job_trigger = job_trigger
        self.notifier = notifier or NotificationDispatcher()
        self.orchestrator = SaveOrchestrator(persistence, job_trigger, latch=latch)

    @classmethod
    def from_config(cls, cfg: EaselConfig | None = None) -> EditorServices:
        """Wire the bundled SQLite, filesystem and queue bridges from config."""
        cfg = cfg or config
        notifier = NotificationDispatcher()
        notifier.register_sink(LoggingSink())
        queue = JobQueue(max_depth=cfg.max_job_queue, queue_db_path=cfg.job_queue_path)
        return cls(
            SqlitePersistence(cfg.database_path),
            storage=LocalObjectStorage(cfg.object_storage_path, cfg.public_base_url),
            job_trigger=QueuedImageJobTrigger(queue),
            notifier=notifier,
        )


# ---------------------------------------------------------------------------
# Editor
# ---------------------------------------------------------------------------


class ArtworkEditor:
    """Editing session for a single artwork record.

    Use ``ArtworkEditor.new`` or ``ArtworkEditor.load`` rather than the
    constructor.
    """

    def __init__(
        self,
        record: ArtworkRecord,
        services: EditorServices,
        *,
        images: Iterable[ArtworkImage] = (),
        collections: Iterable[Collection] = (),
        selected_collection_ids: Iterable[str] = (),
        selected_tags: Iterable[str | Tag] = (),
        owner_tags: Iterable[Tag] = (),
    ) -> None:
        self._services = services
        self._owner_id = record.owner_id

        self._store = AttributeStateStore(record)
        self._store.subscribe(self._on_record_changed)
        self._images = ImageCollectionManager(images)

        self._collections = tuple(collections)
        self._system_collection_id = system_collection_id(self._collections)
        self._selected_collections: set[str] = set(selected_collection_ids)
        self._selected_tags: list[str] = list(keywords_from_tags(selected_tags))
        self._owner_tags: dict[str, Tag] = {tag.name: tag for tag in owner_tags}

        self._touched: set[str] = set()
        self._original_title = record.title if record.is_persisted else None
        self._draft_key = None if record.is_persisted else f"draft:{uuid.uuid4()}"
        self._report = self._evaluate()

    @classmethod
    def new(
        cls,
        owner_id: str,
        services: EditorServices,
        *,
        currency: str | None = None,
        provenance: str | None = None,
    ) -> ArtworkEditor:
        """Open an editor on a blank record for *owner_id*."""
        persistence = services.persistence
        record = default_record(owner_id, currency=currency, provenance=provenance)
        collections = persistence.list_collections(owner_id)
        return cls(
            record,
            services,
            collections=collections,
            selected_collection_ids=initial_selection((), collections, record.status),
            owner_tags=persistence.list_tags(owner_id),
        )

    @classmethod
    def load(
        cls,
        record_id: str,
        services: EditorServices,
        *,
        owner_id: str | None = None,
    ) -> ArtworkEditor:
        """Open an editor on a stored record.

        Raises
        ------
        RecordNotFoundError
            If no record has *record_id*.
        """
        persistence = services.persistence
        record = persistence.read_record(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} does not exist")
        owner = record.owner_id or owner_id
        if record.owner_id is None and owner is not None:
            record = record.model_copy(update={"owner_id": owner})

        collections = persistence.list_collections(owner) if owner else []
        memberships = persistence.list_memberships(record_id)
        logger.debug(
            "Loaded record %s (%d membership(s), %d keyword(s))",
            record_id,
            len(memberships),
            len(record.keywords),
        )
        return cls(
            record,
            services,
            images=persistence.list_images(record_id),
            collections=collections,
            selected_collection_ids=initial_selection(
                memberships, collections, record.status
            ),
            selected_tags=record.keywords,
            owner_tags=persistence.list_tags(owner) if owner else (),
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def record(self) -> ArtworkRecord:
        return self._store.get()

    @property
    def images(self) -> tuple[ArtworkImage, ...]:
        return self._images.images

    @property
    def report(self) -> ValidationReport:
        return self._report

    @property
    def is_valid(self) -> bool:
        return self._report.is_valid

    @property
    def touched(self) -> frozenset[str]:
        return frozenset(self._touched)

    @property
    def visible_errors(self) -> dict[str, str]:
        """Errors of fields the user has touched."""
        return self._report.visible_errors(self._touched)

    @property
    def original_title(self) -> str | None:
        return self._original_title

    @property
    def collections(self) -> tuple[Collection, ...]:
        return self._collections

    @property
    def selectable_collections(self) -> list[Collection]:
        return user_selectable(self._collections)

    @property
    def selected_collection_ids(self) -> frozenset[str]:
        return frozenset(self._selected_collections)

    @property
    def selected_tags(self) -> tuple[str, ...]:
        return tuple(self._selected_tags)

    def touch(self, *fields: str) -> None:
        """Mark fields as visited (e.g. on blur)."""
        self._touched.update(fields)

    # ------------------------------------------------------------------
    # Attribute edits
    # ------------------------------------------------------------------

    def set_path(self, path: str, value: Any) -> ArtworkRecord:
        record = self._store.set_path(path, value)
        self.touch(*touched_keys(path))
        return record

    def apply(self, update: Any) -> ArtworkRecord:
        """Apply a typed update from ``easel.core.attribute_store``."""
        record = self._store.apply(update)
        if isinstance(update, ScalarUpdate):
            self.touch(*touched_keys(update.field))
        elif isinstance(update, PricingModeUpdate):
            self.touch(*touched_keys("pricing_mode"))
        elif isinstance(update, ResetGroupUpdate):
            self.touch(update.group)
        else:
            self.touch(update.kind, *(f"{update.kind}.{name}" for name in update.changes()))
        return record

    def set_status(self, status: ArtworkStatus) -> ArtworkRecord:
        return self.set_path("status", status)

    def set_pricing_mode(self, mode: PricingMode) -> ArtworkRecord:
        return self.set_path("pricing_mode", mode)

    def add_historical_entry(
        self, kind: HistoricalKind, *, year: int | None = None, description: str = ""
    ) -> HistoricalEntry:
        entry = self._store.add_historical_entry(kind, year=year, description=description)
        self.touch(HistoricalKind(kind).value)
        return entry

    def update_historical_entry(
        self, kind: HistoricalKind, entry_id: str, **changes: Any
    ) -> HistoricalEntry:
        entry = self._store.update_historical_entry(kind, entry_id, **changes)
        self.touch(HistoricalKind(kind).value)
        return entry

    def remove_historical_entry(self, kind: HistoricalKind, entry_id: str) -> None:
        self._store.remove_historical_entry(kind, entry_id)
        self.touch(HistoricalKind(kind).value)

    def move_historical_entry(
        self, kind: HistoricalKind, from_index: int, to_index: int
    ) -> None:
        self._store.move_historical_entry(kind, from_index, to_index)
        self.touch(HistoricalKind(kind).value)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def upload_image(self, filename: str, data: bytes) -> ArtworkImage:
        """Store an uploaded file and append it to the collection."""
        url = self._upload(filename, data)
        record_id = self.record.id
        if record_id is not None:
            # The row lands at the end of the stored ordering already.
            image = self._services.persistence.insert_image(record_id, url)
        else:
            image = ArtworkImage(id=f"staged-{uuid.uuid4().hex}", url=url)
        self._commit_images(lambda: self._images.append(image), structural=False)
        return self._images.get(image.id)

    def add_image(self, image: ArtworkImage) -> ArtworkImage:
        """Append an image that is already stored (or staged for a new record)."""
        record_id = self.record.id
        if record_id is not None and image.record_id != record_id:
            raise ValueError(
                f"Image {image.id!r} belongs to record {image.record_id!r}, "
                f"not {record_id!r}"
            )
        self._commit_images(lambda: self._images.append(image))
        return self._images.get(image.id)

    def reorder_images(self, from_index: int, to_index: int) -> CollectionChange:
        return self._commit_images(lambda: self._images.reorder(from_index, to_index))

    def delete_image(self, image_id: str) -> CollectionChange:
        """Remove an image.

        Raises ``PrimaryImageProtectedError`` for the primary image while
        other images remain; nothing is deleted in that case.
        """
        persistence = self._services.persistence
        return self._commit_images(
            lambda: self._images.delete(image_id),
            write=lambda record_id: persistence.delete_image(image_id),
            structural=False,
        )

    def replace_image(self, image_id: str, filename: str, data: bytes) -> CollectionChange:
        """Swap the file behind an image, keeping its slot."""
        self._images.get(image_id)
        url = self._upload(filename, data)
        persistence = self._services.persistence
        return self._commit_images(
            lambda: self._images.replace(image_id, url),
            write=lambda record_id: persistence.update_image_url(image_id, url),
            structural=False,
        )

    def set_primary_image(self, image_id: str) -> CollectionChange:
        return self._commit_images(lambda: self._images.set_primary(image_id))

    # ------------------------------------------------------------------
    # Tags and collections
    # ------------------------------------------------------------------

    def select_tag(self, name: str) -> Tag:
        """Select an owner tag by name, creating it when it does not exist."""
        name = name.strip()
        if not name:
            raise ValueError("Tag name must not be blank")
        tag = self._owner_tags.get(name)
        if tag is None:
            if self._owner_id is None:
                raise ValueError("Cannot create a tag for a record without an owner")
            tag = self._services.persistence.create_tag(self._owner_id, name)
            self._owner_tags[tag.name] = tag
        if tag.name not in self._selected_tags:
            self._selected_tags.append(tag.name)
        self.touch("keywords")
        return tag

    def deselect_tag(self, name: str) -> None:
        name = name.strip()
        if name in self._selected_tags:
            self._selected_tags.remove(name)
        self.touch("keywords")

    def select_collection(self, collection_id: str) -> None:
        self._check_user_collection(collection_id)
        self._selected_collections.add(collection_id)

    def deselect_collection(self, collection_id: str) -> None:
        self._check_user_collection(collection_id)
        self._selected_collections.discard(collection_id)

    def _check_user_collection(self, collection_id: str) -> None:
        if collection_id == self._system_collection_id:
            raise SystemCollectionNotEditableError(
                "The system collection follows the record status and cannot be "
                "chosen directly."
            )
        if all(c.id != collection_id for c in self._collections):
            raise LookupError(f"Unknown collection {collection_id!r}")

    # ------------------------------------------------------------------
    # Editions
    # ------------------------------------------------------------------

    def edition_units(self) -> list[str]:
        return edition_inventory.generate_for(self.record.edition)

    def available_units(self) -> list[str]:
        return edition_inventory.available(self.record.edition)

    def stale_sold_units(self) -> frozenset[str]:
        return edition_inventory.stale_sold(self.record.edition)

    def clear_stale_sold(self) -> frozenset[str]:
        """Drop sold units outside the current edition; returns what was dropped."""
        stale = self.stale_sold_units()
        if stale:
            cleared = edition_inventory.clear_stale(self.record.edition or EditionInfo())
            self.apply(EditionUpdate(sold_editions=cleared.sold_editions))
        return stale

    def toggle_edition_sold(self, identifier: str, sold: bool) -> bool:
        """Optimistically mark an edition unit sold or unsold.

        The local record flips first.  If the write fails the previous
        edition is restored, an error notification goes out, and ``False``
        is returned.
        """
        record = self.record
        if record.id is None:
            raise RecordNotPersistedError("Save the record before recording edition sales.")
        previous = record.edition
        flipped = edition_inventory.toggle_sold(previous or EditionInfo(), identifier, sold)
        self._store.apply(EditionUpdate(sold_editions=flipped.sold_editions))
        try:
            self._services.persistence.update_edition_sale(record.id, identifier, sold)
        except PersistenceError as exc:
            self._store.replace(self.record.model_copy(update={"edition": previous}))
            logger.warning(
                "Edition sale update for %s on record %s rolled back: %s",
                identifier,
                record.id,
                exc,
            )
            self._services.notifier.error(
                "edition_sale_failed",
                f"Could not update edition {identifier}: {exc}",
                record_id=record.id,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(
        self,
        token: CancellationToken | None = None,
        *,
        on_created: CreatedCallback | None = None,
    ) -> SaveResult:
        """Save the record through the orchestrator and adopt the result.

        When *token* is cancelled before the save returns, the writes still
        complete but the editor state and ``on_created`` are left alone.
        """
        staged = () if self.record.is_persisted else self._images.images

        def created(record_id: str) -> None:
            self._attach_staged_images(record_id, staged)
            if on_created is not None and not _cancelled(token):
                on_created(record_id)

        result = self._services.orchestrator.save(
            self.record,
            self._images.images,
            self._selected_tags,
            self._selected_collections,
            original_title=self._original_title,
            owner_id=self._owner_id,
            system_collection_id=self._system_collection_id,
            draft_key=self._draft_key,
            on_created=created,
        )
        if _cancelled(token):
            logger.info("Save result discarded: editor session was cancelled")
            return result

        notifier = self._services.notifier
        if result.ok:
            saved = result.record
            self._store.replace(saved)
            self._original_title = saved.title
            self._draft_key = None
            self._selected_collections = set(result.memberships)
            for warning in result.warnings:
                notifier.warning(warning.kind.value, warning.message, record_id=saved.id)
        elif result.error.kind == SaveErrorKind.VALIDATION_FAILED:
            self.touch(*result.touched)
        else:
            if result.partial_record_id is not None:
                # The insert landed; a retry must update that row.
                self._store.replace(
                    self.record.model_copy(update={"id": result.partial_record_id})
                )
                self._draft_key = None
            notifier.error(
                result.error.kind.value, result.error.message, record_id=self.record.id
            )
        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _evaluate(self) -> ValidationReport:
        return self._services.orchestrator.validator.evaluate(self.record, len(self._images))

    def _on_record_changed(self, previous: ArtworkRecord, current: ArtworkRecord) -> None:
        self._report = self._evaluate()

    def _upload(self, filename: str, data: bytes) -> str:
        storage = self._services.storage
        if storage is None:
            raise RuntimeError("No object storage configured for image uploads")
        folder = self.record.id or (self._draft_key or "draft").replace(":", "-")
        name = PurePosixPath(filename).name or "image"
        path = f"{self._owner_id or 'anonymous'}/{folder}/{uuid.uuid4().hex}-{name}"
        return storage.upload(path, data)

    def _commit_images(
        self,
        operation: Callable[[], CollectionChange],
        *,
        write: Callable[[str], None] | None = None,
        structural: bool = True,
    ) -> CollectionChange:
        """Run an image operation, write it through, then act on its events.

        Events are handled only once the store holds the new state.  When
        the write fails the local ordering is put back and the
        ``PersistenceError`` propagates.
        """
        previous = self._images.images
        change = operation()
        record_id = self.record.id
        if record_id is not None:
            try:
                if write is not None:
                    write(record_id)
                if structural:
                    self._services.persistence.set_image_order(record_id, change.ordering)
            except PersistenceError as exc:
                self._images = ImageCollectionManager(previous)
                logger.warning(
                    "Image change on record %s was not stored, local order restored: %s",
                    record_id,
                    exc,
                )
                raise
        for event in change.events:
            if event.kind == ImageEventKind.PRIMARY_CHANGED:
                self._on_primary_changed(event)
            elif event.kind == ImageEventKind.COLLECTION_EMPTIED:
                self._on_collection_emptied(event)
        self.touch("images")
        self._report = self._evaluate()
        return change

    def _on_primary_changed(self, event: ImageEvent) -> None:
        # The stored record already mirrors the new primary url.
        if event.primary is None:
            return
        self._store.apply(ScalarUpdate(field="primary_image_url", value=event.primary.url))
        record_id = self.record.id
        trigger = self._services.job_trigger
        if record_id is None or trigger is None:
            return
        try:
            trigger.request_image_metadata_regeneration(record_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Image metadata regeneration request for %s failed: %s", record_id, exc
            )
            self._services.notifier.warning(
                "async_trigger_failed",
                f"Image processing could not be started: {exc}",
                record_id=record_id,
            )

    def _on_collection_emptied(self, event: ImageEvent) -> None:
        self._store.replace(
            self.record.model_copy(
                update={"primary_image_url": None, "dominant_colors": None}
            )
        )
        self._services.notifier.warning(
            "collection_emptied",
            "All images were removed. Add an image before saving.",
            record_id=self.record.id,
        )

    def _attach_staged_images(
        self, record_id: str, staged: tuple[ArtworkImage, ...]
    ) -> None:
        """Create image rows for images added before the record existed."""
        if not staged:
            return
        persistence = self._services.persistence
        try:
            attached = [persistence.insert_image(record_id, image.url) for image in staged]
        except PersistenceError as exc:
            logger.warning("Attaching staged images to %s failed: %s", record_id, exc)
            self._services.notifier.error(
                "image_attach_failed",
                f"Images could not be attached to the new record: {exc}",
                record_id=record_id,
            )
            return
        self._images = ImageCollectionManager(attached)
        logger.info("Attached %d staged image(s) to record %s", len(attached), record_id)


def _cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled
