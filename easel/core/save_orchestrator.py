"""Save orchestrator — the single use case that writes an edited record.

The orchestrator wires the ValidationEngine, the persistence service, the
MembershipSynchronizer and the image job trigger into one sequence:

1. validate (no persistence call on failure)
2. derive the slug (new record, blank slug, or title changed since load)
3. normalize the payload
4. upsert (insert mints the id)
5. reconcile collection memberships
6. request image-metadata regeneration (failure is only a warning)

``save`` never raises for validation or persistence failures; it returns
a tagged ``SaveResult``.  A single-flight latch rejects a second save of
the same record while one is in flight, and a ``CancellationToken``
suppresses callbacks (never writes) once the caller has gone away.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

from easel.bridge.persistence import PersistenceError
from easel.core.membership import (
    MembershipSynchronizer,
    compute_target,
    system_collection_id as find_system_collection_id,
)
from easel.core.validation import ValidationEngine
from easel.models.catalogue import Tag
from easel.models.images import ArtworkImage
from easel.models.record import (
    CANONICAL_DIMENSION_UNIT,
    OPTIONAL_TEXT_FIELDS,
    ArtworkRecord,
    Dimensions,
    EditionInfo,
    FramingInfo,
    SignatureInfo,
)
from easel.models.results import (
    SaveErrorKind,
    SaveResult,
    SaveWarning,
    SaveWarningKind,
)

if TYPE_CHECKING:
    from easel.bridge.job_queue import ImageJobTrigger
    from easel.bridge.persistence import PersistenceService

logger = logging.getLogger(__name__)

CreatedCallback = Callable[[str], None]
SavedCallback = Callable[[SaveResult], None]


# ---------------------------------------------------------------------------
# Concurrency helpers
# ---------------------------------------------------------------------------


class CancellationToken:
    """Tells an in-flight save that nobody is waiting for its callbacks.

    Cancelling never aborts a write already issued.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SaveLatch:
    """Single-flight latch keyed by record id (or a draft key)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()

    def acquire(self, key: str) -> bool:
        """Claim *key*; ``False`` if a save for it is already running."""
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._in_flight.discard(key)

    def is_held(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight


# ---------------------------------------------------------------------------
# Payload normalization
# ---------------------------------------------------------------------------


def keywords_from_tags(selected_tags: Iterable[str | Tag]) -> tuple[str, ...]:
    """Tag names in selection order, blanks and duplicates dropped."""
    seen: set[str] = set()
    keywords: list[str] = []
    for tag in selected_tags:
        name = (tag.name if isinstance(tag, Tag) else tag).strip()
        if name and name not in seen:
            seen.add(name)
            keywords.append(name)
    return tuple(keywords)


def normalize_payload(
    record: ArtworkRecord,
    *,
    slug: str | None,
    keywords: tuple[str, ...],
) -> ArtworkRecord:
    """Shape a validated record for storage."""
    changes: dict[str, Any] = {"slug": slug, "keywords": keywords}

    dimensions = record.dimensions or Dimensions()
    if dimensions.unit != CANONICAL_DIMENSION_UNIT:
        dimensions = dimensions.model_copy(update={"unit": CANONICAL_DIMENSION_UNIT})
    changes["dimensions"] = dimensions
    changes["framing"] = record.framing or FramingInfo()
    changes["signature"] = record.signature or SignatureInfo()

    edition = record.edition
    changes["edition"] = edition if edition is not None and edition.is_edition else EditionInfo()

    for field in OPTIONAL_TEXT_FIELDS:
        value = getattr(record, field)
        if isinstance(value, str) and not value.strip():
            changes[field] = None

    return record.model_copy(update=changes)


def needs_new_slug(record: ArtworkRecord, original_title: str | None) -> bool:
    """``original_title`` is the baseline title of a stored record."""
    if record.id is None or not record.slug:
        return True
    return original_title is not None and record.title != original_title


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SaveOrchestrator:
    """Runs the save use case against injected services.

    Parameters
    ----------
    persistence:
        The persistence service (system of record).
    job_trigger:
        Starts image-metadata regeneration.  ``None`` disables step 6.
    validator:
        Rule engine.  Defaults to the standard rule set.
    latch:
        Shared single-flight latch.  Pass the same latch to every
        orchestrator that can save the same records.
    """

    def __init__(
        self,
        persistence: PersistenceService,
        job_trigger: ImageJobTrigger | None = None,
        *,
        validator: ValidationEngine | None = None,
        latch: SaveLatch | None = None,
    ) -> None:
        self._persistence = persistence
        self._job_trigger = job_trigger
        self._validator = validator or ValidationEngine()
        self._memberships = MembershipSynchronizer(persistence)
        self.latch = latch or SaveLatch()

    @property
    def validator(self) -> ValidationEngine:
        return self._validator

    def save(
        self,
        record: ArtworkRecord,
        images: Sequence[ArtworkImage],
        selected_tags: Iterable[str | Tag],
        selected_collection_ids: Iterable[str],
        *,
        original_title: str | None = None,
        owner_id: str | None = None,
        system_collection_id: str | None = None,
        draft_key: str | None = None,
        token: CancellationToken | None = None,
        on_created: CreatedCallback | None = None,
        on_saved: SavedCallback | None = None,
    ) -> SaveResult:
        """Validate and persist *record*; never raises for save failures.

        Parameters
        ----------
        original_title:
            Title at load time; a change triggers a fresh slug.  For a
            stored record it is read from persistence when omitted.
        owner_id:
            Owner stamped on an inserted record.
        system_collection_id:
            The owner's system collection.  Looked up when omitted.
        draft_key:
            Latch key for a record without an id yet.
        token:
            Cancellation token; once cancelled, callbacks are skipped.
        """
        key = record.id or draft_key or f"new:{owner_id or record.owner_id}"
        if not self.latch.acquire(key):
            logger.info("Save of %s rejected: another save is in flight", key)
            return SaveResult.failure(
                SaveErrorKind.SAVE_IN_PROGRESS,
                "A save for this record is already in progress.",
                step="latch",
            )
        try:
            result = self._save(
                record,
                images,
                selected_tags,
                selected_collection_ids,
                original_title=original_title,
                owner_id=owner_id,
                system_collection_id=system_collection_id,
                token=token,
                on_created=on_created,
            )
        finally:
            self.latch.release(key)

        if on_saved is not None and not _cancelled(token):
            on_saved(result)
        return result

    def _save(
        self,
        record: ArtworkRecord,
        images: Sequence[ArtworkImage],
        selected_tags: Iterable[str | Tag],
        selected_collection_ids: Iterable[str],
        *,
        original_title: str | None,
        owner_id: str | None,
        system_collection_id: str | None,
        token: CancellationToken | None,
        on_created: CreatedCallback | None,
    ) -> SaveResult:
        # 1. Validate
        report = self._validator.evaluate(record, len(images))
        if not report.is_valid:
            logger.info(
                "Save blocked by validation: %s", ", ".join(sorted(report.field_errors))
            )
            return SaveResult.failure(
                SaveErrorKind.VALIDATION_FAILED,
                f"{len(report.field_errors)} field(s) need attention: "
                + ", ".join(sorted(report.field_errors)),
                step="validate",
                touched=self._validator.rule_fields(),
            )

        # 2. Slug
        slug = record.slug
        try:
            if original_title is None and record.id is not None:
                stored_before = self._persistence.read_record(record.id)
                if stored_before is not None:
                    original_title = stored_before.title
            if needs_new_slug(record, original_title):
                slug = self._persistence.generate_unique_slug(record.title, record.id)
        except PersistenceError as exc:
            logger.warning("Slug generation failed: %s", exc)
            return SaveResult.failure(
                SaveErrorKind.SLUG_GENERATION_FAILED, str(exc), step="slug"
            )

        # 3. Normalize
        payload = normalize_payload(
            record, slug=slug, keywords=keywords_from_tags(selected_tags)
        )

        # 4. Upsert
        created = record.id is None
        step = "insert" if created else "update"
        try:
            stored = self._persistence.upsert_record(payload, owner_id=owner_id)
        except PersistenceError as exc:
            logger.warning("Record %s failed: %s", step, exc)
            return SaveResult.failure(
                SaveErrorKind.PERSISTENCE_WRITE_FAILED, str(exc), step=step
            )
        if created and on_created is not None and not _cancelled(token):
            on_created(stored.id)

        # 5. Memberships
        try:
            if system_collection_id is None and stored.owner_id is not None:
                system_collection_id = find_system_collection_id(
                    self._persistence.list_collections(stored.owner_id)
                )
            previous = self._persistence.list_memberships(stored.id)
            target = compute_target(
                selected_collection_ids, system_collection_id, stored.status
            )
            self._memberships.reconcile(stored.id, previous, target)
        except PersistenceError as exc:
            logger.warning("Membership reconcile for %s failed: %s", stored.id, exc)
            return SaveResult.failure(
                SaveErrorKind.PERSISTENCE_WRITE_FAILED,
                str(exc),
                step="membership",
                partial_record_id=stored.id if created else None,
            )

        # 6. Image metadata regeneration
        warnings: list[SaveWarning] = []
        if images and self._job_trigger is not None:
            try:
                self._job_trigger.request_image_metadata_regeneration(
                    stored.id, force_watermark=True, force_visualization=True
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Image metadata regeneration request for %s failed: %s",
                    stored.id,
                    exc,
                )
                warnings.append(
                    SaveWarning(
                        kind=SaveWarningKind.ASYNC_TRIGGER_FAILED,
                        message=f"Image processing could not be started: {exc}",
                    )
                )

        logger.info(
            "Saved record %s (%s, slug=%s, %d membership(s))",
            stored.id,
            "created" if created else "updated",
            stored.slug,
            len(target),
        )
        return SaveResult(
            record=stored,
            warnings=tuple(warnings),
            memberships=target,
            created=created,
        )


def _cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled
