"""Tests for the Pydantic data models — validation, immutability, defaults."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from easel.core.hasher import canonical_json_bytes, content_key
from easel.models.catalogue import Collection, Tag
from easel.models.images import ArtworkImage, CollectionChange, ImageEvent, ImageEventKind
from easel.models.jobs import JOB_TYPE_MAP, ImageMetadataJob, JobKind
from easel.models.notifications import Notification, NotificationLevel
from easel.models.record import (
    ArtworkRecord,
    ArtworkStatus,
    Dimensions,
    EditionInfo,
    PricingMode,
    Rarity,
)
from easel.models.results import SaveErrorKind, SaveResult, ValidationReport


class TestRecordModels:
    def test_record_is_frozen(self):
        record = ArtworkRecord(title="A")
        with pytest.raises(ValidationError):
            record.title = "B"

    def test_record_defaults(self):
        record = ArtworkRecord()
        assert record.status == ArtworkStatus.PENDING
        assert record.pricing_mode == PricingMode.ON_REQUEST
        assert record.rarity == Rarity.UNIQUE
        assert record.keywords == ()
        assert not record.is_persisted

    def test_dimensions_unit_is_cm_only(self):
        assert Dimensions().unit == "cm"
        with pytest.raises(ValidationError):
            Dimensions(unit="in")

    def test_sold_editions_accept_lists(self):
        edition = EditionInfo(is_edition=True, numeric_size=2, sold_editions=["1/2"])
        assert edition.sold_editions == frozenset({"1/2"})

    def test_json_round_trip(self):
        record = ArtworkRecord(
            title="A", edition=EditionInfo(is_edition=True, numeric_size=2, sold_editions={"2/2"})
        )
        assert ArtworkRecord.model_validate_json(record.model_dump_json()) == record

    def test_status_values(self):
        assert ArtworkStatus.AVAILABLE == "available"
        assert ArtworkStatus.ON_HOLD == "on_hold"


class TestImageModels:
    def test_negative_position_rejected(self):
        with pytest.raises(ValidationError):
            ArtworkImage(id="i", url="u", position=-1)

    def test_change_flags(self):
        image = ArtworkImage(id="i", url="u", is_primary=True)
        change = CollectionChange(
            images=(image,),
            events=(ImageEvent(kind=ImageEventKind.PRIMARY_CHANGED, primary=image),),
        )
        assert change.primary_changed
        assert not change.emptied
        assert change.ordering == ["i"]


class TestCatalogueModels:
    def test_ids_are_generated(self):
        assert Collection(owner_id="o", name="A").id != Collection(owner_id="o", name="A").id
        assert Tag(name="coast").id


class TestJobModels:
    def test_registry(self):
        assert JOB_TYPE_MAP[JobKind.IMAGE_METADATA_REGENERATION] is ImageMetadataJob

    def test_idempotency_key_ignores_send_fields(self):
        first = ImageMetadataJob(record_id="r1", force_watermark=True)
        second = ImageMetadataJob(record_id="r1", force_watermark=True)
        assert first.job_id != second.job_id
        assert first.idempotency_key == second.idempotency_key
        assert first.idempotency_key != ImageMetadataJob(record_id="r2").idempotency_key


class TestResultModels:
    def test_failure_factory(self):
        result = SaveResult.failure(
            SaveErrorKind.PERSISTENCE_WRITE_FAILED,
            "disk full",
            step="membership",
            partial_record_id="r1",
        )
        assert not result.ok
        assert result.record_id is None
        assert result.error.step == "membership"
        assert result.partial_record_id == "r1"

    def test_success(self):
        result = SaveResult(record=ArtworkRecord(id="r1"))
        assert result.ok
        assert result.record_id == "r1"

    def test_visible_errors(self):
        report = ValidationReport(is_valid=False, field_errors={"title": "x", "medium": "y"})
        assert report.visible_errors(["medium"]) == {"medium": "y"}

    def test_notification_defaults(self):
        notification = Notification(level=NotificationLevel.INFO, code="saved", message="Saved")
        assert notification.record_id is None
        assert notification.timestamp_utc.tzinfo is not None


class TestHasher:
    def test_canonical_json_is_key_order_independent(self):
        assert canonical_json_bytes({"b": 1, "a": 2}) == canonical_json_bytes({"a": 2, "b": 1})

    def test_content_key_prefix(self):
        assert content_key({"a": 1}).startswith("sha256:")
