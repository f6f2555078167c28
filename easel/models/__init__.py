"""Easel data models — all Pydantic v2, all frozen (immutable)."""

from easel.models.catalogue import Collection, Tag
from easel.models.images import (
    ArtworkImage,
    CollectionChange,
    ImageEvent,
    ImageEventKind,
)
from easel.models.jobs import JOB_TYPE_MAP, ImageMetadataJob, JobBase, JobKind
from easel.models.notifications import Notification, NotificationLevel
from easel.models.record import (
    CANONICAL_DIMENSION_UNIT,
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
    Rarity,
    SignatureInfo,
)
from easel.models.results import (
    SaveError,
    SaveErrorKind,
    SaveResult,
    SaveWarning,
    SaveWarningKind,
    ValidationReport,
)

__all__ = [
    # record
    "CANONICAL_DIMENSION_UNIT",
    "ArtworkRecord",
    "ArtworkStatus",
    "PricingMode",
    "Rarity",
    "DateType",
    "HistoricalKind",
    "Dimensions",
    "FramingInfo",
    "SignatureInfo",
    "EditionInfo",
    "CreationDate",
    "HistoricalEntry",
    # images
    "ArtworkImage",
    "ImageEvent",
    "ImageEventKind",
    "CollectionChange",
    # catalogue
    "Collection",
    "Tag",
    # jobs
    "JobKind",
    "JobBase",
    "ImageMetadataJob",
    "JOB_TYPE_MAP",
    # notifications
    "Notification",
    "NotificationLevel",
    # results
    "ValidationReport",
    "SaveError",
    "SaveErrorKind",
    "SaveWarning",
    "SaveWarningKind",
    "SaveResult",
]
