"""Artwork record models — the nested attribute graph of one record.

Every model is frozen. Edits never mutate a snapshot; they produce a new one
through ``model_copy`` so untouched groups keep their identity.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CANONICAL_DIMENSION_UNIT = "cm"


class ArtworkStatus(str, Enum):
    """Sales status of an artwork."""

    PENDING = "pending"
    AVAILABLE = "available"
    ON_HOLD = "on_hold"
    SOLD = "sold"


class PricingMode(str, Enum):
    """How the price of an artwork is presented."""

    FIXED = "fixed"
    NEGOTIABLE = "negotiable"
    ON_REQUEST = "on_request"


class Rarity(str, Enum):
    """Whether a work is one of a kind or issued in an edition."""

    UNIQUE = "unique"
    LIMITED_EDITION = "limited_edition"
    OPEN_EDITION = "open_edition"


class DateType(str, Enum):
    """Shape of the creation date."""

    FULL_DATE = "full_date"
    YEAR_ONLY = "year_only"
    DATE_RANGE = "date_range"
    CIRCA = "circa"


class HistoricalKind(str, Enum):
    """The two ordered historical entry lists on a record."""

    EXHIBITIONS = "exhibitions"
    LITERATURE = "literature"


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float | None = None
    height: float | None = None
    depth: float | None = None
    unit: Literal["cm"] = CANONICAL_DIMENSION_UNIT


class FramingInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_framed: bool = False
    details: str | None = None


class SignatureInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_signed: bool = False
    location: str | None = None
    details: str | None = None


class EditionInfo(BaseModel):
    """Edition parameters plus the set of sold unit identifiers.

    Only ``sold_editions`` is persisted state for units; the identifier
    space itself is regenerated from ``numeric_size`` and ``ap_size``.
    """

    model_config = ConfigDict(frozen=True)

    is_edition: bool = False
    numeric_size: int | None = None
    ap_size: int | None = None
    sold_editions: frozenset[str] = frozenset()


class CreationDate(BaseModel):
    """Creation date; which value fields matter depends on ``type``."""

    model_config = ConfigDict(frozen=True)

    type: DateType = DateType.YEAR_ONLY
    value: str | None = None
    start: str | None = None
    end: str | None = None


class HistoricalEntry(BaseModel):
    """One exhibition or literature reference."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    year: int | None = None
    description: str = ""


class ArtworkRecord(BaseModel):
    """A single artwork record as edited in the artwork editor.

    The model is deliberately permissive: an in-progress edit may violate
    business rules (empty title, missing price).  Rule checking lives in
    ``easel.core.validation`` and only gates saving.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    owner_id: str | None = None

    title: str = ""
    description: str | None = None
    medium: str = ""
    status: ArtworkStatus = ArtworkStatus.PENDING
    rarity: Rarity = Rarity.UNIQUE

    price: float | None = None
    currency: str = "ZAR"
    pricing_mode: PricingMode = PricingMode.ON_REQUEST
    min_price: float | None = None
    max_price: float | None = None

    inventory_number: str | None = None
    private_note: str | None = None
    provenance: str | None = None
    provenance_notes: str | None = None
    location: str | None = None
    slug: str | None = None

    primary_image_url: str | None = None
    dominant_colors: tuple[str, ...] | None = None

    has_certificate_of_authenticity: bool = False
    certificate_details: str | None = None
    condition: str | None = None
    condition_notes: str | None = None

    dimensions: Dimensions | None = None
    framing: FramingInfo | None = None
    signature: SignatureInfo | None = None
    edition: EditionInfo | None = None
    creation_date: CreationDate | None = None

    exhibitions: tuple[HistoricalEntry, ...] = ()
    literature: tuple[HistoricalEntry, ...] = ()
    keywords: tuple[str, ...] = ()

    @property
    def is_persisted(self) -> bool:
        """Whether the record has a server-assigned id."""
        return self.id is not None


# Attribute groups addressable by dotted paths, keyed by record field name.
ATTRIBUTE_GROUPS: dict[str, type[BaseModel]] = {
    "dimensions": Dimensions,
    "framing": FramingInfo,
    "signature": SignatureInfo,
    "edition": EditionInfo,
    "creation_date": CreationDate,
}

# Optional free-text fields that are stored as NULL rather than "".
OPTIONAL_TEXT_FIELDS: tuple[str, ...] = (
    "description",
    "inventory_number",
    "private_note",
    "provenance",
    "provenance_notes",
    "location",
    "certificate_details",
    "condition",
    "condition_notes",
)
