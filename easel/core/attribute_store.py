"""Attribute state store — copy-on-write edits of one artwork record.

Every edit produces a new ``ArtworkRecord`` snapshot.  Only the path from
the root to the changed leaf is copied; sibling groups and lists keep their
identity, so consumers can detect change with ``is``.

Edits are expressed as typed updates (one model per attribute group).
``set_path`` accepts the dotted-path form used by form fields and
translates it into the matching typed update, so side constraints apply
the same way regardless of entry point:

- ``edition.is_edition`` off clears sizes and sold units; on defaults the
  sizes to 1 / 0.
- ``pricing_mode`` clears the price fields the new mode does not use.
- ``signature.is_signed`` / ``framing.is_framed`` off clear their details.
- ``creation_date.type`` resets the date value fields.
- ``has_certificate_of_authenticity`` off clears ``certificate_details``.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from easel.models.record import (
    ATTRIBUTE_GROUPS,
    ArtworkRecord,
    DateType,
    HistoricalEntry,
    HistoricalKind,
    PricingMode,
)

Listener = Callable[[ArtworkRecord, ArtworkRecord], None]


class AttributePathError(ValueError):
    """Raised when a dotted path does not address a settable attribute."""


class AttributeValueError(ValueError):
    """Raised when a value does not fit the addressed attribute."""


class HistoricalEntryNotFoundError(LookupError):
    """Raised when a historical entry id is not present in its list."""


# ---------------------------------------------------------------------------
# Typed updates
# ---------------------------------------------------------------------------


class _GroupUpdate(BaseModel):
    """Base for per-group updates.

    Only the fields passed explicitly are applied (``model_fields_set``),
    so ``DimensionsUpdate(width=10)`` leaves height untouched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    def changes(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "kind"
        }


class ScalarUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["scalar"] = "scalar"
    field: str
    value: Any = None


class PricingModeUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["pricing_mode"] = "pricing_mode"
    mode: PricingMode


class ResetGroupUpdate(BaseModel):
    """Set a whole attribute group back to ``None``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["reset_group"] = "reset_group"
    group: str


class DimensionsUpdate(_GroupUpdate):
    kind: Literal["dimensions"] = "dimensions"
    width: float | None = None
    height: float | None = None
    depth: float | None = None
    unit: Literal["cm"] = "cm"


class FramingUpdate(_GroupUpdate):
    kind: Literal["framing"] = "framing"
    is_framed: bool = False
    details: str | None = None


class SignatureUpdate(_GroupUpdate):
    kind: Literal["signature"] = "signature"
    is_signed: bool = False
    location: str | None = None
    details: str | None = None


class EditionUpdate(_GroupUpdate):
    kind: Literal["edition"] = "edition"
    is_edition: bool = False
    numeric_size: int | None = None
    ap_size: int | None = None
    sold_editions: frozenset[str] = frozenset()


class CreationDateUpdate(_GroupUpdate):
    kind: Literal["creation_date"] = "creation_date"
    type: DateType = DateType.YEAR_ONLY
    value: str | None = None
    start: str | None = None
    end: str | None = None


AttributeUpdate = Annotated[
    Union[
        ScalarUpdate,
        PricingModeUpdate,
        ResetGroupUpdate,
        DimensionsUpdate,
        FramingUpdate,
        SignatureUpdate,
        EditionUpdate,
        CreationDateUpdate,
    ],
    Field(discriminator="kind"),
]

GROUP_UPDATES: dict[str, type[_GroupUpdate]] = {
    "dimensions": DimensionsUpdate,
    "framing": FramingUpdate,
    "signature": SignatureUpdate,
    "edition": EditionUpdate,
    "creation_date": CreationDateUpdate,
}

# Fields that cannot be written through scalar updates.
_PROTECTED_FIELDS: frozenset[str] = frozenset({
    "id",
    "owner_id",
    "pricing_mode",
    "exhibitions",
    "literature",
    *ATTRIBUTE_GROUPS,
})


@lru_cache(maxsize=None)
def _field_adapter(field: str) -> TypeAdapter:
    return TypeAdapter(ArtworkRecord.model_fields[field].annotation)


def default_date_value(date_type: DateType) -> str | None:
    """Value a creation date starts with after switching to *date_type*."""
    if date_type in (DateType.YEAR_ONLY, DateType.CIRCA):
        return str(datetime.now(timezone.utc).year)
    return None


def update_for_path(path: str, value: Any) -> BaseModel:
    """Translate a dotted form path into a typed update."""
    parts = path.split(".")
    if not all(parts):
        raise AttributePathError(f"Malformed attribute path: {path!r}")

    try:
        if len(parts) == 1:
            name = parts[0]
            if name == "pricing_mode":
                return PricingModeUpdate(mode=value)
            if name in GROUP_UPDATES:
                if value is None:
                    return ResetGroupUpdate(group=name)
                if isinstance(value, BaseModel):
                    value = dict(value)
                if not isinstance(value, dict):
                    raise AttributeValueError(
                        f"Group {name!r} expects a mapping, got {type(value).__name__}"
                    )
                return GROUP_UPDATES[name](**value)
            if name not in ArtworkRecord.model_fields or name in _PROTECTED_FIELDS:
                raise AttributePathError(f"Unknown or read-only attribute: {path!r}")
            return ScalarUpdate(field=name, value=value)

        if len(parts) == 2:
            group, leaf = parts
            update_cls = GROUP_UPDATES.get(group)
            if update_cls is None or leaf not in ATTRIBUTE_GROUPS[group].model_fields:
                raise AttributePathError(f"Unknown attribute path: {path!r}")
            return update_cls(**{leaf: value})
    except ValidationError as exc:
        raise AttributeValueError(f"Invalid value for {path!r}: {exc}") from exc

    raise AttributePathError(f"Attribute path too deep: {path!r}")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class AttributeStateStore:
    """Holds the current snapshot of one record and applies edits to it.

    Parameters
    ----------
    record:
        Initial snapshot.  Defaults to an empty ``ArtworkRecord``.
    """

    def __init__(self, record: ArtworkRecord | None = None) -> None:
        self._record = record or ArtworkRecord()
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def get(self) -> ArtworkRecord:
        """Return the current snapshot."""
        return self._record

    def replace(self, record: ArtworkRecord) -> ArtworkRecord:
        """Adopt a new snapshot wholesale (after load or save)."""
        return self._commit(record)

    def subscribe(self, listener: Listener) -> None:
        """Register ``listener(previous, current)`` for every change."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def set_path(self, path: str, value: Any) -> ArtworkRecord:
        """Set the attribute at dotted *path* to *value*."""
        return self.apply(update_for_path(path, value))

    def apply(self, update: BaseModel) -> ArtworkRecord:
        """Apply one typed update and return the new snapshot."""
        if isinstance(update, ScalarUpdate):
            updated = self._apply_scalar(update)
        elif isinstance(update, PricingModeUpdate):
            updated = self._apply_pricing_mode(update.mode)
        elif isinstance(update, ResetGroupUpdate):
            if update.group not in ATTRIBUTE_GROUPS:
                raise AttributePathError(f"Unknown attribute group: {update.group!r}")
            updated = self._record.model_copy(update={update.group: None})
        elif isinstance(update, _GroupUpdate):
            updated = self._apply_group(update.kind, update.changes())
        else:
            raise AttributePathError(f"Unsupported update: {type(update).__name__}")
        return self._commit(updated)

    def _apply_scalar(self, update: ScalarUpdate) -> ArtworkRecord:
        field = update.field
        if field not in ArtworkRecord.model_fields or field in _PROTECTED_FIELDS:
            raise AttributePathError(f"Unknown or read-only attribute: {field!r}")
        try:
            value = _field_adapter(field).validate_python(update.value)
        except ValidationError as exc:
            raise AttributeValueError(f"Invalid value for {field!r}: {exc}") from exc

        changes: dict[str, Any] = {field: value}
        if field == "has_certificate_of_authenticity" and not value:
            changes["certificate_details"] = None
        return self._record.model_copy(update=changes)

    def _apply_pricing_mode(self, mode: PricingMode) -> ArtworkRecord:
        changes: dict[str, Any] = {"pricing_mode": mode}
        if mode == PricingMode.ON_REQUEST:
            changes.update(price=None, min_price=None, max_price=None)
        elif mode == PricingMode.FIXED:
            changes.update(min_price=None, max_price=None)
        return self._record.model_copy(update=changes)

    def _apply_group(self, group: str, changes: dict[str, Any]) -> ArtworkRecord:
        group_cls = ATTRIBUTE_GROUPS[group]
        current = getattr(self._record, group) or group_cls()

        if group == "creation_date" and "type" in changes:
            new_type = DateType(changes["type"])
            if new_type != current.type:
                reset = {
                    "value": default_date_value(new_type),
                    "start": None,
                    "end": None,
                }
                changes = {**reset, **changes}

        merged = {**dict(current), **changes}

        if group == "edition" and "is_edition" in changes:
            if changes["is_edition"]:
                if merged.get("numeric_size") is None:
                    merged["numeric_size"] = 1
                if merged.get("ap_size") is None:
                    merged["ap_size"] = 0
            else:
                merged.update(numeric_size=None, ap_size=None, sold_editions=frozenset())
        elif group == "signature" and changes.get("is_signed") is False:
            merged.update(location=None, details=None)
        elif group == "framing" and changes.get("is_framed") is False:
            merged["details"] = None

        try:
            new_group = group_cls.model_validate(merged)
        except ValidationError as exc:
            raise AttributeValueError(f"Invalid value for {group!r}: {exc}") from exc
        return self._record.model_copy(update={group: new_group})

    # ------------------------------------------------------------------
    # Historical entries (exhibitions, literature)
    # ------------------------------------------------------------------

    def add_historical_entry(
        self,
        kind: HistoricalKind,
        *,
        year: int | None = None,
        description: str = "",
    ) -> HistoricalEntry:
        """Append a new entry to the *kind* list and return it."""
        kind = HistoricalKind(kind)
        entry = HistoricalEntry(year=year, description=description)
        entries = getattr(self._record, kind.value) + (entry,)
        self._commit(self._record.model_copy(update={kind.value: entries}))
        return entry

    def update_historical_entry(
        self, kind: HistoricalKind, entry_id: str, **changes: Any
    ) -> HistoricalEntry:
        """Update ``year`` and/or ``description`` of one entry."""
        kind = HistoricalKind(kind)
        entries = list(getattr(self._record, kind.value))
        index = self._entry_index(entries, entry_id, kind)
        unknown = set(changes) - {"year", "description"}
        if unknown:
            raise AttributePathError(
                f"Historical entries have no field(s): {sorted(unknown)}"
            )
        try:
            entry = HistoricalEntry.model_validate({**dict(entries[index]), **changes})
        except ValidationError as exc:
            raise AttributeValueError(f"Invalid historical entry: {exc}") from exc
        entries[index] = entry
        self._commit(self._record.model_copy(update={kind.value: tuple(entries)}))
        return entry

    def remove_historical_entry(self, kind: HistoricalKind, entry_id: str) -> None:
        kind = HistoricalKind(kind)
        entries = list(getattr(self._record, kind.value))
        del entries[self._entry_index(entries, entry_id, kind)]
        self._commit(self._record.model_copy(update={kind.value: tuple(entries)}))

    def move_historical_entry(
        self, kind: HistoricalKind, from_index: int, to_index: int
    ) -> None:
        """Move one entry within its list (drag-and-drop reorder)."""
        kind = HistoricalKind(kind)
        entries = list(getattr(self._record, kind.value))
        for index in (from_index, to_index):
            if not 0 <= index < len(entries):
                raise IndexError(
                    f"{kind.value} index {index} out of range (size {len(entries)})"
                )
        if from_index == to_index:
            return
        entries.insert(to_index, entries.pop(from_index))
        self._commit(self._record.model_copy(update={kind.value: tuple(entries)}))

    @staticmethod
    def _entry_index(
        entries: list[HistoricalEntry], entry_id: str, kind: HistoricalKind
    ) -> int:
        for index, entry in enumerate(entries):
            if entry.id == entry_id:
                return index
        raise HistoricalEntryNotFoundError(
            f"No {kind.value} entry with id {entry_id!r}"
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _commit(self, record: ArtworkRecord) -> ArtworkRecord:
        previous, self._record = self._record, record
        for listener in self._listeners:
            listener(previous, record)
        return record


__all__ = [
    "AttributePathError",
    "AttributeStateStore",
    "AttributeUpdate",
    "AttributeValueError",
    "CreationDateUpdate",
    "DimensionsUpdate",
    "EditionUpdate",
    "FramingUpdate",
    "HistoricalEntryNotFoundError",
    "PricingModeUpdate",
    "ResetGroupUpdate",
    "ScalarUpdate",
    "SignatureUpdate",
    "default_date_value",
    "update_for_path",
]
