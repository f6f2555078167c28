"""Validation reports and tagged save results."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from easel.models.record import ArtworkRecord


class ValidationReport(BaseModel):
    """Outcome of evaluating every validation rule against a record.

    ``field_errors`` holds one message per failing field; passing fields
    are absent.
    """

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    field_errors: dict[str, str] = Field(default_factory=dict)

    def error_for(self, field: str) -> str | None:
        return self.field_errors.get(field)

    def visible_errors(self, touched: Iterable[str]) -> dict[str, str]:
        """Project errors onto the fields the user has touched."""
        touched_set = set(touched)
        return {
            field: message
            for field, message in self.field_errors.items()
            if field in touched_set
        }


class SaveErrorKind(str, Enum):
    VALIDATION_FAILED = "validation_failed"
    SLUG_GENERATION_FAILED = "slug_generation_failed"
    PERSISTENCE_WRITE_FAILED = "persistence_write_failed"
    SAVE_IN_PROGRESS = "save_in_progress"


class SaveWarningKind(str, Enum):
    ASYNC_TRIGGER_FAILED = "async_trigger_failed"


class SaveError(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SaveErrorKind
    message: str
    step: str = ""  # e.g. "insert", "update", "membership"


class SaveWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SaveWarningKind
    message: str


class SaveResult(BaseModel):
    """Tagged result of ``SaveOrchestrator.save``.

    Exactly one of ``record`` / ``error`` is set.  ``partial_record_id``
    is populated when an insert landed but a later step failed, so the
    caller can retry as an update.
    """

    model_config = ConfigDict(frozen=True)

    record: ArtworkRecord | None = None
    error: SaveError | None = None
    warnings: tuple[SaveWarning, ...] = ()
    touched: frozenset[str] = frozenset()
    memberships: frozenset[str] = frozenset()
    created: bool = False
    partial_record_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def record_id(self) -> str | None:
        return self.record.id if self.record is not None else None

    @classmethod
    def failure(
        cls,
        kind: SaveErrorKind,
        message: str,
        *,
        step: str = "",
        **extra: object,
    ) -> SaveResult:
        return cls(error=SaveError(kind=kind, message=message, step=step), **extra)
