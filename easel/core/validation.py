"""Declarative validation of an artwork record before save.

Each rule owns exactly one field key and contributes at most one error, so
breaking one field never reports an error on another.  Evaluation is pure
and cheap; the editor re-runs it after every mutation.  Validation never
blocks an edit, only the save.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from pydantic import BaseModel, ConfigDict

from easel.models.record import ArtworkRecord, DateType, PricingMode
from easel.models.results import ValidationReport

RuleCheck = Callable[[ArtworkRecord, int], bool]


class ValidationRule(BaseModel):
    """A named predicate over (record, image_count)."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str
    check: RuleCheck


def _filled(text: str | None) -> bool:
    return bool((text or "").strip())


def _price_ok(record: ArtworkRecord, _: int) -> bool:
    if record.pricing_mode == PricingMode.ON_REQUEST:
        return record.price is None
    return record.price is not None and record.price > 0


def _creation_date_ok(record: ArtworkRecord, _: int) -> bool:
    date = record.creation_date
    if date is None:
        return False
    if date.type == DateType.DATE_RANGE:
        return _filled(date.start) and _filled(date.end)
    return _filled(date.value)


def _dimensions_ok(record: ArtworkRecord, _: int) -> bool:
    dims = record.dimensions
    return dims is not None and dims.width is not None and dims.height is not None


def _framing_ok(record: ArtworkRecord, _: int) -> bool:
    framing = record.framing
    return framing is None or not framing.is_framed or _filled(framing.details)


def _signature_ok(record: ArtworkRecord, _: int) -> bool:
    signature = record.signature
    return signature is None or not signature.is_signed or _filled(signature.location)


def _edition_ok(record: ArtworkRecord, _: int) -> bool:
    edition = record.edition
    if edition is None or not edition.is_edition:
        return True
    return (
        edition.numeric_size is not None
        and edition.numeric_size >= 1
        and edition.ap_size is not None
        and edition.ap_size >= 0
    )


def _certificate_ok(record: ArtworkRecord, _: int) -> bool:
    return not record.has_certificate_of_authenticity or _filled(
        record.certificate_details
    )


DEFAULT_RULES: tuple[ValidationRule, ...] = (
    ValidationRule(
        field="title",
        message="Title is required.",
        check=lambda r, _: _filled(r.title),
    ),
    ValidationRule(
        field="medium",
        message="Medium is required.",
        check=lambda r, _: _filled(r.medium),
    ),
    ValidationRule(
        field="price",
        message="Fixed and negotiable pricing need a positive price; "
        "price on request must leave the price empty.",
        check=_price_ok,
    ),
    ValidationRule(
        field="images",
        message="At least one image is required.",
        check=lambda _, count: count >= 1,
    ),
    ValidationRule(
        field="creation_date",
        message="Creation date is incomplete.",
        check=_creation_date_ok,
    ),
    ValidationRule(
        field="dimensions",
        message="Width and height are required.",
        check=_dimensions_ok,
    ),
    ValidationRule(
        field="framing.details",
        message="Describe the frame.",
        check=_framing_ok,
    ),
    ValidationRule(
        field="signature.location",
        message="Signature location is required for signed works.",
        check=_signature_ok,
    ),
    ValidationRule(
        field="edition",
        message="Editions need at least one numbered unit and a non-negative "
        "number of artist proofs.",
        check=_edition_ok,
    ),
    ValidationRule(
        field="status",
        message="Status is required.",
        check=lambda r, _: r.status is not None,
    ),
    ValidationRule(
        field="certificate_details",
        message="Certificate of authenticity details are required.",
        check=_certificate_ok,
    ),
)


class ValidationEngine:
    """Evaluates a fixed rule set.

    Parameters
    ----------
    rules:
        Rules to evaluate.  Defaults to ``DEFAULT_RULES``.
    """

    def __init__(self, rules: Sequence[ValidationRule] = DEFAULT_RULES) -> None:
        fields = [rule.field for rule in rules]
        if len(fields) != len(set(fields)):
            raise ValueError("Each validation rule must own a distinct field")
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[ValidationRule, ...]:
        return self._rules

    def rule_fields(self) -> frozenset[str]:
        """Every field a rule can report on (used to mark all touched)."""
        return frozenset(rule.field for rule in self._rules)

    def evaluate(self, record: ArtworkRecord, image_count: int) -> ValidationReport:
        errors = {
            rule.field: rule.message
            for rule in self._rules
            if not rule.check(record, image_count)
        }
        return ValidationReport(is_valid=not errors, field_errors=errors)


def evaluate(record: ArtworkRecord, image_count: int) -> ValidationReport:
    """Evaluate *record* against the default rules."""
    return _DEFAULT_ENGINE.evaluate(record, image_count)


_DEFAULT_ENGINE = ValidationEngine()
