"""Edition inventory — sellable unit identifiers derived from edition sizes.

Units are never stored.  ``generate`` rebuilds the identifier space from
``numeric_size`` and ``ap_size``: first ``"1/N" .. "N/N"``, then the
artist proofs ``"AP 1/A" .. "AP A/A"``.  The only persisted unit state is
``EditionInfo.sold_editions``.

Shrinking an edition does not prune sold identifiers that fall outside the
new range.  ``stale_sold`` reports them and ``clear_stale`` removes them;
pruning is always an explicit operator action.
"""

from __future__ import annotations

from easel.models.record import EditionInfo


def generate(numeric_size: int | None, ap_size: int | None) -> list[str]:
    """Return the ordered identifiers for an edition of the given sizes."""
    numeric = max(numeric_size or 0, 0)
    proofs = max(ap_size or 0, 0)
    identifiers = [f"{n}/{numeric}" for n in range(1, numeric + 1)]
    identifiers.extend(f"AP {n}/{proofs}" for n in range(1, proofs + 1))
    return identifiers


def generate_for(edition: EditionInfo | None) -> list[str]:
    """Identifiers for *edition*; empty unless ``is_edition`` is set."""
    if edition is None or not edition.is_edition:
        return []
    return generate(edition.numeric_size, edition.ap_size)


def toggle_sold(edition: EditionInfo, identifier: str, sold: bool) -> EditionInfo:
    """Mark *identifier* sold or unsold.

    Idempotent, touches no other identifier, and does not check that
    *identifier* belongs to the current sequence.
    """
    if sold:
        updated = edition.sold_editions | {identifier}
    else:
        updated = edition.sold_editions - {identifier}
    if updated == edition.sold_editions:
        return edition
    return edition.model_copy(update={"sold_editions": frozenset(updated)})


def is_sold(edition: EditionInfo | None, identifier: str) -> bool:
    return edition is not None and identifier in edition.sold_editions


def available(edition: EditionInfo | None) -> list[str]:
    """Current identifiers that are not sold, in generation order."""
    return [i for i in generate_for(edition) if not is_sold(edition, i)]


def stale_sold(edition: EditionInfo | None) -> frozenset[str]:
    """Sold identifiers outside the currently generated sequence."""
    if edition is None:
        return frozenset()
    return edition.sold_editions - frozenset(generate_for(edition))


def clear_stale(edition: EditionInfo) -> EditionInfo:
    """Drop sold identifiers that no longer belong to the edition."""
    stale = stale_sold(edition)
    if not stale:
        return edition
    return edition.model_copy(
        update={"sold_editions": edition.sold_editions - stale}
    )
