"""Collection membership reconciliation.

A record's memberships are the user's selection plus one implicit
membership: the owner's system collection, which holds exactly the
records whose status is ``available``.  The system collection is never
user-editable; it is added or removed purely from status at save time.

Reconciliation is a full replace.  The persistence service deletes every
link of the record and inserts the target set inside one transaction, so
a failure leaves the previous memberships intact.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from easel.models.catalogue import Collection
from easel.models.record import ArtworkStatus

if TYPE_CHECKING:
    from easel.bridge.persistence import PersistenceService

logger = logging.getLogger(__name__)


class SystemCollectionNotEditableError(ValueError):
    """Raised when a user tries to select or deselect the system collection."""


class MembershipDelta(BaseModel):
    """What a reconcile changed, for logging and callers."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    target: frozenset[str]
    added: frozenset[str]
    removed: frozenset[str]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


# ---------------------------------------------------------------------------
# Pure derivation
# ---------------------------------------------------------------------------


def derive_implicit_memberships(
    status: ArtworkStatus, system_collection_id: str | None
) -> frozenset[str]:
    """Memberships implied by *status* alone."""
    if system_collection_id is None:
        return frozenset()
    if ArtworkStatus(status) == ArtworkStatus.AVAILABLE:
        return frozenset({system_collection_id})
    return frozenset()


def compute_target(
    user_selected_ids: Iterable[str],
    system_collection_id: str | None,
    status: ArtworkStatus,
) -> frozenset[str]:
    """The membership set a save should leave behind.

    The system id is removed from the user's selection before the implicit
    membership is added back, so a stale selection cannot keep a record
    that is no longer available in the system collection.
    """
    selected = frozenset(user_selected_ids)
    if system_collection_id is not None:
        selected -= {system_collection_id}
    return selected | derive_implicit_memberships(status, system_collection_id)


def system_collection_id(collections: Iterable[Collection]) -> str | None:
    """Id of the owner's system collection, if any."""
    for collection in collections:
        if collection.is_system:
            return collection.id
    return None


def user_selectable(collections: Iterable[Collection]) -> list[Collection]:
    """Collections the user may pick for a record."""
    return [c for c in collections if not c.is_system]


def initial_selection(
    assigned_ids: Iterable[str],
    collections: Iterable[Collection],
    status: ArtworkStatus,
) -> frozenset[str]:
    """Selection shown when an editor opens a record.

    An available record with no assignments yet starts in the system
    collection; otherwise the stored assignments are shown as-is.
    """
    assigned = frozenset(assigned_ids)
    system_id = system_collection_id(collections)
    if not assigned and system_id is not None:
        return derive_implicit_memberships(status, system_id)
    return assigned


# ---------------------------------------------------------------------------
# Synchronizer
# ---------------------------------------------------------------------------


class MembershipSynchronizer:
    """Writes a record's target membership set through persistence.

    Parameters
    ----------
    persistence:
        Service providing ``replace_memberships``.
    """

    def __init__(self, persistence: PersistenceService) -> None:
        self._persistence = persistence

    def reconcile(
        self,
        record_id: str,
        previous: Iterable[str],
        target: Iterable[str],
    ) -> MembershipDelta:
        """Replace the record's memberships with *target*.

        Raises
        ------
        PersistenceError
            If the replace transaction fails.  Stored memberships are then
            unchanged.
        """
        previous_set = frozenset(previous)
        target_set = frozenset(target)
        self._persistence.replace_memberships(record_id, target_set)
        delta = MembershipDelta(
            record_id=record_id,
            target=target_set,
            added=target_set - previous_set,
            removed=previous_set - target_set,
        )
        logger.info(
            "Memberships reconciled for record %s: +%d -%d (total %d)",
            record_id,
            len(delta.added),
            len(delta.removed),
            len(target_set),
        )
        return delta
