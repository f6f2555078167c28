"""Ordered image collection with a primary-slot invariant.

Invariant: after every operation the image at position 0 is the unique
primary image and positions are ``0..n-1`` in collection order.  Positions
are always recomputed from scratch, so replaying a persisted ordering in
any order converges on the same state.

The manager performs no I/O.  It emits events:

- PRIMARY_CHANGED when the identity (or url) of the primary image changes.
  This is the only trigger for image-metadata regeneration.
- COLLECTION_EMPTIED when the last image is removed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from easel.models.images import (
    ArtworkImage,
    CollectionChange,
    ImageEvent,
    ImageEventKind,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[ImageEvent], None]


class PrimaryImageProtectedError(RuntimeError):
    """Raised when deleting the primary image while others remain.

    Recoverable: set a different primary image first.
    """


class ImageNotFoundError(LookupError):
    """Raised when an image id is not in the collection."""


class ImageOrderError(IndexError):
    """Raised when a reorder index is out of range."""


def normalize_order(images: Iterable[ArtworkImage]) -> tuple[ArtworkImage, ...]:
    """Renumber positions and re-apply the primary invariant.

    Images already in the right state are reused as-is.
    """
    normalized = []
    for position, image in enumerate(images):
        is_primary = position == 0
        if image.position != position or image.is_primary != is_primary:
            image = image.model_copy(
                update={"position": position, "is_primary": is_primary}
            )
        normalized.append(image)
    return tuple(normalized)


class ImageCollectionManager:
    """Owns the in-memory ordering of a record's images.

    Parameters
    ----------
    images:
        Initial images.  They are sorted by ``position`` and normalized.
    """

    def __init__(self, images: Iterable[ArtworkImage] = ()) -> None:
        ordered = sorted(images, key=lambda img: img.position)
        self._images: tuple[ArtworkImage, ...] = normalize_order(ordered)
        self._handlers: dict[ImageEventKind, list[EventHandler]] = {
            kind: [] for kind in ImageEventKind
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def images(self) -> tuple[ArtworkImage, ...]:
        return self._images

    @property
    def primary(self) -> ArtworkImage | None:
        return self._images[0] if self._images else None

    def __len__(self) -> int:
        return len(self._images)

    def get(self, image_id: str) -> ArtworkImage:
        return self._images[self._index_of(image_id)]

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def register_handler(self, kind: ImageEventKind, handler: EventHandler) -> None:
        """Register a handler for a specific event kind."""
        self._handlers[kind].append(handler)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def append(self, image: ArtworkImage) -> CollectionChange:
        """Add a freshly uploaded image at the end of the collection."""
        if any(img.id == image.id for img in self._images):
            raise ValueError(f"Image {image.id!r} is already in the collection")
        was_empty = not self._images
        placed = image.model_copy(
            update={"position": len(self._images), "is_primary": was_empty}
        )
        return self._commit(self._images + (placed,))

    def reorder(self, from_index: int, to_index: int) -> CollectionChange:
        """Move the image at *from_index* to *to_index* (drag-and-drop)."""
        size = len(self._images)
        for index in (from_index, to_index):
            if not 0 <= index < size:
                raise ImageOrderError(
                    f"Image index {index} out of range (size {size})"
                )
        images = list(self._images)
        images.insert(to_index, images.pop(from_index))
        return self._commit(images)

    def delete(self, image_id: str) -> CollectionChange:
        """Remove an image.

        The primary image cannot be deleted while other images remain.
        Removing the sole image is allowed; the change is flagged
        ``destructive`` and emits COLLECTION_EMPTIED.
        """
        index = self._index_of(image_id)
        if index == 0 and len(self._images) > 1:
            raise PrimaryImageProtectedError(
                "Cannot delete the primary image while other images remain. "
                "Set another image as primary first."
            )
        destructive = len(self._images) == 1
        remaining = self._images[:index] + self._images[index + 1:]
        return self._commit(remaining, destructive=destructive)

    def replace(self, image_id: str, new_url: str) -> CollectionChange:
        """Swap the url of one image, keeping its slot."""
        index = self._index_of(image_id)
        images = list(self._images)
        images[index] = images[index].model_copy(update={"url": new_url})
        return self._commit(images)

    def set_primary(self, image_id: str) -> CollectionChange:
        """Move an image to position 0; the rest keep their relative order."""
        index = self._index_of(image_id)
        if index == 0:
            return CollectionChange(images=self._images)
        images = list(self._images)
        target = images.pop(index)
        return self._commit([target, *images])

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _index_of(self, image_id: str) -> int:
        for index, image in enumerate(self._images):
            if image.id == image_id:
                return index
        raise ImageNotFoundError(f"No image with id {image_id!r}")

    def _commit(
        self, images: Iterable[ArtworkImage], *, destructive: bool = False
    ) -> CollectionChange:
        previous = self.primary
        self._images = normalize_order(images)
        current = self.primary

        events: list[ImageEvent] = []
        if current is None:
            if previous is not None:
                events.append(
                    ImageEvent(
                        kind=ImageEventKind.COLLECTION_EMPTIED,
                        previous_primary_id=previous.id,
                    )
                )
        elif (
            previous is None
            or previous.id != current.id
            or previous.url != current.url
        ):
            events.append(
                ImageEvent(
                    kind=ImageEventKind.PRIMARY_CHANGED,
                    primary=current,
                    previous_primary_id=previous.id if previous else None,
                )
            )

        change = CollectionChange(
            images=self._images, events=tuple(events), destructive=destructive
        )
        for event in events:
            logger.debug("Image collection event %s", event.kind.value)
            for handler in self._handlers[event.kind]:
                handler(event)
        return change
