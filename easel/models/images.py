"""Image collection models and the events the collection emits."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ArtworkImage(BaseModel):
    """One image of an artwork.

    ``id`` is assigned by the persistence service on upload.  ``position``
    and ``is_primary`` are owned by the ImageCollectionManager, which keeps
    the element at position 0 as the unique primary image.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    record_id: str | None = None
    position: int = Field(default=0, ge=0)
    is_primary: bool = False


class ImageEventKind(str, Enum):
    """Events emitted by the image collection."""

    PRIMARY_CHANGED = "primary_changed"
    COLLECTION_EMPTIED = "collection_emptied"


class ImageEvent(BaseModel):
    """An image collection event.

    ``primary`` is the new primary image for PRIMARY_CHANGED and ``None``
    for COLLECTION_EMPTIED.
    """

    model_config = ConfigDict(frozen=True)

    kind: ImageEventKind
    primary: ArtworkImage | None = None
    previous_primary_id: str | None = None


class CollectionChange(BaseModel):
    """Result of one collection operation."""

    model_config = ConfigDict(frozen=True)

    images: tuple[ArtworkImage, ...]
    events: tuple[ImageEvent, ...] = ()
    destructive: bool = False  # the last remaining image was removed

    @property
    def primary_changed(self) -> bool:
        return any(e.kind == ImageEventKind.PRIMARY_CHANGED for e in self.events)

    @property
    def emptied(self) -> bool:
        return any(e.kind == ImageEventKind.COLLECTION_EMPTIED for e in self.events)

    @property
    def ordering(self) -> list[str]:
        """Image ids in position order."""
        return [img.id for img in self.images]
