"""Owner-scoped collections and tags."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field


class Collection(BaseModel):
    """A named collection of artworks.

    Exactly one collection per owner may be system-managed; its membership
    follows record status and is never chosen by the user.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    name: str
    is_system: bool = False


class Tag(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str | None = None
    name: str
