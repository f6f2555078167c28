"""Outbound job messages.

Jobs are fire-and-forget requests to external workers.  Delivery is
at-least-once; every job carries an idempotency key derived from its
content so receivers (and the queue itself) can coalesce duplicates.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from easel.core.hasher import content_key


class JobKind(str, Enum):
    IMAGE_METADATA_REGENERATION = "image_metadata_regeneration"


class JobBase(BaseModel):
    """Fields shared by every outbound job."""

    model_config = ConfigDict(frozen=True)

    schema_version: str = "2026-10"
    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_kind: JobKind
    record_id: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def idempotency_key(self) -> str:
        """Content key over the job payload, excluding per-send fields."""
        return content_key(
            self.model_dump(mode="json", exclude={"job_id", "created_at"})
        )


class ImageMetadataJob(JobBase):
    """Ask the image worker to regenerate image-derived metadata
    (watermark, room visualization, dominant colours) for a record."""

    job_kind: JobKind = JobKind.IMAGE_METADATA_REGENERATION
    force_watermark: bool = False
    force_visualization: bool = False


# Registry for deserialization by job_kind
JOB_TYPE_MAP: dict[JobKind, type[JobBase]] = {
    JobKind.IMAGE_METADATA_REGENERATION: ImageMetadataJob,
}
