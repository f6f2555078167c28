"""Object storage for uploaded image files.

Storage layout: {base_path}/{object path}
Object paths are relative, slash-separated keys chosen by the caller
(``{owner_id}/{record_id}/{uuid}-{filename}``).  The returned URL is a
``file://`` URI unless a public base URL is configured.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

from easel.core.hasher import sha256_hex

logger = logging.getLogger(__name__)


class ObjectStorageError(RuntimeError):
    """Raised when an upload cannot be stored."""


@runtime_checkable
class ObjectStorage(Protocol):
    def upload(self, path: str, data: bytes) -> str:
        """Store *data* under *path* and return its public URL."""
        ...


class LocalObjectStorage:
    """Filesystem-backed ``ObjectStorage``.

    Parameters
    ----------
    base_path:
        Root directory for stored objects.
    public_base_url:
        Prefix for returned URLs.  Empty means ``file://`` URLs.
    """

    def __init__(self, base_path: Path, public_base_url: str = "") -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def base_path(self) -> Path:
        return self._base

    def _object_path(self, path: str) -> Path:
        key = PurePosixPath(path)
        if key.is_absolute() or not key.parts or ".." in key.parts:
            raise ObjectStorageError(f"Invalid object path: {path!r}")
        return self._base.joinpath(*key.parts)

    def upload(self, path: str, data: bytes) -> str:
        target = self._object_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise ObjectStorageError(f"Failed to store {path!r}: {exc}") from exc
        logger.debug(
            "Stored object %s (%d bytes, sha256=%s)",
            path,
            len(data),
            sha256_hex(data)[:12],
        )
        return self.url_for(path)

    def url_for(self, path: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{PurePosixPath(path).as_posix()}"
        return self._object_path(path).resolve().as_uri()

    def read(self, path: str) -> bytes:
        return self._object_path(path).read_bytes()
