"""Canonical JSON serialization and SHA-256 helpers."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(data: Any) -> bytes:
    """Serialize *data* to deterministic JSON bytes (sorted keys, no spaces)."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the hex SHA-256 digest of *data*."""
    return hashlib.sha256(data).hexdigest()


def content_key(data: Any) -> str:
    """Return ``sha256:<hex>`` over the canonical JSON form of *data*."""
    return f"sha256:{sha256_hex(canonical_json_bytes(data))}"
