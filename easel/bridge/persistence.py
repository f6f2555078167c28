"""Persistence bridge — the system of record for artworks.

``PersistenceService`` is the boundary the engine depends on; nothing in
``easel.core`` or ``easel.editor`` talks to a database directly.
``SqlitePersistence`` is the bundled implementation.

Design:
- One connection per call, WAL journal mode, ``check_same_thread=False``.
- Records are stored as canonical JSON next to the columns queries need
  (owner, slug).
- Multi-row writes (membership replace, image ordering) run in a single
  transaction, so a failure leaves the previous state intact.
- Every ``sqlite3.Error`` surfaces as ``PersistenceError`` with the
  driver message preserved verbatim.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

from easel.core import edition_inventory
from easel.core.hasher import canonical_json_bytes
from easel.models.catalogue import Collection, Tag
from easel.models.images import ArtworkImage
from easel.models.record import ArtworkRecord, EditionInfo

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when a persistence read or write fails."""


class RecordNotFoundError(PersistenceError, LookupError):
    """Raised when a write targets a record that does not exist."""


# ---------------------------------------------------------------------------
# Service protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class PersistenceService(Protocol):
    """Operations the editing engine needs from its backing store."""

    # Records
    def read_record(self, record_id: str) -> ArtworkRecord | None: ...

    def upsert_record(
        self, record: ArtworkRecord, owner_id: str | None = None
    ) -> ArtworkRecord: ...

    def generate_unique_slug(
        self, title: str, record_id: str | None = None
    ) -> str: ...

    def update_edition_sale(
        self, record_id: str, identifier: str, sold: bool
    ) -> EditionInfo: ...

    def update_primary_image_url(self, record_id: str, url: str | None) -> None: ...

    # Memberships and collections
    def list_memberships(self, record_id: str) -> frozenset[str]: ...

    def insert_membership(self, record_id: str, collection_id: str) -> None: ...

    def delete_membership(self, record_id: str, collection_id: str) -> None: ...

    def replace_memberships(
        self, record_id: str, collection_ids: Iterable[str]
    ) -> None: ...

    def list_collections(self, owner_id: str) -> list[Collection]: ...

    def create_collection(
        self, owner_id: str, name: str, *, is_system: bool = False
    ) -> Collection: ...

    # Images. Every write that can change position 0 also mirrors its url
    # onto the record's primary_image_url in the same transaction.
    def list_images(self, record_id: str) -> list[ArtworkImage]: ...

    def insert_image(self, record_id: str, url: str) -> ArtworkImage: ...

    def update_image_url(self, image_id: str, url: str) -> None: ...

    def delete_image(self, image_id: str) -> None: ...

    def set_image_order(self, record_id: str, ordered_ids: Sequence[str]) -> None: ...

    # Tags
    def list_tags(self, owner_id: str) -> list[Tag]: ...

    def create_tag(self, owner_id: str, name: str) -> Tag: ...


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Lowercase ASCII slug of *title*; ``"untitled"`` when nothing is left."""
    slug = _NON_SLUG.sub("-", title.strip().lower()).strip("-")
    return slug or "untitled"


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_RECORDS = """
CREATE TABLE IF NOT EXISTS records (
    id           TEXT PRIMARY KEY,
    owner_id     TEXT,
    slug         TEXT UNIQUE,
    record_json  TEXT NOT NULL
);
"""

_CREATE_IMAGES = """
CREATE TABLE IF NOT EXISTS images (
    id          TEXT PRIMARY KEY,
    record_id   TEXT NOT NULL REFERENCES records(id) ON DELETE CASCADE,
    url         TEXT NOT NULL,
    position    INTEGER NOT NULL,
    is_primary  INTEGER NOT NULL DEFAULT 0
);
"""

_CREATE_COLLECTIONS = """
CREATE TABLE IF NOT EXISTS collections (
    id         TEXT PRIMARY KEY,
    owner_id   TEXT NOT NULL,
    name       TEXT NOT NULL,
    is_system  INTEGER NOT NULL DEFAULT 0
);
"""

_CREATE_MEMBERSHIPS = """
CREATE TABLE IF NOT EXISTS memberships (
    record_id      TEXT NOT NULL REFERENCES records(id) ON DELETE CASCADE,
    collection_id  TEXT NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
    PRIMARY KEY (record_id, collection_id)
);
"""

_CREATE_TAGS = """
CREATE TABLE IF NOT EXISTS tags (
    id        TEXT PRIMARY KEY,
    owner_id  TEXT,
    name      TEXT NOT NULL,
    UNIQUE (owner_id, name)
);
"""

_CREATE_IDX_IMAGES = """
CREATE INDEX IF NOT EXISTS idx_images_record ON images(record_id, position);
"""

_CREATE_IDX_SYSTEM_COLLECTION = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_one_system_collection
    ON collections(owner_id) WHERE is_system = 1;
"""


# ---------------------------------------------------------------------------
# SQLite implementation
# ---------------------------------------------------------------------------


class SqlitePersistence:
    """SQLite-backed ``PersistenceService``.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """One connection, one transaction; driver errors become PersistenceError."""
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._session() as conn:
            for ddl in (
                _CREATE_RECORDS,
                _CREATE_IMAGES,
                _CREATE_COLLECTIONS,
                _CREATE_MEMBERSHIPS,
                _CREATE_TAGS,
                _CREATE_IDX_IMAGES,
                _CREATE_IDX_SYSTEM_COLLECTION,
            ):
                conn.execute(ddl)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def read_record(self, record_id: str) -> ArtworkRecord | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT record_json FROM records WHERE id = ?", (record_id,)
            ).fetchone()
        return ArtworkRecord.model_validate_json(row[0]) if row else None

    def upsert_record(
        self, record: ArtworkRecord, owner_id: str | None = None
    ) -> ArtworkRecord:
        """Insert a new record (minting its id) or update an existing one."""
        if record.id is None:
            stored = record.model_copy(
                update={
                    "id": str(uuid.uuid4()),
                    "owner_id": owner_id or record.owner_id,
                }
            )
            with self._session() as conn:
                conn.execute(
                    "INSERT INTO records (id, owner_id, slug, record_json) "
                    "VALUES (?, ?, ?, ?)",
                    (stored.id, stored.owner_id, stored.slug, _dump(stored)),
                )
            logger.info("Inserted record %s (owner=%s)", stored.id, stored.owner_id)
            return stored

        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE records SET owner_id = ?, slug = ?, record_json = ? "
                "WHERE id = ?",
                (record.owner_id, record.slug, _dump(record), record.id),
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"Record {record.id} does not exist")
        logger.info("Updated record %s", record.id)
        return record

    def generate_unique_slug(self, title: str, record_id: str | None = None) -> str:
        """Slug for *title* not used by any record other than *record_id*."""
        base = slugify(title)
        with self._session() as conn:
            rows = conn.execute(
                "SELECT slug FROM records "
                "WHERE (slug = ? OR slug LIKE ?) AND id IS NOT ?",
                (base, f"{base}-%", record_id),
            ).fetchall()
        taken = {row[0] for row in rows}
        if base not in taken:
            return base
        suffix = 2
        while f"{base}-{suffix}" in taken:
            suffix += 1
        return f"{base}-{suffix}"

    def update_edition_sale(
        self, record_id: str, identifier: str, sold: bool
    ) -> EditionInfo:
        """Mark one edition unit sold or unsold and return the stored edition."""
        with self._session() as conn:
            record = self._read_for_update(conn, record_id)
            edition = edition_inventory.toggle_sold(
                record.edition or EditionInfo(), identifier, sold
            )
            self._write_json(conn, record.model_copy(update={"edition": edition}))
        logger.info(
            "Edition unit %s of record %s marked %s",
            identifier,
            record_id,
            "sold" if sold else "unsold",
        )
        return edition

    def update_primary_image_url(self, record_id: str, url: str | None) -> None:
        """Mirror the primary image url onto the record.

        ``None`` means the collection emptied; image-derived colours go too.
        """
        changes: dict[str, object] = {"primary_image_url": url}
        if url is None:
            changes["dominant_colors"] = None
        with self._session() as conn:
            record = self._read_for_update(conn, record_id)
            self._write_json(conn, record.model_copy(update=changes))

    # ------------------------------------------------------------------
    # Memberships and collections
    # ------------------------------------------------------------------

    def list_memberships(self, record_id: str) -> frozenset[str]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT collection_id FROM memberships WHERE record_id = ?",
                (record_id,),
            ).fetchall()
        return frozenset(row[0] for row in rows)

    def insert_membership(self, record_id: str, collection_id: str) -> None:
        with self._session() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO memberships (record_id, collection_id) "
                "VALUES (?, ?)",
                (record_id, collection_id),
            )

    def delete_membership(self, record_id: str, collection_id: str) -> None:
        with self._session() as conn:
            conn.execute(
                "DELETE FROM memberships WHERE record_id = ? AND collection_id = ?",
                (record_id, collection_id),
            )

    def replace_memberships(
        self, record_id: str, collection_ids: Iterable[str]
    ) -> None:
        """Delete every link of *record_id*, then insert *collection_ids*.

        Both steps share one transaction.
        """
        targets = sorted(set(collection_ids))
        with self._session() as conn:
            conn.execute("DELETE FROM memberships WHERE record_id = ?", (record_id,))
            conn.executemany(
                "INSERT INTO memberships (record_id, collection_id) VALUES (?, ?)",
                [(record_id, cid) for cid in targets],
            )

    def list_collections(self, owner_id: str) -> list[Collection]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT id, owner_id, name, is_system FROM collections "
                "WHERE owner_id = ? ORDER BY is_system DESC, name ASC",
                (owner_id,),
            ).fetchall()
        return [
            Collection(id=r[0], owner_id=r[1], name=r[2], is_system=bool(r[3]))
            for r in rows
        ]

    def create_collection(
        self, owner_id: str, name: str, *, is_system: bool = False
    ) -> Collection:
        """Create a collection.  An owner may have at most one system collection."""
        collection = Collection(owner_id=owner_id, name=name, is_system=is_system)
        with self._session() as conn:
            conn.execute(
                "INSERT INTO collections (id, owner_id, name, is_system) "
                "VALUES (?, ?, ?, ?)",
                (collection.id, owner_id, name, int(is_system)),
            )
        return collection

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def list_images(self, record_id: str) -> list[ArtworkImage]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT id, record_id, url, position, is_primary FROM images "
                "WHERE record_id = ? ORDER BY position ASC, id ASC",
                (record_id,),
            ).fetchall()
        return [
            ArtworkImage(
                id=r[0], record_id=r[1], url=r[2], position=r[3], is_primary=bool(r[4])
            )
            for r in rows
        ]

    def insert_image(self, record_id: str, url: str) -> ArtworkImage:
        """Register an uploaded image at the end of the record's collection."""
        with self._session() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM images WHERE record_id = ?", (record_id,)
            ).fetchone()[0]
            image = ArtworkImage(
                id=str(uuid.uuid4()),
                record_id=record_id,
                url=url,
                position=count,
                is_primary=count == 0,
            )
            conn.execute(
                "INSERT INTO images (id, record_id, url, position, is_primary) "
                "VALUES (?, ?, ?, ?, ?)",
                (image.id, record_id, url, image.position, int(image.is_primary)),
            )
            if image.is_primary:
                self._mirror_primary(conn, record_id)
        logger.debug("Inserted image %s for record %s", image.id, record_id)
        return image

    def update_image_url(self, image_id: str, url: str) -> None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT record_id, is_primary FROM images WHERE id = ?", (image_id,)
            ).fetchone()
            if row is None:
                raise PersistenceError(f"Image {image_id} does not exist")
            conn.execute("UPDATE images SET url = ? WHERE id = ?", (url, image_id))
            if row[1]:
                self._mirror_primary(conn, row[0])

    def delete_image(self, image_id: str) -> None:
        """Remove an image row and renumber the rest in one transaction."""
        with self._session() as conn:
            row = conn.execute(
                "SELECT record_id FROM images WHERE id = ?", (image_id,)
            ).fetchone()
            if row is None:
                return
            record_id = row[0]
            conn.execute("DELETE FROM images WHERE id = ?", (image_id,))
            remaining = [
                r[0]
                for r in conn.execute(
                    "SELECT id FROM images WHERE record_id = ? "
                    "ORDER BY position ASC, id ASC",
                    (record_id,),
                )
            ]
            self._write_order(conn, remaining)
            self._mirror_primary(conn, record_id)

    def set_image_order(self, record_id: str, ordered_ids: Sequence[str]) -> None:
        """Persist the full ordering of a record's images in one transaction.

        *ordered_ids* must name exactly the record's stored images.  Position
        ``i`` is written for the i-th id and only position 0 is primary, so
        replaying the same ordering is idempotent.  The record's
        ``primary_image_url`` is updated in the same transaction.
        """
        with self._session() as conn:
            stored = {
                row[0]
                for row in conn.execute(
                    "SELECT id FROM images WHERE record_id = ?", (record_id,)
                )
            }
            if stored != set(ordered_ids) or len(ordered_ids) != len(stored):
                raise PersistenceError(
                    f"Image ordering for record {record_id} does not match "
                    f"its stored images"
                )
            self._write_order(conn, ordered_ids)
            self._mirror_primary(conn, record_id)
        logger.debug(
            "Image order set for record %s (%d images)", record_id, len(ordered_ids)
        )

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def list_tags(self, owner_id: str) -> list[Tag]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT id, owner_id, name FROM tags WHERE owner_id = ? "
                "ORDER BY name ASC",
                (owner_id,),
            ).fetchall()
        return [Tag(id=r[0], owner_id=r[1], name=r[2]) for r in rows]

    def create_tag(self, owner_id: str, name: str) -> Tag:
        """Create an owner tag, or return the existing one with that name."""
        name = name.strip()
        if not name:
            raise PersistenceError("Tag name must not be blank")
        with self._session() as conn:
            row = conn.execute(
                "SELECT id FROM tags WHERE owner_id = ? AND name = ?",
                (owner_id, name),
            ).fetchone()
            if row is not None:
                return Tag(id=row[0], owner_id=owner_id, name=name)
            tag = Tag(owner_id=owner_id, name=name)
            conn.execute(
                "INSERT INTO tags (id, owner_id, name) VALUES (?, ?, ?)",
                (tag.id, owner_id, name),
            )
        return tag

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _read_for_update(conn: sqlite3.Connection, record_id: str) -> ArtworkRecord:
        row = conn.execute(
            "SELECT record_json FROM records WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record {record_id} does not exist")
        return ArtworkRecord.model_validate_json(row[0])

    @staticmethod
    def _write_json(conn: sqlite3.Connection, record: ArtworkRecord) -> None:
        conn.execute(
            "UPDATE records SET record_json = ? WHERE id = ?",
            (_dump(record), record.id),
        )

    @staticmethod
    def _write_order(conn: sqlite3.Connection, ordered_ids: Sequence[str]) -> None:
        conn.executemany(
            "UPDATE images SET position = ?, is_primary = ? WHERE id = ?",
            [
                (position, int(position == 0), image_id)
                for position, image_id in enumerate(ordered_ids)
            ],
        )

    def _mirror_primary(self, conn: sqlite3.Connection, record_id: str) -> None:
        """Copy the url of the image at position 0 onto the record."""
        row = conn.execute(
            "SELECT url FROM images WHERE record_id = ? "
            "ORDER BY position ASC, id ASC LIMIT 1",
            (record_id,),
        ).fetchone()
        changes: dict[str, object] = {"primary_image_url": row[0] if row else None}
        if row is None:
            changes["dominant_colors"] = None
        record = self._read_for_update(conn, record_id)
        mirrored = record.model_copy(update=changes)
        if mirrored != record:
            self._write_json(conn, mirrored)


def _dump(record: ArtworkRecord) -> str:
    # Sorted sold_editions keep the stored JSON stable across writes.
    data = record.model_dump(mode="json")
    edition = data.get("edition")
    if edition is not None:
        edition["sold_editions"] = sorted(edition["sold_editions"])
    return canonical_json_bytes(data).decode("utf-8")


__all__ = [
    "PersistenceError",
    "PersistenceService",
    "RecordNotFoundError",
    "SqlitePersistence",
    "slugify",
]
