"""SQLite-backed mod record store."""
import logging
from datetime import datetime
from typing import Optional

from modwatch.errors import StoreError
from modwatch.parse.models import ModRecord
from modwatch.store.base import RecordStore
from modwatch.store.database import Database

logger = logging.getLogger(__name__)

MOD_COLUMNS = "id, site_id, title, url, version, author, description, image_url, changes, created_at, updated_at"


def _row_to_mod(row) -> ModRecord:
    return ModRecord(
        id=row["id"],
        site_id=row["site_id"],
        title=row["title"],
        url=row["url"],
        version=row["version"],
        author=row["author"],
        description=row["description"],
        image_url=row["image_url"],
        changes=row["changes"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SqliteRecordStore(RecordStore):
    """Mods table. Concurrent inserts of the same URL resolve as last write wins."""

    def __init__(self, db: Database):
        self.db = db

    async def get_by_url(self, url: str) -> Optional[ModRecord]:
        row = await self.db.fetch_one(
            f"SELECT {MOD_COLUMNS} FROM mods WHERE url = ?",
            (url,),
            context=f"mod lookup for {url}",
        )
        return _row_to_mod(row) if row else None

    async def put(self, record: ModRecord) -> ModRecord:
        await self.db.execute(
            """
            INSERT INTO mods (site_id, title, url, version, author, description, image_url, changes, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(url) DO UPDATE SET
                title = excluded.title,
                version = excluded.version,
                author = excluded.author,
                description = excluded.description,
                image_url = excluded.image_url,
                changes = excluded.changes,
                updated_at = excluded.updated_at
            """,
            (
                record.site_id,
                record.title,
                record.url,
                record.version,
                record.author,
                record.description,
                record.image_url,
                record.changes,
                record.created_at.isoformat(),
                record.updated_at.isoformat(),
            ),
            context=f"insert mod {record.url}",
        )
        stored = await self.get_by_url(record.url)
        if stored is None:
            raise StoreError(f"insert mod {record.url} failed: row missing after write")
        return stored

    async def update(self, record_id: int, record: ModRecord) -> None:
        changed = await self.db.execute(
            """
            UPDATE mods
            SET title = ?, version = ?, author = ?, description = ?, image_url = ?, changes = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                record.title,
                record.version,
                record.author,
                record.description,
                record.image_url,
                record.changes,
                record.updated_at.isoformat(),
                record_id,
            ),
            context=f"update mod {record_id}",
        )
        if not changed:
            raise StoreError(f"update mod {record_id} failed: no such mod")

    async def list_mods(self, site_id: Optional[int] = None) -> list[ModRecord]:
        """Mods ordered by last update, newest first."""
        if site_id is not None:
            rows = await self.db.fetch_all(
                f"SELECT {MOD_COLUMNS} FROM mods WHERE site_id = ? ORDER BY updated_at DESC",
                (site_id,),
                context="list mods",
            )
        else:
            rows = await self.db.fetch_all(
                f"SELECT {MOD_COLUMNS} FROM mods ORDER BY updated_at DESC",
                context="list mods",
            )
        return [_row_to_mod(row) for row in rows]
