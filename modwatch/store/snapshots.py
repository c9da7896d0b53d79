"""Versioned page snapshots: SQLite index plus content-addressed gzip payloads."""
import asyncio
import gzip
import hashlib
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional
import aiofiles
import aiofiles.os

from modwatch.config import SNAPSHOT_DIR
from modwatch.errors import StoreError
from modwatch.parse.models import PageSnapshot, utcnow
from modwatch.store.base import SnapshotStore
from modwatch.store.database import Database

logger = logging.getLogger(__name__)

SNAPSHOT_COLUMNS = "id, site_id, url, location, version, created_at"


def _row_to_snapshot(row) -> PageSnapshot:
    return PageSnapshot(
        id=row["id"],
        site_id=row["site_id"],
        url=row["url"],
        location=row["location"],
        version=row["version"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def content_location(html: str) -> str:
    """Relative payload path derived from the content hash."""
    digest = hashlib.sha256(html.encode("utf-8")).hexdigest()
    return f"{digest[:2]}/{digest}.html.gz"


class SqliteSnapshotStore(SnapshotStore):
    """
    Each write appends a row (site_id, url, version, location). Identical pages
    share one payload file; a payload is removed only with its last row.
    """

    def __init__(self, db: Database, snapshot_dir: Path = SNAPSHOT_DIR):
        self.db = db
        self.snapshot_dir = Path(snapshot_dir)
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        # Held from payload check to index insert, and from row delete to unlink
        self._payload_lock = asyncio.Lock()

    def path_for(self, snapshot: PageSnapshot) -> Path:
        return self.snapshot_dir / snapshot.location

    async def find_exact(self, site_id: Optional[int], url: str) -> Optional[PageSnapshot]:
        if site_id is None:
            row = await self.db.fetch_one(
                f"SELECT {SNAPSHOT_COLUMNS} FROM page_snapshots WHERE url = ? ORDER BY version DESC, id DESC LIMIT 1",
                (url,),
                context=f"exact snapshot lookup for {url}",
            )
        else:
            row = await self.db.fetch_one(
                f"""
                SELECT {SNAPSHOT_COLUMNS} FROM page_snapshots
                WHERE site_id = ? AND url = ?
                ORDER BY version DESC, id DESC LIMIT 1
                """,
                (site_id, url),
                context=f"exact snapshot lookup for site {site_id} {url}",
            )
        return _row_to_snapshot(row) if row else None

    async def scan_all(self, site_id: Optional[int] = None) -> list[PageSnapshot]:
        if site_id is None:
            rows = await self.db.fetch_all(
                f"SELECT {SNAPSHOT_COLUMNS} FROM page_snapshots ORDER BY version DESC, id DESC",
                context="snapshot scan",
            )
        else:
            rows = await self.db.fetch_all(
                f"SELECT {SNAPSHOT_COLUMNS} FROM page_snapshots WHERE site_id = ? ORDER BY version DESC, id DESC",
                (site_id,),
                context=f"snapshot scan for site {site_id}",
            )
        return [_row_to_snapshot(row) for row in rows]

    async def versions(self, site_id: Optional[int], url: str) -> list[PageSnapshot]:
        if site_id is None:
            rows = await self.db.fetch_all(
                f"SELECT {SNAPSHOT_COLUMNS} FROM page_snapshots WHERE url = ? ORDER BY version DESC, id DESC",
                (url,),
                context=f"versions of {url}",
            )
        else:
            rows = await self.db.fetch_all(
                f"""
                SELECT {SNAPSHOT_COLUMNS} FROM page_snapshots
                WHERE site_id = ? AND url = ?
                ORDER BY version DESC, id DESC
                """,
                (site_id, url),
                context=f"versions of site {site_id} {url}",
            )
        return [_row_to_snapshot(row) for row in rows]

    async def get(self, version_id: int) -> Optional[PageSnapshot]:
        row = await self.db.fetch_one(
            f"SELECT {SNAPSHOT_COLUMNS} FROM page_snapshots WHERE id = ?",
            (version_id,),
            context=f"get snapshot {version_id}",
        )
        return _row_to_snapshot(row) if row else None

    async def write(self, site_id: Optional[int], url: str, version: str, html: str) -> PageSnapshot:
        location = content_location(html)
        snapshot = PageSnapshot(site_id=site_id, url=url, location=location, version=version, created_at=utcnow())
        async with self._payload_lock:
            created_payload = await self._write_payload(location, html)
            try:
                snapshot.id = await self.db.execute(
                    "INSERT INTO page_snapshots (site_id, url, location, version, created_at) VALUES (?, ?, ?, ?, ?)",
                    (site_id, url, location, version, snapshot.created_at.isoformat()),
                    context=f"index snapshot {url}@{version}",
                )
            except StoreError:
                if created_payload:
                    await self._remove_payload_if_unused(location)
                raise
        logger.info(f"Stored snapshot {snapshot.id} for {url} (site {site_id}) at {version}")
        return snapshot

    async def read(self, snapshot: PageSnapshot) -> Optional[str]:
        path = self.path_for(snapshot)
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except FileNotFoundError:
            logger.warning(f"Snapshot {snapshot.id} payload missing: {path}")
            return None
        except OSError as e:
            raise StoreError(f"read snapshot {snapshot.id} ({path}) failed: {e}") from e
        try:
            return gzip.decompress(data).decode("utf-8")
        except (OSError, EOFError, UnicodeDecodeError) as e:
            raise StoreError(f"snapshot {snapshot.id} payload is corrupt ({path}): {e}") from e

    async def delete(self, version_id: int) -> bool:
        snapshot = await self.get(version_id)
        if snapshot is None:
            return False
        async with self._payload_lock:
            deleted = await self.db.execute(
                "DELETE FROM page_snapshots WHERE id = ?",
                (version_id,),
                context=f"delete snapshot {version_id}",
            )
            if not deleted:
                return False
            await self._remove_payload_if_unused(snapshot.location)
        logger.info(f"Deleted snapshot {version_id} ({snapshot.url}@{snapshot.version})")
        return True

    async def prune(self, keep_latest: int, dry_run: bool = False) -> list[PageSnapshot]:
        """Delete all but the newest keep_latest versions of every page."""
        seen: dict[tuple[Optional[int], str], int] = {}
        doomed = []
        for snapshot in await self.scan_all():
            key = (snapshot.site_id, snapshot.url)
            seen[key] = seen.get(key, 0) + 1
            if seen[key] > keep_latest:
                doomed.append(snapshot)
        if not dry_run:
            for snapshot in doomed:
                await self.delete(snapshot.id)
        return doomed

    async def _write_payload(self, location: str, html: str) -> bool:
        """Write the gzip payload atomically. Returns False if it already existed."""
        path = self.snapshot_dir / location
        if await aiofiles.os.path.exists(path):
            return False
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(gzip.compress(html.encode("utf-8")))
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise StoreError(f"write snapshot payload {path} failed: {e}") from e
        return True

    async def _remove_payload_if_unused(self, location: str) -> None:
        row = await self.db.fetch_one(
            "SELECT COUNT(*) AS n FROM page_snapshots WHERE location = ?",
            (location,),
            context=f"payload refcount {location}",
        )
        if row and row["n"]:
            return
        path = self.snapshot_dir / location
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove payload {path}: {e}")
