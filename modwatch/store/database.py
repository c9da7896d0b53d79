"""SQLite database handle shared by all stores."""
import asyncio
import aiosqlite
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from modwatch.config import DB_PATH
from modwatch.errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    parser_config TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS mods (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    site_id INTEGER,
    title TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    version TEXT,
    author TEXT,
    description TEXT,
    image_url TEXT,
    changes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mod_id INTEGER NOT NULL,
    site_id INTEGER,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS page_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    site_id INTEGER,
    url TEXT NOT NULL,
    location TEXT NOT NULL,
    version TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_mods_site_id ON mods(site_id);
CREATE INDEX IF NOT EXISTS idx_notifications_read ON notifications(read);
CREATE INDEX IF NOT EXISTS idx_snapshots_key ON page_snapshots(site_id, url, version);
CREATE INDEX IF NOT EXISTS idx_snapshots_url ON page_snapshots(url, version);
CREATE INDEX IF NOT EXISTS idx_snapshots_location ON page_snapshots(location);
"""


class Database:
    """One long-lived aiosqlite connection, opened once and injected into the stores."""

    def __init__(self, db_path: Path = DB_PATH):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def connect(self) -> "Database":
        """Open the connection and create tables if they don't exist."""
        if self._conn is not None:
            return self
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.executescript(SCHEMA)
            await self._conn.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        logger.info(f"Database initialized at {self.db_path}")
        return self

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self):
        return await self.connect()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreError("Database is not connected")
        return self._conn

    async def execute(self, sql: str, params: Iterable[Any] = (), context: str = "") -> int:
        """Run one write statement in its own transaction. Returns lastrowid or rowcount."""
        async with self._write_lock:
            try:
                cursor = await self.conn.execute(sql, tuple(params))
                await self.conn.commit()
            except aiosqlite.Error as e:
                await self._rollback()
                raise StoreError(f"{context or 'write'} failed: {e}") from e
        return cursor.lastrowid if sql.lstrip().upper().startswith("INSERT") else cursor.rowcount

    async def fetch_one(self, sql: str, params: Iterable[Any] = (), context: str = "") -> Optional[aiosqlite.Row]:
        try:
            cursor = await self.conn.execute(sql, tuple(params))
            return await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"{context or 'read'} failed: {e}") from e

    async def fetch_all(self, sql: str, params: Iterable[Any] = (), context: str = "") -> list[aiosqlite.Row]:
        try:
            cursor = await self.conn.execute(sql, tuple(params))
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StoreError(f"{context or 'read'} failed: {e}") from e

    async def _rollback(self) -> None:
        try:
            await self.conn.rollback()
        except aiosqlite.Error as e:
            logger.warning(f"Rollback failed: {e}")
