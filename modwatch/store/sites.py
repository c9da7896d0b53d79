"""Site configurations."""
import logging
from datetime import datetime
from typing import Any, Optional
import orjson

from modwatch.errors import StoreError
from modwatch.parse.models import ExtractionConfig, Site, utcnow
from modwatch.store.database import Database

logger = logging.getLogger(__name__)


def _load_config(raw: str, site_id: int) -> ExtractionConfig:
    try:
        return ExtractionConfig.model_validate(orjson.loads(raw))
    except (orjson.JSONDecodeError, ValueError) as e:
        # Extraction will then fail with a ConfigError for this site only
        logger.warning(f"Site {site_id}: unreadable parser_config ({e})")
        return ExtractionConfig()


def _row_to_site(row) -> Site:
    return Site(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        parser_config=_load_config(row["parser_config"], row["id"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _dump_config(parser_config: ExtractionConfig | dict[str, Any]) -> str:
    if isinstance(parser_config, dict):
        parser_config = ExtractionConfig.model_validate(parser_config)
    return orjson.dumps(parser_config.model_dump(exclude_none=True)).decode()


class SiteStore:
    """CRUD over watched sites."""

    def __init__(self, db: Database):
        self.db = db

    async def list_sites(self) -> list[Site]:
        rows = await self.db.fetch_all("SELECT * FROM sites ORDER BY name", context="list sites")
        return [_row_to_site(row) for row in rows]

    async def get_site(self, site_id: int) -> Optional[Site]:
        row = await self.db.fetch_one("SELECT * FROM sites WHERE id = ?", (site_id,), context=f"get site {site_id}")
        return _row_to_site(row) if row else None

    async def add_site(self, name: str, url: str, parser_config: ExtractionConfig | dict[str, Any]) -> Site:
        now = utcnow().isoformat()
        site_id = await self.db.execute(
            "INSERT INTO sites (name, url, parser_config, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (name, url, _dump_config(parser_config), now, now),
            context=f"add site {url}",
        )
        site = await self.get_site(site_id)
        if site is None:
            raise StoreError(f"add site {url} failed: row missing after write")
        logger.info(f"Added site {site.id} ({name})")
        return site

    async def update_site(
        self,
        site_id: int,
        name: str,
        url: str,
        parser_config: ExtractionConfig | dict[str, Any],
    ) -> None:
        changed = await self.db.execute(
            "UPDATE sites SET name = ?, url = ?, parser_config = ?, updated_at = ? WHERE id = ?",
            (name, url, _dump_config(parser_config), utcnow().isoformat(), site_id),
            context=f"update site {site_id}",
        )
        if not changed:
            raise StoreError(f"update site {site_id} failed: no such site")

    async def delete_site(self, site_id: int) -> bool:
        deleted = await self.db.execute("DELETE FROM sites WHERE id = ?", (site_id,), context=f"delete site {site_id}")
        return bool(deleted)
