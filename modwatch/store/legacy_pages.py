"""
Read-only access to saved page folders that have no row in the snapshot index.

Folders are named ``page_<millis>_<host>`` where ``<host>`` is the hostname with
dots replaced by underscores; each holds an ``index.html``. Pages saved by the
viewer carry their origin URL in a ``data-base-url`` attribute on <html>/<body>.
"""
import html as html_lib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import aiofiles
import aiofiles.os

from modwatch.cache.urls import host_bucket
from modwatch.config import SAVED_PAGES_DIR

logger = logging.getLogger(__name__)

FOLDER_RE = re.compile(r"^page_(\d+)_(.+)$")
ORIGIN_MARKER_RE = re.compile(r"""data-base-url\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE)
INDEX_FILE = "index.html"


@dataclass
class LegacyPage:
    """One saved folder."""

    path: Path
    saved_at_ms: int
    bucket: str

    @property
    def index_path(self) -> Path:
        return self.path / INDEX_FILE

    @property
    def version(self) -> str:
        moment = datetime.fromtimestamp(self.saved_at_ms / 1000, tz=timezone.utc)
        return moment.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def find_origin_marker(html: str) -> Optional[str]:
    """Origin URL embedded by the page viewer, if any."""
    match = ORIGIN_MARKER_RE.search(html or "")
    if not match:
        return None
    value = match.group(1) if match.group(1) is not None else match.group(2)
    value = html_lib.unescape(value).strip()
    return value or None


class LegacyPageStore:
    """Scans the saved_pages directory grouped by host bucket."""

    def __init__(self, root: Path = SAVED_PAGES_DIR):
        self.root = Path(root)

    async def pages_for_host(self, hostname: str) -> list[LegacyPage]:
        """Folders in this host's bucket, newest first."""
        bucket = host_bucket(hostname)
        if not bucket or not await aiofiles.os.path.isdir(self.root):
            return []
        pages = []
        for name in await aiofiles.os.listdir(self.root):
            match = FOLDER_RE.match(name)
            if not match or match.group(2) != bucket:
                continue
            path = self.root / name
            if await aiofiles.os.path.isfile(path / INDEX_FILE):
                pages.append(LegacyPage(path=path, saved_at_ms=int(match.group(1)), bucket=bucket))
        pages.sort(key=lambda page: (page.saved_at_ms, page.path.name), reverse=True)
        return pages

    async def read(self, page: LegacyPage) -> Optional[str]:
        try:
            async with aiofiles.open(page.index_path, "r", encoding="utf-8", errors="replace") as f:
                return await f.read()
        except OSError as e:
            logger.warning(f"Cannot read saved page {page.index_path}: {e}")
            return None
