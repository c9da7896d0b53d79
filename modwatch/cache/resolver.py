"""Page cache: serve stored snapshots through ordered tiers before fetching."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from modwatch.cache.urls import hostname_of, is_root_path, normalize_url, prefix_related
from modwatch.errors import StoreError
from modwatch.fetch.base import Fetcher
from modwatch.parse.models import PageSnapshot, make_version
from modwatch.store.base import SnapshotStore
from modwatch.store.legacy_pages import LegacyPageStore, find_origin_marker

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    LEGACY_MARKER = "legacy_marker"
    LEGACY_ROOT = "legacy_root"
    FETCH = "fetch"


@dataclass
class ResolvedPage:
    """HTML plus where it came from."""

    html: str
    url: str
    tier: Tier
    version: str
    location: Optional[str] = None
    snapshot_id: Optional[int] = None


class PageCacheResolver:
    """
    Resolution order: exact index match, prefix index match, legacy folder with a
    matching origin marker, legacy root fallback, network fetch. The first hit wins.
    A forced refresh skips every cache tier. Fetched pages are written as a new
    version; fetch failures propagate and leave nothing behind.
    """

    def __init__(
        self,
        snapshots: SnapshotStore,
        fetcher: Fetcher,
        legacy_pages: Optional[LegacyPageStore] = None,
    ):
        self.snapshots = snapshots
        self.fetcher = fetcher
        self.legacy_pages = legacy_pages

    async def resolve(self, url: str, site_id: Optional[int] = None, force_refresh: bool = False) -> str:
        """HTML for the URL, from cache when possible."""
        page = await self.resolve_page(url, site_id=site_id, force_refresh=force_refresh)
        return page.html

    async def resolve_page(
        self,
        url: str,
        site_id: Optional[int] = None,
        force_refresh: bool = False,
    ) -> ResolvedPage:
        requested = normalize_url(url)

        if not force_refresh:
            for lookup in (self._exact, self._prefix, self._legacy_marker, self._legacy_root):
                page = await lookup(requested, site_id)
                if page is not None:
                    logger.info(f"Cache hit ({page.tier.value}) for {requested} (site {site_id})")
                    return page
            logger.info(f"Cache miss for {requested} (site {site_id}), fetching")
        else:
            logger.info(f"Forced refresh of {requested} (site {site_id})")

        return await self._fetch_and_store(requested, site_id)

    async def versions(self, url: str, site_id: Optional[int] = None) -> list[PageSnapshot]:
        """All stored versions of a page, newest first."""
        return await self.snapshots.versions(site_id, normalize_url(url))

    async def delete_version(self, version_id: int) -> bool:
        return await self.snapshots.delete(version_id)

    async def _serve(self, snapshot: PageSnapshot, tier: Tier) -> Optional[ResolvedPage]:
        html = await self.snapshots.read(snapshot)
        if html is None:
            return None
        return ResolvedPage(
            html=html,
            url=snapshot.url,
            tier=tier,
            version=snapshot.version,
            location=snapshot.location,
            snapshot_id=snapshot.id,
        )

    async def _exact(self, requested: str, site_id: Optional[int]) -> Optional[ResolvedPage]:
        try:
            snapshot = await self.snapshots.find_exact(site_id, requested)
            return await self._serve(snapshot, Tier.EXACT) if snapshot else None
        except StoreError as e:
            logger.warning(f"Tier {Tier.EXACT.value} failed for {requested} (site {site_id}): {e}")
            return None

    async def _prefix(self, requested: str, site_id: Optional[int]) -> Optional[ResolvedPage]:
        try:
            for snapshot in await self.snapshots.scan_all(site_id):
                if prefix_related(requested, normalize_url(snapshot.url)):
                    page = await self._serve(snapshot, Tier.PREFIX)
                    if page is not None:
                        return page
        except StoreError as e:
            logger.warning(f"Tier {Tier.PREFIX.value} failed for {requested} (site {site_id}): {e}")
        return None

    async def _legacy_marker(self, requested: str, site_id: Optional[int]) -> Optional[ResolvedPage]:
        if self.legacy_pages is None:
            return None
        for page in await self.legacy_pages.pages_for_host(hostname_of(requested)):
            html = await self.legacy_pages.read(page)
            marker = find_origin_marker(html) if html else None
            if marker and normalize_url(marker) == requested:
                return ResolvedPage(
                    html=html,
                    url=requested,
                    tier=Tier.LEGACY_MARKER,
                    version=page.version,
                    location=str(page.index_path),
                )
        return None

    async def _legacy_root(self, requested: str, site_id: Optional[int]) -> Optional[ResolvedPage]:
        if self.legacy_pages is None or not is_root_path(requested):
            return None
        for page in await self.legacy_pages.pages_for_host(hostname_of(requested)):
            html = await self.legacy_pages.read(page)
            if html and find_origin_marker(html) is None:
                return ResolvedPage(
                    html=html,
                    url=requested,
                    tier=Tier.LEGACY_ROOT,
                    version=page.version,
                    location=str(page.index_path),
                )
        return None

    async def _fetch_and_store(self, requested: str, site_id: Optional[int]) -> ResolvedPage:
        html = await self.fetcher.fetch(requested)
        version = make_version()
        page = ResolvedPage(html=html, url=requested, tier=Tier.FETCH, version=version)
        try:
            snapshot = await self.snapshots.write(site_id, requested, version, html)
        except StoreError as e:
            # The fetched page is still served; only caching failed
            logger.error(f"Could not cache {requested} (site {site_id}): {e}")
            return page
        page.location = snapshot.location
        page.snapshot_id = snapshot.id
        return page
