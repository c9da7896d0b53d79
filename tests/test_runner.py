"""Tests for update check runs."""
import pytest

from modwatch.cache.resolver import PageCacheResolver
from modwatch.errors import FetchError
from modwatch.fetch.base import Fetcher
from modwatch.jobs.detector import UpdateDetector
from modwatch.jobs.runner import UpdateChecker
from modwatch.notify.service import NotificationService, build_notification
from modwatch.parse.models import ChangeEvent
from modwatch.store.database import Database
from modwatch.store.notifications import NotificationStore
from modwatch.store.records import SqliteRecordStore
from modwatch.store.sites import SiteStore
from modwatch.store.snapshots import SqliteSnapshotStore

CONFIG = {
    "list_selector": ".mod",
    "title_selector": "h3",
    "url_selector": "a",
    "version_selector": ".version",
    "base_url": "https://good.example",
}


def listing(version: str) -> str:
    return f"""
    <html><body>
      <div class="mod"><h3>Better Roads</h3><a href="/mods/roads">open</a><span class="version">{version}</span></div>
    </body></html>
    """


class SiteFetcher(Fetcher):
    """Serves a fixed page per URL; unknown URLs fail."""

    def __init__(self, pages: dict):
        self.pages = pages

    async def fetch(self, url, timeout=None, max_bytes=None):
        if url not in self.pages:
            raise FetchError(url, "HTTP 500", status_code=500)
        return self.pages[url]


async def build_checker(db, tmp_path, fetcher):
    sites = SiteStore(db)
    notifications = NotificationStore(db)
    checker = UpdateChecker(
        sites,
        PageCacheResolver(SqliteSnapshotStore(db, tmp_path / "snapshots"), fetcher),
        UpdateDetector(SqliteRecordStore(db)),
        NotificationService(notifications),
        concurrency=2,
    )
    return checker, sites, notifications


@pytest.mark.asyncio
async def test_failing_site_does_not_block_others(tmp_path):
    """Test one broken site is reported while the other completes."""
    fetcher = SiteFetcher({"https://good.example/": listing("1.0")})
    async with Database(tmp_path / "test.db") as db:
        checker, sites, _ = await build_checker(db, tmp_path, fetcher)
        good = await sites.add_site("Good", "https://good.example/", CONFIG)
        bad = await sites.add_site("Bad", "https://bad.example/", CONFIG)

        report = await checker.check_updates()
        assert [r.site_id for r in report.results] == [good.id]
        assert report.results[0].new == 1
        assert bad.id in report.failed
        assert "FetchError" in report.failed[bad.id]
        assert report.summary["sites_ok"] == 1
        assert report.summary["sites_failed"] == 1


@pytest.mark.asyncio
async def test_refresh_with_new_version_notifies(tmp_path):
    """Test a refreshed listing with a new version produces an event and a notification."""
    fetcher = SiteFetcher({"https://good.example/": listing("1.0")})
    async with Database(tmp_path / "test.db") as db:
        checker, sites, notifications = await build_checker(db, tmp_path, fetcher)
        site = await sites.add_site("Good", "https://good.example/", CONFIG)

        first = await checker.check_updates(site_id=site.id)
        assert first.events == []

        replay = await checker.check_updates(site_id=site.id)
        assert replay.events == []
        assert replay.results[0].unchanged == 1

        fetcher.pages["https://good.example/"] = listing("1.1")
        refreshed = await checker.check_updates(site_id=site.id, force_refresh=True)
        assert [(e.old_version, e.new_version) for e in refreshed.events] == [("1.0", "1.1")]

        stored = await notifications.recent()
        assert len(stored) == 1
        assert "Version changed: 1.0 → 1.1" in stored[0].message


@pytest.mark.asyncio
async def test_unknown_site_is_reported(tmp_path):
    """Test checking a missing site id fails softly."""
    async with Database(tmp_path / "test.db") as db:
        checker, _, _ = await build_checker(db, tmp_path, SiteFetcher({}))
        report = await checker.check_updates(site_id=42)
        assert report.results == []
        assert report.failed == {42: "no such site"}


def test_build_notification_without_versions():
    """Test message when versions are unknown."""
    notification = build_notification(ChangeEvent(mod_id=1, new_version="2.0", title="Roads"))
    assert notification.message == "Roads: Mod updated"
    assert notification.title == "Mod update"


class SequenceFetcher(Fetcher):
    """Serves the next page on every call, then keeps serving the last one."""

    def __init__(self, pages: list):
        self.pages = pages
        self.calls = 0

    async def fetch(self, url, timeout=None, max_bytes=None):
        self.calls += 1
        return self.pages[min(self.calls, len(self.pages)) - 1]


@pytest.mark.asyncio
async def test_watch_loop_refetches_and_notifies(tmp_path):
    """Test scheduled cycles fetch fresh listings and report a new version."""
    fetcher = SequenceFetcher([listing("1.0"), listing("2.0")])
    async with Database(tmp_path / "test.db") as db:
        checker, sites, notifications = await build_checker(db, tmp_path, fetcher)
        await sites.add_site("Good", "https://good.example/", CONFIG)

        await checker.run_forever(interval_seconds=0, max_cycles=3)

        assert fetcher.calls == 3
        messages = [n.message for n in await notifications.recent()]
        assert any("Version changed: 1.0 → 2.0" in m for m in messages)


@pytest.mark.asyncio
async def test_watch_loop_can_use_cache(tmp_path):
    """Test cached cycles fetch the listing only once."""
    fetcher = SequenceFetcher([listing("1.0"), listing("2.0")])
    async with Database(tmp_path / "test.db") as db:
        checker, sites, notifications = await build_checker(db, tmp_path, fetcher)
        await sites.add_site("Good", "https://good.example/", CONFIG)

        await checker.run_forever(interval_seconds=0, max_cycles=2, force_refresh=False)

        assert fetcher.calls == 1
        assert await notifications.recent() == []
