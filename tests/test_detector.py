"""Tests for update detection."""
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from modwatch.errors import StoreError
from modwatch.jobs.detector import Outcome, UpdateDetector
from modwatch.parse.models import ModRecord
from modwatch.store.base import RecordStore
from modwatch.store.database import Database
from modwatch.store.records import SqliteRecordStore

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(hours=1)


def mod(url: str, version: Optional[str] = None, at: datetime = T0, title: str = "Mod") -> ModRecord:
    return ModRecord(site_id=1, title=title, url=url, version=version, created_at=at, updated_at=at)


class FlakyStore(RecordStore):
    """In-memory store that fails for one URL."""

    def __init__(self, broken_url: str):
        self.broken_url = broken_url
        self.rows: dict[str, ModRecord] = {}

    async def get_by_url(self, url):
        if url == self.broken_url:
            raise StoreError(f"lookup {url} failed")
        return self.rows.get(url)

    async def put(self, record):
        stored = record.model_copy(update={"id": len(self.rows) + 1})
        self.rows[record.url] = stored
        return stored

    async def update(self, record_id, record):
        self.rows[record.url] = record


@pytest.mark.asyncio
async def test_first_sight_is_stored_without_event(tmp_path):
    """Test new mods produce no events."""
    async with Database(tmp_path / "test.db") as db:
        records = SqliteRecordStore(db)
        report = await UpdateDetector(records).detect([mod("https://s.example/m/1", "1.0")])
        assert report.events == []
        assert report.new == 1
        stored = await records.get_by_url("https://s.example/m/1")
        assert stored is not None and stored.version == "1.0"


@pytest.mark.asyncio
async def test_later_timestamp_emits_change_event(tmp_path):
    """Test 1.0 -> 1.1 with a later timestamp yields one event."""
    async with Database(tmp_path / "test.db") as db:
        records = SqliteRecordStore(db)
        detector = UpdateDetector(records)
        await detector.detect([mod("https://s.example/m/1", "1.0", T0)])
        first = await records.get_by_url("https://s.example/m/1")

        report = await detector.detect([mod("https://s.example/m/1", "1.1", T1)])
        assert len(report.events) == 1
        event = report.events[0]
        assert (event.old_version, event.new_version) == ("1.0", "1.1")
        assert event.mod_id == first.id

        stored = await records.get_by_url("https://s.example/m/1")
        assert stored.id == first.id
        assert stored.version == "1.1"
        assert stored.created_at == first.created_at
        assert stored.updated_at == T1


@pytest.mark.asyncio
async def test_equal_or_earlier_timestamp_is_unchanged(tmp_path):
    """Test no event unless updated_at strictly increases."""
    async with Database(tmp_path / "test.db") as db:
        records = SqliteRecordStore(db)
        detector = UpdateDetector(records)
        await detector.detect([mod("https://s.example/m/1", "1.0", T1)])

        same = await detector.detect([mod("https://s.example/m/1", "2.0", T1)])
        earlier = await detector.detect([mod("https://s.example/m/1", "3.0", T0)])
        assert same.events == [] and same.unchanged == 1
        assert earlier.events == [] and earlier.unchanged == 1
        assert (await records.get_by_url("https://s.example/m/1")).version == "1.0"


@pytest.mark.asyncio
async def test_events_follow_candidate_order(tmp_path):
    """Test events keep the order of the candidates."""
    async with Database(tmp_path / "test.db") as db:
        detector = UpdateDetector(SqliteRecordStore(db))
        urls = [f"https://s.example/m/{n}" for n in (3, 1, 2)]
        await detector.detect([mod(url, "1.0", T0) for url in urls])
        report = await detector.detect([mod(url, "1.1", T1) for url in urls])
        assert [e.url for e in report.events] == urls


@pytest.mark.asyncio
async def test_store_error_skips_only_that_candidate():
    """Test a failing lookup is reported and the rest of the batch still runs."""
    store = FlakyStore(broken_url="https://s.example/bad")
    store.rows["https://s.example/ok"] = mod("https://s.example/ok", "1.0", T0).model_copy(update={"id": 1})

    report = await UpdateDetector(store).detect(
        [
            mod("https://s.example/bad", "1.0", T1),
            mod("https://s.example/ok", "1.1", T1),
            mod("https://s.example/new", "0.1", T1),
        ]
    )
    assert report.failures[0][0] == "https://s.example/bad"
    assert [o for _, o in report.outcomes] == [Outcome.FAILED, Outcome.UPDATED, Outcome.NEW]
    assert len(report.events) == 1
    assert "https://s.example/new" in store.rows


@pytest.mark.asyncio
async def test_site_id_is_filled_in():
    """Test candidates without a site get the detector's site id."""
    store = FlakyStore(broken_url="")
    candidate = ModRecord(title="x", url="https://s.example/m/1", updated_at=T0)
    await UpdateDetector(store).detect([candidate], site_id=5)
    assert store.rows["https://s.example/m/1"].site_id == 5
