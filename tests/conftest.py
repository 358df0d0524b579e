"""
Pytest fixtures and test configuration for lyubi tests.
"""

import copy
from datetime import datetime
from typing import Dict, List, Set

import pytest

from lyubi.ledger import Ledger
from lyubi.notices import SyncNotice
from lyubi.storage import RemoteStoreError, SQLiteCache
from lyubi.timeutils import to_epoch_ms
from lyubi.types import Activity, RecordItem

# 2024-07-09 10:00:00 local time
BASE_NOW = to_epoch_ms(datetime(2024, 7, 9, 10, 0, 0))
TODAY = "2024-07-09"


def local_ms(day: str, clock: str) -> int:
    """Epoch ms of a local date + HH:MM[:SS]."""
    fmt = "%Y-%m-%d %H:%M:%S" if clock.count(":") == 2 else "%Y-%m-%d %H:%M"
    return to_epoch_ms(datetime.strptime(f"{day} {clock}", fmt))


class FakeClock:
    """Controllable epoch-ms clock."""

    def __init__(self, now: int = BASE_NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class FakeRemoteStore:
    """In-memory remote store.

    Operations named in ``fail`` raise RemoteStoreError. ``calls`` records
    (operation, argument) pairs; ``on_call`` runs before each operation.
    """

    def __init__(self):
        self.activities: Dict[str, Activity] = {}
        self.records: Dict[str, RecordItem] = {}
        self.fail: Set[str] = set()
        self.calls: List[tuple] = []
        self.on_call = None

    def _enter(self, operation: str, arg=None) -> None:
        self.calls.append((operation, arg))
        if self.on_call is not None:
            self.on_call(operation, arg)
        if operation in self.fail:
            raise RemoteStoreError(operation, ConnectionError("simulated network error"))

    def operations(self) -> List[str]:
        return [op for op, _ in self.calls]

    async def fetch_activities(self):
        self._enter("fetch_activities")
        return sorted(
            (copy.deepcopy(a) for a in self.activities.values()), key=lambda a: a.created_at
        )

    async def upsert_activities(self, activities):
        self._enter("upsert_activities", activities)
        for activity in activities:
            self.activities[activity.id] = copy.deepcopy(activity)
        return [copy.deepcopy(self.activities[a.id]) for a in activities]

    async def delete_activity(self, activity_id):
        self._enter("delete_activity", activity_id)
        self.activities.pop(activity_id, None)

    async def fetch_records_by_date(self, day):
        self._enter("fetch_records_by_date", day)
        rows = [copy.deepcopy(r) for r in self.records.values() if r.date == day]
        return sorted(rows, key=lambda r: r.start_time or "")

    async def insert_record(self, record):
        self._enter("insert_record", record)
        self.records[record.id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def update_record(self, record):
        self._enter("update_record", record)
        self.records[record.id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def delete_record(self, record_id):
        self._enter("delete_record", record_id)
        self.records.pop(record_id, None)


@pytest.fixture(autouse=True)
def lyubi_home(tmp_path, monkeypatch):
    """Keep logs and caches inside the test's temp directory."""
    home = tmp_path / "lyubi-home"
    monkeypatch.setenv("LYUBI_DATA_DIR", str(home))
    monkeypatch.setattr("lyubi.logging_config._log_home", None)
    for var in ("LYUBI_SUPABASE_URL", "LYUBI_SUPABASE_KEY"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return SQLiteCache(tmp_path / "cache.db", clock=clock)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def notice(clock):
    return SyncNotice(duration=4.0, clock=clock)


@pytest.fixture
def ledger(cache, remote, notice, clock):
    return Ledger(cache, remote=remote, notice=notice, clock=clock)


@pytest.fixture
def work(ledger):
    """The seeded 'Work' activity."""
    return ledger.find_activity("Work")


def make_record(
    record_id: str,
    activity_id: str = "a1",
    day: str = TODAY,
    start: str = "08:00",
    end: str = "09:00",
    **kwargs,
) -> RecordItem:
    """A fully specified record from a date and two clock strings."""
    from lyubi.derive import derive

    return derive(
        RecordItem(
            id=record_id,
            activity_id=activity_id,
            start=local_ms(day, start),
            end=local_ms(day, end),
            **kwargs,
        )
    )
