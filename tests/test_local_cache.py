"""Tests for the SQLite local cache and the cached JSON shape."""

import json

import pytest

from lyubi.storage import DEFAULT_ACTIVITIES, LocalCache, SQLiteCache
from lyubi.storage.local import ACTIVITIES_KEY, RECORDS_KEY, RUNNING_RECORD_KEY
from lyubi.types import Activity, RecordItem, RunningRecord, SyncStatus

from conftest import BASE_NOW, TODAY, make_record


def test_satisfies_protocol(cache):
    assert isinstance(cache, LocalCache)


class TestActivities:
    def test_defaults_seeded_and_persisted(self, cache):
        activities = cache.load_activities()

        assert [(a.name, a.icon, a.color) for a in activities] == DEFAULT_ACTIVITIES
        assert all(a.created_at == BASE_NOW for a in activities)
        assert len({a.id for a in activities}) == 6
        # Second load returns the persisted list, not fresh defaults
        assert [a.id for a in cache.load_activities()] == [a.id for a in activities]

    def test_malformed_activities_fall_back_to_defaults(self, cache):
        cache.set_item(ACTIVITIES_KEY, "{not json")

        assert len(cache.load_activities()) == 6

    def test_round_trip(self, cache):
        activity = Activity(id="a1", name="Piano", icon="🎹", color="#FF7733", created_at=1)

        cache.save_activities([activity])

        assert cache.load_activities() == [activity]


class TestRecords:
    def test_empty_by_default(self, cache):
        assert cache.load_records() == []

    def test_round_trip(self, cache):
        records = [make_record("r1", remark="notes"), make_record("r2", sync_status=SyncStatus.SYNCED)]

        cache.save_records(records)

        assert cache.load_records() == records

    def test_camel_case_keys(self, cache):
        cache.save_records([make_record("r1")])

        stored = json.loads(cache.get_item(RECORDS_KEY))[0]

        assert stored["activityId"] == "a1"
        assert stored["startTime"] == "08:00"
        assert stored["syncStatus"] == "local_only"
        assert "remark" not in stored

    @pytest.mark.parametrize("raw", ["garbage", '{"id": "x"}', "null"])
    def test_malformed_document_reads_empty(self, cache, raw):
        cache.set_item(RECORDS_KEY, raw)

        assert cache.load_records() == []

    def test_malformed_items_skipped(self, cache):
        cache.set_item(
            RECORDS_KEY,
            json.dumps(
                [
                    {"id": "ok", "activityId": "a1", "start": BASE_NOW, "date": TODAY},
                    {"activityId": "no-id"},
                    {"id": "bad", "activityId": "a1", "start": "yesterday"},
                ]
            ),
        )

        assert [r.id for r in cache.load_records()] == ["ok"]

    def test_legacy_snake_case_keys_accepted(self):
        record = RecordItem.from_dict(
            {"id": "r1", "activity_id": "a1", "start_time": "08:00", "date": TODAY}
        )

        assert record.activity_id == "a1"
        assert record.start_time == "08:00"
        assert record.sync_status == SyncStatus.LOCAL_ONLY


class TestRunningRecord:
    def test_absent_by_default(self, cache):
        assert cache.load_running_record() is None

    def test_save_load_and_remove(self, cache):
        running = RunningRecord(
            id="t1", activity_id="a1", start=BASE_NOW, real_start=BASE_NOW, date_key=TODAY
        )

        cache.save_running_record(running)
        assert cache.load_running_record() == running

        cache.save_running_record(None)
        assert cache.get_item(RUNNING_RECORD_KEY) is None

    def test_missing_date_key_derived_from_start(self, cache):
        cache.set_item(RUNNING_RECORD_KEY, json.dumps({"id": "t1", "activityId": "a1", "start": BASE_NOW}))

        running = cache.load_running_record()

        assert running.date_key == TODAY
        assert running.base == BASE_NOW

    def test_malformed_running_record_ignored(self, cache):
        cache.set_item(RUNNING_RECORD_KEY, json.dumps({"activityId": "a1"}))

        assert cache.load_running_record() is None


def test_cache_survives_reopen(tmp_path, clock):
    path = tmp_path / "nested" / "cache.db"
    SQLiteCache(path, clock=clock).save_records([make_record("r1")])

    assert [r.id for r in SQLiteCache(path, clock=clock).load_records()] == ["r1"]
