"""Tests for the Supabase remote store and its row mapping."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from lyubi.config import Settings
from lyubi.derive import derive
from lyubi.storage import RemoteStore, RemoteStoreError
from lyubi.storage.cloud import (
    SupabaseStore,
    activity_to_row,
    connect_remote,
    record_to_row,
    row_to_activity,
    row_to_record,
)
from lyubi.types import Activity, SyncStatus

from conftest import TODAY, local_ms, make_record

QUERY_METHODS = ("select", "order", "eq", "upsert", "insert", "update", "delete")


def mock_client(data=None, error=None):
    """A Supabase client whose query chain ends in an awaited ``execute``."""
    query = MagicMock()
    for method in QUERY_METHODS:
        getattr(query, method).return_value = query
    query.execute = AsyncMock(return_value=MagicMock(data=data or []), side_effect=error)
    client = MagicMock()
    client.table.return_value = query
    return client, query


def record_row(record_id="r1", **overrides):
    row = {
        "id": record_id,
        "activity_id": "a1",
        "date": TODAY,
        "start_time": "08:00:00",
        "end_time": "09:30:00",
        "duration": 5400,
        "remark": None,
        "created_at": 1,
        "updated_at": 2,
    }
    row.update(overrides)
    return row


class TestRowMapping:
    def test_activity_round_trip(self):
        activity = Activity(id="a1", name="Work", icon="💼", color="#F97316", created_at=1, updated_at=2)

        assert row_to_activity(activity_to_row(activity)) == activity

    def test_record_to_row_uses_clock_strings(self):
        row = record_to_row(make_record("r1", start="08:00", end="09:30", remark="x"))

        assert row["date"] == TODAY
        assert row["start_time"] == "08:00:00"
        assert row["end_time"] == "09:30:00"
        assert row["duration"] == 5400
        assert row["remark"] == "x"
        assert "start" not in row

    def test_record_to_row_requires_start(self):
        from lyubi.types import RecordItem

        with pytest.raises(ValueError):
            record_to_row(RecordItem(id="r1", activity_id="a1"))

    def test_row_to_record_composes_local_instants(self):
        record = row_to_record(record_row())

        assert record.start == local_ms(TODAY, "08:00")
        assert record.end == local_ms(TODAY, "09:30")
        assert record.start_time == "08:00"
        assert record.sync_status == SyncStatus.SYNCED
        assert derive(record).duration == 5400

    def test_end_before_start_lands_next_day(self):
        record = row_to_record(record_row(start_time="23:30:00", end_time="00:15:00"))

        assert record.end == local_ms("2024-07-10", "00:15")
        assert record.date == TODAY
        assert derive(record).duration == 45 * 60

    def test_missing_end_uses_duration(self):
        record = row_to_record(record_row(end_time=None, duration=600))

        assert record.end == local_ms(TODAY, "08:10")

    def test_extra_columns_ignored(self):
        record = row_to_record(record_row(user_id="someone"))

        assert record.id == "r1"

    def test_invalid_row_rejected(self):
        with pytest.raises(ValidationError):
            row_to_record(record_row(date="09/07/2024"))

    def test_write_then_read_keeps_date_and_clock(self):
        original = make_record("r1", start="07:15", end="08:45")

        restored = derive(row_to_record(record_to_row(original)))

        assert (restored.date, restored.start_time, restored.end_time) == (
            original.date,
            original.start_time,
            original.end_time,
        )
        assert restored.duration == original.duration


class TestSupabaseStore:
    def test_satisfies_protocol(self):
        client, _ = mock_client()
        assert isinstance(SupabaseStore(client), RemoteStore)

    @pytest.mark.asyncio
    async def test_fetch_activities(self):
        client, query = mock_client(data=[{"id": "a1", "name": "Work", "created_at": 1}])

        activities = await SupabaseStore(client).fetch_activities()

        client.table.assert_called_with("activities")
        query.select.assert_called_with("*")
        query.order.assert_called_with("created_at", desc=False)
        assert [a.name for a in activities] == ["Work"]

    @pytest.mark.asyncio
    async def test_upsert_activities(self):
        activity = Activity(id="a1", name="Work")
        client, query = mock_client(data=[activity_to_row(activity)])

        stored = await SupabaseStore(client).upsert_activities([activity])

        payload = query.upsert.call_args.args[0]
        assert payload[0]["id"] == "a1"
        assert query.upsert.call_args.kwargs == {"on_conflict": "id"}
        assert stored == [activity]

    @pytest.mark.asyncio
    async def test_upsert_empty_response_returns_input(self):
        activity = Activity(id="a1", name="Work")
        client, _ = mock_client(data=[])

        assert await SupabaseStore(client).upsert_activities([activity]) == [activity]

    @pytest.mark.asyncio
    async def test_upsert_nothing_skips_call(self):
        client, query = mock_client()

        assert await SupabaseStore(client).upsert_activities([]) == []
        query.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_records_by_date(self):
        client, query = mock_client(data=[record_row("r1"), record_row("r2", start_time="10:00:00")])

        records = await SupabaseStore(client, records_table="time_records").fetch_records_by_date(TODAY)

        client.table.assert_called_with("time_records")
        query.eq.assert_called_with("date", TODAY)
        query.order.assert_called_with("start_time", desc=False)
        assert [r.id for r in records] == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_malformed_row_raises_store_error(self):
        client, _ = mock_client(data=[record_row(start_time="noon")])

        with pytest.raises(RemoteStoreError) as exc_info:
            await SupabaseStore(client).fetch_records_by_date(TODAY)

        assert exc_info.value.operation == "fetch_records_by_date"

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self):
        client, _ = mock_client(error=ConnectionError("offline"))

        with pytest.raises(RemoteStoreError) as exc_info:
            await SupabaseStore(client).insert_record(make_record("r1"))

        assert exc_info.value.operation == "insert_record"
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_insert_returns_server_row(self):
        client, query = mock_client(data=[record_row("r1", remark="from server")])

        record = await SupabaseStore(client).insert_record(make_record("r1"))

        assert query.insert.call_args.args[0]["start_time"] == "08:00:00"
        assert record.remark == "from server"
        assert record.sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_insert_empty_response_returns_input(self):
        client, _ = mock_client(data=[])
        record = make_record("r1")

        assert await SupabaseStore(client).insert_record(record) is record

    @pytest.mark.asyncio
    async def test_update_stamps_updated_at(self):
        client, query = mock_client(data=[])

        await SupabaseStore(client, clock=lambda: 12345).update_record(make_record("r1"))

        assert query.update.call_args.args[0]["updated_at"] == 12345
        query.eq.assert_called_with("id", "r1")

    @pytest.mark.asyncio
    async def test_delete_record(self):
        client, query = mock_client()

        await SupabaseStore(client).delete_record("r1")

        query.delete.assert_called_once()
        query.eq.assert_called_with("id", "r1")

    @pytest.mark.asyncio
    async def test_delete_activity(self):
        client, query = mock_client()

        await SupabaseStore(client).delete_activity("a1")

        client.table.assert_called_with("activities")
        query.eq.assert_called_with("id", "a1")


class TestConnect:
    @pytest.mark.asyncio
    async def test_offline_without_credentials(self):
        assert await connect_remote(Settings()) is None
        assert await connect_remote(None) is None

    @pytest.mark.asyncio
    async def test_insecure_url_stays_offline(self):
        settings = Settings(supabase_url="http://example.com", supabase_key="key")

        assert await connect_remote(settings) is None

    @pytest.mark.asyncio
    async def test_connects_with_credentials(self):
        client, _ = mock_client()
        settings = Settings(
            supabase_url="https://demo.supabase.co", supabase_key="key", records_table="time_records"
        )

        with patch("lyubi.storage.cloud.acreate_client", new=AsyncMock(return_value=client)) as create:
            store = await connect_remote(settings)

        create.assert_awaited_once_with("https://demo.supabase.co", "key")
        assert store.records_table == "time_records"

    @pytest.mark.asyncio
    async def test_client_failure_wrapped(self):
        settings = Settings(supabase_url="https://demo.supabase.co", supabase_key="key")

        with patch(
            "lyubi.storage.cloud.acreate_client", new=AsyncMock(side_effect=RuntimeError("bad key"))
        ):
            with pytest.raises(RemoteStoreError):
                await connect_remote(settings)
