"""Supabase remote store for lyubi.

Remote rows keep a record's timing as a date string plus ``HH:MM:SS``
clock strings instead of epoch values. ``record_to_row`` and
``row_to_record`` convert between the two in local time, without any
timezone conversion, so a record written and read back keeps its date and
clock strings exactly.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from supabase import AsyncClient, acreate_client

from lyubi.config import Settings
from lyubi.logging_config import log_record_write, log_sync
from lyubi.storage.base import RemoteStoreError
from lyubi.timeutils import clock, date_key, from_epoch_ms, now_ms, parse_local, to_epoch_ms
from lyubi.types import Activity, RecordItem, SyncStatus

logger = logging.getLogger(__name__)

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^\d{2}:\d{2}(:\d{2})?$"


# =============================================================================
# Row schemas
# =============================================================================


class ActivityRow(BaseModel):
    """A row of the ``activities`` table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    icon: str | None = None
    color: str | None = None
    created_at: int = 0
    updated_at: int = 0


class RecordRow(BaseModel):
    """A row of the ``records`` table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    activity_id: str
    date: str = Field(..., pattern=DATE_PATTERN)
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str | None = Field(None, pattern=TIME_PATTERN)
    duration: int | None = None
    remark: str | None = None
    created_at: int = 0
    updated_at: int = 0


# =============================================================================
# Mapping
# =============================================================================


def activity_to_row(activity: Activity) -> Dict[str, Any]:
    return ActivityRow(
        id=activity.id,
        name=activity.name,
        icon=activity.icon,
        color=activity.color,
        created_at=activity.created_at,
        updated_at=activity.updated_at,
    ).model_dump()


def row_to_activity(row: Dict[str, Any]) -> Activity:
    parsed = ActivityRow.model_validate(row)
    return Activity(**parsed.model_dump())


def record_to_row(record: RecordItem) -> Dict[str, Any]:
    """Decompose a derived record into a remote row."""
    if record.start is None:
        raise ValueError(f"Record {record.id} has no start; derive it first")
    end = record.end if record.end is not None else record.start
    return RecordRow(
        id=record.id,
        activity_id=record.activity_id,
        date=record.date or date_key(record.start),
        start_time=clock(record.start, seconds=True),
        end_time=clock(end, seconds=True),
        duration=record.duration,
        remark=record.remark,
        created_at=record.created_at,
        updated_at=record.updated_at,
    ).model_dump()


def row_to_record(row: Dict[str, Any]) -> RecordItem:
    """Compose a record from a remote row.

    An end clock earlier than the start clock means the span crossed
    midnight, so the end lands on the following day.
    """
    parsed = RecordRow.model_validate(row)
    start = parse_local(parsed.date, parsed.start_time)
    if start is None:
        raise ValueError(f"Unparseable start for record {parsed.id}")

    end = parse_local(parsed.date, parsed.end_time)
    if end is None:
        end = start + parsed.duration * 1000 if parsed.duration else start
    elif end < start:
        end = to_epoch_ms(from_epoch_ms(end) + timedelta(days=1))

    return RecordItem(
        id=parsed.id,
        activity_id=parsed.activity_id,
        start=start,
        end=end,
        date=parsed.date,
        start_time=clock(start),
        end_time=clock(end),
        remark=parsed.remark,
        created_at=parsed.created_at,
        updated_at=parsed.updated_at,
        sync_status=SyncStatus.SYNCED,
    )


# =============================================================================
# Store
# =============================================================================


class SupabaseStore:
    """Remote Store Gateway over two Supabase tables.

    Args:
        client: An async Supabase client.
        activities_table: Name of the activities table.
        records_table: Name of the records table.
        clock: Epoch-ms clock used to stamp ``updated_at`` on updates.
    """

    def __init__(
        self,
        client: AsyncClient,
        activities_table: str = "activities",
        records_table: str = "records",
        clock: Callable[[], int] = now_ms,
    ):
        self._client = client
        self.activities_table = activities_table
        self.records_table = records_table
        self._clock = clock

    @classmethod
    async def connect(cls, settings: Settings) -> "SupabaseStore":
        """Create a store from settings.

        Raises:
            RemoteStoreError: If credentials are missing or the client fails.
        """
        if not settings.is_online:
            raise RemoteStoreError("connect", ValueError("LYUBI_SUPABASE_URL/KEY not configured"))
        try:
            client = await acreate_client(settings.supabase_url, settings.supabase_key)
        except Exception as e:
            raise RemoteStoreError("connect", e) from e
        return cls(
            client,
            activities_table=settings.activities_table,
            records_table=settings.records_table,
        )

    async def _execute(self, operation: str, query) -> List[Dict[str, Any]]:
        try:
            response = await query.execute()
        except Exception as e:
            logger.debug(f"Supabase {operation} failed: {e}")
            raise RemoteStoreError(operation, e) from e
        return list(response.data or [])

    def _parse(self, operation: str, rows: List[Dict[str, Any]], mapper) -> List[Any]:
        try:
            return [mapper(row) for row in rows]
        except (ValidationError, ValueError, TypeError) as e:
            raise RemoteStoreError(operation, e) from e

    # === Activities ===

    async def fetch_activities(self) -> List[Activity]:
        rows = await self._execute(
            "fetch_activities",
            self._client.table(self.activities_table).select("*").order("created_at", desc=False),
        )
        activities = self._parse("fetch_activities", rows, row_to_activity)
        log_sync("pull", "activities", True)
        return activities

    async def upsert_activities(self, activities: List[Activity]) -> List[Activity]:
        if not activities:
            return []
        payload = [activity_to_row(a) for a in activities]
        rows = await self._execute(
            "upsert_activities",
            self._client.table(self.activities_table).upsert(payload, on_conflict="id"),
        )
        log_sync("push", "activities", True)
        if not rows:
            return list(activities)
        return self._parse("upsert_activities", rows, row_to_activity)

    async def delete_activity(self, activity_id: str) -> None:
        await self._execute(
            "delete_activity",
            self._client.table(self.activities_table).delete().eq("id", activity_id),
        )
        log_record_write("delete", activity_id, True)

    # === Records ===

    async def fetch_records_by_date(self, day: str) -> List[RecordItem]:
        rows = await self._execute(
            "fetch_records_by_date",
            self._client.table(self.records_table)
            .select("*")
            .eq("date", day)
            .order("start_time", desc=False),
        )
        records = self._parse("fetch_records_by_date", rows, row_to_record)
        log_sync("pull", f"records:{day}", True)
        return records

    async def insert_record(self, record: RecordItem) -> RecordItem:
        rows = await self._execute(
            "insert_record",
            self._client.table(self.records_table).insert(record_to_row(record)),
        )
        log_record_write("insert", record.id, True)
        if not rows:
            return record
        return self._parse("insert_record", rows[:1], row_to_record)[0]

    async def update_record(self, record: RecordItem) -> RecordItem:
        row = record_to_row(record)
        row["updated_at"] = self._clock()
        rows = await self._execute(
            "update_record",
            self._client.table(self.records_table).update(row).eq("id", record.id),
        )
        log_record_write("update", record.id, True)
        if not rows:
            return record
        return self._parse("update_record", rows[:1], row_to_record)[0]

    async def delete_record(self, record_id: str) -> None:
        await self._execute(
            "delete_record",
            self._client.table(self.records_table).delete().eq("id", record_id),
        )
        log_record_write("delete", record_id, True)


async def connect_remote(settings: Optional[Settings]) -> Optional[SupabaseStore]:
    """Return a connected store, or None when running offline."""
    if settings is None or not settings.is_online:
        return None
    return await SupabaseStore.connect(settings)
