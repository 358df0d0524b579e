"""Ledger: the in-memory record/activity set and its synchronization.

Every mutating operation runs in two phases:

1. Local phase (always succeeds): derive, apply to the in-memory set,
   write through to the local cache, notify listeners.
2. Remote phase (may fail): await the remote store. The outcome is an
   ``Ok``/``Err`` value. ``Ok`` adopts the server's row; ``Err`` keeps the
   optimistic state, persists it as the local baseline and raises the sync
   notice. Nothing is rolled back.

Reads are date-scoped: the remote copy of a date replaces the local records
of that date and leaves other dates alone.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from lyubi.derive import (
    derive,
    ensure_derived,
    record_date_key,
    records_for_date,
    replace_for_date,
    sort_chronologically,
)
from lyubi.logging_config import log_record_write, log_sync
from lyubi.notices import ACTIVITY_SYNC_MESSAGE, SyncNotice
from lyubi.storage.base import LocalCache, RemoteStore, RemoteStoreError
from lyubi.timeutils import date_key, now_ms, parse_date_key, parse_local
from lyubi.types import Activity, Err, Ok, RecordItem, RemoteResult, SyncStatus
from lyubi.validation import (
    ValidationError,
    normalize_hex_color,
    optional_text,
    sanitize_string,
)

logger = logging.getLogger(__name__)

Listener = Callable[["Ledger"], None]

# Fields update_record accepts
EDITABLE_FIELDS = frozenset(
    {"activity_id", "start", "end", "duration", "date", "start_time", "end_time", "remark"}
)
TIMING_FIELDS = EDITABLE_FIELDS - {"activity_id", "remark"}


def merge_record(records: List[RecordItem], record: RecordItem) -> List[RecordItem]:
    """Put ``record`` into its date's set, replacing any record with its id."""
    without = [r for r in records if r.id != record.id]
    derived = derive(record)
    day = record_date_key(derived)
    return replace_for_date(without, day, records_for_date(without, day) + [derived])


def remove_record(records: List[RecordItem], record: RecordItem) -> List[RecordItem]:
    """Drop ``record`` from its date's set."""
    day = record_date_key(record)
    remaining = [r for r in records_for_date(records, day) if r.id != record.id]
    return replace_for_date(records, day, remaining)


def overlay_timing(existing: RecordItem, changes: Dict[str, Any]) -> RecordItem:
    """Apply edits to a record so the changed fields win on re-derivation.

    Numeric fields beat string fields in ``derive``, so an edited clock or
    date string clears the numeric value it would otherwise lose to, and an
    edited numeric value clears the stale display strings.
    """
    fields = dict(changes)
    if "start" in changes:
        fields.setdefault("date", None)
        fields.setdefault("start_time", None)
    if "end" in changes:
        fields.setdefault("end_time", None)
    if "date" in changes and "start" not in changes:
        fields["start"] = None
        if "end" not in changes:
            fields["end"] = None
    if "start_time" in changes and "start" not in changes:
        fields["start"] = None
    if "end_time" in changes and "end" not in changes:
        fields["end"] = None
    if "duration" in changes and "end" not in changes and "end_time" not in changes:
        fields["end"] = None
        fields["end_time"] = None
    return replace(existing, **fields)


class Ledger:
    """Single source of truth for activities and records.

    Args:
        cache: Local cache gateway; read synchronously on construction.
        remote: Remote store gateway, or None to run offline (remote
            phases are skipped and records stay local-only).
        notice: Sync-failure banner; a fresh one is created if omitted.
        clock: Epoch-ms clock.
        selected_date: Initially selected date key (default: today).
    """

    def __init__(
        self,
        cache: LocalCache,
        remote: Optional[RemoteStore] = None,
        notice: Optional[SyncNotice] = None,
        clock: Callable[[], int] = now_ms,
        selected_date: Optional[str] = None,
    ):
        self._cache = cache
        self._remote = remote
        self._clock = clock
        self.notice = notice or SyncNotice(clock=clock)
        self._listeners: List[Listener] = []
        self._closed_listeners: List[Callable[[str], None]] = []

        self._activities: List[Activity] = cache.load_activities()
        self._records: List[RecordItem] = ensure_derived(cache.load_records(), now=clock())
        self.selected_date = selected_date or date_key(clock())
        self.last_synced_date: Optional[str] = None

    @property
    def online(self) -> bool:
        return self._remote is not None

    # === Snapshots ===

    @property
    def activities(self) -> List[Activity]:
        return list(self._activities)

    @property
    def records(self) -> List[RecordItem]:
        return list(self._records)

    def records_for_date(self, day: Optional[str] = None) -> List[RecordItem]:
        """Chronological records of a date (default: the selected date)."""
        return sort_chronologically(records_for_date(self._records, day or self.selected_date))

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        return next((a for a in self._activities if a.id == activity_id), None)

    def get_record(self, record_id: str) -> Optional[RecordItem]:
        return next((r for r in self._records if r.id == record_id), None)

    def find_activity(self, ref: str) -> Optional[Activity]:
        """Look an activity up by id, then by case-insensitive name."""
        found = self.get_activity(ref)
        if found:
            return found
        wanted = ref.strip().casefold()
        return next((a for a in self._activities if a.name.casefold() == wanted), None)

    # === Observers ===

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(ledger)`` after every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_record_closed(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(record_id)`` when a record goes away, so editors can close."""
        self._closed_listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _emit_closed(self, record_id: str) -> None:
        for listener in list(self._closed_listeners):
            listener(record_id)

    # === Persistence ===

    def _persist_records(self) -> None:
        self._cache.save_records(self._records)

    def _persist_activities(self) -> None:
        self._cache.save_activities(self._activities)

    async def _call_remote(
        self, operation: str, call: Callable[[RemoteStore], Awaitable[Any]]
    ) -> Optional[RemoteResult]:
        """Run one remote call; None when offline."""
        if self._remote is None:
            return None
        try:
            return Ok(await call(self._remote))
        except RemoteStoreError as e:
            return Err(e, context=operation)
        except Exception as e:
            # Unwrapped gateway error
            logger.debug(f"Unwrapped {type(e).__name__} from remote {operation}")
            return Err(e, context=operation)

    def _report(self, result: Err, message: Optional[str] = None, read: bool = False) -> None:
        if read:
            logger.warning(f"{result.context} failed, using local data: {result.error}")
            log_sync("pull", result.context, False, str(result.error))
        else:
            logger.error(f"{result.context} failed, keeping local change: {result.error}")
            log_sync("push", result.context, False, str(result.error))
        self.notice.show(message)

    # === Records ===

    async def create_record(self, record: RecordItem) -> RecordItem:
        """Add a record optimistically, then insert it remotely.

        Returns the record as it ends up in the set: the server's row on
        success, the local derivation otherwise.
        """
        derived = derive(replace(record, sync_status=SyncStatus.LOCAL_ONLY), now=self._clock())
        self._records = merge_record(self._records, derived)
        self._persist_records()
        self._notify()

        result = await self._call_remote("insert_record", lambda remote: remote.insert_record(derived))
        if isinstance(result, Ok):
            return self._adopt_record(derived.id, result.value)
        if isinstance(result, Err):
            log_record_write("insert", derived.id, False, str(result.error))
            self._report(result)
            self._persist_records()
        return derived

    async def add_manual_entry(
        self,
        activity_id: str,
        day: str,
        start_time: str,
        end_time: str,
        remark: Optional[str] = None,
    ) -> RecordItem:
        """Back-fill a record from a date and two clock strings.

        Raises:
            ValidationError: Unknown activity, incomplete or malformed
                times, or an end that is not after the start.
        """
        if not activity_id:
            raise ValidationError("Select an activity")
        if self.get_activity(activity_id) is None:
            raise ValidationError(f"Unknown activity: {activity_id}")
        if not day or not start_time or not end_time:
            raise ValidationError("Date, start time and end time are required")
        start = parse_local(day, start_time)
        end = parse_local(day, end_time)
        if start is None or end is None:
            raise ValidationError("Invalid date or time format")
        if end <= start:
            raise ValidationError("End time must be after start time")

        now = self._clock()
        record = RecordItem(
            id=str(uuid.uuid4()),
            activity_id=activity_id,
            start=start,
            end=end,
            remark=optional_text(remark, "remark"),
            created_at=now,
            updated_at=now,
        )
        return await self.create_record(record)

    async def update_record(self, record_id: str, **changes: Any) -> RecordItem:
        """Edit a record optimistically, then update it remotely.

        Raises:
            ValidationError: Unknown record, unknown field, unknown activity,
                malformed date or time, or an end that is not after the start.
        """
        existing = self.get_record(record_id)
        if existing is None:
            raise ValidationError(f"Unknown record: {record_id}")
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
        if "activity_id" in changes and self.get_activity(changes["activity_id"]) is None:
            raise ValidationError(f"Unknown activity: {changes['activity_id']}")
        if "remark" in changes:
            changes["remark"] = optional_text(changes["remark"], "remark")
        day = changes.get("date", existing.date)
        if "date" in changes and parse_date_key(day) is None:
            raise ValidationError(f"Invalid date: {day}")
        for name in ("start_time", "end_time"):
            if name in changes and parse_local(day, changes[name]) is None:
                raise ValidationError("Invalid date or time format")

        now = self._clock()
        edited = overlay_timing(existing, changes)
        updated = derive(
            replace(edited, updated_at=now, sync_status=SyncStatus.LOCAL_ONLY), now=now
        )
        if TIMING_FIELDS & set(changes) and updated.end <= updated.start:
            raise ValidationError("End time must be after start time")
        self._records = merge_record(self._records, updated)
        self._persist_records()
        self._notify()

        result = await self._call_remote("update_record", lambda remote: remote.update_record(updated))
        if isinstance(result, Ok):
            return self._adopt_record(record_id, result.value)
        if isinstance(result, Err):
            log_record_write("update", record_id, False, str(result.error))
            self._report(result)
            self._persist_records()
        return updated

    async def delete_record(self, record_id: str) -> None:
        """Remove a record optimistically, then delete it remotely.

        The local removal stands even if the remote delete fails.
        """
        existing = self.get_record(record_id)
        if existing is None:
            raise ValidationError(f"Unknown record: {record_id}")
        self._records = remove_record(self._records, existing)
        self._persist_records()
        self._notify()
        self._emit_closed(record_id)

        result = await self._call_remote("delete_record", lambda remote: remote.delete_record(record_id))
        if isinstance(result, Ok):
            self._persist_records()
        elif isinstance(result, Err):
            log_record_write("delete", record_id, False, str(result.error))
            self._report(result)

    def _adopt_record(self, local_id: str, remote_record: RecordItem) -> RecordItem:
        """Replace the local version of a record with the server's row."""
        normalized = derive(replace(remote_record, sync_status=SyncStatus.SYNCED), now=self._clock())
        without_local = [r for r in self._records if r.id != local_id]
        self._records = merge_record(without_local, normalized)
        self._persist_records()
        self._notify()
        return normalized

    # === Activities ===

    async def create_activity(
        self, name: str, icon: Optional[str] = None, color: Optional[str] = None
    ) -> Activity:
        """Add an activity and push the whole list remotely."""
        now = self._clock()
        activity = Activity(
            id=str(uuid.uuid4()),
            name=sanitize_string(name, "Activity name", max_length=100),
            icon=optional_text(icon, "icon", max_length=16),
            color=normalize_hex_color(color),
            created_at=now,
            updated_at=now,
        )
        await self._replace_activities(self._activities + [activity])
        return self.get_activity(activity.id) or activity

    async def save_activities(self, drafts: List[Activity]) -> List[Activity]:
        """Batch-edit activities (names, icons, colors) and push them remotely.

        Raises:
            ValidationError: If any name is blank; nothing is changed then.
        """
        if any(not (draft.name or "").strip() for draft in drafts):
            raise ValidationError("Activity name cannot be empty")
        now = self._clock()
        normalized = [
            replace(
                draft,
                name=sanitize_string(draft.name, "Activity name", max_length=100),
                icon=optional_text(draft.icon, "icon", max_length=16),
                color=normalize_hex_color(draft.color),
                updated_at=now,
            )
            for draft in drafts
        ]
        await self._replace_activities(normalized)
        return self.activities

    async def _replace_activities(self, activities: List[Activity]) -> None:
        self._activities = list(activities)
        self._persist_activities()
        self._notify()

        result = await self._call_remote(
            "upsert_activities", lambda remote: remote.upsert_activities(activities)
        )
        if isinstance(result, Ok):
            self._activities = list(result.value)
            self._persist_activities()
            self._notify()
        elif isinstance(result, Err):
            self._report(result, ACTIVITY_SYNC_MESSAGE)

    async def delete_activity(self, activity_id: str) -> int:
        """Delete an activity and, locally, every record that references it.

        The cascade is applied and persisted before the remote delete is
        issued and is never undone. Returns the number of records removed.
        """
        if self.get_activity(activity_id) is None:
            raise ValidationError(f"Unknown activity: {activity_id}")
        before = len(self._records)
        self._activities = [a for a in self._activities if a.id != activity_id]
        self._records = [r for r in self._records if r.activity_id != activity_id]
        removed = before - len(self._records)
        self._persist_records()
        self._persist_activities()
        self._notify()

        result = await self._call_remote(
            "delete_activity", lambda remote: remote.delete_activity(activity_id)
        )
        if isinstance(result, Ok):
            self._persist_activities()
        elif isinstance(result, Err):
            log_record_write("delete", activity_id, False, str(result.error))
            self._report(result)
        return removed

    # === Read reconciliation ===

    async def bootstrap(self) -> None:
        """Pull activities and the selected date's records from the remote store."""
        result = await self._call_remote("fetch_activities", lambda remote: remote.fetch_activities())
        if isinstance(result, Ok) and not result.value:
            # Remote is empty: seed it with the local list
            result = await self._call_remote(
                "upsert_activities", lambda remote: remote.upsert_activities(self._activities)
            )
        if isinstance(result, Ok):
            self._activities = list(result.value)
            self._persist_activities()
            self._notify()
        elif isinstance(result, Err):
            self._report(result, read=True)

        await self.sync_date(self.selected_date)

    async def sync_date(self, day: str) -> bool:
        """Make the remote copy of ``day`` authoritative locally.

        On failure the local records of that date are kept. Returns whether
        remote data was adopted.
        """
        result = await self._call_remote(
            "fetch_records_by_date", lambda remote: remote.fetch_records_by_date(day)
        )
        self.last_synced_date = day
        if isinstance(result, Ok):
            remote_records = [replace(r, sync_status=SyncStatus.SYNCED) for r in result.value]
            self._records = replace_for_date(self._records, day, remote_records, now=self._clock())
            self._persist_records()
            self._notify()
            return True
        if isinstance(result, Err):
            self._report(result, read=True)
        return False

    async def select_date(self, day: Union[str, date]) -> None:
        """Change the selected date, syncing it unless it was the last one synced."""
        key = day if isinstance(day, str) else date_key(day)
        if parse_date_key(key) is None:
            raise ValidationError(f"Invalid date: {key}")
        self.selected_date = key
        self._notify()
        if key != self.last_synced_date:
            await self.sync_date(key)
