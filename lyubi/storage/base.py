"""Storage protocols for lyubi.

Two gateways sit behind the ledger:

- ``LocalCache``: synchronous key-value mirror of the in-memory state
  (SQLiteCache). Loads never fail; malformed data reads as empty.
- ``RemoteStore``: asynchronous, fallible network CRUD (SupabaseStore).
  Every failure surfaces as ``RemoteStoreError``.
"""

from typing import List, Optional, Protocol, runtime_checkable

from lyubi.types import Activity, RecordItem, RunningRecord


class RemoteStoreError(Exception):
    """A remote store call failed (network, server or malformed response)."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        message = f"Remote {operation} failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.operation = operation
        self.cause = cause


@runtime_checkable
class LocalCache(Protocol):
    """Durable local mirror of activities, records and the running timer."""

    def load_activities(self) -> List[Activity]:
        """Load activities, seeding and persisting the defaults when empty."""
        ...

    def save_activities(self, activities: List[Activity]) -> None: ...

    def load_records(self) -> List[RecordItem]: ...

    def save_records(self, records: List[RecordItem]) -> None: ...

    def load_running_record(self) -> Optional[RunningRecord]: ...

    def save_running_record(self, record: Optional[RunningRecord]) -> None:
        """Store the running timer; None removes it."""
        ...


@runtime_checkable
class RemoteStore(Protocol):
    """Remote tables ``activities`` and ``records``."""

    async def fetch_activities(self) -> List[Activity]:
        """All activities, oldest first."""
        ...

    async def upsert_activities(self, activities: List[Activity]) -> List[Activity]:
        """Insert-or-replace by id; returns the stored rows."""
        ...

    async def delete_activity(self, activity_id: str) -> None: ...

    async def fetch_records_by_date(self, day: str) -> List[RecordItem]:
        """Records of one date key, ordered by start time of day."""
        ...

    async def insert_record(self, record: RecordItem) -> RecordItem: ...

    async def update_record(self, record: RecordItem) -> RecordItem: ...

    async def delete_record(self, record_id: str) -> None: ...
