"""lyubi - a personal time-tracking ledger with local-first cloud sync."""

from lyubi.derive import derive, replace_for_date
from lyubi.ledger import Ledger
from lyubi.notices import SyncNotice
from lyubi.timer import TimerController
from lyubi.types import Activity, Err, Ok, RecordItem, RunningRecord, SyncStatus
from lyubi.validation import ValidationError

__version__ = "0.1.0"

__all__ = [
    "Activity",
    "Err",
    "Ledger",
    "Ok",
    "RecordItem",
    "RunningRecord",
    "SyncNotice",
    "SyncStatus",
    "TimerController",
    "ValidationError",
    "derive",
    "replace_for_date",
]
