"""SQLite-backed local cache for lyubi.

A single ``kv`` table holds one JSON document per key, mirroring the
in-memory ledger state. Loads never raise on bad data: an unreadable
document reads as empty, an unreadable item is skipped.
"""

import contextlib
import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Callable, List, Optional

from lyubi.timeutils import now_ms
from lyubi.types import Activity, RecordItem, RunningRecord

logger = logging.getLogger(__name__)

ACTIVITIES_KEY = "lyubi.activities"
RECORDS_KEY = "lyubi.records"
RUNNING_RECORD_KEY = "lyubi.runningRecord"

# Seeded on first use (name, icon, color)
DEFAULT_ACTIVITIES = [
    ("Work", "💼", "#F97316"),
    ("Reading", "📚", "#22C55E"),
    ("Study", "🧠", "#06B6D4"),
    ("Exercise", "🏃", "#EF4444"),
    ("Chores", "🏠", "#A855F7"),
    ("Leisure", "🎮", "#3B82F6"),
]


def default_activities(now: Optional[int] = None) -> List[Activity]:
    """Build the default activity list with fresh ids."""
    now = now if now is not None else now_ms()
    return [
        Activity(id=str(uuid.uuid4()), name=name, icon=icon, color=color, created_at=now, updated_at=now)
        for name, icon, color in DEFAULT_ACTIVITIES
    ]


class SQLiteCache:
    """Local Cache Gateway over a SQLite key-value table.

    Args:
        db_path: Database file; ``":memory:"`` is not supported since every
            operation opens its own connection.
        clock: Epoch-ms clock used to stamp seeded defaults.
    """

    def __init__(self, db_path: Path, clock: Callable[[], int] = now_ms):
        self.db_path = Path(db_path).expanduser()
        self._clock = clock
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")

    @contextlib.contextmanager
    def _connect(self):
        """Yield a connection; commit on success, roll back on error, always close."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    # === Raw key access ===

    def get_item(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO kv (key, value) VALUES (?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
                (key, value),
            )

    def remove_item(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def _read_json(self, key: str, fallback: Any) -> Any:
        raw = self.get_item(key)
        if not raw:
            return fallback
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug(f"Ignoring malformed cache entry {key}: {e}")
            return fallback

    def _read_list(self, key: str, factory) -> List[Any]:
        data = self._read_json(key, [])
        if not isinstance(data, list):
            logger.debug(f"Ignoring non-list cache entry {key}")
            return []
        items = []
        for item in data:
            try:
                items.append(factory(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed item in {key}: {e}")
        return items

    def _write_list(self, key: str, items) -> None:
        self.set_item(key, json.dumps([item.to_dict() for item in items], ensure_ascii=False))

    # === LocalCache protocol ===

    def load_activities(self) -> List[Activity]:
        stored = self._read_list(ACTIVITIES_KEY, Activity.from_dict)
        if stored:
            return stored
        defaults = default_activities(self._clock())
        self.save_activities(defaults)
        logger.info(f"Seeded {len(defaults)} default activities")
        return defaults

    def save_activities(self, activities: List[Activity]) -> None:
        self._write_list(ACTIVITIES_KEY, activities)

    def load_records(self) -> List[RecordItem]:
        return self._read_list(RECORDS_KEY, RecordItem.from_dict)

    def save_records(self, records: List[RecordItem]) -> None:
        self._write_list(RECORDS_KEY, records)

    def load_running_record(self) -> Optional[RunningRecord]:
        data = self._read_json(RUNNING_RECORD_KEY, None)
        if not data:
            return None
        try:
            return RunningRecord.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Ignoring malformed running record: {e}")
            return None

    def save_running_record(self, record: Optional[RunningRecord]) -> None:
        if record is None:
            self.remove_item(RUNNING_RECORD_KEY)
            return
        self.set_item(RUNNING_RECORD_KEY, json.dumps(record.to_dict(), ensure_ascii=False))
