"""
Shared ledger types for lyubi.

Activities, records and the running timer are plain dataclasses. They are
the vocabulary between the ledger, the timer controller and the storage
gateways. ``to_dict``/``from_dict`` use the camelCase JSON shape written to
the local cache.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from lyubi.timeutils import date_key as format_date_key


class SyncStatus(str, Enum):
    """Whether a record has been confirmed by the remote store."""

    LOCAL_ONLY = "local_only"  # Optimistic, or remote write failed
    SYNCED = "synced"  # Adopted from a remote row


# Field name -> JSON key. Fields not listed keep their name.
_JSON_KEYS = {
    "activity_id": "activityId",
    "start_time": "startTime",
    "end_time": "endTime",
    "real_start": "realStart",
    "date_key": "dateKey",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "sync_status": "syncStatus",
}


def _dump(obj) -> Dict[str, Any]:
    data = {}
    for name, value in asdict(obj).items():
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        data[_JSON_KEYS.get(name, name)] = value
    return data


def _pick(data: Dict[str, Any], name: str, default: Any = None) -> Any:
    key = _JSON_KEYS.get(name, name)
    if key in data:
        return data[key]
    return data.get(name, default)


def _opt_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    raise ValueError(f"Expected a number, got {value!r}")


@dataclass
class Activity:
    """A named category time can be logged against."""

    id: str
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None  # "#RRGGBB", uppercase
    created_at: int = 0  # epoch ms
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            icon=data.get("icon") or None,
            color=data.get("color") or None,
            created_at=_opt_int(_pick(data, "created_at")) or 0,
            updated_at=_opt_int(_pick(data, "updated_at")) or 0,
        )


@dataclass
class RecordItem:
    """A completed time span attributed to one activity.

    The timing fields are optional so the same type can carry a partial
    record (e.g. a remote row keyed by date + clock strings). After
    :func:`lyubi.derive.derive` all six of them are set.
    """

    id: str
    activity_id: str
    start: Optional[int] = None  # epoch ms
    end: Optional[int] = None  # epoch ms
    duration: Optional[int] = None  # whole seconds
    date: Optional[str] = None  # YYYY-MM-DD, local time
    start_time: Optional[str] = None  # HH:MM
    end_time: Optional[str] = None  # HH:MM
    remark: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0
    sync_status: SyncStatus = SyncStatus.LOCAL_ONLY

    def to_dict(self) -> Dict[str, Any]:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordItem":
        status = _pick(data, "sync_status")
        return cls(
            id=str(data["id"]),
            activity_id=str(_pick(data, "activity_id") or ""),
            start=_opt_int(data.get("start")),
            end=_opt_int(data.get("end")),
            duration=_opt_int(data.get("duration")),
            date=data.get("date") or None,
            start_time=_pick(data, "start_time") or None,
            end_time=_pick(data, "end_time") or None,
            remark=data.get("remark") or None,
            created_at=_opt_int(_pick(data, "created_at")) or 0,
            updated_at=_opt_int(_pick(data, "updated_at")) or 0,
            sync_status=SyncStatus(status) if status else SyncStatus.LOCAL_ONLY,
        )


@dataclass
class RunningRecord:
    """The single in-progress timer.

    ``start`` is the visible start, possibly transplanted onto another
    calendar date. ``real_start`` is the wall-clock instant the timer began
    and drives elapsed-time computation.
    """

    id: str
    activity_id: str
    start: int
    date_key: str
    real_start: Optional[int] = None
    remark: Optional[str] = None
    created_at: int = 0

    @property
    def base(self) -> int:
        """Instant elapsed time is measured from."""
        return self.real_start if self.real_start is not None else self.start

    def to_dict(self) -> Dict[str, Any]:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunningRecord":
        start = _opt_int(data["start"])
        if start is None:
            raise ValueError("Running record has no start")
        date_key = _pick(data, "date_key") or format_date_key(start)
        return cls(
            id=str(data["id"]),
            activity_id=str(_pick(data, "activity_id") or ""),
            start=start,
            date_key=date_key,
            real_start=_opt_int(_pick(data, "real_start")),
            remark=data.get("remark") or None,
            created_at=_opt_int(_pick(data, "created_at")) or 0,
        )


# === Remote phase results ===

T = TypeVar("T")


@dataclass
class Ok(Generic[T]):
    """Remote phase succeeded; ``value`` is the authoritative response."""

    value: T


@dataclass
class Err:
    """Remote phase failed; the optimistic local state is kept."""

    error: Exception
    context: str = ""


RemoteResult = Union[Ok[T], Err]
