"""Local-time helpers.

All conversions here use the machine's local timezone. Epoch values are
integer milliseconds; date keys are ``YYYY-MM-DD`` and clock strings
``HH:MM`` (or ``HH:MM:SS`` where noted).
"""

import time
from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[date, datetime, int]


def now_ms() -> int:
    """Current wall-clock instant in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def to_epoch_ms(value: datetime) -> int:
    """Convert a (naive = local) datetime to epoch milliseconds."""
    return int(round(value.timestamp() * 1000))


def from_epoch_ms(ms: int) -> datetime:
    """Convert epoch milliseconds to a naive local datetime."""
    return datetime.fromtimestamp(ms / 1000)


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return from_epoch_ms(value).date()


def date_key(value: DateLike) -> str:
    """Calendar date key ``YYYY-MM-DD`` in local time."""
    return _as_date(value).strftime("%Y-%m-%d")


def parse_date_key(key: str) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` key, or return None when malformed."""
    try:
        return datetime.strptime(key, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def clock(ms: int, seconds: bool = False) -> str:
    """Local clock string ``HH:MM`` (``HH:MM:SS`` with ``seconds=True``)."""
    return from_epoch_ms(ms).strftime("%H:%M:%S" if seconds else "%H:%M")


def pad_time(value: str) -> str:
    """Pad ``HH:MM`` to ``HH:MM:SS``."""
    return f"{value}:00" if len(value) == 5 else value


def parse_local(day: Optional[str], clock_str: Optional[str]) -> Optional[int]:
    """Compose a local instant from a date key and a clock string.

    Accepts ``HH:MM`` and ``HH:MM:SS``. Returns None when either part is
    missing or the composition does not parse.
    """
    if not day or not clock_str:
        return None
    try:
        parsed = datetime.strptime(f"{day}T{pad_time(clock_str)}", "%Y-%m-%dT%H:%M:%S")
    except (TypeError, ValueError):
        return None
    return to_epoch_ms(parsed)


def is_future_day(value: DateLike, now: Optional[int] = None) -> bool:
    """Whether ``value`` is strictly after today (day granularity)."""
    today = _as_date(now if now is not None else now_ms())
    return _as_date(value) > today


def transplant(day: DateLike, instant_ms: int) -> int:
    """Move the time-of-day of ``instant_ms`` onto the calendar ``day``."""
    moment = from_epoch_ms(instant_ms)
    return to_epoch_ms(datetime.combine(_as_date(day), moment.time()))
