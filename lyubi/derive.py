"""Record field derivation and date-scoped merging.

A record may arrive with only some of its timing fields: a remote row is
keyed by date + clock strings, a form gives epoch values, a legacy cache
entry may lack the display strings. ``derive`` fills in the rest, always
preferring numeric fields over string-derived ones.

Fallback order, first present wins:

    start       start -> parse_local(date, start_time) -> now
    end         end -> parse_local(date, end_time) -> start + duration*1000 -> start
    duration    recomputed: max(1, floor(max(0, end - start) / 1000))
    date        date -> date_key(start)
    start_time  start_time -> clock(start)
    end_time    end_time -> clock(end)
"""

from dataclasses import replace
from typing import Iterable, List, Optional

from lyubi.timeutils import clock, date_key, now_ms, parse_local
from lyubi.types import RecordItem


def span_seconds(start: int, end: int) -> int:
    """Whole seconds between two instants, clamped to at least 1."""
    return max(1, max(0, end - start) // 1000)


def derive(partial: RecordItem, now: Optional[int] = None) -> RecordItem:
    """Return ``partial`` with all six timing fields filled in."""
    start = partial.start
    if start is None:
        start = parse_local(partial.date, partial.start_time)
    if start is None:
        start = now if now is not None else now_ms()

    end = partial.end
    if end is None:
        end = parse_local(partial.date, partial.end_time)
    if end is None:
        end = start + partial.duration * 1000 if partial.duration else start

    return replace(
        partial,
        start=start,
        end=end,
        duration=span_seconds(start, end),
        date=partial.date or date_key(start),
        start_time=partial.start_time or clock(start),
        end_time=partial.end_time or clock(end),
    )


def ensure_derived(records: Iterable[RecordItem], now: Optional[int] = None) -> List[RecordItem]:
    return [derive(r, now=now) for r in records]


def record_date_key(record: RecordItem) -> str:
    """Date key of a record; empty when it has neither date nor start."""
    if record.date:
        return record.date
    if record.start is not None:
        return date_key(record.start)
    return ""


def replace_for_date(
    all_records: Iterable[RecordItem],
    day: str,
    day_records: Iterable[RecordItem],
    now: Optional[int] = None,
) -> List[RecordItem]:
    """Make ``day_records`` the complete record set for ``day``.

    Records of other dates are returned untouched, followed by the derived
    ``day_records``. Callers needing chronological order must sort.
    """
    derived = ensure_derived(day_records, now=now)
    others = [r for r in all_records if record_date_key(r) != day]
    return others + derived


def records_for_date(records: Iterable[RecordItem], day: str) -> List[RecordItem]:
    return [r for r in records if record_date_key(r) == day]


def sort_chronologically(records: Iterable[RecordItem]) -> List[RecordItem]:
    return sorted(records, key=lambda r: r.start if r.start is not None else 0)
