"""Daily summary and timeline projections.

Read-only views over a ledger snapshot; nothing here mutates records.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from lyubi.derive import record_date_key, sort_chronologically
from lyubi.timeutils import clock, from_epoch_ms, now_ms
from lyubi.types import Activity, RecordItem, RunningRecord

DELETED_ACTIVITY = "Deleted activity"
MINUTES_IN_DAY = 24 * 60


@dataclass
class ActivityTotal:
    activity_id: str
    label: str
    seconds: int
    color: Optional[str] = None


@dataclass
class TimelineEntry:
    record: RecordItem
    label: str
    start_pct: float  # position on a 24h bar, 0-100
    width_pct: float


def format_duration(seconds: int) -> str:
    """Compact duration: ``0m``, ``45m``, ``2h``, ``1h30m``."""
    if seconds <= 0:
        return "0m"
    hours, rest = divmod(int(seconds), 3600)
    minutes = rest // 60
    if hours and minutes:
        return f"{hours}h{minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def format_duration_hms(seconds: int) -> str:
    """Clock-style duration ``HH:MM:SS``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def activity_label(activity: Optional[Activity]) -> str:
    if activity is None:
        return DELETED_ACTIVITY
    return f"{activity.icon} {activity.name}" if activity.icon else activity.name


def daily_totals(
    records: Iterable[RecordItem],
    activities: Iterable[Activity],
    day: str,
    running: Optional[RunningRecord] = None,
    now: Optional[int] = None,
) -> List[ActivityTotal]:
    """Seconds per activity on ``day``, largest first.

    A running timer belonging to ``day`` contributes its elapsed time.
    """
    by_id = {a.id: a for a in activities}
    totals: Dict[str, int] = {}
    for record in records:
        if record_date_key(record) != day:
            continue
        totals[record.activity_id] = totals.get(record.activity_id, 0) + (record.duration or 0)

    if running is not None and running.date_key == day:
        tick = now if now is not None else now_ms()
        elapsed = max(0, (tick - running.base) // 1000)
        totals[running.activity_id] = totals.get(running.activity_id, 0) + elapsed

    result = [
        ActivityTotal(
            activity_id=activity_id,
            label=activity_label(by_id.get(activity_id)),
            seconds=seconds,
            color=by_id[activity_id].color if activity_id in by_id else None,
        )
        for activity_id, seconds in totals.items()
    ]
    return sorted(result, key=lambda t: (-t.seconds, t.label))


def _minutes_since_midnight(ms: int) -> float:
    moment = from_epoch_ms(ms)
    return moment.hour * 60 + moment.minute + moment.second / 60


def timeline(
    records: Iterable[RecordItem], activities: Iterable[Activity], day: str
) -> List[TimelineEntry]:
    """Chronological records of ``day`` placed on a 24h bar."""
    by_id = {a.id: a for a in activities}
    entries = []
    for record in sort_chronologically(r for r in records if record_date_key(r) == day):
        start_min = min(MINUTES_IN_DAY, max(0.0, _minutes_since_midnight(record.start)))
        end = record.end if record.end is not None else record.start + (record.duration or 0) * 1000
        end_min = min(MINUTES_IN_DAY, max(0.0, _minutes_since_midnight(end)))
        if end_min < start_min:
            # Spills past midnight
            end_min = MINUTES_IN_DAY
        label = (
            f"{activity_label(by_id.get(record.activity_id))} "
            f"{clock(record.start)}–{clock(end)} ({format_duration(record.duration or 0)})"
        )
        if record.remark:
            label += f" · {record.remark}"
        entries.append(
            TimelineEntry(
                record=record,
                label=label,
                start_pct=start_min / MINUTES_IN_DAY * 100,
                width_pct=(end_min - start_min) / MINUTES_IN_DAY * 100,
            )
        )
    return entries
