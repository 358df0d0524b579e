"""
lyubi CLI - track time against activities.

Usage:
    lyubi activities
    lyubi activity add NAME [--icon I] [--color C]
    lyubi activity rm ACTIVITY
    lyubi start ACTIVITY [--date D] [--remark R]
    lyubi stop
    lyubi status
    lyubi add ACTIVITY START END [--date D] [--remark R]
    lyubi edit RECORD [--activity A] [--start HH:MM] [--end HH:MM] [--date D] [--remark R]
    lyubi rm RECORD
    lyubi summary [--date D] [--json]
    lyubi timeline [--date D]
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from typing import Optional

from lyubi.config import Settings, get_settings
from lyubi.ledger import Ledger
from lyubi.logging_config import setup_lyubi_logging
from lyubi.notices import SyncNotice
from lyubi.storage import RemoteStoreError, SQLiteCache
from lyubi.storage.cloud import connect_remote
from lyubi.summary import (
    activity_label,
    daily_totals,
    format_duration,
    format_duration_hms,
    timeline,
)
from lyubi.timer import TimerController
from lyubi.timeutils import clock, now_ms, parse_date_key
from lyubi.types import Activity, RecordItem, SyncStatus
from lyubi.validation import ValidationError

logger = logging.getLogger(__name__)

BAR_WIDTH = 48  # 30-minute slots


@dataclass
class Session:
    ledger: Ledger
    timer: TimerController


async def open_session(settings: Settings, day: Optional[str] = None) -> Session:
    """Build the ledger and timer, then pull remote state."""
    cache = SQLiteCache(settings.cache_path)
    notice = SyncNotice(duration=settings.notice_seconds)
    try:
        remote = await connect_remote(settings)
    except RemoteStoreError as e:
        logger.warning(f"Running offline: {e}")
        notice.show()
        remote = None
    ledger = Ledger(cache, remote=remote, notice=notice, selected_date=day)
    await ledger.bootstrap()
    return Session(ledger=ledger, timer=TimerController(ledger, cache))


def resolve_activity(ledger: Ledger, ref: str) -> Activity:
    activity = ledger.find_activity(ref)
    if activity is None:
        matches = [a for a in ledger.activities if a.id.startswith(ref)]
        if len(matches) != 1:
            raise ValidationError(f"Unknown activity: {ref}")
        activity = matches[0]
    return activity


def resolve_record(ledger: Ledger, ref: str) -> RecordItem:
    record = ledger.get_record(ref)
    if record is not None:
        return record
    matches = [r for r in ledger.records if r.id.startswith(ref)]
    if len(matches) != 1:
        raise ValidationError(f"Unknown or ambiguous record: {ref}")
    return matches[0]


def format_record(record: RecordItem, ledger: Ledger) -> str:
    label = activity_label(ledger.get_activity(record.activity_id))
    marker = "" if record.sync_status == SyncStatus.SYNCED else " (local)"
    line = (
        f"{record.id[:8]}  {record.start_time}–{record.end_time}  "
        f"{format_duration(record.duration or 0):>6}  {label}{marker}"
    )
    if record.remark:
        line += f" · {record.remark}"
    return line


def draw_bar(session: Session, day: str) -> str:
    slots = [" "] * BAR_WIDTH
    for entry in timeline(session.ledger.records, session.ledger.activities, day):
        first = int(entry.start_pct / 100 * BAR_WIDTH)
        last = max(first + 1, int((entry.start_pct + entry.width_pct) / 100 * BAR_WIDTH + 0.5))
        for i in range(first, min(last, BAR_WIDTH)):
            slots[i] = "█"
    return "|" + "".join(slots) + "|"


# === Commands ===


async def cmd_activities(args, s: Session):
    for activity in s.ledger.activities:
        color = activity.color or ""
        print(f"{activity.id[:8]}  {activity_label(activity):<24} {color}")


async def cmd_activity(args, s: Session):
    if args.activity_action == "add":
        activity = await s.ledger.create_activity(args.name, icon=args.icon, color=args.color)
        print(f"✓ Added activity {activity_label(activity)} ({activity.id[:8]})")
    elif args.activity_action == "rm":
        activity = resolve_activity(s.ledger, args.activity)
        removed = await s.ledger.delete_activity(activity.id)
        print(f"✓ Deleted {activity_label(activity)} and {removed} record(s)")


async def cmd_start(args, s: Session):
    activity = resolve_activity(s.ledger, args.activity)
    running = await s.timer.start(activity.id, selected_date=args.date, remark=args.remark)
    print(f"✓ Started {activity_label(activity)} at {clock(running.start)} on {running.date_key}")


async def cmd_stop(args, s: Session):
    record = await s.timer.stop()
    if record is None:
        print("No timer running.")
        return
    print(f"✓ Stopped: {format_record(record, s.ledger)}")


async def cmd_status(args, s: Session):
    running = s.timer.running
    if running is None:
        print("No timer running.")
        return
    label = activity_label(s.ledger.get_activity(running.activity_id))
    print(f"Running: {label} · {format_duration_hms(s.timer.elapsed_seconds())} (since {clock(running.start)}, {running.date_key})")


async def cmd_add(args, s: Session):
    activity = resolve_activity(s.ledger, args.activity)
    record = await s.ledger.add_manual_entry(
        activity.id, args.date or s.ledger.selected_date, args.start, args.end, remark=args.remark
    )
    print(f"✓ Added: {format_record(record, s.ledger)}")


async def cmd_edit(args, s: Session):
    record = resolve_record(s.ledger, args.record)
    changes = {}
    if args.activity:
        changes["activity_id"] = resolve_activity(s.ledger, args.activity).id
    if args.date:
        changes["date"] = args.date
    if args.start:
        changes["start_time"] = args.start
    if args.end:
        changes["end_time"] = args.end
    if args.remark is not None:
        changes["remark"] = args.remark
    if not changes:
        print("Nothing to change.")
        return
    updated = await s.ledger.update_record(record.id, **changes)
    print(f"✓ Updated: {format_record(updated, s.ledger)}")


async def cmd_rm(args, s: Session):
    record = resolve_record(s.ledger, args.record)
    await s.ledger.delete_record(record.id)
    print(f"✓ Deleted record {record.id[:8]}")


async def cmd_summary(args, s: Session):
    day = s.ledger.selected_date
    totals = daily_totals(
        s.ledger.records, s.ledger.activities, day, running=s.timer.running, now=now_ms()
    )
    if args.json:
        payload = {
            "date": day,
            "total_seconds": sum(t.seconds for t in totals),
            "activities": [
                {"activity_id": t.activity_id, "label": t.label, "seconds": t.seconds}
                for t in totals
            ],
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    print(f"{day} · {format_duration(sum(t.seconds for t in totals))}")
    for total in totals:
        print(f"  {format_duration(total.seconds):>7}  {total.label}")


async def cmd_timeline(args, s: Session):
    day = s.ledger.selected_date
    print(f"{day}  {draw_bar(s, day)}")
    for record in s.ledger.records_for_date(day):
        print(f"  {format_record(record, s.ledger)}")


COMMANDS = {
    "activities": cmd_activities,
    "activity": cmd_activity,
    "start": cmd_start,
    "stop": cmd_stop,
    "status": cmd_status,
    "add": cmd_add,
    "edit": cmd_edit,
    "rm": cmd_rm,
    "summary": cmd_summary,
    "timeline": cmd_timeline,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lyubi", description="Personal time-tracking ledger")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("activities", help="List activities")

    activity = sub.add_parser("activity", help="Manage activities")
    activity_sub = activity.add_subparsers(dest="activity_action", required=True)
    add_activity = activity_sub.add_parser("add", help="Create an activity")
    add_activity.add_argument("name")
    add_activity.add_argument("--icon")
    add_activity.add_argument("--color")
    rm_activity = activity_sub.add_parser("rm", help="Delete an activity and its records")
    rm_activity.add_argument("activity")

    start = sub.add_parser("start", help="Start a timer")
    start.add_argument("activity", help="Activity id, id prefix or name")
    start.add_argument("--date", help="YYYY-MM-DD (default: today)")
    start.add_argument("--remark")

    sub.add_parser("stop", help="Stop the running timer")
    sub.add_parser("status", help="Show the running timer")

    add = sub.add_parser("add", help="Add a manual entry")
    add.add_argument("activity")
    add.add_argument("start", help="HH:MM")
    add.add_argument("end", help="HH:MM")
    add.add_argument("--date", help="YYYY-MM-DD (default: today)")
    add.add_argument("--remark")

    edit = sub.add_parser("edit", help="Edit a record")
    edit.add_argument("record", help="Record id or id prefix")
    edit.add_argument("--activity")
    edit.add_argument("--date")
    edit.add_argument("--start", help="HH:MM")
    edit.add_argument("--end", help="HH:MM")
    edit.add_argument("--remark")

    rm = sub.add_parser("rm", help="Delete a record")
    rm.add_argument("record")

    summary = sub.add_parser("summary", help="Daily totals per activity")
    summary.add_argument("--date")
    summary.add_argument("--json", action="store_true")

    tl = sub.add_parser("timeline", help="Daily timeline")
    tl.add_argument("--date")

    return parser


async def run(args, settings: Settings) -> int:
    day = getattr(args, "date", None)
    if day and parse_date_key(day) is None:
        print(f"✗ Invalid date: {day}")
        return 1
    session = await open_session(settings, day=day)
    try:
        await COMMANDS[args.command](args, session)
    except ValidationError as e:
        print(f"✗ {e}")
        return 1
    finally:
        await session.timer.aclose()
        if session.ledger.notice.message:
            print(f"⚠ {session.ledger.notice.message}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_lyubi_logging(settings.log_level, home=settings.home)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
