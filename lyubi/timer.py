"""Running-timer controller.

Idle or Running, with at most one ``RunningRecord`` mirrored to the local
cache. Finishing a timer turns it into a ``RecordItem`` and hands it to the
ledger's create path.
"""

import asyncio
import contextlib
import logging
import uuid
from datetime import date
from typing import Callable, Optional, Union

from lyubi.ledger import Ledger
from lyubi.storage.base import LocalCache
from lyubi.timeutils import date_key, is_future_day, now_ms, parse_date_key, transplant
from lyubi.types import RecordItem, RunningRecord
from lyubi.validation import ValidationError, optional_text

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]


def finish_running(running: RunningRecord, now: int) -> RecordItem:
    """Build the completed record for a timer stopped at ``now``.

    Elapsed time runs from ``real_start`` so a timer started on another
    calendar date still measures real time; ``end`` is laid out from the
    visible ``start``.
    """
    elapsed = max(1, (now - running.base) // 1000)
    return RecordItem(
        id=running.id,
        activity_id=running.activity_id,
        start=running.start,
        end=running.start + elapsed * 1000,
        duration=elapsed,
        date=running.date_key,
        remark=running.remark,
        created_at=running.created_at,
        updated_at=now,
    )


class TimerController:
    """Start/stop the single running timer.

    Args:
        ledger: Receives finished records through ``create_record``.
        cache: Local cache holding the running record across restarts.
        clock: Epoch-ms clock.
        on_tick: Called with the elapsed seconds once per tick while running.
        tick_seconds: Tick interval.
    """

    def __init__(
        self,
        ledger: Ledger,
        cache: LocalCache,
        clock: Callable[[], int] = now_ms,
        on_tick: Optional[TickCallback] = None,
        tick_seconds: float = 1.0,
    ):
        self._ledger = ledger
        self._cache = cache
        self._clock = clock
        self.on_tick = on_tick
        self.tick_seconds = tick_seconds
        self._running: Optional[RunningRecord] = cache.load_running_record()
        self._ticker: Optional[asyncio.Task] = None

    @property
    def running(self) -> Optional[RunningRecord]:
        return self._running

    @property
    def is_running(self) -> bool:
        return self._running is not None

    def elapsed_seconds(self, tick: Optional[int] = None) -> int:
        """Elapsed seconds of the running timer at ``tick`` (0 when idle)."""
        if self._running is None:
            return 0
        tick = tick if tick is not None else self._clock()
        return max(0, (tick - self._running.base) // 1000)

    def matches_date(self, day: str) -> bool:
        return self._running is not None and self._running.date_key == day

    async def start(
        self,
        activity_id: str,
        selected_date: Union[str, date, None] = None,
        remark: Optional[str] = None,
    ) -> RunningRecord:
        """Start a timer, auto-finishing the current one first.

        The visible start is today's clock time moved onto ``selected_date``
        (default: the ledger's selected date).

        Raises:
            ValidationError: No activity, a future or malformed date, or an
                unknown activity. Nothing changes in that case.
        """
        if not activity_id:
            raise ValidationError("Select an activity before starting the timer")
        day = selected_date or self._ledger.selected_date
        day = day if isinstance(day, str) else date_key(day)
        if parse_date_key(day) is None:
            raise ValidationError(f"Invalid date: {day}")
        now = self._clock()
        target = parse_date_key(day)
        if is_future_day(target, now=now):
            raise ValidationError("Cannot start a timer on a future date")
        activity = self._ledger.get_activity(activity_id)
        if activity is None:
            raise ValidationError("Selected activity does not exist")
        remark = optional_text(remark, "remark")

        if self._running is not None:
            logger.info(f"Auto-finishing running timer {self._running.id[:8]}")
            await self._finish(now)
        # Another start may have installed a timer while the insert was awaited
        while self._running is not None:
            logger.info(f"Auto-finishing interleaved timer {self._running.id[:8]}")
            await self._finish(self._clock())

        running = RunningRecord(
            id=str(uuid.uuid4()),
            activity_id=activity.id,
            start=transplant(target, now),
            real_start=now,
            date_key=day,
            remark=remark,
            created_at=now,
        )
        self._running = running
        self._cache.save_running_record(running)
        self._start_ticker()
        logger.info(f"Timer started for {activity.name} on {day}")
        return running

    async def stop(self) -> Optional[RecordItem]:
        """Finish the running timer; None when idle."""
        if self._running is None:
            return None
        return await self._finish(self._clock())

    async def _finish(self, now: int) -> RecordItem:
        record = finish_running(self._running, now)
        # Idle before the remote phase
        self._running = None
        self._cache.save_running_record(None)
        await self._stop_ticker()
        return await self._ledger.create_record(record)

    # === Ticker ===

    def _start_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            return
        self._ticker = asyncio.get_running_loop().create_task(self._tick_loop())

    async def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is None or ticker.done():
            return
        ticker.cancel()
        if ticker is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await ticker

    async def _tick_loop(self) -> None:
        while self._running is not None:
            await asyncio.sleep(self.tick_seconds)
            if self._running is None:
                break
            if self.on_tick is None:
                continue
            try:
                self.on_tick(self.elapsed_seconds())
            except Exception:
                logger.exception("on_tick callback failed")

    async def resume(self) -> None:
        """Start ticking for a timer restored from the local cache."""
        if self._running is not None:
            self._start_ticker()

    async def aclose(self) -> None:
        await self._stop_ticker()

    async def __aenter__(self) -> "TimerController":
        await self.resume()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
