"""Transient sync-failure banner."""

import logging
from typing import Callable, List, Optional

from lyubi.timeutils import now_ms

logger = logging.getLogger(__name__)

DEFAULT_SYNC_MESSAGE = "Cloud sync failed, using local data."
ACTIVITY_SYNC_MESSAGE = "Activity saved locally, but cloud sync failed."


class SyncNotice:
    """Holds the most recent sync problem for a limited time.

    A new ``show`` replaces the current message and restarts the expiry.
    ``message`` is None once ``duration`` seconds have passed.
    """

    def __init__(self, duration: float = 4.0, clock: Callable[[], int] = now_ms):
        self.duration = duration
        self._clock = clock
        self._message: Optional[str] = None
        self._expires_at = 0
        self.history: List[str] = []

    def show(self, message: Optional[str] = None) -> None:
        text = message or DEFAULT_SYNC_MESSAGE
        self._message = text
        self._expires_at = self._clock() + int(self.duration * 1000)
        self.history.append(text)
        logger.debug(f"Sync notice: {text}")

    def clear(self) -> None:
        self._message = None
        self._expires_at = 0

    @property
    def message(self) -> Optional[str]:
        if self._message is not None and self._clock() >= self._expires_at:
            self.clear()
        return self._message

    def __bool__(self) -> bool:
        return self.message is not None
