"""Logging setup for lyubi.

Two logs live under ``<data dir>/logs``:

- ``local-YYYY-MM-DD.log``: the ``lyubi`` logger hierarchy
- ``ledger-events-YYYY-MM-DD.log``: one line per ledger/sync event, easy to grep
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from lyubi.utils import get_lyubi_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Data directory chosen by setup_lyubi_logging; None follows get_lyubi_home()
_log_home: Optional[Path] = None


def _log_dir() -> Path:
    log_dir = (_log_home or get_lyubi_home()) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def setup_lyubi_logging(level: str = "INFO", home: Optional[Path] = None) -> logging.Logger:
    """Configure the ``lyubi`` logger with a dated file handler.

    ``home`` is the data directory holding ``logs/`` (default: the lyubi
    home); the ledger event log follows it too. Safe to call more than once.
    DEBUG also logs to the console.
    """
    global _log_home
    if home is not None:
        _log_home = Path(home).expanduser()

    logger = logging.getLogger("lyubi")
    log_level = getattr(logging, str(level).upper(), None)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    logger.setLevel(log_level)

    if any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return logger

    today = datetime.now().strftime("%Y-%m-%d")
    file_handler = logging.FileHandler(_log_dir() / f"local-{today}.log", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    if log_level == logging.DEBUG:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console)

    return logger


def log_ledger_event(event_type: str, details: str) -> None:
    """Append one event line to the ledger event log."""
    today = datetime.now().strftime("%Y-%m-%d")
    timestamp = datetime.now().isoformat(timespec="seconds")
    path = _log_dir() / f"ledger-events-{today}.log"
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(f"{timestamp} | {event_type} | {details}\n")
    except OSError as e:
        logging.getLogger(__name__).debug(f"Could not write ledger event: {e}")


def log_sync(direction: str, scope: str, ok: bool, error: Optional[str] = None) -> None:
    """Log a read/write against the remote store (direction: pull|push)."""
    details = f"direction={direction} | scope={scope} | ok={ok}"
    if error:
        details += f" | error={error[:200]}"
    log_ledger_event("sync", details)


def log_record_write(operation: str, record_id: str, ok: bool, error: Optional[str] = None) -> None:
    """Log a record/activity write (operation: insert|update|delete|upsert)."""
    short_id = record_id[:8] + "..." if len(record_id) > 8 else record_id
    details = f"op={operation} | id={short_id} | ok={ok}"
    if error:
        details += f" | error={error[:200]}"
    log_ledger_event("write", details)
