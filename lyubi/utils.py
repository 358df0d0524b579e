"""Shared utility helpers for lyubi."""

import os
from pathlib import Path


def get_lyubi_home() -> Path:
    """Return the lyubi data directory.

    Resolution order:
    1. ``LYUBI_DATA_DIR`` environment variable
    2. ``~/.lyubi``
    """
    data_dir = os.environ.get("LYUBI_DATA_DIR")
    if data_dir:
        return Path(data_dir).expanduser()
    return Path.home() / ".lyubi"
