"""lyubi storage gateways.

Local-first: the SQLite cache mirrors every change; the Supabase store is
the eventually-consistent remote copy.
"""

from .base import LocalCache, RemoteStore, RemoteStoreError
from .local import DEFAULT_ACTIVITIES, SQLiteCache, default_activities

__all__ = [
    # Protocols and errors
    "LocalCache",
    "RemoteStore",
    "RemoteStoreError",
    # Implementations
    "SQLiteCache",
    # Defaults
    "DEFAULT_ACTIVITIES",
    "default_activities",
]
