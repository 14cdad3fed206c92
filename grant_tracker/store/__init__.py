"""
Grant storage.

- base: GrantStore interface, filters, interaction and crawl-log records
- memory: in-process store
- sqlite: SQLite store
- lifecycle: expiry and community-flagging policies
"""

from .base import (
    ActiveGrantFilter,
    CrawlLogEntry,
    GrantStore,
    InactiveCriteria,
    Interaction,
)
from .memory import MemoryGrantStore
from .sqlite import SQLiteGrantStore
from .lifecycle import ExpiredGrant, FlagResult, expire_grants, flag_grant


def open_store(path: str) -> GrantStore:
    """SQLite store at path; "memory" gives an in-process store."""
    if path == "memory":
        return MemoryGrantStore()
    return SQLiteGrantStore(path)


__all__ = [
    "ActiveGrantFilter",
    "CrawlLogEntry",
    "GrantStore",
    "InactiveCriteria",
    "Interaction",
    "MemoryGrantStore",
    "SQLiteGrantStore",
    "ExpiredGrant",
    "FlagResult",
    "expire_grants",
    "flag_grant",
    "open_store",
]
