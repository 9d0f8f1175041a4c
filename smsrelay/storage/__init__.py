"""Durable dedup storage."""

from smsrelay.storage.sqlite_dedup import (
    CALL_LOGS,
    CATEGORIES,
    MESSAGES,
    META_TABLE,
    NOTIFICATIONS,
    SQLiteDedupStore,
)
from smsrelay.storage.sqlite_tuning import SQLiteTuningOptions, apply_sqlite_tuning

__all__ = [
    "CALL_LOGS",
    "CATEGORIES",
    "MESSAGES",
    "META_TABLE",
    "NOTIFICATIONS",
    "SQLiteDedupStore",
    "SQLiteTuningOptions",
    "apply_sqlite_tuning",
]
