"""SQLite pragmas for the small single-writer dedup database."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

_JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL"}
_SYNCHRONOUS_LEVELS = {"OFF", "NORMAL", "FULL", "EXTRA"}


@dataclass(slots=True)
class SQLiteTuningOptions:
    """Defaults suited to a phone's flash storage and one writer."""

    busy_timeout_ms: int = 3000
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"

    @classmethod
    def from_config(cls, storage: Any) -> SQLiteTuningOptions:
        defaults = cls()
        return cls(
            busy_timeout_ms=int(getattr(storage, "busy_timeout_ms", defaults.busy_timeout_ms)),
            journal_mode=str(getattr(storage, "journal_mode", defaults.journal_mode)),
            synchronous=str(getattr(storage, "synchronous", defaults.synchronous)),
        )


def apply_sqlite_tuning(
    conn: sqlite3.Connection,
    *,
    options: SQLiteTuningOptions | None = None,
) -> dict[str, Any]:
    """Apply pragmas and return what the engine actually accepted."""

    tuning = options or SQLiteTuningOptions()
    applied: dict[str, Any] = {}
    cur = conn.cursor()

    busy_timeout_ms = max(0, int(tuning.busy_timeout_ms))
    cur.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    applied["busy_timeout_ms"] = busy_timeout_ms

    journal_mode = _pick(tuning.journal_mode, valid=_JOURNAL_MODES, fallback="WAL")
    cur.execute(f"PRAGMA journal_mode = {journal_mode}")
    row = cur.fetchone()
    # In-memory databases report "memory" regardless of the request.
    applied["journal_mode"] = str(row[0]).upper() if row and row[0] is not None else journal_mode

    synchronous = _pick(tuning.synchronous, valid=_SYNCHRONOUS_LEVELS, fallback="NORMAL")
    cur.execute(f"PRAGMA synchronous = {synchronous}")
    applied["synchronous"] = synchronous

    conn.commit()
    return applied


def _pick(value: object, *, valid: set[str], fallback: str) -> str:
    text = str(value or "").strip().upper()
    return text if text in valid else fallback
