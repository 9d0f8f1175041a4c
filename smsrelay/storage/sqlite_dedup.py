"""SQLite dedup store: versioned schema plus identifier tables per event category."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Mapping
from pathlib import Path

from loguru import logger

from smsrelay.errors import DuplicateRecordFault, StorageFault
from smsrelay.storage.sqlite_tuning import SQLiteTuningOptions, apply_sqlite_tuning

META_TABLE = "client_meta"
MESSAGES = "messages"
CALL_LOGS = "call_logs"
NOTIFICATIONS = "notifications"

CATEGORIES = (MESSAGES, CALL_LOGS, NOTIFICATIONS)


class SQLiteDedupStore:
    """Tracks which event identifiers have already been dispatched.

    The connection is meant to be owned by a single task; no locking is done
    here. Schema versions live in ``client_meta`` under the ``version`` key and
    only ever move forward.
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str | Path,
        *,
        tuning_options: SQLiteTuningOptions | None = None,
    ) -> None:
        self.db_path = Path(db_path)
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._tuning_applied = apply_sqlite_tuning(self._conn, options=tuning_options)
        except (OSError, sqlite3.Error) as e:
            raise StorageFault(f"cannot open dedup store {self.db_path}: {e}") from e

    def close(self) -> None:
        self._conn.close()

    @property
    def tuning(self) -> dict[str, object]:
        return dict(self._tuning_applied)

    # -- schema -----------------------------------------------------------

    def is_initialized(self) -> bool:
        try:
            cur = self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                (META_TABLE,),
            )
            return cur.fetchone() is not None
        except sqlite3.Error as e:
            raise StorageFault(f"cannot inspect schema: {e}") from e

    def schema_version(self) -> int | None:
        if not self.is_initialized():
            return None
        try:
            cur = self._conn.execute(
                f'SELECT value FROM "{META_TABLE}" WHERE key = ?',
                ("version",),
            )
            row = cur.fetchone()
        except sqlite3.Error as e:
            raise StorageFault(f"cannot read schema version: {e}") from e
        if row is None:
            raise StorageFault(f"{META_TABLE} has no version row")
        try:
            return int(row[0])
        except (TypeError, ValueError) as e:
            raise StorageFault(f"invalid schema version {row[0]!r}") from e

    def initialize(
        self,
        baseline: Mapping[str, Iterable[tuple[str, int]]] | None = None,
    ) -> dict[str, int]:
        """Create the current schema on an empty database, seeding ``baseline`` rows.

        Schema, baseline rows and the version row are written in one
        transaction; on any failure nothing is kept and the store stays
        uninitialized. Returns inserted row counts per category.
        """
        if self.is_initialized():
            raise RuntimeError("dedup store is already initialized")
        seeded = self._apply_migrations(from_version=0, baseline=baseline or {})
        logger.info(f"Dedup store initialized at {self.db_path} (schema v{self.SCHEMA_VERSION})")
        return seeded

    def migrate(self) -> int:
        """Bring an existing database up to ``SCHEMA_VERSION``; returns the final version."""
        current = self.schema_version()
        if current is None:
            raise RuntimeError("dedup store is not initialized")
        if current > self.SCHEMA_VERSION:
            raise StorageFault(
                f"dedup store schema v{current} is newer than supported v{self.SCHEMA_VERSION}"
            )
        if current < self.SCHEMA_VERSION:
            self._apply_migrations(from_version=current)
            logger.info(f"Dedup store migrated v{current} -> v{self.SCHEMA_VERSION}")
        return self.SCHEMA_VERSION

    def _apply_migrations(
        self,
        *,
        from_version: int,
        baseline: Mapping[str, Iterable[tuple[str, int]]] | None = None,
    ) -> dict[str, int]:
        steps = {1: self._migrate_to_v1}
        seeded: dict[str, int] = {}
        try:
            cur = self._conn.cursor()
            cur.execute("BEGIN")
            version = from_version
            for target in range(from_version + 1, self.SCHEMA_VERSION + 1):
                steps[target](cur)
                version = target
            for category, rows in (baseline or {}).items():
                seeded[category] = self._insert_baseline(cur, category, rows)
            self._set_version(cur, version)
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageFault(f"schema setup failed: {e}") from e
        except Exception:
            self._conn.rollback()
            raise
        return seeded

    def _insert_baseline(
        self,
        cur: sqlite3.Cursor,
        category: str,
        rows: Iterable[tuple[str, int]],
    ) -> int:
        table = _table(category)
        before = self._conn.total_changes
        cur.executemany(
            f'INSERT OR IGNORE INTO "{table}" (identifier, timestamp) VALUES (?, ?)',
            [(str(identifier), int(ts)) for identifier, ts in rows],
        )
        return self._conn.total_changes - before

    @staticmethod
    def _migrate_to_v1(cur: sqlite3.Cursor) -> None:
        for table in (CALL_LOGS, MESSAGES, NOTIFICATIONS):
            cur.execute(
                f"""
                CREATE TABLE "{table}" (
                  "identifier" TEXT NOT NULL,
                  "timestamp" INTEGER NOT NULL,
                  PRIMARY KEY("identifier")
                )
                """
            )
        cur.execute(
            f"""
            CREATE TABLE "{META_TABLE}" (
              "key" TEXT NOT NULL,
              "value" TEXT NOT NULL,
              PRIMARY KEY("key")
            )
            """
        )

    @staticmethod
    def _set_version(cur: sqlite3.Cursor, version: int) -> None:
        cur.execute(
            f'INSERT OR REPLACE INTO "{META_TABLE}" (key, value) VALUES (?, ?)',
            ("version", str(int(version))),
        )

    # -- dedup records ----------------------------------------------------

    def contains(self, category: str, identifier: str) -> bool:
        table = _table(category)
        try:
            cur = self._conn.execute(
                f'SELECT 1 FROM "{table}" WHERE identifier = ? LIMIT 1',
                (identifier,),
            )
            return cur.fetchone() is not None
        except sqlite3.Error as e:
            raise StorageFault(f"lookup in {table} failed: {e}") from e

    def record(self, category: str, identifier: str, timestamp: int) -> None:
        table = _table(category)
        try:
            self._conn.execute(
                f'INSERT INTO "{table}" (identifier, timestamp) VALUES (?, ?)',
                (identifier, int(timestamp)),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise DuplicateRecordFault(f"{identifier} already recorded in {table}") from e
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageFault(f"insert into {table} failed: {e}") from e

    def count(self, category: str) -> int:
        table = _table(category)
        try:
            row = self._conn.execute(f'SELECT COUNT(1) FROM "{table}"').fetchone()
        except sqlite3.Error as e:
            raise StorageFault(f"count on {table} failed: {e}") from e
        return int(row[0]) if row and row[0] is not None else 0

    def prune(self, category: str, *, before_ts: int) -> int:
        """Delete records whose event timestamp is before ``before_ts``; returns deleted row count."""
        table = _table(category)
        try:
            cur = self._conn.execute(
                f'DELETE FROM "{table}" WHERE timestamp < ?',
                (int(before_ts),),
            )
            self._conn.commit()
            return int(cur.rowcount)
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageFault(f"prune on {table} failed: {e}") from e


def _table(category: str) -> str:
    name = str(category or "").strip()
    if name not in CATEGORIES:
        raise ValueError(f"unknown dedup category: {category!r}")
    return name
