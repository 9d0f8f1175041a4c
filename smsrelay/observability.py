"""Runtime counters for the relay."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class RelayMetrics:
    """In-memory counters shared by the poll loop and the dispatcher."""

    started_at_ms: int = field(default_factory=now_ms)
    cycles_total: int = 0
    notifications_enqueued: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    duplicates_skipped: int = 0
    record_failures: int = 0
    malformed_records: int = 0
    baseline_records: int = 0
    enqueued_by_kind: Counter[str] = field(default_factory=Counter)
    source_failures: Counter[str] = field(default_factory=Counter)

    def record_cycle(self) -> None:
        self.cycles_total += 1

    def record_enqueued(self, kind: str) -> None:
        self.notifications_enqueued += 1
        self.enqueued_by_kind[str(kind)] += 1

    def record_sent(self) -> None:
        self.notifications_sent += 1

    def record_send_failure(self) -> None:
        self.notifications_failed += 1

    def record_duplicate(self) -> None:
        self.duplicates_skipped += 1

    def record_storage_failure(self) -> None:
        self.record_failures += 1

    def record_malformed(self) -> None:
        self.malformed_records += 1

    def record_source_failure(self, source: str) -> None:
        self.source_failures[str(source)] += 1

    def snapshot(self) -> dict[str, Any]:
        return {
            "uptime_ms": max(0, now_ms() - self.started_at_ms),
            "cycles_total": self.cycles_total,
            "notifications_enqueued": self.notifications_enqueued,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "duplicates_skipped": self.duplicates_skipped,
            "record_failures": self.record_failures,
            "malformed_records": self.malformed_records,
            "baseline_records": self.baseline_records,
            "enqueued_by_kind": dict(self.enqueued_by_kind),
            "source_failures": dict(self.source_failures),
        }
