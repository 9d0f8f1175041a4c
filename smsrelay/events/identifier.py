"""Stable content identifiers for reportable events."""

from __future__ import annotations

import hashlib

from smsrelay.events.models import ReportableEvent


def identify(event: ReportableEvent) -> str:
    """Return the hex SHA-256 of ``str(timestamp) + body``."""
    payload = f"{int(event.timestamp)}{event.body}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
