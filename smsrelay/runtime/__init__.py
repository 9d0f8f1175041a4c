"""Poll loop and relay orchestration."""

from smsrelay.runtime.poller import BaselineSummary, PollLoop, PollState
from smsrelay.runtime.service import RelayService, apply_retention, build_sink

__all__ = [
    "BaselineSummary",
    "PollLoop",
    "PollState",
    "RelayService",
    "apply_retention",
    "build_sink",
]
