"""Acquisition sources for device feeds."""

from smsrelay.sources.base import DeviceSource
from smsrelay.sources.mock_source import MockSource
from smsrelay.sources.termux import TermuxSource

__all__ = ["DeviceSource", "MockSource", "TermuxSource"]
