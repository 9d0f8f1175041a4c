"""In-memory source used for local simulation and tests."""

from __future__ import annotations

import json
from typing import Any

from smsrelay.sources.base import DeviceSource

MESSAGES = "messages"
CALL_LOG = "call_log"
BATTERY = "battery"
DEVICE_INFO = "device_info"


class MockSource(DeviceSource):
    """Serves canned payloads; an ``Exception`` value is raised instead of returned."""

    name = "mock"

    def __init__(
        self,
        *,
        messages: Any = None,
        call_log: Any = None,
        battery: Any = None,
        device_info: Any = None,
    ) -> None:
        self._payloads: dict[str, Any] = {
            MESSAGES: [] if messages is None else messages,
            CALL_LOG: [] if call_log is None else call_log,
            BATTERY: battery if battery is not None else {"percentage": 80, "status": "DISCHARGING"},
            DEVICE_INFO: device_info if device_info is not None else {"sim_state": "ready"},
        }
        self.calls: dict[str, int] = {key: 0 for key in self._payloads}

    def set(self, feed: str, payload: Any) -> None:
        """Replace the payload served for ``feed``."""
        if feed not in self._payloads:
            raise KeyError(f"unknown feed: {feed}")
        self._payloads[feed] = payload

    async def fetch_messages(self) -> str:
        return self._serve(MESSAGES)

    async def fetch_call_log(self) -> str:
        return self._serve(CALL_LOG)

    async def fetch_battery_status(self) -> str:
        return self._serve(BATTERY)

    async def fetch_device_info(self) -> str:
        return self._serve(DEVICE_INFO)

    def _serve(self, feed: str) -> str:
        self.calls[feed] += 1
        payload = self._payloads[feed]
        if isinstance(payload, BaseException):
            raise payload
        if isinstance(payload, str):
            return payload
        return json.dumps(payload, ensure_ascii=False)
