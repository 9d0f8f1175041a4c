"""Source contract used by the poll loop to sample the host device."""

from __future__ import annotations

from abc import ABC, abstractmethod


class DeviceSource(ABC):
    """Returns raw JSON text for each device data feed.

    Implementations raise ``FetchFault`` when the feed cannot be read at all.
    Permission errors reported inside the payload are detected by the caller.
    """

    name: str = "base"

    @abstractmethod
    async def fetch_messages(self) -> str:
        """Return the SMS inbox listing."""

    @abstractmethod
    async def fetch_call_log(self) -> str:
        """Return the call log listing."""

    @abstractmethod
    async def fetch_battery_status(self) -> str:
        """Return the battery status object."""

    @abstractmethod
    async def fetch_device_info(self) -> str:
        """Return the telephony device info object."""
