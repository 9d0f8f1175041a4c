"""Normalized event and device-state types used by the poll loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class CallLogType(StrEnum):
    """Call direction reported by the host call log."""

    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"
    REJECTED = "REJECTED"
    MISSED = "MISSED"
    UNRECOGNIZED = "UNRECOGNIZED"

    @classmethod
    def parse(cls, value: str) -> CallLogType:
        text = str(value or "").strip().upper()
        if text == cls.UNRECOGNIZED.value:
            return cls.UNRECOGNIZED
        try:
            return cls(text)
        except ValueError:
            return cls.UNRECOGNIZED


class ChargeStatus(StrEnum):
    CHARGING = "Charging"
    DISCHARGING = "Discharging"


class SimState(StrEnum):
    """SIM readiness derived from the telephony device info."""

    READY = "ready"
    LOCKED = "locked"
    NOT_INSERTED = "not inserted"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> SimState:
        return _SIM_STATE_LOOKUP.get(str(value or ""), cls.UNKNOWN)


_SIM_STATE_LOOKUP: dict[str, SimState] = {
    "ready": SimState.READY,
    "pin_required": SimState.LOCKED,
    "puk_required": SimState.LOCKED,
    "network_locked": SimState.LOCKED,
    "absent": SimState.NOT_INSERTED,
}


@dataclass(frozen=True, slots=True)
class ReportableEvent:
    """A (timestamp, body) unit eligible for identification and dispatch.

    ``body`` is the payload that feeds the identifier, not necessarily what is
    shown to the user.
    """

    timestamp: int
    body: str


@dataclass(frozen=True, slots=True)
class ShortMessage(ReportableEvent):
    number: str = ""
    thread_id: int = 0
    read: bool = False

    @property
    def content(self) -> str:
        return self.body


@dataclass(frozen=True, slots=True)
class CallLogEntry(ReportableEvent):
    log_type: CallLogType = CallLogType.UNRECOGNIZED
    raw_type: str = ""
    name: str = ""
    duration: str = ""

    @property
    def number(self) -> str:
        return self.body

    @property
    def is_missed(self) -> bool:
        return self.log_type is CallLogType.MISSED


@dataclass(frozen=True, slots=True)
class BatterySnapshot:
    charge_status: ChargeStatus
    level: int

    @property
    def charging(self) -> bool:
        return self.charge_status is ChargeStatus.CHARGING
