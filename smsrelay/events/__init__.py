"""Event models, raw source shapes and normalization."""

from smsrelay.events.identifier import identify
from smsrelay.events.models import (
    BatterySnapshot,
    CallLogEntry,
    CallLogType,
    ChargeStatus,
    ReportableEvent,
    ShortMessage,
    SimState,
)
from smsrelay.events.normalize import (
    ensure_permitted,
    normalize_call_log,
    normalize_call_logs,
    normalize_message,
    normalize_messages,
    parse_battery_status,
    parse_call_log_records,
    parse_message_records,
    parse_sim_state,
    parse_timestamp,
)

__all__ = [
    "BatterySnapshot",
    "CallLogEntry",
    "CallLogType",
    "ChargeStatus",
    "ReportableEvent",
    "ShortMessage",
    "SimState",
    "ensure_permitted",
    "identify",
    "normalize_call_log",
    "normalize_call_logs",
    "normalize_message",
    "normalize_messages",
    "parse_battery_status",
    "parse_call_log_records",
    "parse_message_records",
    "parse_sim_state",
    "parse_timestamp",
]
