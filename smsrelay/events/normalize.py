"""Convert raw source JSON into normalized events and device snapshots."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from smsrelay.errors import ParseFault, PermissionFault
from smsrelay.events.models import (
    BatterySnapshot,
    CallLogEntry,
    CallLogType,
    ChargeStatus,
    ShortMessage,
    SimState,
)
from smsrelay.events.raw import (
    RawBatteryStatus,
    RawCallLog,
    RawCallLogList,
    RawDeviceInfo,
    RawMessage,
    RawMessageList,
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_PERMISSION_SENTINEL = "Error"

# strptime accepts unpadded fields; the source format is always zero-padded.
_TIMESTAMP_RE = re.compile(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}")

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def parse_timestamp(value: str) -> int:
    """Parse ``YYYY-MM-DD HH:MM:SS`` (naive, read as UTC) into epoch seconds.

    Out-of-range fields such as hour 24 raise ``ParseFault`` instead of
    wrapping into the next day.
    """
    text = str(value or "")
    if not _TIMESTAMP_RE.fullmatch(text):
        raise ParseFault(f"timestamp {text!r} does not match {TIMESTAMP_FORMAT}")
    try:
        parsed = datetime.strptime(text, TIMESTAMP_FORMAT)
    except ValueError as e:
        raise ParseFault(f"invalid timestamp {text!r}: {e}") from e
    return int(parsed.replace(tzinfo=timezone.utc).timestamp())


def ensure_permitted(
    raw: str,
    *,
    source: str,
    sentinel: str = DEFAULT_PERMISSION_SENTINEL,
) -> str:
    """Raise ``PermissionFault`` when the host reported an access error.

    List payloads are exempt because message bodies may legitimately contain
    the sentinel text.
    """
    text = str(raw or "")
    if sentinel and sentinel in text and not text.lstrip().startswith("["):
        raise PermissionFault(source, text.strip()[:200])
    return text


def parse_message_records(raw: str) -> list[RawMessage]:
    return _validate(RawMessageList, raw, what="message list").root


def parse_call_log_records(raw: str) -> list[RawCallLog]:
    return _validate(RawCallLogList, raw, what="call log").root


def normalize_message(record: RawMessage) -> ShortMessage:
    return ShortMessage(
        timestamp=parse_timestamp(record.received),
        body=record.body,
        number=record.number,
        thread_id=record.threadid,
        read=record.read,
    )


def normalize_call_log(record: RawCallLog) -> CallLogEntry:
    return CallLogEntry(
        timestamp=parse_timestamp(record.date),
        body=record.phone_number,
        log_type=CallLogType.parse(record.log_type),
        raw_type=record.log_type,
        name=record.name,
        duration=record.duration,
    )


def normalize_messages(raw: str) -> list[ShortMessage]:
    """Strictly normalize a message list; any bad record fails the whole batch."""
    return [normalize_message(record) for record in parse_message_records(raw)]


def normalize_call_logs(raw: str) -> list[CallLogEntry]:
    """Strictly normalize a call log; any bad record fails the whole batch."""
    return [normalize_call_log(record) for record in parse_call_log_records(raw)]


def parse_battery_status(raw: str) -> BatterySnapshot:
    status = _validate(RawBatteryStatus, raw, what="battery status")
    charge = (
        ChargeStatus.CHARGING
        if status.status.strip().lower() == "charging"
        else ChargeStatus.DISCHARGING
    )
    return BatterySnapshot(charge_status=charge, level=int(status.percentage))


def parse_sim_state(raw: str) -> SimState:
    info = _validate(RawDeviceInfo, raw, what="device info")
    return SimState.parse(info.sim_state)


def _validate(model: type[_ModelT], raw: str, *, what: str) -> _ModelT:
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise ParseFault(f"malformed {what}: {e.error_count()} error(s): {_first_error(e)}") from e


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc or '<root>'}: {first.get('msg', '')}"
