"""Notification text for each kind of relayed event."""

from __future__ import annotations

from smsrelay.events.models import BatterySnapshot, CallLogEntry, ShortMessage, SimState
from smsrelay.runtime.state_diff import LevelNotice

SYSTEM_HEADER = "[System Information]"

_LEVEL_NOTICE_TEXT = {
    LevelNotice.LOW: "Battery is low.",
    LevelNotice.SAFE: "Battery has been charged to a safe level.",
}


def format_sms(message: ShortMessage) -> str:
    return f"[Receive SMS]\nFrom: {message.number}\nContent: {message.content}"


def format_missed_call(entry: CallLogEntry) -> str:
    caller = entry.number
    if entry.name:
        caller = f"{entry.name} ({entry.number})"
    return f"[Missed Call]\nCall from: {caller}"


def format_charge_status(snapshot: BatterySnapshot) -> str:
    return (
        f"{SYSTEM_HEADER}\n"
        f"Charger status: {snapshot.charge_status.value}\n"
        f"Battery level: {snapshot.level}%"
    )


def format_level_notice(notice: LevelNotice, snapshot: BatterySnapshot) -> str:
    return f"{SYSTEM_HEADER}\n{_LEVEL_NOTICE_TEXT[notice]} ({snapshot.level}%)"


def format_sim_state(state: SimState) -> str:
    return f"{SYSTEM_HEADER}\nSIM card {state.value}"
