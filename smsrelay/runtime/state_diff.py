"""Battery and SIM transition detection between two consecutive polls."""

from __future__ import annotations

from enum import StrEnum

from smsrelay.events.models import BatterySnapshot, SimState


class BatteryDiff(StrEnum):
    CHARGE_STATUS_CHANGED = "charge_status_changed"
    LEVEL_CHANGED = "level_changed"
    UNCHANGED = "unchanged"


class LevelNotice(StrEnum):
    LOW = "low"
    SAFE = "safe"


def diff_battery(previous: BatterySnapshot, current: BatterySnapshot) -> BatteryDiff:
    """Classify the change between two snapshots.

    Charge status is compared first and wins: when both fields changed only
    ``CHARGE_STATUS_CHANGED`` is reported and the level change is absorbed.
    """
    if previous.charge_status != current.charge_status:
        return BatteryDiff.CHARGE_STATUS_CHANGED
    if previous.level != current.level:
        return BatteryDiff.LEVEL_CHANGED
    return BatteryDiff.UNCHANGED


def level_notice(
    diff: BatteryDiff,
    current: BatterySnapshot,
    *,
    threshold: int,
) -> LevelNotice | None:
    """Return the threshold notice to emit, if any.

    Only a level change landing exactly on ``threshold`` qualifies. A device
    draining down to it is low; one charging up to it has reached a safe level.
    """
    if diff is not BatteryDiff.LEVEL_CHANGED or current.level != int(threshold):
        return None
    return LevelNotice.SAFE if current.charging else LevelNotice.LOW


def sim_changed(previous: SimState, current: SimState) -> bool:
    return previous != current
