"""Poll loop: samples the device, dedups events and queues notifications."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from smsrelay.dispatch.channel import Command, CommandChannel
from smsrelay.errors import DuplicateRecordFault, ParseFault, RelayError, StorageFault
from smsrelay.events.identifier import identify
from smsrelay.events.models import BatterySnapshot, CallLogType, ReportableEvent, SimState
from smsrelay.events.normalize import (
    DEFAULT_PERMISSION_SENTINEL,
    ensure_permitted,
    normalize_call_log,
    normalize_call_logs,
    normalize_message,
    normalize_messages,
    parse_battery_status,
    parse_call_log_records,
    parse_message_records,
    parse_sim_state,
)
from smsrelay.observability import RelayMetrics
from smsrelay.runtime.formatting import (
    format_charge_status,
    format_level_notice,
    format_missed_call,
    format_sim_state,
    format_sms,
)
from smsrelay.runtime.state_diff import BatteryDiff, diff_battery, level_notice, sim_changed
from smsrelay.sources.base import DeviceSource
from smsrelay.storage.sqlite_dedup import CALL_LOGS, MESSAGES, SQLiteDedupStore

FEED_MESSAGES = "messages"
FEED_CALL_LOG = "call_log"
FEED_BATTERY = "battery"
FEED_DEVICE_INFO = "device_info"


@dataclass(frozen=True, slots=True)
class PollState:
    """Last known device state carried from one cycle to the next."""

    battery: BatterySnapshot
    sim: SimState


@dataclass(frozen=True, slots=True)
class BaselineSummary:
    messages: int
    call_logs: int


class PollLoop:
    """Owns the dedup store and produces notifications for new events.

    Each cycle reads battery, SIM, messages and the call log in that order.
    Battery and SIM failures propagate and end the loop; message and call log
    failures only skip that feed for the current cycle.
    """

    def __init__(
        self,
        *,
        source: DeviceSource,
        store: SQLiteDedupStore,
        dispatch: CommandChannel,
        control: CommandChannel | None = None,
        low_battery_threshold: int = 15,
        poll_timeout_s: float = 1.0,
        permission_sentinel: str = DEFAULT_PERMISSION_SENTINEL,
        metrics: RelayMetrics | None = None,
    ) -> None:
        self.source = source
        self.store = store
        self.dispatch = dispatch
        self.control = control or CommandChannel(name="poll-control")
        self.low_battery_threshold = int(low_battery_threshold)
        self.poll_timeout_s = max(0.01, float(poll_timeout_s))
        self.permission_sentinel = str(permission_sentinel or "")
        self.metrics = metrics or RelayMetrics()

    # -- startup ----------------------------------------------------------

    async def bootstrap(self) -> BaselineSummary | None:
        """Record the current backlog as baseline on first run.

        Returns ``None`` when the store already exists. Both feeds must be
        readable, otherwise the originating fault is raised and nothing is
        written. Schema and baseline are committed together, so a failed
        bootstrap leaves the store uninitialized and the next start retries it.
        """
        if self.store.is_initialized():
            self.store.migrate()
            return None

        logger.info("Dedup store not found, recording current messages and call log as baseline")
        try:
            call_logs = normalize_call_logs(await self._fetch(FEED_CALL_LOG, self.source.fetch_call_log))
        except RelayError as e:
            logger.error(f"Fetch call log failed during first run: {e}")
            raise
        try:
            messages = normalize_messages(await self._fetch(FEED_MESSAGES, self.source.fetch_messages))
        except RelayError as e:
            logger.error(f"Fetch SMS list failed during first run: {e}")
            raise

        seeded = self.store.initialize(
            baseline={
                CALL_LOGS: [
                    (identify(entry), entry.timestamp) for entry in call_logs if entry.is_missed
                ],
                MESSAGES: [(identify(message), message.timestamp) for message in messages],
            }
        )
        recorded_calls = seeded.get(CALL_LOGS, 0)
        recorded_messages = seeded.get(MESSAGES, 0)
        self.metrics.baseline_records += recorded_calls + recorded_messages
        logger.info(
            f"Baseline recorded: {recorded_messages} messages, {recorded_calls} missed calls"
        )
        return BaselineSummary(messages=recorded_messages, call_logs=recorded_calls)

    async def prime(self) -> PollState:
        """Read the initial battery and SIM snapshots that later cycles diff against."""
        battery = await self._read_battery()
        sim = await self._read_sim()
        logger.info(
            f"Initial state: battery {battery.level}% {battery.charge_status.value}, SIM {sim.value}"
        )
        return PollState(battery=battery, sim=sim)

    # -- loop -------------------------------------------------------------

    async def run(self, state: PollState | None = None) -> PollState:
        """Poll until a ``Terminate`` command arrives on the control channel."""
        try:
            current = state or await self.prime()
            logger.info("Poll loop started")
            while True:
                current = await self.run_cycle(current)
                if await self._terminate_requested():
                    break
        finally:
            self.control.close()
        logger.info("Poll loop stopped")
        return current

    async def run_cycle(self, state: PollState) -> PollState:
        self.metrics.record_cycle()
        battery = await self._poll_battery(state.battery)
        sim = await self._poll_sim(state.sim)
        await self._poll_messages()
        await self._poll_call_logs()
        return PollState(battery=battery, sim=sim)

    async def _terminate_requested(self) -> bool:
        try:
            cmd = await self.control.receive(timeout=self.poll_timeout_s)
        except asyncio.TimeoutError:
            return False
        if cmd.is_terminate:
            return True
        logger.warning(f"Poll loop ignoring unexpected {cmd.kind} command")
        return False

    # -- feeds ------------------------------------------------------------

    async def _poll_battery(self, previous: BatterySnapshot) -> BatterySnapshot:
        current = await self._read_battery()
        diff = diff_battery(previous, current)
        if diff is BatteryDiff.CHARGE_STATUS_CHANGED:
            await self._notify("charge_status", format_charge_status(current))
        elif diff is BatteryDiff.LEVEL_CHANGED:
            notice = level_notice(diff, current, threshold=self.low_battery_threshold)
            if notice is not None:
                await self._notify("battery_level", format_level_notice(notice, current))
        return previous if diff is BatteryDiff.UNCHANGED else current

    async def _poll_sim(self, previous: SimState) -> SimState:
        current = await self._read_sim()
        if sim_changed(previous, current):
            await self._notify("sim_state", format_sim_state(current))
            return current
        return previous

    async def _poll_messages(self) -> None:
        try:
            records = parse_message_records(
                await self._fetch(FEED_MESSAGES, self.source.fetch_messages)
            )
        except RelayError as e:
            self.metrics.record_source_failure(FEED_MESSAGES)
            logger.error(f"Skipping SMS this cycle: {e}")
            return
        for record in records:
            try:
                message = normalize_message(record)
            except ParseFault as e:
                self.metrics.record_malformed()
                logger.error(f"Skipping malformed SMS from {record.number}: {e}")
                continue
            await self._relay_if_new(MESSAGES, message, "sms", format_sms(message))

    async def _poll_call_logs(self) -> None:
        try:
            records = parse_call_log_records(
                await self._fetch(FEED_CALL_LOG, self.source.fetch_call_log)
            )
        except RelayError as e:
            self.metrics.record_source_failure(FEED_CALL_LOG)
            logger.error(f"Skipping call log this cycle: {e}")
            return
        for record in records:
            try:
                entry = normalize_call_log(record)
            except ParseFault as e:
                self.metrics.record_malformed()
                logger.error(f"Skipping malformed call log entry: {e}")
                continue
            if entry.log_type is CallLogType.UNRECOGNIZED:
                logger.debug(f"Unrecognized call log type {entry.raw_type!r}")
            if not entry.is_missed:
                continue
            await self._relay_if_new(CALL_LOGS, entry, "missed_call", format_missed_call(entry))

    # -- helpers ----------------------------------------------------------

    async def _relay_if_new(
        self,
        category: str,
        event: ReportableEvent,
        kind: str,
        text: str,
    ) -> bool:
        """Queue ``text`` and mark ``event`` as dispatched unless it was seen before."""
        identifier = identify(event)
        try:
            if self.store.contains(category, identifier):
                return False
        except StorageFault as e:
            self.metrics.record_storage_failure()
            logger.error(f"Dedup lookup failed for {category}/{identifier[:12]}: {e}")
            return False

        await self._notify(kind, text)
        try:
            self.store.record(category, identifier, event.timestamp)
        except DuplicateRecordFault:
            self.metrics.record_duplicate()
            logger.warning(f"{category}/{identifier[:12]} was already recorded")
        except StorageFault as e:
            self.metrics.record_storage_failure()
            logger.error(f"Got error while recording {category}/{identifier[:12]}: {e}")
        return True

    async def _notify(self, kind: str, text: str) -> None:
        await self.dispatch.send(Command.notify(text))
        self.metrics.record_enqueued(kind)

    async def _read_battery(self) -> BatterySnapshot:
        return parse_battery_status(
            await self._fetch(FEED_BATTERY, self.source.fetch_battery_status)
        )

    async def _read_sim(self) -> SimState:
        return parse_sim_state(
            await self._fetch(FEED_DEVICE_INFO, self.source.fetch_device_info)
        )

    async def _fetch(self, feed: str, fetcher: Callable[[], Awaitable[str]]) -> str:
        raw = await fetcher()
        return ensure_permitted(raw, source=feed, sentinel=self.permission_sentinel)
