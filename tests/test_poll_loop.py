from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from smsrelay.dispatch.channel import Command, CommandChannel
from smsrelay.errors import (
    ChannelFault,
    DuplicateRecordFault,
    FetchFault,
    ParseFault,
    PermissionFault,
    StorageFault,
)
from smsrelay.events.models import ChargeStatus, SimState
from smsrelay.observability import RelayMetrics
from smsrelay.runtime.poller import PollLoop
from smsrelay.sources.mock_source import BATTERY, CALL_LOG, DEVICE_INFO, MESSAGES, MockSource
from smsrelay.storage import CALL_LOGS, SQLiteDedupStore
from smsrelay.storage import MESSAGES as MESSAGE_RECORDS


def _sms(body: str, received: str = "2021-08-23 14:58:40", number: str = "+15550100") -> dict:
    return {
        "threadid": 1,
        "type": "inbox",
        "read": False,
        "number": number,
        "received": received,
        "body": body,
    }


def _call(date: str, log_type: str = "MISSED", number: str = "+15550100", name: str = "") -> dict:
    return {"name": name, "phone_number": number, "type": log_type, "date": date, "duration": "00:00"}


def _drain(channel: CommandChannel) -> list[str]:
    texts: list[str] = []
    while True:
        cmd = channel.receive_nowait()
        if cmd is None:
            return texts
        texts.append(cmd.text)


@pytest.fixture
def store(tmp_path: Path):
    db = SQLiteDedupStore(tmp_path / "sms_client.db")
    yield db
    db.close()


def _loop(source: MockSource, store: SQLiteDedupStore, **kwargs) -> PollLoop:
    return PollLoop(
        source=source,
        store=store,
        dispatch=CommandChannel(name="dispatch"),
        poll_timeout_s=0.01,
        metrics=RelayMetrics(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_bootstrap_records_backlog_without_notifications(store: SQLiteDedupStore) -> None:
    source = MockSource(
        call_log=[_call(f"2021-08-2{i} 10:00:00") for i in range(5)] + [_call("2021-08-23 11:00:00", "INCOMING")],
        messages=[_sms("old message")],
    )
    loop = _loop(source, store)

    summary = await loop.bootstrap()

    assert summary is not None
    assert summary.call_logs == 5
    assert summary.messages == 1
    assert store.count(CALL_LOGS) == 5
    assert store.count(MESSAGE_RECORDS) == 1
    assert store.schema_version() == 1
    assert loop.dispatch.qsize() == 0
    assert loop.metrics.baseline_records == 6


@pytest.mark.asyncio
async def test_bootstrap_skips_baseline_for_existing_store(store: SQLiteDedupStore) -> None:
    store.initialize()
    source = MockSource(messages=[_sms("hello")])
    loop = _loop(source, store)

    assert await loop.bootstrap() is None
    assert source.calls[MESSAGES] == 0
    assert source.calls[CALL_LOG] == 0


@pytest.mark.asyncio
async def test_bootstrap_fails_when_a_feed_is_unavailable(store: SQLiteDedupStore) -> None:
    source = MockSource(call_log="Error: permission denied for call log", messages=[_sms("hello")])
    loop = _loop(source, store)

    with pytest.raises(PermissionFault):
        await loop.bootstrap()
    assert store.is_initialized() is False

    source.set(CALL_LOG, [])
    source.set(MESSAGES, [_sms("bad", received="2021-08-23 24:58:40")])
    with pytest.raises(ParseFault):
        await loop.bootstrap()
    assert store.is_initialized() is False


@pytest.mark.asyncio
async def test_failed_baseline_write_is_retried_on_next_start(
    store: SQLiteDedupStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    source = MockSource(call_log=[_call("2021-08-23 10:00:00")], messages=[_sms("old backlog")])
    loop = _loop(source, store)
    original = SQLiteDedupStore._insert_baseline
    calls: list[str] = []

    def _fail_second(self, cur, category, rows):  # type: ignore[no-untyped-def]
        calls.append(category)
        if len(calls) == 2:
            raise sqlite3.OperationalError("disk I/O error")
        return original(self, cur, category, rows)

    monkeypatch.setattr(SQLiteDedupStore, "_insert_baseline", _fail_second)
    with pytest.raises(StorageFault):
        await loop.bootstrap()
    assert store.is_initialized() is False

    monkeypatch.undo()
    summary = await loop.bootstrap()
    assert summary is not None
    assert summary.messages == 1
    assert summary.call_logs == 1

    state = await loop.prime()
    await loop.run_cycle(state)
    assert loop.dispatch.qsize() == 0


@pytest.mark.asyncio
async def test_new_message_is_relayed_once(store: SQLiteDedupStore) -> None:
    source = MockSource()
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(MESSAGES, [_sms("Your code is 1234")])
    state = await loop.run_cycle(state)
    state = await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[Receive SMS]\nFrom: +15550100\nContent: Your code is 1234"]
    assert store.count(MESSAGE_RECORDS) == 1
    assert loop.metrics.cycles_total == 2
    assert loop.metrics.enqueued_by_kind["sms"] == 1


@pytest.mark.asyncio
async def test_only_missed_calls_are_relayed(store: SQLiteDedupStore) -> None:
    source = MockSource()
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(
        CALL_LOG,
        [
            _call("2021-08-23 10:00:00", "INCOMING"),
            _call("2021-08-23 10:05:00", "OUTGOING"),
            _call("2021-08-23 10:10:00", "REJECTED"),
            _call("2021-08-23 10:15:00", "VOICEMAIL"),
            _call("2021-08-23 10:20:00", "MISSED", name="Alice"),
        ],
    )
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[Missed Call]\nCall from: Alice (+15550100)"]
    assert store.count(CALL_LOGS) == 1


@pytest.mark.asyncio
async def test_baseline_events_are_not_replayed(store: SQLiteDedupStore) -> None:
    source = MockSource(messages=[_sms("seen before")], call_log=[_call("2021-08-23 10:00:00")])
    loop = _loop(source, store)
    await loop.bootstrap()

    state = await loop.prime()
    source.set(MESSAGES, [_sms("seen before"), _sms("brand new", received="2021-08-24 09:00:00")])
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[Receive SMS]\nFrom: +15550100\nContent: brand new"]


@pytest.mark.asyncio
async def test_message_feed_failure_does_not_stop_cycle(store: SQLiteDedupStore) -> None:
    source = MockSource()
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(MESSAGES, "Error: READ_SMS permission not granted")
    source.set(CALL_LOG, [_call("2021-08-23 10:20:00")])
    await loop.run_cycle(state)
    source.set(MESSAGES, FetchFault("termux-sms-list exited with code 1"))
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[Missed Call]\nCall from: +15550100"]
    assert loop.metrics.source_failures["messages"] == 2


@pytest.mark.asyncio
async def test_malformed_record_is_skipped(store: SQLiteDedupStore) -> None:
    source = MockSource()
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(MESSAGES, [_sms("broken", received="2021-08-23 24:58:40"), _sms("fine")])
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[Receive SMS]\nFrom: +15550100\nContent: fine"]
    assert loop.metrics.malformed_records == 1


@pytest.mark.asyncio
async def test_battery_and_sim_transitions(store: SQLiteDedupStore) -> None:
    source = MockSource(battery={"percentage": 16, "status": "DISCHARGING"})
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()
    assert state.battery.level == 16

    source.set(BATTERY, {"percentage": 15, "status": "DISCHARGING"})
    state = await loop.run_cycle(state)
    assert _drain(loop.dispatch) == ["[System Information]\nBattery is low. (15%)"]

    source.set(BATTERY, {"percentage": 15, "status": "CHARGING"})
    state = await loop.run_cycle(state)
    assert _drain(loop.dispatch) == [
        "[System Information]\nCharger status: Charging\nBattery level: 15%"
    ]
    assert state.battery.charge_status is ChargeStatus.CHARGING

    source.set(DEVICE_INFO, {"sim_state": "absent"})
    state = await loop.run_cycle(state)
    state = await loop.run_cycle(state)
    assert _drain(loop.dispatch) == ["[System Information]\nSIM card not inserted"]
    assert state.sim is SimState.NOT_INSERTED


@pytest.mark.asyncio
async def test_charge_change_absorbs_simultaneous_level_change(store: SQLiteDedupStore) -> None:
    source = MockSource(battery={"percentage": 16, "status": "DISCHARGING"})
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(BATTERY, {"percentage": 15, "status": "CHARGING"})
    state = await loop.run_cycle(state)

    assert _drain(loop.dispatch) == [
        "[System Information]\nCharger status: Charging\nBattery level: 15%"
    ]
    assert state.battery.level == 15


@pytest.mark.asyncio
async def test_low_battery_threshold_is_configurable(store: SQLiteDedupStore) -> None:
    source = MockSource(battery={"percentage": 21, "status": "DISCHARGING"})
    loop = _loop(source, store, low_battery_threshold=20)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(BATTERY, {"percentage": 20, "status": "DISCHARGING"})
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[System Information]\nBattery is low. (20%)"]


@pytest.mark.asyncio
async def test_battery_failure_is_fatal(store: SQLiteDedupStore) -> None:
    source = MockSource()
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(BATTERY, FetchFault("termux-battery-status exited with code 1"))
    with pytest.raises(FetchFault):
        await loop.run_cycle(state)

    source.set(BATTERY, {"percentage": 50, "status": "CHARGING"})
    source.set(DEVICE_INFO, "Error: READ_PHONE_STATE denied")
    with pytest.raises(PermissionFault):
        await loop.run_cycle(state)


@pytest.mark.asyncio
async def test_run_stops_on_terminate_and_closes_control(store: SQLiteDedupStore) -> None:
    source = MockSource()
    loop = _loop(source, store)
    await loop.bootstrap()
    await loop.control.send(Command.notify("ignored"))
    await loop.control.terminate()

    await loop.run()

    assert loop.metrics.cycles_total == 2
    assert loop.control.closed is True
    with pytest.raises(ChannelFault):
        await loop.control.terminate()


@pytest.mark.asyncio
async def test_closed_dispatch_channel_is_fatal(store: SQLiteDedupStore) -> None:
    source = MockSource()
    loop = _loop(source, store)
    await loop.bootstrap()
    state = await loop.prime()
    loop.dispatch.close()

    source.set(MESSAGES, [_sms("undeliverable")])
    with pytest.raises(ChannelFault):
        await loop.run_cycle(state)
    assert store.count(MESSAGE_RECORDS) == 0


class _FaultyStore(SQLiteDedupStore):
    """Dedup store whose lookups and inserts can be made to fail on demand."""

    def __init__(self, db_path: Path) -> None:
        super().__init__(db_path)
        self.contains_failures = 0
        self.record_fault: StorageFault | None = None

    def contains(self, category: str, identifier: str) -> bool:
        if self.contains_failures > 0:
            self.contains_failures -= 1
            raise StorageFault("disk I/O error")
        return super().contains(category, identifier)

    def record(self, category: str, identifier: str, timestamp: int) -> None:
        if self.record_fault is not None:
            raise self.record_fault
        super().record(category, identifier, timestamp)


@pytest.fixture
def faulty_store(tmp_path: Path):
    db = _FaultyStore(tmp_path / "faulty.db")
    yield db
    db.close()


@pytest.mark.asyncio
async def test_record_failure_keeps_notification_queued(faulty_store: _FaultyStore) -> None:
    source = MockSource()
    loop = _loop(source, faulty_store)
    await loop.bootstrap()
    state = await loop.prime()

    faulty_store.record_fault = StorageFault("database is locked")
    source.set(MESSAGES, [_sms("hello")])
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[Receive SMS]\nFrom: +15550100\nContent: hello"]
    assert loop.metrics.record_failures == 1
    assert faulty_store.count(MESSAGE_RECORDS) == 0

    # Unmarked events are offered again on the next cycle.
    faulty_store.record_fault = None
    await loop.run_cycle(state)
    assert _drain(loop.dispatch) == ["[Receive SMS]\nFrom: +15550100\nContent: hello"]
    assert faulty_store.count(MESSAGE_RECORDS) == 1


@pytest.mark.asyncio
async def test_duplicate_on_record_counts_as_recorded(faulty_store: _FaultyStore) -> None:
    source = MockSource()
    loop = _loop(source, faulty_store)
    await loop.bootstrap()
    state = await loop.prime()

    faulty_store.record_fault = DuplicateRecordFault("already recorded in call_logs")
    source.set(CALL_LOG, [_call("2021-08-23 10:20:00")])
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == ["[Missed Call]\nCall from: +15550100"]
    assert loop.metrics.duplicates_skipped == 1
    assert loop.metrics.record_failures == 0


@pytest.mark.asyncio
async def test_lookup_failure_skips_event_for_the_cycle(faulty_store: _FaultyStore) -> None:
    source = MockSource()
    loop = _loop(source, faulty_store)
    await loop.bootstrap()
    state = await loop.prime()

    source.set(
        MESSAGES,
        [_sms("first"), _sms("second", received="2021-08-23 15:00:00")],
    )
    source.set(CALL_LOG, [_call("2021-08-23 10:20:00")])
    faulty_store.contains_failures = 1
    await loop.run_cycle(state)

    assert _drain(loop.dispatch) == [
        "[Receive SMS]\nFrom: +15550100\nContent: second",
        "[Missed Call]\nCall from: +15550100",
    ]
    assert loop.metrics.record_failures == 1

    await loop.run_cycle(state)
    assert _drain(loop.dispatch) == ["[Receive SMS]\nFrom: +15550100\nContent: first"]
