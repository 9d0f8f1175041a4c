from __future__ import annotations

from collections.abc import Sequence

import pytest

from smsrelay.config.schema import TermuxConfig
from smsrelay.errors import FetchFault
from smsrelay.sources import TermuxSource


class _FakeRunner:
    def __init__(self, returncode: int = 0, stdout: bytes = b"[]", stderr: bytes = b"") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls: list[list[str]] = []

    async def __call__(self, argv: Sequence[str]) -> tuple[int, bytes, bytes]:
        self.calls.append(list(argv))
        return self.returncode, self.stdout, self.stderr


@pytest.mark.asyncio
async def test_termux_source_invokes_expected_commands() -> None:
    runner = _FakeRunner(stdout='[{"body": "héllo"}]'.encode("utf-8"))
    source = TermuxSource(sms_list_limit=10, call_log_limit=20, runner=runner)

    assert await source.fetch_messages() == '[{"body": "héllo"}]'
    await source.fetch_call_log()
    await source.fetch_battery_status()
    await source.fetch_device_info()

    assert runner.calls == [
        ["termux-sms-list", "-l", "10"],
        ["termux-call-log", "-l", "20"],
        ["termux-battery-status"],
        ["termux-telephony-deviceinfo"],
    ]


@pytest.mark.asyncio
async def test_termux_source_from_config_uses_overrides() -> None:
    runner = _FakeRunner()
    source = TermuxSource.from_config(
        TermuxConfig(sms_list_command="/opt/bin/sms", sms_list_limit=5),
        runner=runner,
    )

    await source.fetch_messages()

    assert runner.calls == [["/opt/bin/sms", "-l", "5"]]


@pytest.mark.asyncio
async def test_termux_source_non_zero_exit_is_fetch_fault() -> None:
    source = TermuxSource(runner=_FakeRunner(returncode=1, stdout=b"", stderr=b"api not installed"))

    with pytest.raises(FetchFault, match="api not installed"):
        await source.fetch_battery_status()


@pytest.mark.asyncio
async def test_termux_source_missing_binary_is_fetch_fault() -> None:
    async def _missing(argv: Sequence[str]) -> tuple[int, bytes, bytes]:
        raise FileNotFoundError(argv[0])

    source = TermuxSource(runner=_missing)

    with pytest.raises(FetchFault, match="cannot run termux-call-log"):
        await source.fetch_call_log()


@pytest.mark.asyncio
async def test_termux_source_rejects_invalid_utf8() -> None:
    source = TermuxSource(runner=_FakeRunner(stdout=b"\xff\xfe"))

    with pytest.raises(FetchFault):
        await source.fetch_device_info()
