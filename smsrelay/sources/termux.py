"""Termux:API backed source that shells out to the ``termux-*`` commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from loguru import logger

from smsrelay.errors import FetchFault
from smsrelay.sources.base import DeviceSource

# (argv) -> (returncode, stdout, stderr)
CommandRunner = Callable[[Sequence[str]], Awaitable[tuple[int, bytes, bytes]]]


class TermuxSource(DeviceSource):
    """Samples the device through Termux:API command line tools."""

    name = "termux"

    def __init__(
        self,
        *,
        sms_list_command: str = "termux-sms-list",
        call_log_command: str = "termux-call-log",
        battery_status_command: str = "termux-battery-status",
        device_info_command: str = "termux-telephony-deviceinfo",
        sms_list_limit: int = 50,
        call_log_limit: int = 50,
        runner: CommandRunner | None = None,
    ) -> None:
        self.sms_list_command = str(sms_list_command or "termux-sms-list").strip()
        self.call_log_command = str(call_log_command or "termux-call-log").strip()
        self.battery_status_command = str(battery_status_command or "termux-battery-status").strip()
        self.device_info_command = str(device_info_command or "termux-telephony-deviceinfo").strip()
        self.sms_list_limit = max(1, int(sms_list_limit))
        self.call_log_limit = max(1, int(call_log_limit))
        self._runner = runner or _run_subprocess

    @classmethod
    def from_config(cls, termux: object, *, runner: CommandRunner | None = None) -> TermuxSource:
        return cls(
            sms_list_command=getattr(termux, "sms_list_command", "termux-sms-list"),
            call_log_command=getattr(termux, "call_log_command", "termux-call-log"),
            battery_status_command=getattr(termux, "battery_status_command", "termux-battery-status"),
            device_info_command=getattr(termux, "device_info_command", "termux-telephony-deviceinfo"),
            sms_list_limit=getattr(termux, "sms_list_limit", 50),
            call_log_limit=getattr(termux, "call_log_limit", 50),
            runner=runner,
        )

    async def fetch_messages(self) -> str:
        return await self._run([self.sms_list_command, "-l", str(self.sms_list_limit)])

    async def fetch_call_log(self) -> str:
        return await self._run([self.call_log_command, "-l", str(self.call_log_limit)])

    async def fetch_battery_status(self) -> str:
        return await self._run([self.battery_status_command])

    async def fetch_device_info(self) -> str:
        return await self._run([self.device_info_command])

    async def _run(self, argv: list[str]) -> str:
        command = argv[0]
        try:
            returncode, stdout, stderr = await self._runner(argv)
        except OSError as e:
            raise FetchFault(f"cannot run {command}: {e}") from e
        if returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise FetchFault(f"{command} exited with code {returncode}: {detail[:200]}")
        try:
            text = stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FetchFault(f"{command} produced non UTF-8 output: {e}") from e
        logger.debug(f"{command} returned {len(text)} chars")
        return text


async def _run_subprocess(argv: Sequence[str]) -> tuple[int, bytes, bytes]:
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return int(proc.returncode or 0), stdout, stderr
