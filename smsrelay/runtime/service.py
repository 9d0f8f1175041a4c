"""Relay orchestration: bootstrap, task lifecycle and ordered shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any

from loguru import logger

from smsrelay.dispatch.channel import CommandChannel
from smsrelay.dispatch.dispatcher import Dispatcher
from smsrelay.dispatch.sinks import LogSink, NotificationSink, TelegramSink
from smsrelay.errors import ChannelFault
from smsrelay.events.normalize import DEFAULT_PERMISSION_SENTINEL
from smsrelay.observability import RelayMetrics
from smsrelay.runtime.poller import BaselineSummary, PollLoop
from smsrelay.sources.base import DeviceSource
from smsrelay.storage.sqlite_dedup import CALL_LOGS, MESSAGES, SQLiteDedupStore

SECONDS_PER_DAY = 86400


def apply_retention(
    store: SQLiteDedupStore,
    retention_days: int,
    *,
    now: float | None = None,
) -> dict[str, int]:
    """Drop dedup records for events older than ``retention_days``.

    Returns deleted row counts per category; an empty dict when retention is off.
    """
    days = int(retention_days or 0)
    if days <= 0:
        return {}
    cutoff = int((time.time() if now is None else now) - days * SECONDS_PER_DAY)
    removed = {
        category: store.prune(category, before_ts=cutoff)
        for category in (MESSAGES, CALL_LOGS)
    }
    if any(removed.values()):
        logger.info(f"Pruned dedup records older than {days} days: {removed}")
    return removed


def build_sink(config: Any, *, dry_run: bool = False) -> NotificationSink:
    """Pick the upstream sink for ``config``; falls back to logging when Telegram is not set up."""
    if dry_run:
        return LogSink()
    if config.telegram_ready:
        return TelegramSink.from_config(config.telegram)
    if config.telegram.enabled:
        logger.warning("Telegram enabled but token or chatId is missing; logging notifications instead")
    return LogSink()


class RelayService:
    """Runs the poll loop and the dispatcher as sibling tasks.

    Shutdown is cooperative: the poll loop is told to terminate first and
    awaited, then the dispatcher. Everything queued before that point is
    delivered before ``run`` returns.
    """

    def __init__(
        self,
        *,
        source: DeviceSource,
        store: SQLiteDedupStore,
        sink: NotificationSink,
        low_battery_threshold: int = 15,
        poll_timeout_s: float = 1.0,
        stop_check_s: float = 0.5,
        queue_capacity: int = 1024,
        permission_sentinel: str = DEFAULT_PERMISSION_SENTINEL,
        retention_days: int = 0,
        metrics: RelayMetrics | None = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.stop_check_s = max(0.01, float(stop_check_s))
        self.retention_days = int(retention_days or 0)
        self.metrics = metrics or RelayMetrics()
        self.dispatch_channel = CommandChannel(queue_capacity, name="dispatch")
        self.control_channel = CommandChannel(queue_capacity, name="poll-control")
        self.poller = PollLoop(
            source=source,
            store=store,
            dispatch=self.dispatch_channel,
            control=self.control_channel,
            low_battery_threshold=low_battery_threshold,
            poll_timeout_s=poll_timeout_s,
            permission_sentinel=permission_sentinel,
            metrics=self.metrics,
        )
        self.dispatcher = Dispatcher(
            self.dispatch_channel,
            sink,
            poll_timeout_s=poll_timeout_s,
            metrics=self.metrics,
        )
        self.baseline: BaselineSummary | None = None
        self._poll_task: asyncio.Task | None = None
        self._dispatch_task: asyncio.Task | None = None

    @classmethod
    def from_config(
        cls,
        config: Any,
        *,
        source: DeviceSource,
        store: SQLiteDedupStore,
        sink: NotificationSink,
        metrics: RelayMetrics | None = None,
    ) -> RelayService:
        return cls(
            source=source,
            store=store,
            sink=sink,
            low_battery_threshold=config.poll.low_battery_threshold,
            poll_timeout_s=config.poll.poll_timeout_seconds,
            stop_check_s=config.poll.stop_check_seconds,
            queue_capacity=config.poll.queue_capacity,
            permission_sentinel=config.termux.permission_sentinel,
            retention_days=config.storage.retention_days,
            metrics=metrics,
        )

    @property
    def running(self) -> bool:
        return any(task is not None and not task.done() for task in (self._poll_task, self._dispatch_task))

    async def start(self) -> None:
        """Seed or migrate the store, then spawn the dispatcher and poll tasks."""
        self.baseline = await self.poller.bootstrap()
        apply_retention(self.store, self.retention_days)
        self._dispatch_task = asyncio.create_task(self.dispatcher.run(), name="smsrelay-dispatch")
        self._poll_task = asyncio.create_task(self.poller.run(), name="smsrelay-poll")

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set or either task exits, then shut down in order."""
        try:
            await self.start()
            while not stop_event.is_set():
                if self._poll_task.done() or self._dispatch_task.done():
                    break
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop_event.wait(), timeout=self.stop_check_s)
            if stop_event.is_set():
                logger.info("Stop requested, shutting down relay")
        finally:
            await self.stop()

    async def stop(self) -> None:
        poll_error = await self._finish(self._poll_task, self.control_channel, "poll loop")
        self._poll_task = None
        dispatch_error = await self._finish(self._dispatch_task, self.dispatch_channel, "dispatcher")
        self._dispatch_task = None
        logger.info(f"Relay stopped: {self.metrics.snapshot()}")
        if poll_error is not None:
            raise poll_error
        if dispatch_error is not None:
            raise dispatch_error

    @staticmethod
    async def _finish(
        task: asyncio.Task | None,
        channel: CommandChannel,
        label: str,
    ) -> BaseException | None:
        if task is None:
            return None
        if not task.done():
            with contextlib.suppress(ChannelFault):
                await channel.terminate()
        try:
            await task
        except asyncio.CancelledError:
            logger.warning(f"{label} was cancelled")
            return None
        except Exception as e:
            logger.error(f"{label} exited with error: {e}")
            return e
        return None
