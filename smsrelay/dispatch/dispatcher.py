"""Dispatcher task: drains the dispatch channel into the upstream sink."""

from __future__ import annotations

import asyncio

from loguru import logger

from smsrelay.dispatch.channel import CommandChannel
from smsrelay.dispatch.sinks import NotificationSink
from smsrelay.observability import RelayMetrics


class Dispatcher:
    """Delivers queued notifications one at a time until it sees ``Terminate``.

    Commands are consumed in order, so every notification queued before the
    terminate command is delivered first. Sink failures are logged and counted;
    they never stop the dispatcher.
    """

    def __init__(
        self,
        channel: CommandChannel,
        sink: NotificationSink,
        *,
        poll_timeout_s: float = 1.0,
        metrics: RelayMetrics | None = None,
    ) -> None:
        self.channel = channel
        self.sink = sink
        self.poll_timeout_s = max(0.01, float(poll_timeout_s))
        self.metrics = metrics or RelayMetrics()

    async def run(self) -> None:
        logger.info(f"Dispatcher started (sink={self.sink.name})")
        try:
            while True:
                try:
                    cmd = await self.channel.receive(timeout=self.poll_timeout_s)
                except asyncio.TimeoutError:
                    continue
                if cmd.is_terminate:
                    break
                await self._deliver(cmd.text)
        finally:
            self.channel.close()
            await self.sink.close()
        logger.info("Dispatcher stopped")

    async def _deliver(self, text: str) -> None:
        try:
            await self.sink.send(text)
            self.metrics.record_sent()
        except Exception as e:
            self.metrics.record_send_failure()
            logger.error(f"Failed to deliver notification via {self.sink.name}: {e}")
