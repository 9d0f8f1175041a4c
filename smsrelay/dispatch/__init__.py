"""Notification dispatch: channel, sinks and the dispatcher task."""

from smsrelay.dispatch.channel import Command, CommandChannel, CommandKind
from smsrelay.dispatch.dispatcher import Dispatcher
from smsrelay.dispatch.sinks import LogSink, NotificationSink, SinkError, TelegramSink

__all__ = [
    "Command",
    "CommandChannel",
    "CommandKind",
    "Dispatcher",
    "LogSink",
    "NotificationSink",
    "SinkError",
    "TelegramSink",
]
