"""Pydantic shapes for the raw JSON emitted by the Termux API commands."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, RootModel


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawMessage(_RawModel):
    """One entry of ``termux-sms-list``."""
    threadid: int = 0
    message_type: str = Field(default="", alias="type")
    read: bool = False
    number: str
    received: str
    body: str


class RawMessageList(RootModel[list[RawMessage]]):
    pass


class RawCallLog(_RawModel):
    """One entry of ``termux-call-log``."""
    name: str = ""
    phone_number: str
    log_type: str = Field(alias="type")
    date: str
    duration: str = ""


class RawCallLogList(RootModel[list[RawCallLog]]):
    pass


class RawBatteryStatus(_RawModel):
    """Output of ``termux-battery-status``."""
    health: str = ""
    percentage: int = Field(ge=0, le=100)
    plugged: str = ""
    status: str
    temperature: float = 0.0
    current: int = 0


class RawDeviceInfo(_RawModel):
    """Output of ``termux-telephony-deviceinfo``; only the SIM fields matter here."""
    phone_count: int = 0
    phone_type: str = ""
    network_operator_name: str = ""
    sim_operator_name: str = ""
    sim_state: str | None = None
