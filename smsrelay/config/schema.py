"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class TelegramConfig(BaseModel):
    """Telegram bot used as the notification sink."""
    enabled: bool = False
    token: str = ""  # Bot token from @BotFather
    chat_id: str = ""  # Chat that receives forwarded notifications
    api_base: str = "https://api.telegram.org"
    proxy: str | None = None  # HTTP/SOCKS5 proxy URL, e.g. "socks5://127.0.0.1:1080"
    timeout_seconds: float = 10.0


class TermuxConfig(BaseModel):
    """Termux:API commands used to sample the device."""
    sms_list_command: str = "termux-sms-list"
    call_log_command: str = "termux-call-log"
    battery_status_command: str = "termux-battery-status"
    device_info_command: str = "termux-telephony-deviceinfo"
    sms_list_limit: int = Field(default=50, ge=1)
    call_log_limit: int = Field(default=50, ge=1)
    permission_sentinel: str = "Error"  # Substring Termux prints when access is denied


class PollConfig(BaseModel):
    """Poll loop cadence and dispatch queue sizing."""
    poll_timeout_seconds: float = Field(default=1.0, gt=0)  # Wait for Terminate between cycles
    stop_check_seconds: float = Field(default=0.5, gt=0)  # Interrupt check granularity
    queue_capacity: int = Field(default=1024, ge=1)
    low_battery_threshold: int = Field(default=15, ge=0, le=100)


class StorageConfig(BaseModel):
    """Dedup database location and housekeeping."""
    db_path: str = ""  # Empty means <data dir>/sms_client.db
    retention_days: int = Field(default=0, ge=0)  # 0 keeps records forever
    busy_timeout_ms: int = 3000
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = ""  # Optional log file, rotated by size
    rotation: str = "10 MB"
    retention: str = "7 days"


class Config(BaseSettings):
    """Root configuration for smsrelay."""
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    termux: TermuxConfig = Field(default_factory=TermuxConfig)
    poll: PollConfig = Field(default_factory=PollConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def db_path(self) -> Path:
        """Get expanded dedup database path."""
        if self.storage.db_path:
            return Path(self.storage.db_path).expanduser()
        from smsrelay.utils.helpers import get_default_db_path
        return get_default_db_path()

    @property
    def telegram_ready(self) -> bool:
        return bool(self.telegram.enabled and self.telegram.token and self.telegram.chat_id)

    model_config = ConfigDict(
        env_prefix="SMSRELAY_",
        env_nested_delimiter="__",
        extra="ignore",
    )
