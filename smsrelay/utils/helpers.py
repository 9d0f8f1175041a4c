"""Runtime path helpers."""

import os
from pathlib import Path

DATA_DIR_NAME = ".smsrelay"
DEFAULT_DB_NAME = "sms_client.db"


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """
    Get the runtime data directory.

    Priority:
    1. `SMSRELAY_DATA_DIR` env override
    2. `~/.smsrelay`
    """
    env_path = str(os.environ.get("SMSRELAY_DATA_DIR") or "").strip()
    if env_path:
        return ensure_dir(Path(env_path).expanduser())
    return ensure_dir(Path.home() / DATA_DIR_NAME)


def get_default_db_path() -> Path:
    return get_data_path() / DEFAULT_DB_NAME


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """Truncate a string to max length, adding suffix if truncated."""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix
