"""Checks behind ``smsrelay config check``."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from smsrelay.config.loader import camel_to_snake, convert_keys, snake_to_camel
from smsrelay.config.schema import Config


@dataclass(slots=True)
class ConfigCheck:
    """A config file that passed schema validation, plus any keys it ignored."""

    path: Path
    config: Config
    unknown_keys: list[str] = field(default_factory=list)

    @property
    def sink(self) -> str:
        if self.config.telegram_ready:
            return "telegram"
        return "log (telegram incomplete)" if self.config.telegram.enabled else "log"

    def summary(self) -> list[tuple[str, str]]:
        """Rows describing what ``smsrelay run`` would do with this config."""
        cfg = self.config
        termux = cfg.termux
        retention = cfg.storage.retention_days
        return [
            ("db", str(cfg.db_path)),
            ("sink", self.sink),
            ("sms", f"{termux.sms_list_command} -l {termux.sms_list_limit}"),
            ("calls", f"{termux.call_log_command} -l {termux.call_log_limit}"),
            ("battery", termux.battery_status_command),
            ("sim", termux.device_info_command),
            ("permission", f"output containing {termux.permission_sentinel!r} is denied"),
            (
                "poll",
                f"{cfg.poll.poll_timeout_seconds}s queue={cfg.poll.queue_capacity} "
                f"low_battery={cfg.poll.low_battery_threshold}%",
            ),
            ("retention", f"{retention} days" if retention > 0 else "keep forever"),
            ("log", f"{cfg.logging.level.upper()} {cfg.logging.file or 'stderr'}"),
        ]


def read_config_file(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a JSON object")
    return data


def unknown_keys(data: dict[str, Any], model: type[BaseModel] = Config, prefix: str = "") -> list[str]:
    """Return dotted camelCase paths in ``data`` that ``model`` does not define.

    Only the outermost unknown key of a subtree is reported.
    """
    found: list[str] = []
    fields = model.model_fields
    for key, value in data.items():
        name = camel_to_snake(str(key))
        path = f"{prefix}{snake_to_camel(name)}"
        if name not in fields:
            found.append(f"{prefix}{key}")
            continue
        nested = fields[name].annotation
        if isinstance(value, dict) and isinstance(nested, type) and issubclass(nested, BaseModel):
            found.extend(unknown_keys(value, nested, prefix=f"{path}."))
    return found


def check_config_file(path: Path) -> ConfigCheck:
    """Parse and validate ``path``.

    Raises ``json.JSONDecodeError`` or ``ValueError`` for unreadable files and
    ``pydantic.ValidationError`` when a value is out of range.
    """
    data = read_config_file(path)
    config = Config.model_validate(convert_keys(data))
    return ConfigCheck(path=path, config=config, unknown_keys=unknown_keys(data))
