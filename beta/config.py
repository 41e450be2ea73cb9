import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

log = logging.getLogger(__name__)

ENV_KEYS = {
    "max_history": "BETA_MAX_HISTORY",
    "context_window": "BETA_CONTEXT_WINDOW",
    "max_conversations": "BETA_MAX_CONVERSATIONS",
    "max_names": "BETA_MAX_NAMES",
    "name_ttl": "BETA_NAME_TTL",
    "max_users": "BETA_MAX_USERS",
    "max_tracked_messages": "BETA_MAX_TRACKED_MESSAGES",
    "data_dir": "BETA_DATA_DIR",
    "reminders_file": "BETA_REMINDERS_FILE",
    "check_interval": "BETA_CHECK_INTERVAL",
    "dispatch_timeout": "BETA_DISPATCH_TIMEOUT",
    "timezone": "BETA_TIMEZONE",
    "telegram_token": "TELEGRAM_TOKEN",
    "discord_token": "DISCORD_TOKEN",
    "discord_guild_id": "DISCORD_GUILD_ID",
    "gateway_url": "GATEWAY_URL",
    "gateway_api_key": "GATEWAY_API_KEY",
}

INT_FIELDS = {
    "max_history",
    "context_window",
    "max_conversations",
    "max_names",
    "max_users",
    "max_tracked_messages",
    "discord_guild_id",
}
FLOAT_FIELDS = {"name_ttl", "check_interval", "dispatch_timeout"}


@dataclass(frozen=True)
class Settings:
    max_history: int = 10
    context_window: int = 10
    max_conversations: int = 500
    max_names: int = 1000
    name_ttl: float = 3600.0
    max_users: int = 1000
    max_tracked_messages: int = 50
    data_dir: str = "data"
    reminders_file: str = ""
    check_interval: float = 30.0
    dispatch_timeout: float = 20.0
    timezone: str = "UTC"
    telegram_token: Optional[str] = None
    discord_token: Optional[str] = None
    discord_guild_id: Optional[int] = None
    gateway_url: Optional[str] = None
    gateway_api_key: Optional[str] = None

    @property
    def reminders_path(self) -> Path:
        if self.reminders_file:
            return Path(self.reminders_file)
        return Path(self.data_dir) / "reminders.json"

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {self.timezone!r}") from exc

    def with_overrides(self, values: Mapping[str, Any]) -> "Settings":
        known = {item.name for item in fields(self)}
        changes: Dict[str, Any] = {}
        for key, raw in values.items():
            slug = str(key).strip().lower()
            if slug not in known:
                log.warning("ignoring unknown setting %r", key)
                continue
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            changes[slug] = _coerce(slug, raw)
        return replace(self, **changes)

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """Environment first, then the optional YAML file named by ``BETA_CONFIG``."""
        env = os.environ if env is None else env
        settings = cls().with_overrides(
            {name: env.get(key) for name, key in ENV_KEYS.items()}
        )
        path = config_path or env.get("BETA_CONFIG")
        if path:
            settings = settings.with_overrides(_read_yaml(Path(path)))
        settings.tz  # raises ValueError for an unknown zone name
        return settings


def _coerce(name: str, raw: Any) -> Any:
    try:
        if name in INT_FIELDS:
            value: Any = int(str(raw).strip())
        elif name in FLOAT_FIELDS:
            value = float(str(raw).strip())
        else:
            return str(raw).strip()
    except ValueError as exc:
        raise ValueError(f"invalid value for {name}: {raw!r}") from exc
    if value <= 0 and name != "discord_guild_id":
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.warning("config file %s not found", path)
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except Exception as exc:
        log.warning("failed to read config %s: %s", path, exc)
        return {}
    if not isinstance(raw, dict):
        return {}
    return raw
