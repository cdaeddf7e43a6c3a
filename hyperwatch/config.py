"""
Configuration loading.

Values come from built-in defaults, then an optional JSON config file, then
environment variables (a local .env file is honoured via python-dotenv).
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from hyperwatch.models import is_valid_address

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_POLL_INTERVAL_SEC = 30
DEFAULT_DB_PATH = "position-monitor.db"
DEFAULT_API_BASE = "https://api.hyperliquid.xyz/info"
DEFAULT_REQUEST_TIMEOUT_SEC = 10.0
DEFAULT_MONITOR_NAME = "Unnamed account"


class ConfigError(Exception):
    """Raised when the configuration cannot be read or is incomplete."""


@dataclass
class Config:
    telegram_token: str = ""
    polling_interval: int = DEFAULT_POLL_INTERVAL_SEC
    super_admin_id: str = ""
    db_path: str = DEFAULT_DB_PATH
    api_url: str = DEFAULT_API_BASE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC
    report_account_value_changes: bool = False

    # Single-tenant mode: one address reported to one chat
    monitor_address: str = ""
    monitor_name: str = DEFAULT_MONITOR_NAME
    monitor_chat_id: str = ""

    @property
    def single_tenant(self) -> bool:
        return bool(self.monitor_address)


def normalize_interval(value: Any) -> int:
    """
    Coerce a polling interval to a positive number of seconds.

    Zero, negative, or unparseable values fall back to the default.
    """
    try:
        seconds = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_POLL_INTERVAL_SEC
    if seconds <= 0:
        return DEFAULT_POLL_INTERVAL_SEC
    return seconds


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.info(f"No config file at {path}, using environment only")
        return {}
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def load_config(path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> Config:
    """
    Build the runtime configuration.

    Args:
        path: JSON config file; defaults to HYPERWATCH_CONFIG or config.json
        env: Environment mapping; defaults to os.environ after loading .env

    Returns:
        Populated Config

    Raises:
        ConfigError: if the config file is unreadable or the bot token is missing
    """
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    config_path = Path(path or env.get("HYPERWATCH_CONFIG") or DEFAULT_CONFIG_PATH)
    data = _read_config_file(config_path)

    def pick(env_key: str, file_key: str, default: Any) -> Any:
        if env.get(env_key):
            return env[env_key]
        if file_key in data and data[file_key] is not None:
            return data[file_key]
        return default

    monitor_address = str(pick("MONITOR_ADDRESS", "monitorAddress", "")).strip().lower()

    # Single-tenant mode reports account value moves unless told otherwise
    report_default = bool(monitor_address)
    report_account_value_changes = _parse_bool(
        pick("REPORT_ACCOUNT_VALUE_CHANGES", "reportAccountValueChanges", report_default)
    )

    try:
        request_timeout = float(pick("REQUEST_TIMEOUT_SEC", "requestTimeout", DEFAULT_REQUEST_TIMEOUT_SEC))
    except (TypeError, ValueError):
        request_timeout = DEFAULT_REQUEST_TIMEOUT_SEC
    if request_timeout <= 0:
        request_timeout = DEFAULT_REQUEST_TIMEOUT_SEC

    config = Config(
        telegram_token=str(pick("TELEGRAM_BOT_TOKEN", "telegramToken", "")).strip(),
        polling_interval=normalize_interval(pick("POLL_INTERVAL_SEC", "pollingInterval", DEFAULT_POLL_INTERVAL_SEC)),
        super_admin_id=str(pick("SUPER_ADMIN_ID", "superAdminID", "")).strip(),
        db_path=str(pick("HYPERWATCH_DB_PATH", "dbPath", DEFAULT_DB_PATH)),
        api_url=str(pick("API_BASE", "apiUrl", DEFAULT_API_BASE)),
        request_timeout=request_timeout,
        report_account_value_changes=report_account_value_changes,
        monitor_address=monitor_address,
        monitor_name=str(pick("MONITOR_NAME", "monitorName", DEFAULT_MONITOR_NAME)).strip() or DEFAULT_MONITOR_NAME,
        monitor_chat_id=str(pick("MONITOR_CHAT_ID", "monitorChatID", "")).strip(),
    )

    if not config.telegram_token:
        raise ConfigError("TELEGRAM_BOT_TOKEN not set")
    if config.single_tenant and not is_valid_address(config.monitor_address):
        raise ConfigError(f"Invalid MONITOR_ADDRESS: {config.monitor_address}")
    if config.single_tenant and not config.monitor_chat_id:
        raise ConfigError("MONITOR_CHAT_ID is required when MONITOR_ADDRESS is set")

    return config
