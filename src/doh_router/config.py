"""Application configuration for doh-router.

Config is stored at the OS-appropriate location (via click.get_app_dir).
A missing file means defaults; CLI options override values for one run.

Example usage:
    config = load_config()
    config = config.model_copy(update={"proxy_port": 9090})
    save_config(config)
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_LOG_DIR",
    "RouterConfig",
    "get_config_path",
    "get_system_log_path",
    "load_config",
    "save_config",
]

import json
import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from doh_router.constants import (
    APP_NAME,
    DEFAULT_DASHBOARD_PORT,
    DEFAULT_DOH_ENDPOINT,
    DEFAULT_DOH_TIMEOUT_SECONDS,
    DEFAULT_LIVE_SERVER_PORT,
    DEFAULT_PROXY_PORT,
    MAX_DOH_TIMEOUT_SECONDS,
    MIN_DOH_TIMEOUT_SECONDS,
)
from doh_router.exceptions import ConfigurationError
from doh_router.utils.file_helpers import get_app_dir, load_validated_json, set_secure_permissions


def _get_platform_log_dir() -> str:
    """Get platform-appropriate base log directory following OS conventions.

    Returns:
        Platform-specific base log directory path (unexpanded).
        doh-router logs go in <base>/doh-router/.

    Platform conventions:
        - macOS: ~/Library/Logs
        - Linux: $XDG_STATE_HOME, falling back to ~/.local/state
        - Windows: ~/AppData/Local
    """
    if sys.platform == "darwin":
        return "~/Library/Logs"
    elif sys.platform == "win32":
        return "~/AppData/Local"
    else:
        return os.environ.get("XDG_STATE_HOME", "~/.local/state")


DEFAULT_LOG_DIR = _get_platform_log_dir()


class RouterConfig(BaseModel):
    """doh-router configuration.

    Attributes:
        doh_endpoint: DoH JSON endpoint queried for A records.
        doh_timeout_seconds: Timeout for one DoH query.
        proxy_port: Preferred proxy port (0 = any free port).
        dashboard_port: Preferred port reserved for the companion dashboard.
        live_server_port: Preferred port reserved for the companion file server.
        log_dir: Base directory for logs.
        log_level: Console log level.
    """

    doh_endpoint: str = Field(default=DEFAULT_DOH_ENDPOINT, min_length=1)
    doh_timeout_seconds: float = Field(
        default=DEFAULT_DOH_TIMEOUT_SECONDS,
        ge=MIN_DOH_TIMEOUT_SECONDS,
        le=MAX_DOH_TIMEOUT_SECONDS,
    )
    proxy_port: int = Field(default=DEFAULT_PROXY_PORT, ge=0, le=65535)
    dashboard_port: int = Field(default=DEFAULT_DASHBOARD_PORT, ge=0, le=65535)
    live_server_port: int = Field(default=DEFAULT_LIVE_SERVER_PORT, ge=0, le=65535)
    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = {"extra": "ignore"}

    @field_validator("doh_endpoint")
    @classmethod
    def _require_https(cls, value: str) -> str:
        if not value.lower().startswith("https://"):
            raise ValueError("doh_endpoint must be an https:// URL")
        return value

    @field_validator("proxy_port", "dashboard_port", "live_server_port")
    @classmethod
    def _reject_privileged(cls, value: int) -> int:
        if 0 < value < 1024:
            raise ValueError("port must be 0 or in 1024-65535")
        return value


def get_config_path() -> Path:
    """Get the full path to the config file.

    Returns:
        Path to config.json in the app directory.
    """
    return get_app_dir() / "config.json"


def get_system_log_path(config: RouterConfig) -> Path:
    """Get full path to the JSONL system log.

    Args:
        config: Router configuration.

    Returns:
        Path: <log_dir>/doh-router/system.jsonl
    """
    return Path(config.log_dir).expanduser() / APP_NAME / "system.jsonl"


def load_config(path: Path | None = None) -> RouterConfig:
    """Load configuration, falling back to defaults when the file is absent.

    Args:
        path: Config file path (default: get_config_path()).

    Returns:
        Validated RouterConfig.

    Raises:
        ConfigurationError: If the file exists but is invalid.
    """
    config_path = path or get_config_path()
    if not config_path.exists():
        return RouterConfig()
    try:
        return load_validated_json(config_path, RouterConfig, file_type="config")
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def save_config(config: RouterConfig, path: Path | None = None) -> Path:
    """Write configuration as indented JSON with owner-only permissions.

    Args:
        config: Configuration to save.
        path: Destination (default: get_config_path()).

    Returns:
        The path written.
    """
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    set_secure_permissions(config_path.parent, is_directory=True)
    config_path.write_text(json.dumps(config.model_dump(), indent=2) + "\n", encoding="utf-8")
    set_secure_permissions(config_path)
    return config_path
