"""Configuration utilities for the pomosync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pomosync.core.config import DEFAULT_TICK_INTERVAL, ServerConfig


def get_config_dir() -> Path:
    """Get the configuration directory for pomosync.

    Returns:
        Path to ~/.pomosync or equivalent.
    """
    return Path.home() / ".pomosync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_timer_file() -> Path:
    """Get the path to the persisted timer settings."""
    return get_config_dir() / "timer.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_server_config() -> ServerConfig | None:
    """Build the server configuration, if one was saved.

    Returns:
        ServerConfig, or None when not configured.
    """
    config = load_config()
    if not config.get("server_url") or not config.get("token"):
        return None
    return ServerConfig(
        server_url=config["server_url"],
        token=config["token"],
        verify_ssl=bool(config.get("verify_ssl", True)),
    )


def get_tick_interval() -> float:
    """Seconds between clock samples (configured or default)."""
    value = load_config().get("tick_interval")
    if isinstance(value, (int, float)) and value > 0:
        return float(value)
    return DEFAULT_TICK_INTERVAL
