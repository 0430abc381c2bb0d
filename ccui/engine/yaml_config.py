"""YAML configuration loader.

Loads an optional YAML file; CCUI_* env vars still override it. When no
file is given the defaults in config.py apply.

Example YAML:
    server:
      url: https://devbox.local:3001
      token_env: CCUI_AUTH_TOKEN   # read the token from this env var
      request_timeout: 20

    channel:
      url: wss://devbox.local:3001/ws   # default: derived from server.url
      reconnect_delay: 3
      heartbeat: 30

    ui:
      progress_clear_delay: 0.5
      placeholder_max_age_hours: 24
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .config import ChannelConfig, CoordinatorConfig, ws_url_for
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_CANDIDATES = (Path(".ccui") / "ccui.yaml", Path("ccui.yaml"))


def discover_config(cwd: Path) -> Path | None:
    """Return the first existing config file under *cwd*, if any."""
    for candidate in CONFIG_CANDIDATES:
        path = cwd / candidate
        if path.exists():
            return path
    return None


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(name, "must be a mapping")
    return value


def _number(section: dict[str, Any], key: str, default: float | None, path: str) -> float | None:
    if key not in section or section[key] is None:
        return default
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{path}.{key}", f"expected a number, got {value!r}")
    return float(value)


def parse_config(raw: dict[str, Any]) -> CoordinatorConfig:
    """Build a CoordinatorConfig from an already-loaded YAML mapping."""
    if not isinstance(raw, dict):
        raise ConfigError("<root>", "config file must contain a mapping")

    server = _section(raw, "server")
    channel_raw = _section(raw, "channel")
    ui = _section(raw, "ui")

    config = CoordinatorConfig()
    if server.get("url"):
        config.api_base = str(server["url"]).rstrip("/")
    config.request_timeout = _number(server, "request_timeout", config.request_timeout, "server")

    token = server.get("token")
    token_env = server.get("token_env")
    if token_env:
        token = os.getenv(str(token_env)) or token

    config.channel = ChannelConfig(
        url=str(channel_raw.get("url") or ws_url_for(config.api_base)),
        token=token or None,
        reconnect_delay=_number(
            channel_raw, "reconnect_delay", config.channel.reconnect_delay, "channel",
        ),
        heartbeat=_number(channel_raw, "heartbeat", None, "channel"),
    )

    config.progress_clear_delay = _number(
        ui, "progress_clear_delay", config.progress_clear_delay, "ui",
    )
    hours = _number(ui, "placeholder_max_age_hours", None, "ui")
    if hours is not None:
        config.placeholder_max_age = hours * 3600.0
    config.validate()
    return config


def load_yaml_config(path: str | Path) -> CoordinatorConfig:
    """Load *path*, apply CCUI_* env overrides, and return the config.

    Raises FileNotFoundError when the file is missing and ConfigError when
    it is unreadable YAML or holds invalid values.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(str(config_path), f"invalid YAML: {exc}") from exc

    config = parse_config(raw)
    config.apply_env()
    logger.info(
        "Loaded config %s (api=%s, channel=%s, reconnect=%.1fs)",
        config_path,
        config.api_base,
        config.channel.url,
        config.channel.reconnect_delay,
    )
    return config


def resolve_config(explicit_path: str | None, cwd: Path) -> CoordinatorConfig:
    """Explicit --config path, else auto-discovered file, else env/defaults."""
    if explicit_path:
        return load_yaml_config(explicit_path)
    discovered = discover_config(cwd)
    if discovered is not None:
        logger.info("Auto-discovered config: %s", discovered)
        return load_yaml_config(discovered)
    logger.info(
        "No config file found (tried %s); using defaults",
        ", ".join(str(cwd / c) for c in CONFIG_CANDIDATES),
    )
    return CoordinatorConfig.from_env()
