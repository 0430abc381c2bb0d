"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CCUI_* env vars, or
through a YAML file (see yaml_config.py) which env vars still override.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlencode, urlsplit, urlunsplit

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "http://localhost:3001"
# Fixed reconnect backoff used by the web client.
DEFAULT_RECONNECT_DELAY = 3.0
DEFAULT_PROGRESS_CLEAR_DELAY = 0.5
# Stored placeholder sessions expire after a day.
DEFAULT_PLACEHOLDER_MAX_AGE = 24 * 60 * 60.0


def ws_url_for(api_base: str) -> str:
    """Derive the push channel URL (``ws[s]://host/ws``) from the API base URL."""
    parts = urlsplit(api_base)
    scheme = "wss" if parts.scheme == "https" else "ws"
    return urlunsplit((scheme, parts.netloc, "/ws", "", ""))


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(name, f"expected a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(name, "must not be negative")
    return value


@dataclass
class ChannelConfig:
    """Push channel settings."""

    url: str = ws_url_for(DEFAULT_API_BASE)
    # Auth token appended as ?token=..., the way the backend authenticates
    # websocket upgrades.
    token: str | None = field(default=None, repr=False)
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    # aiohttp websocket ping interval; None disables pings.
    heartbeat: float | None = None

    def connect_url(self) -> str:
        """Return the URL to dial, with the auth token query parameter if set."""
        if not self.token:
            return self.url
        parts = urlsplit(self.url)
        query = parts.query
        token_query = urlencode({"token": self.token})
        query = f"{query}&{token_query}" if query else token_query
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


@dataclass
class CoordinatorConfig:
    """Live update coordinator configuration."""

    api_base: str = DEFAULT_API_BASE
    channel: ChannelConfig = field(default_factory=ChannelConfig)
    progress_clear_delay: float = DEFAULT_PROGRESS_CLEAR_DELAY
    placeholder_max_age: float = DEFAULT_PLACEHOLDER_MAX_AGE
    request_timeout: float = 30.0

    @property
    def auth_token(self) -> str | None:
        return self.channel.token

    def validate(self) -> None:
        """Reject values the coordinator cannot run with."""
        if not self.api_base.startswith(("http://", "https://")):
            raise ConfigError("api_base", f"must be an http(s) URL, got {self.api_base!r}")
        if not self.channel.url.startswith(("ws://", "wss://")):
            raise ConfigError("channel.url", f"must be a ws(s) URL, got {self.channel.url!r}")
        if self.channel.reconnect_delay <= 0:
            raise ConfigError("channel.reconnect_delay", "must be greater than 0")
        if self.progress_clear_delay < 0:
            raise ConfigError("progress_clear_delay", "must not be negative")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout", "must be greater than 0")

    def apply_env(self) -> CoordinatorConfig:
        """Apply CCUI_* environment overrides in place and return self."""
        ccui_vars = sorted(k for k in os.environ if k.startswith("CCUI_"))
        if ccui_vars:
            # Values are not logged; CCUI_AUTH_TOKEN is a credential.
            logger.info("CoordinatorConfig: CCUI_* env overrides: %s", ", ".join(ccui_vars))
        else:
            logger.debug("CoordinatorConfig: no CCUI_* env vars set")

        server_url = os.getenv("CCUI_SERVER_URL")
        if server_url:
            self.api_base = server_url.rstrip("/")
            self.channel.url = ws_url_for(self.api_base)
        ws_url = os.getenv("CCUI_WS_URL")
        if ws_url:
            self.channel.url = ws_url
        token = os.getenv("CCUI_AUTH_TOKEN")
        if token:
            self.channel.token = token
        self.channel.reconnect_delay = _float_env(
            "CCUI_RECONNECT_DELAY", self.channel.reconnect_delay
        )
        self.progress_clear_delay = _float_env(
            "CCUI_PROGRESS_CLEAR_DELAY", self.progress_clear_delay
        )
        self.request_timeout = _float_env("CCUI_REQUEST_TIMEOUT", self.request_timeout)
        self.validate()
        return self

    @classmethod
    def from_env(cls) -> CoordinatorConfig:
        """Load configuration from CCUI_* environment variables."""
        return cls().apply_env()
