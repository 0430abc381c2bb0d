"""Exception hierarchy for the live update coordinator.

None of these ever reach the event loop: the coordinator catches them at
the component that owns the failure and turns them into diagnostics.
"""
from __future__ import annotations


class CoordinatorError(Exception):
    """Base exception for all coordinator errors."""


class ConfigError(CoordinatorError):
    """Configuration file or environment override is invalid."""
    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for '{key}': {reason}")


class ChannelError(CoordinatorError):
    """The push channel could not be opened or failed while open."""
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Push channel {url} failed: {reason}")


class ChannelClosedError(ChannelError):
    """An operation needed an open channel but it was closed."""
    def __init__(self, url: str):
        super().__init__(url, "channel is not connected")


class InvalidTransitionError(CoordinatorError, ValueError):
    """A channel state change violated the connection state machine."""
    def __init__(self, current: str, target: str, allowed: list[str]):
        self.current = current
        self.target = target
        self.allowed = allowed
        allowed_str = ", ".join(allowed) or "none"
        super().__init__(
            f"Invalid channel transition: {current} -> {target}. "
            f"Allowed from {current}: {allowed_str}"
        )


class MalformedMessageError(CoordinatorError):
    """An inbound push payload could not be parsed or classified."""
    def __init__(self, reason: str, raw: str | bytes | None = None):
        self.reason = reason
        self.raw = raw
        super().__init__(f"Malformed push message: {reason}")


class ProjectsFetchError(CoordinatorError):
    """The REST project list could not be fetched or decoded."""
    def __init__(self, url: str, reason: str, status: int | None = None):
        self.url = url
        self.reason = reason
        self.status = status
        status_str = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"Failed to fetch projects from {url}{status_str}: {reason}")
