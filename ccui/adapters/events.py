"""Typed events for the push channel and for coordinator notifications.

Inbound events mirror the JSON payloads the backend pushes (``type`` is
the discriminator). Notification events are what the Coordinator hands
to UI consumers through the EventBus.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ccui.engine.errors import MalformedMessageError


# ── inbound push events ─────────────────────────────────────────────

@dataclass
class PushEvent:
    """Base event received over the push channel."""
    type: str = ""


@dataclass
class LoadingProgress(PushEvent):
    type: str = "loading_progress"
    phase: str = ""
    current: int | None = None
    total: int | None = None
    currentProject: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.phase == "complete"


@dataclass
class ProjectsUpdated(PushEvent):
    type: str = "projects_updated"
    projects: list = field(default_factory=list)
    changedFile: str | None = None


@dataclass
class SessionCreated(PushEvent):
    """The backend assigned a real id to the conversation just started."""
    type: str = "session-created"
    sessionId: str | None = None


@dataclass
class SessionSettled(PushEvent):
    """A conversation finished, was aborted, or failed."""
    type: str = "claude-complete"
    sessionId: str | None = None
    exitCode: int | None = None
    error: Any = None


@dataclass
class SessionStatus(PushEvent):
    type: str = "session-status"
    sessionId: str | None = None
    isProcessing: bool = False


SETTLED_TYPES = frozenset({
    "claude-complete",
    "codex-complete",
    "cursor-result",
    "session-aborted",
    "claude-error",
    "codex-error",
    "cursor-error",
})


# Map of type strings to dataclass constructors
_EVENT_MAP: dict[str, type[PushEvent]] = {
    "loading_progress": LoadingProgress,
    "projects_updated": ProjectsUpdated,
    "session-created": SessionCreated,
    "session-status": SessionStatus,
    **{t: SessionSettled for t in SETTLED_TYPES},
}


def dict_to_event(data: dict[str, Any]) -> PushEvent:
    """Convert a decoded push payload to a typed event dataclass.

    Unknown types become a bare ``PushEvent``. Raises MalformedMessageError
    when the payload has no string ``type`` or a known type carries fields
    of the wrong shape.
    """
    if not isinstance(data, dict):
        raise MalformedMessageError(f"expected a JSON object, got {type(data).__name__}")
    event_type = data.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedMessageError("missing 'type' discriminator")
    cls = _EVENT_MAP.get(event_type, PushEvent)
    # Filter dict keys to only those the dataclass accepts
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    event = cls(**filtered)
    if isinstance(event, ProjectsUpdated) and not isinstance(data.get("projects"), list):
        raise MalformedMessageError("'projects' must be a list")
    if isinstance(event, LoadingProgress) and not isinstance(event.phase, str):
        raise MalformedMessageError("'phase' must be a string")
    return event


# ── coordinator notifications ───────────────────────────────────────

@dataclass
class CoordinatorEvent:
    """Base notification emitted by the Coordinator."""
    event_type: str = ""


@dataclass
class ProjectsChanged(CoordinatorEvent):
    event_type: str = "projects_changed"
    projects: tuple = ()
    source: str = "push"  # "push", "refresh" or "local"


@dataclass
class SnapshotRejected(CoordinatorEvent):
    event_type: str = "snapshot_rejected"
    reason: str = ""


@dataclass
class SelectionChanged(CoordinatorEvent):
    event_type: str = "selection_changed"
    project_name: str | None = None
    session_id: str | None = None


@dataclass
class ProgressChanged(CoordinatorEvent):
    """Loading progress to display; ``progress`` is None when cleared."""
    event_type: str = "progress_changed"
    progress: LoadingProgress | None = None


@dataclass
class ExternalSessionChange(CoordinatorEvent):
    """The selected session's file changed on disk outside this client."""
    event_type: str = "external_session_change"
    session_id: str = ""
    counter: int = 0


@dataclass
class ConnectionStateChanged(CoordinatorEvent):
    event_type: str = "connection_state_changed"
    state: str = "disconnected"


@dataclass
class ProtectionChanged(CoordinatorEvent):
    event_type: str = "protection_changed"
    active: tuple[str, ...] = ()
    processing: tuple[str, ...] = ()
