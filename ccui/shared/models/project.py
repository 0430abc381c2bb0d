"""Project and session snapshots as pushed or fetched from the backend.

Snapshots are read-only copies owned by the backend. A full project list
replaces the client's list as one unit; nothing here merges fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from ccui.engine.session_ids import RealSessionId, SessionId, parse_session_id

_SESSION_KEYS = frozenset({
    "id", "title", "summary", "created_at", "updated_at", "lastActivity", "isPlaceholder",
})
_PROJECT_KEYS = frozenset({"name", "displayName", "fullPath", "sessions", "sessionMeta"})


@dataclass(frozen=True)
class SessionSummary:
    """One session entry inside a project snapshot."""

    id: str
    title: Optional[str] = None
    summary: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_activity: Optional[str] = None
    is_placeholder: bool = False
    # Provider-specific fields, kept verbatim for round-tripping
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def display_title(self) -> str:
        return self.title or self.summary or self.id

    def identity_key(self) -> tuple[Any, Any, Any, Any]:
        """The fields that decide whether a loaded conversation is still current."""
        return (self.id, self.title, self.created_at, self.updated_at)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data["id"] = self.id
        for key, value in (
            ("title", self.title),
            ("summary", self.summary),
            ("created_at", self.created_at),
            ("updated_at", self.updated_at),
            ("lastActivity", self.last_activity),
        ):
            if value is not None:
                data[key] = value
        if self.is_placeholder:
            data["isPlaceholder"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSummary:
        if not isinstance(data, dict) or "id" not in data:
            raise ValueError("session entry must be an object with an 'id'")
        return cls(
            id=str(data["id"]),
            title=data.get("title"),
            summary=data.get("summary"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            last_activity=data.get("lastActivity"),
            is_placeholder=bool(data.get("isPlaceholder", False)),
            extra={k: v for k, v in data.items() if k not in _SESSION_KEYS},
        )


@dataclass(frozen=True)
class ProjectSnapshot:
    """A project with its ordered session list."""

    name: str
    display_name: str = ""
    full_path: str = ""
    sessions: tuple[SessionSummary, ...] = ()
    session_meta: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def find_session(self, session_id: str) -> SessionSummary | None:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def with_sessions(self, sessions: tuple[SessionSummary, ...]) -> ProjectSnapshot:
        return replace(self, sessions=sessions)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update({
            "name": self.name,
            "displayName": self.display_name,
            "fullPath": self.full_path,
            "sessions": [s.to_dict() for s in self.sessions],
        })
        if self.session_meta:
            data["sessionMeta"] = dict(self.session_meta)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectSnapshot:
        if not isinstance(data, dict) or not data.get("name"):
            raise ValueError("project entry must be an object with a 'name'")
        sessions = data.get("sessions") or []
        if not isinstance(sessions, list):
            raise ValueError(f"project {data['name']!r}: 'sessions' must be a list")
        return cls(
            name=str(data["name"]),
            display_name=data.get("displayName") or str(data["name"]),
            full_path=data.get("fullPath") or "",
            sessions=tuple(SessionSummary.from_dict(s) for s in sessions),
            session_meta=dict(data.get("sessionMeta") or {}),
            extra={k: v for k, v in data.items() if k not in _PROJECT_KEYS},
        )


ProjectList = tuple[ProjectSnapshot, ...]


def projects_from_wire(items: Any) -> ProjectList:
    """Parse a JSON project list. Raises ValueError on structural problems."""
    if not isinstance(items, list):
        raise ValueError("project list must be a JSON array")
    return tuple(ProjectSnapshot.from_dict(item) for item in items)


def find_project(projects: ProjectList, name: str) -> ProjectSnapshot | None:
    for project in projects:
        if project.name == name:
            return project
    return None


def projects_differ(current: ProjectList, incoming: ProjectList) -> bool:
    """True when anything the sidebar renders differs between two lists."""
    if len(current) != len(incoming):
        return True
    for old, new in zip(current, incoming):
        if (
            old.name != new.name
            or old.display_name != new.display_name
            or old.full_path != new.full_path
            or old.session_meta != new.session_meta
            or [s.to_dict() for s in old.sessions] != [s.to_dict() for s in new.sessions]
        ):
            return True
    return False


@dataclass(frozen=True)
class Selection:
    """The (project, session) pair currently on screen."""

    project: ProjectSnapshot | None = None
    session: SessionSummary | None = None

    @property
    def is_empty(self) -> bool:
        return self.project is None or self.session is None

    @property
    def session_id(self) -> SessionId | None:
        if self.session is None:
            return None
        if self.session.is_placeholder:
            # Placeholders are listed under the client-minted id
            return parse_session_id(self.session.id)
        return RealSessionId(self.session.id)

    def with_project(self, project: ProjectSnapshot | None) -> Selection:
        return replace(self, project=project)

    def with_session(self, session: SessionSummary | None) -> Selection:
        return replace(self, session=session)
