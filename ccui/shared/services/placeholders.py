"""Placeholder sessions — stored in ~/.ccui/placeholder_sessions.json.

A placeholder is a sidebar entry for a conversation the user started but
the backend has not listed yet. Placeholders survive restarts, are merged
into every REST refresh, expire after a configurable age, and are removed
once the real session replaces them.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from pathlib import Path

from ccui.shared.models.project import ProjectList, SessionSummary

logger = logging.getLogger(__name__)

PLACEHOLDERS_PATH = Path.home() / ".ccui" / "placeholder_sessions.json"


@dataclass
class Placeholder:
    """One stored placeholder session."""

    session_id: str
    project_name: str
    title: str = "New Session"
    created_at: str = ""
    # Wall-clock seconds when stored; drives expiry.
    stored_at: float = 0.0

    def to_session(self) -> SessionSummary:
        return SessionSummary(
            id=self.session_id,
            title=self.title,
            summary=self.title,
            created_at=self.created_at,
            updated_at=self.created_at,
            last_activity=self.created_at,
            is_placeholder=True,
        )


class PlaceholderStore:
    """File-backed placeholder registry keyed by placeholder session id."""

    def __init__(self, path: Path | None = None, max_age: float = 24 * 60 * 60.0) -> None:
        self._path = path or PLACEHOLDERS_PATH
        self._max_age = max_age
        self._items: dict[str, Placeholder] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._items

    def _load(self) -> None:
        try:
            if not self._path.exists():
                logger.debug("Placeholder file not found at %s; starting empty", self._path)
                return
            data = json.loads(self._path.read_text(encoding="utf-8"))
            for session_id, raw in data.items():
                if not isinstance(raw, dict):
                    continue
                fields = {k: v for k, v in raw.items() if k in Placeholder.__dataclass_fields__}
                fields["session_id"] = session_id
                try:
                    self._items[session_id] = Placeholder(**fields)
                except TypeError:
                    logger.debug("Skipping malformed placeholder %s", session_id)
        except (OSError, ValueError, AttributeError):
            logger.warning("Failed to load placeholders from %s; starting empty", self._path)
            self._items = {}

    def _save(self) -> None:
        """Write atomically: temp file in the same directory, then rename."""
        payload = json.dumps(
            {sid: asdict(p) for sid, p in self._items.items()}, indent=2,
        )
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self._path)
            finally:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
        except OSError:
            logger.warning("Failed to save placeholders to %s", self._path)

    def add(self, session_id: str, project_name: str, title: str = "New Session") -> Placeholder:
        placeholder = Placeholder(
            session_id=session_id,
            project_name=project_name,
            title=title,
            created_at=datetime.now(timezone.utc).isoformat(),
            stored_at=time.time(),
        )
        self._items[session_id] = placeholder
        self._save()
        return placeholder

    def remove(self, session_id: str) -> bool:
        if self._items.pop(session_id, None) is None:
            return False
        self._save()
        return True

    def prune(self, now: float | None = None) -> int:
        """Drop placeholders older than the max age. Returns how many were dropped."""
        now = time.time() if now is None else now
        expired = [
            sid for sid, p in self._items.items() if now - p.stored_at >= self._max_age
        ]
        for sid in expired:
            del self._items[sid]
        if expired:
            logger.info("Pruned %d expired placeholder session(s)", len(expired))
            self._save()
        return len(expired)

    def merge_into(self, projects: ProjectList) -> ProjectList:
        """Prepend each project's live placeholders to its session list."""
        self.prune()
        if not self._items:
            return projects
        merged = []
        for project in projects:
            extra = tuple(
                p.to_session() for p in self._items.values()
                if p.project_name == project.name
                and project.find_session(p.session_id) is None
            )
            if not extra:
                merged.append(project)
                continue
            meta = dict(project.session_meta)
            meta["total"] = int(meta.get("total") or 0) + len(extra)
            merged.append(replace(project, sessions=extra + project.sessions, session_meta=meta))
        return tuple(merged)
