"""Project tree widget — projects with their sessions underneath."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from rich.text import Text
from textual.widgets import Tree

from ccui.shared.models.project import ProjectList, Selection, SessionSummary


@dataclass(frozen=True)
class TreeEntry:
    """Payload attached to every tree node."""

    project_name: str
    session_id: str | None = None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Ensure dt is timezone-aware
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_relative_time(dt: datetime) -> str:
    """Format a datetime as a compact relative time string."""
    seconds = int((datetime.now(timezone.utc) - dt).total_seconds())
    if seconds < 0:
        seconds = 0
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"


def _get_timestamp_info(
    session: SessionSummary,
    active_ids: frozenset[str],
    processing_ids: frozenset[str],
) -> tuple[str, str]:
    """Return (time_str, style) for a session row."""
    if session.id in processing_ids:
        return ("working", "yellow")
    if session.id in active_ids:
        return ("active", "green")
    for value in (session.last_activity, session.updated_at, session.created_at):
        dt = _parse_timestamp(value)
        if dt is not None:
            return (_format_relative_time(dt), "dim")
    return ("", "dim")


def session_label(
    session: SessionSummary,
    active_ids: frozenset[str] = frozenset(),
    processing_ids: frozenset[str] = frozenset(),
) -> Text:
    label = Text()
    title_style = "italic dim" if session.is_placeholder else ""
    label.append(session.display_title, style=title_style)
    time_str, style = _get_timestamp_info(session, active_ids, processing_ids)
    if time_str:
        label.append(f"  {time_str}", style=style)
    return label


class ProjectTree(Tree[TreeEntry]):
    """Sidebar listing every project and its sessions."""

    def __init__(self, **kwargs) -> None:
        super().__init__("Projects", **kwargs)
        self.show_root = False
        self._active_ids: frozenset[str] = frozenset()
        self._processing_ids: frozenset[str] = frozenset()
        self._projects: ProjectList = ()

    def update_projects(self, projects: ProjectList, selection: Selection | None = None) -> None:
        """Rebuild the tree from a project list, keeping expansion state."""
        expanded = {
            node.data.project_name
            for node in self.root.children
            if node.data is not None and node.is_expanded
        }
        if selection is not None and selection.project is not None:
            expanded.add(selection.project.name)

        self._projects = projects
        self.clear()
        for project in projects:
            total = project.session_meta.get("total", len(project.sessions))
            label = Text()
            label.append(project.display_name or project.name, style="bold")
            label.append(f"  {total}", style="dim")
            node = self.root.add(
                label,
                data=TreeEntry(project.name),
                expand=project.name in expanded,
            )
            for session in project.sessions:
                node.add_leaf(
                    session_label(session, self._active_ids, self._processing_ids),
                    data=TreeEntry(project.name, session.id),
                )

    def update_protection(self, active: tuple[str, ...], processing: tuple[str, ...]) -> None:
        """Re-render session labels with the current active/working markers."""
        self._active_ids = frozenset(active)
        self._processing_ids = frozenset(processing)
        for project_node in self.root.children:
            for leaf in project_node.children:
                entry = leaf.data
                if entry is None or entry.session_id is None:
                    continue
                session = self._find_session(entry)
                if session is not None:
                    leaf.set_label(
                        session_label(session, self._active_ids, self._processing_ids),
                    )

    def _find_session(self, entry: TreeEntry) -> SessionSummary | None:
        for project in self._projects:
            if project.name == entry.project_name and entry.session_id is not None:
                return project.find_session(entry.session_id)
        return None
