"""Snapshot reconciliation.

Decides whether an incoming project list may replace the one on screen
while the user is in the middle of a conversation. The decision covers
the whole snapshot: it is applied in full or discarded in full.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePath

from ccui.shared.models.project import ProjectList, Selection, find_project

from .protection import SessionProtectionRegistry

logger = logging.getLogger(__name__)

_PATH_SEPARATORS = re.compile(r"[\\/]")


@dataclass(frozen=True)
class ReconcileDecision:
    """Outcome of reconciling one snapshot."""

    accepted: bool
    reason: str


ACCEPT_NO_SELECTION = ReconcileDecision(True, "no session selected")
ACCEPT_UNPROTECTED = ReconcileDecision(True, "selected session not protected")
ACCEPT_ADDITIVE = ReconcileDecision(True, "selected session unchanged")
REJECT_PROJECT_MISSING = ReconcileDecision(False, "selected project missing from snapshot")
REJECT_SESSION_MISSING = ReconcileDecision(False, "selected session missing from snapshot")
REJECT_SESSION_CHANGED = ReconcileDecision(False, "selected session changed")


def changed_file_targets(changed_file: str | None, session_id: str | None) -> bool:
    """True when a ``changedFile`` hint names the on-disk file of *session_id*.

    The hint's last path segment, extension stripped, must equal the id
    (``myproj/S123.jsonl`` targets ``S123``).
    """
    if not changed_file or not session_id:
        return False
    basename = _PATH_SEPARATORS.split(changed_file)[-1]
    if not basename:
        return False
    return PurePath(basename).stem == session_id


class UpdateReconciler:
    """Accept-or-discard decision for incoming project snapshots."""

    def is_additive(
        self,
        before: ProjectList,
        after: ProjectList,
        selection: Selection,
    ) -> ReconcileDecision:
        """Check whether *after* leaves the selected session untouched."""
        if selection.is_empty:
            return ACCEPT_NO_SELECTION

        project_name = selection.project.name
        before_project = find_project(before, project_name)
        after_project = find_project(after, project_name)
        if before_project is None or after_project is None:
            return REJECT_PROJECT_MISSING

        session_id = selection.session.id
        before_session = before_project.find_session(session_id)
        after_session = after_project.find_session(session_id)
        if before_session is None or after_session is None:
            return REJECT_SESSION_MISSING

        if before_session.identity_key() != after_session.identity_key():
            return REJECT_SESSION_CHANGED
        return ACCEPT_ADDITIVE

    def accept_snapshot(
        self,
        before: ProjectList,
        after: ProjectList,
        selection: Selection,
        registry: SessionProtectionRegistry,
    ) -> ReconcileDecision:
        if selection.is_empty:
            return ACCEPT_NO_SELECTION
        if not registry.is_protected(selection):
            return ACCEPT_UNPROTECTED
        decision = self.is_additive(before, after, selection)
        if not decision.accepted:
            logger.info(
                "Discarding project snapshot for protected session %s: %s",
                selection.session.id,
                decision.reason,
            )
        return decision

    def revalidate_selection(self, selection: Selection, projects: ProjectList) -> Selection:
        """Point the selection at the accepted project and session entries.

        The session component is cleared when the selected session no
        longer exists in that project. A selected project that vanished
        from the list is left as it was.
        """
        if selection.project is None:
            return selection
        fresh_project = find_project(projects, selection.project.name)
        if fresh_project is None:
            return selection
        updated = selection.with_project(fresh_project)
        if selection.session is None:
            return updated
        fresh_session = fresh_project.find_session(selection.session.id)
        if fresh_session is None:
            logger.info(
                "Selected session %s no longer exists in project %s",
                selection.session.id,
                fresh_project.name,
            )
        return updated.with_session(fresh_session)
