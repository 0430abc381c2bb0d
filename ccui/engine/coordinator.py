"""Live update coordinator — composition root of the push-channel client.

Owns the current selection, the last accepted project list, the session
protection registry and the push channel, and is the only writer of all
of them. Data flows inward (channel → router → reconciler/registry →
selection); the UI calls the protection API as the user starts and
finishes conversations and receives notifications through the EventBus.

Everything runs on one asyncio loop; there is no locking because every
mutation is a discrete callback on that loop.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import aiohttp

from ccui.adapters.event_bus import EventBus
from ccui.adapters.events import (
    SETTLED_TYPES,
    ConnectionStateChanged,
    ExternalSessionChange,
    LoadingProgress,
    ProgressChanged,
    ProjectsChanged,
    ProjectsUpdated,
    ProtectionChanged,
    PushEvent,
    SelectionChanged,
    SessionCreated,
    SessionSettled,
    SessionStatus,
    SnapshotRejected,
)
from ccui.adapters.projects_api import ProjectsClient
from ccui.shared.models.project import (
    ProjectList,
    Selection,
    SessionSummary,
    find_project,
    projects_differ,
    projects_from_wire,
)
from ccui.shared.services.placeholders import PlaceholderStore

from .channel import ChannelSupervisor, ConnectionFactory
from .config import CoordinatorConfig
from .errors import ProjectsFetchError
from .lifecycle import ChannelState
from .message_router import MessageRouter
from .protection import SessionProtectionRegistry
from .reconciler import ReconcileDecision, UpdateReconciler, changed_file_targets
from .session_ids import (
    RealSessionId,
    SessionId,
    TemporarySessionId,
    as_session_id,
    new_temporary_id,
)

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[bool]]


def _real_id(value: RealSessionId | str | None) -> RealSessionId | None:
    if value is None or value == "":
        return None
    if isinstance(value, RealSessionId):
        return value
    return RealSessionId(str(value))


class Coordinator:
    """Wires channel, router, registry and reconciler around one selection."""

    def __init__(
        self,
        config: CoordinatorConfig | None = None,
        *,
        event_bus: EventBus | None = None,
        projects_client: ProjectsClient | None = None,
        placeholder_store: PlaceholderStore | None = None,
        connection_factory: ConnectionFactory | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or CoordinatorConfig()
        self.event_bus = event_bus or EventBus()
        self._registry = SessionProtectionRegistry()
        self._reconciler = UpdateReconciler()

        self._router = MessageRouter(
            progress_sink=self._set_progress,
            progress_clear_delay=self._config.progress_clear_delay,
        )
        self._router.register("projects_updated", self._handle_projects_updated)
        self._router.register("session-created", self._handle_session_created)
        self._router.register("session-status", self._handle_session_status)
        self._router.register_many(SETTLED_TYPES, self._handle_session_settled)

        self._supervisor = ChannelSupervisor(
            self._config.channel,
            self._router.route,
            on_state_change=self._handle_state_change,
            http_session=http_session,
            connection_factory=connection_factory,
        )
        self._projects_client = projects_client or ProjectsClient(
            self._config.api_base,
            token=self._config.auth_token,
            timeout=self._config.request_timeout,
            http_session=http_session,
        )
        self._placeholders = placeholder_store or PlaceholderStore(
            max_age=self._config.placeholder_max_age,
        )

        self._projects: ProjectList = ()
        self._selection = Selection()
        self._progress: LoadingProgress | None = None
        self._external_change_counter = 0
        self._started = False

    # ── read-only state ─────────────────────────────────────────────

    @property
    def projects(self) -> ProjectList:
        return self._projects

    @property
    def selection(self) -> Selection:
        return self._selection

    @property
    def registry(self) -> SessionProtectionRegistry:
        return self._registry

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def supervisor(self) -> ChannelSupervisor:
        return self._supervisor

    @property
    def placeholders(self) -> PlaceholderStore:
        return self._placeholders

    @property
    def progress(self) -> LoadingProgress | None:
        return self._progress

    @property
    def external_change_counter(self) -> int:
        return self._external_change_counter

    @property
    def channel_state(self) -> ChannelState:
        return self._supervisor.state

    @property
    def projects_url(self) -> str:
        return self._projects_client.url

    @property
    def refresh_callback(self) -> RefreshCallback:
        """Entry point handed to components that need to trigger a refresh."""
        return self.refresh_projects

    def is_protected(self) -> bool:
        return self._registry.is_protected(self._selection)

    # ── lifecycle ───────────────────────────────────────────────────

    async def start(self) -> None:
        """Open the push channel and load the initial project list."""
        if self._started:
            return
        self._started = True
        await self._supervisor.start()
        await self.refresh_projects()

    async def shutdown(self) -> None:
        self._router.shutdown()
        await self._supervisor.shutdown()
        await self._projects_client.close()
        self.event_bus.close()

    async def send(self, payload: Any) -> bool:
        """Send a command to the backend; dropped when disconnected."""
        return await self._supervisor.send(payload)

    # ── protection API ──────────────────────────────────────────────

    def on_user_sent_message(self, session_id: SessionId | str | None = None) -> SessionId:
        """Protect the conversation the user just sent a message in.

        Without a session id (a brand-new conversation) a temporary id is
        minted and returned.
        """
        sid = as_session_id(session_id) or new_temporary_id()
        self._registry.mark_active(sid)
        self._publish_protection()
        return sid

    def on_conversation_settled(self, session_id: SessionId | str | None) -> None:
        self._registry.mark_inactive(as_session_id(session_id))
        self._publish_protection()

    def on_response_started(self, session_id: SessionId | str | None) -> None:
        self._registry.mark_processing(as_session_id(session_id))
        self._publish_protection()

    def on_response_finished(self, session_id: SessionId | str | None) -> None:
        self._registry.mark_not_processing(as_session_id(session_id))
        self._publish_protection()

    def on_real_session_assigned(self, real_id: RealSessionId | str | None) -> None:
        """Bridge every temporary id to the server-assigned one."""
        real = _real_id(real_id)
        if real is None:
            return
        bridged = [sid for sid in self._registry.active if isinstance(sid, TemporarySessionId)]
        self._registry.replace_temporary(real)
        for sid in bridged:
            self._placeholders.remove(str(sid))
        logger.info("Session %s assigned (replaced %d temporary id(s))", real, len(bridged))
        self._publish_protection()

    def on_placeholder_replaced(
        self,
        real_id: RealSessionId | str | None,
        placeholder_id: SessionId | str | None,
    ) -> None:
        real = _real_id(real_id)
        placeholder = as_session_id(placeholder_id)
        if real is None or placeholder is None:
            return
        self._placeholders.remove(str(placeholder))
        self._registry.replace_placeholder(real, placeholder)
        self._publish_protection()

    def add_placeholder(self, project_name: str, title: str = "New Session") -> TemporarySessionId:
        """List a conversation the backend has not assigned an id to yet.

        The placeholder is stored under a fresh temporary id and shown in
        the project's session list until the real session replaces it.
        Protect it with ``on_user_sent_message(returned_id)``.
        """
        temp_id = new_temporary_id()
        self._placeholders.add(str(temp_id), project_name, title)
        merged = self._placeholders.merge_into(self._projects)
        if merged != self._projects:
            self._projects = merged
            self.event_bus.publish(ProjectsChanged(projects=merged, source="local"))
        return temp_id

    # ── navigation ──────────────────────────────────────────────────

    def select(self, project_name: str | None, session_id: str | None = None) -> bool:
        """Explicit user navigation. Returns False if the target is unknown."""
        if project_name is None:
            self._set_selection(Selection())
            return True
        project = find_project(self._projects, project_name)
        if project is None:
            logger.warning("Cannot select unknown project %s", project_name)
            return False
        session: SessionSummary | None = None
        if session_id is not None:
            session = project.find_session(session_id)
            if session is None:
                logger.warning(
                    "Cannot select unknown session %s in project %s", session_id, project_name,
                )
                return False
        self._set_selection(Selection(project, session))
        return True

    def select_session_by_id(self, session_id: str) -> bool:
        """Select a session wherever it lives (e.g. opened by id from the CLI)."""
        for project in self._projects:
            session = project.find_session(session_id)
            if session is not None:
                self._set_selection(Selection(project, session))
                return True
        logger.debug("Session %s not in project list yet", session_id)
        return False

    def clear_selection(self) -> None:
        self._set_selection(Selection())

    # ── local list edits ────────────────────────────────────────────

    def remove_project(self, project_name: str) -> None:
        """Drop a deleted project locally instead of refetching the list."""
        remaining = tuple(p for p in self._projects if p.name != project_name)
        if len(remaining) == len(self._projects):
            return
        self._projects = remaining
        if self._selection.project is not None and self._selection.project.name == project_name:
            self._set_selection(Selection())
        self.event_bus.publish(ProjectsChanged(projects=remaining, source="local"))

    def record_session_activity(self, session_id: str, last_activity: str | None = None) -> bool:
        """Bump a session's ``lastActivity`` in the selected project for instant feedback."""
        project = self._selection.project
        if project is None or not session_id:
            return False
        current = find_project(self._projects, project.name)
        if current is None or current.find_session(session_id) is None:
            return False
        stamp = last_activity or datetime.now(timezone.utc).isoformat()
        sessions = tuple(
            SessionSummary(
                id=s.id,
                title=s.title,
                summary=s.summary,
                created_at=s.created_at,
                updated_at=s.updated_at,
                last_activity=stamp,
                is_placeholder=s.is_placeholder,
                extra=s.extra,
            ) if s.id == session_id else s
            for s in current.sessions
        )
        updated = current.with_sessions(sessions)
        self._projects = tuple(updated if p.name == current.name else p for p in self._projects)
        self.event_bus.publish(ProjectsChanged(projects=self._projects, source="local"))
        return True

    # ── snapshots ───────────────────────────────────────────────────

    def apply_projects_update(
        self,
        incoming: ProjectList,
        changed_file: str | None = None,
    ) -> ReconcileDecision:
        """Reconcile a pushed snapshot against the current state."""
        decision = self._reconciler.accept_snapshot(
            self._projects, incoming, self._selection, self._registry,
        )
        if decision.accepted:
            self._apply_projects(incoming, source="push")
        else:
            self.event_bus.publish(SnapshotRejected(reason=decision.reason))
        self._check_external_change(changed_file)
        return decision

    async def refresh_projects(self) -> bool:
        """Pull the project list over REST and apply it like an accepted push."""
        try:
            fetched = await self._projects_client.fetch_projects()
        except ProjectsFetchError as exc:
            logger.error("Error fetching projects: %s", exc)
            return False
        merged = self._placeholders.merge_into(fetched)
        if not self._projects or projects_differ(self._projects, merged):
            self._apply_projects(merged, source="refresh")
        return True

    def _apply_projects(self, projects: ProjectList, source: str) -> None:
        self._projects = projects
        self.event_bus.publish(ProjectsChanged(projects=projects, source=source))
        self._set_selection(self._reconciler.revalidate_selection(self._selection, projects))

    def _check_external_change(self, changed_file: str | None) -> None:
        session = self._selection.session
        if session is None or not changed_file:
            return
        if not changed_file_targets(changed_file, session.id):
            return
        if self._registry.is_protected(self._selection):
            return
        self._external_change_counter += 1
        logger.debug("Session %s changed on disk (%s)", session.id, changed_file)
        self.event_bus.publish(
            ExternalSessionChange(session_id=session.id, counter=self._external_change_counter),
        )

    # ── internal state writers ──────────────────────────────────────

    def _set_selection(self, selection: Selection) -> None:
        old = self._selection
        self._selection = selection
        old_key = (old.project.name if old.project else None, old.session.id if old.session else None)
        new_key = (
            selection.project.name if selection.project else None,
            selection.session.id if selection.session else None,
        )
        if old_key != new_key:
            self.event_bus.publish(
                SelectionChanged(project_name=new_key[0], session_id=new_key[1]),
            )

    def _set_progress(self, progress: LoadingProgress | None) -> None:
        self._progress = progress
        self.event_bus.publish(ProgressChanged(progress=progress))

    def _handle_state_change(self, state: ChannelState) -> None:
        self.event_bus.publish(ConnectionStateChanged(state=state.value))

    def _publish_protection(self) -> None:
        self.event_bus.publish(ProtectionChanged(
            active=tuple(sorted(str(s) for s in self._registry.active)),
            processing=tuple(sorted(str(s) for s in self._registry.processing)),
        ))

    # ── push handlers ───────────────────────────────────────────────

    def _handle_projects_updated(self, event: PushEvent) -> None:
        if not isinstance(event, ProjectsUpdated):
            return
        try:
            incoming = projects_from_wire(event.projects)
        except ValueError as exc:
            logger.warning("Dropping projects_updated with bad project list: %s", exc)
            return
        self.apply_projects_update(incoming, event.changedFile)

    def _handle_session_created(self, event: PushEvent) -> None:
        if not isinstance(event, SessionCreated) or not event.sessionId:
            return
        if not self._registry.has_temporary:
            logger.debug("session-created %s with no temporary session in flight", event.sessionId)
            return
        self.on_real_session_assigned(event.sessionId)

    def _handle_session_settled(self, event: PushEvent) -> None:
        if not isinstance(event, SessionSettled):
            return
        sid = as_session_id(event.sessionId)
        if sid is None:
            return
        self._registry.mark_inactive(sid)
        self._registry.mark_not_processing(sid)
        self._publish_protection()

    def _handle_session_status(self, event: PushEvent) -> None:
        if not isinstance(event, SessionStatus) or not event.sessionId:
            return
        if event.isProcessing:
            self.on_response_started(event.sessionId)
