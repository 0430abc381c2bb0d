"""Coordinator integration: push handling, protection API, refresh, lifecycle."""

from __future__ import annotations

import asyncio
import json

import pytest

from ccui.adapters.events import (
    ConnectionStateChanged,
    ExternalSessionChange,
    ProgressChanged,
    ProjectsChanged,
    ProtectionChanged,
    SelectionChanged,
    SnapshotRejected,
)
from ccui.engine.config import ChannelConfig, CoordinatorConfig
from ccui.engine.coordinator import Coordinator
from ccui.engine.errors import ProjectsFetchError
from ccui.engine.lifecycle import ChannelState
from ccui.engine.session_ids import RealSessionId, TemporarySessionId
from ccui.shared.models.project import ProjectSnapshot, SessionSummary, projects_from_wire
from ccui.shared.services.placeholders import PlaceholderStore


def _session_dict(sid: str, updated: str = "T1", title: str = "Fix bug") -> dict:
    return {"id": sid, "title": title, "created_at": "T0", "updated_at": updated}


def _project_dict(name: str, *sessions: dict) -> dict:
    return {
        "name": name,
        "displayName": name,
        "fullPath": f"/work/{name}",
        "sessions": list(sessions),
        "sessionMeta": {"total": len(sessions), "hasMore": False},
    }


def _push(projects: list[dict], changed_file: str | None = None) -> str:
    payload = {"type": "projects_updated", "projects": projects}
    if changed_file is not None:
        payload["changedFile"] = changed_file
    return json.dumps(payload)


class FakeProjectsClient:
    url = "http://backend.test/api/projects"

    def __init__(self, projects: list[dict] | None = None) -> None:
        self.projects = projects or []
        self.error: Exception | None = None
        self.calls = 0
        self.closed = False

    async def fetch_projects(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return projects_from_wire(self.projects)

    async def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, url, *, on_open, on_message, on_close) -> None:
        self._on_open = on_open
        self._on_close = on_close
        self.on_message = on_message
        self._closed = asyncio.Event()
        self.state = ChannelState.DISCONNECTED
        self.sent: list = []

    async def run(self) -> None:
        self.state = ChannelState.CONNECTED
        self._on_open(self)
        await self._closed.wait()
        self.state = ChannelState.DISCONNECTED
        self._on_close(self)

    async def send(self, payload) -> bool:
        self.sent.append(payload)
        return True

    async def close(self) -> None:
        self._closed.set()


@pytest.fixture
def initial():
    return [
        _project_dict("projectX", _session_dict("S"), _session_dict("R")),
        _project_dict("projectY", _session_dict("Y1")),
    ]


@pytest.fixture
def coordinator(tmp_path, initial):
    config = CoordinatorConfig(
        channel=ChannelConfig(reconnect_delay=0.05), progress_clear_delay=0.05,
    )
    coord = Coordinator(
        config,
        projects_client=FakeProjectsClient(initial),
        placeholder_store=PlaceholderStore(path=tmp_path / "placeholders.json"),
    )
    coord.apply_projects_update(projects_from_wire(initial))
    coord.event_bus.drain()
    return coord


def _of_type(events, cls):
    return [e for e in events if isinstance(e, cls)]


# ── reconciliation through the router ──


def test_protected_changed_session_snapshot_is_discarded(coordinator) -> None:
    assert coordinator.select("projectX", "S")
    coordinator.on_user_sent_message("S")
    before_projects = coordinator.projects
    before_selection = coordinator.selection
    coordinator.event_bus.drain()

    coordinator.router.route(_push([
        _project_dict("projectX", _session_dict("S", updated="T2"), _session_dict("R")),
        _project_dict("projectY", _session_dict("Y1"), _session_dict("Y2")),
    ]))

    assert coordinator.projects is before_projects
    assert coordinator.selection is before_selection
    events = coordinator.event_bus.drain()
    assert _of_type(events, SnapshotRejected)[0].reason == "selected session changed"
    assert not _of_type(events, ProjectsChanged)


def test_protected_unchanged_session_snapshot_applies_in_full(coordinator) -> None:
    coordinator.select("projectX", "S")
    coordinator.on_user_sent_message("S")
    coordinator.event_bus.drain()

    coordinator.router.route(_push([
        _project_dict("projectX", _session_dict("T", updated="T9"), _session_dict("S")),
        _project_dict("projectY", _session_dict("Y1")),
        _project_dict("projectZ"),
    ]))

    project = coordinator.selection.project
    assert [s.id for s in project.sessions] == ["T", "S"]
    assert [p.name for p in coordinator.projects] == ["projectX", "projectY", "projectZ"]
    assert coordinator.selection.session.id == "S"
    assert _of_type(coordinator.event_bus.drain(), ProjectsChanged)[0].source == "push"


def test_unprotected_selection_follows_snapshot(coordinator) -> None:
    coordinator.select("projectX", "S")
    coordinator.event_bus.drain()

    coordinator.router.route(_push([_project_dict("projectX", _session_dict("R"))]))

    assert coordinator.selection.project.name == "projectX"
    assert coordinator.selection.session is None
    changed = _of_type(coordinator.event_bus.drain(), SelectionChanged)
    assert changed[-1].project_name == "projectX"
    assert changed[-1].session_id is None


def test_malformed_project_list_is_dropped(coordinator) -> None:
    before = coordinator.projects
    coordinator.router.route(json.dumps({"type": "projects_updated", "projects": [{"sessions": []}]}))
    assert coordinator.projects is before


# ── external change signal ──


def test_changed_file_for_unprotected_selection_fires_once(coordinator) -> None:
    coordinator.router.route(_push([_project_dict("myproj", _session_dict("S123"))]))
    coordinator.select("myproj", "S123")
    coordinator.event_bus.drain()

    coordinator.router.route(_push(
        [_project_dict("myproj", _session_dict("S123", updated="T2"))],
        changed_file="myproj/S123.jsonl",
    ))

    assert coordinator.external_change_counter == 1
    signals = _of_type(coordinator.event_bus.drain(), ExternalSessionChange)
    assert [(s.session_id, s.counter) for s in signals] == [("S123", 1)]


def test_changed_file_for_protected_selection_does_not_fire(coordinator) -> None:
    coordinator.select("projectX", "S")
    coordinator.on_user_sent_message("S")

    coordinator.router.route(_push(
        [_project_dict("projectX", _session_dict("S", updated="T2"))],
        changed_file="projectX/S.jsonl",
    ))

    assert coordinator.external_change_counter == 0


def test_changed_file_for_other_session_does_not_fire(coordinator) -> None:
    coordinator.select("projectX", "S")
    coordinator.router.route(_push(
        [_project_dict("projectX", _session_dict("S"), _session_dict("R", updated="T3"))],
        changed_file="projectX/R.jsonl",
    ))
    assert coordinator.external_change_counter == 0


# ── protection lifecycle ──


def test_new_conversation_is_bridged_to_real_id(coordinator) -> None:
    coordinator.select("projectX", "S")
    temp = coordinator.on_user_sent_message(None)
    assert isinstance(temp, TemporarySessionId)
    assert coordinator.is_protected()

    coordinator.router.route(json.dumps({"type": "session-created", "sessionId": "abc-999"}))

    assert coordinator.registry.active == frozenset({RealSessionId("abc-999")})
    protection = _of_type(coordinator.event_bus.drain(), ProtectionChanged)[-1]
    assert protection.active == ("abc-999",)


def test_session_created_without_temporary_is_ignored(coordinator) -> None:
    coordinator.router.route(json.dumps({"type": "session-created", "sessionId": "abc-999"}))
    assert coordinator.registry.active == frozenset()


def test_settled_events_clear_active_and_processing(coordinator) -> None:
    coordinator.on_user_sent_message("S")
    coordinator.router.route(json.dumps({"type": "session-status", "sessionId": "S", "isProcessing": True}))
    assert coordinator.registry.is_processing(RealSessionId("S"))

    coordinator.router.route(json.dumps({"type": "codex-error", "sessionId": "S", "error": "boom"}))

    assert coordinator.registry.active == frozenset()
    assert coordinator.registry.processing == frozenset()


def test_settled_event_with_numeric_session_id(coordinator) -> None:
    coordinator.on_user_sent_message("42")

    coordinator.router.route(json.dumps({"type": "claude-complete", "sessionId": 42}))

    assert coordinator.router.metrics.handler_errors == 0
    assert coordinator.registry.active == frozenset()


def test_response_started_and_finished(coordinator) -> None:
    coordinator.on_response_started("S")
    assert coordinator.registry.is_processing(RealSessionId("S"))
    coordinator.on_response_finished("S")
    assert not coordinator.registry.is_processing(RealSessionId("S"))
    coordinator.on_conversation_settled("S")


def test_placeholder_lifecycle(coordinator) -> None:
    temp = coordinator.add_placeholder("projectX", "Draft")
    coordinator.on_user_sent_message(temp)

    project = coordinator.projects[0]
    assert project.sessions[0].id == str(temp)
    assert project.sessions[0].is_placeholder
    assert project.session_meta["total"] == 3
    assert str(temp) in coordinator.placeholders

    coordinator.on_placeholder_replaced("S9", temp)

    assert coordinator.registry.active == frozenset({RealSessionId("S9")})
    assert str(temp) not in coordinator.placeholders


def test_unsent_placeholder_does_not_protect_selection(coordinator) -> None:
    assert coordinator.select("projectX", "S")
    coordinator.add_placeholder("projectX")
    coordinator.router.route(json.dumps({"type": "claude-complete", "sessionId": "S"}))

    coordinator.router.route(_push([
        _project_dict("projectX", _session_dict("S", updated="T2"), _session_dict("R")),
        _project_dict("projectY", _session_dict("Y1")),
    ]))

    assert coordinator.registry.active == frozenset()
    assert coordinator.selection.session.updated_at == "T2"


def test_real_session_assignment_drops_bridged_placeholders(coordinator) -> None:
    temp = coordinator.add_placeholder("projectX")
    coordinator.on_user_sent_message(temp)

    coordinator.on_real_session_assigned("S9")

    assert len(coordinator.placeholders) == 0
    assert coordinator.registry.is_active(RealSessionId("S9"))


# ── navigation and local edits ──


def test_select_unknown_targets(coordinator) -> None:
    assert not coordinator.select("nope")
    assert not coordinator.select("projectX", "missing")
    assert coordinator.selection.is_empty


def test_select_session_by_id_searches_all_projects(coordinator) -> None:
    assert coordinator.select_session_by_id("Y1")
    assert coordinator.selection.project.name == "projectY"
    assert not coordinator.select_session_by_id("missing")

    coordinator.clear_selection()
    assert coordinator.selection.project is None


def test_remove_project_clears_its_selection(coordinator) -> None:
    coordinator.select("projectY", "Y1")
    coordinator.remove_project("projectY")

    assert [p.name for p in coordinator.projects] == ["projectX"]
    assert coordinator.selection.project is None


def test_record_session_activity_updates_selected_project(coordinator) -> None:
    coordinator.select("projectX", "S")
    assert coordinator.record_session_activity("S", "2024-05-01T10:00:00Z")

    session = coordinator.projects[0].find_session("S")
    assert session.last_activity == "2024-05-01T10:00:00Z"
    # The identity fields are untouched, so protection checks are unaffected
    assert session.identity_key() == ("S", "Fix bug", "T0", "T1")
    assert not coordinator.record_session_activity("Y1")


# ── refresh ──


@pytest.mark.asyncio
async def test_refresh_merges_placeholders_and_skips_identical_lists(coordinator) -> None:
    coordinator.add_placeholder("projectY", "Draft")
    coordinator.event_bus.drain()

    assert await coordinator.refresh_callback()
    first = coordinator.projects
    assert first[1].sessions[0].is_placeholder

    assert await coordinator.refresh_projects()
    assert coordinator.projects is first
    assert not _of_type(coordinator.event_bus.drain(), ProjectsChanged)


@pytest.mark.asyncio
async def test_refresh_bypasses_protection(coordinator, initial) -> None:
    coordinator.select("projectX", "S")
    coordinator.on_user_sent_message("S")
    client = coordinator._projects_client
    client.projects = [_project_dict("projectX", _session_dict("S", updated="T5"))]

    assert await coordinator.refresh_projects()

    assert coordinator.selection.session.updated_at == "T5"


@pytest.mark.asyncio
async def test_refresh_failure_leaves_state(coordinator) -> None:
    before = coordinator.projects
    coordinator._projects_client.error = ProjectsFetchError("http://x", "boom", 500)

    assert not await coordinator.refresh_projects()
    assert coordinator.projects is before


# ── progress and lifecycle ──


@pytest.mark.asyncio
async def test_loading_progress_published_then_cleared(coordinator) -> None:
    coordinator.router.route(json.dumps({"type": "loading_progress", "phase": "complete", "current": 2, "total": 2}))
    assert coordinator.progress.phase == "complete"

    await asyncio.sleep(0.15)

    assert coordinator.progress is None
    progress = _of_type(coordinator.event_bus.drain(), ProgressChanged)
    assert [p.progress is None for p in progress] == [False, True]


@pytest.mark.asyncio
async def test_start_and_shutdown(tmp_path, initial) -> None:
    connections: list[FakeConnection] = []

    def factory(url, **callbacks):
        conn = FakeConnection(url, **callbacks)
        connections.append(conn)
        return conn

    client = FakeProjectsClient(initial)
    coordinator = Coordinator(
        CoordinatorConfig(),
        projects_client=client,
        placeholder_store=PlaceholderStore(path=tmp_path / "p.json"),
        connection_factory=factory,
    )
    await coordinator.start()
    await asyncio.sleep(0.01)

    assert coordinator.channel_state is ChannelState.CONNECTED
    assert client.calls == 1
    assert len(coordinator.projects) == 2

    assert await coordinator.send({"type": "abort-session", "sessionId": "S"})
    connections[0].on_message(_push([_project_dict("projectZ")]))
    assert [p.name for p in coordinator.projects] == ["projectZ"]

    await coordinator.shutdown()

    assert coordinator.supervisor.is_shut_down
    assert client.closed
    assert coordinator.event_bus.closed
    states = [e.state for e in _of_type(coordinator.event_bus.drain(), ConnectionStateChanged)]
    assert states[:2] == ["connecting", "connected"]
    assert states[-1] == "disconnected"
    assert connections[0].sent == [{"type": "abort-session", "sessionId": "S"}]
