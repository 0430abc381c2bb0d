"""Headless TUI smoke test through Textual's pilot."""

from __future__ import annotations

import asyncio

import pytest

from ccui.adapters.events import LoadingProgress
from ccui.engine.config import CoordinatorConfig
from ccui.engine.coordinator import Coordinator
from ccui.engine.lifecycle import ChannelState
from ccui.shared.models.project import projects_from_wire
from ccui.shared.services.placeholders import PlaceholderStore
from ccui.tui.app import CcuiApp
from ccui.tui.screens.main import MainScreen
from ccui.tui.widgets.progress_banner import format_progress

PROJECTS = [
    {"name": "projectX", "displayName": "Project X", "sessions": [
        {"id": "S", "title": "Fix bug", "created_at": "2024-01-01T00:00:00Z",
         "updated_at": "2024-01-01T00:00:00Z"},
    ]},
    {"name": "projectY", "sessions": []},
]


class FakeProjectsClient:
    url = "http://backend.test/api/projects"

    def __init__(self) -> None:
        self.calls = 0

    async def fetch_projects(self):
        self.calls += 1
        return projects_from_wire(PROJECTS)

    async def close(self) -> None:
        pass


class IdleConnection:
    def __init__(self, url, *, on_open, on_message, on_close) -> None:
        self._on_open = on_open
        self._on_close = on_close
        self._closed = asyncio.Event()
        self.state = ChannelState.DISCONNECTED

    async def run(self) -> None:
        self.state = ChannelState.CONNECTED
        self._on_open(self)
        await self._closed.wait()
        self.state = ChannelState.DISCONNECTED
        self._on_close(self)

    async def send(self, payload) -> bool:
        return True

    async def close(self) -> None:
        self._closed.set()


def test_format_progress() -> None:
    text = format_progress(LoadingProgress(phase="scanning", current=2, total=5, currentProject="app"))
    assert "scanning" in text.plain
    assert "2/5" in text.plain
    assert "app" in text.plain


@pytest.mark.asyncio
async def test_app_lists_projects_and_selects_session(tmp_path) -> None:
    client = FakeProjectsClient()
    coordinator = Coordinator(
        CoordinatorConfig(),
        projects_client=client,
        placeholder_store=PlaceholderStore(path=tmp_path / "p.json"),
        connection_factory=IdleConnection,
    )
    app = CcuiApp(coordinator=coordinator)

    async with app.run_test() as pilot:
        await pilot.pause(0.2)
        screen = app.screen
        assert isinstance(screen, MainScreen)

        tree = screen.project_tree
        assert [n.data.project_name for n in tree.root.children] == ["projectX", "projectY"]
        assert screen.status_bar.connection == "connected"

        leaf = tree.root.children[0].children[0]
        tree.select_node(leaf)
        await pilot.pause(0.1)
        assert coordinator.selection.session.id == "S"
        assert screen.status_bar.selection_label == "Fix bug"

        await pilot.press("ctrl+n")
        await pilot.pause(0.1)
        placeholder = tree.root.children[0].children[0].data
        assert placeholder.session_id.startswith("new-session-")
        assert not coordinator.registry.has_temporary
        assert screen.status_bar.active_count == 0

        # An unsent placeholder must not hold back updates to the selection
        changed = [
            dict(PROJECTS[0], sessions=[dict(PROJECTS[0]["sessions"][0], updated_at="2024-01-02T00:00:00Z")]),
            PROJECTS[1],
        ]
        decision = coordinator.apply_projects_update(projects_from_wire(changed))
        await pilot.pause(0.1)
        assert decision.accepted
        assert coordinator.selection.session.updated_at == "2024-01-02T00:00:00Z"

        await pilot.press("ctrl+r")
        await pilot.pause(0.1)
        assert client.calls == 2
