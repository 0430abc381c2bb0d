"""Main screen — project tree beside the selected session."""

from __future__ import annotations

import logging

from rich.text import Text
from textual import work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Footer, Header, RichLog, Static, Tree

from ccui.engine.config import CoordinatorConfig
from ccui.engine.coordinator import Coordinator
from ccui.engine.session_ids import TemporarySessionId
from ccui.tui.handlers.live_processor import LiveProcessor
from ccui.tui.widgets.progress_banner import ProgressBanner
from ccui.tui.widgets.project_tree import ProjectTree, TreeEntry
from ccui.tui.widgets.status_bar import StatusBar

logger = logging.getLogger(__name__)


class MainScreen(Screen):
    """Primary workspace with project tree, session pane and activity log."""

    DEFAULT_CSS = """
    #workspace {
        height: 1fr;
    }
    #project-tree {
        width: 40%;
        border-right: solid $primary-background;
    }
    #session-pane {
        height: auto;
        min-height: 5;
        padding: 1 2;
    }
    #activity-log {
        height: 1fr;
    }
    StatusBar {
        height: 1;
        dock: bottom;
        background: $panel;
    }
    """

    def __init__(
        self,
        coordinator: Coordinator | None = None,
        config: CoordinatorConfig | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.coordinator = coordinator or Coordinator(config)
        self.live_processor = LiveProcessor(self)

    def compose(self) -> ComposeResult:
        yield Header()
        yield ProgressBanner(id="progress-banner")
        with Horizontal(id="workspace"):
            yield ProjectTree(id="project-tree")
            with Vertical(id="main-pane"):
                yield Static(id="session-pane")
                yield RichLog(
                    id="activity-log", wrap=True, markup=True, max_lines=2000,
                )
        yield StatusBar(id="status-bar")
        yield Footer()

    # ── widget accessors ──

    @property
    def project_tree(self) -> ProjectTree:
        return self.query_one("#project-tree", ProjectTree)

    @property
    def status_bar(self) -> StatusBar:
        return self.query_one("#status-bar", StatusBar)

    @property
    def progress_banner(self) -> ProgressBanner:
        return self.query_one("#progress-banner", ProgressBanner)

    @property
    def activity_log(self) -> RichLog:
        return self.query_one("#activity-log", RichLog)

    # ── lifecycle ──

    def on_mount(self) -> None:
        self.refresh_session_pane()
        self._consume_events()
        self._start_coordinator()

    async def on_unmount(self) -> None:
        await self.coordinator.shutdown()

    @work(exclusive=True, group="events", name="coordinator-events")
    async def _consume_events(self) -> None:
        await self.live_processor.consume_events()

    @work(name="coordinator-start")
    async def _start_coordinator(self) -> None:
        self.activity_log.write(
            f"[dim]Server {self.coordinator.projects_url}[/dim]"
        )
        await self.coordinator.start()

    @work(exclusive=True, group="refresh", name="refresh-projects")
    async def refresh_projects(self) -> None:
        ok = await self.coordinator.refresh_callback()
        if not ok:
            self.activity_log.write("[red]Could not refresh projects[/red] (see log)")

    # ── session pane ──

    def refresh_session_pane(self) -> None:
        selection = self.coordinator.selection
        pane = self.query_one("#session-pane", Static)
        text = Text()
        if selection.project is None:
            text.append("No project selected", style="dim")
            pane.update(text)
            self.status_bar.selection_label = "No session"
            return

        text.append(selection.project.display_name or selection.project.name, style="bold")
        text.append(f"\n{selection.project.full_path}", style="dim")
        session = selection.session
        if session is None:
            text.append("\n\nNo session selected", style="dim")
            self.status_bar.selection_label = selection.project.name
        else:
            text.append(f"\n\n{session.display_title}", style="bold cyan")
            text.append(f"\nid {session.id}", style="dim")
            if session.last_activity:
                text.append(f"\nlast activity {session.last_activity}", style="dim")
            if self.coordinator.is_protected():
                text.append("\nconversation in progress", style="green")
            counter = self.coordinator.external_change_counter
            if counter:
                text.append(f"\nchanged on disk ({counter})", style="yellow")
            self.status_bar.selection_label = session.display_title
        pane.update(text)

    # ── event handlers ──

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        entry = event.node.data
        if not isinstance(entry, TreeEntry):
            return
        if self.coordinator.select(entry.project_name, entry.session_id):
            self.refresh_session_pane()

    def new_session(self) -> TemporarySessionId | None:
        """Add a placeholder session to the selected project.

        The placeholder stays unprotected until a message is sent in it.
        """
        project = self.coordinator.selection.project
        if project is None:
            self.notify("Select a project first", severity="warning")
            return None
        temp_id = self.coordinator.add_placeholder(project.name)
        self.activity_log.write(f"[cyan]New session[/cyan] in {project.name}")
        return temp_id
