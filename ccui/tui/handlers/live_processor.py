"""Live processor extracted from MainScreen.

Consumes coordinator notifications from the EventBus and updates the TUI:
project tree, session pane, progress banner, status bar and activity log.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ccui.adapters.events import (
    ConnectionStateChanged,
    CoordinatorEvent,
    ExternalSessionChange,
    ProgressChanged,
    ProjectsChanged,
    ProtectionChanged,
    SelectionChanged,
    SnapshotRejected,
)

if TYPE_CHECKING:
    from ccui.tui.screens.main import MainScreen

logger = logging.getLogger(__name__)


class LiveProcessor:
    """Processes coordinator notifications on behalf of *MainScreen*.

    Keeps a back-reference to the screen so it can query widgets without
    duplicating them.
    """

    def __init__(self, screen: MainScreen) -> None:
        self._screen = screen
        self.processed = 0

    async def consume_events(self) -> None:
        """Run until the coordinator's event bus is closed."""
        async for event in self._screen.coordinator.event_bus.consume():
            self.handle(event)

    def handle(self, event: CoordinatorEvent) -> None:
        """Apply one notification to the widgets. Never raises."""
        s = self._screen
        try:
            if isinstance(event, ProjectsChanged):
                s.project_tree.update_projects(event.projects, s.coordinator.selection)
                s.refresh_session_pane()
            elif isinstance(event, SelectionChanged):
                s.refresh_session_pane()
            elif isinstance(event, ProgressChanged):
                s.progress_banner.show_progress(event.progress)
            elif isinstance(event, ConnectionStateChanged):
                self._handle_connection_state(event)
            elif isinstance(event, ProtectionChanged):
                s.status_bar.active_count = len(event.active)
                s.status_bar.processing_count = len(event.processing)
                s.project_tree.update_protection(event.active, event.processing)
            elif isinstance(event, SnapshotRejected):
                s.status_bar.rejected_count += 1
                s.activity_log.write(f"[dim]Held project update: {event.reason}[/dim]")
            elif isinstance(event, ExternalSessionChange):
                s.activity_log.write(
                    f"[yellow]Session {event.session_id} changed on disk[/yellow]"
                    f" [dim](#{event.counter})[/dim]"
                )
                s.refresh_session_pane()
        except Exception:
            logger.exception("Failed to apply %s to the UI", event.event_type)
        self.processed += 1

    def _handle_connection_state(self, event: ConnectionStateChanged) -> None:
        s = self._screen
        previous = s.status_bar.connection
        s.status_bar.connection = event.state
        if event.state == "connected":
            s.activity_log.write("[green]Connected[/green] to push channel")
        elif event.state == "disconnected" and previous == "connected":
            s.activity_log.write("[red]Disconnected[/red] — reconnecting")
