"""ccui TUI — Textual application class."""

from __future__ import annotations

from textual.app import App

from ccui.engine.config import CoordinatorConfig
from ccui.engine.coordinator import Coordinator
from ccui.tui.screens.main import MainScreen


class CcuiApp(App):
    """Terminal UI for browsing coding-assistant projects and sessions."""

    TITLE = "ccui"
    SUB_TITLE = "Projects & Sessions"
    coordinator_config: CoordinatorConfig | None = None

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+r", "refresh", "Refresh"),
        ("ctrl+t", "focus_tree", "Tree"),
        ("ctrl+n", "new_session", "New Session"),
        ("escape", "cancel_or_blur", "Blur"),
    ]

    def __init__(
        self,
        config: CoordinatorConfig | None = None,
        coordinator: Coordinator | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        if config is not None:
            self.coordinator_config = config
        self._coordinator = coordinator

    def on_mount(self) -> None:
        config = self.coordinator_config
        self.sub_title = config.api_base if config else self.SUB_TITLE
        self.push_screen(MainScreen(coordinator=self._coordinator, config=config))

    def action_focus_tree(self) -> None:
        screen = self.screen
        if isinstance(screen, MainScreen):
            screen.project_tree.focus()

    def action_refresh(self) -> None:
        screen = self.screen
        if isinstance(screen, MainScreen):
            screen.refresh_projects()

    def action_new_session(self) -> None:
        screen = self.screen
        if isinstance(screen, MainScreen):
            screen.new_session()

    def action_cancel_or_blur(self) -> None:
        self.screen.set_focus(None)
