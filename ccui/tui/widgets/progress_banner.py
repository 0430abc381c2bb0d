"""Progress banner — shows backend project-loading progress."""

from __future__ import annotations

from rich.text import Text
from textual.widgets import Static

from ccui.adapters.events import LoadingProgress


def format_progress(progress: LoadingProgress) -> Text:
    text = Text()
    text.append(" ⟳ Loading projects ", style="bold")
    text.append(progress.phase, style="cyan")
    if progress.total:
        text.append(f"  {progress.current}/{progress.total}", style="dim")
    if progress.currentProject:
        text.append(f"  {progress.currentProject}", style="dim italic")
    return text


class ProgressBanner(Static):
    """Visible only while a loading progress value is set."""

    DEFAULT_CSS = """
    ProgressBanner {
        height: 1;
        display: none;
        background: $boost;
    }
    ProgressBanner.visible {
        display: block;
    }
    """

    def show_progress(self, progress: LoadingProgress | None) -> None:
        if progress is None:
            self.remove_class("visible")
            self.update("")
            return
        self.update(format_progress(progress))
        self.add_class("visible")
