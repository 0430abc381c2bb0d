"""Status bar — bottom bar showing channel state and session protection."""

from __future__ import annotations

from rich.text import Text
from textual.reactive import reactive
from textual.widget import Widget

STATUS_COLORS = {
    "connected": "green",
    "connecting": "yellow",
    "disconnected": "red",
}


class StatusBar(Widget):
    """Single-line status bar with selection, protection and connection state."""

    connection: reactive[str] = reactive("disconnected")
    selection_label: reactive[str] = reactive("No session")
    active_count: reactive[int] = reactive(0)
    processing_count: reactive[int] = reactive(0)
    rejected_count: reactive[int] = reactive(0)

    def render(self) -> Text:
        bar = Text()
        bar.append(f" {self.selection_label} ", style="bold")
        bar.append(" │ ", style="dim")

        if self.active_count:
            bar.append(f"{self.active_count} active", style="green")
        else:
            bar.append("0 active", style="dim")
        bar.append(" │ ", style="dim")
        if self.processing_count:
            bar.append(f"{self.processing_count} working", style="yellow")
        else:
            bar.append("idle", style="dim")

        if self.rejected_count:
            bar.append(" │ ", style="dim")
            bar.append(f"{self.rejected_count} update(s) held", style="dim italic")

        bar.append(" │ ", style="dim")
        color = STATUS_COLORS.get(self.connection, "white")
        bar.append(f"● {self.connection}", style=color)
        return bar
