"""Message router for inbound push-channel payloads.

Parses each raw payload, classifies it by its ``type`` discriminator and
hands the typed event to the handler registered for that type. A bad
payload is dropped with a diagnostic; it never takes the pipeline down.

Loading progress gets special treatment: a ``complete`` phase arms a
short debounce that clears the progress indicator unless another
progress event arrives first.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ccui.adapters.events import LoadingProgress, PushEvent, dict_to_event

from .config import DEFAULT_PROGRESS_CLEAR_DELAY
from .errors import MalformedMessageError

logger = logging.getLogger(__name__)

EventHandler = Callable[[PushEvent], None]
# Receives the progress to display, or None to clear it.
ProgressSink = Callable[[LoadingProgress | None], None]


@dataclass
class RouterMetrics:
    """Lightweight counters for observability."""

    messages_routed: int = 0
    dropped_malformed: int = 0
    ignored_unknown: int = 0
    handler_errors: int = 0
    progress_clears: int = 0

    def snapshot(self) -> dict[str, int]:
        """Return a dict copy of all counters."""
        return {
            "messages_routed": self.messages_routed,
            "dropped_malformed": self.dropped_malformed,
            "ignored_unknown": self.ignored_unknown,
            "handler_errors": self.handler_errors,
            "progress_clears": self.progress_clears,
        }


class TimerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class ProgressDebounce:
    """Two-state clear timer for the loading progress indicator.

    ``arm()`` from any state cancels the previous timer and starts a new
    one; ``cancel()`` returns to IDLE. When the timer fires it returns to
    IDLE and calls *on_fire* once.
    """

    def __init__(
        self,
        delay: float,
        on_fire: Callable[[], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._delay = delay
        self._on_fire = on_fire
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self.state = TimerState.IDLE

    def arm(self) -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)
        self.state = TimerState.ARMED

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.state = TimerState.IDLE

    def _fire(self) -> None:
        self._handle = None
        self.state = TimerState.IDLE
        self._on_fire()


class MessageRouter:
    """Routes inbound push payloads to per-type handlers."""

    def __init__(
        self,
        progress_sink: ProgressSink | None = None,
        progress_clear_delay: float = DEFAULT_PROGRESS_CLEAR_DELAY,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._handlers: dict[str, EventHandler] = {}
        self._progress_sink = progress_sink
        self._progress_timer = ProgressDebounce(
            progress_clear_delay, self._clear_progress, loop=loop,
        )
        self.metrics = RouterMetrics()
        self.register("loading_progress", self._handle_loading_progress)

    @property
    def progress_timer(self) -> ProgressDebounce:
        return self._progress_timer

    def register(self, event_type: str, handler: EventHandler) -> None:
        """Register *handler* for *event_type*, replacing any previous one."""
        self._handlers[event_type] = handler

    def register_many(self, event_types, handler: EventHandler) -> None:
        for event_type in event_types:
            self.register(event_type, handler)

    def parse(self, raw: str | bytes) -> PushEvent:
        """Decode and classify one payload. Raises MalformedMessageError."""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exc:
            raise MalformedMessageError(f"invalid JSON: {exc}", raw) from exc
        try:
            return dict_to_event(data)
        except TypeError as exc:
            raise MalformedMessageError(str(exc), raw) from exc

    def route(self, raw: str | bytes) -> None:
        """Route one inbound payload. Never raises."""
        try:
            event = self.parse(raw)
        except MalformedMessageError as exc:
            self.metrics.dropped_malformed += 1
            logger.warning("Dropping push message: %s", exc.reason)
            return

        handler = self._handlers.get(event.type)
        if handler is None:
            self.metrics.ignored_unknown += 1
            logger.debug("Ignoring push message of unknown type %r", event.type)
            return

        self.metrics.messages_routed += 1
        try:
            handler(event)
        except Exception:
            self.metrics.handler_errors += 1
            logger.exception("Handler for %r failed", event.type)

    def shutdown(self) -> None:
        """Cancel any pending progress clear."""
        self._progress_timer.cancel()

    # ── loading progress ────────────────────────────────────────────

    def _handle_loading_progress(self, event: PushEvent) -> None:
        if not isinstance(event, LoadingProgress):
            return
        self._progress_timer.cancel()
        if self._progress_sink is not None:
            self._progress_sink(event)
        if event.is_complete:
            self._progress_timer.arm()

    def _clear_progress(self) -> None:
        self.metrics.progress_clears += 1
        if self._progress_sink is not None:
            try:
                self._progress_sink(None)
            except Exception:
                logger.exception("Progress sink failed while clearing")
