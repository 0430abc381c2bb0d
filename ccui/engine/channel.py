"""Push channel: one websocket connection and the supervisor that keeps it alive.

The supervisor owns at most one ChannelConnection at a time. When the
connection closes for any reason it schedules a new one after a fixed
delay, forever, until ``shutdown()`` sets the terminal flag. Nothing is
buffered across connections: a send while disconnected is dropped, and
messages in flight when a connection dies are lost.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from .config import ChannelConfig
from .lifecycle import ChannelState, validate_transition

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str | bytes], None]
StateCallback = Callable[[ChannelState], None]


def redact_url(url: str) -> str:
    """Strip the query string (it carries the auth token) for logging."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _describe(payload: Any) -> str:
    if isinstance(payload, dict) and "type" in payload:
        return f"message type={payload['type']!r}"
    return f"{type(payload).__name__} payload"


class Connection(Protocol):
    """What the supervisor needs from a connection."""

    @property
    def state(self) -> ChannelState: ...

    async def run(self) -> None: ...

    async def send(self, payload: Any) -> bool: ...

    async def close(self) -> None: ...


ConnectionFactory = Callable[..., Connection]


class ChannelConnection:
    """A single websocket link. Single use: ``run()`` once, then discard.

    Lifecycle callbacks: *on_open* after the upgrade succeeds, *on_message*
    for every inbound frame in arrival order, *on_close* exactly once when
    the link is gone (including when it never opened).
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        on_open: Callable[[ChannelConnection], None],
        on_message: MessageCallback,
        on_close: Callable[[ChannelConnection], None],
        heartbeat: float | None = None,
    ) -> None:
        self._url = url
        self._http = http_session
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._heartbeat = heartbeat
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._state = ChannelState.DISCONNECTED
        self._started = False
        self._close_requested = False

    @property
    def state(self) -> ChannelState:
        return self._state

    def _transition(self, target: ChannelState) -> None:
        validate_transition(self._state, target)
        self._state = target

    async def run(self) -> None:
        """Open the link and pump inbound frames until it closes."""
        if self._started:
            raise RuntimeError("ChannelConnection.run() may only be called once")
        self._started = True
        self._transition(ChannelState.CONNECTING)
        try:
            try:
                self._ws = await self._http.ws_connect(self._url, heartbeat=self._heartbeat)
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "Push channel connect to %s failed: %s", redact_url(self._url), exc,
                )
                return
            if self._close_requested:
                return

            self._transition(ChannelState.CONNECTED)
            logger.info("Push channel connected to %s", redact_url(self._url))
            self._on_open(self)

            async for msg in self._ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._deliver(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("Push channel error: %s", self._ws.exception())
                    break
            logger.info(
                "Push channel closed by peer (code=%s)", self._ws.close_code,
            )
        finally:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
            self._transition(ChannelState.DISCONNECTED)
            self._on_close(self)

    def _deliver(self, data: str | bytes) -> None:
        try:
            self._on_message(data)
        except Exception:
            # A bad message must not take the link down with it.
            logger.exception("Inbound push message handler failed")

    async def send(self, payload: Any) -> bool:
        """Send *payload* as JSON iff the link is open. Returns whether it was sent."""
        if self._state is not ChannelState.CONNECTED or self._ws is None or self._ws.closed:
            logger.warning("Push channel not connected; dropping outbound %s", _describe(payload))
            return False
        try:
            text = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("Outbound %s is not JSON serializable: %s", _describe(payload), exc)
            return False
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as exc:
            logger.warning("Push channel send failed: %s", exc)
            return False
        return True

    async def close(self) -> None:
        self._close_requested = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()


class ChannelSupervisor:
    """Keeps exactly one live ChannelConnection, reconnecting after failures.

    After ``shutdown()`` no connection attempt is ever made again: both
    ``connect()`` and the pending reconnect timer check the flag.
    """

    def __init__(
        self,
        config: ChannelConfig,
        on_message: MessageCallback,
        *,
        on_state_change: StateCallback | None = None,
        http_session: aiohttp.ClientSession | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._config = config
        self._on_message = on_message
        self._on_state_change = on_state_change
        self._http = http_session
        self._owns_http = http_session is None
        self._factory = connection_factory or self._make_connection
        self._connection: Connection | None = None
        self._task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._state = ChannelState.DISCONNECTED
        self._shut_down = False
        self.connection_attempts = 0

    # ── state ───────────────────────────────────────────────────────

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def _set_state(self, state: ChannelState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.exception("Channel state callback failed")

    # ── lifecycle ───────────────────────────────────────────────────

    async def start(self) -> None:
        self.connect()

    def connect(self) -> None:
        """Open a connection unless one is live or the supervisor is shut down."""
        if self._shut_down:
            logger.debug("connect() after shutdown ignored")
            return
        if self._connection is not None:
            return
        self.connection_attempts += 1
        connection = self._factory(
            self._config.connect_url(),
            on_open=self._handle_open,
            on_message=self._on_message,
            on_close=self._handle_close,
        )
        self._connection = connection
        self._set_state(ChannelState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(
            connection.run(), name="ccui-push-channel",
        )

    def _make_connection(self, url: str, **callbacks: Any) -> ChannelConnection:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return ChannelConnection(
            url, self._http, heartbeat=self._config.heartbeat, **callbacks,
        )

    def _handle_open(self, connection: Connection) -> None:
        if connection is self._connection:
            self._set_state(ChannelState.CONNECTED)

    def _handle_close(self, connection: Connection) -> None:
        if connection is not self._connection:
            return
        self._connection = None
        self._task = None
        self._set_state(ChannelState.DISCONNECTED)
        if self._shut_down:
            return
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            return
        delay = self._config.reconnect_delay
        logger.info("Reconnecting push channel in %.1fs", delay)
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            delay, self._reconnect_fired,
        )

    def _reconnect_fired(self) -> None:
        self._reconnect_handle = None
        if self._shut_down:
            return
        self.connect()

    async def send(self, payload: Any) -> bool:
        """Send *payload* over the live connection; dropped when there is none."""
        connection = self._connection
        if connection is None or connection.state is not ChannelState.CONNECTED:
            logger.warning("Push channel not connected; dropping outbound %s", _describe(payload))
            return False
        return await connection.send(payload)

    async def shutdown(self) -> None:
        """Tear down permanently. Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        connection, task = self._connection, self._task
        if connection is not None:
            if connection.state is ChannelState.CONNECTED:
                await connection.close()
            elif task is not None:
                task.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        self._connection = None
        self._task = None
        self._set_state(ChannelState.DISCONNECTED)

        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        logger.info("Push channel supervisor shut down")
