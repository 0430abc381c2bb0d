"""Push channel connection state machine.

Defines valid transitions and enforces them. Invalid transitions
raise InvalidTransitionError rather than silently proceeding.

State Diagram:

    DISCONNECTED ──> CONNECTING ──┬──> CONNECTED ──> DISCONNECTED
                                  │
                                  └──> DISCONNECTED  (connect failed)
"""
from __future__ import annotations

from enum import Enum

from .errors import InvalidTransitionError


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


VALID_TRANSITIONS: dict[ChannelState, set[ChannelState]] = {
    ChannelState.DISCONNECTED: {
        ChannelState.CONNECTING,
    },
    ChannelState.CONNECTING: {
        ChannelState.CONNECTED,
        ChannelState.DISCONNECTED,
    },
    ChannelState.CONNECTED: {
        ChannelState.DISCONNECTED,
    },
}


def validate_transition(current: ChannelState, target: ChannelState) -> None:
    """Validate a state transition. Raises InvalidTransitionError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidTransitionError(
            current.value,
            target.value,
            sorted(s.value for s in allowed),
        )
