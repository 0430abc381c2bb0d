"""Session identity: client-minted placeholders vs. server-assigned ids.

A conversation the user starts from scratch has no backend id until the
backend acknowledges it, so the client protects it under a temporary id
and later swaps in the real one (see protection.py).
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Union

# Wire/disk rendering of temporary ids, shared with the web client.
TEMPORARY_PREFIX = "new-session-"


@dataclass(frozen=True)
class TemporarySessionId:
    """Placeholder for a session the backend has not acknowledged yet."""
    nonce: str

    def __str__(self) -> str:
        return f"{TEMPORARY_PREFIX}{self.nonce}"


@dataclass(frozen=True)
class RealSessionId:
    """Session id assigned by the backend."""
    value: str

    def __str__(self) -> str:
        return self.value


SessionId = Union[TemporarySessionId, RealSessionId]


def new_temporary_id() -> TemporarySessionId:
    """Mint a fresh temporary id (millisecond clock plus a random suffix)."""
    return TemporarySessionId(f"{int(time.time() * 1000)}-{secrets.token_hex(3)}")


def parse_session_id(raw: str) -> SessionId:
    """Read a session id back from its string form.

    Only used where ids cross the wire or disk; everything past this
    boundary works on the typed values.
    """
    if raw.startswith(TEMPORARY_PREFIX) and len(raw) > len(TEMPORARY_PREFIX):
        return TemporarySessionId(raw[len(TEMPORARY_PREFIX):])
    return RealSessionId(raw)


def as_session_id(value: SessionId | str | int | None) -> SessionId | None:
    """Coerce a string from the UI or wire into a typed id; pass typed ids through."""
    if value is None or value == "":
        return None
    if isinstance(value, (TemporarySessionId, RealSessionId)):
        return value
    return parse_session_id(str(value))
