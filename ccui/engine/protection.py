"""Session protection registry.

Tracks which sessions the user is mid-conversation in ("active") and
which ones the assistant is currently computing a response for
("processing"). Only "active" gates snapshot application; "processing"
drives transient UI banners.

The sets are private; callers go through the mark/unmark/query methods.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .session_ids import RealSessionId, SessionId, TemporarySessionId

if TYPE_CHECKING:
    from ccui.shared.models.project import Selection

logger = logging.getLogger(__name__)


class SessionProtectionRegistry:
    """Owned registry of active and processing session ids."""

    def __init__(self) -> None:
        self._active: set[SessionId] = set()
        self._processing: set[SessionId] = set()

    # ── active ──────────────────────────────────────────────────────

    def mark_active(self, session_id: SessionId | None) -> None:
        if session_id is None:
            return
        if session_id not in self._active:
            self._active.add(session_id)
            logger.debug("Session %s marked active", session_id)

    def mark_inactive(self, session_id: SessionId | None) -> None:
        if session_id is None:
            return
        if session_id in self._active:
            self._active.discard(session_id)
            logger.debug("Session %s marked inactive", session_id)

    def replace_temporary(self, real_id: RealSessionId | None) -> None:
        """Swap every temporary id in ``active`` for *real_id* in one step.

        Real ids already present are kept. The new set is built first and
        then assigned, so no caller can observe a state in which neither
        the temporary nor the real id is protected.
        """
        if real_id is None:
            return
        replaced = {sid for sid in self._active if isinstance(sid, TemporarySessionId)}
        bridged = {sid for sid in self._active if not isinstance(sid, TemporarySessionId)}
        bridged.add(real_id)
        self._active = bridged
        logger.debug(
            "Bridged %d temporary session id(s) to %s", len(replaced), real_id,
        )

    def replace_placeholder(
        self, real_id: RealSessionId | None, placeholder_id: SessionId | None
    ) -> None:
        """Swap one specific placeholder id for *real_id*."""
        if real_id is None or placeholder_id is None:
            return
        bridged = set(self._active)
        bridged.discard(placeholder_id)
        bridged.add(real_id)
        self._active = bridged

    # ── processing ──────────────────────────────────────────────────

    def mark_processing(self, session_id: SessionId | None) -> None:
        if session_id is not None:
            self._processing.add(session_id)

    def mark_not_processing(self, session_id: SessionId | None) -> None:
        if session_id is not None:
            self._processing.discard(session_id)

    # ── queries ─────────────────────────────────────────────────────

    @property
    def active(self) -> frozenset[SessionId]:
        return frozenset(self._active)

    @property
    def processing(self) -> frozenset[SessionId]:
        return frozenset(self._processing)

    @property
    def has_temporary(self) -> bool:
        return any(isinstance(sid, TemporarySessionId) for sid in self._active)

    def is_active(self, session_id: SessionId | None) -> bool:
        return session_id is not None and session_id in self._active

    def is_processing(self, session_id: SessionId | None) -> bool:
        return session_id is not None and session_id in self._processing

    def is_protected(self, selection: Selection) -> bool:
        """True when an incoming snapshot must be checked before it may apply.

        A temporary id anywhere in ``active`` means a brand-new conversation
        is in flight that cannot yet be matched to a displayed selection, so
        everything is treated as protected.
        """
        return self.is_active(selection.session_id) or self.has_temporary
