"""In-process registry of live sessions.

The registry map is the only structure shared between connection tasks.
It is guarded by a lock so insert-on-connect, remove-on-disconnect, and
diagnostic listing are safe from independent tasks and threads; the lock
is never held while a session's own messages are processed.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable

from screenguide.domain.errors import SessionLookupError
from screenguide.domain.models import utcnow
from screenguide.session.state import SessionState

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:16]}"


class SessionStore:
    """Thread-safe map of session id to SessionState."""

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_session_id,
    ) -> None:
        self._sessions: dict[str, SessionState] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._id_factory = id_factory

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def create(self) -> SessionState:
        """Create and register a new session with a fresh id."""
        now = self._clock()
        state = SessionState(session_id=self._id_factory(), connected_at=now, last_activity_at=now)
        with self._lock:
            self._sessions[state.session_id] = state
        logger.info("Session %s created (%d active)", state.session_id, len(self))
        return state

    def get(self, session_id: str) -> SessionState:
        """Return a session or raise SessionLookupError if missing."""
        with self._lock:
            state = self._sessions.get(session_id)
        if state is None:
            raise SessionLookupError(session_id)
        return state

    def touch(self, session_id: str) -> SessionState:
        """Look up a session and mark it active now."""
        state = self.get(session_id)
        state.last_activity_at = self._clock()
        return state

    def remove(self, session_id: str) -> SessionState | None:
        """Drop a session. Safe to call for an id that is already gone."""
        with self._lock:
            state = self._sessions.pop(session_id, None)
        if state is not None:
            logger.info("Session %s removed (%d active)", session_id, len(self))
        return state

    def snapshot(self) -> list[SessionState]:
        """Return a point-in-time list of live sessions."""
        with self._lock:
            return list(self._sessions.values())

    def list_active(self) -> list[dict[str, Any]]:
        return [state.summary() for state in self.snapshot()]

    def evict_idle(self, idle_timeout: float) -> list[str]:
        """Remove sessions with no activity for ``idle_timeout`` seconds.

        Returns:
            The ids of evicted sessions. A timeout of 0 disables eviction.
        """
        if idle_timeout <= 0:
            return []
        cutoff = self._clock() - timedelta(seconds=idle_timeout)
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.last_activity_at < cutoff]
            for sid in stale:
                del self._sessions[sid]
        for sid in stale:
            logger.info("Session %s evicted after %.0fs idle", sid, idle_timeout)
        return stale
