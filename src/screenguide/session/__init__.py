"""Session core: per-connection state, the live-session registry, and
the protocol engine that drives them."""

from screenguide.session.engine import SessionEngine
from screenguide.session.state import SessionState
from screenguide.session.store import SessionStore

__all__ = ["SessionEngine", "SessionState", "SessionStore"]
