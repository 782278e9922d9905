"""Per-connection session state.

A SessionState is created when a connection is accepted and dropped when
it closes. Only the owning connection's processing path mutates it.

Invariants:
    - ``conversation_history``, ``screen_history`` and ``step_history``
      are append-only for the session's lifetime.
    - ``is_first_message`` is True until the first chat message is
      processed and never flips back.
    - ``last_frame_at`` is None until a frame analysis succeeds; after
      that it and ``last_frame_image`` always describe the most recently
      *analyzed* frame. ``last_frame_image`` may be None when that frame
      could not be decoded, in which case the next comparison fails open.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from screenguide.domain.models import ConversationTurn, ScreenStep, utcnow


class SessionState(BaseModel):
    """Conversation, goal, and throttle state for one live connection."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    conversation_history: list[ConversationTurn] = Field(default_factory=list)
    screen_history: list[ScreenStep] = Field(default_factory=list)
    step_history: list[str] = Field(default_factory=list)
    user_goal: str = ""
    is_first_message: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_frame_image: np.ndarray | None = None
    last_frame_at: datetime | None = None
    connected_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)

    @property
    def has_analyzed_frame(self) -> bool:
        return self.last_frame_at is not None

    def add_turn(self, role: str, content: str, timestamp: datetime | None = None) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content, timestamp=timestamp or utcnow())
        self.conversation_history.append(turn)
        return turn

    def history_tail(self, limit: int) -> list[ConversationTurn]:
        """Return the last ``limit`` conversation turns (all if limit is 0)."""
        return self.conversation_history[-limit:] if limit else list(self.conversation_history)

    def merge_metadata(self, updates: dict[str, Any]) -> None:
        """Shallow merge; later writes win per key."""
        self.metadata.update(updates)

    def summary(self) -> dict[str, Any]:
        """Diagnostic view used by the active-sessions listing."""
        return {
            "sessionId": self.session_id,
            "connectedAt": self.connected_at.isoformat(),
            "lastActivityAt": self.last_activity_at.isoformat(),
            "messageCount": len(self.conversation_history),
            "screenFrameCount": len(self.screen_history),
            "userGoal": self.user_goal,
        }
