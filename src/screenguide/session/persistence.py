"""Save hand-off for session history.

The session core never writes to durable storage on its own. When a
client explicitly saves, the live session is snapshotted into a
SessionRecord and handed to a SessionRecordStore.
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from screenguide.domain.models import utcnow
from screenguide.gateway.base import AIGateway, GatewayError
from screenguide.gateway.prompts import build_title_prompt
from screenguide.session.state import SessionState

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 80


class SessionRecord(BaseModel):
    """The shape exchanged with the persistence collaborator."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: int | str = Field(alias="userId")
    title: str | None = None
    messages: list[dict[str, Any]]
    screen_steps: list[dict[str, Any]] = Field(default_factory=list, alias="screenSteps")


class SessionRecordStore(ABC):
    """Durable storage for saved sessions."""

    @abstractmethod
    async def save(self, record: SessionRecord) -> str:
        """Persist a record and return its opaque id."""
        ...

    @abstractmethod
    async def get(self, record_id: str) -> SessionRecord:
        """Return a saved record or raise KeyError."""
        ...


class InMemoryRecordStore(SessionRecordStore):
    """Process-local record store used when no database is configured."""

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    async def save(self, record: SessionRecord) -> str:
        record_id = uuid.uuid4().hex
        with self._lock:
            self._records[record_id] = record.model_copy(deep=True)
        return record_id

    async def get(self, record_id: str) -> SessionRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise KeyError(f"Record {record_id} not found")
        return record.model_copy(deep=True)


def snapshot_for_save(state: SessionState, user_id: int | str, title: str | None = None) -> SessionRecord:
    """Build a SessionRecord from a live session."""
    return SessionRecord(
        user_id=user_id,
        title=title,
        messages=[turn.model_dump(mode="json") for turn in state.conversation_history],
        screen_steps=[step.model_dump(mode="json", by_alias=True) for step in state.screen_history],
    )


def fallback_title() -> str:
    return f"Session {utcnow().date().isoformat()}"


async def generate_title(gateway: AIGateway, messages: list[dict[str, Any]]) -> str:
    """Ask the gateway for a short title, falling back to a dated one."""
    contents = [str(m.get("content", "")) for m in messages if m.get("content")]
    if not contents:
        return fallback_title()
    try:
        title = await gateway.complete(build_title_prompt(contents))
    except GatewayError as e:
        logger.warning("Title generation failed: %s", e)
        return fallback_title()
    title = title.strip().strip('"').strip()
    return title[:MAX_TITLE_CHARS] or fallback_title()


async def save_record(
    records: SessionRecordStore, gateway: AIGateway, record: SessionRecord
) -> tuple[str, str]:
    """Fill in a missing title, persist the record, and return (id, title)."""
    title = record.title or await generate_title(gateway, record.messages)
    record = record.model_copy(update={"title": title})
    record_id = await records.save(record)
    logger.info("Saved session record %s (%d messages)", record_id, len(record.messages))
    return record_id, title
