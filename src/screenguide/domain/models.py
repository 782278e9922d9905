"""Core domain models for the screenguide system.

These models describe what flows across the websocket: inbound client
messages (a discriminated union over ``kind``), outbound server
messages, and the history records kept per session.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# History records
# ---------------------------------------------------------------------------


class ConversationTurn(BaseModel):
    """One chat turn. Insertion order is the conversation order."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return isoformat(value)


class ScreenStep(BaseModel):
    """A record of one analyzed frame.

    Only a short prefix of the encoded frame is retained for audit.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: datetime = Field(default_factory=utcnow)
    guidance: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    frame_prefix: str = Field(default="", alias="framePrefix")

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return isoformat(value)


# ---------------------------------------------------------------------------
# Inbound messages (discriminated union)
# ---------------------------------------------------------------------------


class _Inbound(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class FrameMessage(_Inbound):
    kind: Literal["frame"] = "frame"
    image: str = ""


class ChatMessage(_Inbound):
    kind: Literal["chat"] = "chat"
    text: str = ""
    image: str | None = None


class SetGoalMessage(_Inbound):
    kind: Literal["set_goal"] = "set_goal"
    goal: str


class UpdateMetadataMessage(_Inbound):
    kind: Literal["update_metadata"] = "update_metadata"
    metadata: dict[str, Any] = Field(default_factory=dict)


class GetHistoryMessage(_Inbound):
    kind: Literal["get_history"] = "get_history"


class PingMessage(_Inbound):
    kind: Literal["ping"] = "ping"


InboundMessage = Annotated[
    Union[
        FrameMessage,
        ChatMessage,
        SetGoalMessage,
        UpdateMetadataMessage,
        GetHistoryMessage,
        PingMessage,
    ],
    Field(discriminator="kind"),
]

inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


# ---------------------------------------------------------------------------
# Outbound messages
# ---------------------------------------------------------------------------


class _Outbound(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase field names, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConnectedMessage(_Outbound):
    kind: Literal["connected"] = "connected"
    session_id: str = Field(alias="sessionId")


class GuidanceMessage(_Outbound):
    kind: Literal["guidance"] = "guidance"
    text: str
    timestamp: str


class StatusMessage(_Outbound):
    kind: Literal["status"] = "status"
    text: str
    detail: str | None = None
    goal: str | None = None


class HistoryMessage(_Outbound):
    kind: Literal["history"] = "history"
    conversation_history: list[dict[str, Any]] = Field(alias="conversationHistory")
    screen_history: list[dict[str, Any]] = Field(alias="screenHistory")


class ErrorMessage(_Outbound):
    kind: Literal["error"] = "error"
    reason: str
    detail: str = ""


class PongMessage(_Outbound):
    kind: Literal["pong"] = "pong"


OutboundMessage = Union[
    ConnectedMessage,
    GuidanceMessage,
    StatusMessage,
    HistoryMessage,
    ErrorMessage,
    PongMessage,
]
