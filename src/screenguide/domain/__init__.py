"""Domain models for screenguide.

Inbound and outbound protocol messages, history records, and the
protocol error taxonomy. All models use Pydantic v2 for validation and
serialization.
"""

from screenguide.domain.errors import (
    ImageDecodeError,
    MessageValidationError,
    ProtocolError,
    SessionLookupError,
)
from screenguide.domain.models import (
    ChatMessage,
    ConversationTurn,
    ErrorMessage,
    FrameMessage,
    GuidanceMessage,
    InboundMessage,
    OutboundMessage,
    ScreenStep,
    StatusMessage,
)

__all__ = [
    "ChatMessage",
    "ConversationTurn",
    "ErrorMessage",
    "FrameMessage",
    "GuidanceMessage",
    "ImageDecodeError",
    "InboundMessage",
    "MessageValidationError",
    "OutboundMessage",
    "ProtocolError",
    "ScreenStep",
    "SessionLookupError",
    "StatusMessage",
]
