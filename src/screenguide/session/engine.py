"""Session protocol engine.

Consumes inbound protocol messages for one session at a time, mutates
that session's state, invokes the throttle gate and the AI gateway as
needed, and returns the outbound messages to send, in order.

The engine is transport-agnostic: the websocket route feeds it parsed
payloads and writes back whatever it returns. Processing is serialized
per session by the caller awaiting ``handle`` once per inbound message;
different sessions never share state beyond the SessionStore registry.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

import numpy as np
from pydantic import ValidationError

from screenguide.config.settings import Settings
from screenguide.domain.errors import MessageValidationError, ProtocolError, SessionLookupError
from screenguide.domain.models import (
    ChatMessage,
    ConnectedMessage,
    ErrorMessage,
    FrameMessage,
    GetHistoryMessage,
    GuidanceMessage,
    HistoryMessage,
    OutboundMessage,
    PingMessage,
    PongMessage,
    ScreenStep,
    SetGoalMessage,
    StatusMessage,
    UpdateMetadataMessage,
    inbound_adapter,
    isoformat,
    utcnow,
)
from screenguide.gateway.base import AIGateway, GatewayError, GatewayTimeoutError, classify_gateway_error
from screenguide.gateway.prompts import build_chat_prompt, build_frame_prompt
from screenguide.session.state import SessionState
from screenguide.session.store import SessionStore
from screenguide.utils.imaging import EncodedImage, decode_image_payload, decode_pixels
from screenguide.vision.throttle import ThrottleDecision, ThrottleGate

logger = logging.getLogger(__name__)

MALFORMED_REASON = MessageValidationError.reason


class SessionEngine:
    """Event-dispatch state machine over inbound message kinds."""

    def __init__(
        self,
        store: SessionStore,
        gateway: AIGateway,
        throttle: ThrottleGate | None = None,
        history_tail: int = 5,
        frame_prefix_chars: int = 100,
        gateway_timeout: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._throttle = throttle or ThrottleGate()
        self._history_tail = history_tail
        self._frame_prefix_chars = frame_prefix_chars
        self._gateway_timeout = gateway_timeout
        self._clock = clock
        self._handlers: dict[type, Callable[[SessionState, Any], Awaitable[list[OutboundMessage]]]] = {
            FrameMessage: self._on_frame,
            ChatMessage: self._on_chat,
            SetGoalMessage: self._on_set_goal,
            UpdateMetadataMessage: self._on_update_metadata,
            GetHistoryMessage: self._on_get_history,
            PingMessage: self._on_ping,
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gateway: AIGateway,
        store: SessionStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> SessionEngine:
        throttle = ThrottleGate(
            min_interval_ms=settings.throttle.min_interval_ms,
            pixel_threshold=settings.differ.pixel_threshold,
            min_diff_pixels=settings.differ.min_diff_pixels,
        )
        return cls(
            store=store or SessionStore(clock=clock),
            gateway=gateway,
            throttle=throttle,
            history_tail=settings.session.history_tail,
            frame_prefix_chars=settings.session.frame_prefix_chars,
            gateway_timeout=settings.gateway.timeout_seconds,
            clock=clock,
        )

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def gateway(self) -> AIGateway:
        return self._gateway

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> tuple[SessionState, ConnectedMessage]:
        """Create a session for a newly accepted connection."""
        session = self._store.create()
        return session, ConnectedMessage(session_id=session.session_id)

    def disconnect(self, session_id: str) -> None:
        """Destroy a session. Results still in flight for it are discarded."""
        self._store.remove(session_id)

    def is_active(self, session_id: str) -> bool:
        return session_id in self._store

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def parse(raw: str | bytes | dict[str, Any]):
        """Parse a raw payload into one of the inbound message variants.

        ``type`` is accepted as an alias for ``kind``.

        Raises:
            MessageValidationError: On non-JSON, non-object, missing or
                unknown kind, or fields of the wrong type.
        """
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise MessageValidationError("Payload must be JSON") from e
        if not isinstance(raw, dict):
            raise MessageValidationError("Payload must be a JSON object")

        kind = raw.get("kind") or raw.get("type")
        if not isinstance(kind, str) or not kind:
            raise MessageValidationError("Message must have a 'kind' field")

        try:
            return inbound_adapter.validate_python({**raw, "kind": kind})
        except ValidationError as e:
            if any(err["type"] == "union_tag_invalid" for err in e.errors()):
                raise MessageValidationError(f"Unknown message kind: {kind}") from e
            raise MessageValidationError(f"Invalid '{kind}' message: {e.error_count()} field error(s)") from e

    async def handle(self, session_id: str, raw: str | bytes | dict[str, Any]) -> list[OutboundMessage]:
        """Process one inbound message and return the outbound replies.

        Never raises: protocol, gateway and unexpected handler failures
        become ``error`` replies. A missing session yields no replies.
        """
        try:
            session = self._store.touch(session_id)
        except SessionLookupError:
            logger.warning("Dropping message for unknown session %s", session_id)
            return []

        try:
            message = self.parse(raw)
        except MessageValidationError as e:
            logger.warning("Session %s: rejected message: %s", session_id, e.detail)
            return [ErrorMessage(reason=e.reason, detail=e.detail)]

        logger.debug("Session %s: received %s", session_id, message.kind)
        handler = self._handlers[type(message)]
        try:
            return await handler(session, message)
        except SessionLookupError:
            logger.info("Session %s closed mid-request, discarding result", session_id)
            return []
        except ProtocolError as e:
            logger.warning("Session %s: rejected %s: %s", session_id, message.kind, e.detail)
            return [ErrorMessage(reason=e.reason, detail=e.detail)]
        except Exception as e:
            logger.exception("Session %s: failed to process %s", session_id, message.kind)
            return [ErrorMessage(reason=ProtocolError.reason, detail=str(e))]

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_frame(self, session: SessionState, message: FrameMessage) -> list[OutboundMessage]:
        image = decode_image_payload(message.image)
        received_at = self._clock()
        pixels, decision = await asyncio.to_thread(self._evaluate_frame, session, image, received_at)
        if not decision.should_analyze:
            return [StatusMessage(text="skipped", detail=decision.reason)]

        prompt = build_frame_prompt(session.user_goal, session.metadata, session.step_history)
        try:
            guidance = await self._complete(prompt, image)
        except GatewayError as e:
            return [self._gateway_error(session, e)]

        self._ensure_live(session)
        step = ScreenStep(
            timestamp=self._clock(),
            guidance=guidance,
            metadata=dict(session.metadata),
            frame_prefix=image.to_base64()[: self._frame_prefix_chars],
        )
        session.screen_history.append(step)
        session.step_history.append(guidance)
        self._throttle.record(session, pixels, received_at)
        logger.info("Session %s: frame analyzed (%s)", session.session_id, decision.reason)
        return [GuidanceMessage(text=guidance, timestamp=isoformat(step.timestamp))]

    def _evaluate_frame(
        self, session: SessionState, image: EncodedImage, received_at: datetime
    ) -> tuple[np.ndarray | None, ThrottleDecision]:
        pixels = decode_pixels(image.data)
        if pixels is None:
            logger.warning(
                "Session %s: %d-byte %s frame could not be decoded, treating as changed",
                session.session_id, image.size, image.mime_type,
            )
        return pixels, self._throttle.decide(session, pixels, received_at)

    async def _on_chat(self, session: SessionState, message: ChatMessage) -> list[OutboundMessage]:
        text = message.text.strip()
        if not text:
            raise MessageValidationError("Chat text is required")
        image = decode_image_payload(message.image) if message.image else None

        history_tail = session.history_tail(self._history_tail)
        is_first = session.is_first_message
        session.add_turn("user", text, self._clock())
        if is_first:
            if not session.user_goal:
                session.user_goal = text
                logger.info("Session %s: goal captured from first message", session.session_id)
            session.is_first_message = False

        prompt = build_chat_prompt(text, history_tail, session.user_goal, session.step_history, is_first)
        try:
            reply = await self._complete(prompt, image)
        except GatewayError as e:
            return [self._gateway_error(session, e)]

        self._ensure_live(session)
        turn = session.add_turn("assistant", reply, self._clock())
        session.step_history.append(reply)
        return [GuidanceMessage(text=reply, timestamp=isoformat(turn.timestamp))]

    async def _on_set_goal(self, session: SessionState, message: SetGoalMessage) -> list[OutboundMessage]:
        session.user_goal = message.goal.strip()
        logger.info("Session %s: goal set", session.session_id)
        return [StatusMessage(text="Goal updated", goal=session.user_goal)]

    async def _on_update_metadata(
        self, session: SessionState, message: UpdateMetadataMessage
    ) -> list[OutboundMessage]:
        session.merge_metadata(message.metadata)
        return []

    async def _on_get_history(self, session: SessionState, message: GetHistoryMessage) -> list[OutboundMessage]:
        return [
            HistoryMessage(
                conversation_history=[t.model_dump(mode="json") for t in session.conversation_history],
                screen_history=[s.model_dump(mode="json", by_alias=True) for s in session.screen_history],
            )
        ]

    async def _on_ping(self, session: SessionState, message: PingMessage) -> list[OutboundMessage]:
        return [PongMessage()]

    # ------------------------------------------------------------------
    # Gateway plumbing
    # ------------------------------------------------------------------

    async def _complete(self, prompt: str, image: EncodedImage | None) -> str:
        """Call the gateway once under the configured timeout."""
        try:
            return await asyncio.wait_for(
                self._gateway.complete(prompt, image), timeout=self._gateway_timeout
            )
        except asyncio.TimeoutError as e:
            raise GatewayTimeoutError(
                f"No response within {self._gateway_timeout:.1f}s", provider=self._gateway.provider
            ) from e
        except GatewayError:
            raise
        except Exception as e:
            raise classify_gateway_error(e, provider=self._gateway.provider) from e

    def _gateway_error(self, session: SessionState, error: GatewayError) -> ErrorMessage:
        logger.error(
            "Session %s: gateway %s failure: %s", session.session_id, error.kind.value, error
        )
        return ErrorMessage(reason=error.reason, detail=str(error))

    def _ensure_live(self, session: SessionState) -> None:
        if session.session_id not in self._store:
            raise SessionLookupError(session.session_id)
