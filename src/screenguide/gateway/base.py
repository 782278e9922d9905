"""Abstract base class for AI completion gateways.

All provider implementations conform to this interface so the session
engine can swap providers without changing anything else. A gateway is
single-shot and stateless: prompt text plus an optional image in,
generated text out. It never retries on its own.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod

from screenguide.utils.imaging import EncodedImage

logger = logging.getLogger(__name__)


class GatewayErrorKind(str, enum.Enum):
    AUTH = "authentication"
    QUOTA = "quota"
    INPUT = "malformed_input"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class GatewayError(Exception):
    """Raised when an AI completion call fails."""

    kind: GatewayErrorKind = GatewayErrorKind.UNKNOWN
    reason: str = "Failed to get AI response"

    def __init__(self, message: str, provider: str = "", raw_response: str = "") -> None:
        super().__init__(message)
        self.provider = provider
        self.raw_response = raw_response


class GatewayAuthError(GatewayError):
    kind = GatewayErrorKind.AUTH
    reason = "AI API authentication failed"


class GatewayQuotaError(GatewayError):
    kind = GatewayErrorKind.QUOTA
    reason = "AI API rate limit exceeded"


class GatewayInputError(GatewayError):
    kind = GatewayErrorKind.INPUT
    reason = "Invalid image data"


class GatewayTimeoutError(GatewayError):
    kind = GatewayErrorKind.TIMEOUT
    reason = "AI API request timeout"


class GatewayUnknownError(GatewayError):
    kind = GatewayErrorKind.UNKNOWN


_AUTH_STATUS = {401, 403}
_QUOTA_STATUS = {429}
_INPUT_STATUS = {400, 413, 415, 422}
_TIMEOUT_STATUS = {408, 504}


def classify_gateway_error(exc: BaseException, provider: str = "") -> GatewayError:
    """Map an arbitrary provider exception onto the gateway error taxonomy.

    Uses the HTTP status code when the SDK exposes one, then the
    exception type, then well-known phrases in the message.
    """
    if isinstance(exc, GatewayError):
        return exc

    message = str(exc) or type(exc).__name__
    status = getattr(exc, "status_code", None)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)) or "Timeout" in type(exc).__name__:
        cls: type[GatewayError] = GatewayTimeoutError
    elif status in _AUTH_STATUS:
        cls = GatewayAuthError
    elif status in _QUOTA_STATUS:
        cls = GatewayQuotaError
    elif status in _INPUT_STATUS:
        cls = GatewayInputError
    elif status in _TIMEOUT_STATUS:
        cls = GatewayTimeoutError
    else:
        cls = _classify_message(message.lower())

    return cls(f"{provider or 'gateway'} call failed: {message}", provider=provider)


def _classify_message(text: str) -> type[GatewayError]:
    if "api key" in text or "unauthorized" in text or "authentication" in text:
        return GatewayAuthError
    if "quota" in text or "rate limit" in text or "resource_exhausted" in text:
        return GatewayQuotaError
    if "invalid_argument" in text or "invalid image" in text or "decode" in text:
        return GatewayInputError
    if "timeout" in text or "timed out" in text:
        return GatewayTimeoutError
    return GatewayUnknownError


class AIGateway(ABC):
    """Abstract interface for text/vision completion services."""

    def __init__(self, model: str, system_prompt: str | None = None) -> None:
        self._model = model
        self._system_prompt = system_prompt

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def complete(self, prompt: str, image: EncodedImage | None = None) -> str:
        """Run one completion.

        Args:
            prompt: Fully assembled prompt text.
            image: Optional image attachment sent alongside the text.

        Returns:
            The generated text.

        Raises:
            GatewayError: A classified failure.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is reachable and authenticated."""
        ...

    async def aclose(self) -> None:
        """Release any underlying client resources."""
        return None
