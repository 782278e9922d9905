"""Retry wrapper for gateways.

The session engine never retries. When retries are configured, the
composition root wraps the concrete gateway in a RetryingGateway so the
policy lives at the call site, outside the state machine.
"""

from __future__ import annotations

import logging

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from screenguide.gateway.base import AIGateway, GatewayError, GatewayErrorKind
from screenguide.utils.imaging import EncodedImage

logger = logging.getLogger(__name__)

_RETRYABLE = {GatewayErrorKind.QUOTA, GatewayErrorKind.TIMEOUT, GatewayErrorKind.UNKNOWN}


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, GatewayError) and exc.kind in _RETRYABLE


class RetryingGateway(AIGateway):
    """Delegates to another gateway, retrying transient failures."""

    def __init__(
        self,
        inner: AIGateway,
        max_retries: int = 2,
        initial_wait: float = 0.5,
        max_wait: float = 8.0,
        jitter: float = 1.0,
    ) -> None:
        super().__init__(model=inner.model)
        self._inner = inner
        self._attempts = max_retries + 1
        self._initial_wait = initial_wait
        self._max_wait = max_wait
        self._jitter = jitter

    @property
    def provider(self) -> str:
        return self._inner.provider

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            "Gateway call failed (attempt %d/%d), retrying: %s",
            retry_state.attempt_number,
            self._attempts,
            retry_state.outcome.exception(),
        )

    async def complete(self, prompt: str, image: EncodedImage | None = None) -> str:
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential_jitter(initial=self._initial_wait, max=self._max_wait, jitter=self._jitter),
            reraise=True,
            before_sleep=self._log_retry,
        )
        async for attempt in retrying:
            with attempt:
                return await self._inner.complete(prompt, image)
        raise AssertionError("unreachable")

    async def health_check(self) -> bool:
        return await self._inner.health_check()

    async def aclose(self) -> None:
        await self._inner.aclose()
