"""Anthropic Claude gateway implementation.

Uses the Anthropic Python SDK to send prompts, with an optional screen
capture attached as a base64 image block, to Claude models with vision
capability.
"""

from __future__ import annotations

import logging

from screenguide.gateway.base import AIGateway, GatewayUnknownError, classify_gateway_error
from screenguide.utils.imaging import EncodedImage

logger = logging.getLogger(__name__)

_SUPPORTED_MEDIA_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


class AnthropicGateway(AIGateway):
    """Gateway using Anthropic's messages API.

    Example usage::

        gateway = AnthropicGateway(
            api_key="sk-ant-...",
            model="claude-sonnet-4-20250514",
        )
        text = await gateway.complete("What should I click next?", image)
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        system_prompt: str | None = None,
        max_tokens: int = 512,
        timeout: float | None = None,
    ) -> None:
        """Initialize the Anthropic gateway.

        Args:
            api_key: Anthropic API key.
            model: Model identifier (must support vision).
            system_prompt: Optional system prompt.
            max_tokens: Maximum tokens in the response.
            timeout: Per-request timeout in seconds passed to the SDK.
        """
        super().__init__(model=model, system_prompt=system_prompt)
        self._api_key = api_key
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._client = None

    @property
    def provider(self) -> str:
        return "anthropic"

    async def _ensure_client(self) -> None:
        """Lazily initialize the Anthropic async client."""
        if self._client is not None:
            return
        import anthropic
        kwargs = {"api_key": self._api_key, "max_retries": 0}
        if self._timeout:
            kwargs["timeout"] = self._timeout
        self._client = anthropic.AsyncAnthropic(**kwargs)
        logger.info("Initialized Anthropic client (model=%s)", self._model)

    @staticmethod
    def _build_content(prompt: str, image: EncodedImage | None) -> list[dict]:
        content: list[dict] = []
        if image is not None:
            media_type = image.mime_type if image.mime_type in _SUPPORTED_MEDIA_TYPES else "image/jpeg"
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": image.to_base64()},
            })
        content.append({"type": "text", "text": prompt})
        return content

    async def complete(self, prompt: str, image: EncodedImage | None = None) -> str:
        """Send the prompt (and image) to Claude."""
        await self._ensure_client()
        kwargs = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": self._build_content(prompt, image)}],
        }
        if self._system_prompt:
            kwargs["system"] = self._system_prompt
        try:
            response = await self._client.messages.create(**kwargs)
        except Exception as e:
            raise classify_gateway_error(e, provider=self.provider) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text:
            raise GatewayUnknownError("Anthropic returned an empty completion", provider=self.provider)
        logger.debug("Completion: %s", text[:200])
        return text.strip()

    async def health_check(self) -> bool:
        """Send a tiny text-only message to verify key and connectivity."""
        try:
            await self._ensure_client()
            await self._client.messages.create(
                model=self._model,
                max_tokens=1,
                messages=[{"role": "user", "content": "ping"}],
            )
            return True
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return False

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
