"""OpenAI-compatible gateway implementation.

Works with OpenAI, OpenRouter, and any OpenAI-compatible API
by setting a custom base_url.
"""

from __future__ import annotations

import logging

from screenguide.gateway.base import AIGateway, GatewayUnknownError, classify_gateway_error
from screenguide.utils.imaging import EncodedImage

logger = logging.getLogger(__name__)


class OpenAIGateway(AIGateway):
    """Gateway using OpenAI's chat completions API.

    Images are attached as data-URI ``image_url`` content parts next to
    the prompt text.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        system_prompt: str | None = None,
        max_tokens: int = 512,
        timeout: float | None = None,
    ) -> None:
        super().__init__(model=model, system_prompt=system_prompt)
        self._api_key = api_key
        self._base_url = base_url
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._client = None

    @property
    def provider(self) -> str:
        return "openai"

    async def _ensure_client(self) -> None:
        """Lazily initialize the OpenAI async client."""
        if self._client is not None:
            return
        from openai import AsyncOpenAI
        kwargs = {"api_key": self._api_key, "max_retries": 0}
        if self._base_url:
            kwargs["base_url"] = self._base_url
        if self._timeout:
            kwargs["timeout"] = self._timeout
        self._client = AsyncOpenAI(**kwargs)
        logger.info("Initialized OpenAI client (model=%s, base_url=%s)", self._model, self._base_url)

    def _build_messages(self, prompt: str, image: EncodedImage | None) -> list[dict]:
        content: list[dict] = [{"type": "text", "text": prompt}]
        if image is not None:
            content.append({
                "type": "image_url",
                "image_url": {"url": image.to_data_uri(), "detail": "high"},
            })
        messages: list[dict] = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": content})
        return messages

    async def complete(self, prompt: str, image: EncodedImage | None = None) -> str:
        """Send the prompt (and image) to the chat completions API."""
        await self._ensure_client()
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=self._build_messages(prompt, image),
            )
        except Exception as e:
            raise classify_gateway_error(e, provider=self.provider) from e

        raw_text = response.choices[0].message.content if response.choices else None
        if not raw_text:
            raise GatewayUnknownError("OpenAI returned an empty completion", provider=self.provider)
        logger.debug("Completion: %s", raw_text[:200])
        return raw_text.strip()

    async def health_check(self) -> bool:
        """Check if the API is reachable."""
        try:
            await self._ensure_client()
            await self._client.models.list()
            return True
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return False

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
