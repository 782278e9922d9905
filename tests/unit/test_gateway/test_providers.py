"""Tests for the OpenAI and Anthropic gateways with mocked SDK clients."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from screenguide.config.settings import Settings
from screenguide.gateway import build_gateway
from screenguide.gateway.anthropic import AnthropicGateway
from screenguide.gateway.base import GatewayQuotaError, GatewayUnknownError
from screenguide.gateway.openai import OpenAIGateway
from screenguide.gateway.retry import RetryingGateway
from screenguide.utils.imaging import EncodedImage

IMAGE = EncodedImage(data=b"\x89PNG fake", mime_type="image/png")


class _RateLimited(Exception):
    status_code = 429


def _openai_response(text: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class TestOpenAIGateway:
    @pytest.fixture
    def gateway(self) -> OpenAIGateway:
        gw = OpenAIGateway(api_key="sk-test", model="gpt-4o")
        gw._client = AsyncMock()
        return gw

    @pytest.mark.asyncio
    async def test_complete_with_image(self, gateway: OpenAIGateway) -> None:
        gateway._client.chat.completions.create.return_value = _openai_response("  Click OK.  ")
        assert await gateway.complete("What next?", IMAGE) == "Click OK."

        kwargs = gateway._client.chat.completions.create.call_args.kwargs
        content = kwargs["messages"][-1]["content"]
        assert content[0] == {"type": "text", "text": "What next?"}
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")
        assert kwargs["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_complete_text_only(self, gateway: OpenAIGateway) -> None:
        gateway._client.chat.completions.create.return_value = _openai_response("Hi")
        await gateway.complete("Hello")
        content = gateway._client.chat.completions.create.call_args.kwargs["messages"][-1]["content"]
        assert len(content) == 1

    @pytest.mark.asyncio
    async def test_sdk_errors_classified(self, gateway: OpenAIGateway) -> None:
        gateway._client.chat.completions.create.side_effect = _RateLimited("slow down")
        with pytest.raises(GatewayQuotaError) as exc_info:
            await gateway.complete("x")
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_empty_completion(self, gateway: OpenAIGateway) -> None:
        gateway._client.chat.completions.create.return_value = _openai_response(None)
        with pytest.raises(GatewayUnknownError):
            await gateway.complete("x")


class TestAnthropicGateway:
    @pytest.fixture
    def gateway(self) -> AnthropicGateway:
        gw = AnthropicGateway(api_key="sk-ant-test", system_prompt="Be brief.")
        gw._client = AsyncMock()
        return gw

    @pytest.mark.asyncio
    async def test_complete_with_image(self, gateway: AnthropicGateway) -> None:
        gateway._client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Press Enter.")]
        )
        assert await gateway.complete("What next?", IMAGE) == "Press Enter."

        kwargs = gateway._client.messages.create.call_args.kwargs
        blocks = kwargs["messages"][0]["content"]
        assert blocks[0]["source"]["media_type"] == "image/png"
        assert blocks[1] == {"type": "text", "text": "What next?"}
        assert kwargs["system"] == "Be brief."

    @pytest.mark.asyncio
    async def test_sdk_errors_classified(self, gateway: AnthropicGateway) -> None:
        gateway._client.messages.create.side_effect = _RateLimited("overloaded")
        with pytest.raises(GatewayQuotaError):
            await gateway.complete("x")


class TestRetryingGateway:
    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, mock_gateway: AsyncMock) -> None:
        mock_gateway.complete.side_effect = [GatewayQuotaError("busy"), "done"]
        gateway = RetryingGateway(mock_gateway, max_retries=2, initial_wait=0, max_wait=0, jitter=0)
        assert await gateway.complete("x") == "done"
        assert mock_gateway.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, mock_gateway: AsyncMock) -> None:
        mock_gateway.complete.side_effect = GatewayQuotaError("busy")
        gateway = RetryingGateway(mock_gateway, max_retries=1, initial_wait=0, max_wait=0, jitter=0)
        with pytest.raises(GatewayQuotaError):
            await gateway.complete("x")
        assert mock_gateway.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_auth_errors_not_retried(self, mock_gateway: AsyncMock) -> None:
        from screenguide.gateway.base import GatewayAuthError

        mock_gateway.complete.side_effect = GatewayAuthError("bad key")
        gateway = RetryingGateway(mock_gateway, max_retries=3, initial_wait=0, max_wait=0, jitter=0)
        with pytest.raises(GatewayAuthError):
            await gateway.complete("x")
        assert mock_gateway.complete.await_count == 1


class TestBuildGateway:
    def test_openai_default(self) -> None:
        gateway = build_gateway(Settings(openai_api_key="sk-test"))
        assert isinstance(gateway, OpenAIGateway)
        assert gateway.model == "gpt-4o"

    def test_anthropic_with_retries(self) -> None:
        settings = Settings(
            anthropic_api_key="sk-ant",
            gateway={"provider": "anthropic", "model": "claude-sonnet-4-20250514", "max_retries": 2},
        )
        gateway = build_gateway(settings)
        assert isinstance(gateway, RetryingGateway)
        assert gateway.provider == "anthropic"
