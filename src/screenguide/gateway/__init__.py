"""AI Gateway module for screenguide.

Provides a provider-agnostic interface for sending prompts and screen
captures to vision-capable language models.

Public API:
    AIGateway -- Abstract base class
    GatewayError (+ classified subclasses)
    OpenAIGateway -- OpenAI / OpenRouter implementation
    AnthropicGateway -- Claude API implementation
    RetryingGateway -- tenacity-backed retry wrapper
    build_gateway -- construct a gateway from GatewayConfig
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from screenguide.gateway.base import (
    AIGateway,
    GatewayAuthError,
    GatewayError,
    GatewayErrorKind,
    GatewayInputError,
    GatewayQuotaError,
    GatewayTimeoutError,
    GatewayUnknownError,
    classify_gateway_error,
)

if TYPE_CHECKING:
    from screenguide.config.settings import Settings

__all__ = [
    "AIGateway",
    "GatewayError",
    "GatewayErrorKind",
    "GatewayAuthError",
    "GatewayQuotaError",
    "GatewayInputError",
    "GatewayTimeoutError",
    "GatewayUnknownError",
    "classify_gateway_error",
    "build_gateway",
    "AnthropicGateway",
    "OpenAIGateway",
    "RetryingGateway",
]


def build_gateway(settings: Settings) -> AIGateway:
    """Build the configured gateway, wrapped for retries when enabled."""
    cfg = settings.gateway
    gateway: AIGateway
    if cfg.provider == "anthropic":
        from screenguide.gateway.anthropic import AnthropicGateway
        gateway = AnthropicGateway(
            api_key=settings.gateway_api_key(),
            model=cfg.model,
            max_tokens=cfg.max_tokens,
            timeout=cfg.timeout_seconds,
        )
    else:
        from screenguide.gateway.openai import OpenAIGateway
        gateway = OpenAIGateway(
            api_key=settings.gateway_api_key(),
            model=cfg.model,
            base_url=cfg.base_url,
            max_tokens=cfg.max_tokens,
            timeout=cfg.timeout_seconds,
        )
    if cfg.max_retries > 0:
        from screenguide.gateway.retry import RetryingGateway
        gateway = RetryingGateway(gateway, max_retries=cfg.max_retries)
    return gateway


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "AnthropicGateway":
        from screenguide.gateway.anthropic import AnthropicGateway
        return AnthropicGateway
    if name == "OpenAIGateway":
        from screenguide.gateway.openai import OpenAIGateway
        return OpenAIGateway
    if name == "RetryingGateway":
        from screenguide.gateway.retry import RetryingGateway
        return RetryingGateway
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
