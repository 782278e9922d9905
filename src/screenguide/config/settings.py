"""Configuration management for screenguide.

Loads settings from a YAML configuration file with environment variable
overrides for sensitive values (API keys). Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/screenguide.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000, ge=1, le=65535)
    ws_path: str = Field(default="/ws")


class DifferConfig(BaseModel):
    pixel_threshold: float = Field(
        default=0.1, ge=0.0, le=1.0,
        description="Per-channel delta (0-1) above which a pixel counts as changed",
    )
    min_diff_pixels: int = Field(
        default=1000, ge=0,
        description="Absolute count of changed pixels that makes two frames different",
    )


class ThrottleConfig(BaseModel):
    min_interval_ms: int = Field(default=1000, ge=0)


class SessionConfig(BaseModel):
    history_tail: int = Field(default=5, ge=0)
    frame_prefix_chars: int = Field(default=100, ge=0)
    idle_timeout_seconds: float = Field(default=1800.0, ge=0)
    sweep_interval_seconds: float = Field(default=60.0, gt=0)


class GatewayConfig(BaseModel):
    provider: Literal["openai", "anthropic"] = Field(default="openai")
    model: str = Field(default="gpt-4o")
    base_url: str | None = Field(default=None)
    max_tokens: int = Field(default=512, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=0, ge=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the screenguide server.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "SCREENGUIDE_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # API Keys
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    anthropic_api_key: SecretStr = Field(default=SecretStr(""))

    # Configuration sections
    server: ServerConfig = Field(default_factory=ServerConfig)
    differ: DifferConfig = Field(default_factory=DifferConfig)
    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def gateway_api_key(self) -> str:
        """Return the API key for the configured gateway provider."""
        if self.gateway.provider == "anthropic":
            return self.anthropic_api_key.get_secret_value()
        return self.openai_api_key.get_secret_value()


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load .env file manually for non-prefixed vars
    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply environment variable overrides for non-prefixed vars."""
    openai_key = os.environ.get("OPENAI_API_KEY", "")
    anthropic_key = os.environ.get("ANTHROPIC_API_KEY", "")
    vision_model = os.environ.get("VISION_MODEL", "")

    if openai_key and not yaml_data.get("openai_api_key"):
        yaml_data["openai_api_key"] = openai_key
    if anthropic_key and not yaml_data.get("anthropic_api_key"):
        yaml_data["anthropic_api_key"] = anthropic_key

    if "gateway" not in yaml_data:
        yaml_data["gateway"] = {}

    if anthropic_key and not openai_key and not yaml_data["gateway"].get("provider"):
        yaml_data["gateway"]["provider"] = "anthropic"
        yaml_data["gateway"].setdefault("model", "claude-sonnet-4-20250514")

    if vision_model and not yaml_data["gateway"].get("model"):
        yaml_data["gateway"]["model"] = vision_model
