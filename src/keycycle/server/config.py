"""
Server configuration using Pydantic settings.

Configuration is loaded from environment variables with KEYCYCLE_ prefix,
and can be overridden via config file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from keycycle.backends.gemini import GEMINI_BASE_URL
from keycycle.router.config import RouterConfig


class ServerSettings(BaseSettings):
    """Server configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="KEYCYCLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server bind host")
    port: int = Field(default=8080, description="Server bind port")
    log_level: str = Field(default="INFO", description="Log level")
    reload: bool = Field(default=False, description="Enable hot reload (dev mode)")
    docs_enabled: bool = Field(default=True, description="Serve OpenAPI docs")
    request_logging: bool = Field(default=True, description="Log every API request")

    # Config file path
    config_path: Path | None = Field(default=None, description="Path to YAML config file")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v


class RouterSettings(BaseSettings):
    """Router retry and cooldown settings."""

    model_config = SettingsConfigDict(
        env_prefix="KEYCYCLE_ROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_attempts: int = Field(default=3, description="Attempts per request across backends")
    retry_delay: float = Field(default=1.0, description="Seconds to wait before retrying")
    cooldown: float = Field(default=60.0, description="Seconds before excluded backends return")
    request_timeout: float = Field(default=120.0, description="Upstream request timeout")
    gemini_base_url: str = Field(
        default=GEMINI_BASE_URL,
        description="Gemini API base URL for direct backends",
    )

    # Comma-separated keys, used when the config file lists no backends
    api_keys: str | None = Field(default=None, description="Comma-separated API keys")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be a positive integer")
        return v

    @field_validator("retry_delay", "cooldown")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be non-negative")
        return v

    def key_list(self) -> list[str]:
        if not self.api_keys:
            return []
        return [k.strip() for k in self.api_keys.split(",") if k.strip()]

    def to_router_config(self) -> RouterConfig:
        """Router knobs as defaults for the YAML backend pool."""
        return RouterConfig(
            max_attempts=self.max_attempts,
            retry_delay=self.retry_delay,
            cooldown=self.cooldown,
        )


class Settings(BaseSettings):
    """Combined application settings."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    router: RouterSettings = Field(default_factory=RouterSettings)

    def load_from_yaml(self, path: Path) -> None:
        """Load server settings from YAML file."""
        if not path.exists():
            return

        with open(path) as f:
            config = yaml.safe_load(f)

        if not config:
            return

        # Update settings from YAML; the router section is read by load_router_config
        if "server" in config:
            for key, value in config["server"].items():
                if hasattr(self.server, key):
                    setattr(self.server, key, value)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    # Load from config file if specified
    if settings.server.config_path:
        settings.load_from_yaml(settings.server.config_path)

    return settings


def get_settings_dict() -> dict[str, Any]:
    """Get settings as dictionary (for API responses)."""
    settings = get_settings()
    return {
        "server": {
            "host": settings.server.host,
            "port": settings.server.port,
            "log_level": settings.server.log_level,
            "docs_enabled": settings.server.docs_enabled,
            "config_path": str(settings.server.config_path)
            if settings.server.config_path
            else None,
        },
        "router": {
            "max_attempts": settings.router.max_attempts,
            "retry_delay": settings.router.retry_delay,
            "cooldown": settings.router.cooldown,
            "request_timeout": settings.router.request_timeout,
            "gemini_base_url": settings.router.gemini_base_url,
            "env_keys": len(settings.router.key_list()),
        },
    }
