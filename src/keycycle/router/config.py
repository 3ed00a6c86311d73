"""
YAML configuration loading for the backend pool.

Supports:
- Loading the ordered backend list and retry knobs from YAML files
- Validation of backend entries
- Credentials given inline or through an environment variable
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from keycycle.backends.base import Backend, TransportKind
from keycycle.router.registry import DEFAULT_COOLDOWN


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


VALID_BACKEND_FIELDS = {
    "id",
    "name",
    "api_key",
    "api_key_env",
    "transport",
    "type",
    "enabled",
    "base_url",
}

VALID_TRANSPORTS = {t.value for t in TransportKind}


@dataclass
class BackendConfig:
    """Configuration for a single backend."""

    id: str
    name: str
    api_key: str = ""
    transport: str = TransportKind.DIRECT.value
    enabled: bool = True
    base_url: str | None = None

    def to_backend(self) -> Backend:
        """Convert to Backend instance."""
        return Backend(
            id=self.id,
            name=self.name,
            api_key=self.api_key,
            transport=TransportKind(self.transport),
            enabled=self.enabled,
            base_url=self.base_url,
        )


@dataclass
class RouterConfig:
    """Complete router configuration."""

    max_attempts: int = 3
    retry_delay: float = 1.0
    cooldown: float = DEFAULT_COOLDOWN
    backends: list[BackendConfig] = field(default_factory=list)

    def to_backends(self) -> list[Backend]:
        return [b.to_backend() for b in self.backends]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (credentials omitted)."""
        return {
            "max_attempts": self.max_attempts,
            "retry_delay": self.retry_delay,
            "cooldown": self.cooldown,
            "backends": [b.to_backend().to_dict() for b in self.backends],
        }


def _resolve_api_key(entry: dict[str, Any]) -> str:
    if entry.get("api_key"):
        return str(entry["api_key"])
    env_name = entry.get("api_key_env")
    if env_name:
        return os.environ.get(str(env_name), "")
    return ""


def _validate_number(value: Any, field_name: str, minimum: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigValidationError(
            f"{field_name} must be a number, got {type(value).__name__}"
        )
    if value < minimum:
        raise ConfigValidationError(f"{field_name} must be at least {minimum}, got {value}")


def validate_router_config(
    config_dict: dict[str, Any],
    defaults: RouterConfig | None = None,
) -> RouterConfig:
    """
    Validate router configuration dictionary.

    Args:
        config_dict: Raw configuration dictionary
        defaults: Values used for knobs missing from the dictionary

    Returns:
        Validated RouterConfig

    Raises:
        ConfigValidationError: If validation fails
    """
    defaults = defaults or RouterConfig()

    max_attempts = config_dict.get("max_attempts", defaults.max_attempts)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
        raise ConfigValidationError(
            f"max_attempts must be a positive integer, got {max_attempts!r}"
        )

    retry_delay = config_dict.get("retry_delay", defaults.retry_delay)
    _validate_number(retry_delay, "retry_delay", 0)

    cooldown = config_dict.get("cooldown", defaults.cooldown)
    _validate_number(cooldown, "cooldown", 0)

    backends_data = config_dict.get("backends", [])
    if not isinstance(backends_data, list):
        raise ConfigValidationError("backends must be a list")

    backends: list[BackendConfig] = []
    seen_ids: set[str] = set()

    for i, entry in enumerate(backends_data):
        if not isinstance(entry, dict):
            raise ConfigValidationError(f"Backend {i}: entry must be a mapping")

        for key in entry:
            if key not in VALID_BACKEND_FIELDS:
                raise ConfigValidationError(
                    f"Backend {i}: unknown field '{key}'. Valid fields: {sorted(VALID_BACKEND_FIELDS)}"
                )

        backend_id = entry.get("id") or f"backend-{i + 1}"
        backend_id = str(backend_id)
        if backend_id in seen_ids:
            raise ConfigValidationError(f"Backend '{backend_id}': duplicate backend id")
        seen_ids.add(backend_id)

        # "type" is accepted as an alias of "transport"
        transport = str(entry.get("transport", entry.get("type", TransportKind.DIRECT.value)))
        transport = transport.lower()
        if transport not in VALID_TRANSPORTS:
            raise ConfigValidationError(
                f"Backend '{backend_id}': unknown transport '{transport}'. "
                f"Valid transports: {sorted(VALID_TRANSPORTS)}"
            )

        base_url = entry.get("base_url")
        if transport == TransportKind.PROXIED.value and not base_url:
            raise ConfigValidationError(
                f"Backend '{backend_id}': proxied transport requires 'base_url'"
            )

        enabled = entry.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigValidationError(
                f"Backend '{backend_id}': enabled must be a boolean, got {type(enabled).__name__}"
            )

        backends.append(
            BackendConfig(
                id=backend_id,
                name=str(entry.get("name") or f"API Key {i + 1}"),
                api_key=_resolve_api_key(entry),
                transport=transport,
                enabled=enabled,
                base_url=base_url,
            )
        )

    return RouterConfig(
        max_attempts=max_attempts,
        retry_delay=float(retry_delay),
        cooldown=float(cooldown),
        backends=backends,
    )


def load_router_config(config_path: Path, defaults: RouterConfig | None = None) -> RouterConfig:
    """
    Load router configuration from YAML file.

    The router section lives under the top-level "router" key.

    Args:
        config_path: Path to YAML config file
        defaults: Values used for knobs missing from the file

    Returns:
        Loaded and validated RouterConfig

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML syntax is invalid
        ConfigValidationError: If config validation fails
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        content = f.read()

    defaults = defaults or RouterConfig()

    if not content.strip():
        return defaults

    data = yaml.safe_load(content)

    if data is None:
        return defaults

    if not isinstance(data, dict):
        raise ConfigValidationError("Top-level YAML document must be a mapping")

    router_data = data.get("router", {})

    if not router_data:
        return defaults

    if not isinstance(router_data, dict):
        raise ConfigValidationError("router section must be a mapping")

    return validate_router_config(router_data, defaults=defaults)


def backends_from_keys(keys: list[str]) -> list[BackendConfig]:
    """Build direct backends from a plain list of API keys."""
    return [
        BackendConfig(id=f"key-{i + 1}", name=f"API Key {i + 1}", api_key=key)
        for i, key in enumerate(k.strip() for k in keys)
        if key
    ]
