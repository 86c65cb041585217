"""
Configuration management for the open bank service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
The settlement section may be omitted entirely, which disables withdrawals.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict

REDACTION_MARKER = "***REDACTED***"
_SENSITIVE_KEYS: frozenset[str] = frozenset({"api_token"})


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class SettlementConfig(BaseModel):
    """Settlement gateway connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    balance_path: str
    transfer_path: str
    timeout_seconds: float
    minor_unit_decimals: int
    api_token: str | None = None


class Settings(BaseModel):
    """
    Root configuration container.

    All fields except ``settlement`` are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    request: RequestConfig
    settlement: SettlementConfig | None = None


def get_config_path() -> Path:
    """Determine configuration file path (CONFIG_PATH, else config.yaml at the project root)."""
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parents[2] / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and validate settings. Cached after the first successful call."""
    config_path = get_config_path()
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


def clear_settings_cache() -> None:
    """Forget cached settings. Used in testing."""
    get_settings.cache_clear()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: (
                REDACTION_MARKER
                if key in _SENSITIVE_KEYS and item is not None
                else _redact(item)
            )
            for key, item in value.items()
        }
    return value


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    return _redact(get_settings().model_dump())
