"""Configuration system for voxrelay.

Supports loading from YAML files, dicts, or programmatic construction via
Pydantic models, with process environment overrides for the secrets and
the listening port. The config drives the HTTP/WebSocket surface, the
assistant control-plane client, and the pacing of the telephony leg.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """Listening socket and public addressing."""

    host: str = "0.0.0.0"
    port: int = 8766
    listen_path: str = "/frejun"
    token_path_prefix: str = "/ws/"
    # Host name used when building wss:// URLs; defaults to the request Host
    public_host: str = ""


class VapiConfig(BaseModel):
    """Assistant control API settings."""

    api_url: str = "https://api.vapi.ai"
    api_key: str = ""
    assistant_id: str = ""
    sample_rate: int = 16000
    provision_timeout_seconds: float = 10.0


class PacingConfig(BaseModel):
    """Paced delivery towards the telephony leg."""

    tick_ms: int = 20
    frame_ms: int = 20
    max_queue_frames: int = 500


class TokenConfig(BaseModel):
    """One-time upgrade tokens for the token-based variant."""

    ttl_seconds: float = 60.0


class WebhookConfig(BaseModel):
    """Provider callback verification."""

    secret: str = ""
    signature_header: str = "x-vapi-signature"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"


class RelayConfig(BaseModel):
    """Top-level voxrelay configuration.

    Examples:
        # Programmatic
        config = RelayConfig(vapi=VapiConfig(api_key="...", assistant_id="..."))

        # From YAML
        config = RelayConfig.from_yaml("relay.yaml")

        # Shorthand
        config = RelayConfig.from_dict({"port": 8766, "vapi_api_key": "..."})
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    vapi: VapiConfig = Field(default_factory=VapiConfig)
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path, env: Mapping[str, str] | None = None) -> RelayConfig:
        """Load configuration from a YAML file."""
        path = Path(path)
        with path.open() as f:
            data = yaml.safe_load(f) or {}
        return cls._from_raw(data, env)

    @classmethod
    def from_dict(cls, data: dict[str, Any], env: Mapping[str, str] | None = None) -> RelayConfig:
        """Load configuration from a dictionary.

        Supports both the full nested format and a flat shorthand format:

        Full format:
            {"server": {"port": 8766}, "vapi": {"api_key": "..."}}

        Shorthand format:
            {"port": 8766, "vapi_api_key": "..."}
        """
        return cls._from_raw(dict(data), env)

    @classmethod
    def _from_raw(cls, data: dict[str, Any], env: Mapping[str, str] | None = None) -> RelayConfig:
        """Normalize and construct config from a raw dict."""
        flat_mappings = {
            "host": ("server", "host"),
            "port": ("server", "port"),
            "listen_path": ("server", "listen_path"),
            "public_host": ("server", "public_host"),
            "vapi_api_key": ("vapi", "api_key"),
            "vapi_assistant_id": ("vapi", "assistant_id"),
            "vapi_api_url": ("vapi", "api_url"),
            "provision_timeout": ("vapi", "provision_timeout_seconds"),
            "max_queue_frames": ("pacing", "max_queue_frames"),
            "token_ttl": ("tokens", "ttl_seconds"),
            "webhook_secret": ("webhook", "secret"),
            "log_level": ("logging", "level"),
        }

        for flat_key, (section, nested_key) in flat_mappings.items():
            if flat_key in data:
                data.setdefault(section, {})
                data[section][nested_key] = data.pop(flat_key)

        _apply_env(data, os.environ if env is None else env)
        return cls(**data)


# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "VAPI_API_KEY": ("vapi", "api_key"),
    "VAPI_ASSISTANT_ID": ("vapi", "assistant_id"),
    "VAPI_API_URL": ("vapi", "api_url"),
    "PORT": ("server", "port"),
    "PUBLIC_HOST": ("server", "public_host"),
    "WEBHOOK_SECRET": ("webhook", "secret"),
    "LOG_LEVEL": ("logging", "level"),
}


def _apply_env(data: dict[str, Any], env: Mapping[str, str]) -> None:
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            section_data = data.setdefault(section, {})
            section_data[key] = value


def load_config(
    source: str | Path | dict[str, Any] | RelayConfig | None = None,
    env: Mapping[str, str] | None = None,
) -> RelayConfig:
    """Load a RelayConfig from any supported source.

    Args:
        source: A YAML file path (str/Path), a dict, an existing RelayConfig,
            or None for defaults plus environment overrides.
        env: Environment mapping to read overrides from (``os.environ`` by default).

    Returns:
        A RelayConfig instance.
    """
    if isinstance(source, RelayConfig):
        return source
    if source is None:
        return RelayConfig.from_dict({}, env)
    if isinstance(source, dict):
        return RelayConfig.from_dict(source, env)
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return RelayConfig.from_yaml(path, env)
    raise TypeError(f"Cannot load config from {type(source)}")


# Default YAML template for `voxrelay init`
DEFAULT_CONFIG_YAML = """\
# voxrelay configuration
# Secrets can also come from VAPI_API_KEY, VAPI_ASSISTANT_ID and WEBHOOK_SECRET.

server:
  host: 0.0.0.0
  port: 8766
  listen_path: /frejun     # direct variant: negotiate + provision on upgrade
  token_path_prefix: /ws/  # token variant: /ws/<token> from /exotel/stream-endpoint
  public_host: ""          # host used in wss:// URLs (defaults to request Host)

vapi:
  api_url: https://api.vapi.ai
  api_key: ""
  assistant_id: ""
  sample_rate: 16000
  provision_timeout_seconds: 10

pacing:
  tick_ms: 20
  frame_ms: 20
  max_queue_frames: 500    # oldest frames are dropped beyond this

tokens:
  ttl_seconds: 60

webhook:
  secret: ""
  signature_header: x-vapi-signature

logging:
  level: INFO
"""
