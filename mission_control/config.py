"""
Configuration for Mission Control

All settings come from MISSION_CONTROL_* environment variables and are read
when load_settings() is called, so tests can patch the environment freely.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# ============================================================================
# DEFAULTS
# ============================================================================

# The gateway daemon always listens on loopback
DEFAULT_GATEWAY_URL = "ws://127.0.0.1:18789"
DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_RECONNECT_BASE_DELAY = 1.0
DEFAULT_RECONNECT_MAX_DELAY = 30.0
DEFAULT_RECONNECT_JITTER = 0.5
DEFAULT_HEARTBEAT_INTERVAL = 15.0
DEFAULT_HEARTBEAT_TIMEOUT = 5.0
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

ENV_PREFIX = "MISSION_CONTROL_"

__all__ = [
    'ConfigError',
    'Settings',
    'load_settings',
    'DEFAULT_GATEWAY_URL',
]


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings. Durations are in seconds."""
    gateway_url: str = DEFAULT_GATEWAY_URL
    api_url: Optional[str] = None
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS
    reconnect_base_delay: float = DEFAULT_RECONNECT_BASE_DELAY
    reconnect_max_delay: float = DEFAULT_RECONNECT_MAX_DELAY
    reconnect_jitter: float = DEFAULT_RECONNECT_JITTER
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT
    autoconnect: bool = True
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{ENV_PREFIX}{name} must not be negative, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """
    Build Settings from the current environment.

    Returns:
        Frozen Settings instance

    Raises:
        ConfigError: If a numeric variable cannot be parsed or is out of range
    """
    settings = Settings(
        gateway_url=_env("GATEWAY_URL") or DEFAULT_GATEWAY_URL,
        api_url=(_env("API_URL") or "").rstrip("/") or None,
        max_reconnect_attempts=_env_int("MAX_RECONNECT_ATTEMPTS", DEFAULT_MAX_RECONNECT_ATTEMPTS),
        reconnect_base_delay=_env_float("RECONNECT_BASE_DELAY", DEFAULT_RECONNECT_BASE_DELAY),
        reconnect_max_delay=_env_float("RECONNECT_MAX_DELAY", DEFAULT_RECONNECT_MAX_DELAY),
        reconnect_jitter=_env_float("RECONNECT_JITTER", DEFAULT_RECONNECT_JITTER),
        heartbeat_interval=_env_float("HEARTBEAT_INTERVAL", DEFAULT_HEARTBEAT_INTERVAL),
        heartbeat_timeout=_env_float("HEARTBEAT_TIMEOUT", DEFAULT_HEARTBEAT_TIMEOUT),
        autoconnect=_env_bool("AUTOCONNECT", True),
        host=_env("HOST") or DEFAULT_HOST,
        port=_env_int("PORT", DEFAULT_PORT, minimum=1),
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
    )
    logger.debug(f"Loaded settings: {settings}")
    return settings
