"""Runtime settings read from the environment.

Only endpoints, limiter/retry tuning, cache size and log level are
configurable; everything else is a compiled-in constant.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from cryptodesk.constants import (
    BINANCE_FUTURES_BASE_URL,
    BINANCE_SPOT_BASE_URL,
    CACHE_MAX_ENTRIES,
    HTTP_TIMEOUT_SEC,
    RATE_LIMIT_CAPACITY,
    RATE_LIMIT_REFILL_PER_SEC,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_RETRIES,
)

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


class Settings:
    def __init__(
        self,
        spot_base_url: str = BINANCE_SPOT_BASE_URL,
        futures_base_url: str = BINANCE_FUTURES_BASE_URL,
        http_timeout_sec: float = HTTP_TIMEOUT_SEC,
        rate_capacity: float = RATE_LIMIT_CAPACITY,
        rate_refill_per_sec: float = RATE_LIMIT_REFILL_PER_SEC,
        retry_max_retries: int = RETRY_MAX_RETRIES,
        retry_base_delay_ms: float = RETRY_BASE_DELAY_MS,
        cache_max_entries: int = CACHE_MAX_ENTRIES,
        log_level: str = "INFO",
    ) -> None:
        self.spot_base_url = spot_base_url
        self.futures_base_url = futures_base_url
        self.http_timeout_sec = http_timeout_sec
        self.rate_capacity = rate_capacity
        self.rate_refill_per_sec = rate_refill_per_sec
        self.retry_max_retries = retry_max_retries
        self.retry_base_delay_ms = retry_base_delay_ms
        self.cache_max_entries = cache_max_entries
        self.log_level = log_level

    def to_dict(self) -> Dict[str, Any]:
        return dict(vars(self))


def _read(env: Mapping[str, str], name: str, cast: Callable[[str], Any], default: Any) -> Any:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigError("{}={!r} is not a valid {}".format(name, raw, cast.__name__))


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from ``env`` (defaults to os.environ)."""
    env = os.environ if env is None else env

    log_level = env.get("CRYPTODESK_LOG_LEVEL") or env.get("LOG_LEVEL") or "INFO"

    settings = Settings(
        spot_base_url=_read(env, "BINANCE_API_BASE_URL", str, BINANCE_SPOT_BASE_URL),
        futures_base_url=_read(env, "BINANCE_FUTURES_BASE_URL", str, BINANCE_FUTURES_BASE_URL),
        http_timeout_sec=_read(env, "CRYPTODESK_HTTP_TIMEOUT_SEC", float, HTTP_TIMEOUT_SEC),
        rate_capacity=_read(env, "CRYPTODESK_RATE_CAPACITY", float, RATE_LIMIT_CAPACITY),
        rate_refill_per_sec=_read(env, "CRYPTODESK_RATE_REFILL_PER_SEC", float, RATE_LIMIT_REFILL_PER_SEC),
        retry_max_retries=_read(env, "CRYPTODESK_RETRY_MAX", int, RETRY_MAX_RETRIES),
        retry_base_delay_ms=_read(env, "CRYPTODESK_RETRY_BASE_MS", float, RETRY_BASE_DELAY_MS),
        cache_max_entries=_read(env, "CRYPTODESK_CACHE_MAX_ENTRIES", int, CACHE_MAX_ENTRIES),
        log_level=log_level.upper(),
    )

    if settings.rate_capacity <= 0 or settings.rate_refill_per_sec <= 0:
        raise ConfigError("Rate limiter capacity and refill rate must be positive")
    if settings.retry_max_retries < 0:
        raise ConfigError("CRYPTODESK_RETRY_MAX must be >= 0")
    if settings.cache_max_entries < 1:
        raise ConfigError("CRYPTODESK_CACHE_MAX_ENTRIES must be >= 1")

    logger.debug("Settings loaded: %s", settings.to_dict())
    return settings
