"""Symbol, interval and timestamp helpers shared by the tool handlers."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cryptodesk.constants import DEFAULT_INTERVAL

BINANCE_INTERVALS = (
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w", "1M",
)

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_PERP_SUFFIX = re.compile(r"_PERP$", re.IGNORECASE)


def sanitize_symbol(value: str) -> str:
    """Uppercase, strip anything but A-Z/0-9, cap at 20 chars."""
    return _NON_ALNUM.sub("", value.upper())[:20]


def normalize_futures_symbol(value: str) -> str:
    """Normalise a perpetual symbol (``BTCUSDT_PERP`` -> ``BTCUSDT``).

    Raises ValueError if nothing usable is left.
    """
    sanitized = sanitize_symbol(_PERP_SUFFIX.sub("", value))
    if not sanitized:
        raise ValueError("Invalid futures symbol: {}".format(value))
    return sanitized


def resolve_interval(value: Optional[str]) -> str:
    """Case-insensitive interval lookup, falling back to the default."""
    if not value:
        return DEFAULT_INTERVAL
    wanted = value.strip()
    # exact match first so "1m" and "1M" stay distinct
    if wanted in BINANCE_INTERVALS:
        return wanted
    for interval in BINANCE_INTERVALS:
        if interval.lower() == wanted.lower():
            return interval
    return DEFAULT_INTERVAL


def to_iso(ms: float) -> str:
    """Epoch milliseconds -> ISO-8601 UTC with millisecond precision."""
    dt = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + "{:03d}Z".format(dt.microsecond // 1000)


def make_idempotency_key(payload: Dict[str, Any]) -> str:
    entries = "|".join("{}:{}".format(k, payload[k]) for k in sorted(payload))
    return "idem:{}".format(entries)


def make_result_id(symbol: str, interval: str) -> str:
    return "{}_{}".format(symbol.upper(), interval)
