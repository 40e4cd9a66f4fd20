"""Tests for symbol, interval and timestamp helpers."""

import pytest

from cryptodesk.utils import (
    make_idempotency_key,
    make_result_id,
    normalize_futures_symbol,
    resolve_interval,
    sanitize_symbol,
    to_iso,
)


def test_sanitize_symbol() -> None:
    """Uppercased, non-alphanumerics stripped, capped at 20 chars."""
    assert sanitize_symbol("btc/usdt") == "BTCUSDT"
    assert sanitize_symbol(" eth-usdt ") == "ETHUSDT"
    assert len(sanitize_symbol("a" * 40)) == 20


def test_normalize_futures_symbol() -> None:
    """Trailing _PERP is dropped; empty results are rejected."""
    assert normalize_futures_symbol("btcusdt_perp") == "BTCUSDT"
    assert normalize_futures_symbol("SOLUSDT") == "SOLUSDT"
    with pytest.raises(ValueError):
        normalize_futures_symbol("_PERP")


def test_resolve_interval() -> None:
    """Case-insensitive lookup with 1h fallback; 1m and 1M stay distinct."""
    assert resolve_interval("4H") == "4h"
    assert resolve_interval("1m") == "1m"
    assert resolve_interval("1M") == "1M"
    assert resolve_interval("7x") == "1h"
    assert resolve_interval(None) == "1h"


def test_to_iso_millisecond_precision() -> None:
    """Epoch ms render as UTC with a Z suffix."""
    assert to_iso(0) == "1970-01-01T00:00:00.000Z"
    assert to_iso(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"


def test_ids() -> None:
    """Result ids and idempotency keys are deterministic."""
    assert make_result_id("btcusdt", "4h") == "BTCUSDT_4h"
    assert make_idempotency_key({"b": 2, "a": 1}) == "idem:a:1|b:2"
