"""Tests for MarketDataService: limiter + retry around the client."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cryptodesk.binance import BinanceAPIError
from cryptodesk.limiter import RateLimiter
from cryptodesk.market_data import MarketDataService, market_category, to_client_market
from cryptodesk.retry import RetryPolicy


async def _no_sleep(seconds: float) -> None:
    return None


def _service(client: MagicMock, max_retries: int = 3) -> MarketDataService:
    limiters = {"spot": RateLimiter(10, 10), "futures": RateLimiter(10, 10)}
    return MarketDataService(client, limiters, RetryPolicy(max_retries=max_retries, sleep=_no_sleep))


def _candle(t: int, close: str) -> dict:
    return {"open_time": t, "open": "1", "high": "2", "low": "0.5", "close": close, "volume": "3", "close_time": t + 59_999}


def test_market_mapping() -> None:
    """Tool market names map to client markets and limiter categories."""
    assert to_client_market("spot") == "spot"
    assert to_client_market("futures") == "perp"
    assert to_client_market("perp") == "perp"
    assert market_category("spot") == "spot"
    assert market_category("perp") == "futures"
    with pytest.raises(ValueError):
        to_client_market("margin")


@pytest.mark.asyncio
async def test_ohlcv_rows_and_category() -> None:
    """get_ohlcv reshapes candles and debits the futures limiter."""
    client = MagicMock()
    client.klines = AsyncMock(return_value=[_candle(0, "1.5")])
    svc = _service(client)

    data = await svc.get_ohlcv("futures", "BTCUSDT", "1h", 10, since=5)
    assert data["rows"] == [{"t": 0, "o": "1", "h": "2", "l": "0.5", "c": "1.5", "v": "3"}]
    client.klines.assert_awaited_once_with("perp", "BTCUSDT", "1h", 10, 5, None)
    assert svc.limiters["futures"].tokens < 10
    assert svc.limiters["spot"].tokens == 10


@pytest.mark.asyncio
async def test_transient_failure_is_retried() -> None:
    """Two upstream failures then success returns the value."""
    client = MagicMock()
    client.ticker_price = AsyncMock(side_effect=[
        BinanceAPIError("502", status=502),
        BinanceAPIError("503", status=503),
        123.4,
    ])
    svc = _service(client)
    assert await svc.get_latest_price("ETHUSDT", "spot") == 123.4
    assert client.ticker_price.await_count == 3


@pytest.mark.asyncio
async def test_exhausted_retries_surface_last_error() -> None:
    """The last upstream error propagates unchanged."""
    last = BinanceAPIError("still down", status=500)
    client = MagicMock()
    client.mark_price = AsyncMock(side_effect=[BinanceAPIError("down"), last])
    svc = _service(client, max_retries=1)
    with pytest.raises(BinanceAPIError) as excinfo:
        await svc.get_mark_price("BTCUSDT")
    assert excinfo.value is last


@pytest.mark.asyncio
async def test_wrapped_payloads() -> None:
    """Funding and open interest rows are wrapped with their request keys."""
    client = MagicMock()
    client.funding_rates = AsyncMock(return_value=[{"t": 1, "rate": 0.1, "interval": "8h"}])
    client.open_interest = AsyncMock(return_value=[{"t": 2, "oi": 5.0}])
    client.ticker_24h = AsyncMock(return_value={"lastPrice": "1"})
    svc = _service(client)

    assert (await svc.get_funding_rates("BTCUSDT", 1))["rows"][0]["rate"] == 0.1
    oi = await svc.get_open_interest("BTCUSDT", "4h", 1)
    assert oi == {"symbol": "BTCUSDT", "timeframe": "4h", "rows": [{"t": 2, "oi": 5.0}]}
    assert await svc.get_ticker_24h("BTCUSDT") == {"lastPrice": "1"}
