"""Tests for the Binance REST client (fake aiohttp session)."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from cryptodesk.binance import BinanceAPIError, BinanceClient, parse_klines

KLINE_ROW = [1700000000000, "1.0", "2.0", "0.5", "1.5", "100", 1700003599999, "150", 10, "50", "75", "0"]


class FakeResponse:
    def __init__(self, status: int, payload: Any) -> None:
        self.status = status
        self._payload = payload

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def text(self) -> str:
        return str(self._payload)

    async def json(self, content_type: Optional[str] = None) -> Any:
        return self._payload


class FakeSession:
    """Records GETs and replays canned responses in order."""

    def __init__(self, *responses: Tuple[int, Any]) -> None:
        self._responses = list(responses)
        self.calls = []  # type: List[Tuple[str, Dict[str, str]]]
        self.closed = False

    def get(self, url: str, params: Dict[str, str], **kwargs: Any) -> FakeResponse:
        self.calls.append((url, params))
        status, payload = self._responses.pop(0)
        return FakeResponse(status, payload)

    async def close(self) -> None:
        self.closed = True


# ── Parsing ───────────────────────────────────────────────────────────────────

def test_parse_klines_shapes_rows() -> None:
    """Raw arrays become candle dicts with int times and string prices."""
    [candle] = parse_klines([KLINE_ROW])
    assert candle == {
        "open_time": 1700000000000,
        "open": "1.0",
        "high": "2.0",
        "low": "0.5",
        "close": "1.5",
        "volume": "100",
        "close_time": 1700003599999,
    }


def test_parse_klines_rejects_non_list() -> None:
    """An error object instead of a list is an API error."""
    with pytest.raises(BinanceAPIError):
        parse_klines({"code": -1121, "msg": "Invalid symbol."})


# ── Requests ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_spot_klines_request() -> None:
    """Spot klines hit /api/v3/klines and omit unset params."""
    session = FakeSession((200, [KLINE_ROW]))
    client = BinanceClient(spot_base_url="https://spot.test/", session=session)
    candles = await client.klines("spot", "BTCUSDT", "1h", 50)
    assert len(candles) == 1
    url, params = session.calls[0]
    assert url == "https://spot.test/api/v3/klines"
    assert params == {"symbol": "BTCUSDT", "interval": "1h", "limit": "50"}


@pytest.mark.asyncio
async def test_perp_klines_limit_capped() -> None:
    """Perp klines go to /fapi/v1/klines with limit capped at 1500."""
    session = FakeSession((200, []))
    client = BinanceClient(futures_base_url="https://fut.test", session=session)
    await client.klines("perp", "BTCUSDT", "4h", 5000, start_time=1, end_time=2)
    url, params = session.calls[0]
    assert url == "https://fut.test/fapi/v1/klines"
    assert params["limit"] == "1500"
    assert params["startTime"] == "1"
    assert params["endTime"] == "2"


@pytest.mark.asyncio
async def test_non_2xx_raises_with_status() -> None:
    """HTTP errors carry the status and body."""
    session = FakeSession((429, "Too many requests"))
    client = BinanceClient(session=session)
    with pytest.raises(BinanceAPIError) as excinfo:
        await client.ticker_24h("BTCUSDT")
    assert excinfo.value.status == 429
    assert "429" in str(excinfo.value)


@pytest.mark.asyncio
async def test_ticker_price_validation() -> None:
    """Non-positive or missing prices are rejected."""
    session = FakeSession((200, {"price": "42.5"}), (200, {"price": "0"}), (200, {}))
    client = BinanceClient(session=session)
    assert await client.ticker_price("BTCUSDT", "perp") == 42.5
    assert session.calls[0][0].endswith("/fapi/v1/ticker/price")
    with pytest.raises(BinanceAPIError):
        await client.ticker_price("BTCUSDT", "spot")
    with pytest.raises(BinanceAPIError):
        await client.ticker_price("BTCUSDT", "spot")


@pytest.mark.asyncio
async def test_futures_shapes() -> None:
    """Mark price, funding and open interest are reshaped."""
    session = FakeSession(
        (200, {"symbol": "BTCUSDT", "markPrice": "100.5", "time": 1000}),
        (200, [{"fundingTime": 2000, "fundingRate": "0.0001"}]),
        (200, [{"timestamp": 3000, "sumOpenInterest": "12.5"}]),
    )
    client = BinanceClient(session=session)
    assert await client.mark_price("BTCUSDT") == {"symbol": "BTCUSDT", "markPrice": 100.5, "t": 1000}
    assert await client.funding_rates("BTCUSDT", 1) == [{"t": 2000, "rate": 0.0001, "interval": "8h"}]
    assert await client.open_interest("BTCUSDT", "1h", 1) == [{"t": 3000, "oi": 12.5}]
    assert session.calls[2][1]["period"] == "1h"


@pytest.mark.asyncio
async def test_close_leaves_injected_session() -> None:
    """A caller-provided session is not closed by the client."""
    session = FakeSession()
    client = BinanceClient(session=session)
    await client.close()
    assert session.closed is False


@pytest.mark.asyncio
async def test_unknown_market_rejected() -> None:
    """Only spot and perp are valid markets."""
    client = BinanceClient(session=FakeSession())
    with pytest.raises(ValueError):
        await client.ticker_price("BTCUSDT", "options")
