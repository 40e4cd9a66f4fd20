"""Market data service: rate limiter + retry around every upstream fetch.

Each call takes one token from the limiter of its category (spot or
futures), then runs the fetch under the retry policy. The last upstream
error propagates unchanged once retries are exhausted.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from cryptodesk.binance import MARKET_PERP, MARKET_SPOT, BinanceClient
from cryptodesk.constants import CATEGORY_FUTURES, CATEGORY_SPOT
from cryptodesk.limiter import RateLimiter
from cryptodesk.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def market_category(market: str) -> str:
    """Limiter category for a market name (spot | perp | futures)."""
    return CATEGORY_SPOT if market == MARKET_SPOT else CATEGORY_FUTURES


def to_client_market(market: str) -> str:
    """Map tool-level market names onto the client's spot/perp."""
    if market == MARKET_SPOT:
        return MARKET_SPOT
    if market in (MARKET_PERP, "futures"):
        return MARKET_PERP
    raise ValueError("Unknown market: {}".format(market))


class MarketDataService:
    """Throttled, retried access to the Binance client."""

    def __init__(
        self,
        client: BinanceClient,
        limiters: Dict[str, RateLimiter],
        retry: RetryPolicy,
    ) -> None:
        self.client = client
        self.limiters = limiters
        self.retry = retry

    async def _call(self, category: str, fetch: Callable[[], Awaitable[T]]) -> T:
        await self.limiters[category].acquire()
        return await self.retry.run(fetch)

    async def get_klines(
        self,
        market: str,
        symbol: str,
        interval: str,
        limit: int,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        client_market = to_client_market(market)
        return await self._call(
            market_category(client_market),
            lambda: self.client.klines(client_market, symbol, interval, limit, start_time, end_time),
        )

    async def get_ohlcv(
        self,
        market: str,
        symbol: str,
        timeframe: str,
        limit: int,
        since: Optional[int] = None,
    ) -> Dict[str, Any]:
        candles = await self.get_klines(market, symbol, timeframe, limit, start_time=since)
        return {
            "symbol": symbol,
            "market": market,
            "timeframe": timeframe,
            "rows": [
                {"t": c["open_time"], "o": c["open"], "h": c["high"],
                 "l": c["low"], "c": c["close"], "v": c["volume"]}
                for c in candles
            ],
        }

    async def get_latest_price(self, symbol: str, market: str) -> float:
        client_market = to_client_market(market)
        return await self._call(
            market_category(client_market),
            lambda: self.client.ticker_price(symbol, client_market),
        )

    async def get_ticker_24h(self, symbol: str) -> Dict[str, Any]:
        return await self._call(CATEGORY_SPOT, lambda: self.client.ticker_24h(symbol))

    async def get_mark_price(self, symbol: str) -> Dict[str, Any]:
        return await self._call(CATEGORY_FUTURES, lambda: self.client.mark_price(symbol))

    async def get_funding_rates(self, symbol: str, limit: int) -> Dict[str, Any]:
        rows = await self._call(CATEGORY_FUTURES, lambda: self.client.funding_rates(symbol, limit))
        return {"symbol": symbol, "rows": rows}

    async def get_open_interest(self, symbol: str, timeframe: str, limit: int) -> Dict[str, Any]:
        rows = await self._call(
            CATEGORY_FUTURES,
            lambda: self.client.open_interest(symbol, timeframe, limit),
        )
        return {"symbol": symbol, "timeframe": timeframe, "rows": rows}
