"""Binance public REST client (spot + USD-M futures).

Thin aiohttp wrapper: builds the request, raises BinanceAPIError on
non-2xx or malformed payloads and shapes raw rows into plain dicts.
Retrying and throttling happen one layer up, in market_data.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from cryptodesk.constants import (
    BINANCE_FUTURES_BASE_URL,
    BINANCE_SPOT_BASE_URL,
    HTTP_TIMEOUT_SEC,
)

logger = logging.getLogger(__name__)

MARKET_SPOT = "spot"
MARKET_PERP = "perp"
VALID_MARKETS = frozenset({MARKET_SPOT, MARKET_PERP})

SPOT_KLINES_PATH = "/api/v3/klines"
SPOT_TICKER_PRICE_PATH = "/api/v3/ticker/price"
SPOT_TICKER_24H_PATH = "/api/v3/ticker/24hr"
PERP_KLINES_PATH = "/fapi/v1/klines"
PERP_TICKER_PRICE_PATH = "/fapi/v1/ticker/price"
PERP_PREMIUM_INDEX_PATH = "/fapi/v1/premiumIndex"
PERP_FUNDING_RATE_PATH = "/fapi/v1/fundingRate"
PERP_OPEN_INTEREST_HIST_PATH = "/futures/data/openInterestHist"

SPOT_KLINES_MAX_LIMIT = 1000
PERP_KLINES_MAX_LIMIT = 1500

FUNDING_INTERVAL = "8h"


class BinanceAPIError(Exception):
    """Upstream returned a non-2xx status or an unusable payload."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


def parse_klines(rows: Any) -> List[Dict[str, Any]]:
    """Shape raw kline arrays into candle dicts.

    Prices and volume stay strings, as Binance sends them.
    """
    if not isinstance(rows, list):
        raise BinanceAPIError("Expected a list of klines, got {}".format(type(rows).__name__))
    candles = []  # type: List[Dict[str, Any]]
    for row in rows:
        candles.append({
            "open_time": int(row[0]),
            "open": row[1],
            "high": row[2],
            "low": row[3],
            "close": row[4],
            "volume": row[5],
            "close_time": int(row[6]),
        })
    return candles


def _clean_params(params: Dict[str, Any]) -> Dict[str, str]:
    return {k: str(v) for k, v in params.items() if v is not None}


class BinanceClient:
    """Async client for the public Binance endpoints used by the tools."""

    def __init__(
        self,
        spot_base_url: str = BINANCE_SPOT_BASE_URL,
        futures_base_url: str = BINANCE_FUTURES_BASE_URL,
        timeout_sec: float = HTTP_TIMEOUT_SEC,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.spot_base_url = spot_base_url.rstrip("/")
        self.futures_base_url = futures_base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _base_url(self, market: str) -> str:
        if market not in VALID_MARKETS:
            raise ValueError("Unknown market: {}".format(market))
        return self.spot_base_url if market == MARKET_SPOT else self.futures_base_url

    async def get_json(self, base_url: str, path: str, params: Dict[str, Any]) -> Any:
        """GET ``base_url + path`` and decode the JSON body."""
        session = await self._get_session()
        url = "{}{}".format(base_url, path)
        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        async with session.get(
            url,
            params=_clean_params(params),
            headers={"Accept": "application/json"},
            timeout=timeout,
        ) as resp:
            if resp.status < 200 or resp.status >= 300:
                body = await resp.text()
                raise BinanceAPIError(
                    "Binance API error: {} {}".format(resp.status, body).strip(),
                    status=resp.status,
                    body=body,
                )
            return await resp.json(content_type=None)

    async def klines(
        self,
        market: str,
        symbol: str,
        interval: str,
        limit: int,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        path = SPOT_KLINES_PATH if market == MARKET_SPOT else PERP_KLINES_PATH
        data = await self.get_json(self._base_url(market), path, {
            "symbol": symbol,
            "interval": interval,
            "limit": min(limit, SPOT_KLINES_MAX_LIMIT if market == MARKET_SPOT else PERP_KLINES_MAX_LIMIT),
            "startTime": start_time,
            "endTime": end_time,
        })
        return parse_klines(data)

    async def ticker_price(self, symbol: str, market: str) -> float:
        path = SPOT_TICKER_PRICE_PATH if market == MARKET_SPOT else PERP_TICKER_PRICE_PATH
        data = await self.get_json(self._base_url(market), path, {"symbol": symbol})
        try:
            price = float(data["price"])
        except (KeyError, TypeError, ValueError):
            raise BinanceAPIError("Invalid price returned for {}".format(symbol))
        if not price > 0 or price == float("inf"):
            raise BinanceAPIError("Invalid price returned for {}".format(symbol))
        return price

    async def ticker_24h(self, symbol: str) -> Dict[str, Any]:
        data = await self.get_json(self.spot_base_url, SPOT_TICKER_24H_PATH, {"symbol": symbol})
        if not isinstance(data, dict):
            raise BinanceAPIError("Unexpected 24h ticker payload for {}".format(symbol))
        return data

    async def mark_price(self, symbol: str) -> Dict[str, Any]:
        data = await self.get_json(self.futures_base_url, PERP_PREMIUM_INDEX_PATH, {"symbol": symbol})
        if not isinstance(data, dict) or "markPrice" not in data:
            raise BinanceAPIError("Unknown symbol: {}".format(symbol))
        return {
            "symbol": symbol,
            "markPrice": float(data["markPrice"]),
            "t": int(data.get("time") or time.time() * 1000),
        }

    async def funding_rates(self, symbol: str, limit: int) -> List[Dict[str, Any]]:
        data = await self.get_json(self.futures_base_url, PERP_FUNDING_RATE_PATH, {
            "symbol": symbol,
            "limit": limit,
        })
        if not isinstance(data, list):
            raise BinanceAPIError("Unexpected funding rate payload for {}".format(symbol))
        return [
            {
                "t": int(r.get("fundingTime", 0)),
                "rate": float(r.get("fundingRate") or 0),
                "interval": FUNDING_INTERVAL,
            }
            for r in data
        ]

    async def open_interest(self, symbol: str, period: str, limit: int) -> List[Dict[str, Any]]:
        data = await self.get_json(self.futures_base_url, PERP_OPEN_INTEREST_HIST_PATH, {
            "symbol": symbol,
            "period": period,
            "limit": limit,
        })
        if not isinstance(data, list):
            raise BinanceAPIError("Unexpected open interest payload for {}".format(symbol))
        return [
            {
                "t": int(r.get("timestamp", 0)),
                "oi": float(r.get("sumOpenInterest") or r.get("sumOpenInterestValue") or 0),
            }
            for r in data
        ]
