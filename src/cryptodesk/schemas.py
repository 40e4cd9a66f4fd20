"""Input models for every tool.

Field names on the wire are camelCase (``notionalUsd``, ``ttlSeconds``);
handlers read the snake_case attributes. ``model_json_schema()`` of each
model is published as the tool's inputSchema.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cryptodesk.constants import (
    CONFIRMATION_TTL_MAX_SEC,
    CONFIRMATION_TTL_MIN_SEC,
    DEFAULT_INTERVAL,
    DEFAULT_SYMBOL,
    PERP_KLINES_DEFAULT_LIMIT,
    PRICE_ACTION_DEFAULT_LOOKBACK,
    SPOT_KLINES_DEFAULT_LIMIT,
)
from cryptodesk.utils import normalize_futures_symbol, sanitize_symbol

Interval = Literal[
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w", "1M",
]
OhlcvTimeframe = Literal["1m", "5m", "15m", "1h", "4h", "1d"]
OpenInterestPeriod = Literal["5m", "15m", "30m", "1h", "2h", "4h", "6h", "12h", "1d"]


class ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class SymbolInput(ToolInput):
    symbol: str = Field(DEFAULT_SYMBOL, min_length=1, description="Trading pair, e.g. BTCUSDT")

    @field_validator("symbol")
    @classmethod
    def _sanitize_symbol(cls, v: str) -> str:
        cleaned = sanitize_symbol(v.replace("/", ""))
        if not cleaned:
            raise ValueError("symbol must contain letters or digits")
        return cleaned


# ── Market data ───────────────────────────────────────────────────────────────

class GetOhlcvInput(SymbolInput):
    market: Literal["spot", "futures"] = "futures"
    timeframe: OhlcvTimeframe = "1h"
    limit: int = Field(500, ge=10, le=1500)
    since: Optional[int] = Field(None, ge=0, description="Start time, epoch ms")


class GetMarkPriceInput(SymbolInput):
    pass


class GetFundingRateInput(SymbolInput):
    limit: int = Field(100, ge=1, le=1000)


class GetOpenInterestInput(SymbolInput):
    timeframe: OpenInterestPeriod = "1h"
    limit: int = Field(200, ge=1, le=500)


class KlinesInput(SymbolInput):
    interval: Interval = DEFAULT_INTERVAL
    limit: int = Field(SPOT_KLINES_DEFAULT_LIMIT, ge=1, le=1000)
    start_time: Optional[int] = Field(None, alias="startTime", ge=0)
    end_time: Optional[int] = Field(None, alias="endTime", ge=0)


class PerpKlinesInput(KlinesInput):
    limit: int = Field(PERP_KLINES_DEFAULT_LIMIT, ge=1, le=1500)

    @field_validator("symbol", mode="before")
    @classmethod
    def _strip_perp_suffix(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_futures_symbol(v.replace("/", ""))
        return v


class SearchInput(ToolInput):
    query: str = Field(..., min_length=1, description="e.g. 'BTCUSDT 4h'")


class FetchInput(ToolInput):
    id: str = Field(..., min_length=1, description="Result id returned by search")


# ── Analysis ──────────────────────────────────────────────────────────────────

class PriceActionInput(SymbolInput):
    interval: Interval = DEFAULT_INTERVAL
    lookback: int = Field(PRICE_ACTION_DEFAULT_LOOKBACK, ge=50, le=1000)
    market: Literal["spot", "perp"] = "perp"


class DraftOrderInput(SymbolInput):
    side: Literal["BUY", "SELL"]
    notional_usd: float = Field(..., alias="notionalUsd", gt=0)
    stop_loss_pct: float = Field(..., alias="stopLossPct", gt=0, le=50)
    take_profit_pct: float = Field(..., alias="takeProfitPct", gt=0, le=200)
    leverage: float = Field(1, gt=0, le=125)
    equity_usd: float = Field(..., alias="equityUsd", gt=0)
    market: Literal["spot", "perp"] = "perp"


# ── Confirmations ─────────────────────────────────────────────────────────────

class RequestConfirmationInput(ToolInput):
    draft: Dict[str, Any]
    reason: Optional[str] = Field(None, min_length=1)
    ttl_seconds: Optional[int] = Field(
        None,
        alias="ttlSeconds",
        ge=CONFIRMATION_TTL_MIN_SEC,
        le=CONFIRMATION_TTL_MAX_SEC,
    )


class GetConfirmationInput(ToolInput):
    confirmation_id: str = Field(..., alias="confirmationId", min_length=6)


class EmptyInput(ToolInput):
    pass


# ── Risk policy ───────────────────────────────────────────────────────────────

class SetRiskPolicyInput(ToolInput):
    per_trade_max_risk_pct: Optional[float] = Field(None, alias="perTradeMaxRiskPct", ge=0.1, le=20)
    max_leverage: Optional[float] = Field(None, alias="maxLeverage", ge=1, le=100)
    daily_drawdown_stop_pct: Optional[float] = Field(None, alias="dailyDrawdownStopPct", ge=0.5, le=50)
    allowlist: Optional[List[str]] = None

    @field_validator("allowlist")
    @classmethod
    def _sanitize_allowlist(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        cleaned = [sanitize_symbol(s) for s in v]
        if not all(cleaned):
            raise ValueError("allowlist entries must be non-empty symbols")
        return cleaned


# ── Scheduler ─────────────────────────────────────────────────────────────────

class AlertCondition(ToolInput):
    type: Literal["crossesAbove", "crossesBelow"]
    price: float = Field(..., gt=0)


class ScheduleTaskInput(SymbolInput):
    """``kind=analysis`` takes interval/lookback, ``kind=alert`` a condition."""

    symbol: str = Field(..., min_length=1, description="Trading pair, e.g. BTCUSDT")
    kind: Literal["analysis", "alert"]
    cron: str = Field(..., min_length=1, description="5 fields, or 6 with leading seconds")
    description: Optional[str] = None
    interval: Optional[Interval] = None
    lookback: Optional[int] = Field(None, ge=50, le=1000)
    condition: Optional[AlertCondition] = None

    @model_validator(mode="after")
    def _check_kind_fields(self) -> "ScheduleTaskInput":
        if self.kind == "analysis":
            if self.condition is not None:
                raise ValueError("analysis tasks do not take a condition")
            if self.interval is None:
                self.interval = DEFAULT_INTERVAL
            if self.lookback is None:
                self.lookback = PRICE_ACTION_DEFAULT_LOOKBACK
        elif self.condition is None:
            raise ValueError("alert tasks require a condition")
        return self

    def to_job_spec(self) -> Dict[str, Any]:
        spec = {
            "kind": self.kind,
            "symbol": self.symbol,
            "cron": self.cron,
            "description": self.description,
        }  # type: Dict[str, Any]
        if self.kind == "analysis":
            spec["interval"] = self.interval
            spec["lookback"] = self.lookback
        else:
            spec["condition"] = self.condition.model_dump()
        return spec


class CancelJobInput(ToolInput):
    job_id: str = Field(..., alias="jobId", min_length=1)
