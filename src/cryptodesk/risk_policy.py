"""Mutable in-memory risk policy (one per AppContext).

Partial updates replace only the supplied fields; the allowlist is
replaced wholesale. Every read hands out a copy.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from cryptodesk.constants import (
    DEFAULT_DAILY_DRAWDOWN_STOP_PCT,
    DEFAULT_MAX_LEVERAGE,
    DEFAULT_PER_TRADE_MAX_RISK_PCT,
)

logger = logging.getLogger(__name__)

POLICY_FIELDS = (
    "per_trade_max_risk_pct",
    "max_leverage",
    "daily_drawdown_stop_pct",
    "allowlist",
)


class RiskPolicy:
    def __init__(
        self,
        per_trade_max_risk_pct: float = DEFAULT_PER_TRADE_MAX_RISK_PCT,
        max_leverage: float = DEFAULT_MAX_LEVERAGE,
        daily_drawdown_stop_pct: float = DEFAULT_DAILY_DRAWDOWN_STOP_PCT,
        allowlist: Optional[List[str]] = None,
    ) -> None:
        self.per_trade_max_risk_pct = per_trade_max_risk_pct
        self.max_leverage = max_leverage
        self.daily_drawdown_stop_pct = daily_drawdown_stop_pct
        self.allowlist = list(allowlist or [])

    def copy(self) -> "RiskPolicy":
        return RiskPolicy(
            per_trade_max_risk_pct=self.per_trade_max_risk_pct,
            max_leverage=self.max_leverage,
            daily_drawdown_stop_pct=self.daily_drawdown_stop_pct,
            allowlist=list(self.allowlist),
        )

    def allows_symbol(self, symbol: str) -> bool:
        """An empty allowlist allows every symbol."""
        return not self.allowlist or symbol in self.allowlist

    def to_dict(self) -> Dict[str, Any]:
        return {
            "perTradeMaxRiskPct": self.per_trade_max_risk_pct,
            "maxLeverage": self.max_leverage,
            "dailyDrawdownStopPct": self.daily_drawdown_stop_pct,
            "allowlist": list(self.allowlist),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RiskPolicy):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return "RiskPolicy({})".format(self.to_dict())


class RiskPolicyStore:
    """Holds the single current RiskPolicy."""

    def __init__(self, defaults: Optional[RiskPolicy] = None) -> None:
        self._defaults = (defaults or RiskPolicy()).copy()
        self._current = self._defaults.copy()

    def get(self) -> RiskPolicy:
        return self._current.copy()

    def set(self, update: Dict[str, Any]) -> RiskPolicy:
        """Merge supplied fields over the current policy.

        Keys outside POLICY_FIELDS and None values are ignored.
        """
        policy = self._current.copy()
        applied = []  # type: List[str]
        for field in POLICY_FIELDS:
            value = update.get(field)
            if value is None:
                continue
            if field == "allowlist":
                value = list(value)
            setattr(policy, field, value)
            applied.append(field)

        ignored = sorted(set(update) - set(POLICY_FIELDS))
        if ignored:
            logger.warning("Risk policy update ignored unknown fields: %s", ignored)

        self._current = policy
        logger.info("Risk policy updated: fields=%s", applied)
        return self.get()

    def reset(self) -> RiskPolicy:
        self._current = self._defaults.copy()
        logger.info("Risk policy reset to defaults")
        return self.get()
