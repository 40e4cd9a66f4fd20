"""Price action heuristics, order drafting and alert evaluation.

Pure functions over candle dicts and a RiskPolicy; no I/O.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from cryptodesk.constants import LEVEL_TOUCH_TOLERANCE, TREND_THRESHOLD
from cryptodesk.jobs import CONDITION_CROSSES_ABOVE, CONDITION_CROSSES_BELOW
from cryptodesk.risk_policy import RiskPolicy
from cryptodesk.utils import to_iso

STRUCTURE_UPTREND = "uptrend"
STRUCTURE_DOWNTREND = "downtrend"
STRUCTURE_RANGE = "range"

SIDE_BUY = "BUY"
SIDE_SELL = "SELL"


# ── Price action ──────────────────────────────────────────────────────────────

def close_change(candles: List[Dict[str, Any]]) -> float:
    """Fractional change from first to last close."""
    first = float(candles[0]["close"])
    last = float(candles[-1]["close"])
    return (last - first) / first


def determine_structure(candles: List[Dict[str, Any]]) -> str:
    change = close_change(candles)
    if change > TREND_THRESHOLD:
        return STRUCTURE_UPTREND
    if change < -TREND_THRESHOLD:
        return STRUCTURE_DOWNTREND
    return STRUCTURE_RANGE


def compute_support_resistance(candles: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Window low/high as support/resistance, counting touches within 0.2%."""
    lows = [float(c["low"]) for c in candles]
    highs = [float(c["high"]) for c in candles]
    min_low = min(lows)
    max_high = max(highs)

    support_touches = len([p for p in lows if abs(p - min_low) / min_low < LEVEL_TOUCH_TOLERANCE])
    resistance_touches = len([p for p in highs if abs(p - max_high) / max_high < LEVEL_TOUCH_TOLERANCE])

    return [
        {"price": min_low, "touches": support_touches, "kind": "support"},
        {"price": max_high, "touches": resistance_touches, "kind": "resistance"},
    ]


def build_breakout_candidates(levels: List[Dict[str, Any]], structure: str) -> List[Dict[str, Any]]:
    support = next((lv for lv in levels if lv["kind"] == "support"), None)
    resistance = next((lv for lv in levels if lv["kind"] == "resistance"), None)

    candidates = []  # type: List[Dict[str, Any]]
    if resistance:
        candidates.append({
            "window": "recent-high",
            "confirmClosePct": 0.5,
            "pullbackMaxPct": 0.3,
            "rule": "Close above {:.2f} with volume confirmation".format(resistance["price"]),
        })
    if support:
        candidates.append({
            "window": "recent-low",
            "confirmClosePct": 0.5,
            "pullbackMaxPct": 0.3,
            "rule": "Close below {:.2f} with strong follow-through".format(support["price"]),
        })
    if structure == STRUCTURE_RANGE and support and resistance:
        candidates.append({
            "window": "range-trading",
            "confirmClosePct": 0,
            "pullbackMaxPct": 0.5,
            "rule": "Fade the range {:.2f} - {:.2f} with tight stops".format(
                support["price"], resistance["price"],
            ),
        })
    return candidates


def summarize_price_action(
    symbol: str,
    interval: str,
    lookback: int,
    candles: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Structure, levels and breakout ideas over the last ``lookback`` candles."""
    if not candles:
        raise ValueError("No candles to analyse for {}".format(symbol))
    sampled = candles[-lookback:]
    structure = determine_structure(sampled)
    levels = compute_support_resistance(sampled)
    return {
        "summary": {
            "symbol": symbol,
            "interval": interval,
            "lookback": lookback,
            "structure": structure,
            "srLevels": levels,
            "breakoutCandidates": build_breakout_candidates(levels, structure),
        },
        "closeChangePct": close_change(sampled) * 100,
        "window": {
            "start": to_iso(sampled[0]["open_time"]),
            "end": to_iso(sampled[-1]["close_time"]),
        },
    }


# ── Order drafting ────────────────────────────────────────────────────────────

def draft_order(
    symbol: str,
    side: str,
    notional_usd: float,
    stop_loss_pct: float,
    take_profit_pct: float,
    leverage: float,
    equity_usd: float,
    market: str,
    entry_price: float,
    policy: RiskPolicy,
) -> Dict[str, Any]:
    """Risk/reward figures plus policy flags for a hypothetical order."""
    stop_loss_ratio = stop_loss_pct / 100.0
    take_profit_ratio = take_profit_pct / 100.0

    risk_usd = notional_usd * stop_loss_ratio
    reward_usd = notional_usd * take_profit_ratio
    risk_pct = risk_usd / equity_usd * 100.0
    rr = reward_usd / (risk_usd or 1)

    if side == SIDE_BUY:
        stop_loss_price = entry_price * (1 - stop_loss_ratio)
        take_profit_price = entry_price * (1 + take_profit_ratio)
    else:
        stop_loss_price = entry_price * (1 + stop_loss_ratio)
        take_profit_price = entry_price * (1 - take_profit_ratio)

    policy_flags = {
        "riskExceeded": risk_pct > policy.per_trade_max_risk_pct,
        "leverageExceeded": leverage > policy.max_leverage,
        "symbolRestricted": not policy.allows_symbol(symbol),
    }

    return {
        "symbol": symbol,
        "market": market,
        "side": side,
        "entryPrice": entry_price,
        "stopLossPrice": stop_loss_price,
        "takeProfitPrice": take_profit_price,
        "stopLossPct": stop_loss_pct,
        "takeProfitPct": take_profit_pct,
        "notionalUsd": notional_usd,
        "equityUsd": equity_usd,
        "leverage": leverage,
        "riskUsd": risk_usd,
        "riskPct": risk_pct,
        "rewardUsd": reward_usd,
        "rr": rr,
        "needsConfirm": any(policy_flags.values()),
        "policyFlags": policy_flags,
    }


def policy_violations(draft: Dict[str, Any], policy: RiskPolicy) -> List[str]:
    """Human-readable lines for each raised policy flag."""
    flags = draft["policyFlags"]
    lines = []  # type: List[str]
    if flags["riskExceeded"]:
        lines.append("Risk per trade {:.2f}% > policy {}%".format(draft["riskPct"], policy.per_trade_max_risk_pct))
    if flags["leverageExceeded"]:
        lines.append("Leverage {}x > policy {}x".format(draft["leverage"], policy.max_leverage))
    if flags["symbolRestricted"]:
        lines.append("{} not in allowlist".format(draft["symbol"]))
    return lines


# ── Alerts ────────────────────────────────────────────────────────────────────

def alert_triggered(condition: Dict[str, Any], previous_price: Optional[float], price: float) -> bool:
    """True when ``price`` crosses the condition level since ``previous_price``.

    The first observation (no previous price) never triggers.
    """
    if previous_price is None:
        return False
    level = float(condition["price"])
    if condition["type"] == CONDITION_CROSSES_ABOVE:
        return previous_price < level <= price
    if condition["type"] == CONDITION_CROSSES_BELOW:
        return previous_price > level >= price
    raise ValueError("Unknown alert condition: {}".format(condition["type"]))
