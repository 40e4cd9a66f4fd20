"""Tool handlers and the default tool table.

Every handler takes (ctx, args) where ``ctx`` is the AppContext and
``args`` the validated input model, and returns a ToolResult. Failures
raise; ToolInvoker turns them into error results.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from cryptodesk.analysis import (
    alert_triggered,
    draft_order as build_draft,
    policy_violations,
    summarize_price_action,
)
from cryptodesk.app import AppContext
from cryptodesk.binance import MARKET_PERP, MARKET_SPOT
from cryptodesk.constants import KLINE_PREVIEW_ROWS
from cryptodesk.invoker import ToolError, ToolInvoker, ToolResult, ToolSpec
from cryptodesk.jobs import KIND_ANALYSIS, JobRecord
from cryptodesk.schemas import (
    CancelJobInput,
    DraftOrderInput,
    EmptyInput,
    FetchInput,
    GetConfirmationInput,
    GetFundingRateInput,
    GetMarkPriceInput,
    GetOhlcvInput,
    GetOpenInterestInput,
    KlinesInput,
    PerpKlinesInput,
    PriceActionInput,
    RequestConfirmationInput,
    ScheduleTaskInput,
    SearchInput,
    SetRiskPolicyInput,
)
from cryptodesk.utils import (
    make_idempotency_key,
    make_result_id,
    resolve_interval,
    sanitize_symbol,
    to_iso,
)

logger = logging.getLogger(__name__)


# ── Market data ───────────────────────────────────────────────────────────────

async def get_ohlcv(ctx: AppContext, args: GetOhlcvInput) -> ToolResult:
    data = await ctx.market_data.get_ohlcv(args.market, args.symbol, args.timeframe, args.limit, args.since)
    text = "{} {} {}: {} candles".format(data["symbol"], data["market"], data["timeframe"], len(data["rows"]))
    return ToolResult.from_payload(data, text="{}\n{}".format(text, _rows_preview(data["rows"])))


async def get_mark_price(ctx: AppContext, args: GetMarkPriceInput) -> ToolResult:
    data = await ctx.market_data.get_mark_price(args.symbol)
    return ToolResult.from_payload(
        data,
        text="{} mark price {} at {}".format(data["symbol"], data["markPrice"], to_iso(data["t"])),
    )


async def get_funding_rate(ctx: AppContext, args: GetFundingRateInput) -> ToolResult:
    data = await ctx.market_data.get_funding_rates(args.symbol, args.limit)
    rows = data["rows"]
    if rows:
        text = "{} funding: {} rows, latest {:.6f} at {}".format(
            data["symbol"], len(rows), rows[-1]["rate"], to_iso(rows[-1]["t"]),
        )
    else:
        text = "No funding rate history for {}".format(data["symbol"])
    return ToolResult.from_payload(data, text=text)


async def get_open_interest(ctx: AppContext, args: GetOpenInterestInput) -> ToolResult:
    data = await ctx.market_data.get_open_interest(args.symbol, args.timeframe, args.limit)
    rows = data["rows"]
    if rows:
        text = "{} open interest ({}): {} rows, latest {} at {}".format(
            data["symbol"], data["timeframe"], len(rows), rows[-1]["oi"], to_iso(rows[-1]["t"]),
        )
    else:
        text = "No open interest history for {}".format(data["symbol"])
    return ToolResult.from_payload(data, text=text)


def _rows_preview(rows: List[Dict[str, Any]]) -> str:
    return "\n".join(
        "{} O:{} H:{} L:{} C:{} V:{}".format(to_iso(r["t"]), r["o"], r["h"], r["l"], r["c"], r["v"])
        for r in rows[-KLINE_PREVIEW_ROWS:]
    )


def _remember(ctx: AppContext, result_id: str, symbol: str, interval: str, description: str) -> Dict[str, Any]:
    entry = {
        "id": result_id,
        "title": "{} ({})".format(symbol, interval),
        "description": description,
        "symbol": symbol,
        "interval": interval,
    }
    ctx.search_cache.set(result_id, entry)
    return entry


async def _klines(ctx: AppContext, args: KlinesInput, market: str) -> ToolResult:
    candles = await ctx.market_data.get_klines(
        market, args.symbol, args.interval, args.limit, args.start_time, args.end_time,
    )
    if not candles:
        return ToolResult("Binance returned no klines for {} ({})".format(args.symbol, args.interval))

    first, last = candles[0], candles[-1]
    preview = "\n".join(
        "{} O:{} H:{} L:{} C:{} V:{}".format(
            to_iso(c["close_time"]), c["open"], c["high"], c["low"], c["close"], c["volume"],
        )
        for c in candles[-KLINE_PREVIEW_ROWS:]
    )
    lines = [
        "Symbol: {} ({})".format(args.symbol, market),
        "Interval: {}".format(args.interval),
        "Candles: {} (limit={})".format(len(candles), args.limit),
        "Range: {} -> {}".format(to_iso(first["open_time"]), to_iso(last["close_time"])),
        "Last close: {} (high {} / low {})".format(last["close"], last["high"], last["low"]),
        "",
        "Last {} candles:".format(min(KLINE_PREVIEW_ROWS, len(candles))),
        preview,
    ]

    result_id = make_result_id(args.symbol, args.interval)
    _remember(ctx, result_id, args.symbol, args.interval, "Latest klines; use fetch for the 24h ticker.")

    payload = {
        "id": result_id,
        "symbol": args.symbol,
        "market": market,
        "interval": args.interval,
        "candles": candles,
        "summary": {
            "count": len(candles),
            "limit": args.limit,
            "openTime": to_iso(first["open_time"]),
            "closeTime": to_iso(last["close_time"]),
            "lastCandle": {
                "open": last["open"],
                "high": last["high"],
                "low": last["low"],
                "close": last["close"],
                "volume": last["volume"],
                "closeTime": to_iso(last["close_time"]),
            },
        },
    }
    return ToolResult.from_payload(payload, text="\n".join(lines))


async def get_binance_klines(ctx: AppContext, args: KlinesInput) -> ToolResult:
    return await _klines(ctx, args, MARKET_SPOT)


async def get_binance_perp_klines(ctx: AppContext, args: PerpKlinesInput) -> ToolResult:
    return await _klines(ctx, args, MARKET_PERP)


# ── Search / fetch ────────────────────────────────────────────────────────────

async def search(ctx: AppContext, args: SearchInput) -> ToolResult:
    tokens = args.query.split()
    symbol = sanitize_symbol(tokens[0]) if tokens else ""
    if not symbol:
        return ToolResult(
            'Enter a trading pair, e.g. "BTCUSDT" or "BTCUSDT 1h".',
            structured={"results": []},
        )

    interval = resolve_interval(tokens[1] if len(tokens) > 1 else None)
    entry = _remember(
        ctx,
        make_result_id(symbol, interval),
        symbol,
        interval,
        "Use fetch for the 24h ticker or get_binance_klines for candles.",
    )
    text = "Found 1 match:\n1. {} - {}\n\nCall fetch with id {} for a market summary.".format(
        entry["title"], entry["description"], entry["id"],
    )
    return ToolResult(text, structured={"results": [entry]})


async def fetch(ctx: AppContext, args: FetchInput) -> ToolResult:
    entry = ctx.search_cache.get(args.id)
    parts = args.id.split("_")
    if entry is not None:
        symbol, interval = entry["symbol"], entry["interval"]
    else:
        symbol = sanitize_symbol(parts[0])
        interval = resolve_interval(parts[1] if len(parts) > 1 else None)
    if not symbol:
        raise ToolError("Cannot parse id {}; run search first to get a valid id.".format(args.id))

    ticker = await ctx.market_data.get_ticker_24h(symbol)
    if entry is None:
        _remember(ctx, args.id, symbol, interval, "Pair discovered through fetch.")

    lines = [
        "Symbol: {}".format(symbol),
        "Interval: {}".format(interval),
        "Last price: {}".format(ticker.get("lastPrice", "unknown")),
        "24h change: {} %".format(ticker.get("priceChangePercent", "unknown")),
        "High/Low: {} / {}".format(ticker.get("highPrice", "unknown"), ticker.get("lowPrice", "unknown")),
        "Volume: {}".format(ticker.get("volume", "unknown")),
    ]
    return ToolResult(
        "\n".join(lines),
        structured={"id": args.id, "symbol": symbol, "interval": interval, "ticker": ticker},
    )


# ── Analysis ──────────────────────────────────────────────────────────────────

async def price_action_summary(ctx: AppContext, args: PriceActionInput) -> ToolResult:
    candles = await ctx.market_data.get_klines(args.market, args.symbol, args.interval, args.lookback)
    if not candles:
        raise ToolError("No klines returned for {} ({})".format(args.symbol, args.interval))

    data = summarize_price_action(args.symbol, args.interval, args.lookback, candles)
    summary = data["summary"]
    support, resistance = summary["srLevels"]
    lines = [
        "{} {} ({}) over {} candles".format(args.symbol, args.interval, args.market, len(candles[-args.lookback:])),
        "Structure: {} ({:+.2f}%)".format(summary["structure"], data["closeChangePct"]),
        "Support: {:.4f} ({} touches)".format(support["price"], support["touches"]),
        "Resistance: {:.4f} ({} touches)".format(resistance["price"], resistance["touches"]),
        "Window: {} -> {}".format(data["window"]["start"], data["window"]["end"]),
        "Breakout ideas:",
    ]
    lines.extend("- {}".format(c["rule"]) for c in summary["breakoutCandidates"])
    return ToolResult.from_payload(data, text="\n".join(lines))


async def draft_order(ctx: AppContext, args: DraftOrderInput) -> ToolResult:
    policy = ctx.risk_policy.get()
    entry_price = await ctx.market_data.get_latest_price(args.symbol, args.market)
    draft = build_draft(
        symbol=args.symbol,
        side=args.side,
        notional_usd=args.notional_usd,
        stop_loss_pct=args.stop_loss_pct,
        take_profit_pct=args.take_profit_pct,
        leverage=args.leverage,
        equity_usd=args.equity_usd,
        market=args.market,
        entry_price=entry_price,
        policy=policy,
    )
    draft["idempotencyKey"] = make_idempotency_key({
        "symbol": draft["symbol"],
        "market": draft["market"],
        "side": draft["side"],
        "notionalUsd": draft["notionalUsd"],
        "stopLossPct": draft["stopLossPct"],
        "takeProfitPct": draft["takeProfitPct"],
        "leverage": draft["leverage"],
    })

    lines = [
        "Symbol: {} ({})".format(draft["symbol"], draft["market"]),
        "Side: {}".format(draft["side"]),
        "Latest price: {:.4f}".format(entry_price),
        "Notional: ${:.2f} (leverage x{})".format(draft["notionalUsd"], draft["leverage"]),
        "Stop loss: {}% ({:.4f})".format(draft["stopLossPct"], draft["stopLossPrice"]),
        "Take profit: {}% ({:.4f})".format(draft["takeProfitPct"], draft["takeProfitPrice"]),
        "Risk USD: ${:.2f} ({:.2f}% of equity)".format(draft["riskUsd"], draft["riskPct"]),
        "Reward USD: ${:.2f} (RR {:.2f})".format(draft["rewardUsd"], draft["rr"]),
        "Needs confirmation: {}".format("YES" if draft["needsConfirm"] else "No"),
        "Policy check:",
    ]
    violations = policy_violations(draft, policy)
    lines.extend("- {}".format(v) for v in violations or ["Within policy limits"])

    return ToolResult(
        "\n".join(lines),
        structured={"draft": draft, "policySnapshot": policy.to_dict()},
    )


# ── Confirmations ─────────────────────────────────────────────────────────────

async def request_confirmation(ctx: AppContext, args: RequestConfirmationInput) -> ToolResult:
    ticket = ctx.confirmations.create(args.draft, reason=args.reason, ttl_seconds=args.ttl_seconds)
    lines = [
        "Confirmation {} created".format(ticket.id),
        "Expires at: {}".format(to_iso(ticket.expires_at * 1000)),
    ]
    if ticket.reason:
        lines.append("Reason: {}".format(ticket.reason))
    return ToolResult("\n".join(lines), structured={"confirmation": ticket.to_dict()})


async def get_confirmation(ctx: AppContext, args: GetConfirmationInput) -> ToolResult:
    ticket = ctx.confirmations.get(args.confirmation_id)
    if ticket is None:
        return ToolResult.error("Confirmation {} not found (unknown or expired)".format(args.confirmation_id))
    return ToolResult(
        "Confirmation {} expires at {}".format(ticket.id, to_iso(ticket.expires_at * 1000)),
        structured={"confirmation": ticket.to_dict()},
    )


async def list_confirmations(ctx: AppContext, args: EmptyInput) -> ToolResult:
    tickets = ctx.confirmations.list()
    if not tickets:
        return ToolResult("No pending confirmations.", structured={"confirmations": []})
    lines = ["{} confirmation(s) pending:".format(len(tickets))]
    lines.extend(
        "- {} expires {}{}".format(
            t.id, to_iso(t.expires_at * 1000), " ({})".format(t.reason) if t.reason else "",
        )
        for t in tickets
    )
    return ToolResult("\n".join(lines), structured={"confirmations": [t.to_dict() for t in tickets]})


# ── Risk policy ───────────────────────────────────────────────────────────────

def _policy_result(title: str, policy: Any) -> ToolResult:
    d = policy.to_dict()
    lines = [
        title,
        "Per-trade max risk: {}%".format(d["perTradeMaxRiskPct"]),
        "Max leverage: {}x".format(d["maxLeverage"]),
        "Daily drawdown stop: {}%".format(d["dailyDrawdownStopPct"]),
        "Allowlist: {}".format(", ".join(d["allowlist"]) or "(all symbols)"),
    ]
    return ToolResult("\n".join(lines), structured={"policy": d})


async def get_risk_policy(ctx: AppContext, args: EmptyInput) -> ToolResult:
    return _policy_result("Current risk policy:", ctx.risk_policy.get())


async def set_risk_policy(ctx: AppContext, args: SetRiskPolicyInput) -> ToolResult:
    update = args.model_dump(exclude_none=True)
    if not update:
        raise ToolError("Provide at least one risk policy field to update")
    return _policy_result("Risk policy updated:", ctx.risk_policy.set(update))


async def reset_risk_policy(ctx: AppContext, args: EmptyInput) -> ToolResult:
    return _policy_result("Risk policy reset to defaults:", ctx.risk_policy.reset())


# ── Scheduler ─────────────────────────────────────────────────────────────────

def make_job_callback(ctx: AppContext) -> Callable[[JobRecord], Any]:
    """Build the on_fire callback shared by every scheduled job."""

    async def on_fire(record: JobRecord) -> None:
        if record.kind == KIND_ANALYSIS:
            candles = await ctx.market_data.get_klines(MARKET_PERP, record.symbol, record.interval, record.lookback)
            data = summarize_price_action(record.symbol, record.interval, record.lookback, candles)
            logger.info(
                "Job %s analysis %s %s: structure=%s change=%.2f%%",
                record.id, record.symbol, record.interval,
                data["summary"]["structure"], data["closeChangePct"],
            )
            return

        price = await ctx.market_data.get_latest_price(record.symbol, MARKET_PERP)
        condition = record.condition or {}
        triggered = alert_triggered(condition, record.last_price, price)
        record.last_price = price
        if triggered:
            logger.warning(
                "ALERT job %s: %s %s %s (last %s)",
                record.id, record.symbol, condition["type"], condition["price"], price,
            )
        else:
            logger.debug("Job %s alert %s: price=%s no cross", record.id, record.symbol, price)

    return on_fire


def _job_text(job: Dict[str, Any]) -> str:
    if job["kind"] == KIND_ANALYSIS:
        detail = "interval={} lookback={}".format(job["interval"], job["lookback"])
    else:
        detail = "{} {}".format(job["condition"]["type"], job["condition"]["price"])
    line = "{} [{}] {} cron='{}' {}".format(job["id"], job["kind"], job["symbol"], job["cron"], detail)
    if job.get("description"):
        line += " - {}".format(job["description"])
    return line


async def schedule_task(ctx: AppContext, args: ScheduleTaskInput) -> ToolResult:
    record = ctx.jobs.create(args.to_job_spec(), make_job_callback(ctx))
    job = record.to_dict()
    return ToolResult("{} job scheduled.\n{}".format(job["kind"], _job_text(job)), structured={"job": job})


async def list_jobs(ctx: AppContext, args: EmptyInput) -> ToolResult:
    jobs = [r.to_dict() for r in ctx.jobs.list()]
    if not jobs:
        return ToolResult("No scheduled jobs.", structured={"jobs": []})
    return ToolResult("\n".join(_job_text(j) for j in jobs), structured={"jobs": jobs})


async def cancel_job(ctx: AppContext, args: CancelJobInput) -> ToolResult:
    if not ctx.jobs.remove(args.job_id):
        return ToolResult.error("Job {} not found".format(args.job_id))
    return ToolResult("Job {} cancelled.".format(args.job_id), structured={"jobId": args.job_id})


# ── Tool table ────────────────────────────────────────────────────────────────

TOOLS = [
    ToolSpec("get_ohlcv", "OHLCV candles from Binance spot or USD-M futures.", GetOhlcvInput, get_ohlcv),
    ToolSpec("get_mark_price", "Current mark price of a USD-M perpetual.", GetMarkPriceInput, get_mark_price),
    ToolSpec("get_funding_rate", "Funding rate history of a USD-M perpetual.", GetFundingRateInput, get_funding_rate),
    ToolSpec("get_open_interest", "Open interest history of a USD-M perpetual.", GetOpenInterestInput, get_open_interest),
    ToolSpec("get_binance_klines", "Latest Binance spot klines.", KlinesInput, get_binance_klines),
    ToolSpec("get_binance_perp_klines", "Latest Binance USD-M perpetual klines.", PerpKlinesInput, get_binance_perp_klines),
    ToolSpec("search", "Search Binance spot markets; returns ids usable with fetch.", SearchInput, search),
    ToolSpec("fetch", "24h market summary for an id returned by search.", FetchInput, fetch),
    ToolSpec(
        "price_action_summary",
        "Trend structure, support/resistance and breakout ideas from recent klines.",
        PriceActionInput,
        price_action_summary,
    ),
    ToolSpec(
        "draft_order",
        "Draft a hypothetical order with risk/reward figures and risk policy checks.",
        DraftOrderInput,
        draft_order,
    ),
    ToolSpec(
        "request_confirmation",
        "Create a confirmation ticket for a drafted action.",
        RequestConfirmationInput,
        request_confirmation,
    ),
    ToolSpec("get_confirmation", "Look up a confirmation ticket by id.", GetConfirmationInput, get_confirmation),
    ToolSpec("list_confirmations", "List pending confirmation tickets.", EmptyInput, list_confirmations),
    ToolSpec("get_risk_policy", "Show the current risk policy.", EmptyInput, get_risk_policy),
    ToolSpec("set_risk_policy", "Update one or more risk policy fields.", SetRiskPolicyInput, set_risk_policy),
    ToolSpec("reset_risk_policy", "Restore the default risk policy.", EmptyInput, reset_risk_policy),
    ToolSpec(
        "schedule_task",
        "Schedule a recurring price action analysis or price alert (cron).",
        ScheduleTaskInput,
        schedule_task,
    ),
    ToolSpec("list_jobs", "List scheduled jobs.", EmptyInput, list_jobs),
    ToolSpec("cancel_job", "Cancel a scheduled job.", CancelJobInput, cancel_job),
]  # type: List[ToolSpec]


def build_invoker(ctx: AppContext) -> ToolInvoker:
    invoker = ToolInvoker(ctx)
    for spec in TOOLS:
        invoker.register(spec)
    return invoker
