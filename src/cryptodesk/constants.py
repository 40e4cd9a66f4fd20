"""Compiled-in defaults for the cryptodesk tool server.

Runtime overrides come from the environment via cryptodesk.config;
everything else reads these values directly.
"""

from __future__ import annotations

# ── Upstream endpoints ────────────────────────────────────────────────────────
BINANCE_SPOT_BASE_URL = "https://api.binance.com"
BINANCE_FUTURES_BASE_URL = "https://fapi.binance.com"
HTTP_TIMEOUT_SEC = 10.0

# Limiter categories (one token bucket each)
CATEGORY_SPOT = "spot"
CATEGORY_FUTURES = "futures"
LIMITER_CATEGORIES = (CATEGORY_SPOT, CATEGORY_FUTURES)

# ── Rate limiter ──────────────────────────────────────────────────────────────
RATE_LIMIT_CAPACITY = 10
RATE_LIMIT_REFILL_PER_SEC = 10.0
RATE_LIMIT_POLL_SEC = 0.1

# ── Retry ─────────────────────────────────────────────────────────────────────
RETRY_MAX_RETRIES = 3
RETRY_BASE_DELAY_MS = 300

# ── Cache ─────────────────────────────────────────────────────────────────────
CACHE_MAX_ENTRIES = 200

# ── Confirmations ─────────────────────────────────────────────────────────────
CONFIRMATION_TTL_DEFAULT_SEC = 3600
CONFIRMATION_TTL_MIN_SEC = 30
CONFIRMATION_TTL_MAX_SEC = 86400
CONFIRMATION_ID_LENGTH = 12

# ── Scheduler ─────────────────────────────────────────────────────────────────
JOB_ID_LENGTH = 10
JOB_FIRE_LOG_MAX = 200

# ── Risk policy defaults ──────────────────────────────────────────────────────
DEFAULT_PER_TRADE_MAX_RISK_PCT = 2.0
DEFAULT_MAX_LEVERAGE = 3.0
DEFAULT_DAILY_DRAWDOWN_STOP_PCT = 3.0

# ── Price action ──────────────────────────────────────────────────────────────
TREND_THRESHOLD = 0.02
LEVEL_TOUCH_TOLERANCE = 0.002

# ── Tool defaults ─────────────────────────────────────────────────────────────
DEFAULT_SYMBOL = "SOLUSDT"
DEFAULT_INTERVAL = "1h"
SPOT_KLINES_DEFAULT_LIMIT = 50
PERP_KLINES_DEFAULT_LIMIT = 120
PRICE_ACTION_DEFAULT_LOOKBACK = 180
KLINE_PREVIEW_ROWS = 5

SERVER_NAME = "cryptodesk"
SERVER_VERSION = "0.3.0"
