"""Application context: every shared collaborator, built once per server.

Handlers receive the AppContext explicitly; nothing here is a module
global, so tests build as many isolated contexts as they like.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from cryptodesk.binance import BinanceClient
from cryptodesk.cache import LRUCache
from cryptodesk.config import Settings, load_settings
from cryptodesk.confirmations import ConfirmationRegistry
from cryptodesk.constants import LIMITER_CATEGORIES
from cryptodesk.jobs import JobRegistry
from cryptodesk.limiter import RateLimiter
from cryptodesk.market_data import MarketDataService
from cryptodesk.retry import RetryPolicy
from cryptodesk.risk_policy import RiskPolicyStore

logger = logging.getLogger(__name__)


class AppContext:
    def __init__(
        self,
        settings: Settings,
        market_data: MarketDataService,
        search_cache: LRUCache,
        confirmations: ConfirmationRegistry,
        jobs: JobRegistry,
        risk_policy: RiskPolicyStore,
    ) -> None:
        self.settings = settings
        self.market_data = market_data
        self.search_cache = search_cache
        self.confirmations = confirmations
        self.jobs = jobs
        self.risk_policy = risk_policy

    async def aclose(self) -> None:
        """Stop all job schedules and close the HTTP session."""
        await self.jobs.shutdown()
        await self.market_data.client.close()
        logger.info("Application context closed")


def build_context(settings: Optional[Settings] = None) -> AppContext:
    settings = settings or load_settings()

    client = BinanceClient(
        spot_base_url=settings.spot_base_url,
        futures_base_url=settings.futures_base_url,
        timeout_sec=settings.http_timeout_sec,
    )
    limiters = {
        category: RateLimiter(settings.rate_capacity, settings.rate_refill_per_sec)
        for category in LIMITER_CATEGORIES
    }  # type: Dict[str, RateLimiter]
    retry = RetryPolicy(
        max_retries=settings.retry_max_retries,
        base_delay_ms=settings.retry_base_delay_ms,
    )

    return AppContext(
        settings=settings,
        market_data=MarketDataService(client, limiters, retry),
        search_cache=LRUCache(settings.cache_max_entries),
        confirmations=ConfirmationRegistry(),
        jobs=JobRegistry(),
        risk_policy=RiskPolicyStore(),
    )
