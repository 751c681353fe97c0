from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Tuple

from binary_arb.config import ConfigError
from binary_arb.exchanges.base import MarketSearchSource
from binary_arb.exchanges.polymarket import PolymarketGammaClient
from binary_arb.models import DiscoveredMarket
from binary_arb.smile.settlement import parse_settlement_time, utc_to_et

LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300.0

_STRIKE_RE = re.compile(r"\$\s?([0-9][0-9,]*(?:\.[0-9]+)?)\s*([kK])?")


class DiscoveryMode(str, Enum):
    AUTO_SCAN = "auto-scan"
    MANUAL = "manual"


@dataclass(frozen=True)
class DiscoveryOptions:
    mode: DiscoveryMode = DiscoveryMode.AUTO_SCAN
    search_pattern: str | None = None
    manual_market_ids: Tuple[str, ...] = ()
    settlement_date: str | None = None


def parse_strike(question: str) -> float | None:
    """Dollar strike in a market title: ``$100,000``, ``$99500.50`` or ``$100k``."""
    match = _STRIKE_RE.search(question)
    if not match:
        return None
    try:
        value = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    if match.group(2):
        value *= 1000.0
    return value


def parse_market(market: dict[str, Any], fallback_question: str = "") -> DiscoveredMarket | None:
    question = str(market.get("question") or fallback_question or "")
    strike = parse_strike(question)
    if strike is None:
        return None
    tokens = PolymarketGammaClient.token_ids(market)
    if tokens is None:
        return None
    market_id = str(market.get("id") or market.get("conditionId") or "").strip()
    if not market_id:
        return None
    return DiscoveredMarket(
        market_id=market_id,
        question=question,
        strike=strike,
        settlement_time=parse_settlement_time(question),
        yes_token_id=tokens[0],
        no_token_id=tokens[1],
    )


def filter_by_settlement_date(markets: List[DiscoveredMarket], settlement_date: str) -> List[DiscoveredMarket]:
    target = date.fromisoformat(settlement_date.strip()[:10])
    kept = [
        market
        for market in markets
        if market.settlement_time is not None and utc_to_et(market.settlement_time).date() == target
    ]
    LOGGER.info(
        "MarketDiscovery: settlement filter %d -> %d markets match %s",
        len(markets),
        len(kept),
        settlement_date,
    )
    return kept


class MarketDiscovery:
    """Resolves the strike ladder a smile bot trades.

    Results are cached per options for ``cache_ttl_seconds``.
    """

    def __init__(self, source: MarketSearchSource, cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS) -> None:
        self._source = source
        self._cache_ttl_seconds = cache_ttl_seconds
        self._cache: Dict[DiscoveryOptions, Tuple[float, List[DiscoveredMarket]]] = {}

    async def discover_markets(self, options: DiscoveryOptions) -> List[DiscoveredMarket]:
        cached = self._cache.get(options)
        if cached is not None and time.time() - cached[0] < self._cache_ttl_seconds:
            return cached[1]

        if options.mode is DiscoveryMode.AUTO_SCAN:
            if not options.search_pattern:
                raise ConfigError("searchPattern is required for auto-scan mode")
            markets = await self.search_markets(options.search_pattern)
        else:
            if not options.manual_market_ids:
                raise ConfigError("manualMarketIds are required for manual mode")
            markets = await self.fetch_manual_markets(options.manual_market_ids)

        if options.settlement_date:
            markets = filter_by_settlement_date(markets, options.settlement_date)

        self._cache[options] = (time.time(), markets)
        return markets

    async def search_markets(self, pattern: str) -> List[DiscoveredMarket]:
        events = await self._source.search_events(pattern)
        markets: List[DiscoveredMarket] = []
        for event in events:
            for raw in event.get("markets") or []:
                if not isinstance(raw, dict) or raw.get("active") is False:
                    continue
                parsed = parse_market(raw, fallback_question=str(event.get("title") or ""))
                if parsed is not None:
                    markets.append(parsed)
        LOGGER.info("MarketDiscovery: %r matched %d markets across %d events", pattern, len(markets), len(events))
        return markets

    async def fetch_manual_markets(self, market_ids: Tuple[str, ...] | List[str]) -> List[DiscoveredMarket]:
        results = await asyncio.gather(
            *(self._source.get_market(market_id) for market_id in market_ids),
            return_exceptions=True,
        )
        markets: List[DiscoveredMarket] = []
        for market_id, raw in zip(market_ids, results):
            if isinstance(raw, Exception):
                LOGGER.warning("MarketDiscovery: market %s lookup failed: %s", market_id, raw)
                continue
            if raw is None:
                continue
            parsed = parse_market(raw)
            if parsed is not None:
                markets.append(parsed)
        return markets

    def clear_cache(self) -> None:
        self._cache.clear()
