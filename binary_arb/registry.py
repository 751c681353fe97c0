from __future__ import annotations

import logging
from typing import Dict, List

from binary_arb.arbitrage.executor import ArbitrageExecutor
from binary_arb.config import AppSettings
from binary_arb.exchanges.deribit import DeribitClient
from binary_arb.exchanges.polymarket import PolymarketGammaClient
from binary_arb.smile.discovery import MarketDiscovery
from binary_arb.smile.executor import SmileArbExecutor
from binary_arb.strategy import StrategyExecutor

LOGGER = logging.getLogger(__name__)


class UnknownStrategyError(KeyError):
    pass


class StrategyRegistry:
    """Maps strategy slugs to shared executor instances."""

    def __init__(self) -> None:
        self._executors: Dict[str, StrategyExecutor] = {}

    def register(self, slug: str, executor: StrategyExecutor) -> None:
        if slug in self._executors:
            LOGGER.warning("StrategyRegistry: replacing executor for %s", slug)
        self._executors[slug] = executor

    def unregister(self, slug: str) -> None:
        self._executors.pop(slug, None)

    def get(self, slug: str) -> StrategyExecutor:
        try:
            return self._executors[slug]
        except KeyError:
            raise UnknownStrategyError(slug) from None

    def has(self, slug: str) -> bool:
        return slug in self._executors

    def slugs(self) -> List[str]:
        return sorted(self._executors)

    def cleanup_bot(self, bot_id: str) -> None:
        """Drops a removed bot's state from every executor."""
        for executor in self._executors.values():
            executor.cleanup(bot_id)


def build_default_registry(settings: AppSettings) -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(ArbitrageExecutor.slug, ArbitrageExecutor())
    discovery = MarketDiscovery(
        PolymarketGammaClient(settings.polymarket),
        cache_ttl_seconds=settings.polymarket.discovery_cache_ttl_seconds,
    )
    registry.register(
        SmileArbExecutor.slug,
        SmileArbExecutor(
            DeribitClient(settings.deribit),
            discovery,
            refresh_timeout_seconds=settings.feed_timeout_seconds,
        ),
    )
    return registry
