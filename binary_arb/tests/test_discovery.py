from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from binary_arb.config import ConfigError
from binary_arb.exchanges.base import FeedError, MarketSearchSource
from binary_arb.smile.discovery import (
    DiscoveryMode,
    DiscoveryOptions,
    MarketDiscovery,
    parse_market,
    parse_strike,
)


class FakeSearchSource(MarketSearchSource):
    venue = "fake"

    def __init__(self, events: List[Dict[str, Any]] | None = None, markets: Dict[str, Any] | None = None) -> None:
        self.events = events or []
        self.markets = markets or {}
        self.search_calls = 0

    async def search_events(self, query: str) -> list[dict[str, Any]]:
        self.search_calls += 1
        return self.events

    async def get_market(self, market_id: str) -> dict[str, Any] | None:
        market = self.markets.get(market_id)
        if isinstance(market, Exception):
            raise market
        return market


def _market(market_id: str, question: str, tokens=("yes-tok", "no-tok"), **extra) -> Dict[str, Any]:
    return {"id": market_id, "question": question, "clobTokenIds": json.dumps(list(tokens)), **extra}


EVENTS = [
    {
        "title": "Bitcoin above ___ on January 29?",
        "markets": [
            _market("m-100", "Will the price of Bitcoin be above $100,000 on January 29, 2026?"),
            _market("m-102", "Will the price of Bitcoin be above $102,000 on January 29, 2026?", ("y2", "n2")),
            _market("m-104", "Will the price of Bitcoin be above $104,000 on January 29, 2026?", ("y3",)),
            _market("m-106", "Will the price of Bitcoin be above $106,000 on January 29, 2026?", active=False),
        ],
    },
    {
        "title": "Bitcoin above ___ on January 30?",
        "markets": [
            _market("m-200", "Will the price of Bitcoin be above $100,000 on January 30, 2026?"),
            _market("m-201", "Will Bitcoin close the week higher on January 30, 2026?"),
        ],
    },
]


class TestParseStrike:
    @pytest.mark.parametrize(
        "question,expected",
        [
            ("Bitcoin above $100,000 on Jan 29?", 100_000.0),
            ("Bitcoin above $99500.50?", 99_500.5),
            ("Bitcoin above $100k?", 100_000.0),
            ("BTC above $1.5K", 1_500.0),
            ("Bitcoin above $ 98,000", 98_000.0),
            ("Bitcoin up or down today?", None),
        ],
    )
    def test_strikes(self, question: str, expected: float | None) -> None:
        assert parse_strike(question) == expected


class TestParseMarket:
    def test_full_market(self) -> None:
        parsed = parse_market(_market("m-1", "Bitcoin above $100,000 on January 29, 2026?"))
        assert parsed is not None
        assert parsed.market_id == "m-1"
        assert parsed.strike == 100_000.0
        assert parsed.yes_token_id == "yes-tok"
        assert parsed.no_token_id == "no-tok"
        assert parsed.settlement_time == datetime(2026, 1, 29, 17, 0, tzinfo=timezone.utc)

    def test_token_ids_as_list(self) -> None:
        raw = {"id": "m-1", "question": "BTC above $90k", "clobTokenIds": ["a", "b"]}
        parsed = parse_market(raw)
        assert parsed is not None
        assert (parsed.yes_token_id, parsed.no_token_id) == ("a", "b")
        assert parsed.settlement_time is None

    def test_incomplete_markets_are_dropped(self) -> None:
        assert parse_market({"id": "m-1", "question": "BTC above $90k"}) is None
        assert parse_market(_market("m-1", "BTC up or down")) is None
        assert parse_market(_market("", "BTC above $90k")) is None

    def test_falls_back_to_event_title(self) -> None:
        raw = {"id": "m-1", "clobTokenIds": '["a", "b"]'}
        parsed = parse_market(raw, fallback_question="Bitcoin above $95,000 on January 29, 2026?")
        assert parsed is not None
        assert parsed.strike == 95_000.0


class TestMarketDiscovery:
    def test_auto_scan_filters_by_settlement_date(self) -> None:
        async def _run() -> None:
            source = FakeSearchSource(EVENTS)
            discovery = MarketDiscovery(source)
            options = DiscoveryOptions(search_pattern="Bitcoin above", settlement_date="2026-01-29")
            markets = await discovery.discover_markets(options)
            assert [m.market_id for m in markets] == ["m-100", "m-102"]
            assert [m.strike for m in markets] == [100_000.0, 102_000.0]

        asyncio.run(_run())

    def test_results_are_cached_per_options(self) -> None:
        async def _run() -> None:
            source = FakeSearchSource(EVENTS)
            discovery = MarketDiscovery(source, cache_ttl_seconds=300)
            options = DiscoveryOptions(search_pattern="Bitcoin above", settlement_date="2026-01-30")
            first = await discovery.discover_markets(options)
            second = await discovery.discover_markets(options)
            assert first == second
            assert [m.market_id for m in first] == ["m-200"]
            assert source.search_calls == 1

            discovery.clear_cache()
            await discovery.discover_markets(options)
            assert source.search_calls == 2

        asyncio.run(_run())

    def test_zero_ttl_always_refreshes(self) -> None:
        async def _run() -> None:
            source = FakeSearchSource(EVENTS)
            discovery = MarketDiscovery(source, cache_ttl_seconds=0)
            options = DiscoveryOptions(search_pattern="Bitcoin above")
            await discovery.discover_markets(options)
            await discovery.discover_markets(options)
            assert source.search_calls == 2

        asyncio.run(_run())

    def test_manual_mode_skips_failed_lookups(self) -> None:
        async def _run() -> None:
            source = FakeSearchSource(
                markets={
                    "m-1": _market("m-1", "Bitcoin above $100,000 on January 29, 2026?"),
                    "m-2": FeedError("boom"),
                }
            )
            discovery = MarketDiscovery(source)
            options = DiscoveryOptions(mode=DiscoveryMode.MANUAL, manual_market_ids=("m-1", "m-2", "m-3"))
            markets = await discovery.discover_markets(options)
            assert [m.market_id for m in markets] == ["m-1"]
            assert source.search_calls == 0

        asyncio.run(_run())

    def test_missing_inputs_raise(self) -> None:
        async def _run() -> None:
            discovery = MarketDiscovery(FakeSearchSource())
            with pytest.raises(ConfigError):
                await discovery.discover_markets(DiscoveryOptions(search_pattern=None))
            with pytest.raises(ConfigError):
                await discovery.discover_markets(DiscoveryOptions(mode=DiscoveryMode.MANUAL))

        asyncio.run(_run())
