from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from binary_arb.arbitrage.signal_factory import format_quantity, round_to_tick
from binary_arb.binary_math import book_top
from binary_arb.bot_store import BotStateStore
from binary_arb.config import ConfigError, coerce_float, coerce_str, coerce_str_list
from binary_arb.exchanges.base import IVSurfaceSource
from binary_arb.models import (
    Action,
    BookTop,
    DiscoveredMarket,
    EventKind,
    IVSnapshot,
    Leg,
    StrategyContext,
    StrategySignal,
    coerce_number,
)
from binary_arb.smile.discovery import DiscoveryMode, DiscoveryOptions, MarketDiscovery
from binary_arb.smile.portfolio import PendingOrder, PortfolioManager
from binary_arb.smile.pricing import Confidence, compute_theoretical_price_with_diagnostics
from binary_arb.smile.settlement import is_within_cutoff, settlement_from_iso_date
from binary_arb.strategy import ExecutorMetadata, RequiredAsset, StaleOrderRules, StrategyExecutor

LOGGER = logging.getLogger(__name__)

DEFAULT_TICK_SIZE = 0.01
DEFAULT_REFRESH_TIMEOUT_SECONDS = 15.0

_CONFIDENCE_SCORE = {
    Confidence.HIGH: 0.9,
    Confidence.MEDIUM: 0.6,
    Confidence.LOW: 0.3,
}


# ── Config ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SmileArbConfig:
    settlement_date: str
    discovery_mode: DiscoveryMode = DiscoveryMode.AUTO_SCAN
    search_pattern: str = "BTC above $"
    manual_market_ids: Tuple[str, ...] = ()
    max_notional_per_expiry: float = 1000.0
    max_notional_per_strike: float = 200.0
    cutoff_minutes: float = 10.0
    edge_buffer: float = 0.02
    min_depth: float = 100.0
    iv_refresh_seconds: float = 30.0
    discovery_interval_seconds: float = 300.0
    order_size: float = 10.0

    @property
    def discovery_options(self) -> DiscoveryOptions:
        return DiscoveryOptions(
            mode=self.discovery_mode,
            search_pattern=self.search_pattern,
            manual_market_ids=self.manual_market_ids,
            settlement_date=self.settlement_date,
        )


def parse_smile_config(raw: Mapping[str, Any] | None) -> SmileArbConfig:
    """Raises ``ConfigError`` when the settlement date is missing or malformed."""
    settlement_date = coerce_str(raw, ("settlementDate", "settlement_date"))
    if not settlement_date:
        raise ConfigError("settlementDate is required")
    try:
        settlement_from_iso_date(settlement_date)
    except ValueError as exc:
        raise ConfigError(f"settlementDate must be YYYY-MM-DD, got {settlement_date!r}") from exc

    mode = coerce_str(raw, ("discoveryMode", "discovery_mode"), DiscoveryMode.AUTO_SCAN.value)
    d = SmileArbConfig(settlement_date=settlement_date)
    return SmileArbConfig(
        settlement_date=settlement_date,
        discovery_mode=DiscoveryMode.MANUAL if mode == DiscoveryMode.MANUAL.value else DiscoveryMode.AUTO_SCAN,
        search_pattern=coerce_str(raw, ("searchPattern", "search_pattern"), d.search_pattern) or d.search_pattern,
        manual_market_ids=tuple(coerce_str_list(raw, ("manualMarketIds", "manual_market_ids"))),
        max_notional_per_expiry=coerce_float(
            raw, ("maxNotionalPerExpiry", "max_notional_per_expiry"), d.max_notional_per_expiry
        ),
        max_notional_per_strike=coerce_float(
            raw, ("maxNotionalPerStrike", "max_notional_per_strike"), d.max_notional_per_strike
        ),
        cutoff_minutes=coerce_float(raw, ("cutoffMinutes", "cutoff_minutes"), d.cutoff_minutes),
        edge_buffer=coerce_float(raw, ("edgeBuffer", "edge_buffer"), d.edge_buffer),
        min_depth=coerce_float(raw, ("minDepth", "min_depth"), d.min_depth),
        iv_refresh_seconds=coerce_float(raw, ("ivRefreshSeconds", "iv_refresh_seconds"), d.iv_refresh_seconds),
        discovery_interval_seconds=coerce_float(
            raw, ("discoveryIntervalSeconds", "discovery_interval_seconds"), d.discovery_interval_seconds
        ),
        order_size=coerce_float(raw, ("orderSize", "order_size"), d.order_size),
    )


# ── Opportunities ──────────────────────────────────────────────────


@dataclass(frozen=True)
class EdgeOpportunity:
    market: DiscoveredMarket
    action: Action
    side: Leg
    edge: float
    price: float
    theo_price: float
    iv: float
    confidence: Confidence
    depth: float


BookLookup = Callable[[DiscoveredMarket], Optional[Tuple[BookTop, BookTop]]]


def find_opportunities(
    snapshot: IVSnapshot,
    markets: Iterable[DiscoveredMarket],
    books_for: BookLookup,
    edge_buffer: float,
    min_depth: float,
    now: float | None = None,
) -> List[EdgeOpportunity]:
    """Every buy/sell candidate with positive edge and enough top-of-book depth.

    A market whose pricing raises ``ValueError`` is logged and skipped.
    """
    found: List[EdgeOpportunity] = []
    for market in markets:
        if market.settlement_time is None:
            continue
        books = books_for(market)
        if books is None:
            continue
        yes, no = books
        if yes.best_bid <= 0 or no.best_bid <= 0:
            continue

        try:
            result = compute_theoretical_price_with_diagnostics(
                snapshot, market.strike, market.settlement_time, now
            )
        except ValueError as exc:
            LOGGER.warning("SmileArb: pricing failed for strike %g (%s): %s", market.strike, market.market_id, exc)
            continue

        theo = result.price
        candidates = (
            (Action.BUY, Leg.YES, theo - yes.best_ask - edge_buffer, yes.best_ask, theo, yes.ask_depth),
            (Action.BUY, Leg.NO, (1 - theo) - no.best_ask - edge_buffer, no.best_ask, 1 - theo, no.ask_depth),
            (Action.SELL, Leg.YES, yes.best_bid - theo - edge_buffer, yes.best_bid, theo, yes.bid_depth),
            (Action.SELL, Leg.NO, no.best_bid - (1 - theo) - edge_buffer, no.best_bid, 1 - theo, no.bid_depth),
        )
        LOGGER.debug(
            "SmileArb: strike %g theo=%.3f iv=%.1f%% edges=%s",
            market.strike,
            theo,
            result.iv * 100,
            ", ".join(f"{a.value}{s.value}:{e:.3f}" for a, s, e, *_ in candidates),
        )
        for action, side, edge, price, side_theo, depth in candidates:
            if edge > 0 and depth >= min_depth:
                found.append(
                    EdgeOpportunity(
                        market=market,
                        action=action,
                        side=side,
                        edge=edge,
                        price=price,
                        theo_price=side_theo,
                        iv=result.iv,
                        confidence=result.confidence,
                        depth=depth,
                    )
                )
    return found


# ── Executor ───────────────────────────────────────────────────────


@dataclass
class SmileBotState:
    portfolio: PortfolioManager = field(default_factory=PortfolioManager)
    iv_snapshot: IVSnapshot | None = None
    last_iv_refresh: float = 0.0
    markets: List[DiscoveredMarket] = field(default_factory=list)
    last_discovery: float = 0.0


class SmileArbExecutor(StrategyExecutor):
    """Trades the prediction venue's strike ladder against the options IV surface."""

    slug = "smile-arb-iv"
    metadata = ExecutorMetadata(
        required_assets=(
            RequiredAsset(config_key="assetId", label="YES", subscriptions=("orderBook", "price")),
            RequiredAsset(config_key="noAssetId", label="NO", subscriptions=("orderBook", "price")),
        ),
        position_handler="multi",
        stale_order_rules=StaleOrderRules(max_price_distance=0.15, per_outcome=True),
    )

    def __init__(
        self,
        iv_source: IVSurfaceSource,
        discovery: MarketDiscovery,
        refresh_timeout_seconds: float = DEFAULT_REFRESH_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__()
        self._iv_source = iv_source
        self._discovery = discovery
        self._refresh_timeout_seconds = refresh_timeout_seconds
        self.bots: BotStateStore[SmileBotState] = BotStateStore(lambda _bot_id: SmileBotState())

    def cleanup(self, bot_id: str) -> None:
        self.bots.discard(bot_id)
        LOGGER.info("SmileArb: cleaned up state for bot %s", bot_id)

    async def execute(self, context: StrategyContext) -> StrategySignal | None:
        async with self.bots.lock(context.bot_id):
            return await self._run_cycle(context, time.time())

    async def _run_cycle(self, context: StrategyContext, now: float) -> StrategySignal | None:
        bot_id = context.bot_id
        try:
            config = parse_smile_config(context.bot.strategy_config)
        except ConfigError as exc:
            LOGGER.warning("SmileArb: bot %s invalid config, skipping cycle: %s", bot_id, exc)
            self.emit(bot_id, EventKind.SKIP, f"invalid config: {exc}")
            return None

        settlement = settlement_from_iso_date(config.settlement_date)
        if is_within_cutoff(settlement, config.cutoff_minutes, now):
            LOGGER.info("SmileArb: bot %s within %.0fmin cutoff, skipping", bot_id, config.cutoff_minutes)
            self.emit(bot_id, EventKind.SKIP, "within settlement cutoff")
            return None

        state = self.bots.get(bot_id)
        state.portfolio.max_notional_per_strike = config.max_notional_per_strike
        state.portfolio.max_notional_per_expiry = config.max_notional_per_expiry

        if now - state.last_iv_refresh >= config.iv_refresh_seconds:
            await self._refresh_iv(bot_id, state, now)
        if state.iv_snapshot is None:
            LOGGER.warning("SmileArb: bot %s has no IV snapshot, skipping", bot_id)
            self.emit(bot_id, EventKind.SKIP, "no IV snapshot")
            return None

        if now - state.last_discovery >= config.discovery_interval_seconds:
            await self._refresh_markets(bot_id, state, config, now)
        if not state.markets:
            LOGGER.info("SmileArb: bot %s has no markets, skipping", bot_id)
            self.emit(bot_id, EventKind.SKIP, "no markets discovered")
            return None

        opportunities = find_opportunities(
            state.iv_snapshot,
            state.markets,
            lambda market: self._books_for(context, market),
            config.edge_buffer,
            config.min_depth,
            now,
        )
        if not opportunities:
            LOGGER.debug("SmileArb: bot %s no edge", bot_id)
            return None

        best = max(opportunities, key=lambda o: o.edge)
        allowed, reason = state.portfolio.check_trade(best.market.strike, config.order_size, best.price)
        if not allowed:
            LOGGER.info("SmileArb: bot %s risk limit: %s", bot_id, reason)
            self.emit(bot_id, EventKind.RISK_REJECTED, reason, strike=best.market.strike)
            return None

        signal = self._build_signal(best, config.order_size, context.tick_size)
        state.portfolio.add_pending_order(
            PendingOrder(
                order_id=signal.client_order_id or "",
                strike=best.market.strike,
                action=best.action,
                outcome=best.side,
                quantity=config.order_size,
                price=float(signal.price),
            )
        )
        LOGGER.info(
            "SmileArb: bot %s signal %s %s @ %s | %s",
            bot_id,
            signal.action.value,
            signal.side.value,
            signal.price,
            signal.reason,
        )
        self.emit(
            bot_id,
            EventKind.SIGNAL,
            signal.reason,
            action=signal.action.value,
            side=signal.side.value,
            price=signal.price,
            market_id=best.market.market_id,
        )
        return signal

    # ── Refresh ────────────────────────────────────────────────────

    async def _refresh_iv(self, bot_id: str, state: SmileBotState, now: float) -> None:
        try:
            snapshot = await asyncio.wait_for(
                self._iv_source.get_iv_snapshot(),
                timeout=self._refresh_timeout_seconds,
            )
            if not snapshot.is_valid:
                raise ValueError("IV snapshot has no expiries")
        except Exception as exc:
            LOGGER.warning("SmileArb: bot %s IV refresh failed: %s", bot_id, exc)
            self.emit(bot_id, EventKind.REFRESH_FAILED, f"IV refresh failed: {exc}")
            return
        state.iv_snapshot = snapshot
        state.last_iv_refresh = now
        LOGGER.info("SmileArb: bot %s refreshed IV, underlying=%.2f", bot_id, snapshot.underlying_price)

    async def _refresh_markets(self, bot_id: str, state: SmileBotState, config: SmileArbConfig, now: float) -> None:
        try:
            markets = await asyncio.wait_for(
                self._discovery.discover_markets(config.discovery_options),
                timeout=self._refresh_timeout_seconds,
            )
        except Exception as exc:
            LOGGER.warning("SmileArb: bot %s market discovery failed: %s", bot_id, exc)
            self.emit(bot_id, EventKind.REFRESH_FAILED, f"discovery failed: {exc}")
            return
        state.markets = list(markets)
        state.last_discovery = now
        LOGGER.info("SmileArb: bot %s discovered %d markets", bot_id, len(state.markets))

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _books_for(context: StrategyContext, market: DiscoveredMarket) -> Tuple[BookTop, BookTop] | None:
        # Without per-market books the host is running one market per bot.
        if context.market_books:
            books = context.market_books.get(market.market_id)
            if books is None:
                return None
            return book_top(books.yes), book_top(books.no)
        return (
            book_top(context.order_book, context.yes_prices),
            book_top(context.no_order_book, context.no_prices),
        )

    @staticmethod
    def _build_signal(best: EdgeOpportunity, order_size: float, tick_size: float | str | None) -> StrategySignal:
        tick = coerce_number(tick_size, DEFAULT_TICK_SIZE)
        if tick <= 0:
            tick = DEFAULT_TICK_SIZE
        reason = (
            f"Edge {best.edge * 100:.1f}% | theo={best.theo_price:.3f} | "
            f"IV={best.iv * 100:.1f}% | strike={best.market.strike:g}"
        )
        return StrategySignal(
            action=best.action,
            side=best.side,
            price=round_to_tick(best.price, tick),
            quantity=format_quantity(order_size),
            reason=reason,
            confidence=_CONFIDENCE_SCORE[best.confidence],
            market_id=best.market.market_id,
            token_id=best.market.yes_token_id if best.side is Leg.YES else best.market.no_token_id,
            client_order_id=uuid.uuid4().hex,
        )

    # ── Fill reporting ─────────────────────────────────────────────

    def on_fill(self, bot_id: str, client_order_id: str, quantity: float, price: float) -> bool:
        """Books a (partial) fill against a signal this executor emitted."""
        if bot_id not in self.bots:
            return False
        portfolio = self.bots.get(bot_id).portfolio
        order = portfolio.get_pending_order(client_order_id)
        if order is None:
            return False
        portfolio.update_position(order.strike, order.outcome, order.action, quantity, price)
        remaining = order.quantity - quantity
        portfolio.remove_pending_order(client_order_id)
        if remaining > 0:
            portfolio.add_pending_order(replace(order, quantity=remaining))
        return True

    def on_order_closed(self, bot_id: str, client_order_id: str) -> bool:
        if bot_id not in self.bots:
            return False
        return self.bots.get(bot_id).portfolio.remove_pending_order(client_order_id)
