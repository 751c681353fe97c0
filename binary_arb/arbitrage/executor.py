from __future__ import annotations

import logging
import math
import time
from datetime import datetime
from typing import Tuple

from binary_arb.arbitrage.config import ArbitrageConfig, parse_arbitrage_config
from binary_arb.arbitrage.decision_engine import DecisionEngine, TradeDecision
from binary_arb.arbitrage.position_analyzer import analyze_positions
from binary_arb.arbitrage.signal_factory import create_buy_signal, create_sell_signal
from binary_arb.arbitrage.state import ArbitrageState
from binary_arb.binary_math import MarketData, extract_market_data
from binary_arb.config import ConfigError
from binary_arb.models import Action, EventKind, Leg, StrategyContext, StrategySignal, coerce_number
from binary_arb.strategy import ExecutorMetadata, RequiredAsset, StaleOrderRules, StrategyExecutor

LOGGER = logging.getLogger(__name__)

DEFAULT_TICK_SIZE = 0.01


def calculate_time_scaling(
    bot_start_time: datetime | None,
    market_end_time: datetime | None,
    max_position_per_leg: float,
    now: float | None = None,
) -> Tuple[float, float]:
    """Returns ``(time_progress, scaled_max_position)``.

    Progress is the clamped fraction of the bot's window already elapsed;
    the leading-leg cap shrinks linearly to zero as the market closes.
    Without both timestamps (or before the start) nothing is scaled.
    """
    if bot_start_time is None or market_end_time is None:
        return 0.0, max_position_per_leg
    current = time.time() if now is None else now
    start = bot_start_time.timestamp()
    total = market_end_time.timestamp() - start
    if total <= 0 or current < start:
        return 0.0, max_position_per_leg
    progress = min(1.0, max(0.0, (current - start) / total))
    return progress, scale_max_position(max_position_per_leg, progress)


def scale_max_position(max_position_per_leg: float, time_progress: float) -> float:
    return float(math.floor(max_position_per_leg * (1.0 - time_progress)))


def resolve_tick_size(tick_size: float | str | None) -> float:
    tick = coerce_number(tick_size, DEFAULT_TICK_SIZE)
    return tick if tick > 0 else DEFAULT_TICK_SIZE


class ArbitrageExecutor(StrategyExecutor):
    """YES+NO below $1 arbitrage, entering legs separately and holding to resolution.

    Each cycle: parse config, read top of book for both tokens, scale the
    leading-leg cap by elapsed time, analyze positions, run the decision
    cascade and turn the decision into a signal.
    """

    slug = "arbitrage"
    metadata = ExecutorMetadata(
        required_assets=(
            RequiredAsset(config_key="assetId", label="YES"),
            RequiredAsset(config_key="noAssetId", label="NO"),
        ),
        position_handler="multi",
        stale_order_rules=StaleOrderRules(max_price_distance=0.20, per_outcome=True),
        fillability_threshold=0.80,
    )

    def __init__(self, state: ArbitrageState | None = None) -> None:
        super().__init__()
        self.state = state or ArbitrageState()

    def cleanup(self, bot_id: str) -> None:
        self.state.cleanup(bot_id)

    async def execute(self, context: StrategyContext) -> StrategySignal | None:
        async with self.state.lock(context.bot_id):
            return self.evaluate(context)

    def evaluate(self, context: StrategyContext, now: float | None = None) -> StrategySignal | None:
        """Runs one cycle synchronously. ``now`` is epoch seconds."""
        bot_id = context.bot_id
        current = time.time() if now is None else now

        try:
            config = parse_arbitrage_config(context.bot.strategy_config)
        except ConfigError as exc:
            LOGGER.warning("ArbitrageExecutor: %s invalid config, skipping cycle: %s", bot_id, exc)
            self.emit(bot_id, EventKind.SKIP, f"invalid config: {exc}")
            return None

        market_data = extract_market_data(
            context.order_book,
            context.no_order_book,
            context.yes_prices,
            context.no_prices,
        )
        if not market_data.is_valid:
            LOGGER.info("ArbitrageExecutor: %s missing order book data, skipping cycle", bot_id)
            self.emit(bot_id, EventKind.SKIP, "missing order book data")
            return None

        time_progress, scaled_max = self._time_scaling(context, config, current)
        if time_progress >= config.close_out_threshold:
            LOGGER.info(
                "ArbitrageExecutor: %s CLOSE-OUT MODE %.1f%% time remaining, forcing hedge on lagging leg",
                bot_id,
                (1.0 - time_progress) * 100.0,
            )
            self.emit(bot_id, EventKind.CLOSE_OUT, "close-out mode", time_progress=time_progress)

        analysis = analyze_positions(context, config.imbalance_threshold, config.order_size)
        engine = DecisionEngine(config, self.state)
        decision = engine.decide(bot_id, analysis, market_data, time_progress, scaled_max, now=current * 1000.0)
        if decision is None:
            return None

        signal = self._build_signal(
            decision,
            market_data,
            resolve_tick_size(context.tick_size),
            analysis.filled_avg(decision.leg),
        )
        LOGGER.info("ArbitrageExecutor: %s %s", bot_id, signal.reason)
        self.emit(
            bot_id,
            EventKind.SIGNAL,
            signal.reason,
            decision_kind=decision.kind.value,
            action=signal.action.value,
            side=signal.side.value,
            price=signal.price,
            quantity=signal.quantity,
        )
        return signal

    @staticmethod
    def _time_scaling(context: StrategyContext, config: ArbitrageConfig, now: float) -> Tuple[float, float]:
        if context.time_progress is not None:
            progress = min(1.0, max(0.0, float(context.time_progress)))
            return progress, scale_max_position(config.max_position_per_leg, progress)
        progress, scaled = calculate_time_scaling(
            context.bot_start_time,
            context.market_end_time,
            config.max_position_per_leg,
            now,
        )
        if progress > 0:
            LOGGER.debug(
                "ArbitrageExecutor: %.1f%% elapsed, max position %.0f -> %.0f",
                progress * 100.0,
                config.max_position_per_leg,
                scaled,
            )
        return progress, scaled

    @staticmethod
    def _build_signal(
        decision: TradeDecision,
        market_data: MarketData,
        tick: float,
        filled_avg: float,
    ) -> StrategySignal:
        top = market_data.yes if decision.leg is Leg.YES else market_data.no
        if decision.action is Action.SELL:
            return create_sell_signal(decision.leg, top.best_bid, decision.order_size, tick, filled_avg)
        return create_buy_signal(
            decision.leg,
            top.best_bid,
            top.best_ask,
            decision.order_size,
            tick,
            market_data.potential_profit,
            decision.aggressive,
        )
