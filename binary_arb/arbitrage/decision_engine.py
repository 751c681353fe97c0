from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from binary_arb.arbitrage.config import ArbitrageConfig
from binary_arb.arbitrage.position_analyzer import PositionAnalysis
from binary_arb.arbitrage.price_validator import PriceValidator
from binary_arb.arbitrage.state import ArbitrageState, now_ms
from binary_arb.binary_math import MarketData
from binary_arb.models import Action, BookTop, Leg

LOGGER = logging.getLogger(__name__)


class DecisionKind(str, Enum):
    CLOSE_OUT = "close_out"
    PROFIT_TAKE = "profit_take"
    BALANCE = "balance"
    ENTRY = "entry"


@dataclass(frozen=True)
class TradeDecision:
    leg: Leg
    action: Action
    order_size: float
    aggressive: bool
    kind: DecisionKind
    is_close_out: bool = False


class DecisionEngine:
    """Priority cascade over close-out hedge, profit-take, balance and entry.

    The engine holds no state of its own beyond the shared
    ``ArbitrageState``; every emitted decision records an order for its leg.
    """

    def __init__(self, config: ArbitrageConfig, state: ArbitrageState, validator: PriceValidator | None = None) -> None:
        self._config = config
        self._state = state
        self._validator = validator or PriceValidator(config)

    def decide(
        self,
        bot_id: str,
        analysis: PositionAnalysis,
        market_data: MarketData,
        time_progress: float,
        scaled_max_position: float,
        now: float | None = None,
    ) -> TradeDecision | None:
        current = now_ms() if now is None else now
        is_close_out = time_progress >= self._config.close_out_threshold
        cooldown = self._config.cooldown_ms(is_close_out)

        if not is_close_out and self._state.are_both_on_cooldown(bot_id, cooldown, current):
            LOGGER.debug("DecisionEngine: %s both legs on cooldown", bot_id)
            return None

        decision = None
        if is_close_out and analysis.size_diff > 0:
            decision = self._close_out_hedge(bot_id, analysis, market_data)
        if decision is None:
            decision = self._profit_take(analysis, market_data)
        if decision is None and analysis.total_size > 0:
            decision = self._balance(bot_id, analysis, market_data, is_close_out, cooldown, current)
        if decision is None:
            decision = self._entry(bot_id, analysis, market_data, is_close_out, cooldown, scaled_max_position, current)

        if decision is not None:
            self._state.record_order(bot_id, decision.leg, current)
        return decision

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    def can_buy_leg(
        self,
        bot_id: str,
        leg: Leg,
        analysis: PositionAnalysis,
        is_close_out: bool,
        cooldown_ms: float,
        scaled_max_position: float,
        now: float,
    ) -> bool:
        is_lagging = leg is analysis.lagging_leg
        if not (is_close_out and is_lagging) and self._state.is_on_cooldown(bot_id, leg, cooldown_ms, now):
            LOGGER.debug("DecisionEngine: %s %s on cooldown", bot_id, leg.value)
            return False
        if is_lagging:
            return True
        if (
            analysis.new_diff_if_buy(leg) > scaled_max_position
            or analysis.new_filled_diff_if_buy(leg) > scaled_max_position
        ):
            LOGGER.info(
                "DecisionEngine: %s %s blocked by position limit diff=%.2f filled_diff=%.2f max=%.2f",
                bot_id,
                leg.value,
                analysis.new_diff_if_buy(leg),
                analysis.new_filled_diff_if_buy(leg),
                scaled_max_position,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Priorities
    # ------------------------------------------------------------------

    def _close_out_hedge(self, bot_id: str, analysis: PositionAnalysis, market_data: MarketData) -> TradeDecision | None:
        leg = analysis.lagging_leg
        price = _top(market_data, leg).best_ask
        if not self._validator.is_leg_price_acceptable(leg, price, analysis.avg(leg.opposite)):
            LOGGER.info("DecisionEngine: %s close-out hedge %s @ %.4f too expensive", bot_id, leg.value, price)
            return None
        size = min(analysis.size_diff, self._config.order_size * self._config.close_out_order_multiplier)
        return TradeDecision(
            leg=leg,
            action=Action.BUY,
            order_size=size,
            aggressive=True,
            kind=DecisionKind.CLOSE_OUT,
            is_close_out=True,
        )

    def _profit_take(self, analysis: PositionAnalysis, market_data: MarketData) -> TradeDecision | None:
        if analysis.size_diff < self._config.min_imbalance_for_sell:
            return None
        leg = analysis.leading_leg
        bid = _top(market_data, leg).best_bid
        if bid < analysis.filled_avg(leg) or bid < self._config.sell_threshold:
            return None
        quantity = min(analysis.size_diff, analysis.filled_size(leg), self._config.order_size)
        if quantity <= 0:
            return None
        return TradeDecision(
            leg=leg,
            action=Action.SELL,
            order_size=quantity,
            aggressive=False,
            kind=DecisionKind.PROFIT_TAKE,
        )

    def _balance(
        self,
        bot_id: str,
        analysis: PositionAnalysis,
        market_data: MarketData,
        is_close_out: bool,
        cooldown_ms: float,
        now: float,
    ) -> TradeDecision | None:
        leg = analysis.lagging_leg
        # The lagging leg is exempt from the position limit.
        if not self.can_buy_leg(bot_id, leg, analysis, is_close_out, cooldown_ms, float("inf"), now):
            return None
        top = _top(market_data, leg)
        price = top.best_ask if analysis.is_large_imbalance else top.best_bid
        if not self._validator.is_leg_price_acceptable(leg, price, analysis.avg(leg.opposite)):
            return None
        if not self._validator.would_cost_be_valid(analysis, leg, self._config.order_size, price):
            return None
        return TradeDecision(
            leg=leg,
            action=Action.BUY,
            order_size=self._config.order_size,
            aggressive=analysis.is_large_imbalance,
            kind=DecisionKind.BALANCE,
            is_close_out=is_close_out,
        )

    def _entry(
        self,
        bot_id: str,
        analysis: PositionAnalysis,
        market_data: MarketData,
        is_close_out: bool,
        cooldown_ms: float,
        scaled_max_position: float,
        now: float,
    ) -> TradeDecision | None:
        first = self._state.next_leg_round_robin(bot_id)
        for leg in (first, first.opposite):
            if not self.can_buy_leg(bot_id, leg, analysis, is_close_out, cooldown_ms, scaled_max_position, now):
                continue
            price = _top(market_data, leg).best_bid
            if not self._validator.is_leg_price_acceptable(leg, price, analysis.avg(leg.opposite)):
                continue
            if not self._validator.would_cost_be_valid(analysis, leg, self._config.order_size, price):
                continue
            return TradeDecision(
                leg=leg,
                action=Action.BUY,
                order_size=self._config.order_size,
                aggressive=False,
                kind=DecisionKind.ENTRY,
                is_close_out=is_close_out,
            )
        return None


def _top(market_data: MarketData, leg: Leg) -> BookTop:
    return market_data.yes if leg is Leg.YES else market_data.no
