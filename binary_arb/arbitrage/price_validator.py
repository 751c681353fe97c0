from __future__ import annotations

import logging

from binary_arb.arbitrage.config import ArbitrageConfig
from binary_arb.arbitrage.position_analyzer import PositionAnalysis
from binary_arb.models import Leg

LOGGER = logging.getLogger(__name__)

# Gap kept below the profit threshold when the other leg already has cost.
LEG_PRICE_MARGIN = 0.01


class PriceValidator:
    """Guards the combined YES+NO average cost below the profit threshold."""

    def __init__(self, config: ArbitrageConfig) -> None:
        self._config = config

    @staticmethod
    def projected_average(current_size: float, current_avg: float, add_size: float, add_price: float) -> float:
        total = current_size + add_size
        if total <= 0:
            return 0.0
        if current_size <= 0:
            return add_price
        if add_size <= 0:
            return current_avg
        return (current_size * current_avg + add_size * add_price) / total

    def would_cost_be_valid(
        self,
        analysis: PositionAnalysis,
        leg: Leg,
        add_size: float,
        add_price: float,
    ) -> bool:
        new_avg = self.projected_average(analysis.size(leg), analysis.avg(leg), add_size, add_price)
        combined = new_avg + analysis.avg(leg.opposite)
        if combined >= self._config.profit_threshold:
            LOGGER.info(
                "PriceValidator: blocked %s %.2f@%.4f combined=%.4f >= threshold=%.4f",
                leg.value,
                add_size,
                add_price,
                combined,
                self._config.profit_threshold,
            )
            return False
        return True

    def max_leg_price(self, other_leg_average: float) -> float:
        if other_leg_average > 0:
            return self._config.profit_threshold - other_leg_average - LEG_PRICE_MARGIN
        return self._config.max_single_leg_price

    def is_leg_price_acceptable(self, leg: Leg, price: float, other_leg_average: float) -> bool:
        ceiling = self.max_leg_price(other_leg_average)
        if price > ceiling:
            LOGGER.debug(
                "PriceValidator: %s price %.4f above ceiling %.4f",
                leg.value,
                price,
                ceiling,
            )
            return False
        return True
