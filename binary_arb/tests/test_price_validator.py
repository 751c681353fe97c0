from __future__ import annotations

import pytest

from binary_arb.arbitrage.config import ArbitrageConfig
from binary_arb.arbitrage.position_analyzer import analyze_positions
from binary_arb.arbitrage.price_validator import PriceValidator
from binary_arb.models import BotConfig, Leg, Position, StrategyContext


def _analysis(yes, no):
    ctx = StrategyContext(
        bot=BotConfig(id="bot-1"),
        positions=(
            Position(outcome=Leg.YES, size=yes[0], avg_entry_price=yes[1]),
            Position(outcome=Leg.NO, size=no[0], avg_entry_price=no[1]),
        ),
    )
    return analyze_positions(ctx, 0.5, 10)


@pytest.fixture
def validator() -> PriceValidator:
    return PriceValidator(ArbitrageConfig())


class TestProjectedAverage:
    def test_empty_position_takes_new_price(self) -> None:
        assert PriceValidator.projected_average(0, 0.0, 10, 0.45) == 0.45

    def test_nothing_added_keeps_average(self) -> None:
        assert PriceValidator.projected_average(10, 0.45, 0, 0.99) == 0.45

    def test_zero_total_is_zero(self) -> None:
        assert PriceValidator.projected_average(0, 0.0, 0, 0.5) == 0.0

    def test_weighted(self) -> None:
        assert PriceValidator.projected_average(20, 0.40, 10, 0.50) == pytest.approx(0.4333333)


class TestCostValidity:
    def test_rejects_when_combined_reaches_threshold(self, validator: PriceValidator) -> None:
        analysis = _analysis(yes=(100, 0.49), no=(100, 0.49))
        assert not validator.would_cost_be_valid(analysis, Leg.YES, 10, 0.49)

    def test_accepts_when_combined_below_threshold(self, validator: PriceValidator) -> None:
        analysis = _analysis(yes=(100, 0.45), no=(100, 0.48))
        assert validator.would_cost_be_valid(analysis, Leg.NO, 10, 0.48)

    def test_expensive_add_pushes_over_threshold(self, validator: PriceValidator) -> None:
        analysis = _analysis(yes=(10, 0.45), no=(10, 0.48))
        assert not validator.would_cost_be_valid(analysis, Leg.NO, 10, 0.60)


class TestLegCeiling:
    def test_dynamic_ceiling_uses_other_leg(self, validator: PriceValidator) -> None:
        assert validator.max_leg_price(0.48) == pytest.approx(0.49)
        assert validator.is_leg_price_acceptable(Leg.NO, 0.48, 0.48)
        assert not validator.is_leg_price_acceptable(Leg.NO, 0.50, 0.48)

    def test_single_leg_cap_without_other_cost(self, validator: PriceValidator) -> None:
        assert validator.max_leg_price(0.0) == 0.75
        assert validator.is_leg_price_acceptable(Leg.YES, 0.75, 0.0)
        assert not validator.is_leg_price_acceptable(Leg.YES, 0.76, 0.0)
