from __future__ import annotations

from binary_arb.arbitrage.config import ArbitrageConfig
from binary_arb.arbitrage.decision_engine import DecisionEngine, DecisionKind
from binary_arb.arbitrage.position_analyzer import analyze_positions
from binary_arb.arbitrage.state import ArbitrageState
from binary_arb.binary_math import MarketData, potential_profit
from binary_arb.models import Action, BookTop, BotConfig, Leg, Position, StrategyContext

NOW_MS = 50_000_000.0
CONFIG = ArbitrageConfig()


def _market(yes_bid: float, yes_ask: float, no_bid: float, no_ask: float) -> MarketData:
    return MarketData(
        yes=BookTop(best_bid=yes_bid, best_ask=yes_ask, bid_depth=100, ask_depth=100),
        no=BookTop(best_bid=no_bid, best_ask=no_ask, bid_depth=100, ask_depth=100),
        potential_profit=potential_profit(yes_ask, no_ask),
        is_valid=True,
    )


def _analysis(yes=None, no=None, config: ArbitrageConfig = CONFIG):
    positions = []
    if yes is not None:
        positions.append(Position(outcome=Leg.YES, size=yes[0], avg_entry_price=yes[1]))
    if no is not None:
        positions.append(Position(outcome=Leg.NO, size=no[0], avg_entry_price=no[1]))
    ctx = StrategyContext(bot=BotConfig(id="bot-1"), positions=tuple(positions))
    return analyze_positions(ctx, config.imbalance_threshold, config.order_size)


def _engine(state: ArbitrageState | None = None, config: ArbitrageConfig = CONFIG):
    state = state or ArbitrageState()
    return DecisionEngine(config, state), state


class TestEntry:
    def test_fresh_bot_enters_yes_passively(self) -> None:
        engine, state = _engine()
        decision = engine.decide("bot-1", _analysis(), _market(0.45, 0.47, 0.50, 0.52), 0.0, 100, NOW_MS)

        assert decision is not None
        assert decision.kind is DecisionKind.ENTRY
        assert decision.leg is Leg.YES
        assert decision.action is Action.BUY
        assert decision.order_size == 10
        assert not decision.aggressive
        assert state.last_leg("bot-1") is Leg.YES
        assert state.is_on_cooldown("bot-1", Leg.YES, CONFIG.normal_cooldown_ms, NOW_MS + 1)

    def test_round_robin_moves_to_other_leg(self) -> None:
        engine, state = _engine()
        state.record_order("bot-1", Leg.YES, NOW_MS - 10_000)
        decision = engine.decide("bot-1", _analysis(), _market(0.45, 0.47, 0.50, 0.52), 0.0, 100, NOW_MS)
        assert decision is not None
        assert decision.leg is Leg.NO

    def test_both_legs_on_cooldown_returns_none(self) -> None:
        engine, state = _engine()
        state.record_order("bot-1", Leg.YES, NOW_MS)
        state.record_order("bot-1", Leg.NO, NOW_MS)
        decision = engine.decide("bot-1", _analysis(), _market(0.45, 0.47, 0.50, 0.52), 0.0, 100, NOW_MS + 100)
        assert decision is None

    def test_leading_leg_blocked_by_scaled_limit(self) -> None:
        engine, state = _engine()
        # NO lags but is cooling down, so only YES (leading) is left.
        state.record_order("bot-1", Leg.NO, NOW_MS)
        analysis = _analysis(yes=(20, 0.40), no=(10, 0.40))
        market = _market(0.40, 0.42, 0.40, 0.42)

        assert engine.decide("bot-1", analysis, market, 0.0, 15, NOW_MS + 100) is None

        decision = engine.decide("bot-1", analysis, market, 0.0, 25, NOW_MS + 100)
        assert decision is not None
        assert decision.leg is Leg.YES
        assert decision.kind is DecisionKind.ENTRY


class TestCloseOut:
    def test_hedges_lagging_leg_at_ask(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(100, 0.45), no=(50, 0.45))
        decision = engine.decide("bot-1", analysis, _market(0.40, 0.42, 0.48, 0.50), 0.95, 5, NOW_MS)

        assert decision is not None
        assert decision.kind is DecisionKind.CLOSE_OUT
        assert decision.leg is Leg.NO
        assert decision.action is Action.BUY
        assert decision.order_size == 30
        assert decision.aggressive
        assert decision.is_close_out

    def test_hedge_ignores_cooldown(self) -> None:
        engine, state = _engine()
        state.record_order("bot-1", Leg.NO, NOW_MS)
        state.record_order("bot-1", Leg.YES, NOW_MS)
        analysis = _analysis(yes=(100, 0.45), no=(50, 0.45))
        decision = engine.decide("bot-1", analysis, _market(0.40, 0.42, 0.48, 0.50), 0.95, 5, NOW_MS + 1)
        assert decision is not None
        assert decision.leg is Leg.NO

    def test_small_gap_hedges_exact_difference(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(60, 0.45), no=(48, 0.45))
        decision = engine.decide("bot-1", analysis, _market(0.40, 0.42, 0.48, 0.50), 0.95, 5, NOW_MS)
        assert decision is not None
        assert decision.order_size == 12

    def test_expensive_hedge_is_skipped(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(100, 0.45), no=(50, 0.45))
        # NO ask 0.60 is above the 0.52 ceiling; nothing else qualifies.
        decision = engine.decide("bot-1", analysis, _market(0.40, 0.42, 0.55, 0.60), 0.95, 5, NOW_MS)
        assert decision is None


class TestProfitTake:
    def test_sells_leading_leg_above_entry(self) -> None:
        engine, state = _engine()
        analysis = _analysis(yes=(80, 0.40), no=(40, 0.45))
        decision = engine.decide("bot-1", analysis, _market(0.80, 0.82, 0.15, 0.17), 0.0, 100, NOW_MS)

        assert decision is not None
        assert decision.kind is DecisionKind.PROFIT_TAKE
        assert decision.action is Action.SELL
        assert decision.leg is Leg.YES
        assert decision.order_size == 10
        assert state.is_on_cooldown("bot-1", Leg.YES, CONFIG.normal_cooldown_ms, NOW_MS + 1)

    def test_never_sells_below_entry(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(80, 0.85), no=(40, 0.45))
        decision = engine.decide("bot-1", analysis, _market(0.80, 0.82, 0.15, 0.17), 0.0, 100, NOW_MS)
        assert decision is None

    def test_small_imbalance_does_not_sell(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(50, 0.40), no=(40, 0.45))
        decision = engine.decide("bot-1", analysis, _market(0.80, 0.82, 0.15, 0.17), 0.0, 100, NOW_MS)
        assert decision is None or decision.action is Action.BUY


class TestBalance:
    def test_large_imbalance_buys_lagging_at_ask(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(100, 0.40), no=(20, 0.40))
        decision = engine.decide("bot-1", analysis, _market(0.45, 0.47, 0.48, 0.50), 0.0, 100, NOW_MS)

        assert decision is not None
        assert decision.kind is DecisionKind.BALANCE
        assert decision.leg is Leg.NO
        assert decision.aggressive
        assert decision.order_size == 10

    def test_mild_imbalance_buys_lagging_at_bid(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(50, 0.40), no=(40, 0.40))
        decision = engine.decide("bot-1", analysis, _market(0.45, 0.47, 0.48, 0.50), 0.0, 100, NOW_MS)

        assert decision is not None
        assert decision.kind is DecisionKind.BALANCE
        assert decision.leg is Leg.NO
        assert not decision.aggressive


class TestCanBuyLeg:
    def test_lagging_leg_exempt_from_limit(self) -> None:
        engine, _ = _engine()
        analysis = _analysis(yes=(10, 0.40), no=(100, 0.40))
        assert engine.can_buy_leg("bot-1", Leg.YES, analysis, False, 3000, 0, NOW_MS)
        assert not engine.can_buy_leg("bot-1", Leg.NO, analysis, False, 3000, 50, NOW_MS)

    def test_cooldown_bypass_only_for_lagging_in_close_out(self) -> None:
        engine, state = _engine()
        state.record_order("bot-1", Leg.YES, NOW_MS)
        state.record_order("bot-1", Leg.NO, NOW_MS)
        analysis = _analysis(yes=(10, 0.40), no=(20, 0.40))
        assert engine.can_buy_leg("bot-1", Leg.YES, analysis, True, 500, 100, NOW_MS + 1)
        assert not engine.can_buy_leg("bot-1", Leg.NO, analysis, True, 500, 100, NOW_MS + 1)
        assert not engine.can_buy_leg("bot-1", Leg.YES, analysis, False, 3000, 100, NOW_MS + 1)
