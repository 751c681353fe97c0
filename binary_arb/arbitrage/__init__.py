"""Statistical leg-balancing arbitrage on binary YES/NO markets.

Buys YES and NO separately while the combined average cost stays below
the profit threshold, favouring the lagging leg and forcing hedges late
in the market's life.
"""

from binary_arb.arbitrage.config import ArbitrageConfig, parse_arbitrage_config
from binary_arb.arbitrage.decision_engine import DecisionEngine, DecisionKind, TradeDecision
from binary_arb.arbitrage.executor import ArbitrageExecutor, calculate_time_scaling
from binary_arb.arbitrage.position_analyzer import PositionAnalysis, analyze_positions
from binary_arb.arbitrage.price_validator import PriceValidator
from binary_arb.arbitrage.signal_factory import create_buy_signal, create_sell_signal, round_to_tick
from binary_arb.arbitrage.state import ArbitrageState

__all__ = [
    "ArbitrageConfig",
    "ArbitrageExecutor",
    "ArbitrageState",
    "DecisionEngine",
    "DecisionKind",
    "PositionAnalysis",
    "PriceValidator",
    "TradeDecision",
    "analyze_positions",
    "calculate_time_scaling",
    "create_buy_signal",
    "create_sell_signal",
    "parse_arbitrage_config",
    "round_to_tick",
]
