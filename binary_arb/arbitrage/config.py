from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from binary_arb.config import coerce_float


@dataclass(frozen=True)
class ArbitrageConfig:
    order_size: float = 10.0
    max_position_per_leg: float = 100.0
    profit_threshold: float = 0.98
    max_single_leg_price: float = 0.75
    imbalance_threshold: float = 0.50
    close_out_threshold: float = 0.90
    normal_cooldown_ms: float = 3000.0
    close_out_cooldown_ms: float = 500.0
    close_out_order_multiplier: float = 3.0
    sell_threshold: float = 0.75
    min_imbalance_for_sell: float = 30.0

    def cooldown_ms(self, is_close_out: bool) -> float:
        return self.close_out_cooldown_ms if is_close_out else self.normal_cooldown_ms


def parse_arbitrage_config(raw: Mapping[str, Any] | None) -> ArbitrageConfig:
    """Builds an ``ArbitrageConfig`` from a bot's loosely typed strategy map.

    Raises ``ConfigError`` when a present value is not numeric.
    """
    d = ArbitrageConfig()
    return ArbitrageConfig(
        order_size=coerce_float(raw, ("orderSize", "order_size"), d.order_size),
        max_position_per_leg=coerce_float(
            raw,
            ("maxPosition", "maxPositionPerLeg", "max_position", "max_position_per_leg"),
            d.max_position_per_leg,
        ),
        profit_threshold=coerce_float(raw, ("profitThreshold", "profit_threshold"), d.profit_threshold),
        max_single_leg_price=coerce_float(
            raw, ("maxSingleLegPrice", "max_single_leg_price"), d.max_single_leg_price
        ),
        imbalance_threshold=coerce_float(
            raw, ("imbalanceThreshold", "imbalance_threshold"), d.imbalance_threshold
        ),
        close_out_threshold=coerce_float(
            raw, ("closeOutThreshold", "close_out_threshold"), d.close_out_threshold
        ),
        normal_cooldown_ms=coerce_float(
            raw,
            ("cooldownMs", "normalCooldownMs", "cooldown_ms", "normal_cooldown_ms"),
            d.normal_cooldown_ms,
        ),
        close_out_cooldown_ms=coerce_float(
            raw, ("closeOutCooldownMs", "close_out_cooldown_ms"), d.close_out_cooldown_ms
        ),
        close_out_order_multiplier=coerce_float(
            raw, ("closeOutOrderMultiplier", "close_out_order_multiplier"), d.close_out_order_multiplier
        ),
        sell_threshold=coerce_float(raw, ("sellThreshold", "sell_threshold"), d.sell_threshold),
        min_imbalance_for_sell=coerce_float(
            raw, ("minImbalanceForSell", "min_imbalance_for_sell"), d.min_imbalance_for_sell
        ),
    )
