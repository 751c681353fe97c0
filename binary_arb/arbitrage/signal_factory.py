from __future__ import annotations

import math

from binary_arb.models import Action, Leg, StrategySignal

# Passive entries rest this far below the best bid.
PASSIVE_DISCOUNT = 0.005


def tick_decimals(tick_size: float) -> int:
    if tick_size >= 1:
        return 0
    return max(0, math.ceil(-math.log10(tick_size)))


def round_to_tick(price: float, tick_size: float) -> str:
    """Rounds half-up to the nearest tick and formats to the tick's precision.

    >>> round_to_tick(0.4567, 0.01)
    '0.46'
    >>> round_to_tick(0.47, 0.05)
    '0.45'
    """
    rounded = math.floor(price / tick_size + 0.5) * tick_size
    return f"{rounded:.{tick_decimals(tick_size)}f}"


def format_quantity(quantity: float) -> str:
    if float(quantity).is_integer():
        return str(int(quantity))
    return f"{quantity:.10g}"


def create_buy_signal(
    leg: Leg,
    best_bid: float,
    best_ask: float,
    order_size: float,
    tick_size: float,
    potential_profit: float,
    aggressive: bool,
) -> StrategySignal:
    if aggressive:
        price = round_to_tick(best_ask, tick_size)
        reason = (
            f"Arb[AGG]: BUY {leg.value} @ {price} "
            f"(ask={best_ask:.3f}, profit={potential_profit * 100:.2f}%)"
        )
    else:
        price = round_to_tick(best_bid * (1 - PASSIVE_DISCOUNT), tick_size)
        if float(price) >= best_ask:
            price = round_to_tick(best_bid - tick_size, tick_size)
        reason = (
            f"Arb: BUY {leg.value} @ {price} "
            f"(bid={best_bid:.3f}, profit={potential_profit * 100:.2f}%)"
        )
    return StrategySignal(
        action=Action.BUY,
        side=leg,
        price=price,
        quantity=format_quantity(order_size),
        reason=reason,
        confidence=0.9 if aggressive else 0.95,
    )


def create_sell_signal(
    leg: Leg,
    best_bid: float,
    quantity: float,
    tick_size: float,
    avg_entry_price: float,
) -> StrategySignal:
    price = round_to_tick(best_bid, tick_size)
    realized = (float(price) - avg_entry_price) * quantity
    reason = (
        f"Arb[TAKE]: SELL {leg.value} @ {price} "
        f"(avg={avg_entry_price:.3f}, realized=${realized:.2f})"
    )
    return StrategySignal(
        action=Action.SELL,
        side=leg,
        price=price,
        quantity=format_quantity(quantity),
        reason=reason,
        confidence=0.9,
    )
