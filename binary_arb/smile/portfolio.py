from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Tuple

from binary_arb.models import Action, Leg

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrikePosition:
    strike: float
    yes_quantity: float = 0.0
    no_quantity: float = 0.0
    avg_yes_price: float = 0.0
    avg_no_price: float = 0.0

    @property
    def notional(self) -> float:
        return self.yes_quantity * self.avg_yes_price + self.no_quantity * self.avg_no_price


@dataclass(frozen=True)
class PendingOrder:
    order_id: str
    strike: float
    action: Action
    outcome: Leg
    quantity: float
    price: float

    @property
    def notional(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class RiskMetrics:
    total_notional: float
    per_strike_notionals: Dict[float, float]
    pending_notional: float


class PortfolioManager:
    """Notional caps for one settlement date's ladder of strikes.

    Exposure counts filled notional plus resting BUY orders; SELL orders
    never add to it.
    """

    def __init__(self, max_notional_per_strike: float = 200.0, max_notional_per_expiry: float = 1000.0) -> None:
        self.max_notional_per_strike = max_notional_per_strike
        self.max_notional_per_expiry = max_notional_per_expiry
        self._positions: Dict[float, StrikePosition] = {}
        self._pending: Dict[str, PendingOrder] = {}

    def update_position(
        self,
        strike: float,
        outcome: Leg,
        action: Action,
        quantity: float,
        price: float,
    ) -> StrikePosition:
        existing = self._positions.get(strike) or StrikePosition(strike=strike)
        is_yes = outcome is Leg.YES
        current_qty = existing.yes_quantity if is_yes else existing.no_quantity

        if action is Action.BUY:
            current_avg = existing.avg_yes_price if is_yes else existing.avg_no_price
            new_qty = current_qty + quantity
            new_avg = (current_qty * current_avg + quantity * price) / new_qty if current_qty > 0 else price
            if is_yes:
                updated = replace(existing, yes_quantity=new_qty, avg_yes_price=new_avg)
            else:
                updated = replace(existing, no_quantity=new_qty, avg_no_price=new_avg)
        else:
            new_qty = max(0.0, current_qty - quantity)
            if is_yes:
                updated = replace(existing, yes_quantity=new_qty)
            else:
                updated = replace(existing, no_quantity=new_qty)

        self._positions[strike] = updated
        return updated

    def add_pending_order(self, order: PendingOrder) -> None:
        self._pending[order.order_id] = order

    def remove_pending_order(self, order_id: str) -> bool:
        return self._pending.pop(order_id, None) is not None

    def get_pending_order(self, order_id: str) -> PendingOrder | None:
        return self._pending.get(order_id)

    def get_position(self, strike: float) -> StrikePosition | None:
        return self._positions.get(strike)

    def get_all_positions(self) -> List[StrikePosition]:
        return list(self._positions.values())

    def pending_notional_at_strike(self, strike: float) -> float:
        return sum(
            order.notional
            for order in self._pending.values()
            if order.strike == strike and order.action is Action.BUY
        )

    def get_risk_metrics(self) -> RiskMetrics:
        per_strike = {strike: position.notional for strike, position in self._positions.items()}
        pending = sum(order.notional for order in self._pending.values() if order.action is Action.BUY)
        return RiskMetrics(
            total_notional=sum(per_strike.values()),
            per_strike_notionals=per_strike,
            pending_notional=pending,
        )

    def check_trade(self, strike: float, quantity: float, price: float) -> Tuple[bool, str]:
        trade_notional = quantity * price

        position = self._positions.get(strike)
        at_strike = (position.notional if position else 0.0) + self.pending_notional_at_strike(strike)
        if at_strike + trade_notional > self.max_notional_per_strike:
            return False, (
                f"strike {strike:g} notional {at_strike + trade_notional:.2f} "
                f"exceeds cap {self.max_notional_per_strike:.2f}"
            )

        metrics = self.get_risk_metrics()
        total = metrics.total_notional + metrics.pending_notional + trade_notional
        if total > self.max_notional_per_expiry:
            return False, f"expiry notional {total:.2f} exceeds cap {self.max_notional_per_expiry:.2f}"

        return True, "ok"

    def can_trade(self, strike: float, quantity: float, price: float) -> bool:
        allowed, reason = self.check_trade(strike, quantity, price)
        if not allowed:
            LOGGER.info("PortfolioManager: trade rejected: %s", reason)
        return allowed

    def reset(self) -> None:
        self._positions.clear()
        self._pending.clear()
