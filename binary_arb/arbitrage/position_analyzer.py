from __future__ import annotations

from dataclasses import dataclass

from binary_arb.models import Leg, StrategyContext, coerce_number


@dataclass(frozen=True)
class PositionAnalysis:
    """Derived view of a bot's holdings for one cycle.

    ``yes_size``/``no_size`` and the matching averages include pending BUY
    orders; the ``*_filled_*`` fields cover fills only.
    """

    yes_filled_size: float
    no_filled_size: float
    yes_filled_avg: float
    no_filled_avg: float
    yes_pending_size: float
    no_pending_size: float
    yes_size: float
    no_size: float
    yes_avg: float
    no_avg: float
    total_size: float
    size_diff: float
    filled_diff: float
    imbalance: float
    is_large_imbalance: bool
    yes_is_lagging: bool
    new_diff_if_buy_yes: float
    new_diff_if_buy_no: float
    new_filled_diff_if_buy_yes: float
    new_filled_diff_if_buy_no: float

    @property
    def lagging_leg(self) -> Leg:
        return Leg.YES if self.yes_is_lagging else Leg.NO

    @property
    def leading_leg(self) -> Leg:
        return self.lagging_leg.opposite

    def size(self, leg: Leg) -> float:
        return self.yes_size if leg is Leg.YES else self.no_size

    def avg(self, leg: Leg) -> float:
        return self.yes_avg if leg is Leg.YES else self.no_avg

    def filled_size(self, leg: Leg) -> float:
        return self.yes_filled_size if leg is Leg.YES else self.no_filled_size

    def filled_avg(self, leg: Leg) -> float:
        return self.yes_filled_avg if leg is Leg.YES else self.no_filled_avg

    def new_diff_if_buy(self, leg: Leg) -> float:
        return self.new_diff_if_buy_yes if leg is Leg.YES else self.new_diff_if_buy_no

    def new_filled_diff_if_buy(self, leg: Leg) -> float:
        return self.new_filled_diff_if_buy_yes if leg is Leg.YES else self.new_filled_diff_if_buy_no


def effective_average(filled_size: float, filled_avg: float, pending_size: float, pending_avg: float) -> float:
    if pending_size <= 0:
        return filled_avg
    if filled_size <= 0:
        return pending_avg
    return (filled_size * filled_avg + pending_size * pending_avg) / (filled_size + pending_size)


def analyze_positions(
    context: StrategyContext,
    imbalance_threshold: float,
    order_size: float,
) -> PositionAnalysis:
    yes_position = context.position_for(Leg.YES)
    no_position = context.position_for(Leg.NO)

    yes_filled = coerce_number(yes_position.size) if yes_position else 0.0
    no_filled = coerce_number(no_position.size) if no_position else 0.0
    yes_filled_avg = coerce_number(yes_position.avg_entry_price) if yes_position else 0.0
    no_filled_avg = coerce_number(no_position.avg_entry_price) if no_position else 0.0

    yes_pending = coerce_number(context.yes_pending_buy)
    no_pending = coerce_number(context.no_pending_buy)
    yes_pending_avg = coerce_number(context.yes_pending_avg_price)
    no_pending_avg = coerce_number(context.no_pending_avg_price)

    yes_size = yes_filled + yes_pending
    no_size = no_filled + no_pending
    total = yes_size + no_size
    size_diff = abs(yes_size - no_size)
    filled_diff = abs(yes_filled - no_filled)
    imbalance = size_diff / max(yes_size, no_size, 1.0) if total > 0 else 0.0

    return PositionAnalysis(
        yes_filled_size=yes_filled,
        no_filled_size=no_filled,
        yes_filled_avg=yes_filled_avg,
        no_filled_avg=no_filled_avg,
        yes_pending_size=yes_pending,
        no_pending_size=no_pending,
        yes_size=yes_size,
        no_size=no_size,
        yes_avg=effective_average(yes_filled, yes_filled_avg, yes_pending, yes_pending_avg),
        no_avg=effective_average(no_filled, no_filled_avg, no_pending, no_pending_avg),
        total_size=total,
        size_diff=size_diff,
        filled_diff=filled_diff,
        imbalance=imbalance,
        is_large_imbalance=imbalance > imbalance_threshold and total > 0,
        yes_is_lagging=yes_size <= no_size,
        new_diff_if_buy_yes=abs(yes_size + order_size - no_size),
        new_diff_if_buy_no=abs(no_size + order_size - yes_size),
        new_filled_diff_if_buy_yes=abs(yes_filled + order_size - no_filled),
        new_filled_diff_if_buy_no=abs(no_filled + order_size - yes_filled),
    )
