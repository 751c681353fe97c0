from __future__ import annotations

from dataclasses import dataclass

from binary_arb.models import BookTop, OrderBook


@dataclass(frozen=True)
class MarketData:
    yes: BookTop
    no: BookTop
    potential_profit: float
    is_valid: bool

    @property
    def combined_ask(self) -> float:
        return self.yes.best_ask + self.no.best_ask


def book_top(order_book: OrderBook | None, prices: BookTop | None = None) -> BookTop:
    """Top of book for one token.

    Precomputed ``prices`` win over raw levels when the host supplies both.
    Missing sides default to bid 0 / ask 1 with zero depth.
    """
    if prices is not None:
        return prices
    if order_book is None:
        return BookTop()
    bid = order_book.best_bid_level
    ask = order_book.best_ask_level
    return BookTop(
        best_bid=bid.price if bid is not None else 0.0,
        best_ask=ask.price if ask is not None else 1.0,
        bid_depth=bid.size if bid is not None else 0.0,
        ask_depth=ask.size if ask is not None else 0.0,
    )


def potential_profit(yes_ask: float, no_ask: float) -> float:
    """Per-share profit from buying both outcomes at the ask."""
    return 1.0 - (yes_ask + no_ask)


def extract_market_data(
    yes_book: OrderBook | None,
    no_book: OrderBook | None,
    yes_prices: BookTop | None = None,
    no_prices: BookTop | None = None,
) -> MarketData:
    yes = book_top(yes_book, yes_prices)
    no = book_top(no_book, no_prices)
    return MarketData(
        yes=yes,
        no=no,
        potential_profit=potential_profit(yes.best_ask, no.best_ask),
        is_valid=yes.best_bid > 0 and no.best_bid > 0,
    )
