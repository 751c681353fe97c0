from __future__ import annotations

import pytest

from binary_arb.binary_math import book_top, extract_market_data, potential_profit
from binary_arb.models import BookLevel, BookTop, OrderBook


def test_book_top_picks_best_levels_regardless_of_order() -> None:
    book = OrderBook(
        bids=(BookLevel(0.40, 5), BookLevel(0.45, 20), BookLevel(0.42, 7)),
        asks=(BookLevel(0.50, 3), BookLevel(0.47, 11), BookLevel(0.49, 9)),
    )
    top = book_top(book)
    assert top == BookTop(best_bid=0.45, best_ask=0.47, bid_depth=20, ask_depth=11)


def test_book_top_defaults_for_missing_sides() -> None:
    assert book_top(None) == BookTop(best_bid=0.0, best_ask=1.0)
    assert book_top(OrderBook(bids=(BookLevel(0.3, 1),))).best_ask == 1.0


def test_precomputed_prices_win() -> None:
    prices = BookTop(best_bid=0.60, best_ask=0.62, bid_depth=1, ask_depth=1)
    book = OrderBook(bids=(BookLevel(0.10, 1),), asks=(BookLevel(0.90, 1),))
    assert book_top(book, prices) is prices


def test_potential_profit() -> None:
    assert potential_profit(0.47, 0.50) == pytest.approx(0.03)
    assert potential_profit(0.55, 0.50) < 0


def test_market_data_requires_both_bids() -> None:
    yes = OrderBook(bids=(BookLevel(0.45, 10),), asks=(BookLevel(0.47, 10),))
    no = OrderBook(asks=(BookLevel(0.52, 10),))

    data = extract_market_data(yes, no)
    assert not data.is_valid
    assert data.no.best_bid == 0.0
    assert data.combined_ask == pytest.approx(0.99)

    no = OrderBook(bids=(BookLevel(0.50, 10),), asks=(BookLevel(0.52, 10),))
    data = extract_market_data(yes, no)
    assert data.is_valid
    assert data.potential_profit == pytest.approx(0.01)
