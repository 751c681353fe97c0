from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Tuple


class Leg(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def opposite(self) -> "Leg":
        return Leg.NO if self is Leg.YES else Leg.YES


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Position:
    """Filled holdings for one outcome of a binary market.

    Numeric fields may arrive as strings from the hosting engine; consumers
    coerce them before doing arithmetic.
    """

    outcome: Leg
    size: float | str = 0.0
    avg_entry_price: float | str = 0.0
    realized_pnl: float | str = 0.0
    market_id: str = ""
    asset_id: str = ""


@dataclass(frozen=True)
class BookLevel:
    price: float
    size: float


@dataclass(frozen=True)
class OrderBook:
    bids: Tuple[BookLevel, ...] = ()
    asks: Tuple[BookLevel, ...] = ()

    @property
    def best_bid_level(self) -> BookLevel | None:
        if not self.bids:
            return None
        return max(self.bids, key=lambda level: level.price)

    @property
    def best_ask_level(self) -> BookLevel | None:
        if not self.asks:
            return None
        return min(self.asks, key=lambda level: level.price)


@dataclass(frozen=True)
class BookTop:
    """Top of book for one outcome token.

    Defaults follow the convention used across the core: an empty bid side
    reads as 0 and an empty ask side as 1.
    """

    best_bid: float = 0.0
    best_ask: float = 1.0
    bid_depth: float = 0.0
    ask_depth: float = 0.0


@dataclass(frozen=True)
class MarketBooks:
    yes: OrderBook
    no: OrderBook


@dataclass(frozen=True)
class BotConfig:
    id: str
    name: str = ""
    strategy_slug: str = ""
    market_id: str = ""
    strategy_config: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StrategyContext:
    """Read-only per-cycle snapshot handed to an executor."""

    bot: BotConfig
    positions: Tuple[Position, ...] = ()
    yes_pending_buy: float | str = 0.0
    no_pending_buy: float | str = 0.0
    yes_pending_avg_price: float | str = 0.0
    no_pending_avg_price: float | str = 0.0
    order_book: OrderBook | None = None
    no_order_book: OrderBook | None = None
    yes_prices: BookTop | None = None
    no_prices: BookTop | None = None
    tick_size: float | str | None = None
    bot_start_time: datetime | None = None
    market_end_time: datetime | None = None
    time_progress: float | None = None
    market_books: Mapping[str, MarketBooks] = field(default_factory=dict)

    @property
    def bot_id(self) -> str:
        return self.bot.id

    def position_for(self, leg: Leg) -> Position | None:
        for position in self.positions:
            if position.outcome == leg:
                return position
        return None


@dataclass(frozen=True)
class StrategySignal:
    action: Action
    side: Leg
    price: str
    quantity: str
    reason: str
    confidence: float
    market_id: str | None = None
    token_id: str | None = None
    client_order_id: str | None = None


# ----------------------------------------------------------------------
# Implied volatility surface
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class StrikeIV:
    """IV quotes for one strike, in percent (55.0 means 55%)."""

    strike: float
    call_iv: float
    put_iv: float
    call_mark_iv: float
    put_mark_iv: float


@dataclass(frozen=True)
class ExpiryData:
    expiry_date: str
    expiry_timestamp: float
    time_to_expiry_years: float
    strikes: Tuple[StrikeIV, ...]


@dataclass(frozen=True)
class IVSnapshot:
    underlying_price: float
    timestamp: float
    expiries: Tuple[ExpiryData, ...]

    @property
    def is_valid(self) -> bool:
        return len(self.expiries) > 0

    def age_seconds(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.timestamp


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class DiscoveredMarket:
    market_id: str
    question: str
    strike: float
    settlement_time: datetime | None
    yes_token_id: str
    no_token_id: str


# ----------------------------------------------------------------------
# Outbound diagnostics
# ----------------------------------------------------------------------


class EventKind(str, Enum):
    SIGNAL = "signal"
    SKIP = "skip"
    BLOCKED = "blocked"
    RISK_REJECTED = "risk_rejected"
    REFRESH_FAILED = "refresh_failed"
    CLOSE_OUT = "close_out"


@dataclass(frozen=True)
class BotEvent:
    bot_id: str
    kind: EventKind
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


def coerce_number(value: Any, default: float = 0.0) -> float:
    """Best-effort numeric read for loosely typed position/book fields."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default

