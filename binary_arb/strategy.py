from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from binary_arb.models import BotEvent, EventKind, StrategyContext, StrategySignal


@dataclass(frozen=True)
class RequiredAsset:
    config_key: str
    label: str
    subscriptions: Tuple[str, ...] = ("orderBook", "price", "trades")


@dataclass(frozen=True)
class StaleOrderRules:
    max_price_distance: float = 0.20
    per_outcome: bool = True


@dataclass(frozen=True)
class ExecutorMetadata:
    """What the hosting engine must subscribe to before running an executor."""

    required_assets: Tuple[RequiredAsset, ...] = ()
    position_handler: str = "single"
    stale_order_rules: StaleOrderRules | None = None
    fillability_threshold: float | None = None


class StrategyExecutor(ABC):
    """One strategy, many bots.

    Executors keep per-bot state keyed by bot id and publish diagnostics as
    ``BotEvent`` items on ``events`` for whoever drains the queue. The queue
    holds at most ``max_events`` items and drops the oldest when full.
    """

    slug: str = ""
    metadata: ExecutorMetadata = ExecutorMetadata()
    max_events: int = 1000

    def __init__(self) -> None:
        self.events: asyncio.Queue[BotEvent] = asyncio.Queue(maxsize=self.max_events)

    @abstractmethod
    async def execute(self, context: StrategyContext) -> StrategySignal | None:
        raise NotImplementedError

    def cleanup(self, bot_id: str) -> None:
        """Drops all per-bot state. Safe on unknown ids."""

    def emit(self, bot_id: str, kind: EventKind, message: str, **data: Any) -> None:
        payload: Dict[str, Any] = dict(data)
        if self.events.full():
            # Oldest diagnostics go first when nobody is draining.
            self.events.get_nowait()
        self.events.put_nowait(BotEvent(bot_id=bot_id, kind=kind, message=message, data=payload))

    def drain_events(self) -> list[BotEvent]:
        drained: list[BotEvent] = []
        while not self.events.empty():
            drained.append(self.events.get_nowait())
        return drained

