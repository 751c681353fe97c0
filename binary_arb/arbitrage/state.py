from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from binary_arb.bot_store import BotStateStore
from binary_arb.models import Leg


def now_ms() -> float:
    return time.time() * 1000.0


@dataclass
class LegCooldowns:
    last_yes_ms: float = 0.0
    last_no_ms: float = 0.0
    last_leg: Leg | None = None

    def last(self, leg: Leg) -> float:
        return self.last_yes_ms if leg is Leg.YES else self.last_no_ms


class ArbitrageState:
    """Cooldown timestamps and round-robin memory, keyed by bot id.

    Entries appear on first use and are removed only by ``cleanup``.
    """

    def __init__(self) -> None:
        self._bots: BotStateStore[LegCooldowns] = BotStateStore(lambda _bot_id: LegCooldowns())

    def cooldowns(self, bot_id: str) -> LegCooldowns:
        return self._bots.get(bot_id)

    def lock(self, bot_id: str) -> asyncio.Lock:
        return self._bots.lock(bot_id)

    def record_order(self, bot_id: str, leg: Leg, timestamp_ms: float | None = None) -> None:
        ts = now_ms() if timestamp_ms is None else timestamp_ms
        entry = self.cooldowns(bot_id)
        if leg is Leg.YES:
            entry.last_yes_ms = ts
        else:
            entry.last_no_ms = ts
        entry.last_leg = leg

    def is_on_cooldown(
        self,
        bot_id: str,
        leg: Leg,
        cooldown_ms: float,
        now: float | None = None,
    ) -> bool:
        current = now_ms() if now is None else now
        return current - self.cooldowns(bot_id).last(leg) < cooldown_ms

    def are_both_on_cooldown(self, bot_id: str, cooldown_ms: float, now: float | None = None) -> bool:
        current = now_ms() if now is None else now
        return self.is_on_cooldown(bot_id, Leg.YES, cooldown_ms, current) and self.is_on_cooldown(
            bot_id, Leg.NO, cooldown_ms, current
        )

    def next_leg_round_robin(self, bot_id: str) -> Leg:
        # A bot that never traded is treated as having last bought NO.
        return (self.last_leg(bot_id) or Leg.NO).opposite

    def last_leg(self, bot_id: str) -> Leg | None:
        if bot_id not in self._bots:
            return None
        return self._bots.get(bot_id).last_leg

    def cleanup(self, bot_id: str) -> None:
        self._bots.discard(bot_id)

    def __contains__(self, bot_id: object) -> bool:
        return bot_id in self._bots
