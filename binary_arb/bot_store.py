from __future__ import annotations

import asyncio
from typing import Callable, Dict, Generic, Iterator, TypeVar

T = TypeVar("T")


class BotStateStore(Generic[T]):
    """Per-bot state keyed by bot id.

    Entries are created on first access through ``factory`` and live until
    ``discard`` is called. Each bot id gets its own ``asyncio.Lock`` so one
    slow bot never blocks another.
    """

    def __init__(self, factory: Callable[[str], T]) -> None:
        self._factory = factory
        self._states: Dict[str, T] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, bot_id: str) -> T:
        state = self._states.get(bot_id)
        if state is None:
            state = self._factory(bot_id)
            self._states[bot_id] = state
        return state

    def lock(self, bot_id: str) -> asyncio.Lock:
        return self._locks.setdefault(bot_id, asyncio.Lock())

    def discard(self, bot_id: str) -> None:
        self._states.pop(bot_id, None)
        self._locks.pop(bot_id, None)

    def __contains__(self, bot_id: object) -> bool:
        return bot_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._states))
