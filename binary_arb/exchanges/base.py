from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from binary_arb.models import IVSnapshot


class FeedError(RuntimeError):
    """A venue request failed after retries or returned an error envelope."""


class IVSurfaceSource(ABC):
    venue: str

    @abstractmethod
    async def get_iv_snapshot(
        self,
        target_date: datetime | None = None,
        min_strike: float | None = None,
        max_strike: float | None = None,
    ) -> IVSnapshot:
        raise NotImplementedError

    async def get_spot_price(self) -> float | None:
        return None

    async def aclose(self) -> None:
        return None


class MarketSearchSource(ABC):
    venue: str

    @abstractmethod
    async def search_events(self, query: str) -> list[dict[str, Any]]:
        """Active events whose titles match ``query``, each with a ``markets`` list."""
        raise NotImplementedError

    @abstractmethod
    async def get_market(self, market_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
