from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from binary_arb.config import PolymarketSettings

from .base import FeedError, MarketSearchSource

LOGGER = logging.getLogger(__name__)


class PolymarketGammaClient(MarketSearchSource):
    """Read-only Gamma API access for market discovery."""

    venue = "polymarket"

    def __init__(self, settings: PolymarketSettings | None = None) -> None:
        self._settings = settings or PolymarketSettings()
        self._gamma = httpx.AsyncClient(
            base_url=self._settings.gamma_base_url.rstrip("/"),
            timeout=self._settings.timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._gamma.aclose()

    async def search_events(self, query: str) -> list[dict[str, Any]]:
        params = {
            "q": query,
            "limit_per_type": self._settings.search_limit_per_type,
            "events_status": "active",
        }
        try:
            response = await self._gamma.get("/public-search", params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise FeedError(f"Gamma search for {query!r} failed: {exc}") from exc

        events = payload.get("events") if isinstance(payload, dict) else None
        if not isinstance(events, list):
            return []
        LOGGER.debug("Polymarket: search %r returned %d events", query, len(events))
        return [event for event in events if isinstance(event, dict)]

    async def get_market(self, market_id: str) -> dict[str, Any] | None:
        try:
            response = await self._gamma.get(f"/markets/{market_id}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise FeedError(f"Gamma market {market_id} lookup failed: {exc}") from exc
        return payload if isinstance(payload, dict) else None

    @staticmethod
    def _parse_json_array(value: Any) -> list[Any]:
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return []
            if isinstance(parsed, list):
                return parsed
        return []

    @classmethod
    def token_ids(cls, market: dict[str, Any]) -> tuple[str, str] | None:
        """``(yes, no)`` CLOB token ids; Gamma lists YES first."""
        tokens = [str(value).strip() for value in cls._parse_json_array(market.get("clobTokenIds"))]
        if len(tokens) < 2 or not tokens[0] or not tokens[1]:
            return None
        return tokens[0], tokens[1]
