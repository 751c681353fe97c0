from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Generic, Iterable, List, Mapping, TypeVar

import httpx

from binary_arb.config import DeribitSettings
from binary_arb.models import ExpiryData, IVSnapshot, StrikeIV
from binary_arb.smile.pricing import SECONDS_PER_YEAR

from .base import FeedError, IVSurfaceSource

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class _CacheEntry(Generic[T]):
    data: T
    timestamp: float


def _pick_iv(ticker: Mapping[str, Any]) -> float:
    for key in ("bid_iv", "ask_iv", "mark_iv"):
        value = ticker.get(key)
        if value is not None:
            return float(value)
    return 0.0


def relevant_expiries(instruments: Iterable[Mapping[str, Any]], target_ms: float, count: int = 2) -> List[int]:
    """The first ``count`` distinct expiry timestamps (ms) strictly after ``target_ms``."""
    timestamps = sorted({int(i["expiration_timestamp"]) for i in instruments})
    return [ts for ts in timestamps if ts > target_ms][:count]


def build_iv_snapshot(
    instruments: Iterable[Mapping[str, Any]],
    tickers: Mapping[str, Mapping[str, Any]],
    now: float | None = None,
) -> IVSnapshot:
    """Assembles a surface from Deribit instrument rows and their tickers.

    Instruments without a ticker are skipped. The underlying comes from the
    first ticker that reports one. Strikes are sorted within each expiry and
    expiries by time. IVs stay in percent.
    """
    current = time.time() if now is None else now
    underlying = 0.0
    by_expiry: Dict[int, Dict[float, Dict[str, float]]] = {}

    for instrument in instruments:
        ticker = tickers.get(instrument["instrument_name"])
        if ticker is None:
            continue
        if underlying == 0.0 and ticker.get("underlying_price"):
            underlying = float(ticker["underlying_price"])

        expiry_ms = int(instrument["expiration_timestamp"])
        strike = float(instrument["strike"])
        row = by_expiry.setdefault(expiry_ms, {}).setdefault(
            strike,
            {"call_iv": 0.0, "put_iv": 0.0, "call_mark_iv": 0.0, "put_mark_iv": 0.0},
        )
        mark = float(ticker.get("mark_iv") or 0.0)
        if str(instrument.get("option_type", "")).lower() == "call":
            row["call_iv"] = _pick_iv(ticker)
            row["call_mark_iv"] = mark
        else:
            row["put_iv"] = _pick_iv(ticker)
            row["put_mark_iv"] = mark

    expiries = []
    for expiry_ms in sorted(by_expiry):
        expiry_s = expiry_ms / 1000.0
        strikes = tuple(
            StrikeIV(strike=strike, **values) for strike, values in sorted(by_expiry[expiry_ms].items())
        )
        expiries.append(
            ExpiryData(
                expiry_date=datetime.fromtimestamp(expiry_s, tz=timezone.utc).strftime("%Y-%m-%d"),
                expiry_timestamp=expiry_s,
                time_to_expiry_years=max(0.0, (expiry_s - current) / SECONDS_PER_YEAR),
                strikes=strikes,
            )
        )

    return IVSnapshot(underlying_price=underlying, timestamp=current, expiries=tuple(expiries))


class DeribitClient(IVSurfaceSource):
    """Public Deribit option data: instruments, tickers and the BTC index.

    Responses are cached for ``cache_ttl_seconds``. Each request is retried
    with exponential backoff; when a refresh fails and an older value is
    cached, the stale value is served instead.
    """

    venue = "deribit"

    def __init__(self, settings: DeribitSettings | None = None) -> None:
        self._settings = settings or DeribitSettings()
        self._client = httpx.AsyncClient(
            base_url=self._settings.api_base_url.rstrip("/"),
            timeout=self._settings.timeout_seconds,
        )
        self._instruments_cache: _CacheEntry[List[Dict[str, Any]]] | None = None
        self._ticker_cache: Dict[str, _CacheEntry[Dict[str, Any]]] = {}
        # Only unfiltered snapshots are cached; None keys the "now" target.
        self._snapshot_cache: _CacheEntry[IVSnapshot] | None = None
        self._snapshot_key: int | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    def _is_fresh(self, entry: _CacheEntry[Any] | None) -> bool:
        return entry is not None and time.time() - entry.timestamp < self._settings.cache_ttl_seconds

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        last_error: Exception | None = None
        for attempt in range(self._settings.max_retries):
            try:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
                payload = response.json()
                if payload.get("error"):
                    raise FeedError(f"Deribit API error: {payload['error'].get('message')}")
                return payload["result"]
            except (httpx.HTTPError, FeedError, KeyError, ValueError) as exc:
                last_error = exc
                if attempt < self._settings.max_retries - 1:
                    delay = self._settings.initial_retry_delay_seconds * (2 ** attempt)
                    LOGGER.warning(
                        "Deribit: %s failed (attempt %d), retrying in %.1fs: %s",
                        path,
                        attempt + 1,
                        delay,
                        exc,
                    )
                    await asyncio.sleep(delay)
        raise FeedError(f"Deribit request {path} failed after {self._settings.max_retries} attempts") from last_error

    async def get_instruments(self) -> List[Dict[str, Any]]:
        if self._is_fresh(self._instruments_cache):
            return self._instruments_cache.data
        try:
            instruments = await self._get(
                "/get_instruments",
                {"currency": self._settings.currency, "kind": "option"},
            )
        except FeedError:
            if self._instruments_cache is not None:
                LOGGER.warning("Deribit: instruments refresh failed, serving stale cache")
                return self._instruments_cache.data
            raise
        self._instruments_cache = _CacheEntry(data=instruments, timestamp=time.time())
        LOGGER.info("Deribit: fetched %d %s option instruments", len(instruments), self._settings.currency)
        return instruments

    async def get_ticker(self, instrument_name: str) -> Dict[str, Any]:
        cached = self._ticker_cache.get(instrument_name)
        if self._is_fresh(cached):
            return cached.data
        ticker = await self._get("/ticker", {"instrument_name": instrument_name})
        self._ticker_cache[instrument_name] = _CacheEntry(data=ticker, timestamp=time.time())
        return ticker

    async def get_bulk_tickers(self, instrument_names: List[str]) -> Dict[str, Dict[str, Any]]:
        results: Dict[str, Dict[str, Any]] = {}
        missing: List[str] = []
        for name in instrument_names:
            cached = self._ticker_cache.get(name)
            if self._is_fresh(cached):
                results[name] = cached.data
            else:
                missing.append(name)

        batch_size = self._settings.ticker_batch_size
        for start in range(0, len(missing), batch_size):
            batch = missing[start : start + batch_size]
            fetched = await asyncio.gather(*(self.get_ticker(name) for name in batch), return_exceptions=True)
            for name, ticker in zip(batch, fetched):
                if isinstance(ticker, Exception):
                    LOGGER.warning("Deribit: ticker %s failed: %s", name, ticker)
                    continue
                results[name] = ticker

        LOGGER.debug("Deribit: %d tickers ready (%d fetched)", len(results), len(missing))
        return results

    async def get_iv_snapshot(
        self,
        target_date: datetime | None = None,
        min_strike: float | None = None,
        max_strike: float | None = None,
    ) -> IVSnapshot:
        target = target_date or datetime.now(timezone.utc)
        target_ms = target.timestamp() * 1000.0
        cacheable = min_strike is None and max_strike is None
        key = None if target_date is None else int(target_ms // 1000)
        cached = self._snapshot_cache if cacheable and self._snapshot_key == key else None
        if self._is_fresh(cached):
            return cached.data

        try:
            snapshot = await self._build_snapshot(target_ms, min_strike, max_strike)
        except FeedError as exc:
            if cached is not None:
                LOGGER.warning("Deribit: IV snapshot refresh failed, serving stale cache: %s", exc)
                return cached.data
            raise

        if cacheable:
            self._snapshot_cache = _CacheEntry(data=snapshot, timestamp=time.time())
            self._snapshot_key = key
        LOGGER.info(
            "Deribit: IV snapshot underlying=%.2f expiries=%d",
            snapshot.underlying_price,
            len(snapshot.expiries),
        )
        return snapshot

    async def _build_snapshot(self, target_ms: float, min_strike: float | None, max_strike: float | None) -> IVSnapshot:
        instruments = [i for i in await self.get_instruments() if i.get("is_active", True)]
        if min_strike is not None:
            instruments = [i for i in instruments if float(i["strike"]) >= min_strike]
        if max_strike is not None:
            instruments = [i for i in instruments if float(i["strike"]) <= max_strike]

        expiries = relevant_expiries(instruments, target_ms, self._settings.expiries_after_target)
        if not expiries:
            raise FeedError("No relevant expiries found after target date")

        wanted = set(expiries)
        relevant = [i for i in instruments if int(i["expiration_timestamp"]) in wanted]
        tickers = await self.get_bulk_tickers([i["instrument_name"] for i in relevant])
        snapshot = build_iv_snapshot(relevant, tickers)
        if not snapshot.is_valid:
            raise FeedError("IV snapshot has no expiries with ticker data")
        return snapshot

    async def get_spot_price(self) -> float:
        result = await self._get("/get_index_price", {"index_name": self._settings.index_name})
        return float(result["index_price"])

    def clear_cache(self) -> None:
        self._instruments_cache = None
        self._ticker_cache.clear()
        self._snapshot_cache = None
        self._snapshot_key = None
