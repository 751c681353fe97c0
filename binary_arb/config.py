from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping

from dotenv import load_dotenv


class ConfigError(ValueError):
    """Raised when a strategy configuration value cannot be used."""


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


def _as_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _as_csv(value: str | None) -> List[str]:
    if value is None or not value.strip():
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


# ----------------------------------------------------------------------
# Loosely typed strategy maps
# ----------------------------------------------------------------------
#
# Bot configuration arrives from the hosting engine as a JSON-ish map:
# numbers may be numbers or numeric strings, keys may be camelCase or
# snake_case. None and empty strings fall back to the default; an explicit
# zero is kept.


def _lookup(raw: Mapping[str, Any] | None, keys: Iterable[str]) -> Any:
    if not raw:
        return None
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _keys(key: str | Iterable[str]) -> List[str]:
    return [key] if isinstance(key, str) else list(key)


def coerce_float(raw: Mapping[str, Any] | None, key: str | Iterable[str], default: float) -> float:
    keys = _keys(key)
    value = _lookup(raw, keys)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{keys[0]}: expected a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{keys[0]}: expected a number, got {value!r}") from exc


def coerce_str(raw: Mapping[str, Any] | None, key: str | Iterable[str], default: str | None = None) -> str | None:
    value = _lookup(raw, _keys(key))
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def coerce_str_list(raw: Mapping[str, Any] | None, key: str | Iterable[str]) -> List[str]:
    value = _lookup(raw, _keys(key))
    if value is None:
        return []
    if isinstance(value, str):
        return _as_csv(value)
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ConfigError(f"{_keys(key)[0]}: expected a list, got {value!r}")


# ----------------------------------------------------------------------
# Process settings
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    enabled_tags: tuple[str, ...] = ()
    disabled_tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeribitSettings:
    api_base_url: str = "https://www.deribit.com/api/v2/public"
    currency: str = "BTC"
    index_name: str = "btc_usd"
    timeout_seconds: float = 10.0
    cache_ttl_seconds: float = 60.0
    max_retries: int = 3
    initial_retry_delay_seconds: float = 1.0
    ticker_batch_size: int = 20
    expiries_after_target: int = 2


@dataclass(frozen=True)
class PolymarketSettings:
    gamma_base_url: str = "https://gamma-api.polymarket.com"
    timeout_seconds: float = 10.0
    search_limit_per_type: int = 50
    discovery_cache_ttl_seconds: float = 300.0


@dataclass(frozen=True)
class AppSettings:
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    deribit: DeribitSettings = field(default_factory=DeribitSettings)
    polymarket: PolymarketSettings = field(default_factory=PolymarketSettings)
    feed_timeout_seconds: float = 15.0


def load_settings() -> AppSettings:
    load_dotenv(override=False)

    return AppSettings(
        logging=LoggingSettings(
            level=os.getenv("ARB_LOG_LEVEL", "INFO"),
            enabled_tags=tuple(_as_csv(os.getenv("ARB_LOG_ENABLED"))),
            disabled_tags=tuple(_as_csv(os.getenv("ARB_LOG_DISABLED"))),
        ),
        deribit=DeribitSettings(
            api_base_url=os.getenv("DERIBIT_API_BASE_URL", "https://www.deribit.com/api/v2/public"),
            currency=os.getenv("DERIBIT_CURRENCY", "BTC").upper(),
            index_name=os.getenv("DERIBIT_INDEX_NAME", "btc_usd"),
            timeout_seconds=_as_float(os.getenv("DERIBIT_TIMEOUT_SECONDS"), 10.0),
            cache_ttl_seconds=_as_float(os.getenv("DERIBIT_CACHE_TTL_SECONDS"), 60.0),
            max_retries=max(1, _as_int(os.getenv("DERIBIT_MAX_RETRIES"), 3)),
            initial_retry_delay_seconds=_as_float(os.getenv("DERIBIT_RETRY_DELAY_SECONDS"), 1.0),
            ticker_batch_size=max(1, _as_int(os.getenv("DERIBIT_TICKER_BATCH_SIZE"), 20)),
            expiries_after_target=max(1, _as_int(os.getenv("DERIBIT_EXPIRIES_AFTER_TARGET"), 2)),
        ),
        polymarket=PolymarketSettings(
            gamma_base_url=os.getenv("POLYMARKET_GAMMA_BASE_URL", "https://gamma-api.polymarket.com"),
            timeout_seconds=_as_float(os.getenv("POLYMARKET_TIMEOUT_SECONDS"), 10.0),
            search_limit_per_type=_as_int(os.getenv("POLYMARKET_SEARCH_LIMIT"), 50),
            discovery_cache_ttl_seconds=_as_float(os.getenv("POLYMARKET_DISCOVERY_CACHE_TTL_SECONDS"), 300.0),
        ),
        feed_timeout_seconds=_as_float(os.getenv("ARB_FEED_TIMEOUT_SECONDS"), 15.0),
    )
