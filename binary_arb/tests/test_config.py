from __future__ import annotations

import pytest

from binary_arb.arbitrage.config import ArbitrageConfig, parse_arbitrage_config
from binary_arb.config import (
    ConfigError,
    coerce_float,
    coerce_str,
    coerce_str_list,
    load_settings,
)

_ENV_KEYS = (
    "ARB_LOG_LEVEL",
    "ARB_LOG_ENABLED",
    "ARB_LOG_DISABLED",
    "DERIBIT_CURRENCY",
    "DERIBIT_CACHE_TTL_SECONDS",
    "DERIBIT_MAX_RETRIES",
    "POLYMARKET_SEARCH_LIMIT",
    "ARB_FEED_TIMEOUT_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> pytest.MonkeyPatch:
    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestLoadSettings:
    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = load_settings()
        assert settings.logging.level == "INFO"
        assert settings.logging.enabled_tags == ()
        assert settings.deribit.currency == "BTC"
        assert settings.deribit.cache_ttl_seconds == 60.0
        assert settings.deribit.max_retries == 3
        assert settings.polymarket.search_limit_per_type == 50
        assert settings.feed_timeout_seconds == 15.0

    def test_env_overrides(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ARB_LOG_LEVEL", "DEBUG")
        clean_env.setenv("ARB_LOG_ENABLED", "pricing, deribit")
        clean_env.setenv("DERIBIT_CURRENCY", "eth")
        clean_env.setenv("DERIBIT_CACHE_TTL_SECONDS", "5")
        clean_env.setenv("DERIBIT_MAX_RETRIES", "0")
        clean_env.setenv("ARB_FEED_TIMEOUT_SECONDS", "2.5")

        settings = load_settings()
        assert settings.logging.level == "DEBUG"
        assert settings.logging.enabled_tags == ("pricing", "deribit")
        assert settings.deribit.currency == "ETH"
        assert settings.deribit.cache_ttl_seconds == 5.0
        assert settings.deribit.max_retries == 1
        assert settings.feed_timeout_seconds == 2.5


class TestCoercion:
    def test_missing_and_empty_use_default(self) -> None:
        assert coerce_float(None, "orderSize", 10.0) == 10.0
        assert coerce_float({}, "orderSize", 10.0) == 10.0
        assert coerce_float({"orderSize": ""}, "orderSize", 10.0) == 10.0
        assert coerce_float({"orderSize": None}, "orderSize", 10.0) == 10.0

    def test_zero_is_kept(self) -> None:
        assert coerce_float({"orderSize": 0}, "orderSize", 10.0) == 0.0
        assert coerce_float({"orderSize": "0"}, "orderSize", 10.0) == 0.0

    def test_numeric_strings_parse(self) -> None:
        assert coerce_float({"orderSize": "12.5"}, "orderSize", 10.0) == 12.5

    def test_first_present_alias_wins(self) -> None:
        raw = {"order_size": 4, "orderSize": None}
        assert coerce_float(raw, ("orderSize", "order_size"), 10.0) == 4.0

    @pytest.mark.parametrize("value", ["abc", True, [1], {"a": 1}])
    def test_garbage_raises(self, value) -> None:
        with pytest.raises(ConfigError):
            coerce_float({"orderSize": value}, "orderSize", 10.0)

    def test_strings_and_lists(self) -> None:
        assert coerce_str({"mode": "  manual "}, "mode") == "manual"
        assert coerce_str({"mode": "  "}, "mode", "auto-scan") == "auto-scan"
        assert coerce_str_list({"ids": "a, b,,c"}, "ids") == ["a", "b", "c"]
        assert coerce_str_list({"ids": ["a", 2]}, "ids") == ["a", "2"]
        assert coerce_str_list({}, "ids") == []
        with pytest.raises(ConfigError):
            coerce_str_list({"ids": 5}, "ids")


class TestArbitrageConfig:
    def test_defaults(self) -> None:
        config = parse_arbitrage_config(None)
        assert config == ArbitrageConfig()
        assert config.order_size == 10
        assert config.max_position_per_leg == 100
        assert config.profit_threshold == 0.98
        assert config.cooldown_ms(False) == 3000
        assert config.cooldown_ms(True) == 500

    def test_camel_case_strings(self) -> None:
        config = parse_arbitrage_config(
            {
                "orderSize": "25",
                "maxPosition": "200",
                "profitThreshold": "0.97",
                "cooldownMs": 1000,
                "closeOutOrderMultiplier": "2",
            }
        )
        assert config.order_size == 25
        assert config.max_position_per_leg == 200
        assert config.profit_threshold == 0.97
        assert config.normal_cooldown_ms == 1000
        assert config.close_out_order_multiplier == 2

    def test_snake_case_keys(self) -> None:
        config = parse_arbitrage_config({"max_position_per_leg": 50, "sell_threshold": 0.8})
        assert config.max_position_per_leg == 50
        assert config.sell_threshold == 0.8

    def test_non_numeric_raises(self) -> None:
        with pytest.raises(ConfigError):
            parse_arbitrage_config({"profitThreshold": "high"})
