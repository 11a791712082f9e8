# PATH: tests/unit/test_config.py
"""
Unit tests for configuration loading.
"""

from pathlib import Path

import pytest

from config import (
    CONFIG_DIR,
    DEFAULT_CONFIG_PATH,
    ArbitrageSettings,
    load_arbitrage_config,
    load_yaml,
)
from core.constants import QuoteFallback
from core.exceptions import InvalidConfigValue, SlippageTooHigh

GWEI = 10**9


class TestShippedConfig:
    """The arbitrage.yaml bundled with the package."""

    def test_config_dir_exists(self):
        assert CONFIG_DIR.exists()
        assert DEFAULT_CONFIG_PATH.exists()

    def test_load_yaml(self):
        data = load_yaml("arbitrage.yaml")
        assert "guardrails" in data
        assert "sandbox" in data

    def test_load_yaml_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_yaml("does_not_exist.yaml")

    def test_guardrails(self):
        settings = load_arbitrage_config()

        assert settings.guardrails.min_profit_threshold == 0
        assert settings.guardrails.slippage_tolerance_bps == 50
        assert settings.guardrails.max_gas_price == 100 * GWEI
        assert settings.guardrails.active is True
        assert settings.quote_fallback == QuoteFallback.ACCEPT_ANY_NONZERO
        assert settings.price_staleness_seconds == 3600.0

    def test_tokens_and_fees(self):
        settings = load_arbitrage_config()

        assert settings.token("USDC").decimals == 6
        assert settings.address_of("WETH") == "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
        assert settings.address_of("0xdead") == "0xdead"
        assert settings.pool_fees == [("WETH", "USDC", 500)]
        assert settings.quoter_address == "0x61fFE014bA17989E743c5F6cB21bF9697530B21e"
        with pytest.raises(KeyError):
            settings.token("DOGE")

    def test_sandbox_amounts_in_raw_units(self):
        sandbox = load_arbitrage_config().sandbox

        assert sandbox.gas_price_wei == 2 * GWEI
        assert sandbox.lender_liquidity == {"WETH": 1000 * 10**18}
        assert sandbox.lender_loan_gas == 50_000

        pool = sandbox.fee_tier_pools[0]
        assert (pool.ref_a, pool.ref_b, pool.fee) == (10**18, 3_051_525_763, 500)

        path_pool = sandbox.path_pools[0]
        assert path_pool.ref_a == 3_050 * 10**6
        assert path_pool.ref_b == 1_018_947_368_421_052_632
        assert sandbox.prices == {"WETH": 3050 * 10**8, "USDC": 10**8}


class TestCustomConfig:

    def _write(self, tmp_path: Path, body: str) -> Path:
        path = tmp_path / "arbitrage.yaml"
        path.write_text(body, encoding="utf-8")
        return path

    def test_missing_file_yields_defaults(self, tmp_path):
        settings = load_arbitrage_config(tmp_path / "nope.yaml")
        assert settings == ArbitrageSettings()

    def test_empty_file_yields_defaults(self, tmp_path):
        settings = load_arbitrage_config(self._write(tmp_path, ""))
        assert settings.guardrails.slippage_tolerance_bps == 50
        assert settings.sandbox.fee_tier_pools == []

    def test_overrides(self, tmp_path):
        path = self._write(tmp_path, (
            "guardrails:\n"
            "  min_profit_threshold: 1000\n"
            "  max_gas_price_gwei: '0.5'\n"
            "  active: false\n"
            "execution:\n"
            "  quote_fallback: REJECT\n"
        ))

        settings = load_arbitrage_config(path)

        assert settings.guardrails.min_profit_threshold == 1000
        assert settings.guardrails.max_gas_price == GWEI // 2
        assert settings.guardrails.active is False
        assert settings.quote_fallback == QuoteFallback.REJECT
        assert settings.price_staleness_seconds is None

    def test_slippage_above_maximum_rejected(self, tmp_path):
        path = self._write(tmp_path, "guardrails:\n  slippage_tolerance_bps: 1001\n")
        with pytest.raises(SlippageTooHigh):
            load_arbitrage_config(path)

    def test_negative_threshold_rejected(self, tmp_path):
        path = self._write(tmp_path, "guardrails:\n  min_profit_threshold: -1\n")
        with pytest.raises(InvalidConfigValue):
            load_arbitrage_config(path)

    def test_unknown_fallback_rejected(self, tmp_path):
        path = self._write(tmp_path, "execution:\n  quote_fallback: YOLO\n")
        with pytest.raises(ValueError):
            load_arbitrage_config(path)
