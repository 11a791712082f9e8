"""
tests/unit/test_math.py - Tests for core/math.py

Critical tests for:
- Slippage and fee derating (integer, rounds down)
- Decimal rescaling
- Wei/decimal conversions and display
"""

import pytest
from decimal import Decimal

from core.math import (
    apply_fee,
    apply_slippage,
    bps_to_decimal,
    denormalize_from_decimals,
    format_units,
    normalize_to_decimals,
    rescale,
    safe_decimal,
)


class TestSafeDecimal:
    """Test Decimal coercion."""

    def test_accepts_str_and_int(self):
        assert safe_decimal("123.456") == Decimal("123.456")
        assert safe_decimal(100) == Decimal("100")

    def test_passes_decimal_through(self):
        value = Decimal("1.5")
        assert safe_decimal(value) is value

    def test_garbage_returns_default(self):
        assert safe_decimal("not a number") == Decimal("0")
        assert safe_decimal(None, default=Decimal("7")) == Decimal("7")

    def test_bps_to_decimal(self):
        assert bps_to_decimal(50) == Decimal("0.005")


class TestDerating:
    """Test slippage (bps) and venue fee (1e6) haircuts."""

    def test_apply_slippage(self):
        assert apply_slippage(10_000, 50) == 9_950
        assert apply_slippage(3_050_000_000, 50) == 3_034_750_000

    def test_apply_slippage_rounds_down(self):
        assert apply_slippage(999, 50) == 994

    @pytest.mark.parametrize("bps,expected", [(0, 1_000), (1000, 900), (10_000, 0)])
    def test_apply_slippage_bounds(self, bps, expected):
        assert apply_slippage(1_000, bps) == expected

    def test_apply_fee(self):
        assert apply_fee(1_000_000, 3000) == 997_000
        assert apply_fee(1_000_000, 500) == 999_500
        assert apply_fee(1_000_000, 0) == 1_000_000


class TestRescale:

    def test_scale_up(self):
        assert rescale(3050 * 10**8, 8, 18) == 3050 * 10**18

    def test_scale_down_rounds_down(self):
        assert rescale(1_999_999, 6, 0) == 1

    def test_same_precision(self):
        assert rescale(42, 18, 18) == 42


class TestConversions:

    def test_normalize(self):
        assert normalize_to_decimals(1_500_000, 6) == Decimal("1.5")

    def test_denormalize(self):
        assert denormalize_from_decimals("2", 9) == 2 * 10**9
        assert denormalize_from_decimals("3051.525763", 6) == 3_051_525_763

    def test_denormalize_truncates_extra_precision(self):
        assert denormalize_from_decimals("0.0000001", 6) == 0

    def test_format_units(self):
        assert format_units(15_900_000_000_000_000, 18) == "0.015900"
        assert format_units(3_050_000_000, 6, places=2) == "3050.00"

    def test_format_units_negative(self):
        assert format_units(-5 * 10**17, 18) == "-0.500000"
