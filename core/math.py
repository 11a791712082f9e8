# PATH: core/math.py
"""
Math utilities for FLASHARB.

Integer and Decimal arithmetic only (no float money). On-venue amounts
are raw integers; Decimal is used for display and for ratios.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Union

from core.constants import BPS_DENOMINATOR, FEE_DENOMINATOR


def safe_decimal(value: Union[str, int, float, Decimal, None], default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Decimal value
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def bps_to_decimal(bps: Union[str, int, Decimal]) -> Decimal:
    """
    Convert basis points to decimal (100 bps = 0.01 = 1%).
    """
    return safe_decimal(bps) / Decimal(BPS_DENOMINATOR)


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """
    Derate `amount` by a slippage tolerance in basis points (rounds down).

    Example: apply_slippage(10_000, 50) -> 9_950
    """
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def apply_fee(amount: int, fee: int) -> int:
    """
    Deduct a venue fee expressed in hundredths of a bip (rounds down).

    Example: apply_fee(1_000_000, 3000) -> 997_000
    """
    return amount * (FEE_DENOMINATOR - fee) // FEE_DENOMINATOR


def rescale(amount: int, from_decimals: int, to_decimals: int) -> int:
    """Move an integer amount between decimal precisions (rounds down)."""
    if to_decimals >= from_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    return amount // 10 ** (from_decimals - to_decimals)


def normalize_to_decimals(
    amount: Union[str, int, Decimal],
    decimals: int,
) -> Decimal:
    """
    Normalize amount to token decimals (wei to token units).

    Args:
        amount: Amount in smallest unit (wei)
        decimals: Token decimals

    Returns:
        Normalized amount
    """
    amt = safe_decimal(amount)
    divisor = Decimal(10) ** decimals
    return amt / divisor


def denormalize_from_decimals(
    amount: Union[str, Decimal],
    decimals: int,
) -> int:
    """
    Denormalize amount from token units to wei.

    Args:
        amount: Amount in token units
        decimals: Token decimals

    Returns:
        Amount in wei (int)
    """
    amt = safe_decimal(amount)
    multiplier = Decimal(10) ** decimals
    return int((amt * multiplier).to_integral_value(rounding=ROUND_DOWN))


def format_units(amount: int, decimals: int, places: int = 6) -> str:
    """Render a raw amount as a fixed-point string, e.g. 1.500000."""
    quant = Decimal(1).scaleb(-places)
    return str(normalize_to_decimals(amount, decimals).quantize(quant, rounding=ROUND_DOWN))
