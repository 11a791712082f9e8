# PATH: core/constants.py
"""
Constants for FLASHARB.

Contains enums, defaults, and protocol constants shared by the
execution engine, the venue adapters and the oracle adapter.

Units:
- fee tiers / venue fees: hundredths of a bip (1_000_000 = 100%)
- slippage tolerance: basis points (10_000 = 100%)
- gas price: wei per gas unit
- token amounts: raw integer units (wei-style), never float
"""

from enum import Enum
from typing import Final, List


# =============================================================================
# NUMERIC BASES
# =============================================================================

BPS_DENOMINATOR: Final[int] = 10_000
FEE_DENOMINATOR: Final[int] = 1_000_000

# Common fixed-point basis for oracle prices
PRICE_BASIS_DECIMALS: Final[int] = 18


# =============================================================================
# VENUE DEFAULTS
# =============================================================================

# V3 fee tiers (in hundredths of a bip)
V3_FEE_TIERS: List[int] = [100, 500, 3000, 10000]

# Fallback tier when no preference is configured for a pair (0.3%)
DEFAULT_POOL_FEE: Final[int] = 3000

# Path-based (V2-style) venues charge a fixed fee per hop (0.25%)
PATH_VENUE_FEE: Final[int] = 2500

# Swaps and loan sessions expire this long after they are opened
SWAP_DEADLINE_SECONDS: Final[int] = 300


# =============================================================================
# GUARDRAIL DEFAULTS
# =============================================================================

MAX_SLIPPAGE_TOLERANCE_BPS: Final[int] = 1000  # 10%
DEFAULT_SLIPPAGE_TOLERANCE_BPS: Final[int] = 50
DEFAULT_MAX_GAS_PRICE_WEI: Final[int] = 100 * 10**9  # 100 gwei
DEFAULT_MIN_PROFIT_THRESHOLD: Final[int] = 0

# Gas still to be spent after settlement starts (repay + payout + event)
SETTLEMENT_GAS_BUFFER: Final[int] = 50_000

# Gas charged for opening the loan before the callback runs
FLASH_LOAN_BASE_GAS: Final[int] = 60_000

# Smallest acceptable output when the venue quote is unusable
ANY_NONZERO_OUTPUT: Final[int] = 1


class SwapDirection(str, Enum):
    """Which venue is hit first."""
    FEE_TIER_FIRST = "FEE_TIER_FIRST"
    PATH_FIRST = "PATH_FIRST"


class VenueKind(str, Enum):
    """Swap venue variants."""
    FEE_TIER = "FEE_TIER"
    PATH = "PATH"


class SessionState(str, Enum):
    """Loan session lifecycle."""
    PENDING = "PENDING"
    SETTLED = "SETTLED"
    ABORTED = "ABORTED"


class QuoteFallback(str, Enum):
    """
    Policy applied when a venue quote is unusable.

    ACCEPT_ANY_NONZERO keeps the permissive escape valve (min_out = 1).
    ORACLE derives min_out from reference prices when feeds exist.
    REJECT fails the swap instead of trading without a bound.
    """
    ACCEPT_ANY_NONZERO = "ACCEPT_ANY_NONZERO"
    ORACLE = "ORACLE"
    REJECT = "REJECT"


class ConfigParameter(str, Enum):
    """Names carried by ConfigUpdated events."""
    MIN_PROFIT_THRESHOLD = "minProfitThreshold"
    SLIPPAGE_TOLERANCE = "slippageTolerance"
    MAX_GAS_PRICE = "maxGasPrice"
    POOL_FEE_PREFERENCE = "poolFeePreference"
    PRICE_FEED = "priceFeed"
