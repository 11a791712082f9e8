"""
core - Core utilities and models for FLASHARB.

This package contains:
- constants.py: Enums, units and defaults
- exceptions.py: Typed exceptions with error codes
- ledger.py: Token ledger and the atomic unit of work
- logging.py: Structured JSON logging
- math.py: Integer / Decimal helpers (no float money)
- models.py: Request, loan and settlement models
- time.py: Deadlines and freshness
"""

from core.constants import (
    DEFAULT_POOL_FEE,
    SwapDirection,
    SessionState,
    QuoteFallback,
    V3_FEE_TIERS,
    VenueKind,
)
from core.exceptions import (
    ArbError,
    ErrorCode,
    PolicyRejection,
    PolicyShortfall,
    ProtocolFailure,
    SolvencyFailure,
    ValidationError,
)
from core.ledger import Ledger, LedgerSnapshot
from core.logging import get_logger, setup_logging
from core.models import (
    ArbitrageRequest,
    ArbitrageResult,
    LoanTerms,
    SettlementResult,
    SwapOutcome,
    Token,
    ZERO_ADDRESS,
)

__all__ = [
    # Constants
    "DEFAULT_POOL_FEE",
    "SwapDirection",
    "SessionState",
    "QuoteFallback",
    "V3_FEE_TIERS",
    "VenueKind",
    # Exceptions
    "ArbError",
    "ErrorCode",
    "PolicyRejection",
    "PolicyShortfall",
    "ProtocolFailure",
    "SolvencyFailure",
    "ValidationError",
    # Ledger
    "Ledger",
    "LedgerSnapshot",
    # Models
    "ArbitrageRequest",
    "ArbitrageResult",
    "LoanTerms",
    "SettlementResult",
    "SwapOutcome",
    "Token",
    "ZERO_ADDRESS",
    # Logging
    "get_logger",
    "setup_logging",
]
