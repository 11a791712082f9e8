# PATH: core/exceptions.py
"""
Typed exceptions for FLASHARB.

Every failure surfaces as a distinctly named condition with a stable
ErrorCode so a monitoring caller can tell "no opportunity" from
"unauthorized" from "paused".

Taxonomy:
- PolicyRejection: paused, gas ceiling, unauthorized, re-entry
- ValidationError: bad request / config input, bad callback
- ProtocolFailure: lending primitive failed or loan not repaid
- SolvencyFailure: post-trade balance cannot cover the loan
- PolicyShortfall: solvent but below the profit threshold
- SwapError / QuoteError / PriceError: venue and oracle failures
- InfraError: RPC transport failures
- LedgerError: balance / allowance violations
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error codes."""

    # Policy
    CONTRACT_PAUSED = "CONTRACT_PAUSED"
    ABNORMAL_GAS_PRICE = "ABNORMAL_GAS_PRICE"
    UNAUTHORIZED = "UNAUTHORIZED"
    REENTRANT_CALL = "REENTRANT_CALL"

    # Validation
    INVALID_TOKEN_PAIR = "INVALID_TOKEN_PAIR"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    SLIPPAGE_TOO_HIGH = "SLIPPAGE_TOO_HIGH"
    INVALID_CONFIG_VALUE = "INVALID_CONFIG_VALUE"
    INVALID_FEE_TIER = "INVALID_FEE_TIER"
    INVALID_CALLBACK = "INVALID_CALLBACK"
    CALLBACK_EXPIRED = "CALLBACK_EXPIRED"

    # Protocol
    FLASH_LOAN_FAILED = "FLASH_LOAN_FAILED"
    LOAN_NOT_REPAID = "LOAN_NOT_REPAID"

    # Settlement
    INSUFFICIENT_FUNDS_FOR_REPAYMENT = "INSUFFICIENT_FUNDS_FOR_REPAYMENT"
    PROFIT_BELOW_THRESHOLD = "PROFIT_BELOW_THRESHOLD"

    # Swaps / quotes
    SWAP_INSUFFICIENT_OUTPUT = "SWAP_INSUFFICIENT_OUTPUT"
    SWAP_DEADLINE_EXPIRED = "SWAP_DEADLINE_EXPIRED"
    SWAP_INSUFFICIENT_LIQUIDITY = "SWAP_INSUFFICIENT_LIQUIDITY"
    SWAP_UNKNOWN_POOL = "SWAP_UNKNOWN_POOL"
    QUOTE_REVERT = "QUOTE_REVERT"
    QUOTE_UNAVAILABLE = "QUOTE_UNAVAILABLE"

    # Oracle
    ABNORMAL_PRICE_DETECTED = "ABNORMAL_PRICE_DETECTED"
    PRICE_FEED_MISSING = "PRICE_FEED_MISSING"
    PRICE_STALE = "PRICE_STALE"

    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_RPC_TIMEOUT = "INFRA_RPC_TIMEOUT"

    # Ledger
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_ALLOWANCE = "INSUFFICIENT_ALLOWANCE"

    UNKNOWN = "UNKNOWN"


class ArbError(Exception):
    """Base exception for FLASHARB."""

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str = "",
        code: Optional[ErrorCode] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# POLICY REJECTIONS (before any external call)
# =============================================================================

class PolicyRejection(ArbError):
    """Rejected by owner policy before any collaborator is contacted."""
    pass


class ContractPaused(PolicyRejection):
    code = ErrorCode.CONTRACT_PAUSED

    def __init__(self):
        super().__init__("Circuit breaker is active; arbitrage disabled")


class AbnormalGasPrice(PolicyRejection):
    code = ErrorCode.ABNORMAL_GAS_PRICE

    def __init__(self, gas_price: int, max_gas_price: int):
        super().__init__(
            f"Gas price {gas_price} exceeds ceiling {max_gas_price}",
            details={"gas_price": gas_price, "max_gas_price": max_gas_price},
        )
        self.gas_price = gas_price
        self.max_gas_price = max_gas_price


class Unauthorized(PolicyRejection):
    code = ErrorCode.UNAUTHORIZED

    def __init__(self, caller: str, action: str = ""):
        super().__init__(
            f"Caller {caller} is not authorized" + (f" to {action}" if action else ""),
            details={"caller": caller, "action": action},
        )
        self.caller = caller


class ReentrantCall(PolicyRejection):
    code = ErrorCode.REENTRANT_CALL

    def __init__(self):
        super().__init__("Orchestrator is already executing an attempt")


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(ArbError):
    """Invalid request, configuration value or callback."""
    pass


class InvalidTokenPair(ValidationError):
    code = ErrorCode.INVALID_TOKEN_PAIR

    def __init__(self, token_borrow: str, token_target: str):
        super().__init__(
            "Tokens must be distinct and non-zero",
            details={"token_borrow": token_borrow, "token_target": token_target},
        )


class InvalidAmount(ValidationError):
    code = ErrorCode.INVALID_AMOUNT

    def __init__(self, amount: int):
        super().__init__(f"Amount must be positive, got {amount}", details={"amount": amount})


class SlippageTooHigh(ValidationError):
    code = ErrorCode.SLIPPAGE_TOO_HIGH

    def __init__(self, requested: int, maximum: int):
        super().__init__(
            f"Slippage tolerance {requested} bps exceeds maximum {maximum} bps",
            details={"requested": requested, "maximum": maximum},
        )
        self.requested = requested
        self.maximum = maximum


class InvalidConfigValue(ValidationError):
    code = ErrorCode.INVALID_CONFIG_VALUE

    def __init__(self, parameter: str, value: object):
        super().__init__(
            f"Invalid value for {parameter}: {value!r}",
            details={"parameter": parameter, "value": value},
        )


class InvalidFeeTier(ValidationError):
    code = ErrorCode.INVALID_FEE_TIER

    def __init__(self, fee: int):
        super().__init__(f"Unsupported fee tier {fee}", details={"fee": fee})


class InvalidCallback(ValidationError):
    code = ErrorCode.INVALID_CALLBACK

    def __init__(self, session_id: str, reason: str = "no matching pending session"):
        super().__init__(
            f"Rejected loan callback: {reason}",
            details={"session_id": session_id, "reason": reason},
        )


class CallbackExpired(ValidationError):
    code = ErrorCode.CALLBACK_EXPIRED

    def __init__(self, session_id: str, deadline: float, now: float):
        super().__init__(
            "Loan callback arrived after session deadline",
            details={"session_id": session_id, "deadline": deadline, "now": now},
        )


# =============================================================================
# PROTOCOL / SETTLEMENT
# =============================================================================

class ProtocolFailure(ArbError):
    """The lending collaborator failed."""
    pass


class FlashLoanFailed(ProtocolFailure):
    code = ErrorCode.FLASH_LOAN_FAILED

    def __init__(self, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"Flash loan failed: {reason}", details={"reason": reason})
        self.reason = reason
        self.cause = cause


class LoanNotRepaid(ProtocolFailure):
    code = ErrorCode.LOAN_NOT_REPAID

    def __init__(self, token: str, expected: int, actual: int):
        super().__init__(
            f"Loan of {token} not repaid: expected balance {expected}, got {actual}",
            details={"token": token, "expected": expected, "actual": actual},
        )


class SolvencyFailure(ArbError):
    """Post-trade balance cannot repay the loan."""
    pass


class InsufficientFundsForRepayment(SolvencyFailure):
    code = ErrorCode.INSUFFICIENT_FUNDS_FOR_REPAYMENT

    def __init__(self, available: int, required: int):
        super().__init__(
            f"Balance {available} below repayment {required}",
            details={"available": available, "required": required},
        )
        self.available = available
        self.required = required


class PolicyShortfall(ArbError):
    """Trade worked but was not worth it."""
    pass


class ProfitBelowThreshold(PolicyShortfall):
    code = ErrorCode.PROFIT_BELOW_THRESHOLD

    def __init__(self, actual: int, threshold: int):
        super().__init__(
            f"Net profit {actual} below threshold {threshold}",
            details={"actual": actual, "threshold": threshold},
        )
        self.actual = actual
        self.threshold = threshold


# =============================================================================
# SWAPS / QUOTES
# =============================================================================

class SwapError(ArbError):
    """Venue rejected a swap."""
    pass


class InsufficientOutput(SwapError):
    code = ErrorCode.SWAP_INSUFFICIENT_OUTPUT

    def __init__(self, amount_out: int, min_out: int):
        super().__init__(
            f"Output {amount_out} below minimum {min_out}",
            details={"amount_out": amount_out, "min_out": min_out},
        )


class SwapDeadlineExpired(SwapError):
    code = ErrorCode.SWAP_DEADLINE_EXPIRED

    def __init__(self, deadline: float, now: float):
        super().__init__("Swap deadline passed", details={"deadline": deadline, "now": now})


class InsufficientLiquidity(SwapError):
    code = ErrorCode.SWAP_INSUFFICIENT_LIQUIDITY

    def __init__(self, requested: int, available: int):
        super().__init__(
            f"Pool cannot pay {requested}, reserve is {available}",
            details={"requested": requested, "available": available},
        )


class UnknownPool(SwapError):
    code = ErrorCode.SWAP_UNKNOWN_POOL

    def __init__(self, token_in: str, token_out: str, fee: Optional[int] = None):
        super().__init__(
            f"No pool for {token_in}->{token_out}" + (f" at fee {fee}" if fee is not None else ""),
            details={"token_in": token_in, "token_out": token_out, "fee": fee},
        )


class QuoteError(ArbError):
    """Quote facility failed or returned an unusable result."""
    code = ErrorCode.QUOTE_REVERT


class QuoteUnavailable(QuoteError):
    code = ErrorCode.QUOTE_UNAVAILABLE


# =============================================================================
# ORACLE
# =============================================================================

class PriceError(ArbError):
    """Reference price problems."""
    pass


class AbnormalPriceDetected(PriceError):
    code = ErrorCode.ABNORMAL_PRICE_DETECTED

    def __init__(self, token: str, price: int):
        super().__init__(
            f"Non-positive price {price} for {token}",
            details={"token": token, "price": price},
        )


class PriceFeedMissing(PriceError):
    code = ErrorCode.PRICE_FEED_MISSING

    def __init__(self, token: str):
        super().__init__(f"No price feed registered for {token}", details={"token": token})


class StalePrice(PriceError):
    code = ErrorCode.PRICE_STALE

    def __init__(self, token: str, age_seconds: float, max_age_seconds: float):
        super().__init__(
            f"Price for {token} is {age_seconds:.0f}s old (max {max_age_seconds:.0f}s)",
            details={"token": token, "age_seconds": age_seconds, "max_age_seconds": max_age_seconds},
        )


# =============================================================================
# INFRASTRUCTURE / LEDGER
# =============================================================================

class InfraError(ArbError):
    """Infrastructure-related errors (RPC, timeouts)."""
    code = ErrorCode.INFRA_RPC_ERROR


class LedgerError(ArbError):
    """Balance or allowance violation."""
    pass


class InsufficientBalance(LedgerError):
    code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, account: str, token: str, balance: int, amount: int):
        super().__init__(
            f"{account} holds {balance} {token}, needs {amount}",
            details={"account": account, "token": token, "balance": balance, "amount": amount},
        )


class InsufficientAllowance(LedgerError):
    code = ErrorCode.INSUFFICIENT_ALLOWANCE

    def __init__(self, owner: str, spender: str, token: str, allowance: int, amount: int):
        super().__init__(
            f"{spender} may spend {allowance} {token} of {owner}, needs {amount}",
            details={
                "owner": owner,
                "spender": spender,
                "token": token,
                "allowance": allowance,
                "amount": amount,
            },
        )
