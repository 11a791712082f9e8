# PATH: core/models.py
"""
Core data models for FLASHARB.

ARBITRAGE REQUEST CONTRACT
==========================
An ArbitrageRequest is immutable once submitted:
  token_borrow   - token lent by the flash lender and repaid at the end
  token_target   - intermediate token bought on leg 1, sold on leg 2
  amount         - principal, raw units of token_borrow
  pool_fee_hint  - fee tier for the fee-tiered venue (0 = use preference)
  direction      - FEE_TIER_FIRST or PATH_FIRST

Leg 1 always swaps token_borrow -> token_target on the first venue,
leg 2 swaps the full leg 1 output token_target -> token_borrow on the
other venue.
==========================
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from core.constants import SwapDirection, VenueKind

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_zero_address(address: Optional[str]) -> bool:
    if not address:
        return True
    try:
        return int(address, 16) == 0
    except ValueError:
        return False


@dataclass(frozen=True)
class Token:
    """An ERC-20 style token."""
    address: str
    symbol: str
    decimals: int = 18

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ArbitrageRequest:
    """Caller-supplied arbitrage candidate."""
    token_borrow: str
    token_target: str
    amount: int
    pool_fee_hint: int = 0
    direction: SwapDirection = SwapDirection.FEE_TIER_FIRST

    @property
    def venue_order(self) -> tuple[VenueKind, VenueKind]:
        """(leg 1 venue, leg 2 venue)."""
        if self.direction == SwapDirection.FEE_TIER_FIRST:
            return VenueKind.FEE_TIER, VenueKind.PATH
        return VenueKind.PATH, VenueKind.FEE_TIER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_borrow": self.token_borrow,
            "token_target": self.token_target,
            "amount": self.amount,
            "pool_fee_hint": self.pool_fee_hint,
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArbitrageRequest":
        return cls(
            token_borrow=data["token_borrow"],
            token_target=data["token_target"],
            amount=int(data["amount"]),
            pool_fee_hint=int(data.get("pool_fee_hint", 0)),
            direction=SwapDirection(data.get("direction", SwapDirection.FEE_TIER_FIRST.value)),
        )


@dataclass(frozen=True)
class LoanPayload:
    """Opaque payload handed to the lender and echoed back in the callback."""
    session_id: str
    request: ArbitrageRequest

    def encode(self) -> bytes:
        return json.dumps(
            {"session_id": self.session_id, "request": self.request.to_dict()},
            sort_keys=True,
        ).encode("utf-8")

    @classmethod
    def decode(cls, raw: bytes) -> "LoanPayload":
        data = json.loads(raw.decode("utf-8"))
        return cls(
            session_id=data["session_id"],
            request=ArbitrageRequest.from_dict(data["request"]),
        )


@dataclass(frozen=True)
class LoanTerms:
    """What the lender delivered in the callback."""
    tokens: List[str]
    amounts: List[int]
    fees: List[int]

    @property
    def principal(self) -> int:
        return self.amounts[0]

    @property
    def fee(self) -> int:
        return self.fees[0] if self.fees else 0

    @property
    def repay_amount(self) -> int:
        return self.principal + self.fee


@dataclass
class SwapOutcome:
    """Result of one executed swap leg."""
    venue: VenueKind
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    min_out: int
    fee_tier: Optional[int] = None
    gas_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue.value,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": self.amount_in,
            "amount_out": self.amount_out,
            "min_out": self.min_out,
            "fee_tier": self.fee_tier,
            "gas_used": self.gas_used,
        }


@dataclass
class SettlementResult:
    """Numbers computed by the settlement engine."""
    final_balance: int
    repay_amount: int
    gross_profit: int
    cost_in_token: int
    net_profit: int
    gas_used: int
    gas_price: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ArbitrageResult:
    """Outcome of a successful attempt."""
    session_id: str
    request: ArbitrageRequest
    legs: List[SwapOutcome] = field(default_factory=list)
    settlement: Optional[SettlementResult] = None
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def net_profit(self) -> int:
        return self.settlement.net_profit if self.settlement else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "request": self.request.to_dict(),
            "legs": [leg.to_dict() for leg in self.legs],
            "settlement": self.settlement.to_dict() if self.settlement else None,
            "history": self.history,
        }
