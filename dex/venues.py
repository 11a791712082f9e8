"""
dex/venues.py - In-memory swap venues backed by the Ledger.

Used by the sandbox runner and the test-suite in place of live routers.

Pricing model (constant price, capped by reserves):
  A pool is defined by a reference ratio `ref0` of token0 == `ref1` of
  token1. A swap pays `amount_in * ref_out // ref_in` minus the pool fee,
  provided the pool account holds enough of the output token. Reserves
  move with every swap, so depleting a pool makes later swaps revert.

Venues:
- FeeTierVenue: one pool per (pair, fee tier); also acts as its own
  quoter (QuoterV2 semantics).
- PathVenue: one pool per pair with a venue-wide fee; swaps walk the
  path hop by hop.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from core.constants import PATH_VENUE_FEE, V3_FEE_TIERS
from core.exceptions import (
    InsufficientLiquidity,
    InsufficientOutput,
    InvalidFeeTier,
    QuoteError,
    SwapDeadlineExpired,
    UnknownPool,
)
from core.ledger import Ledger
from core.logging import get_logger
from core.math import apply_fee
from core.time import Clock, now_timestamp

logger = get_logger(__name__)


@dataclass
class SimulatedPool:
    """Constant-price pool whose reserves live on the ledger."""
    address: str
    token0: str
    token1: str
    ref0: int
    ref1: int
    fee: int

    def has_token(self, token: str) -> bool:
        return token.lower() in (self.token0.lower(), self.token1.lower())

    def amount_out(self, token_in: str, amount_in: int) -> int:
        if token_in.lower() == self.token0.lower():
            gross = amount_in * self.ref1 // self.ref0
        else:
            gross = amount_in * self.ref0 // self.ref1
        return apply_fee(gross, self.fee)


def _pair_key(token_a: str, token_b: str) -> Tuple[str, str]:
    a, b = token_a.lower(), token_b.lower()
    return (a, b) if a < b else (b, a)


class _PoolBook:
    """Pool registry and ledger plumbing shared by both venue types."""

    def __init__(self, ledger: Ledger, address: str, clock: Optional[Clock] = None):
        self.ledger = ledger
        self.address = address
        self.clock = clock or now_timestamp

    def _create_pool(
        self,
        token_a: str,
        token_b: str,
        amount_a_ref: int,
        amount_b_ref: int,
        fee: int,
        liquidity_a: int,
        liquidity_b: int,
    ) -> SimulatedPool:
        if amount_a_ref <= 0 or amount_b_ref <= 0:
            raise ValueError("Reference amounts must be positive")

        pool = SimulatedPool(
            address=f"{self.address}:pool:{token_a[:10]}:{token_b[:10]}:{fee}".lower(),
            token0=token_a,
            token1=token_b,
            ref0=amount_a_ref,
            ref1=amount_b_ref,
            fee=fee,
        )
        self.ledger.mint(pool.address, token_a, liquidity_a)
        self.ledger.mint(pool.address, token_b, liquidity_b)
        return pool

    def _check_deadline(self, deadline: float) -> None:
        now = self.clock()
        if now > deadline:
            raise SwapDeadlineExpired(deadline, now)

    def _quote_hop(self, pool: SimulatedPool, token_in: str, token_out: str, amount_in: int) -> int:
        amount_out = pool.amount_out(token_in, amount_in)
        reserve = self.ledger.balance_of(pool.address, token_out)
        if amount_out > reserve:
            raise InsufficientLiquidity(amount_out, reserve)
        return amount_out


class FeeTierVenue(_PoolBook):
    """
    Fee-tiered single-pool venue.

    Usage:
        venue = FeeTierVenue(ledger, "0xUniRouter")
        venue.add_pool(WETH, USDC, 10**18, 3050 * 10**6, fee=3000,
                       liquidity_a=100 * 10**18, liquidity_b=10**12)
        out = await venue.swap_exact_input_single(...)
    """

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        clock: Optional[Clock] = None,
        swap_gas: int = 120_000,
        name: str = "uniswap_v3",
    ):
        super().__init__(ledger, address, clock)
        self.swap_gas = swap_gas
        self.name = name
        self._pools: Dict[Tuple[str, str, int], SimulatedPool] = {}

    def add_pool(
        self,
        token_a: str,
        token_b: str,
        amount_a_ref: int,
        amount_b_ref: int,
        fee: int,
        liquidity_a: int = 0,
        liquidity_b: int = 0,
    ) -> SimulatedPool:
        if fee not in V3_FEE_TIERS:
            raise InvalidFeeTier(fee)
        pool = self._create_pool(token_a, token_b, amount_a_ref, amount_b_ref, fee, liquidity_a, liquidity_b)
        self._pools[(*_pair_key(token_a, token_b), fee)] = pool
        return pool

    def get_pool(self, token_a: str, token_b: str, fee: int) -> SimulatedPool:
        pool = self._pools.get((*_pair_key(token_a, token_b), fee))
        if pool is None:
            raise UnknownPool(token_a, token_b, fee)
        return pool

    async def quote_exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
    ) -> int:
        """QuoterV2-style quote; raises QuoteError instead of SwapError."""
        try:
            pool = self.get_pool(token_in, token_out, fee)
            return self._quote_hop(pool, token_in, token_out, amount_in)
        except (UnknownPool, InsufficientLiquidity) as e:
            raise QuoteError(
                message=f"Quote reverted: {e.message}",
                details={"token_in": token_in, "token_out": token_out, "fee": fee, **e.details},
            ) from e

    async def swap_exact_input_single(
        self,
        *,
        sender: str,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
        min_out: int,
        recipient: str,
        deadline: float,
    ) -> int:
        self._check_deadline(deadline)
        pool = self.get_pool(token_in, token_out, fee)
        amount_out = self._quote_hop(pool, token_in, token_out, amount_in)
        if amount_out < min_out:
            raise InsufficientOutput(amount_out, min_out)

        self.ledger.transfer_from(self.address, sender, pool.address, token_in, amount_in)
        self.ledger.transfer(pool.address, recipient, token_out, amount_out)
        return amount_out


class PathVenue(_PoolBook):
    """
    Path-based venue with a fixed per-hop fee.

    get_amounts_out / swap_exact_tokens_for_tokens return one amount per
    path element; the output is the last element.
    """

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        clock: Optional[Clock] = None,
        fee: int = PATH_VENUE_FEE,
        swap_gas: int = 110_000,
        name: str = "pancakeswap_v2",
    ):
        super().__init__(ledger, address, clock)
        self.fee = fee
        self.swap_gas = swap_gas
        self.name = name
        self._pools: Dict[Tuple[str, str], SimulatedPool] = {}

    def add_pool(
        self,
        token_a: str,
        token_b: str,
        amount_a_ref: int,
        amount_b_ref: int,
        liquidity_a: int = 0,
        liquidity_b: int = 0,
    ) -> SimulatedPool:
        pool = self._create_pool(token_a, token_b, amount_a_ref, amount_b_ref, self.fee, liquidity_a, liquidity_b)
        self._pools[_pair_key(token_a, token_b)] = pool
        return pool

    def get_pool(self, token_a: str, token_b: str) -> SimulatedPool:
        pool = self._pools.get(_pair_key(token_a, token_b))
        if pool is None:
            raise UnknownPool(token_a, token_b)
        return pool

    def _walk(self, amount_in: int, path: List[str]) -> List[int]:
        if len(path) < 2:
            raise ValueError("Path needs at least two tokens")
        amounts = [amount_in]
        for token_in, token_out in zip(path, path[1:]):
            pool = self.get_pool(token_in, token_out)
            amounts.append(self._quote_hop(pool, token_in, token_out, amounts[-1]))
        return amounts

    async def get_amounts_out(self, amount_in: int, path: List[str]) -> List[int]:
        try:
            return self._walk(amount_in, path)
        except (UnknownPool, InsufficientLiquidity) as e:
            raise QuoteError(
                message=f"getAmountsOut reverted: {e.message}",
                details={"path": path, **e.details},
            ) from e

    async def swap_exact_tokens_for_tokens(
        self,
        *,
        sender: str,
        amount_in: int,
        min_out: int,
        path: List[str],
        recipient: str,
        deadline: float,
    ) -> List[int]:
        self._check_deadline(deadline)
        amounts = self._walk(amount_in, path)
        if amounts[-1] < min_out:
            raise InsufficientOutput(amounts[-1], min_out)

        first_pool = self.get_pool(path[0], path[1])
        self.ledger.transfer_from(self.address, sender, first_pool.address, path[0], amount_in)

        hops = list(zip(path, path[1:]))
        for i, (token_in, token_out) in enumerate(hops):
            pool = self.get_pool(token_in, token_out)
            if i + 1 < len(hops):
                next_pool = self.get_pool(*hops[i + 1])
                destination = next_pool.address
            else:
                destination = recipient
            self.ledger.transfer(pool.address, destination, token_out, amounts[i + 1])

        return amounts
