"""
dex/interfaces.py - Swap venue and quote facility contracts.

Two heterogeneous venue protocols are consumed:
- fee-tiered single-pool routing (Uniswap V3 SwapRouter style)
- path-based routing with an implicit fee (Uniswap V2 / PancakeSwap style)

Both revert (raise SwapError) when amount_out < min_out or the deadline
has passed. `sender` is the account whose tokens the venue pulls through
its allowance.
"""

from typing import List, Protocol, runtime_checkable


@runtime_checkable
class FeeTierSwapVenue(Protocol):
    """Swap identified by an explicit fee tier."""

    address: str
    swap_gas: int

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
        ...


@runtime_checkable
class PathSwapVenue(Protocol):
    """Swap through an explicit token path; output is the last amount."""

    address: str
    swap_gas: int
    fee: int

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
        ...

    async def get_amounts_out(self, amount_in: int, path: List[str]) -> List[int]:
        ...


@runtime_checkable
class FeeTierQuoter(Protocol):
    """Non-committing quote facility; may be stale or fail."""

    async def quote_exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
    ) -> int:
        ...
