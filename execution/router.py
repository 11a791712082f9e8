"""
execution/router.py - Swap Router Adapter.

One `{quote_min_output, execute}` capability over the two venue protocols,
so the orchestrator never branches on "which venue".

ROUTE CONTRACT:
===============
  quote_min_output(token_in, token_out, amount_in, fee_tier)
      quoted = venue quote
      min_out = quoted * (10000 - slippage_bps) // 10000
      quote failed / zero / derated to zero -> QuoteFallback policy
  execute(token_in, token_out, amount_in, fee_tier)
      approve(venue, amount_in)      exactly the swap amount
      swap(..., deadline=now + 300s)
      approve(venue, 0)              always, also when the swap raises
===============
"""

from typing import Callable, Dict, Optional, Protocol, runtime_checkable

from core.constants import ANY_NONZERO_OUTPUT, SWAP_DEADLINE_SECONDS, V3_FEE_TIERS, QuoteFallback, VenueKind
from core.exceptions import InfraError, InvalidFeeTier, QuoteError, QuoteUnavailable
from core.ledger import Ledger
from core.logging import get_logger, log_swap
from core.math import apply_slippage
from core.models import SwapOutcome
from core.time import Clock, deadline_from, now_timestamp
from dex.interfaces import FeeTierQuoter, FeeTierSwapVenue, PathSwapVenue
from oracle.price_feed import PriceOracleAdapter

logger = get_logger(__name__)

# Conditions that make a venue quote unusable
QUOTE_FAILURES = (QuoteError, InfraError, ValueError)


@runtime_checkable
class SwapRoute(Protocol):
    """Uniform swap capability over one venue."""

    kind: VenueKind
    venue_address: str

    async def quote_min_output(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> int:
        ...

    async def execute(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> SwapOutcome:
        ...


class _BaseRoute:
    """Allowance scoping, deadline and min_out policy shared by both routes."""

    kind: VenueKind

    def __init__(
        self,
        ledger: Ledger,
        account: str,
        slippage_bps: Callable[[], int],
        fallback: QuoteFallback = QuoteFallback.ACCEPT_ANY_NONZERO,
        oracle: Optional[PriceOracleAdapter] = None,
        clock: Optional[Clock] = None,
        deadline_seconds: int = SWAP_DEADLINE_SECONDS,
    ):
        self.ledger = ledger
        self.account = account
        self.slippage_bps = slippage_bps
        self.fallback = fallback
        self.oracle = oracle
        self.clock = clock or now_timestamp
        self.deadline_seconds = deadline_seconds

    @property
    def venue_address(self) -> str:
        raise NotImplementedError

    @property
    def gas_per_swap(self) -> int:
        raise NotImplementedError

    def venue_fee(self, fee_tier: int) -> int:
        raise NotImplementedError

    async def _quote(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> int:
        raise NotImplementedError

    async def _swap(self, token_in: str, token_out: str, amount_in: int, fee_tier: int, min_out: int, deadline: float) -> int:
        raise NotImplementedError

    async def _fallback_min_output(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: int,
        cause: Optional[BaseException],
    ) -> int:
        context = {
            "venue": self.kind.value,
            "token_in": token_in,
            "token_out": token_out,
            "amount_in": amount_in,
            "policy": self.fallback.value,
            "cause": str(cause) if cause else "zero quote",
        }

        if self.fallback == QuoteFallback.REJECT:
            raise QuoteUnavailable(
                message=f"No usable quote on {self.kind.value}",
                details=context,
            )

        if (
            self.fallback == QuoteFallback.ORACLE
            and self.oracle is not None
            and self.oracle.has_feeds(token_in, token_out)
        ):
            bound = await self.oracle.expected_output(
                token_in, token_out, amount_in, self.venue_fee(fee_tier), self.slippage_bps()
            )
            if bound > 0:
                logger.warning("Quote unusable; using oracle bound", extra={"context": {**context, "min_out": bound}})
                return bound

        logger.warning(
            "Quote unusable; accepting any non-zero output",
            extra={"context": {**context, "min_out": ANY_NONZERO_OUTPUT}},
        )
        return ANY_NONZERO_OUTPUT

    async def quote_min_output(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> int:
        """Slippage-derated venue quote, or the fallback policy's bound."""
        try:
            quoted = await self._quote(token_in, token_out, amount_in, fee_tier)
        except QUOTE_FAILURES as e:
            return await self._fallback_min_output(token_in, token_out, amount_in, fee_tier, e)

        min_out = apply_slippage(quoted, self.slippage_bps()) if quoted > 0 else 0
        if min_out <= 0:
            return await self._fallback_min_output(token_in, token_out, amount_in, fee_tier, None)
        return min_out

    async def execute(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> SwapOutcome:
        min_out = await self.quote_min_output(token_in, token_out, amount_in, fee_tier)
        deadline = deadline_from(self.clock(), self.deadline_seconds)

        self.ledger.approve(self.account, self.venue_address, token_in, amount_in)
        try:
            amount_out = await self._swap(token_in, token_out, amount_in, fee_tier, min_out, deadline)
        finally:
            self.ledger.approve(self.account, self.venue_address, token_in, 0)

        outcome = SwapOutcome(
            venue=self.kind,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            min_out=min_out,
            fee_tier=fee_tier if self.kind == VenueKind.FEE_TIER else None,
            gas_used=self.gas_per_swap,
        )
        log_swap(
            logger,
            self.kind.value,
            token_in,
            token_out,
            amount_in,
            amount_out,
            min_out,
            fee_tier=outcome.fee_tier,
        )
        return outcome


class FeeTierRoute(_BaseRoute):
    """
    Route over the fee-tiered venue.

    Quotes come from `quoter` when given (e.g. a live QuoterV2), otherwise
    from the venue itself, which must then also satisfy FeeTierQuoter.
    """

    kind = VenueKind.FEE_TIER

    def __init__(
        self,
        venue: FeeTierSwapVenue,
        ledger: Ledger,
        account: str,
        slippage_bps: Callable[[], int],
        quoter: Optional[FeeTierQuoter] = None,
        **kwargs,
    ):
        super().__init__(ledger, account, slippage_bps, **kwargs)
        self.venue = venue
        self.quoter = quoter

    @property
    def venue_address(self) -> str:
        return self.venue.address

    @property
    def gas_per_swap(self) -> int:
        return self.venue.swap_gas

    def venue_fee(self, fee_tier: int) -> int:
        return fee_tier

    async def _quote(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> int:
        source = self.quoter if self.quoter is not None else self.venue
        return await source.quote_exact_input_single(token_in, token_out, fee_tier, amount_in)

    async def _swap(self, token_in: str, token_out: str, amount_in: int, fee_tier: int, min_out: int, deadline: float) -> int:
        return await self.venue.swap_exact_input_single(
            sender=self.account,
            token_in=token_in,
            token_out=token_out,
            fee=fee_tier,
            amount_in=amount_in,
            min_out=min_out,
            recipient=self.account,
            deadline=deadline,
        )


class PathRoute(_BaseRoute):
    """Route over the path-based venue; `fee_tier` is ignored."""

    kind = VenueKind.PATH

    def __init__(
        self,
        venue: PathSwapVenue,
        ledger: Ledger,
        account: str,
        slippage_bps: Callable[[], int],
        **kwargs,
    ):
        super().__init__(ledger, account, slippage_bps, **kwargs)
        self.venue = venue

    @property
    def venue_address(self) -> str:
        return self.venue.address

    @property
    def gas_per_swap(self) -> int:
        return self.venue.swap_gas

    def venue_fee(self, fee_tier: int) -> int:
        return self.venue.fee

    async def _quote(self, token_in: str, token_out: str, amount_in: int, fee_tier: int) -> int:
        amounts = await self.venue.get_amounts_out(amount_in, [token_in, token_out])
        if not amounts:
            raise ValueError("Empty getAmountsOut result")
        return amounts[-1]

    async def _swap(self, token_in: str, token_out: str, amount_in: int, fee_tier: int, min_out: int, deadline: float) -> int:
        amounts = await self.venue.swap_exact_tokens_for_tokens(
            sender=self.account,
            amount_in=amount_in,
            min_out=min_out,
            path=[token_in, token_out],
            recipient=self.account,
            deadline=deadline,
        )
        return amounts[-1]


class SwapRouter:
    """
    Dispatches swap legs to the route for a venue kind.

    Usage:
        router = SwapRouter({VenueKind.FEE_TIER: fee_route, VenueKind.PATH: path_route},
                            fee_preference=guardrails.get_preferred_pool_fee)
        outcome = await router.swap(VenueKind.FEE_TIER, WETH, USDC, 10**18, fee_hint=0)
    """

    def __init__(
        self,
        routes: Dict[VenueKind, SwapRoute],
        fee_preference: Callable[[str, str], int],
    ):
        self.routes = routes
        self.fee_preference = fee_preference

    def route(self, kind: VenueKind) -> SwapRoute:
        route = self.routes.get(kind)
        if route is None:
            raise ValueError(f"No route configured for venue {kind.value}")
        return route

    def resolve_fee_tier(self, token_a: str, token_b: str, fee_hint: int = 0) -> int:
        """Hint if given, else the pair preference, else the default tier."""
        if fee_hint:
            if fee_hint not in V3_FEE_TIERS:
                raise InvalidFeeTier(fee_hint)
            return fee_hint
        return self.fee_preference(token_a, token_b)

    async def quote_min_output(
        self,
        kind: VenueKind,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_hint: int = 0,
    ) -> int:
        fee_tier = self.resolve_fee_tier(token_in, token_out, fee_hint)
        return await self.route(kind).quote_min_output(token_in, token_out, amount_in, fee_tier)

    async def swap(
        self,
        kind: VenueKind,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_hint: int = 0,
    ) -> SwapOutcome:
        fee_tier = self.resolve_fee_tier(token_in, token_out, fee_hint)
        return await self.route(kind).execute(token_in, token_out, amount_in, fee_tier)
