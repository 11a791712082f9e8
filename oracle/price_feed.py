"""
oracle/price_feed.py - Price/Quote Oracle Adapter.

Converts external reference prices into a common 18-decimal fixed-point
basis. Used as an optional bound for swap min_out and for converting the
execution cost (native gas token) into the borrowed token. Feeds are
optional per token; callers check `has_feeds()` before relying on them.

CONVERSION CONTRACT:
====================
  price_in_n  = price_in  scaled to 18 decimals
  price_out_n = price_out scaled to 18 decimals
  amount_out  = amount_in * price_in_n * 10**dec_out
                // (price_out_n * 10**dec_in)
All integer arithmetic, rounding down.
====================
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol, runtime_checkable

from core.constants import PRICE_BASIS_DECIMALS
from core.exceptions import AbnormalPriceDetected, PriceFeedMissing, StalePrice
from core.logging import get_logger
from core.math import apply_fee, apply_slippage, rescale
from core.models import Token
from core.time import Clock, now_timestamp

logger = get_logger(__name__)


@dataclass(frozen=True)
class PriceData:
    """One reference price reading."""
    price: int
    decimals: int
    timestamp: float

    @property
    def normalized(self) -> int:
        """Price on the common 18-decimal basis."""
        return rescale(self.price, self.decimals, PRICE_BASIS_DECIMALS)


@runtime_checkable
class PriceFeed(Protocol):
    """A single token's reference price source."""

    async def latest_price(self) -> PriceData:
        ...


class StaticPriceFeed:
    """Fixed price feed (sandbox and tests)."""

    def __init__(self, price: int, decimals: int = 8, timestamp: Optional[float] = None):
        self.price = price
        self.decimals = decimals
        self.timestamp = timestamp

    async def latest_price(self) -> PriceData:
        ts = self.timestamp if self.timestamp is not None else now_timestamp()
        return PriceData(price=self.price, decimals=self.decimals, timestamp=ts)


class PriceFeedRegistry:
    """token -> feed mapping. Absence of a feed is legal."""

    def __init__(self, feeds: Optional[Dict[str, PriceFeed]] = None):
        self._feeds: Dict[str, PriceFeed] = {}
        for token, feed in (feeds or {}).items():
            self.set(token, feed)

    def set(self, token: str, feed: Optional[PriceFeed]) -> Optional[PriceFeed]:
        """Register (or with None, remove) a feed; returns the previous one."""
        key = token.lower()
        previous = self._feeds.get(key)
        if feed is None:
            self._feeds.pop(key, None)
        else:
            self._feeds[key] = feed
        return previous

    def get(self, token: str) -> Optional[PriceFeed]:
        return self._feeds.get(token.lower())

    def __contains__(self, token: str) -> bool:
        return token.lower() in self._feeds


class PriceOracleAdapter:
    """
    Reads feeds, validates prices and converts amounts between tokens.

    Args:
        registry: token -> feed mapping
        tokens: known tokens (for decimals); unknown tokens default to 18
        max_staleness_seconds: reject readings older than this (None = off)
        clock: time source for staleness
    """

    def __init__(
        self,
        registry: PriceFeedRegistry,
        tokens: Optional[Iterable[Token]] = None,
        max_staleness_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self.registry = registry
        self._decimals = {t.address.lower(): t.decimals for t in (tokens or [])}
        self.max_staleness_seconds = max_staleness_seconds
        self.clock = clock or now_timestamp

    def decimals_of(self, token: str) -> int:
        return self._decimals.get(token.lower(), 18)

    def has_feeds(self, *tokens: str) -> bool:
        return all(token in self.registry for token in tokens)

    async def price_of(self, token: str) -> PriceData:
        """
        Latest validated price for a token.

        Raises:
            PriceFeedMissing: no feed registered
            AbnormalPriceDetected: price <= 0
            StalePrice: reading older than max_staleness_seconds
        """
        feed = self.registry.get(token)
        if feed is None:
            raise PriceFeedMissing(token)

        data = await feed.latest_price()
        if data.price <= 0:
            raise AbnormalPriceDetected(token, data.price)

        if self.max_staleness_seconds is not None:
            age = self.clock() - data.timestamp
            if age > self.max_staleness_seconds:
                raise StalePrice(token, age, self.max_staleness_seconds)

        return data

    async def convert(self, amount: int, token_in: str, token_out: str) -> int:
        """Value of `amount` of token_in expressed in token_out raw units."""
        if token_in.lower() == token_out.lower():
            return amount

        price_in = await self.price_of(token_in)
        price_out = await self.price_of(token_out)

        numerator = amount * price_in.normalized * 10 ** self.decimals_of(token_out)
        denominator = price_out.normalized * 10 ** self.decimals_of(token_in)
        return numerator // denominator

    async def expected_output(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        venue_fee: int,
        slippage_bps: int,
    ) -> int:
        """
        Oracle-implied swap output after the venue fee haircut and the
        slippage tolerance.
        """
        fair = await self.convert(amount_in, token_in, token_out)
        bound = apply_slippage(apply_fee(fair, venue_fee), slippage_bps)
        logger.debug(
            "Oracle min-out bound",
            extra={
                "context": {
                    "token_in": token_in,
                    "token_out": token_out,
                    "amount_in": amount_in,
                    "fair_out": fair,
                    "bound": bound,
                }
            },
        )
        return bound


# =============================================================================
# COST CONVERSION
# =============================================================================

@runtime_checkable
class CostConverter(Protocol):
    """Converts an execution cost in native wei into borrowed-token units."""

    async def to_token(self, cost_wei: int, token: str) -> int:
        ...


class FixedRateCostConverter:
    """
    Static conversion: `cost_wei * numerator // denominator` per token.

    Tokens missing from `rates` use `default_rate`; (1, 1) means the token
    is priced 1:1 against the native token.
    """

    def __init__(
        self,
        rates: Optional[Dict[str, tuple[int, int]]] = None,
        default_rate: tuple[int, int] = (1, 1),
    ):
        self.rates = {k.lower(): v for k, v in (rates or {}).items()}
        self.default_rate = default_rate

    async def to_token(self, cost_wei: int, token: str) -> int:
        numerator, denominator = self.rates.get(token.lower(), self.default_rate)
        return cost_wei * numerator // denominator


class OracleCostConverter:
    """
    Converts through the oracle adapter.

    The wrapped native token converts 1:1. Tokens without feeds go to the
    fallback converter; with no fallback the cost is counted as zero and a
    warning is logged.
    """

    def __init__(
        self,
        oracle: PriceOracleAdapter,
        native_token: str,
        fallback: Optional[CostConverter] = None,
    ):
        self.oracle = oracle
        self.native_token = native_token
        self.fallback = fallback

    async def to_token(self, cost_wei: int, token: str) -> int:
        if token.lower() == self.native_token.lower():
            return cost_wei

        if self.oracle.has_feeds(self.native_token, token):
            return await self.oracle.convert(cost_wei, self.native_token, token)

        if self.fallback is not None:
            return await self.fallback.to_token(cost_wei, token)

        logger.warning(
            "No price feed for cost conversion; counting cost as zero",
            extra={"context": {"token": token, "cost_wei": cost_wei}},
        )
        return 0
