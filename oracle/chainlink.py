"""
oracle/chainlink.py - Chainlink AggregatorV3 price feed over JSON-RPC.

Reads:
- decimals()          selector 0x313ce567
- latestRoundData()   selector 0xfeaf968c
    returns (uint80 roundId, int256 answer, uint256 startedAt,
             uint256 updatedAt, uint80 answeredInRound)
"""

from typing import Optional

from chains.providers import RPCProvider
from core.exceptions import ErrorCode, InfraError, PriceError
from core.logging import get_logger
from oracle.price_feed import PriceData

logger = get_logger(__name__)

SELECTOR_DECIMALS = "0x313ce567"
SELECTOR_LATEST_ROUND_DATA = "0xfeaf968c"

_INT256_MIN = 1 << 255


def _words(hex_result: Optional[str], count: int) -> list[int]:
    if not hex_result or hex_result == "0x":
        raise PriceError(code=ErrorCode.PRICE_FEED_MISSING, message="Empty feed response")
    data = hex_result[2:] if hex_result.startswith("0x") else hex_result
    if len(data) < 64 * count:
        raise PriceError(
            code=ErrorCode.PRICE_FEED_MISSING,
            message=f"Feed response too short: {len(data)} chars",
            details={"data_length": len(data), "raw": hex_result[:100]},
        )
    return [int(data[i * 64:(i + 1) * 64], 16) for i in range(count)]


def to_int256(word: int) -> int:
    """Two's complement decode of a 256-bit word."""
    return word - (1 << 256) if word >= _INT256_MIN else word


def decode_latest_round_data(hex_result: Optional[str]) -> tuple[int, int, int, int, int]:
    """
    Decode latestRoundData response.

    Returns:
        (roundId, answer, startedAt, updatedAt, answeredInRound)
    """
    round_id, answer, started_at, updated_at, answered_in_round = _words(hex_result, 5)
    return round_id, to_int256(answer), started_at, updated_at, answered_in_round


class ChainlinkPriceFeed:
    """
    PriceFeed implementation for one aggregator contract.

    Decimals are read once and cached unless given up front.
    """

    def __init__(
        self,
        provider: RPCProvider,
        feed_address: str,
        decimals: Optional[int] = None,
    ):
        self.provider = provider
        self.feed_address = feed_address
        self._decimals = decimals

    async def get_decimals(self) -> int:
        if self._decimals is None:
            response = await self.provider.eth_call(to=self.feed_address, data=SELECTOR_DECIMALS)
            self._decimals = _words(response.result, 1)[0]
        return self._decimals

    async def latest_price(self) -> PriceData:
        try:
            response = await self.provider.eth_call(
                to=self.feed_address,
                data=SELECTOR_LATEST_ROUND_DATA,
            )
        except InfraError as e:
            logger.warning(
                "Price feed read failed",
                extra={"context": {"feed": self.feed_address, "error": e.message}},
            )
            raise

        _, answer, _, updated_at, _ = decode_latest_round_data(response.result)
        decimals = await self.get_decimals()

        return PriceData(price=answer, decimals=decimals, timestamp=float(updated_at))
