"""
oracle/ - Reference prices.

Modules:
- price_feed: PriceOracleAdapter, feed registry, cost converters
- chainlink: Chainlink aggregator feed over RPC
"""

from oracle.price_feed import (
    CostConverter,
    FixedRateCostConverter,
    OracleCostConverter,
    PriceData,
    PriceFeed,
    PriceFeedRegistry,
    PriceOracleAdapter,
    StaticPriceFeed,
)
from oracle.chainlink import ChainlinkPriceFeed

__all__ = [
    "CostConverter",
    "FixedRateCostConverter",
    "OracleCostConverter",
    "PriceData",
    "PriceFeed",
    "PriceFeedRegistry",
    "PriceOracleAdapter",
    "StaticPriceFeed",
    "ChainlinkPriceFeed",
]
