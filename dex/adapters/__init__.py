"""
dex/adapters/ - Live (RPC) quoting adapters.

Adapters:
- uniswap_v3: Uniswap V3 QuoterV2 adapter
"""

from dex.adapters.uniswap_v3 import (
    UniswapV3Quoter,
    UniswapV3QuoteResult,
)

__all__ = [
    "UniswapV3Quoter",
    "UniswapV3QuoteResult",
]
