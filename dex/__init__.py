"""
dex/ - Swap venue contracts and implementations.

Modules:
- interfaces: FeeTierSwapVenue, PathSwapVenue, FeeTierQuoter protocols
- venues: in-memory FeeTierVenue / PathVenue backed by the Ledger
- adapters: live read-only quoters
"""

from dex.interfaces import FeeTierQuoter, FeeTierSwapVenue, PathSwapVenue
from dex.venues import FeeTierVenue, PathVenue, SimulatedPool

__all__ = [
    "FeeTierQuoter",
    "FeeTierSwapVenue",
    "PathSwapVenue",
    "FeeTierVenue",
    "PathVenue",
    "SimulatedPool",
]
