# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for FLASHARB tests.

`make_engine` wires the full engine over in-memory collaborators. The
default layout is the reference spread:

  fee-tier venue (0.05%):  1 WETH      -> 3050 USDC    net of fee
  path venue     (0.25%):  3050 USDC   -> 1.0164 WETH  net of fee
  gas: loan 50k + 2 swaps x 75k + 50k buffer = 250k at 2 gwei = 0.0005 WETH
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.constants import QuoteFallback, VenueKind  # noqa: E402
from core.ledger import Ledger  # noqa: E402
from dex.venues import FeeTierVenue, PathVenue  # noqa: E402
from execution.access import OwnerPolicy  # noqa: E402
from execution.events import AuditLog  # noqa: E402
from execution.guardrails import ArbitrageConfig, GuardrailController  # noqa: E402
from execution.orchestrator import ArbitrageOrchestrator  # noqa: E402
from execution.router import FeeTierRoute, PathRoute, SwapRouter  # noqa: E402
from execution.settlement import SettlementEngine, StaticGasPrice  # noqa: E402
from lending.flash_lender import FlashLender  # noqa: E402
from oracle.price_feed import (  # noqa: E402
    FixedRateCostConverter,
    PriceFeedRegistry,
    PriceOracleAdapter,
)


WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
OWNER = "0x00000000000000000000000000000000000000a1"
BOT = "0x00000000000000000000000000000000000000b0"
STRANGER = "0x00000000000000000000000000000000000000c3"
LENDER = "0xBA12222222228d8Ba445958a75a0704d566BF2C8"
FEE_TIER_ROUTER = "0xE592427A0AEce92De3Edee1F18E0157C05861564"
PATH_ROUTER = "0xEfF92A263d31888d860bD50809A8D171709b7b1c"

ONE_WETH = 10**18
GWEI = 10**9

# 1 WETH -> 3050 USDC after the 0.05% fee
FEE_TIER_USDC_REF = 3_051_525_763
# 3050 USDC -> 1.0164 WETH after the 0.25% fee
PATH_WETH_REF = 1_018_947_368_421_052_632
# 3050 USDC -> 0.9975 WETH after the 0.25% fee (no spread)
PATH_WETH_REF_FLAT = ONE_WETH


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


class FakeClock:
    """Controllable time source."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Engine:
    ledger: Ledger
    clock: FakeClock
    lender: FlashLender
    fee_tier_venue: FeeTierVenue
    path_venue: PathVenue
    audit: AuditLog
    guardrails: GuardrailController
    oracle: PriceOracleAdapter
    router: SwapRouter
    settlement: SettlementEngine
    orchestrator: ArbitrageOrchestrator
    gas: StaticGasPrice


def build_engine(
    *,
    path_weth_ref: int = PATH_WETH_REF,
    gas_price: int = 2 * GWEI,
    min_profit_threshold: int = 0,
    slippage_tolerance_bps: int = 50,
    fallback: QuoteFallback = QuoteFallback.ACCEPT_ANY_NONZERO,
    lender_fee_bps: int = 0,
    lender_liquidity: int = 1_000 * ONE_WETH,
    cost_converter=None,
    registry: Optional[PriceFeedRegistry] = None,
) -> Engine:
    ledger = Ledger()
    clock = FakeClock()
    audit = AuditLog()

    lender = FlashLender(ledger, LENDER, fee_bps=lender_fee_bps, loan_gas=50_000)
    ledger.mint(LENDER, WETH, lender_liquidity)

    fee_tier_venue = FeeTierVenue(ledger, FEE_TIER_ROUTER, clock=clock, swap_gas=75_000)
    fee_tier_venue.add_pool(
        WETH, USDC, ONE_WETH, FEE_TIER_USDC_REF, fee=500,
        liquidity_a=1_000 * ONE_WETH, liquidity_b=10**12,
    )
    fee_tier_venue.add_pool(
        WETH, USDC, ONE_WETH, 3_000 * 10**6, fee=3000,
        liquidity_a=1_000 * ONE_WETH, liquidity_b=10**12,
    )

    path_venue = PathVenue(ledger, PATH_ROUTER, clock=clock, fee=2500, swap_gas=75_000)
    path_venue.add_pool(
        USDC, WETH, 3_050 * 10**6, path_weth_ref,
        liquidity_a=10**12, liquidity_b=1_000 * ONE_WETH,
    )

    registry = registry or PriceFeedRegistry()
    guardrails = GuardrailController(
        ArbitrageConfig(
            min_profit_threshold=min_profit_threshold,
            slippage_tolerance_bps=slippage_tolerance_bps,
        ),
        OwnerPolicy(OWNER),
        audit,
        price_feeds=registry,
    )
    guardrails.set_pool_fee_preference(OWNER, WETH, USDC, 500)

    oracle = PriceOracleAdapter(registry, clock=clock)
    slippage = lambda: guardrails.slippage_tolerance_bps  # noqa: E731
    router = SwapRouter(
        {
            VenueKind.FEE_TIER: FeeTierRoute(
                fee_tier_venue, ledger, BOT, slippage, fallback=fallback, oracle=oracle, clock=clock
            ),
            VenueKind.PATH: PathRoute(
                path_venue, ledger, BOT, slippage, fallback=fallback, oracle=oracle, clock=clock
            ),
        },
        fee_preference=guardrails.get_preferred_pool_fee,
    )

    settlement = SettlementEngine(
        ledger, BOT, OWNER, cost_converter or FixedRateCostConverter()
    )
    gas = StaticGasPrice(gas_price)
    orchestrator = ArbitrageOrchestrator(
        address=BOT,
        ledger=ledger,
        lender=lender,
        router=router,
        guardrails=guardrails,
        settlement=settlement,
        audit=audit,
        gas_price_source=gas,
        clock=clock,
    )

    return Engine(
        ledger=ledger,
        clock=clock,
        lender=lender,
        fee_tier_venue=fee_tier_venue,
        path_venue=path_venue,
        audit=audit,
        guardrails=guardrails,
        oracle=oracle,
        router=router,
        settlement=settlement,
        orchestrator=orchestrator,
        gas=gas,
    )


@pytest.fixture
def make_engine():
    """Factory for engines with overridden parameters."""
    return build_engine


@pytest.fixture
def engine():
    """Engine over the reference spread."""
    return build_engine()


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def clock():
    return FakeClock()
