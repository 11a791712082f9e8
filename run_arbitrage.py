#!/usr/bin/env python3
"""
run_arbitrage.py - CLI entrypoint for a sandboxed arbitrage attempt.

Builds the in-memory lender and venues described by config/arbitrage.yaml,
wires the engine around them and runs one attempt.

Usage:
    python run_arbitrage.py --borrow WETH --target USDC --amount 1
    python run_arbitrage.py --direction PATH_FIRST --gas-price-gwei 5
    python run_arbitrage.py --live-rpc   # gas price and Chainlink prices from ETH_RPC_URL
    python run_arbitrage.py --live-quotes   # fee-tier min_out from the QuoterV2 contract
"""

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

from chains.providers import RPCProvider, provider_from_env
from config import DEFAULT_CONFIG_PATH, ArbitrageSettings, load_arbitrage_config
from core.constants import SwapDirection, VenueKind
from core.exceptions import ArbError
from core.ledger import Ledger
from core.logging import get_logger, log_error, set_global_context, setup_logging
from core.math import denormalize_from_decimals, format_units
from core.models import ArbitrageResult
from dex.adapters import UniswapV3Quoter
from dex.interfaces import FeeTierQuoter
from dex.venues import FeeTierVenue, PathVenue
from execution.access import OwnerPolicy
from execution.events import AuditLog
from execution.guardrails import GuardrailController, PoolFeePreferences
from execution.orchestrator import ArbitrageOrchestrator
from execution.router import FeeTierRoute, PathRoute, SwapRouter
from execution.settlement import GasPriceSource, SettlementEngine, StaticGasPrice
from lending.flash_lender import FlashLender
from oracle.chainlink import ChainlinkPriceFeed
from oracle.price_feed import (
    OracleCostConverter,
    PriceFeedRegistry,
    PriceOracleAdapter,
    StaticPriceFeed,
)

logger = get_logger("flasharb.run")


@dataclass
class Sandbox:
    """Everything a sandbox run needs."""
    settings: ArbitrageSettings
    ledger: Ledger
    lender: FlashLender
    fee_tier_venue: FeeTierVenue
    path_venue: PathVenue
    audit: AuditLog
    guardrails: GuardrailController
    orchestrator: ArbitrageOrchestrator


def build_sandbox(
    settings: ArbitrageSettings,
    gas_price_source: Optional[GasPriceSource] = None,
    provider: Optional[RPCProvider] = None,
    quoter: Optional[FeeTierQuoter] = None,
) -> Sandbox:
    """
    Wire the engine around in-memory collaborators.

    Args:
        settings: loaded configuration
        gas_price_source: overrides the sandbox gas price (e.g. an RPCProvider)
        provider: when given, price feeds are read from Chainlink over RPC
        quoter: quote source for the fee-tier route (default: the venue)
    """
    sb = settings.sandbox
    ledger = Ledger()
    audit = AuditLog()

    lender = FlashLender(ledger, sb.lender_address, fee_bps=sb.lender_fee_bps, loan_gas=sb.lender_loan_gas)
    for symbol, amount in sb.lender_liquidity.items():
        ledger.mint(lender.address, settings.address_of(symbol), amount)

    fee_tier_venue = FeeTierVenue(ledger, sb.fee_tier_venue_address, swap_gas=sb.fee_tier_swap_gas)
    for pool in sb.fee_tier_pools:
        fee_tier_venue.add_pool(
            settings.address_of(pool.token_a),
            settings.address_of(pool.token_b),
            pool.ref_a,
            pool.ref_b,
            fee=pool.fee,
            liquidity_a=pool.liquidity_a,
            liquidity_b=pool.liquidity_b,
        )

    path_venue = PathVenue(ledger, sb.path_venue_address, fee=sb.path_venue_fee, swap_gas=sb.path_swap_gas)
    for pool in sb.path_pools:
        path_venue.add_pool(
            settings.address_of(pool.token_a),
            settings.address_of(pool.token_b),
            pool.ref_a,
            pool.ref_b,
            liquidity_a=pool.liquidity_a,
            liquidity_b=pool.liquidity_b,
        )

    registry = PriceFeedRegistry()
    if provider is not None:
        for symbol, feed_address in settings.price_feeds.items():
            registry.set(settings.address_of(symbol), ChainlinkPriceFeed(provider, feed_address))
    else:
        for symbol, price in sb.prices.items():
            registry.set(settings.address_of(symbol), StaticPriceFeed(price, decimals=8))

    pool_fees = PoolFeePreferences(default_fee=settings.default_pool_fee)
    for token_a, token_b, fee in settings.pool_fees:
        pool_fees.set(settings.address_of(token_a), settings.address_of(token_b), fee)

    guardrails = GuardrailController(
        settings.guardrails,
        OwnerPolicy(sb.owner),
        audit,
        pool_fees=pool_fees,
        price_feeds=registry,
    )

    oracle = PriceOracleAdapter(
        registry,
        tokens=settings.tokens.values(),
        max_staleness_seconds=settings.price_staleness_seconds if provider is not None else None,
    )
    slippage = lambda: guardrails.slippage_tolerance_bps  # noqa: E731
    route_kwargs = {"fallback": settings.quote_fallback, "oracle": oracle}
    router = SwapRouter(
        {
            VenueKind.FEE_TIER: FeeTierRoute(
                fee_tier_venue, ledger, sb.orchestrator, slippage, quoter=quoter, **route_kwargs
            ),
            VenueKind.PATH: PathRoute(path_venue, ledger, sb.orchestrator, slippage, **route_kwargs),
        },
        fee_preference=guardrails.get_preferred_pool_fee,
    )

    settlement = SettlementEngine(
        ledger,
        sb.orchestrator,
        sb.owner,
        OracleCostConverter(oracle, settings.address_of(settings.native_token)),
    )

    orchestrator = ArbitrageOrchestrator(
        address=sb.orchestrator,
        ledger=ledger,
        lender=lender,
        router=router,
        guardrails=guardrails,
        settlement=settlement,
        audit=audit,
        gas_price_source=gas_price_source or StaticGasPrice(sb.gas_price_wei),
    )

    return Sandbox(
        settings=settings,
        ledger=ledger,
        lender=lender,
        fee_tier_venue=fee_tier_venue,
        path_venue=path_venue,
        audit=audit,
        guardrails=guardrails,
        orchestrator=orchestrator,
    )


async def run_attempt(
    sandbox: Sandbox,
    borrow: str,
    target: str,
    amount: int,
    fee_hint: int,
    direction: SwapDirection,
) -> ArbitrageResult:
    settings = sandbox.settings
    return await sandbox.orchestrator.execute_arbitrage(
        settings.sandbox.owner,
        settings.address_of(borrow),
        settings.address_of(target),
        amount,
        fee_hint=fee_hint,
        direction=direction,
    )


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=str(DEFAULT_CONFIG_PATH),
    type=click.Path(dir_okay=False),
    help="Path to arbitrage.yaml",
)
@click.option("--borrow", "-b", default="WETH", help="Token to borrow (symbol or address)")
@click.option("--target", "-t", default="USDC", help="Intermediate token (symbol or address)")
@click.option("--amount", "-a", default="1", help="Principal in token units")
@click.option("--fee-hint", default=0, type=int, help="Fee tier for the fee-tiered venue (0 = preference)")
@click.option(
    "--direction",
    "-d",
    default=SwapDirection.FEE_TIER_FIRST.value,
    type=click.Choice([d.value for d in SwapDirection]),
    help="Which venue is hit first",
)
@click.option("--gas-price-gwei", default=None, help="Override the sandbox gas price")
@click.option(
    "--live-rpc/--no-live-rpc",
    default=False,
    help="Read gas price and Chainlink prices from the network RPC",
)
@click.option(
    "--live-quotes/--no-live-quotes",
    default=False,
    help="Quote the fee-tier leg through the network QuoterV2",
)
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
def main(
    config_path: str,
    borrow: str,
    target: str,
    amount: str,
    fee_hint: int,
    direction: str,
    gas_price_gwei: str | None,
    live_rpc: bool,
    live_quotes: bool,
    log_level: str,
    json_logs: bool,
) -> None:
    """
    FLASHARB sandbox run.

    Executes one flash-loan arbitrage attempt against in-memory venues.
    """
    setup_logging(level=log_level, json_output=json_logs)
    set_global_context(service="flasharb", version="0.1.0")

    settings = load_arbitrage_config(Path(config_path))
    provider = (
        provider_from_env(settings.network, settings.chain_id) if live_rpc or live_quotes else None
    )

    gas_source: Optional[GasPriceSource] = provider if live_rpc else None
    if gas_price_gwei is not None:
        gas_source = StaticGasPrice(denormalize_from_decimals(gas_price_gwei, 9))

    quoter = None
    if live_quotes:
        if not settings.quoter_address:
            raise click.UsageError("--live-quotes needs network.quoter_v2 in the config")
        quoter = UniswapV3Quoter(provider, settings.quoter_address)

    sandbox = build_sandbox(
        settings,
        gas_price_source=gas_source,
        provider=provider if live_rpc else None,
        quoter=quoter,
    )
    borrow_token = settings.token(borrow) if borrow in settings.tokens else None
    decimals = borrow_token.decimals if borrow_token else 18
    raw_amount = denormalize_from_decimals(amount, decimals)
    owner = settings.sandbox.owner
    owner_before = sandbox.ledger.balance_of(owner, settings.address_of(borrow))

    logger.info(
        "Starting FLASHARB sandbox run",
        extra={
            "context": {
                "borrow": borrow,
                "target": target,
                "amount": raw_amount,
                "direction": direction,
                "live_rpc": live_rpc,
                "live_quotes": live_quotes,
            }
        },
    )

    async def _run() -> ArbitrageResult:
        try:
            return await run_attempt(sandbox, borrow, target, raw_amount, fee_hint, SwapDirection(direction))
        finally:
            if provider is not None:
                await provider.close()

    try:
        result = asyncio.run(_run())
    except ArbError as e:
        log_error(logger, e.code.value, e.message, details=e.details)
        click.echo(f"FAILED {e.code.value}: {e.message}")
        sys.exit(1)

    owner_after = sandbox.ledger.balance_of(owner, settings.address_of(borrow))
    settlement = result.settlement

    click.echo("\n" + "=" * 60)
    click.echo("FLASHARB ATTEMPT SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Session: {result.session_id}")
    for i, leg in enumerate(result.legs, start=1):
        click.echo(f"Leg {i}: {leg.venue.value} {leg.amount_in} -> {leg.amount_out} (min {leg.min_out})")
    click.echo(f"Gross profit: {format_units(settlement.gross_profit, decimals)} {borrow}")
    click.echo(f"Cost: {format_units(settlement.cost_in_token, decimals)} {borrow}")
    click.echo(f"Net profit: {format_units(settlement.net_profit, decimals)} {borrow}")
    click.echo(f"Owner balance change: {format_units(owner_after - owner_before, decimals)} {borrow}")
    click.echo("=" * 60)


if __name__ == "__main__":
    main()
