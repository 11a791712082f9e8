# PATH: config/__init__.py
"""
Configuration loading utilities for FLASHARB.

`arbitrage.yaml` holds the guardrail defaults, token registry, pool fee
preferences, price feed addresses and the in-memory sandbox layout.
RPC URLs and other secrets come from the environment (see
chains.providers.provider_from_env).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from core.constants import DEFAULT_POOL_FEE, QuoteFallback
from core.math import denormalize_from_decimals
from core.models import Token
from execution.guardrails import ArbitrageConfig


CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "arbitrage.yaml"

GWEI = 10**9


def load_yaml(filename: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory

    Returns:
        Parsed YAML as dict
    """
    filepath = CONFIG_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass
class PoolSettings:
    """One sandbox pool, amounts already in raw units."""
    token_a: str
    token_b: str
    ref_a: int
    ref_b: int
    liquidity_a: int = 0
    liquidity_b: int = 0
    fee: int = DEFAULT_POOL_FEE


@dataclass
class SandboxSettings:
    """In-memory collaborators for a dry run."""
    owner: str = "0x00000000000000000000000000000000000000a1"
    orchestrator: str = "0x00000000000000000000000000000000000000b0"
    gas_price_wei: int = 2 * GWEI
    lender_address: str = "0xBA12222222228d8Ba445958a75a0704d566BF2C8"
    lender_fee_bps: int = 0
    lender_loan_gas: int = 60_000
    lender_liquidity: Dict[str, int] = field(default_factory=dict)
    fee_tier_venue_address: str = "0xE592427A0AEce92De3Edee1F18E0157C05861564"
    fee_tier_swap_gas: int = 120_000
    fee_tier_pools: List[PoolSettings] = field(default_factory=list)
    path_venue_address: str = "0xEfF92A263d31888d860bD50809A8D171709b7b1c"
    path_venue_fee: int = 2500
    path_swap_gas: int = 110_000
    path_pools: List[PoolSettings] = field(default_factory=list)
    prices: Dict[str, int] = field(default_factory=dict)  # symbol -> 8-decimal price


@dataclass
class ArbitrageSettings:
    """Full configuration."""
    guardrails: ArbitrageConfig = field(default_factory=ArbitrageConfig)
    quote_fallback: QuoteFallback = QuoteFallback.ACCEPT_ANY_NONZERO
    default_pool_fee: int = DEFAULT_POOL_FEE
    price_staleness_seconds: Optional[float] = None
    network: str = "mainnet"
    chain_id: int = 1
    quoter_address: Optional[str] = None
    tokens: Dict[str, Token] = field(default_factory=dict)
    native_token: str = "WETH"
    pool_fees: List[Tuple[str, str, int]] = field(default_factory=list)
    price_feeds: Dict[str, str] = field(default_factory=dict)
    sandbox: SandboxSettings = field(default_factory=SandboxSettings)

    def token(self, symbol: str) -> Token:
        if symbol not in self.tokens:
            raise KeyError(f"Unknown token: {symbol}")
        return self.tokens[symbol]

    def address_of(self, symbol_or_address: str) -> str:
        """Resolve a symbol to its address; addresses pass through."""
        if symbol_or_address in self.tokens:
            return self.tokens[symbol_or_address].address
        return symbol_or_address


def _parse_tokens(data: Dict[str, Any]) -> Dict[str, Token]:
    return {
        symbol: Token(address=entry["address"], symbol=symbol, decimals=int(entry.get("decimals", 18)))
        for symbol, entry in (data or {}).items()
    }


def _raw(tokens: Dict[str, Token], symbol: str, amount: Any) -> int:
    return denormalize_from_decimals(str(amount), tokens[symbol].decimals)


def _parse_pools(tokens: Dict[str, Token], entries: List[Dict[str, Any]]) -> List[PoolSettings]:
    pools = []
    for entry in entries or []:
        a, b = entry["token_a"], entry["token_b"]
        pools.append(
            PoolSettings(
                token_a=a,
                token_b=b,
                ref_a=_raw(tokens, a, entry["ref_a"]),
                ref_b=_raw(tokens, b, entry["ref_b"]),
                liquidity_a=_raw(tokens, a, entry.get("liquidity_a", 0)),
                liquidity_b=_raw(tokens, b, entry.get("liquidity_b", 0)),
                fee=int(entry.get("fee", DEFAULT_POOL_FEE)),
            )
        )
    return pools


def _parse_sandbox(tokens: Dict[str, Token], data: Dict[str, Any]) -> SandboxSettings:
    defaults = SandboxSettings()
    lender = data.get("lender", {})
    fee_venue = data.get("fee_tier_venue", {})
    path_venue = data.get("path_venue", {})

    gas_price_gwei = data.get("gas_price_gwei")
    gas_price_wei = (
        denormalize_from_decimals(str(gas_price_gwei), 9) if gas_price_gwei is not None else defaults.gas_price_wei
    )

    return SandboxSettings(
        owner=data.get("owner", defaults.owner),
        orchestrator=data.get("orchestrator", defaults.orchestrator),
        gas_price_wei=gas_price_wei,
        lender_address=lender.get("address", defaults.lender_address),
        lender_fee_bps=int(lender.get("fee_bps", defaults.lender_fee_bps)),
        lender_loan_gas=int(lender.get("loan_gas", defaults.lender_loan_gas)),
        lender_liquidity={
            symbol: _raw(tokens, symbol, amount) for symbol, amount in (lender.get("liquidity") or {}).items()
        },
        fee_tier_venue_address=fee_venue.get("address", defaults.fee_tier_venue_address),
        fee_tier_swap_gas=int(fee_venue.get("swap_gas", defaults.fee_tier_swap_gas)),
        fee_tier_pools=_parse_pools(tokens, fee_venue.get("pools")),
        path_venue_address=path_venue.get("address", defaults.path_venue_address),
        path_venue_fee=int(path_venue.get("fee", defaults.path_venue_fee)),
        path_swap_gas=int(path_venue.get("swap_gas", defaults.path_swap_gas)),
        path_pools=_parse_pools(tokens, path_venue.get("pools")),
        prices={symbol: denormalize_from_decimals(str(p), 8) for symbol, p in (data.get("prices") or {}).items()},
    )


def load_arbitrage_config(config_path: Path | None = None) -> ArbitrageSettings:
    """
    Load FLASHARB configuration from YAML file.

    Args:
        config_path: Path to arbitrage.yaml (default: config/arbitrage.yaml)

    Returns:
        ArbitrageSettings; defaults when the file does not exist

    Raises:
        SlippageTooHigh, InvalidConfigValue: guardrail values out of range
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return ArbitrageSettings()

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    guard_data = data.get("guardrails", {})
    defaults = ArbitrageConfig()
    max_gas_gwei = guard_data.get("max_gas_price_gwei")
    guardrails = ArbitrageConfig(
        min_profit_threshold=int(guard_data.get("min_profit_threshold", defaults.min_profit_threshold)),
        slippage_tolerance_bps=int(guard_data.get("slippage_tolerance_bps", defaults.slippage_tolerance_bps)),
        max_gas_price=(
            denormalize_from_decimals(str(max_gas_gwei), 9) if max_gas_gwei is not None else defaults.max_gas_price
        ),
        active=bool(guard_data.get("active", True)),
    )
    guardrails.validate()

    exec_data = data.get("execution", {})
    network = data.get("network", {})
    tokens = _parse_tokens(data.get("tokens", {}))
    staleness = exec_data.get("price_staleness_seconds")

    return ArbitrageSettings(
        guardrails=guardrails,
        quote_fallback=QuoteFallback(exec_data.get("quote_fallback", QuoteFallback.ACCEPT_ANY_NONZERO.value)),
        default_pool_fee=int(exec_data.get("default_pool_fee", DEFAULT_POOL_FEE)),
        price_staleness_seconds=float(staleness) if staleness is not None else None,
        network=network.get("name", "mainnet"),
        chain_id=int(network.get("chain_id", 1)),
        quoter_address=network.get("quoter_v2"),
        tokens=tokens,
        native_token=data.get("native_token", "WETH"),
        pool_fees=[(a, b, int(fee)) for a, b, fee in data.get("pool_fees", [])],
        price_feeds=dict(data.get("price_feeds", {})),
        sandbox=_parse_sandbox(tokens, data.get("sandbox", {})),
    )


__all__ = [
    "CONFIG_DIR",
    "DEFAULT_CONFIG_PATH",
    "ArbitrageSettings",
    "PoolSettings",
    "SandboxSettings",
    "load_arbitrage_config",
    "load_yaml",
]
