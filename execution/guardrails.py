"""
execution/guardrails.py - Guardrail Controller.

Holds the owner-mutable policy state and enforces it at the start of
every attempt.

GUARDRAIL CONTRACT:
===================
  enforce(gas_price), side-effect free, before any external call:
    not active             -> ContractPaused
    gas_price > max        -> AbnormalGasPrice
  setters (owner only), each emitting ConfigUpdated{parameter, old, new}:
    set_min_profit_threshold(v)    v >= 0
    set_slippage_tolerance(v)      0 <= v <= 1000, else SlippageTooHigh(v, 1000)
    set_max_gas_price(v)           v >= 0
    set_pool_fee_preference(a, b, fee)   fee in V3 tiers
    set_price_feed(token, feed)
  toggle_active() flips the circuit breaker and emits
  CircuitBreakerTriggered{active}
===================
"""

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional, Tuple

from core.constants import (
    DEFAULT_MAX_GAS_PRICE_WEI,
    DEFAULT_MIN_PROFIT_THRESHOLD,
    DEFAULT_POOL_FEE,
    DEFAULT_SLIPPAGE_TOLERANCE_BPS,
    MAX_SLIPPAGE_TOLERANCE_BPS,
    V3_FEE_TIERS,
    ConfigParameter,
)
from core.exceptions import (
    AbnormalGasPrice,
    ContractPaused,
    InvalidConfigValue,
    InvalidFeeTier,
    SlippageTooHigh,
)
from core.logging import get_logger
from execution.access import AccessPolicy, require
from execution.events import AuditLog, CircuitBreakerTriggered, ConfigUpdated
from oracle.price_feed import PriceFeed, PriceFeedRegistry

logger = get_logger(__name__)


@dataclass
class ArbitrageConfig:
    """Owner-configurable policy."""
    min_profit_threshold: int = DEFAULT_MIN_PROFIT_THRESHOLD
    slippage_tolerance_bps: int = DEFAULT_SLIPPAGE_TOLERANCE_BPS
    max_gas_price: int = DEFAULT_MAX_GAS_PRICE_WEI
    active: bool = True

    def validate(self) -> None:
        if self.min_profit_threshold < 0:
            raise InvalidConfigValue(ConfigParameter.MIN_PROFIT_THRESHOLD.value, self.min_profit_threshold)
        if self.slippage_tolerance_bps < 0:
            raise InvalidConfigValue(ConfigParameter.SLIPPAGE_TOLERANCE.value, self.slippage_tolerance_bps)
        if self.slippage_tolerance_bps > MAX_SLIPPAGE_TOLERANCE_BPS:
            raise SlippageTooHigh(self.slippage_tolerance_bps, MAX_SLIPPAGE_TOLERANCE_BPS)
        if self.max_gas_price < 0:
            raise InvalidConfigValue(ConfigParameter.MAX_GAS_PRICE.value, self.max_gas_price)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PoolFeePreferences:
    """Unordered token pair -> preferred fee tier for the fee-tiered venue."""

    def __init__(self, default_fee: int = DEFAULT_POOL_FEE):
        self.default_fee = default_fee
        self._fees: Dict[Tuple[str, str], int] = {}

    @staticmethod
    def _key(token_a: str, token_b: str) -> Tuple[str, str]:
        a, b = token_a.lower(), token_b.lower()
        return (a, b) if a < b else (b, a)

    def set(self, token_a: str, token_b: str, fee: int) -> Optional[int]:
        key = self._key(token_a, token_b)
        previous = self._fees.get(key)
        self._fees[key] = fee
        return previous

    def get(self, token_a: str, token_b: str) -> Optional[int]:
        return self._fees.get(self._key(token_a, token_b))

    def resolve(self, token_a: str, token_b: str) -> int:
        """Preferred tier, or the default tier when none is configured."""
        fee = self.get(token_a, token_b)
        return fee if fee is not None else self.default_fee


def _feed_label(feed: Optional[PriceFeed]) -> Optional[str]:
    if feed is None:
        return None
    return getattr(feed, "feed_address", type(feed).__name__)


class GuardrailController:
    """
    Owner-mutable policy state.

    Usage:
        guardrails = GuardrailController(ArbitrageConfig(), OwnerPolicy(owner), audit)
        guardrails.set_slippage_tolerance(owner, 100)
        guardrails.enforce(gas_price)
    """

    def __init__(
        self,
        config: ArbitrageConfig,
        access: AccessPolicy,
        audit: AuditLog,
        pool_fees: Optional[PoolFeePreferences] = None,
        price_feeds: Optional[PriceFeedRegistry] = None,
    ):
        config.validate()
        self._config = replace(config)
        self.access = access
        self.audit = audit
        self.pool_fees = pool_fees or PoolFeePreferences()
        self.price_feeds = price_feeds or PriceFeedRegistry()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ArbitrageConfig:
        """Snapshot of the current configuration."""
        return replace(self._config)

    @property
    def slippage_tolerance_bps(self) -> int:
        return self._config.slippage_tolerance_bps

    @property
    def min_profit_threshold(self) -> int:
        return self._config.min_profit_threshold

    @property
    def active(self) -> bool:
        return self._config.active

    def get_preferred_pool_fee(self, token_a: str, token_b: str) -> int:
        return self.pool_fees.resolve(token_a, token_b)

    def get_price_feed(self, token: str) -> Optional[PriceFeed]:
        return self.price_feeds.get(token)

    # -------------------------------------------------------------------------
    # Enforcement
    # -------------------------------------------------------------------------

    def enforce(self, gas_price: int) -> None:
        """Entry checks; raise before anything else happens."""
        if not self._config.active:
            raise ContractPaused()
        if gas_price > self._config.max_gas_price:
            raise AbnormalGasPrice(gas_price, self._config.max_gas_price)

    # -------------------------------------------------------------------------
    # Owner setters
    # -------------------------------------------------------------------------

    def _updated(self, parameter: ConfigParameter, old: Any, new: Any) -> None:
        self.audit.emit(ConfigUpdated(parameter=parameter.value, old=old, new=new))

    def set_min_profit_threshold(self, caller: str, value: int) -> None:
        require(self.access, caller, "set_min_profit_threshold")
        if value < 0:
            raise InvalidConfigValue(ConfigParameter.MIN_PROFIT_THRESHOLD.value, value)
        old = self._config.min_profit_threshold
        self._config.min_profit_threshold = value
        self._updated(ConfigParameter.MIN_PROFIT_THRESHOLD, old, value)

    def set_slippage_tolerance(self, caller: str, value: int) -> None:
        require(self.access, caller, "set_slippage_tolerance")
        if value > MAX_SLIPPAGE_TOLERANCE_BPS:
            raise SlippageTooHigh(value, MAX_SLIPPAGE_TOLERANCE_BPS)
        if value < 0:
            raise InvalidConfigValue(ConfigParameter.SLIPPAGE_TOLERANCE.value, value)
        old = self._config.slippage_tolerance_bps
        self._config.slippage_tolerance_bps = value
        self._updated(ConfigParameter.SLIPPAGE_TOLERANCE, old, value)

    def set_max_gas_price(self, caller: str, value: int) -> None:
        require(self.access, caller, "set_max_gas_price")
        if value < 0:
            raise InvalidConfigValue(ConfigParameter.MAX_GAS_PRICE.value, value)
        old = self._config.max_gas_price
        self._config.max_gas_price = value
        self._updated(ConfigParameter.MAX_GAS_PRICE, old, value)

    def toggle_active(self, caller: str) -> bool:
        require(self.access, caller, "toggle_active")
        self._config.active = not self._config.active
        self.audit.emit(CircuitBreakerTriggered(active=self._config.active))
        logger.warning(
            "Circuit breaker toggled",
            extra={"context": {"active": self._config.active, "caller": caller}},
        )
        return self._config.active

    def set_pool_fee_preference(self, caller: str, token_a: str, token_b: str, fee: int) -> None:
        require(self.access, caller, "set_pool_fee_preference")
        if fee not in V3_FEE_TIERS:
            raise InvalidFeeTier(fee)
        old = self.pool_fees.set(token_a, token_b, fee)
        self._updated(ConfigParameter.POOL_FEE_PREFERENCE, old, fee)

    def set_price_feed(self, caller: str, token: str, feed: Optional[PriceFeed]) -> None:
        require(self.access, caller, "set_price_feed")
        old = self.price_feeds.set(token, feed)
        self._updated(ConfigParameter.PRICE_FEED, _feed_label(old), _feed_label(feed))
