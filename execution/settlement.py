"""
execution/settlement.py - Settlement & Profit Engine.

SETTLEMENT CONTRACT:
====================
  final_balance = orchestrator balance of token_borrow, minus what it
                  held before the loan was requested
  repay_amount  = principal + loan fee
  final_balance < repay_amount      -> InsufficientFundsForRepayment
  gross_profit  = final_balance - repay_amount
  cost_wei      = (gas_used + SETTLEMENT_GAS_BUFFER) * gas_price
  cost_in_token = CostConverter.to_token(cost_wei, token_borrow)
  net_profit    = max(0, gross_profit - cost_in_token)
  net_profit < min_profit_threshold -> ProfitBelowThreshold
  disburse: repay_amount -> lender, net_profit -> owner

The part of gross profit set aside for the cost stays with the
orchestrator account. Balances held before an attempt (earlier cost
shares, stray deposits) are excluded from final_balance, so they are
never paid out as profit.
====================
"""

from dataclasses import dataclass, field
from typing import List, Protocol, Tuple, runtime_checkable

from core.constants import SETTLEMENT_GAS_BUFFER
from core.exceptions import InsufficientFundsForRepayment, ProfitBelowThreshold
from core.ledger import Ledger
from core.logging import get_logger
from core.models import ArbitrageRequest, LoanTerms, SettlementResult
from execution.events import ArbitrageExecuted
from oracle.price_feed import CostConverter

logger = get_logger(__name__)


# =============================================================================
# GAS ACCOUNTING
# =============================================================================

@runtime_checkable
class GasPriceSource(Protocol):
    """Prevailing unit cost of execution (wei per gas)."""

    async def get_gas_price(self) -> int:
        ...


class StaticGasPrice:
    """Fixed gas price (sandbox and tests). RPCProvider is the live source."""

    def __init__(self, wei: int):
        self.wei = wei

    async def get_gas_price(self) -> int:
        return self.wei


@dataclass
class GasMeter:
    """Gas consumed by one attempt so far."""
    entries: List[Tuple[str, int]] = field(default_factory=list)

    def charge(self, label: str, gas: int) -> None:
        self.entries.append((label, gas))

    @property
    def used(self) -> int:
        return sum(gas for _, gas in self.entries)


# =============================================================================
# ENGINE
# =============================================================================

class SettlementEngine:
    """
    Solvency check, profit gate and disbursement.

    Args:
        ledger: shared token ledger
        account: the orchestrator account holding the swap output
        owner: profit recipient
        cost_converter: native-wei -> borrowed-token conversion
        gas_buffer: gas still to be spent after settlement starts
    """

    def __init__(
        self,
        ledger: Ledger,
        account: str,
        owner: str,
        cost_converter: CostConverter,
        gas_buffer: int = SETTLEMENT_GAS_BUFFER,
    ):
        self.ledger = ledger
        self.account = account
        self.owner = owner
        self.cost_converter = cost_converter
        self.gas_buffer = gas_buffer

    def check_solvency(
        self, token: str, terms: LoanTerms, opening_balance: int = 0
    ) -> Tuple[int, int]:
        """Return (final_balance, repay_amount) or raise on shortfall."""
        final_balance = max(0, self.ledger.balance_of(self.account, token) - opening_balance)
        repay_amount = terms.repay_amount
        if final_balance < repay_amount:
            raise InsufficientFundsForRepayment(final_balance, repay_amount)
        return final_balance, repay_amount

    async def estimate_cost(self, token: str, gas_used: int, gas_price: int) -> int:
        cost_wei = (gas_used + self.gas_buffer) * gas_price
        return await self.cost_converter.to_token(cost_wei, token)

    async def evaluate(
        self,
        token: str,
        terms: LoanTerms,
        gas_used: int,
        gas_price: int,
        min_profit_threshold: int,
        opening_balance: int = 0,
    ) -> SettlementResult:
        """
        Compute the settlement numbers and apply both gates.

        `opening_balance` is what the account held in `token` before the
        loan; only the attempt's own proceeds count towards final_balance.

        Raises:
            InsufficientFundsForRepayment: solvency gate
            ProfitBelowThreshold: profit gate
        """
        final_balance, repay_amount = self.check_solvency(token, terms, opening_balance)
        gross_profit = final_balance - repay_amount
        cost_in_token = await self.estimate_cost(token, gas_used, gas_price)
        net_profit = max(0, gross_profit - cost_in_token)

        result = SettlementResult(
            final_balance=final_balance,
            repay_amount=repay_amount,
            gross_profit=gross_profit,
            cost_in_token=cost_in_token,
            net_profit=net_profit,
            gas_used=gas_used + self.gas_buffer,
            gas_price=gas_price,
        )
        logger.info(
            "Settlement evaluated",
            extra={"context": {"token": token, "threshold": min_profit_threshold, **result.to_dict()}},
        )

        if net_profit < min_profit_threshold:
            raise ProfitBelowThreshold(net_profit, min_profit_threshold)
        return result

    def disburse(self, token: str, lender: str, result: SettlementResult) -> None:
        self.ledger.transfer(self.account, lender, token, result.repay_amount)
        if result.net_profit > 0:
            self.ledger.transfer(self.account, self.owner, token, result.net_profit)


def executed_event(request: ArbitrageRequest, result: SettlementResult) -> ArbitrageExecuted:
    return ArbitrageExecuted(
        token_borrow=request.token_borrow,
        token_target=request.token_target,
        amount=request.amount,
        gross_profit=result.gross_profit,
        net_profit=result.net_profit,
        cost_used=result.cost_in_token,
        direction=request.direction.value,
    )
