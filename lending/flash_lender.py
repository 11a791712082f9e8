"""
lending/flash_lender.py - Flash loan facility contract and in-memory lender.

LENDING CONTRACT (Balancer Vault style):
========================================
  flash_loan(recipient, tokens, amounts, payload)
    1. transfers every amount to the recipient
    2. awaits recipient.receive_flash_loan(caller=self.address, ...)
       within the same unit of work
    3. verifies its own balance of each token grew back by at least the
       fee, otherwise raises LoanNotRepaid and the whole unit unwinds
========================================
"""

from typing import List, Protocol, runtime_checkable

from core.constants import BPS_DENOMINATOR, FLASH_LOAN_BASE_GAS
from core.exceptions import InsufficientBalance, LoanNotRepaid
from core.ledger import Ledger
from core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class FlashLoanRecipient(Protocol):
    """Receiver of flash loan callbacks."""

    address: str

    async def receive_flash_loan(
        self,
        caller: str,
        tokens: List[str],
        amounts: List[int],
        fees: List[int],
        payload: bytes,
    ) -> None:
        ...


@runtime_checkable
class FlashLoanProvider(Protocol):
    """Borrow-and-callback primitive."""

    address: str
    loan_gas: int

    async def flash_loan(
        self,
        recipient: FlashLoanRecipient,
        tokens: List[str],
        amounts: List[int],
        payload: bytes,
    ) -> None:
        ...


class FlashLender:
    """
    In-memory flash lender over the Ledger.

    Usage:
        lender = FlashLender(ledger, "0xBA12...", fee_bps=0)
        ledger.mint(lender.address, WETH, 1_000 * 10**18)
        await lender.flash_loan(bot, [WETH], [10**18], payload)
    """

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        fee_bps: int = 0,
        loan_gas: int = FLASH_LOAN_BASE_GAS,
    ):
        self.ledger = ledger
        self.address = address
        self.fee_bps = fee_bps
        self.loan_gas = loan_gas
        self.loans_served = 0

    def fee_for(self, amount: int) -> int:
        """Fee owed on top of the principal (rounds up)."""
        return -(-amount * self.fee_bps // BPS_DENOMINATOR)

    async def flash_loan(
        self,
        recipient: FlashLoanRecipient,
        tokens: List[str],
        amounts: List[int],
        payload: bytes,
    ) -> None:
        if len(tokens) != len(amounts) or not tokens:
            raise ValueError("tokens and amounts must be non-empty and of equal length")

        with self.ledger.atomic():
            pre_balances = [self.ledger.balance_of(self.address, t) for t in tokens]
            fees = [self.fee_for(a) for a in amounts]

            for token, amount, available in zip(tokens, amounts, pre_balances):
                if available < amount:
                    raise InsufficientBalance(self.address, token, available, amount)
                self.ledger.transfer(self.address, recipient.address, token, amount)

            await recipient.receive_flash_loan(self.address, tokens, amounts, fees, payload)

            for token, before, fee in zip(tokens, pre_balances, fees):
                after = self.ledger.balance_of(self.address, token)
                if after < before + fee:
                    raise LoanNotRepaid(token, before + fee, after)

        self.loans_served += 1
        logger.debug(
            "Flash loan repaid",
            extra={"context": {"tokens": tokens, "amounts": amounts, "fees": fees}},
        )

