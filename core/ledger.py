# PATH: core/ledger.py
"""
core/ledger.py - Token balances, allowances and the unit of work.

The ledger is the shared state every collaborator (lender, venues,
orchestrator) reads and writes. `atomic()` is the indivisible unit of
work: every balance and allowance change made inside the block is
journaled as a delta, and if anything escapes the block those deltas are
reversed, newest first. Only the block's own writes are undone; writes by
other tasks that interleave while the block awaits are left alone.

Journals are tracked per task (contextvars), so a unit of work belongs to
the coroutine that opened it and to tasks it spawns. Units of work nest:
a committed inner block hands its entries to the enclosing one, a failed
inner block undoes only its own.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple

from core.exceptions import InsufficientAllowance, InsufficientBalance, InvalidAmount
from core.logging import get_logger

logger = get_logger(__name__)

BalanceKey = Tuple[str, str]          # (account, token)
AllowanceKey = Tuple[str, str, str]   # (owner, spender, token)

# (table name, key, delta)
JournalEntry = Tuple[str, tuple, int]


def _addr(address: str) -> str:
    return address.lower()


@dataclass(frozen=True)
class LedgerSnapshot:
    """Immutable copy of ledger state."""
    balances: Dict[BalanceKey, int]
    allowances: Dict[AllowanceKey, int]


class Ledger:
    """
    In-memory token ledger with journaled units of work.

    Usage:
        ledger = Ledger()
        ledger.mint(lender, WETH, 10**21)
        with ledger.atomic():
            ledger.transfer(lender, bot, WETH, 10**18)
            ...  # any exception here reverses the transfer above
    """

    def __init__(self):
        self._balances: Dict[BalanceKey, int] = {}
        self._allowances: Dict[AllowanceKey, int] = {}
        self._journals: ContextVar[Tuple[List[JournalEntry], ...]] = ContextVar(
            f"ledger_journals_{id(self)}", default=()
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def balance_of(self, account: str, token: str) -> int:
        return self._balances.get((_addr(account), _addr(token)), 0)

    def allowance(self, owner: str, spender: str, token: str) -> int:
        return self._allowances.get((_addr(owner), _addr(spender), _addr(token)), 0)

    @property
    def depth(self) -> int:
        """Number of units of work open in the current task."""
        return len(self._journals.get())

    def snapshot(self) -> LedgerSnapshot:
        """Copy of the current state, with zero entries dropped."""
        return LedgerSnapshot(
            balances={k: v for k, v in self._balances.items() if v},
            allowances={k: v for k, v in self._allowances.items() if v},
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _table(self, name: str) -> Dict[tuple, int]:
        return self._balances if name == "balance" else self._allowances

    def _apply(self, name: str, key: tuple, delta: int) -> None:
        if delta == 0:
            return
        table = self._table(name)
        table[key] = table.get(key, 0) + delta
        journals = self._journals.get()
        if journals:
            journals[-1].append((name, key, delta))

    def mint(self, account: str, token: str, amount: int) -> None:
        """Credit `amount` out of thin air (seeding sandboxes and tests)."""
        if amount < 0:
            raise InvalidAmount(amount)
        self._apply("balance", (_addr(account), _addr(token)), amount)

    def transfer(self, sender: str, recipient: str, token: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(amount)
        balance = self.balance_of(sender, token)
        if balance < amount:
            raise InsufficientBalance(sender, token, balance, amount)
        self._apply("balance", (_addr(sender), _addr(token)), -amount)
        self._apply("balance", (_addr(recipient), _addr(token)), amount)

    def approve(self, owner: str, spender: str, token: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(amount)
        key = (_addr(owner), _addr(spender), _addr(token))
        self._apply("allowance", key, amount - self._allowances.get(key, 0))

    def transfer_from(
        self,
        spender: str,
        owner: str,
        recipient: str,
        token: str,
        amount: int,
    ) -> None:
        """Move `owner`'s tokens on behalf of `spender`, consuming allowance."""
        allowed = self.allowance(owner, spender, token)
        if allowed < amount:
            raise InsufficientAllowance(owner, spender, token, allowed, amount)
        self.transfer(owner, recipient, token, amount)
        self._apply("allowance", (_addr(owner), _addr(spender), _addr(token)), -amount)

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def _undo(self, journal: List[JournalEntry]) -> None:
        for name, key, delta in reversed(journal):
            table = self._table(name)
            table[key] = table.get(key, 0) - delta

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        """
        Run a block as one indivisible unit of work.

        Any exception leaving the block reverses every balance and
        allowance change the block made, then propagates.
        """
        journal: List[JournalEntry] = []
        outer = self._journals.get()
        token = self._journals.set(outer + (journal,))
        try:
            yield self
        except BaseException as e:
            self._undo(journal)
            logger.debug(
                "Unit of work rolled back",
                extra={
                    "context": {
                        "depth": len(outer) + 1,
                        "entries": len(journal),
                        "error_type": type(e).__name__,
                    }
                },
            )
            raise
        else:
            if outer:
                outer[-1].extend(journal)
        finally:
            self._journals.reset(token)
