"""
execution/orchestrator.py - Loan Orchestrator.

Entry point of the engine. One attempt:

  execute_arbitrage(caller, ...)
    authorize -> non-reentrancy -> gas price -> guardrails -> validate
    open session -> ledger.atomic { lender.flash_loan(self, ...) within loan_timeout }
        receive_flash_loan(lender, tokens, amounts, fees, payload)
          claim session -> leg 1 -> leg 2 -> settle -> disburse
    commit: ArbitrageExecuted | rollback: ArbitrageFailed
    session cleared on every path

Failures raised inside the callback keep their own names. Anything else
escaping the lending primitive is reported as FlashLoanFailed with the
underlying cause attached. A lender that has not settled within `loan_timeout`
(the swap deadline by default) is cancelled and reported the same way,
which also releases the non-reentrancy lock.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.constants import SWAP_DEADLINE_SECONDS, V3_FEE_TIERS, SessionState, SwapDirection
from core.exceptions import (
    ArbError,
    FlashLoanFailed,
    InvalidAmount,
    InvalidCallback,
    InvalidFeeTier,
    InvalidTokenPair,
    ProfitBelowThreshold,
    ReentrantCall,
    Unauthorized,
)
from core.ledger import Ledger
from core.logging import get_logger, log_attempt
from core.models import (
    ArbitrageRequest,
    ArbitrageResult,
    LoanPayload,
    LoanTerms,
    SettlementResult,
    SwapOutcome,
    is_zero_address,
)
from core.time import Clock, deadline_from, now_timestamp
from execution.access import require
from execution.events import ArbitrageFailed, AuditLog
from execution.guardrails import GuardrailController
from execution.router import SwapRouter
from execution.sessions import LoanSession, SessionTable
from execution.settlement import GasMeter, GasPriceSource, SettlementEngine, executed_event
from execution.state_machine import AttemptState, AttemptStateMachine
from lending.flash_lender import FlashLoanProvider

logger = get_logger(__name__)


@dataclass
class _Attempt:
    """State of the single in-flight attempt."""
    session: LoanSession
    machine: AttemptStateMachine
    gas_price: int
    opening_balance: int = 0
    meter: GasMeter = field(default_factory=GasMeter)
    legs: List[SwapOutcome] = field(default_factory=list)
    settlement: Optional[SettlementResult] = None
    callback_error: Optional[BaseException] = None


class ArbitrageOrchestrator:
    """
    Validates a caller-supplied candidate and runs it under a flash loan.

    Usage:
        orchestrator = ArbitrageOrchestrator(
            address="0xBot", ledger=ledger, lender=lender, router=router,
            guardrails=guardrails, settlement=settlement, audit=audit,
            gas_price_source=StaticGasPrice(2 * 10**9),
        )
        result = await orchestrator.execute_arbitrage(owner, WETH, USDC, 10**18)
    """

    def __init__(
        self,
        *,
        address: str,
        ledger: Ledger,
        lender: FlashLoanProvider,
        router: SwapRouter,
        guardrails: GuardrailController,
        settlement: SettlementEngine,
        audit: AuditLog,
        gas_price_source: GasPriceSource,
        sessions: Optional[SessionTable] = None,
        clock: Optional[Clock] = None,
        loan_timeout: float = SWAP_DEADLINE_SECONDS,
    ):
        self.address = address
        self.ledger = ledger
        self.lender = lender
        self.router = router
        self.guardrails = guardrails
        self.settlement = settlement
        self.audit = audit
        self.gas_price_source = gas_price_source
        self.clock = clock or now_timestamp
        self.sessions = sessions or SessionTable(clock=self.clock)
        self.loan_timeout = loan_timeout

        self._lock = asyncio.Lock()
        self._current: Optional[_Attempt] = None
        self._attempts = 0

    @property
    def owner(self) -> str:
        return self.guardrails.access.owner

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # =========================================================================
    # ENTRY
    # =========================================================================

    async def execute_arbitrage(
        self,
        caller: str,
        token_borrow: str,
        token_target: str,
        amount: int,
        fee_hint: int = 0,
        direction: SwapDirection = SwapDirection.FEE_TIER_FIRST,
    ) -> ArbitrageResult:
        """
        Run one arbitrage attempt.

        Args:
            caller: initiating principal, must be authorized
            token_borrow: token to borrow and repay
            token_target: intermediate token
            amount: principal in raw units of token_borrow
            fee_hint: fee tier for the fee-tiered venue (0 = preference)
            direction: which venue is hit first

        Returns:
            ArbitrageResult for a committed attempt.

        Raises:
            PolicyRejection, ValidationError: before any collaborator call
            FlashLoanFailed: lending primitive failed
            SolvencyFailure, PolicyShortfall, SwapError: raised in the callback
        """
        require(self.guardrails.access, caller, "execute_arbitrage")
        if self._lock.locked():
            raise ReentrantCall()

        async with self._lock:
            return await self._execute(
                caller,
                ArbitrageRequest(
                    token_borrow=token_borrow,
                    token_target=token_target,
                    amount=amount,
                    pool_fee_hint=fee_hint,
                    direction=SwapDirection(direction),
                ),
            )

    def _validate(self, request: ArbitrageRequest) -> None:
        if (
            is_zero_address(request.token_borrow)
            or is_zero_address(request.token_target)
            or request.token_borrow.lower() == request.token_target.lower()
        ):
            raise InvalidTokenPair(request.token_borrow, request.token_target)
        if request.amount <= 0:
            raise InvalidAmount(request.amount)
        if request.pool_fee_hint and request.pool_fee_hint not in V3_FEE_TIERS:
            raise InvalidFeeTier(request.pool_fee_hint)

    async def _execute(self, caller: str, request: ArbitrageRequest) -> ArbitrageResult:
        self._attempts += 1
        machine = AttemptStateMachine(attempt_id=f"{self.address}:{self._attempts}")
        machine.transition_to(AttemptState.VALIDATING)

        try:
            gas_price = await self.gas_price_source.get_gas_price()
            self.guardrails.enforce(gas_price)
            self._validate(request)
        except ArbError as e:
            machine.abort(reason=e.code.value)
            log_attempt(logger, machine.attempt_id, "REJECTED", reason=str(e), **request.to_dict())
            raise

        session = self.sessions.open(request, caller, deadline_from(self.clock()))
        attempt = _Attempt(session=session, machine=machine, gas_price=gas_price)
        self._current = attempt
        machine.transition_to(AttemptState.LOAN_REQUESTED, metadata={"session_id": session.session_id})

        payload = LoanPayload(session.session_id, request).encode()
        attempt.opening_balance = self.ledger.balance_of(self.address, request.token_borrow)
        try:
            with self.ledger.atomic():
                try:
                    await asyncio.wait_for(
                        self.lender.flash_loan(self, [request.token_borrow], [request.amount], payload),
                        timeout=self.loan_timeout,
                    )
                except asyncio.TimeoutError as e:
                    raise FlashLoanFailed(
                        f"lender did not settle within {self.loan_timeout}s", cause=e
                    ) from e
                if attempt.settlement is None:
                    raise FlashLoanFailed("lender returned without invoking the callback")
            self.sessions.mark(session.session_id, SessionState.SETTLED)
        except Exception as e:
            raise self._fail(attempt, request, e)
        finally:
            self._current = None
            self.sessions.clear(session.session_id)

        machine.transition_to(AttemptState.DONE)
        self.audit.emit(executed_event(request, attempt.settlement))
        log_attempt(
            logger,
            session.session_id,
            "EXECUTED",
            net_profit=attempt.settlement.net_profit,
            gross_profit=attempt.settlement.gross_profit,
        )
        return ArbitrageResult(
            session_id=session.session_id,
            request=request,
            legs=attempt.legs,
            settlement=attempt.settlement,
            history=[t.to_dict() for t in machine.history],
        )

    def _fail(self, attempt: _Attempt, request: ArbitrageRequest, error: Exception) -> Exception:
        """Classify a failure after the loan was requested; returns the error to raise."""
        machine = attempt.machine
        self.sessions.mark(attempt.session.session_id, SessionState.ABORTED)

        if error is attempt.callback_error or isinstance(error, FlashLoanFailed):
            surfaced = error
        else:
            if machine.state == AttemptState.LOAN_REQUESTED:
                machine.transition_to(AttemptState.LOAN_DENIED, reason=str(error))
            surfaced = FlashLoanFailed(str(error) or type(error).__name__, cause=error)
            surfaced.__cause__ = error

        machine.abort(reason=str(surfaced))
        code = surfaced.code.value if isinstance(surfaced, ArbError) else type(surfaced).__name__
        self.audit.emit(
            ArbitrageFailed(
                token_borrow=request.token_borrow,
                token_target=request.token_target,
                amount=request.amount,
                reason=str(error),
                code=code,
            )
        )
        log_attempt(logger, attempt.session.session_id, "ABORTED", reason=str(surfaced), code=code)
        return surfaced

    # =========================================================================
    # LOAN CALLBACK
    # =========================================================================

    async def receive_flash_loan(
        self,
        caller: str,
        tokens: List[str],
        amounts: List[int],
        fees: List[int],
        payload: bytes,
    ) -> None:
        """Callback invoked by the lender once funds are delivered."""
        attempt = self._current
        try:
            await self._on_loan(attempt, caller, tokens, amounts, fees, payload)
        except Exception as e:
            if attempt is not None:
                attempt.callback_error = e
            raise

    async def _on_loan(
        self,
        attempt: Optional[_Attempt],
        caller: str,
        tokens: List[str],
        amounts: List[int],
        fees: List[int],
        payload: bytes,
    ) -> None:
        if caller.lower() != self.lender.address.lower():
            raise Unauthorized(caller, "receive_flash_loan")

        try:
            decoded = LoanPayload.decode(payload)
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidCallback("", "malformed payload") from e

        session = self.sessions.claim(decoded.session_id)
        if attempt is None or attempt.session.session_id != session.session_id:
            raise InvalidCallback(decoded.session_id, "session is not the active attempt")

        request = session.request
        if (
            len(tokens) != 1
            or len(amounts) != len(tokens)
            or len(fees) != len(tokens)
            or tokens[0].lower() != request.token_borrow.lower()
            or amounts[0] != request.amount
        ):
            raise InvalidCallback(session.session_id, "loan terms do not match the request")
        terms = LoanTerms(tokens=list(tokens), amounts=list(amounts), fees=list(fees))

        machine = attempt.machine
        machine.transition_to(AttemptState.LOAN_GRANTED, metadata={"fee": terms.fee})
        attempt.meter.charge("flash_loan", self.lender.loan_gas)

        first, second = request.venue_order

        machine.transition_to(AttemptState.SWAP_LEG_1, metadata={"venue": first.value})
        leg1 = await self.router.swap(
            first, request.token_borrow, request.token_target, terms.principal, request.pool_fee_hint
        )
        attempt.legs.append(leg1)
        attempt.meter.charge(f"leg1:{first.value}", leg1.gas_used)

        machine.transition_to(AttemptState.SWAP_LEG_2, metadata={"venue": second.value})
        leg2 = await self.router.swap(
            second, request.token_target, request.token_borrow, leg1.amount_out, request.pool_fee_hint
        )
        attempt.legs.append(leg2)
        attempt.meter.charge(f"leg2:{second.value}", leg2.gas_used)

        machine.transition_to(AttemptState.SETTLEMENT_CHECK)
        try:
            result = await self.settlement.evaluate(
                request.token_borrow,
                terms,
                attempt.meter.used,
                attempt.gas_price,
                self.guardrails.min_profit_threshold,
                opening_balance=attempt.opening_balance,
            )
        except ProfitBelowThreshold as e:
            machine.transition_to(AttemptState.PROFIT_SHORT, reason=str(e))
            raise

        machine.transition_to(AttemptState.PROFIT_OK, metadata={"net_profit": result.net_profit})
        machine.transition_to(AttemptState.DISBURSE)
        self.settlement.disburse(request.token_borrow, self.lender.address, result)
        attempt.settlement = result

    # =========================================================================
    # OWNER SURFACE
    # =========================================================================

    def emergency_withdraw(self, caller: str, token: str) -> int:
        """Move the orchestrator's full balance of `token` to the owner."""
        require(self.guardrails.access, caller, "emergency_withdraw")
        if self._lock.locked():
            raise ReentrantCall()

        balance = self.ledger.balance_of(self.address, token)
        if balance == 0:
            return 0

        self.ledger.transfer(self.address, self.owner, token, balance)
        logger.warning(
            "Emergency withdraw",
            extra={"context": {"token": token, "amount": balance, "owner": self.owner}},
        )
        return balance

    def get_config(self) -> Dict[str, Any]:
        """Full configuration including collaborator addresses."""
        return {
            **self.guardrails.config.to_dict(),
            "owner": self.owner,
            "orchestrator": self.address,
            "lender": self.lender.address,
            "venues": {kind.value: route.venue_address for kind, route in self.router.routes.items()},
            "default_pool_fee": self.guardrails.pool_fees.default_fee,
        }

    def get_preferred_pool_fee(self, token_a: str, token_b: str) -> int:
        return self.guardrails.get_preferred_pool_fee(token_a, token_b)

    def get_price_feed(self, token: str):
        return self.guardrails.get_price_feed(token)
