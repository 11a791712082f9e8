# PATH: tests/integration/test_orchestrator.py
"""
Integration tests for the Loan Orchestrator.

Every test runs the full engine (ledger, lender, venues, router,
guardrails, settlement) from conftest.build_engine. Failure tests check
that an aborted attempt leaves the ledger exactly as it found it.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import (
    BOT,
    FEE_TIER_ROUTER,
    GWEI,
    LENDER,
    ONE_WETH,
    OWNER,
    PATH_ROUTER,
    PATH_WETH_REF_FLAT,
    STRANGER,
    USDC,
    WETH,
)
from core.constants import SwapDirection, VenueKind
from core.exceptions import (
    AbnormalGasPrice,
    ArbError,
    CallbackExpired,
    ContractPaused,
    FlashLoanFailed,
    InsufficientBalance,
    InsufficientFundsForRepayment,
    InvalidAmount,
    InvalidCallback,
    InvalidFeeTier,
    InvalidTokenPair,
    ProfitBelowThreshold,
    ReentrantCall,
    Unauthorized,
)
from core.models import ZERO_ADDRESS, ArbitrageRequest, LoanPayload
from execution.events import ArbitrageExecuted, ArbitrageFailed

pytestmark = pytest.mark.integration

NET_PROFIT = 15_900_000_000_000_000
COST = 500_000_000_000_000


class InterferingLender:
    """
    Wraps the in-memory lender to interfere with one loan.

    `before` runs ahead of the real loan; `payload_override` and
    `amount_override` corrupt what the orchestrator receives.
    """

    def __init__(self, inner, before=None, payload_override=None, amount_override=None):
        self.inner = inner
        self.address = inner.address
        self.loan_gas = inner.loan_gas
        self.before = before
        self.payload_override = payload_override
        self.amount_override = amount_override
        self.payloads = []
        self.before_errors = []

    async def flash_loan(self, recipient, tokens, amounts, payload):
        self.payloads.append(payload)
        if self.before is not None:
            try:
                await self.before()
            except ArbError as e:
                self.before_errors.append(e)
        if self.payload_override is not None:
            payload = self.payload_override
        if self.amount_override is not None:
            amounts = [self.amount_override]
        await self.inner.flash_loan(recipient, tokens, amounts, payload)


def _install(engine, lender):
    engine.orchestrator.lender = lender
    return lender


class TestProfitableAttempt:
    """Reference spread: borrow 1 WETH, WETH->USDC at 0.05%, USDC->WETH at 0.25%."""

    @pytest.mark.asyncio
    async def test_commits_and_pays_owner(self, engine):
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert result.settlement.gross_profit == 16_400_000_000_000_000
        assert result.settlement.cost_in_token == COST
        assert result.net_profit == NET_PROFIT
        assert result.settlement.gas_used == 250_000

        ledger = engine.ledger
        assert ledger.balance_of(OWNER, WETH) == NET_PROFIT
        assert ledger.balance_of(BOT, WETH) == COST
        assert ledger.balance_of(BOT, USDC) == 0
        assert ledger.balance_of(LENDER, WETH) == 1_000 * ONE_WETH
        assert engine.lender.loans_served == 1

    @pytest.mark.asyncio
    async def test_legs_and_history(self, engine):
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        leg1, leg2 = result.legs
        assert (leg1.venue, leg1.token_in, leg1.amount_out) == (VenueKind.FEE_TIER, WETH, 3_050_000_000)
        assert leg1.fee_tier == 500
        assert (leg2.venue, leg2.amount_in) == (VenueKind.PATH, 3_050_000_000)
        assert leg2.amount_out == 1_016_400_000_000_000_000

        states = [t["to_state"] for t in result.history]
        assert states == [
            "VALIDATING", "LOAN_REQUESTED", "LOAN_GRANTED", "SWAP_LEG_1", "SWAP_LEG_2",
            "SETTLEMENT_CHECK", "PROFIT_OK", "DISBURSE", "DONE",
        ]

    @pytest.mark.asyncio
    async def test_emits_executed_event(self, engine):
        await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        event = engine.audit.last()
        assert isinstance(event, ArbitrageExecuted)
        assert event.net_profit == NET_PROFIT
        assert event.gross_profit == 16_400_000_000_000_000
        assert event.cost_used == COST
        assert engine.audit.of_type(ArbitrageFailed) == []

    @pytest.mark.asyncio
    async def test_no_residue(self, engine):
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert len(engine.orchestrator.sessions) == 0
        assert not engine.orchestrator.busy
        assert engine.ledger.allowance(BOT, FEE_TIER_ROUTER, WETH) == 0
        assert engine.ledger.allowance(BOT, PATH_ROUTER, USDC) == 0
        assert engine.ledger.depth == 0
        assert len(result.session_id) == 64

    @pytest.mark.asyncio
    async def test_threshold_equal_to_net_passes(self, make_engine):
        engine = make_engine(min_profit_threshold=NET_PROFIT)
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)
        assert result.net_profit == NET_PROFIT

    @pytest.mark.asyncio
    async def test_lender_fee_reduces_profit(self, make_engine):
        engine = make_engine(lender_fee_bps=9)
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert result.settlement.repay_amount == ONE_WETH + 9 * 10**14
        assert result.net_profit == NET_PROFIT - 9 * 10**14
        assert engine.ledger.balance_of(LENDER, WETH) == 1_000 * ONE_WETH + 9 * 10**14

    @pytest.mark.asyncio
    async def test_explicit_fee_hint_selects_tier(self, engine):
        # The 0.3% pool pays 2991 USDC; the round trip is then insolvent
        with pytest.raises(InsufficientFundsForRepayment):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH, fee_hint=3000)

    @pytest.mark.asyncio
    async def test_path_first_direction(self, make_engine):
        # Path venue prices WETH richer than the fee-tier venue
        engine = make_engine(path_weth_ref=98 * 10**16)
        result = await engine.orchestrator.execute_arbitrage(
            OWNER, WETH, USDC, ONE_WETH, direction=SwapDirection.PATH_FIRST
        )

        assert [leg.venue for leg in result.legs] == [VenueKind.PATH, VenueKind.FEE_TIER]
        assert result.net_profit > 0
        assert engine.ledger.balance_of(OWNER, WETH) == result.net_profit

    @pytest.mark.asyncio
    async def test_attempts_are_repeatable(self, engine):
        first = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)
        second = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert first.session_id != second.session_id
        # The first attempt's retained cost share is not profit for the second
        assert second.settlement.gross_profit == first.settlement.gross_profit == 16_400_000_000_000_000
        assert engine.ledger.balance_of(OWNER, WETH) == 2 * NET_PROFIT
        assert engine.ledger.balance_of(BOT, WETH) == 2 * COST

    @pytest.mark.asyncio
    async def test_prior_holdings_are_not_paid_out(self, engine):
        engine.ledger.mint(BOT, WETH, 5 * ONE_WETH)

        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert result.settlement.final_balance == 1_016_400_000_000_000_000
        assert result.net_profit == NET_PROFIT
        assert engine.ledger.balance_of(OWNER, WETH) == NET_PROFIT
        assert engine.ledger.balance_of(BOT, WETH) == 5 * ONE_WETH + COST


class TestUnwoundAttempts:
    """Failures after the loan is requested roll back every transfer."""

    @pytest.mark.asyncio
    async def test_insolvent_round_trip(self, make_engine):
        engine = make_engine(path_weth_ref=PATH_WETH_REF_FLAT)
        before = engine.ledger.snapshot()

        with pytest.raises(InsufficientFundsForRepayment) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert exc_info.value.available == 997_500_000_000_000_000
        assert exc_info.value.required == ONE_WETH
        assert engine.ledger.snapshot() == before
        failed = engine.audit.last()
        assert isinstance(failed, ArbitrageFailed)
        assert failed.code == "INSUFFICIENT_FUNDS_FOR_REPAYMENT"
        assert failed.amount == ONE_WETH

    @pytest.mark.asyncio
    async def test_profit_below_threshold(self, make_engine):
        engine = make_engine(min_profit_threshold=NET_PROFIT + 1)
        before = engine.ledger.snapshot()

        with pytest.raises(ProfitBelowThreshold) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert exc_info.value.actual == NET_PROFIT
        assert engine.ledger.snapshot() == before
        assert engine.audit.last().code == "PROFIT_BELOW_THRESHOLD"

    @pytest.mark.asyncio
    async def test_lender_error_wrapped_as_flash_loan_failed(self, engine):
        broken = MagicMock()
        broken.address = LENDER
        broken.loan_gas = 50_000
        broken.flash_loan = AsyncMock(side_effect=RuntimeError("vault paused"))
        _install(engine, broken)
        before = engine.ledger.snapshot()

        with pytest.raises(FlashLoanFailed) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.reason == "vault paused"
        assert engine.ledger.snapshot() == before
        assert engine.audit.last().code == "FLASH_LOAN_FAILED"

    @pytest.mark.asyncio
    async def test_lender_without_liquidity(self, make_engine):
        engine = make_engine(lender_liquidity=0)

        with pytest.raises(FlashLoanFailed) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert isinstance(exc_info.value.cause, InsufficientBalance)

    @pytest.mark.asyncio
    async def test_lender_that_never_calls_back(self, engine):
        silent = MagicMock()
        silent.address = LENDER
        silent.loan_gas = 50_000
        silent.flash_loan = AsyncMock(return_value=None)
        _install(engine, silent)

        with pytest.raises(FlashLoanFailed):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert len(engine.orchestrator.sessions) == 0

    @pytest.mark.asyncio
    async def test_failed_attempt_clears_session_and_lock(self, make_engine):
        engine = make_engine(path_weth_ref=PATH_WETH_REF_FLAT)

        with pytest.raises(InsufficientFundsForRepayment):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert len(engine.orchestrator.sessions) == 0
        assert not engine.orchestrator.busy
        assert engine.ledger.depth == 0


class TestPolicyRejections:
    """Rejected before any collaborator is contacted; no ArbitrageFailed."""

    @pytest.mark.asyncio
    async def test_unauthorized_caller(self, engine):
        with pytest.raises(Unauthorized):
            await engine.orchestrator.execute_arbitrage(STRANGER, WETH, USDC, ONE_WETH)
        assert engine.lender.loans_served == 0

    @pytest.mark.asyncio
    async def test_circuit_breaker(self, engine):
        engine.guardrails.toggle_active(OWNER)

        with pytest.raises(ContractPaused):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert engine.lender.loans_served == 0
        assert engine.audit.of_type(ArbitrageFailed) == []

        engine.guardrails.toggle_active(OWNER)
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)
        assert result.net_profit == NET_PROFIT

    @pytest.mark.asyncio
    async def test_gas_ceiling(self, make_engine):
        engine = make_engine(gas_price=101 * GWEI)

        with pytest.raises(AbnormalGasPrice):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        engine.guardrails.set_max_gas_price(OWNER, 101 * GWEI)
        # Passes the gate; the cost now exceeds the gross and net clamps to zero
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)
        assert result.settlement.cost_in_token == 250_000 * 101 * GWEI
        assert result.net_profit == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("borrow,target", [
        (WETH, WETH),
        (ZERO_ADDRESS, USDC),
        (WETH, ""),
    ])
    async def test_invalid_token_pair(self, engine, borrow, target):
        with pytest.raises(InvalidTokenPair):
            await engine.orchestrator.execute_arbitrage(OWNER, borrow, target, ONE_WETH)
        assert len(engine.orchestrator.sessions) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1])
    async def test_invalid_amount(self, engine, amount):
        with pytest.raises(InvalidAmount):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, amount)

    @pytest.mark.asyncio
    async def test_invalid_fee_hint(self, engine):
        with pytest.raises(InvalidFeeTier):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH, fee_hint=2500)
        assert engine.audit.of_type(ArbitrageFailed) == []


class TestReentrancy:

    @pytest.mark.asyncio
    async def test_nested_execute_rejected(self, engine):
        orchestrator = engine.orchestrator

        async def reenter():
            await orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        lender = _install(engine, InterferingLender(engine.lender, before=reenter))
        result = await orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert [type(e) for e in lender.before_errors] == [ReentrantCall]
        assert result.net_profit == NET_PROFIT
        assert engine.lender.loans_served == 1

    @pytest.mark.asyncio
    async def test_emergency_withdraw_rejected_mid_attempt(self, engine):
        orchestrator = engine.orchestrator

        async def withdraw():
            orchestrator.emergency_withdraw(OWNER, WETH)

        lender = _install(engine, InterferingLender(engine.lender, before=withdraw))
        await orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert [type(e) for e in lender.before_errors] == [ReentrantCall]


class TestCallbackAuthentication:

    @pytest.mark.asyncio
    async def test_foreign_caller_rejected(self, engine):
        payload = LoanPayload("x", ArbitrageRequest(WETH, USDC, ONE_WETH)).encode()
        with pytest.raises(Unauthorized):
            await engine.orchestrator.receive_flash_loan(STRANGER, [WETH], [ONE_WETH], [0], payload)

    @pytest.mark.asyncio
    async def test_unsolicited_callback_rejected(self, engine):
        payload = LoanPayload("deadbeef", ArbitrageRequest(WETH, USDC, ONE_WETH)).encode()
        with pytest.raises(InvalidCallback):
            await engine.orchestrator.receive_flash_loan(LENDER, [WETH], [ONE_WETH], [0], payload)

    @pytest.mark.asyncio
    async def test_replayed_callback_rejected(self, engine):
        lender = _install(engine, InterferingLender(engine.lender))
        await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)
        before = engine.ledger.snapshot()

        with pytest.raises(InvalidCallback):
            await engine.orchestrator.receive_flash_loan(
                LENDER, [WETH], [ONE_WETH], [0], lender.payloads[0]
            )
        assert engine.ledger.snapshot() == before

    @pytest.mark.asyncio
    async def test_expired_callback_rejected(self, engine):
        async def stall():
            engine.clock.advance(301)

        _install(engine, InterferingLender(engine.lender, before=stall))
        before = engine.ledger.snapshot()

        with pytest.raises(CallbackExpired):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert engine.ledger.snapshot() == before
        assert engine.audit.last().code == "CALLBACK_EXPIRED"

    @pytest.mark.asyncio
    async def test_malformed_payload_rejected(self, engine):
        _install(engine, InterferingLender(engine.lender, payload_override=b"garbage"))

        with pytest.raises(InvalidCallback):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

    @pytest.mark.asyncio
    async def test_mismatched_terms_rejected(self, engine):
        _install(engine, InterferingLender(engine.lender, amount_override=ONE_WETH // 2))
        before = engine.ledger.snapshot()

        with pytest.raises(InvalidCallback) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert exc_info.value.details["reason"] == "loan terms do not match the request"
        assert engine.ledger.snapshot() == before

    @pytest.mark.asyncio
    async def test_payload_carries_request(self, engine):
        lender = _install(engine, InterferingLender(engine.lender))
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH, fee_hint=500)

        decoded = LoanPayload.decode(lender.payloads[0])
        assert decoded.session_id == result.session_id
        assert decoded.request == result.request


class TestOwnerSurface:

    def test_emergency_withdraw(self, engine):
        engine.ledger.mint(BOT, WETH, 5 * ONE_WETH)

        assert engine.orchestrator.emergency_withdraw(OWNER, WETH) == 5 * ONE_WETH
        assert engine.ledger.balance_of(OWNER, WETH) == 5 * ONE_WETH
        assert engine.ledger.balance_of(BOT, WETH) == 0

    def test_emergency_withdraw_empty_balance(self, engine):
        assert engine.orchestrator.emergency_withdraw(OWNER, USDC) == 0

    def test_emergency_withdraw_requires_owner(self, engine):
        engine.ledger.mint(BOT, WETH, ONE_WETH)
        with pytest.raises(Unauthorized):
            engine.orchestrator.emergency_withdraw(STRANGER, WETH)
        assert engine.ledger.balance_of(BOT, WETH) == ONE_WETH

    def test_get_config(self, engine):
        config = engine.orchestrator.get_config()

        assert config["min_profit_threshold"] == 0
        assert config["slippage_tolerance_bps"] == 50
        assert config["max_gas_price"] == 100 * GWEI
        assert config["active"] is True
        assert config["owner"] == OWNER
        assert config["orchestrator"] == BOT
        assert config["lender"] == LENDER
        assert config["venues"] == {"FEE_TIER": FEE_TIER_ROUTER, "PATH": PATH_ROUTER}
        assert config["default_pool_fee"] == 3000

    def test_read_only_getters(self, engine):
        assert engine.orchestrator.get_preferred_pool_fee(USDC, WETH) == 500
        assert engine.orchestrator.get_price_feed(WETH) is None

    @pytest.mark.asyncio
    async def test_config_changes_apply_to_next_attempt(self, engine):
        engine.guardrails.set_min_profit_threshold(OWNER, NET_PROFIT + 1)
        with pytest.raises(ProfitBelowThreshold):
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        engine.guardrails.set_min_profit_threshold(OWNER, 0)
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)
        assert result.net_profit == NET_PROFIT


class _HungLender:
    """Accepts the loan request and never calls back."""

    address = LENDER
    loan_gas = 50_000

    async def flash_loan(self, recipient, tokens, amounts, payload):
        await asyncio.Event().wait()


class _ShortCallbackLender:
    """Calls back with a token list but no amounts."""

    address = LENDER
    loan_gas = 50_000

    async def flash_loan(self, recipient, tokens, amounts, payload):
        await recipient.receive_flash_loan(self.address, list(tokens), [], [], payload)


class TestSharedLedger:
    """Rollback reverses the attempt's own writes and nothing else."""

    @pytest.mark.asyncio
    async def test_concurrent_writer_survives_failed_attempt(self, make_engine):
        engine = make_engine(path_weth_ref=PATH_WETH_REF_FLAT)
        inside, resume = asyncio.Event(), asyncio.Event()

        async def pause():
            inside.set()
            await resume.wait()

        _install(engine, InterferingLender(engine.lender, before=pause))

        async def other_writer():
            await inside.wait()
            engine.ledger.mint(STRANGER, USDC, 777)
            engine.ledger.transfer(LENDER, STRANGER, WETH, ONE_WETH)
            resume.set()

        outcome, _ = await asyncio.gather(
            engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH),
            other_writer(),
            return_exceptions=True,
        )

        assert isinstance(outcome, InsufficientFundsForRepayment)
        assert engine.ledger.balance_of(STRANGER, USDC) == 777
        assert engine.ledger.balance_of(STRANGER, WETH) == ONE_WETH
        assert engine.ledger.balance_of(LENDER, WETH) == 999 * ONE_WETH
        assert engine.ledger.balance_of(BOT, WETH) == 0
        assert engine.ledger.balance_of(BOT, USDC) == 0

    @pytest.mark.asyncio
    async def test_prior_holdings_do_not_cover_a_losing_round_trip(self, make_engine):
        engine = make_engine(path_weth_ref=PATH_WETH_REF_FLAT)
        engine.ledger.mint(BOT, WETH, 5 * ONE_WETH)
        before = engine.ledger.snapshot()

        with pytest.raises(InsufficientFundsForRepayment) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert exc_info.value.available == 997_500_000_000_000_000
        assert engine.ledger.snapshot() == before


class TestLoanTimeout:

    @pytest.mark.asyncio
    async def test_hung_lender_times_out_and_releases_lock(self, engine):
        real_lender = engine.orchestrator.lender
        engine.orchestrator.loan_timeout = 0.05
        _install(engine, _HungLender())
        before = engine.ledger.snapshot()

        with pytest.raises(FlashLoanFailed) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)
        assert not engine.orchestrator.busy
        assert len(engine.orchestrator.sessions) == 0
        assert engine.ledger.snapshot() == before
        assert engine.audit.last().code == "FLASH_LOAN_FAILED"

        _install(engine, real_lender)
        result = await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)
        assert result.net_profit == NET_PROFIT

    def test_default_timeout_is_swap_deadline(self, engine):
        assert engine.orchestrator.loan_timeout == 300


class TestCallbackShape:

    @pytest.mark.asyncio
    async def test_missing_amounts_rejected(self, engine):
        _install(engine, _ShortCallbackLender())

        with pytest.raises(InvalidCallback) as exc_info:
            await engine.orchestrator.execute_arbitrage(OWNER, WETH, USDC, ONE_WETH)

        assert exc_info.value.details["reason"] == "loan terms do not match the request"
        assert engine.audit.last().code == "INVALID_CALLBACK"
