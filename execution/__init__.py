# PATH: execution/__init__.py
"""
Execution engine.

Modules:
- guardrails: owner policy (circuit breaker, gas / slippage ceilings, profit threshold)
- router: Swap Router Adapter over the fee-tiered and path-based venues
- sessions: loan session table
- state_machine: attempt state machine
- settlement: solvency check, profit gate, disbursement
- orchestrator: Loan Orchestrator (entry point and loan callback)
- events: audit events and the audit log
- access: privileged-caller policy
"""

from execution.access import AccessPolicy, OwnerPolicy, require
from execution.events import (
    ArbitrageExecuted,
    ArbitrageFailed,
    AuditEvent,
    AuditLog,
    CircuitBreakerTriggered,
    ConfigUpdated,
)
from execution.guardrails import ArbitrageConfig, GuardrailController, PoolFeePreferences
from execution.orchestrator import ArbitrageOrchestrator
from execution.router import FeeTierRoute, PathRoute, SwapRoute, SwapRouter
from execution.sessions import LoanSession, SessionTable
from execution.settlement import GasMeter, GasPriceSource, SettlementEngine, StaticGasPrice
from execution.state_machine import (
    AttemptState,
    AttemptStateMachine,
    InvalidTransitionError,
    StateTransition,
    VALID_TRANSITIONS,
)

__all__ = [
    # Access / events
    "AccessPolicy",
    "OwnerPolicy",
    "require",
    "ArbitrageExecuted",
    "ArbitrageFailed",
    "AuditEvent",
    "AuditLog",
    "CircuitBreakerTriggered",
    "ConfigUpdated",
    # Guardrails
    "ArbitrageConfig",
    "GuardrailController",
    "PoolFeePreferences",
    # Engine
    "ArbitrageOrchestrator",
    "FeeTierRoute",
    "PathRoute",
    "SwapRoute",
    "SwapRouter",
    "LoanSession",
    "SessionTable",
    "GasMeter",
    "GasPriceSource",
    "SettlementEngine",
    "StaticGasPrice",
    # State machine
    "AttemptState",
    "AttemptStateMachine",
    "InvalidTransitionError",
    "StateTransition",
    "VALID_TRANSITIONS",
]
