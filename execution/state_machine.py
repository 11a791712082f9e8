# PATH: execution/state_machine.py
"""
Attempt state machine.

ATTEMPT STATE CONTRACT:
=======================

States (AttemptState):
  IDLE             → attempt created
  VALIDATING       → guardrails and request checks
  LOAN_REQUESTED   → borrow-and-callback primitive invoked
  LOAN_GRANTED     → callback accepted, funds delivered
  LOAN_DENIED      → lending primitive failed before the callback
  SWAP_LEG_1       → token_borrow → token_target
  SWAP_LEG_2       → token_target → token_borrow
  SETTLEMENT_CHECK → solvency and profit evaluation
  PROFIT_OK        → net profit meets the threshold
  PROFIT_SHORT     → solvent but below the threshold
  DISBURSE         → repay the lender, pay the owner
  DONE             → attempt committed
  ABORTED          → attempt unwound

Transitions:
  IDLE → VALIDATING → LOAN_REQUESTED
  LOAN_REQUESTED   → LOAN_GRANTED | LOAN_DENIED
  LOAN_GRANTED     → SWAP_LEG_1 → SWAP_LEG_2 → SETTLEMENT_CHECK
  SETTLEMENT_CHECK → PROFIT_OK | PROFIT_SHORT
  PROFIT_OK        → DISBURSE → DONE
  PROFIT_SHORT     → ABORTED
  LOAN_DENIED      → ABORTED
  *                → ABORTED  (abort, from any non-terminal state)

=======================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from core.time import now_iso


class AttemptState(str, Enum):
    """Arbitrage attempt states."""
    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    LOAN_REQUESTED = "LOAN_REQUESTED"
    LOAN_GRANTED = "LOAN_GRANTED"
    LOAN_DENIED = "LOAN_DENIED"
    SWAP_LEG_1 = "SWAP_LEG_1"
    SWAP_LEG_2 = "SWAP_LEG_2"
    SETTLEMENT_CHECK = "SETTLEMENT_CHECK"
    PROFIT_OK = "PROFIT_OK"
    PROFIT_SHORT = "PROFIT_SHORT"
    DISBURSE = "DISBURSE"
    DONE = "DONE"
    ABORTED = "ABORTED"


# Valid state transitions (ABORTED is added for every non-terminal state)
VALID_TRANSITIONS: Dict[AttemptState, List[AttemptState]] = {
    AttemptState.IDLE: [AttemptState.VALIDATING],
    AttemptState.VALIDATING: [AttemptState.LOAN_REQUESTED],
    AttemptState.LOAN_REQUESTED: [AttemptState.LOAN_GRANTED, AttemptState.LOAN_DENIED],
    AttemptState.LOAN_GRANTED: [AttemptState.SWAP_LEG_1],
    AttemptState.LOAN_DENIED: [],
    AttemptState.SWAP_LEG_1: [AttemptState.SWAP_LEG_2],
    AttemptState.SWAP_LEG_2: [AttemptState.SETTLEMENT_CHECK],
    AttemptState.SETTLEMENT_CHECK: [AttemptState.PROFIT_OK, AttemptState.PROFIT_SHORT],
    AttemptState.PROFIT_OK: [AttemptState.DISBURSE],
    AttemptState.PROFIT_SHORT: [],
    AttemptState.DISBURSE: [AttemptState.DONE],
    AttemptState.DONE: [],  # Terminal state
    AttemptState.ABORTED: [],  # Terminal state
}

TERMINAL_STATES = (AttemptState.DONE, AttemptState.ABORTED)


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: AttemptState
    to_state: AttemptState
    timestamp: str = ""
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = now_iso()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "metadata": self.metadata,
        }


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


@dataclass
class AttemptStateMachine:
    """
    Tracks one attempt through the states above.

    The machine is bookkeeping only; rollback of balances is done by the
    ledger unit of work wrapping the attempt.
    """
    attempt_id: str
    state: AttemptState = AttemptState.IDLE
    history: List[StateTransition] = field(default_factory=list)
    created_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = now_iso()

    def can_transition_to(self, new_state: AttemptState) -> bool:
        """Check if transition to new_state is valid."""
        if new_state == AttemptState.ABORTED:
            return not self.is_terminal
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition_to(
        self,
        new_state: AttemptState,
        reason: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StateTransition:
        """
        Transition to a new state.

        Raises InvalidTransitionError if transition is not valid.
        """
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in VALID_TRANSITIONS.get(self.state, [])]}"
            )

        transition = StateTransition(
            from_state=self.state,
            to_state=new_state,
            reason=reason,
            metadata=metadata or {},
        )

        self.history.append(transition)
        self.state = new_state

        return transition

    def abort(self, reason: str = "") -> Optional[StateTransition]:
        """Move to ABORTED. A second abort is a no-op."""
        if self.state == AttemptState.ABORTED:
            return None
        return self.transition_to(AttemptState.ABORTED, reason=reason)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_success(self) -> bool:
        return self.state == AttemptState.DONE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "attempt_id": self.attempt_id,
            "state": self.state.value,
            "is_terminal": self.is_terminal,
            "is_success": self.is_success,
            "created_at": self.created_at,
            "history": [t.to_dict() for t in self.history],
        }
