"""
execution/sessions.py - Loan session table.

A session correlates one execute_arbitrage call with the asynchronous
loan callback. Ids are fresh per attempt (sha256 over the initiator, the
request, a per-table nonce and the clock), so a replayed or unsolicited
callback never matches. At most one session is pending at a time, a
session is consumed by exactly one callback, and the orchestrator clears
it when the attempt ends whatever the outcome.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Optional

from core.constants import SessionState
from core.exceptions import CallbackExpired, InvalidCallback, ReentrantCall
from core.models import ArbitrageRequest
from core.time import Clock, is_expired, now_timestamp


@dataclass
class LoanSession:
    """One in-flight loan."""
    session_id: str
    request: ArbitrageRequest
    deadline: float
    initiator: str
    state: SessionState = SessionState.PENDING
    consumed: bool = False
    created_at: float = field(default_factory=now_timestamp)

    @property
    def is_pending(self) -> bool:
        return self.state == SessionState.PENDING


class SessionTable:
    """Session store keyed by session id."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or now_timestamp
        self._sessions: Dict[str, LoanSession] = {}
        self._nonce = 0

    def _new_id(self, request: ArbitrageRequest, initiator: str) -> str:
        self._nonce += 1
        material = "|".join(
            str(part)
            for part in (
                initiator.lower(),
                request.token_borrow.lower(),
                request.token_target.lower(),
                request.amount,
                request.pool_fee_hint,
                request.direction.value,
                self._nonce,
                repr(self.clock()),
            )
        )
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    @property
    def pending(self) -> Optional[LoanSession]:
        for session in self._sessions.values():
            if session.is_pending:
                return session
        return None

    def get(self, session_id: str) -> Optional[LoanSession]:
        return self._sessions.get(session_id)

    def open(self, request: ArbitrageRequest, initiator: str, deadline: float) -> LoanSession:
        if self.pending is not None:
            raise ReentrantCall()
        session = LoanSession(
            session_id=self._new_id(request, initiator),
            request=request,
            deadline=deadline,
            initiator=initiator,
            created_at=self.clock(),
        )
        self._sessions[session.session_id] = session
        return session

    def claim(self, session_id: str) -> LoanSession:
        """
        Accept a callback for `session_id`.

        Raises:
            InvalidCallback: unknown, not pending, or already consumed
            CallbackExpired: deadline elapsed
        """
        session = self._sessions.get(session_id)
        if session is None or not session.is_pending:
            raise InvalidCallback(session_id)
        if session.consumed:
            raise InvalidCallback(session_id, "session already consumed")

        now = self.clock()
        if is_expired(session.deadline, now):
            raise CallbackExpired(session_id, session.deadline, now)

        session.consumed = True
        return session

    def mark(self, session_id: str, state: SessionState) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.state = state

    def clear(self, session_id: str) -> Optional[LoanSession]:
        return self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
