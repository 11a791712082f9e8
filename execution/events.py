"""
execution/events.py - Audit events.

The AuditLog lives outside the Ledger: events recorded for a failed
attempt survive the rollback of its balances, so monitoring can see why
an attempt died. Every event is mirrored to the structured logger.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Type, TypeVar

from core.logging import get_logger
from core.time import now_iso

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """Base event; `name` is the wire name."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(frozen=True)
class ArbitrageExecuted(AuditEvent):
    token_borrow: str
    token_target: str
    amount: int
    gross_profit: int
    net_profit: int
    cost_used: int
    direction: str


@dataclass(frozen=True)
class ArbitrageFailed(AuditEvent):
    token_borrow: str
    token_target: str
    amount: int
    reason: str
    code: str = ""


@dataclass(frozen=True)
class ConfigUpdated(AuditEvent):
    parameter: str
    old: Any
    new: Any


@dataclass(frozen=True)
class CircuitBreakerTriggered(AuditEvent):
    active: bool


E = TypeVar("E", bound=AuditEvent)


@dataclass
class AuditRecord:
    event: AuditEvent
    timestamp: str = field(default_factory=now_iso)


class AuditLog:
    """Append-only event sink."""

    def __init__(self):
        self._records: List[AuditRecord] = []

    def emit(self, event: AuditEvent) -> None:
        self._records.append(AuditRecord(event=event))
        level_fn = logger.warning if isinstance(event, ArbitrageFailed) else logger.info
        level_fn(f"Event: {event.name}", extra={"context": event.to_dict()})

    @property
    def events(self) -> List[AuditEvent]:
        return [r.event for r in self._records]

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [e for e in self.events if isinstance(e, event_type)]

    def last(self) -> AuditEvent | None:
        return self._records[-1].event if self._records else None

    def __len__(self) -> int:
        return len(self._records)
