"""
execution/access.py - Privileged-caller authorization.

Authorization is a policy object handed to the orchestrator and the
guardrail controller, not an ownership base class. The owner is also the
profit recipient.
"""

from typing import Protocol, runtime_checkable

from core.exceptions import Unauthorized


@runtime_checkable
class AccessPolicy(Protocol):
    owner: str

    def is_authorized(self, caller: str, action: str) -> bool:
        ...


class OwnerPolicy:
    """Exactly one configured principal may call every privileged action."""

    def __init__(self, owner: str):
        self.owner = owner

    def is_authorized(self, caller: str, action: str) -> bool:
        return bool(caller) and caller.lower() == self.owner.lower()


def require(policy: AccessPolicy, caller: str, action: str) -> None:
    """Raise Unauthorized unless `caller` may perform `action`."""
    if not policy.is_authorized(caller, action):
        raise Unauthorized(caller, action)
