"""
Order lifecycle rules.

    pending -> confirmed -> preparing -> ready -> completed
    any non-terminal state -> cancelled

``completed`` and ``cancelled`` are terminal. Two policies decide which
targets are legal from a non-terminal state:

- permissive: any status of the enum (what the marketplace has always done)
- strict: the next forward state or ``cancelled`` only

The policy is picked with settings.STATUS_TRANSITION_POLICY.
"""
from typing import Optional

from foodrescue.config import settings
from foodrescue.models.order import TERMINAL_STATUSES, OrderStatus

FORWARD = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.COMPLETED,
}

PERMISSIVE = "permissive"
STRICT = "strict"


class OrderStateException(Exception):
    pass


class InvalidStatusError(OrderStateException):
    pass


class IllegalStatusTransitionError(OrderStateException):
    def __init__(self, current: OrderStatus, requested: OrderStatus, reason: str = ""):
        msg = f"Cannot move order from {current.value} to {requested.value}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.current = current
        self.requested = requested


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidStatusError(f"Unknown status {value!r} (expected one of: {allowed})")


def allowed_targets(current: OrderStatus, policy: str):
    if current in TERMINAL_STATUSES:
        return frozenset()
    if policy == STRICT:
        return frozenset({FORWARD[current], OrderStatus.CANCELLED})
    return frozenset(OrderStatus)


def check_transition(current, requested, policy: Optional[str] = None) -> OrderStatus:
    """Validate current -> requested and return the target status."""
    policy = policy or settings.STATUS_TRANSITION_POLICY
    if policy not in (PERMISSIVE, STRICT):
        raise ValueError(f"Unknown status transition policy: {policy!r}")
    current, requested = parse_status(current), parse_status(requested)
    if current in TERMINAL_STATUSES:
        raise IllegalStatusTransitionError(current, requested, f"{current.value} is final")
    if requested not in allowed_targets(current, policy):
        raise IllegalStatusTransitionError(current, requested, "not the next step")
    return requested
