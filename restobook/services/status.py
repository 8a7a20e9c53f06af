import logging
from typing import FrozenSet

from restobook.exceptions import ConflictError
from restobook.models.schemas import BookingStatus, PaymentStatus, Role

logger = logging.getLogger(__name__)

S = BookingStatus

TRANSITIONS = {
    # Kitchen works forward only
    (Role.KITCHEN, S.CONFIRMED): frozenset({S.COOKING, S.READY}),
    (Role.KITCHEN, S.COOKING): frozenset({S.READY}),

    # Front desk confirms, cancels and closes served bookings
    (Role.FRONT_DESK, S.PENDING): frozenset({S.CONFIRMED, S.CANCELED}),
    (Role.FRONT_DESK, S.CONFIRMED): frozenset({S.CANCELED}),
    (Role.FRONT_DESK, S.READY): frozenset({S.COMPLETED}),

    # Customers confirm or abandon their own wizard
    (Role.CUSTOMER, S.PENDING): frozenset({S.CONFIRMED, S.CANCELED}),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.DEPOSITED: frozenset({PaymentStatus.SUCCESS}),
}

NO_TRANSITIONS: FrozenSet[BookingStatus] = frozenset()


def valid_next_statuses(status, role: Role = Role.KITCHEN) -> FrozenSet[BookingStatus]:
    """Statuses reachable from ``status`` for ``role``; empty means read-only."""
    return TRANSITIONS.get((Role(role), BookingStatus.parse(status)), NO_TRANSITIONS)


def can_transition(current, target, role: Role = Role.KITCHEN) -> bool:
    return BookingStatus.parse(target) in valid_next_statuses(current, role)


def ensure_transition(current, target, role: Role = Role.KITCHEN) -> BookingStatus:
    """Returns the parsed target or raises ConflictError carrying the current status."""
    current = BookingStatus.parse(current)
    target = BookingStatus.parse(target)
    if target not in valid_next_statuses(current, role):
        logger.warning(f"Rejected transition {current.value} -> {target.value} for {Role(role).value}")
        raise ConflictError(
            f"Cannot move booking from {current.value} to {target.value} as {Role(role).value}",
            current_status=current.value,
        )
    return target


def ensure_payment_transition(current: PaymentStatus, target: PaymentStatus) -> PaymentStatus:
    if target not in PAYMENT_TRANSITIONS.get(current, frozenset()):
        raise ConflictError(
            f"Cannot move payment from {current.value} to {target.value}",
            current_status=current.value,
        )
    return target
