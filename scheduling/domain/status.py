from typing import Dict, FrozenSet

from scheduling.common.dto import AppointmentStatus
from scheduling.domain.exceptions import InvalidTransitionException

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
TERMINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


def can_transition(
    current: AppointmentStatus, target: AppointmentStatus
) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(
    current: AppointmentStatus, target: AppointmentStatus
) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionException(
            f"Cannot move appointment from {current.value} to {target.value}"
        )
