import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from scheduling.common.dto import (
    Appointment,
    AppointmentEventType,
    AppointmentMutation,
    AppointmentStatus,
    UserRole,
)
from scheduling.domain.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
)
from scheduling.domain.services.events import emit
from scheduling.domain.status import ensure_transition
from scheduling.ports.appointment_repository import AppointmentRepositoryPort
from scheduling.ports.notifier import NotifierPort

logger = logging.getLogger(__name__)

_EVENTS = {
    AppointmentStatus.CONFIRMED: AppointmentEventType.CONFIRMED,
    AppointmentStatus.CANCELLED: AppointmentEventType.CANCELLED,
    AppointmentStatus.COMPLETED: AppointmentEventType.COMPLETED,
}


def participant_role(
    appointment: Appointment, actor_id: str
) -> Optional[UserRole]:
    if actor_id == appointment.doctor_id:
        return UserRole.DOCTOR
    if actor_id == appointment.patient_id:
        return UserRole.PATIENT
    return None


class LifecycleService:
    """Moves appointments through pending/confirmed/completed/cancelled.

    Every change is written conditionally on the status read here, so of
    two racing writers the later one gets InvalidTransitionException.
    """

    def __init__(
        self,
        repository: AppointmentRepositoryPort,
        notifier: NotifierPort,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.notifier = notifier
        self.clock = clock

    async def _load(
        self,
        appointment_id: str,
        actor_id: str,
        allowed_roles: Tuple[UserRole, ...],
    ) -> Tuple[Appointment, UserRole]:
        appointment = await self.repository.get(appointment_id)
        role = participant_role(appointment, actor_id)
        if role not in allowed_roles:
            logger.warning(
                f"Actor {actor_id} may not modify appointment {appointment_id}"
            )
            raise ForbiddenException(
                f"Not authorized to modify appointment {appointment_id}"
            )
        return appointment, role

    async def _apply(
        self,
        appointment: Appointment,
        target: AppointmentStatus,
        prescription: Optional[str] = None,
        cancelled_by: Optional[UserRole] = None,
    ) -> Appointment:
        ensure_transition(appointment.status, target)
        now = self.clock()
        updated = await self.repository.update(
            appointment.id,
            AppointmentMutation(
                expected_status=appointment.status,
                new_status=target,
                prescription=prescription,
                cancelled_by=cancelled_by,
                updated_at=now,
            ),
        )
        await emit(self.notifier, _EVENTS[target], updated, now)
        return updated

    async def confirm(self, appointment_id: str, actor_id: str) -> Appointment:
        appointment, _ = await self._load(
            appointment_id, actor_id, (UserRole.DOCTOR,)
        )
        logger.info(f"Confirming appointment: {appointment_id}")
        return await self._apply(appointment, AppointmentStatus.CONFIRMED)

    async def decline(self, appointment_id: str, actor_id: str) -> Appointment:
        """Doctor turns down a request that is still pending."""
        appointment, role = await self._load(
            appointment_id, actor_id, (UserRole.DOCTOR,)
        )
        if appointment.status != AppointmentStatus.PENDING:
            raise InvalidTransitionException(
                f"Only pending appointments can be declined, "
                f"{appointment_id} is {appointment.status.value}"
            )
        logger.info(f"Declining appointment: {appointment_id}")
        return await self._apply(
            appointment, AppointmentStatus.CANCELLED, cancelled_by=role
        )

    async def cancel(self, appointment_id: str, actor_id: str) -> Appointment:
        appointment, role = await self._load(
            appointment_id, actor_id, (UserRole.DOCTOR, UserRole.PATIENT)
        )
        if (
            appointment.status == AppointmentStatus.CONFIRMED
            and self.clock() >= appointment.starts_at
        ):
            raise InvalidTransitionException(
                f"Appointment {appointment_id} has already started"
            )
        logger.info(f"Cancelling appointment {appointment_id} by {role.value}")
        return await self._apply(
            appointment, AppointmentStatus.CANCELLED, cancelled_by=role
        )

    async def complete(
        self,
        appointment_id: str,
        actor_id: str,
        prescription: Optional[str] = None,
    ) -> Appointment:
        appointment, _ = await self._load(
            appointment_id, actor_id, (UserRole.DOCTOR,)
        )
        if prescription is not None:
            prescription = prescription.strip() or None
        logger.info(f"Completing appointment: {appointment_id}")
        return await self._apply(
            appointment, AppointmentStatus.COMPLETED, prescription=prescription
        )
