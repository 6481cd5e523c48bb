import logging
from datetime import date, datetime
from datetime import time as dtime
from typing import Callable, List, Optional

from scheduling.common.dto import (
    Appointment,
    AppointmentFilter,
    AppointmentStatus,
    DoctorStats,
)
from scheduling.domain.exceptions import ForbiddenException
from scheduling.domain.services.availability_service import (
    AvailabilityService,
)
from scheduling.domain.status import ACTIVE_STATUSES, TERMINAL_STATUSES
from scheduling.ports.appointment_repository import AppointmentRepositoryPort

logger = logging.getLogger(__name__)


class QueryService:
    """Read-only views over the appointment store.

    Nothing is cached; every call reflects the store at call time.
    """

    def __init__(
        self,
        repository: AppointmentRepositoryPort,
        availability: AvailabilityService,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.availability = availability
        self.clock = clock

    async def _collect(self, criteria: AppointmentFilter) -> List[Appointment]:
        return [a async for a in self.repository.query(criteria)]

    async def upcoming_for_patient(self, patient_id: str) -> List[Appointment]:
        appointments = await self._collect(
            AppointmentFilter(
                patient_id=patient_id, statuses=list(ACTIVE_STATUSES)
            )
        )
        return sorted(appointments, key=lambda a: (a.date, a.time, a.id))

    async def history_for_patient(self, patient_id: str) -> List[Appointment]:
        appointments = await self._collect(
            AppointmentFilter(
                patient_id=patient_id, statuses=list(TERMINAL_STATUSES)
            )
        )
        return sorted(
            appointments, key=lambda a: (a.date, a.time, a.id), reverse=True
        )

    async def queue_for_doctor(
        self, doctor_id: str, status: Optional[AppointmentStatus] = None
    ) -> List[Appointment]:
        appointments = await self._collect(
            AppointmentFilter(
                doctor_id=doctor_id,
                statuses=[status] if status is not None else None,
            )
        )
        return sorted(appointments, key=lambda a: (a.date, a.time, a.id))

    async def get_appointment(
        self, appointment_id: str, actor_id: str
    ) -> Appointment:
        appointment = await self.repository.get(appointment_id)
        if actor_id not in (appointment.patient_id, appointment.doctor_id):
            raise ForbiddenException(
                f"Not authorized to view appointment {appointment_id}"
            )
        return appointment

    async def doctor_stats(self, doctor_id: str) -> DoctorStats:
        stats = DoctorStats(doctor_id=doctor_id)
        async for appointment in self.repository.query(
            AppointmentFilter(doctor_id=doctor_id)
        ):
            status = appointment.status.value
            setattr(stats, status, getattr(stats, status) + 1)
            if appointment.status == AppointmentStatus.COMPLETED:
                stats.total_earnings += appointment.consultation_fee
        return stats

    async def open_slots(self, doctor_id: str, day: date) -> List[dtime]:
        if day < self.clock().date():
            return []
        slots = await self.availability.slots_for(doctor_id, day)
        taken = {
            a.time
            async for a in self.repository.query(
                AppointmentFilter(
                    doctor_id=doctor_id,
                    date=day,
                    statuses=list(ACTIVE_STATUSES),
                )
            )
        }
        return [slot for slot in slots if slot not in taken]
