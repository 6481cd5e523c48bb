import logging
import uuid
from datetime import datetime
from typing import Callable

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scheduling.common.config import CREATE_RETRY_ATTEMPTS
from scheduling.common.dto import (
    Appointment,
    AppointmentEventType,
    AppointmentStatus,
    BookingRequest,
)
from scheduling.domain.exceptions import (
    DoctorUnverifiedException,
    InvalidDateException,
    LockContentionException,
    OutsideAvailabilityException,
    UnavailableException,
)
from scheduling.domain.services.availability_service import (
    AvailabilityService,
)
from scheduling.domain.services.events import emit
from scheduling.domain.services.identity_service import IdentityService
from scheduling.ports.appointment_repository import AppointmentRepositoryPort
from scheduling.ports.notifier import NotifierPort

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        identity: IdentityService,
        availability: AvailabilityService,
        repository: AppointmentRepositoryPort,
        notifier: NotifierPort,
        clock: Callable[[], datetime] = datetime.now,
        retry_attempts: int = CREATE_RETRY_ATTEMPTS,
        retry_delay: float = 0.05,
    ):
        self.identity = identity
        self.availability = availability
        self.repository = repository
        self.notifier = notifier
        self.clock = clock
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay

    async def book_appointment(self, request: BookingRequest) -> Appointment:
        """Validate ``request`` and store it as a pending appointment.

        Checks run in order and the first failure is raised: unknown
        patient or doctor, unverified doctor, past date, slot outside the
        doctor's hours (or misaligned), slot already taken.
        """
        logger.info(
            f"Booking request: patient={request.patient_id} "
            f"doctor={request.doctor_id} at {request.date} {request.time}"
        )
        patient = await self.identity.get_patient(request.patient_id)
        doctor = await self.identity.get_doctor(request.doctor_id)

        if not doctor.is_verified:
            logger.warning(f"Doctor {doctor.id} is not verified")
            raise DoctorUnverifiedException(
                f"Doctor {doctor.id} has not been approved yet"
            )

        now = self.clock()
        if request.date < now.date():
            logger.warning(f"Booking date {request.date} is in the past")
            raise InvalidDateException(f"{request.date} is in the past")

        if not await self.availability.is_available(
            doctor.id, request.date, request.time
        ):
            logger.warning(
                f"{request.date} {request.time} is outside the hours "
                f"of doctor {doctor.id}"
            )
            raise OutsideAvailabilityException(
                "Selected time is not available"
            )

        appointment = Appointment(
            id=f"apt_{uuid.uuid4().hex}",
            patient_id=patient.id,
            doctor_id=doctor.id,
            patient_name=patient.name,
            doctor_name=doctor.name,
            doctor_specialization=doctor.specialization,
            date=request.date,
            time=request.time,
            consultation_type=request.consultation_type,
            status=AppointmentStatus.PENDING,
            symptoms=(request.symptoms or "").strip() or None,
            consultation_fee=doctor.consultation_fee,
            created_at=now,
        )
        created = await self._create(appointment)
        logger.info(f"Appointment booked: {created.id}")
        await emit(
            self.notifier, AppointmentEventType.BOOKED, created, self.clock()
        )
        return created

    async def _create(self, appointment: Appointment) -> Appointment:
        # Only lock contention is retried; SlotConflict propagates at once
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=self.retry_delay, max=1),
                retry=retry_if_exception_type(LockContentionException),
                before_sleep=before_sleep_log(logger, logging.WARNING),
            ):
                with attempt:
                    return await self.repository.create(appointment)
        except RetryError:
            logger.error(
                f"Gave up reserving {appointment.slot_key} after "
                f"{self.retry_attempts} attempts"
            )
            raise UnavailableException(
                f"Could not reserve {appointment.slot_key}, try again later"
            )
