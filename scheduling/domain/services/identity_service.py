import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Union

from scheduling.common.dto import (
    DEFAULT_AVAILABILITY,
    AvailabilityWindow,
    Doctor,
    DoctorCreate,
    DoctorFilter,
    Patient,
    PatientCreate,
    PatientUpdate,
)
from scheduling.domain.exceptions import ForbiddenException, NotFoundException
from scheduling.ports.identity_repository import IdentityRepositoryPort

logger = logging.getLogger(__name__)


class IdentityService:
    """Directory of patients and doctors.

    Newly registered doctors start unverified and stay out of
    patient-facing listings until ``verify_doctor`` approves them.
    """

    def __init__(
        self,
        repository: IdentityRepositoryPort,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.clock = clock

    async def register_doctor(self, doctor: DoctorCreate) -> Doctor:
        windows = doctor.availability
        if windows is None:
            windows = [AvailabilityWindow(**w) for w in DEFAULT_AVAILABILITY]
        db_doctor = Doctor(
            **doctor.model_dump(exclude={"availability"}),
            id=f"doctor_{uuid.uuid4().hex}",
            availability=windows,
            is_verified=False,
            created_at=self.clock(),
        )
        logger.info(f"Registering doctor: {db_doctor.id}")
        return await self.repository.create_doctor(db_doctor)

    async def register_patient(self, patient: PatientCreate) -> Patient:
        db_patient = Patient(
            **patient.model_dump(),
            id=f"patient_{uuid.uuid4().hex}",
            created_at=self.clock(),
        )
        logger.info(f"Registering patient: {db_patient.id}")
        return await self.repository.create_patient(db_patient)

    async def get_doctor(self, doctor_id: str) -> Doctor:
        doctor = await self.repository.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundException(f"Doctor {doctor_id} not found")
        return doctor

    async def get_patient(self, patient_id: str) -> Patient:
        patient = await self.repository.get_patient(patient_id)
        if patient is None:
            raise NotFoundException(f"Patient {patient_id} not found")
        return patient

    async def get_user(self, user_id: str) -> Union[Patient, Doctor]:
        doctor = await self.repository.get_doctor(user_id)
        if doctor is not None:
            return doctor
        patient = await self.repository.get_patient(user_id)
        if patient is None:
            raise NotFoundException(f"User {user_id} not found")
        return patient

    async def list_doctors(
        self, doctor_filter: Optional[DoctorFilter] = None
    ) -> List[Doctor]:
        doctor_filter = doctor_filter or DoctorFilter()
        doctors = await self.repository.list_doctors()
        return sorted(
            (d for d in doctors if doctor_filter.matches(d)),
            key=lambda d: (d.name.lower(), d.id),
        )

    async def verify_doctor(self, doctor_id: str) -> Doctor:
        doctor = await self.get_doctor(doctor_id)
        if doctor.is_verified:
            return doctor
        logger.info(f"Approving doctor: {doctor_id}")
        return await self.repository.update_doctor(
            doctor.model_copy(update={"is_verified": True})
        )

    async def update_patient(
        self, patient_id: str, actor_id: str, update: PatientUpdate
    ) -> Patient:
        if actor_id != patient_id:
            raise ForbiddenException("Patients may only edit their own profile")
        patient = await self.get_patient(patient_id)
        changes = update.model_dump(exclude_unset=True)
        return await self.repository.update_patient(
            Patient(**{**patient.model_dump(), **changes})
        )

    async def update_consultation_fee(
        self, doctor_id: str, actor_id: str, fee: int
    ) -> Doctor:
        # Booked appointments keep the fee they were booked at
        if actor_id != doctor_id:
            raise ForbiddenException("Doctors may only edit their own fee")
        doctor = await self.get_doctor(doctor_id)
        logger.info(
            f"Changing fee for doctor {doctor_id}: "
            f"{doctor.consultation_fee} -> {fee}"
        )
        return await self.repository.update_doctor(
            Doctor(**{**doctor.model_dump(), "consultation_fee": fee})
        )
