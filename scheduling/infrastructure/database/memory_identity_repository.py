import logging
from typing import Dict, List, Optional

from scheduling.common.dto import Doctor, Patient
from scheduling.domain.exceptions import (
    NotFoundException,
    UnavailableException,
)
from scheduling.ports.identity_repository import IdentityRepositoryPort

logger = logging.getLogger(__name__)


class InMemoryIdentityRepository(IdentityRepositoryPort):
    def __init__(self):
        self._doctors: Dict[str, Doctor] = {}
        self._patients: Dict[str, Patient] = {}

    async def create_doctor(self, doctor: Doctor) -> Doctor:
        if doctor.id in self._doctors or doctor.id in self._patients:
            raise UnavailableException(f"Identity already exists: {doctor.id}")
        self._doctors[doctor.id] = doctor.model_copy(deep=True)
        logger.info(f"Doctor created successfully: {doctor.id}")
        return doctor

    async def update_doctor(self, doctor: Doctor) -> Doctor:
        if doctor.id not in self._doctors:
            raise NotFoundException(f"Doctor {doctor.id} not found")
        self._doctors[doctor.id] = doctor.model_copy(deep=True)
        logger.info(f"Doctor updated successfully: {doctor.id}")
        return doctor

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        doctor = self._doctors.get(doctor_id)
        return doctor.model_copy(deep=True) if doctor else None

    async def list_doctors(self) -> List[Doctor]:
        return [d.model_copy(deep=True) for d in self._doctors.values()]

    async def create_patient(self, patient: Patient) -> Patient:
        if patient.id in self._patients or patient.id in self._doctors:
            raise UnavailableException(
                f"Identity already exists: {patient.id}"
            )
        self._patients[patient.id] = patient.model_copy(deep=True)
        logger.info(f"Patient created successfully: {patient.id}")
        return patient

    async def update_patient(self, patient: Patient) -> Patient:
        if patient.id not in self._patients:
            raise NotFoundException(f"Patient {patient.id} not found")
        self._patients[patient.id] = patient.model_copy(deep=True)
        logger.info(f"Patient updated successfully: {patient.id}")
        return patient

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        patient = self._patients.get(patient_id)
        return patient.model_copy(deep=True) if patient else None
