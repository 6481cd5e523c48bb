from abc import ABC, abstractmethod
from typing import List, Optional

from scheduling.common.dto import Doctor, Patient


class IdentityRepositoryPort(ABC):
    @abstractmethod
    async def create_doctor(self, doctor: Doctor) -> Doctor:
        pass

    @abstractmethod
    async def update_doctor(self, doctor: Doctor) -> Doctor:
        pass

    @abstractmethod
    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        pass

    @abstractmethod
    async def list_doctors(self) -> List[Doctor]:
        pass

    @abstractmethod
    async def create_patient(self, patient: Patient) -> Patient:
        pass

    @abstractmethod
    async def update_patient(self, patient: Patient) -> Patient:
        pass

    @abstractmethod
    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        pass
