from abc import ABC, abstractmethod
from typing import AsyncIterator

from scheduling.common.dto import (
    Appointment,
    AppointmentFilter,
    AppointmentMutation,
)


class AppointmentRepositoryPort(ABC):
    @abstractmethod
    async def create(self, appointment: Appointment) -> Appointment:
        """Insert ``appointment`` unless its slot is already held.

        The slot check and the insert are one atomic step. Raises
        SlotConflictException when a non-cancelled appointment holds the
        same (doctor_id, date, time).
        """

    @abstractmethod
    async def get(self, appointment_id: str) -> Appointment:
        pass

    @abstractmethod
    async def update(
        self, appointment_id: str, mutation: AppointmentMutation
    ) -> Appointment:
        """Apply ``mutation`` if the stored status is still the expected one.

        Raises InvalidTransitionException when another writer got there
        first. Moving to cancelled releases the slot.
        """

    @abstractmethod
    def query(self, criteria: AppointmentFilter) -> AsyncIterator[Appointment]:
        pass
