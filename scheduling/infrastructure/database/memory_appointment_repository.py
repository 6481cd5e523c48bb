import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from scheduling.common.config import LOCK_TIMEOUT_SECONDS
from scheduling.common.dto import (
    Appointment,
    AppointmentFilter,
    AppointmentMutation,
    AppointmentStatus,
)
from scheduling.domain.exceptions import (
    InvalidTransitionException,
    LockContentionException,
    NotFoundException,
    SlotConflictException,
    UnavailableException,
)
from scheduling.ports.appointment_repository import AppointmentRepositoryPort

logger = logging.getLogger(__name__)


class _KeyLock:
    """Lock plus the number of coroutines holding or waiting for it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class InMemoryAppointmentRepository(AppointmentRepositoryPort):
    """Process-local appointment store.

    Writers serialize on a lock per slot key for inserts and a lock per
    appointment id for updates, so unrelated bookings never wait on each
    other. ``_slots`` maps the slot key of every non-cancelled appointment
    to its id. A key's lock is dropped once nobody holds or waits for it.
    """

    def __init__(self, lock_timeout: Optional[float] = None):
        self._appointments: Dict[str, Appointment] = {}
        self._slots: Dict[str, str] = {}
        self._slot_locks: Dict[str, _KeyLock] = {}
        self._appointment_locks: Dict[str, _KeyLock] = {}
        self._lock_timeout = (
            LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        )

    @asynccontextmanager
    async def _locked(self, locks: Dict[str, _KeyLock], key: str):
        entry = locks.get(key)
        if entry is None:
            entry = locks[key] = _KeyLock()
        entry.users += 1
        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), self._lock_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out waiting for lock: {key}")
                raise LockContentionException(f"Lock contended: {key}")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if not entry.users:
                del locks[key]

    async def create(self, appointment: Appointment) -> Appointment:
        key = appointment.slot_key
        logger.info(f"Attempting to create appointment: {appointment.id}")
        async with self._locked(self._slot_locks, key):
            holder = self._slots.get(key)
            if holder is not None:
                logger.warning(f"Slot {key} already held by {holder}")
                raise SlotConflictException(
                    f"Slot {key} is already booked"
                )
            if appointment.id in self._appointments:
                raise UnavailableException(
                    f"Appointment id already in use: {appointment.id}"
                )
            self._appointments[appointment.id] = appointment.model_copy(
                deep=True
            )
            self._slots[key] = appointment.id
        logger.info(f"Appointment created successfully: {appointment.id}")
        return appointment.model_copy(deep=True)

    async def get(self, appointment_id: str) -> Appointment:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            logger.info(f"Appointment not found: {appointment_id}")
            raise NotFoundException(f"Appointment {appointment_id} not found")
        return appointment.model_copy(deep=True)

    async def update(
        self, appointment_id: str, mutation: AppointmentMutation
    ) -> Appointment:
        logger.info(
            f"Attempting to move appointment {appointment_id} "
            f"to {mutation.new_status.value}"
        )
        async with self._locked(self._appointment_locks, appointment_id):
            current = self._appointments.get(appointment_id)
            if current is None:
                raise NotFoundException(
                    f"Appointment {appointment_id} not found"
                )
            if current.status != mutation.expected_status:
                logger.warning(
                    f"Appointment {appointment_id} is {current.status.value}, "
                    f"expected {mutation.expected_status.value}"
                )
                raise InvalidTransitionException(
                    f"Appointment {appointment_id} is already "
                    f"{current.status.value}"
                )

            changes = {
                "status": mutation.new_status,
                "updated_at": mutation.updated_at,
            }
            if mutation.prescription is not None:
                changes["prescription"] = mutation.prescription
            if mutation.cancelled_by is not None:
                changes["cancelled_by"] = mutation.cancelled_by
            updated = current.model_copy(update=changes, deep=True)

            if mutation.new_status == AppointmentStatus.CANCELLED:
                async with self._locked(self._slot_locks, current.slot_key):
                    if self._slots.get(current.slot_key) == appointment_id:
                        del self._slots[current.slot_key]
                    self._appointments[appointment_id] = updated
            else:
                self._appointments[appointment_id] = updated

        logger.info(
            f"Appointment {appointment_id} is now {mutation.new_status.value}"
        )
        return updated.model_copy(deep=True)

    async def query(
        self, criteria: AppointmentFilter
    ) -> AsyncIterator[Appointment]:
        for appointment in list(self._appointments.values()):
            if criteria.matches(appointment):
                yield appointment.model_copy(deep=True)
