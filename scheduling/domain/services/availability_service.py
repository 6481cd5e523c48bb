import logging
import time
from datetime import date, datetime, timedelta
from datetime import time as dtime
from typing import Callable, Dict, List, Optional, Tuple

from scheduling.common.config import (
    AVAILABILITY_CACHE_TTL_SECONDS,
    SLOT_DURATION_MINUTES,
)
from scheduling.common.dto import (
    AvailabilityWindow,
    Doctor,
    Weekday,
    check_non_overlapping,
)
from scheduling.domain.exceptions import (
    ForbiddenException,
    InvalidSlotException,
    NotFoundException,
)
from scheduling.ports.identity_repository import IdentityRepositoryPort

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Answers whether a slot lies inside a doctor's weekly hours.

    Windows are cached per doctor for at most ``cache_ttl`` seconds.
    Writes made through ``set_availability`` drop the entry immediately,
    so only writes from other processes can be seen late.
    Existing bookings are not considered here.
    """

    def __init__(
        self,
        repository: IdentityRepositoryPort,
        slot_minutes: int = SLOT_DURATION_MINUTES,
        cache_ttl: float = AVAILABILITY_CACHE_TTL_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        if slot_minutes <= 0 or (24 * 60) % slot_minutes:
            raise ValueError("slot_minutes must divide a day evenly")
        self.repository = repository
        self.slot_minutes = slot_minutes
        self.cache_ttl = cache_ttl
        self.monotonic = monotonic
        self._cache: Dict[str, Tuple[float, List[AvailabilityWindow]]] = {}

    def invalidate(self, doctor_id: Optional[str] = None) -> None:
        if doctor_id is None:
            self._cache.clear()
        else:
            self._cache.pop(doctor_id, None)

    async def get_windows(self, doctor_id: str) -> List[AvailabilityWindow]:
        cached = self._cache.get(doctor_id)
        if cached is not None and self.monotonic() - cached[0] < self.cache_ttl:
            return cached[1]
        doctor = await self.repository.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundException(f"Doctor {doctor_id} not found")
        self._cache[doctor_id] = (self.monotonic(), doctor.availability)
        return doctor.availability

    def check_alignment(self, slot: dtime) -> None:
        minutes = slot.hour * 60 + slot.minute
        if slot.second or slot.microsecond or minutes % self.slot_minutes:
            raise InvalidSlotException(
                f"{slot.isoformat()} is not aligned to "
                f"{self.slot_minutes}-minute slots"
            )

    async def is_available(
        self, doctor_id: str, day: date, slot: dtime
    ) -> bool:
        self.check_alignment(slot)
        weekday = Weekday.of(day)
        windows = await self.get_windows(doctor_id)
        return any(w.day == weekday and w.contains(slot) for w in windows)

    async def slots_for(self, doctor_id: str, day: date) -> List[dtime]:
        """Aligned slot starts inside the doctor's windows on ``day``."""
        weekday = Weekday.of(day)
        step = timedelta(minutes=self.slot_minutes)
        slots = []
        for window in await self.get_windows(doctor_id):
            if window.day != weekday:
                continue
            start = datetime.combine(day, window.start_time)
            offset = (start.hour * 60 + start.minute) % self.slot_minutes
            if offset or start.second or start.microsecond:
                start = start.replace(second=0, microsecond=0) + timedelta(
                    minutes=self.slot_minutes - offset
                )
            end = datetime.combine(day, window.end_time)
            current = start
            while current < end and current.date() == day:
                slots.append(current.time())
                current += step
        return slots

    async def set_availability(
        self,
        doctor_id: str,
        actor_id: str,
        windows: List[AvailabilityWindow],
    ) -> Doctor:
        if actor_id != doctor_id:
            raise ForbiddenException(
                "Doctors may only edit their own availability"
            )
        ordered = check_non_overlapping(windows)
        doctor = await self.repository.get_doctor(doctor_id)
        if doctor is None:
            raise NotFoundException(f"Doctor {doctor_id} not found")
        self.invalidate(doctor_id)
        updated = await self.repository.update_doctor(
            doctor.model_copy(update={"availability": ordered})
        )
        self.invalidate(doctor_id)
        logger.info(
            f"Availability updated for doctor {doctor_id}: "
            f"{len(ordered)} windows"
        )
        return updated
