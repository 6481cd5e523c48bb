from datetime import datetime

import pytest
import pytest_asyncio
from scheduling.common.dto import AvailabilityWindow, DoctorCreate, PatientCreate
from scheduling.domain.services.availability_service import (
    AvailabilityService,
)
from scheduling.domain.services.booking_service import BookingService
from scheduling.domain.services.identity_service import IdentityService
from scheduling.domain.services.lifecycle_service import LifecycleService
from scheduling.domain.services.query_service import QueryService
from scheduling.infrastructure.database.memory_appointment_repository import (
    InMemoryAppointmentRepository,
)
from scheduling.infrastructure.database.memory_identity_repository import (
    InMemoryIdentityRepository,
)
from scheduling.ports.notifier import NotifierPort

# Thursday; the following Monday is 2025-02-24
NOW = datetime(2025, 2, 20, 9, 0)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingNotifier(NotifierPort):
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def identity_repository():
    return InMemoryIdentityRepository()


@pytest.fixture
def appointment_repository():
    return InMemoryAppointmentRepository(lock_timeout=0.2)


@pytest.fixture
def identity_service(identity_repository, clock):
    return IdentityService(identity_repository, clock=clock)


@pytest.fixture
def availability_service(identity_repository):
    return AvailabilityService(identity_repository, slot_minutes=60)


@pytest.fixture
def booking_service(
    identity_service, availability_service, appointment_repository, notifier, clock
):
    return BookingService(
        identity_service,
        availability_service,
        appointment_repository,
        notifier,
        clock=clock,
        retry_delay=0,
    )


@pytest.fixture
def lifecycle_service(appointment_repository, notifier, clock):
    return LifecycleService(appointment_repository, notifier, clock=clock)


@pytest.fixture
def query_service(appointment_repository, availability_service, clock):
    return QueryService(appointment_repository, availability_service, clock=clock)


@pytest_asyncio.fixture
async def doctor(identity_service):
    registered = await identity_service.register_doctor(
        DoctorCreate(
            name="Dr. A",
            specialization="Ayurvedic Medicine",
            consultation_fee=800,
            availability=[
                AvailabilityWindow(
                    day="Monday", start_time="09:00", end_time="17:00"
                )
            ],
        )
    )
    return await identity_service.verify_doctor(registered.id)


@pytest_asyncio.fixture
async def patient(identity_service):
    return await identity_service.register_patient(
        PatientCreate(name="Rahul Kumar", email="rahul@example.com")
    )


@pytest_asyncio.fixture
async def other_patient(identity_service):
    return await identity_service.register_patient(
        PatientCreate(name="Priya Patel", email="priya@example.com")
    )
