import asyncio
from datetime import date, time

import pytest
from scheduling.common.dto import (
    AppointmentEventType,
    AppointmentStatus,
    BookingRequest,
    DoctorCreate,
)
from scheduling.domain.exceptions import (
    DoctorUnverifiedException,
    InvalidDateException,
    InvalidSlotException,
    LockContentionException,
    NotFoundException,
    OutsideAvailabilityException,
    SlotConflictException,
    UnavailableException,
)

MONDAY = date(2025, 2, 24)


def booking(patient_id, doctor_id, day=MONDAY, slot=time(10, 0), **extra):
    return BookingRequest(
        patient_id=patient_id,
        doctor_id=doctor_id,
        date=day,
        time=slot,
        consultation_type=extra.pop("consultation_type", "video"),
        **extra,
    )


@pytest.mark.asyncio
async def test_book_appointment(booking_service, doctor, patient, notifier, clock):
    appointment = await booking_service.book_appointment(
        booking(patient.id, doctor.id, symptoms="  Stress, insomnia ")
    )
    assert appointment.id.startswith("apt_")
    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.consultation_fee == 800
    assert appointment.doctor_name == "Dr. A"
    assert appointment.patient_name == "Rahul Kumar"
    assert appointment.doctor_specialization == "Ayurvedic Medicine"
    assert appointment.symptoms == "Stress, insomnia"
    assert appointment.created_at == clock.now

    assert [e.event_type for e in notifier.events] == [
        AppointmentEventType.BOOKED
    ]
    assert notifier.events[0].appointment == appointment


@pytest.mark.asyncio
async def test_unknown_patient_or_doctor(booking_service, doctor, patient):
    with pytest.raises(NotFoundException):
        await booking_service.book_appointment(booking("missing", doctor.id))
    with pytest.raises(NotFoundException):
        await booking_service.book_appointment(booking(patient.id, "missing"))


@pytest.mark.asyncio
async def test_unverified_doctor(booking_service, identity_service, patient):
    doctor = await identity_service.register_doctor(
        DoctorCreate(
            name="Dr. New", specialization="Yoga", consultation_fee=500
        )
    )
    with pytest.raises(DoctorUnverifiedException):
        await booking_service.book_appointment(booking(patient.id, doctor.id))


@pytest.mark.asyncio
async def test_unverified_check_precedes_date_check(
    booking_service, identity_service, patient
):
    doctor = await identity_service.register_doctor(
        DoctorCreate(
            name="Dr. New", specialization="Yoga", consultation_fee=500
        )
    )
    with pytest.raises(DoctorUnverifiedException):
        await booking_service.book_appointment(
            booking(patient.id, doctor.id, day=date(2020, 1, 6))
        )


@pytest.mark.asyncio
async def test_past_date(booking_service, doctor, patient):
    # Monday before the clock's Thursday
    with pytest.raises(InvalidDateException):
        await booking_service.book_appointment(
            booking(patient.id, doctor.id, day=date(2025, 2, 17))
        )


@pytest.mark.asyncio
async def test_booking_today_is_allowed(
    booking_service, identity_service, patient, clock
):
    registered = await identity_service.register_doctor(
        DoctorCreate(
            name="Dr. B",
            specialization="Yoga",
            consultation_fee=600,
            availability=[
                {"day": "Thursday", "start_time": "09:00", "end_time": "17:00"}
            ],
        )
    )
    doctor = await identity_service.verify_doctor(registered.id)
    today = clock().date()
    appointment = await booking_service.book_appointment(
        booking(patient.id, doctor.id, day=today, slot=time(11, 0))
    )
    assert appointment.date == today
    assert appointment.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "day,slot",
    [
        (MONDAY, time(8, 0)),
        (MONDAY, time(17, 0)),
        (MONDAY, time(20, 0)),
        (date(2025, 2, 25), time(10, 0)),
        (date(2025, 3, 2), time(12, 0)),
    ],
)
async def test_outside_availability(booking_service, doctor, patient, day, slot):
    with pytest.raises(OutsideAvailabilityException):
        await booking_service.book_appointment(
            booking(patient.id, doctor.id, day=day, slot=slot)
        )


@pytest.mark.asyncio
async def test_misaligned_slot(booking_service, doctor, patient):
    with pytest.raises(InvalidSlotException):
        await booking_service.book_appointment(
            booking(patient.id, doctor.id, slot=time(10, 15))
        )


@pytest.mark.asyncio
async def test_double_booking(booking_service, doctor, patient, other_patient):
    await booking_service.book_appointment(booking(patient.id, doctor.id))
    with pytest.raises(SlotConflictException):
        await booking_service.book_appointment(
            booking(other_patient.id, doctor.id, consultation_type="chat")
        )


@pytest.mark.asyncio
async def test_concurrent_bookings_for_one_slot(
    booking_service, doctor, patient, other_patient
):
    results = await asyncio.gather(
        booking_service.book_appointment(booking(patient.id, doctor.id)),
        booking_service.book_appointment(booking(other_patient.id, doctor.id)),
        return_exceptions=True,
    )
    booked = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, SlotConflictException)]
    assert len(booked) == 1
    assert len(conflicts) == 1


@pytest.mark.asyncio
async def test_cancelled_slot_is_bookable_again(
    booking_service, lifecycle_service, doctor, patient, other_patient
):
    first = await booking_service.book_appointment(booking(patient.id, doctor.id))
    await lifecycle_service.cancel(first.id, patient.id)

    second = await booking_service.book_appointment(
        booking(other_patient.id, doctor.id)
    )
    assert second.id != first.id
    assert second.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_fee_is_snapshotted(
    booking_service, identity_service, appointment_repository, doctor, patient
):
    appointment = await booking_service.book_appointment(
        booking(patient.id, doctor.id)
    )
    await identity_service.update_consultation_fee(doctor.id, doctor.id, 1500)

    stored = await appointment_repository.get(appointment.id)
    assert stored.consultation_fee == 800


@pytest.mark.asyncio
async def test_lock_contention_is_retried(
    booking_service, appointment_repository, doctor, patient, monkeypatch
):
    calls = []
    create = appointment_repository.create

    async def flaky_create(appointment):
        calls.append(appointment.id)
        if len(calls) < 3:
            raise LockContentionException("busy")
        return await create(appointment)

    monkeypatch.setattr(appointment_repository, "create", flaky_create)
    appointment = await booking_service.book_appointment(
        booking(patient.id, doctor.id)
    )
    assert len(calls) == 3
    assert appointment.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_lock_contention_exhausts_retries(
    booking_service, appointment_repository, doctor, patient, monkeypatch
):
    calls = []

    async def busy_create(appointment):
        calls.append(appointment.id)
        raise LockContentionException("busy")

    monkeypatch.setattr(appointment_repository, "create", busy_create)
    with pytest.raises(UnavailableException) as excinfo:
        await booking_service.book_appointment(booking(patient.id, doctor.id))
    assert not isinstance(excinfo.value, LockContentionException)
    assert len(calls) == booking_service.retry_attempts


@pytest.mark.asyncio
async def test_slot_conflict_is_not_retried(
    booking_service, appointment_repository, doctor, patient, monkeypatch
):
    calls = []

    async def conflicting_create(appointment):
        calls.append(appointment.id)
        raise SlotConflictException("taken")

    monkeypatch.setattr(appointment_repository, "create", conflicting_create)
    with pytest.raises(SlotConflictException):
        await booking_service.book_appointment(booking(patient.id, doctor.id))
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_notifier_failure_keeps_booking(
    booking_service, appointment_repository, notifier, doctor, patient
):
    async def broken_publish(event):
        raise RuntimeError("smtp down")

    notifier.publish = broken_publish
    appointment = await booking_service.book_appointment(
        booking(patient.id, doctor.id)
    )
    stored = await appointment_repository.get(appointment.id)
    assert stored.status == AppointmentStatus.PENDING
