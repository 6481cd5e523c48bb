from datetime import date, time

import pytest
from scheduling.common.dto import AppointmentStatus, BookingRequest
from scheduling.domain.exceptions import ForbiddenException

MONDAY = date(2025, 2, 24)
NEXT_MONDAY = date(2025, 3, 3)


def booking(patient_id, doctor_id, day, slot):
    return BookingRequest(
        patient_id=patient_id,
        doctor_id=doctor_id,
        date=day,
        time=slot,
        consultation_type="video",
    )


@pytest.mark.asyncio
async def test_upcoming_sorted_ascending(
    booking_service, query_service, doctor, patient
):
    late = await booking_service.book_appointment(
        booking(patient.id, doctor.id, NEXT_MONDAY, time(9, 0))
    )
    afternoon = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(15, 0))
    )
    morning = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(9, 0))
    )

    upcoming = await query_service.upcoming_for_patient(patient.id)
    assert [a.id for a in upcoming] == [morning.id, afternoon.id, late.id]


@pytest.mark.asyncio
async def test_history_sorted_descending(
    booking_service, lifecycle_service, query_service, doctor, patient
):
    first = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(9, 0))
    )
    second = await booking_service.book_appointment(
        booking(patient.id, doctor.id, NEXT_MONDAY, time(9, 0))
    )
    active = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(11, 0))
    )
    await lifecycle_service.cancel(first.id, patient.id)
    await lifecycle_service.confirm(second.id, doctor.id)
    await lifecycle_service.complete(second.id, doctor.id)

    history = await query_service.history_for_patient(patient.id)
    assert [a.id for a in history] == [second.id, first.id]
    assert [a.status for a in history] == [
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    ]
    upcoming = await query_service.upcoming_for_patient(patient.id)
    assert [a.id for a in upcoming] == [active.id]


@pytest.mark.asyncio
async def test_patients_only_see_their_own(
    booking_service, query_service, doctor, patient, other_patient
):
    await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(9, 0))
    )
    assert await query_service.upcoming_for_patient(other_patient.id) == []
    assert await query_service.history_for_patient(other_patient.id) == []


@pytest.mark.asyncio
async def test_queue_for_doctor(
    booking_service, lifecycle_service, query_service, doctor, patient
):
    pending = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(13, 0))
    )
    confirmed = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(10, 0))
    )
    await lifecycle_service.confirm(confirmed.id, doctor.id)

    queue = await query_service.queue_for_doctor(
        doctor.id, AppointmentStatus.PENDING
    )
    assert [a.id for a in queue] == [pending.id]

    everything = await query_service.queue_for_doctor(doctor.id)
    assert [a.id for a in everything] == [confirmed.id, pending.id]


@pytest.mark.asyncio
async def test_queries_reflect_current_state(
    booking_service, lifecycle_service, query_service, doctor, patient
):
    appointment = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(9, 0))
    )
    assert len(await query_service.queue_for_doctor(
        doctor.id, AppointmentStatus.PENDING
    )) == 1
    await lifecycle_service.confirm(appointment.id, doctor.id)
    assert await query_service.queue_for_doctor(
        doctor.id, AppointmentStatus.PENDING
    ) == []


@pytest.mark.asyncio
async def test_get_appointment_for_participants_only(
    booking_service, query_service, doctor, patient, other_patient
):
    appointment = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(9, 0))
    )
    for actor_id in (patient.id, doctor.id):
        seen = await query_service.get_appointment(appointment.id, actor_id)
        assert seen.id == appointment.id
    with pytest.raises(ForbiddenException):
        await query_service.get_appointment(appointment.id, other_patient.id)


@pytest.mark.asyncio
async def test_doctor_stats(
    booking_service, lifecycle_service, query_service, doctor, patient
):
    done = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(9, 0))
    )
    dropped = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(10, 0))
    )
    await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(11, 0))
    )
    await lifecycle_service.confirm(done.id, doctor.id)
    await lifecycle_service.complete(done.id, doctor.id)
    await lifecycle_service.decline(dropped.id, doctor.id)

    stats = await query_service.doctor_stats(doctor.id)
    assert stats.pending == 1
    assert stats.confirmed == 0
    assert stats.completed == 1
    assert stats.cancelled == 1
    assert stats.total_earnings == 800


@pytest.mark.asyncio
async def test_open_slots(
    booking_service, lifecycle_service, query_service, doctor, patient
):
    taken = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(9, 0))
    )
    freed = await booking_service.book_appointment(
        booking(patient.id, doctor.id, MONDAY, time(10, 0))
    )
    await lifecycle_service.cancel(freed.id, patient.id)

    slots = await query_service.open_slots(doctor.id, MONDAY)
    assert taken.time not in slots
    assert time(10, 0) in slots
    assert len(slots) == 7


@pytest.mark.asyncio
async def test_open_slots_in_the_past(query_service, doctor):
    assert await query_service.open_slots(doctor.id, date(2025, 2, 17)) == []
