import logging
from datetime import date
from datetime import time as dtime
from typing import List, Literal, Optional

import jwt
from fastapi import (
    APIRouter,
    Body,
    Depends,
    FastAPI,
    HTTPException,
    Request,
    Security,
)
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from scheduling.common.config import JWT_ALGORITHM, JWT_SECRET_KEY
from scheduling.common.dto import (
    Actor,
    Appointment,
    AppointmentStatus,
    AvailabilityUpdate,
    BookingRequest,
    CompleteRequest,
    Doctor,
    DoctorCreate,
    DoctorFilter,
    DoctorStats,
    FeeUpdate,
    Patient,
    PatientCreate,
    PatientUpdate,
    TokenData,
    UserRole,
)
from scheduling.domain.exceptions import (
    DoctorUnverifiedException,
    ForbiddenException,
    InvalidDateException,
    InvalidSlotException,
    InvalidTransitionException,
    NotFoundException,
    OutsideAvailabilityException,
    SchedulingException,
    SlotConflictException,
    UnavailableException,
)
from scheduling.domain.services.availability_service import (
    AvailabilityService,
)
from scheduling.domain.services.booking_service import BookingService
from scheduling.domain.services.identity_service import IdentityService
from scheduling.domain.services.lifecycle_service import LifecycleService
from scheduling.domain.services.query_service import QueryService

logger = logging.getLogger(__name__)

router = APIRouter()
security = HTTPBearer()

STATUS_CODES = {
    NotFoundException: 404,
    ForbiddenException: 403,
    SlotConflictException: 409,
    InvalidTransitionException: 409,
    DoctorUnverifiedException: 422,
    InvalidDateException: 422,
    OutsideAvailabilityException: 422,
    InvalidSlotException: 422,
    UnavailableException: 503,
}


async def handle_scheduling_exception(
    request: Request, exc: SchedulingException
) -> JSONResponse:
    status_code = next(
        (
            STATUS_CODES[cls]
            for cls in type(exc).__mro__
            if cls in STATUS_CODES
        ),
        500,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(
            f"{request.method} {request.url.path} rejected "
            f"({type(exc).__name__}): {exc}"
        )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingException, handle_scheduling_exception)


def get_identity_service(request: Request) -> IdentityService:
    return request.app.state.identity_service


def get_availability_service(request: Request) -> AvailabilityService:
    return request.app.state.availability_service


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def get_lifecycle_service(request: Request) -> LifecycleService:
    return request.app.state.lifecycle_service


def get_query_service(request: Request) -> QueryService:
    return request.app.state.query_service


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> Actor:
    try:
        payload = jwt.decode(
            credentials.credentials, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM]
        )
        token_data = TokenData(**payload)
    except (jwt.PyJWTError, ValidationError):
        raise HTTPException(
            status_code=401,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if token_data.sub is None or token_data.role is None:
        raise HTTPException(
            status_code=401,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Actor(id=token_data.sub, role=token_data.role)


def require_self(actor: Actor, user_id: str) -> None:
    if actor.id != user_id:
        raise ForbiddenException("Not authorized to act for this user")


@router.post("/patients", response_model=Patient, status_code=201)
async def register_patient(
    patient: PatientCreate,
    service: IdentityService = Depends(get_identity_service),
):
    logger.info("Received request to register patient")
    return await service.register_patient(patient)


@router.patch("/patients/{patient_id}", response_model=Patient)
async def update_patient(
    patient_id: str,
    update: PatientUpdate,
    actor: Actor = Depends(get_current_actor),
    service: IdentityService = Depends(get_identity_service),
):
    return await service.update_patient(patient_id, actor.id, update)


@router.get(
    "/patients/{patient_id}/appointments", response_model=List[Appointment]
)
async def get_patient_appointments(
    patient_id: str,
    view: Literal["upcoming", "history"] = "upcoming",
    actor: Actor = Depends(get_current_actor),
    service: QueryService = Depends(get_query_service),
):
    logger.info(
        f"Received request for {view} appointments of patient: {patient_id}"
    )
    require_self(actor, patient_id)
    if view == "history":
        return await service.history_for_patient(patient_id)
    return await service.upcoming_for_patient(patient_id)


@router.post("/doctors", response_model=Doctor, status_code=201)
async def register_doctor(
    doctor: DoctorCreate,
    service: IdentityService = Depends(get_identity_service),
):
    logger.info("Received request to register doctor")
    return await service.register_doctor(doctor)


@router.get("/doctors", response_model=List[Doctor])
async def list_doctors(
    search: Optional[str] = None,
    specialization: Optional[str] = None,
    service: IdentityService = Depends(get_identity_service),
):
    return await service.list_doctors(
        DoctorFilter(search=search, specialization=specialization)
    )


@router.get("/doctors/{doctor_id}", response_model=Doctor)
async def get_doctor(
    doctor_id: str,
    service: IdentityService = Depends(get_identity_service),
):
    return await service.get_doctor(doctor_id)


@router.post("/doctors/{doctor_id}/verify", response_model=Doctor)
async def verify_doctor(
    doctor_id: str,
    actor: Actor = Depends(get_current_actor),
    service: IdentityService = Depends(get_identity_service),
):
    if actor.role != UserRole.ADMIN:
        raise ForbiddenException("Only administrators can approve doctors")
    logger.info(f"Received request to approve doctor: {doctor_id}")
    return await service.verify_doctor(doctor_id)


@router.put("/doctors/{doctor_id}/availability", response_model=Doctor)
async def set_doctor_availability(
    doctor_id: str,
    update: AvailabilityUpdate,
    actor: Actor = Depends(get_current_actor),
    service: AvailabilityService = Depends(get_availability_service),
):
    logger.info(
        f"Received request to update availability for doctor: {doctor_id}"
    )
    return await service.set_availability(doctor_id, actor.id, update.windows)


@router.put("/doctors/{doctor_id}/fee", response_model=Doctor)
async def set_doctor_fee(
    doctor_id: str,
    update: FeeUpdate,
    actor: Actor = Depends(get_current_actor),
    service: IdentityService = Depends(get_identity_service),
):
    return await service.update_consultation_fee(
        doctor_id, actor.id, update.consultation_fee
    )


@router.get("/doctors/{doctor_id}/slots", response_model=List[dtime])
async def get_open_slots(
    doctor_id: str,
    date: date,
    service: QueryService = Depends(get_query_service),
):
    return await service.open_slots(doctor_id, date)


@router.get(
    "/doctors/{doctor_id}/appointments", response_model=List[Appointment]
)
async def get_doctor_appointments(
    doctor_id: str,
    status: Optional[AppointmentStatus] = None,
    actor: Actor = Depends(get_current_actor),
    service: QueryService = Depends(get_query_service),
):
    logger.info(
        f"Received request to get appointments for doctor: {doctor_id}"
    )
    require_self(actor, doctor_id)
    return await service.queue_for_doctor(doctor_id, status)


@router.get("/doctors/{doctor_id}/stats", response_model=DoctorStats)
async def get_doctor_stats(
    doctor_id: str,
    actor: Actor = Depends(get_current_actor),
    service: QueryService = Depends(get_query_service),
):
    require_self(actor, doctor_id)
    return await service.doctor_stats(doctor_id)


@router.post("/appointments", response_model=Appointment, status_code=201)
async def create_appointment(
    booking: BookingRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    logger.info("Received request to create appointment")
    require_self(actor, booking.patient_id)
    appointment = await service.book_appointment(booking)
    logger.info(f"Successfully created appointment: {appointment.id}")
    return appointment


@router.get("/appointments/{appointment_id}", response_model=Appointment)
async def get_appointment(
    appointment_id: str,
    actor: Actor = Depends(get_current_actor),
    service: QueryService = Depends(get_query_service),
):
    return await service.get_appointment(appointment_id, actor.id)


@router.post(
    "/appointments/{appointment_id}/confirm", response_model=Appointment
)
async def confirm_appointment(
    appointment_id: str,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return await service.confirm(appointment_id, actor.id)


@router.post(
    "/appointments/{appointment_id}/decline", response_model=Appointment
)
async def decline_appointment(
    appointment_id: str,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return await service.decline(appointment_id, actor.id)


@router.post(
    "/appointments/{appointment_id}/cancel", response_model=Appointment
)
async def cancel_appointment(
    appointment_id: str,
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return await service.cancel(appointment_id, actor.id)


@router.post(
    "/appointments/{appointment_id}/complete", response_model=Appointment
)
async def complete_appointment(
    appointment_id: str,
    body: Optional[CompleteRequest] = Body(default=None),
    actor: Actor = Depends(get_current_actor),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    prescription = body.prescription if body else None
    return await service.complete(appointment_id, actor.id, prescription)
