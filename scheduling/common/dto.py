import datetime as dt
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    EmailStr,
    Field,
    PositiveInt,
    field_validator,
    model_validator,
)


class UserRole(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, day: dt.date) -> "Weekday":
        return list(cls)[day.weekday()]


class ConsultationType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    CHAT = "chat"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentEventType(str, Enum):
    BOOKED = "AppointmentBooked"
    CONFIRMED = "AppointmentConfirmed"
    CANCELLED = "AppointmentCancelled"
    COMPLETED = "AppointmentCompleted"


class AvailabilityWindow(BaseModel):
    day: Weekday
    start_time: dt.time
    end_time: dt.time

    @model_validator(mode="after")
    def check_bounds(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    def contains(self, slot: dt.time) -> bool:
        return self.start_time <= slot < self.end_time


def check_non_overlapping(
    windows: List[AvailabilityWindow],
) -> List[AvailabilityWindow]:
    ordered = sorted(
        windows, key=lambda w: (list(Weekday).index(w.day), w.start_time)
    )
    for previous, current in zip(ordered, ordered[1:]):
        if (
            previous.day == current.day
            and current.start_time < previous.end_time
        ):
            raise ValueError(
                f"Availability windows overlap on {current.day.value}"
            )
    return ordered


DEFAULT_AVAILABILITY = [
    {"day": "Monday", "start_time": "09:00", "end_time": "17:00"},
    {"day": "Wednesday", "start_time": "09:00", "end_time": "17:00"},
    {"day": "Friday", "start_time": "09:00", "end_time": "17:00"},
]


class PatientBase(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[Literal["male", "female", "other"]] = None
    medical_history: List[str] = Field(default_factory=list)


class PatientCreate(PatientBase):
    pass


class PatientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=150)
    gender: Optional[Literal["male", "female", "other"]] = None
    medical_history: Optional[List[str]] = None

    @field_validator("name", "medical_history", mode="before")
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to keep it; these cannot be cleared
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class Patient(PatientBase):
    id: str
    role: Literal["patient"] = "patient"
    created_at: dt.datetime


class DoctorBase(BaseModel):
    name: str = Field(min_length=1)
    specialization: str = Field(min_length=1)
    consultation_fee: PositiveInt
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    experience: int = Field(default=0, ge=0)
    qualifications: List[str] = Field(default_factory=list)
    about: str = ""


class DoctorCreate(DoctorBase):
    availability: Optional[List[AvailabilityWindow]] = None

    @field_validator("availability")
    @classmethod
    def validate_availability(cls, value):
        if value is None:
            return value
        return check_non_overlapping(value)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Dr. Anjali Sharma",
                    "specialization": "Ayurvedic Medicine",
                    "consultation_fee": 800,
                    "email": "anjali.sharma@example.com",
                    "availability": [
                        {
                            "day": "Monday",
                            "start_time": "09:00",
                            "end_time": "17:00",
                        }
                    ],
                }
            ]
        }
    }


class Doctor(DoctorBase):
    id: str
    role: Literal["doctor"] = "doctor"
    availability: List[AvailabilityWindow] = Field(default_factory=list)
    is_verified: bool = False
    rating: float = 0.0
    review_count: int = 0
    created_at: dt.datetime

    @field_validator("availability")
    @classmethod
    def validate_availability(cls, value):
        return check_non_overlapping(value)


User = Annotated[Union[Patient, Doctor], Field(discriminator="role")]


class DoctorFilter(BaseModel):
    search: Optional[str] = None
    specialization: Optional[str] = None
    include_unverified: bool = False

    def matches(self, doctor: Doctor) -> bool:
        if not self.include_unverified and not doctor.is_verified:
            return False
        if self.specialization and (
            doctor.specialization.lower() != self.specialization.lower()
        ):
            return False
        if self.search:
            needle = self.search.lower()
            return (
                needle in doctor.name.lower()
                or needle in doctor.specialization.lower()
            )
        return True


class AvailabilityUpdate(BaseModel):
    windows: List[AvailabilityWindow]

    @field_validator("windows")
    @classmethod
    def validate_windows(cls, value):
        return check_non_overlapping(value)


class FeeUpdate(BaseModel):
    consultation_fee: PositiveInt


class BookingRequest(BaseModel):
    patient_id: str
    doctor_id: str
    date: dt.date
    time: dt.time
    consultation_type: ConsultationType
    symptoms: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "patient_id": "patient_1",
                    "doctor_id": "doc1",
                    "date": "2025-02-24",
                    "time": "10:00",
                    "consultation_type": "video",
                    "symptoms": "Digestive issues, bloating",
                }
            ]
        }
    }


class Appointment(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    doctor_specialization: str
    date: dt.date
    time: dt.time
    consultation_type: ConsultationType
    status: AppointmentStatus = AppointmentStatus.PENDING
    symptoms: Optional[str] = None
    prescription: Optional[str] = None
    consultation_fee: PositiveInt
    cancelled_by: Optional[UserRole] = None
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None

    @property
    def slot_key(self) -> str:
        return make_slot_key(self.doctor_id, self.date, self.time)

    @property
    def starts_at(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.time)


def make_slot_key(doctor_id: str, day: dt.date, slot: dt.time) -> str:
    return f"{doctor_id}#{day.isoformat()}#{slot.strftime('%H:%M')}"


class AppointmentMutation(BaseModel):
    """Conditional status change applied by the appointment store.

    The store applies it only while the stored status still equals
    ``expected_status``.
    """

    expected_status: AppointmentStatus
    new_status: AppointmentStatus
    prescription: Optional[str] = None
    cancelled_by: Optional[UserRole] = None
    updated_at: dt.datetime


class AppointmentFilter(BaseModel):
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    statuses: Optional[List[AppointmentStatus]] = None
    date: Optional[dt.date] = None

    def matches(self, appointment: Appointment) -> bool:
        if self.patient_id and appointment.patient_id != self.patient_id:
            return False
        if self.doctor_id and appointment.doctor_id != self.doctor_id:
            return False
        if self.statuses and appointment.status not in self.statuses:
            return False
        if self.date and appointment.date != self.date:
            return False
        return True


class AppointmentEvent(BaseModel):
    event_type: AppointmentEventType
    appointment: Appointment
    occurred_at: dt.datetime


class CompleteRequest(BaseModel):
    prescription: Optional[str] = None


class DoctorStats(BaseModel):
    doctor_id: str
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
    total_earnings: int = 0


class Actor(BaseModel):
    id: str
    role: UserRole


class TokenData(BaseModel):
    sub: Optional[str] = None
    role: Optional[UserRole] = None
