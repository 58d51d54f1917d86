from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel
from .clock import minutes_of_day
from .config import DEFAULT_SLOT_DURATION

SCHEDULED = "scheduled"
CANCELLED = "cancelled"

AppointmentStatus = Literal["scheduled", "cancelled"]


class WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire and in the store."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WorkingHours(WireModel):
    start: str  # HH:MM, 24h
    end: str

    @model_validator(mode="after")
    def _start_before_end(self):
        if minutes_of_day(self.start) >= minutes_of_day(self.end):
            raise ValueError("workingHours.start must be earlier than workingHours.end")
        return self


class DoctorProfile(WireModel):
    """The slice of a doctor's profile the scheduler reads."""
    doctor_id: str
    working_hours: Optional[WorkingHours] = None
    slot_duration: int = Field(default=DEFAULT_SLOT_DURATION, gt=0)  # minutes


class Appointment(WireModel):
    appointment_id: str
    patient_id: str
    doctor_id: str
    appointment_date: str  # YYYY-MM-DD
    appointment_time: str  # HH:MM, 24h
    appointment_type: Optional[str] = None
    notes: Optional[str] = None
    status: AppointmentStatus = SCHEDULED
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == SCHEDULED


class AppointmentCreate(WireModel):
    # required fields are checked by the lifecycle manager so that a missing
    # one is reported as a ValidationError rather than a schema failure
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    appointment_type: Optional[str] = None
    notes: Optional[str] = None


class AppointmentPatch(WireModel):
    """Fields an update may overwrite. Anything else in the payload is rejected."""

    model_config = {"extra": "forbid"}

    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    appointment_type: Optional[str] = None
    notes: Optional[str] = None


class CancelRequest(WireModel):
    cancellation_reason: Optional[str] = None


class AvailableSlots(WireModel):
    date: str
    slot_duration: int
    working_hours: WorkingHours
    available_slots: list[str]


class DoctorSchedule(WireModel):
    working_hours: Optional[WorkingHours] = None
    slot_duration: int
    # date -> appointments in store order
    appointments: dict[str, list[Appointment]]


class DoctorStats(WireModel):
    total_appointments: int = 0
    scheduled: int = 0
    cancelled: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
