from datetime import datetime, timezone
import pytest
from clinic_scheduler.clock import FixedClock
from clinic_scheduler.models import AppointmentCreate, DoctorProfile, WorkingHours
from clinic_scheduler.scheduler import Scheduler
from clinic_scheduler.store import InMemoryAppointmentStore

START = datetime(2026, 10, 16, 8, 0, tzinfo=timezone.utc)
DAY = "2026-10-20"

@pytest.fixture
def clock():
    return FixedClock(START)

@pytest.fixture
def store():
    return InMemoryAppointmentStore()

@pytest.fixture
def doctors():
    return {
        "doc-1": DoctorProfile(doctor_id="doc-1", working_hours=WorkingHours(start="09:00", end="17:00"), slot_duration=30),
        "doc-2": DoctorProfile(doctor_id="doc-2", working_hours=WorkingHours(start="08:00", end="12:00"), slot_duration=60),
        "doc-nohours": DoctorProfile(doctor_id="doc-nohours"),
    }

@pytest.fixture
def scheduler(store, doctors, clock):
    async def lookup(doctor_id):
        return doctors.get(doctor_id)
    return Scheduler(store, lookup, clock)

def _booking(time="10:00", date=DAY, doctor="doc-1", patient="pat-1", **extra) -> AppointmentCreate:
    return AppointmentCreate(
        patient_id=patient,
        doctor_id=doctor,
        appointment_date=date,
        appointment_time=time,
        **extra,
    )

@pytest.fixture
def booking():
    return _booking
