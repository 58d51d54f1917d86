"""Double-booking detection.

The result is a snapshot of the store at query time, not a reservation. The
store's conditional write is what finally rejects a racing booking.
"""
from typing import Optional
from .models import SCHEDULED
from .store import AppointmentStore


async def booked_times(store: AppointmentStore, doctor_id: str, appointment_date: str) -> list[str]:
    """`appointmentTime` of every active appointment the doctor has on that date."""
    items = await store.query_doctor(doctor_id, appointment_date, appointment_date)
    return [item["appointmentTime"] for item in items if item.get("status") == SCHEDULED]


async def has_conflict(
    store: AppointmentStore,
    doctor_id: str,
    appointment_date: str,
    appointment_time: str,
    exclude_appointment_id: Optional[str] = None,
) -> bool:
    """True if another active appointment already holds (doctor, date, time)."""
    items = await store.query_doctor(doctor_id, appointment_date, appointment_date)
    return any(
        item.get("status") == SCHEDULED
        and item["appointmentTime"] == appointment_time
        and item["appointmentId"] != exclude_appointment_id
        for item in items
    )
