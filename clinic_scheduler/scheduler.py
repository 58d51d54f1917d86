"""Read-side views over a doctor's calendar, plus the lifecycle manager they sit beside."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .appointments import AppointmentManager
from .availability import compute_available_slots
from .clock import Clock, today
from .conflicts import booked_times
from .errors import NotFoundError, ValidationError
from .models import (
    CANCELLED,
    SCHEDULED,
    Appointment,
    AvailableSlots,
    DoctorProfile,
    DoctorSchedule,
    DoctorStats,
)
from .store import AppointmentStore

logger = logging.getLogger(__name__)

DoctorLookup = Callable[[str], Awaitable[Optional[DoctorProfile]]]


class Scheduler:
    """Entry point for every scheduling operation.

    `doctor_lookup` is the read-only accessor for doctor profiles; it returns
    None for an unknown doctor.
    """

    def __init__(self, store: AppointmentStore, doctor_lookup: DoctorLookup, clock: Clock):
        self.store = store
        self.doctor_lookup = doctor_lookup
        self.clock = clock
        self.appointments = AppointmentManager(store, clock)

    async def _doctor(self, doctor_id: str) -> DoctorProfile:
        doctor = await self.doctor_lookup(doctor_id)
        if doctor is None:
            raise NotFoundError("Doctor not found", detail=doctor_id)
        return doctor

    async def available_slots(self, doctor_id: str, date: Optional[str]) -> AvailableSlots:
        if not date:
            raise ValidationError("Date is required")
        doctor, booked = await asyncio.gather(
            self._doctor(doctor_id),
            booked_times(self.store, doctor_id, date),
        )
        slots = compute_available_slots(doctor.working_hours, doctor.slot_duration, booked, date)
        return AvailableSlots(
            date=date,
            slot_duration=doctor.slot_duration,
            working_hours=doctor.working_hours,
            available_slots=slots,
        )

    async def doctor_schedule(
        self,
        doctor_id: str,
        start_date: Optional[str],
        end_date: Optional[str],
    ) -> DoctorSchedule:
        """Appointments of any status in [start_date, end_date], grouped by date.

        Within a date the store order is kept; appointments are not re-sorted by time.
        """
        if not start_date or not end_date:
            raise ValidationError("Start date and end date are required")
        if start_date > end_date:
            raise ValidationError("Start date must not be after end date", detail=f"{start_date} > {end_date}")

        doctor, items = await asyncio.gather(
            self._doctor(doctor_id),
            self.store.query_doctor(doctor_id, start_date, end_date),
        )
        grouped: dict[str, list[Appointment]] = {}
        for item in items:
            appointment = Appointment.model_validate(item)
            grouped.setdefault(appointment.appointment_date, []).append(appointment)

        return DoctorSchedule(
            working_hours=doctor.working_hours,
            slot_duration=doctor.slot_duration,
            appointments=grouped,
        )

    async def doctor_stats(
        self,
        doctor_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> DoctorStats:
        start_date = start_date or today(self.clock)
        end_date = end_date or today(self.clock)
        if start_date > end_date:
            raise ValidationError("Start date must not be after end date", detail=f"{start_date} > {end_date}")

        items = await self.store.query_doctor(doctor_id, start_date, end_date)
        stats = DoctorStats(total_appointments=len(items))
        for item in items:
            if item.get("status") == SCHEDULED:
                stats.scheduled += 1
            elif item.get("status") == CANCELLED:
                stats.cancelled += 1
            kind = item.get("appointmentType") or "unspecified"
            stats.by_type[kind] = stats.by_type.get(kind, 0) + 1
        return stats
