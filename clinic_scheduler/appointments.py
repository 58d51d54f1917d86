"""Appointment lifecycle: create, update, cancel and the read queries around them.

States are non-existent -> scheduled -> cancelled. Records are never deleted.
Each mutating call performs a single store write.
"""
from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from pydantic.alias_generators import to_camel

from .clock import Clock
from .config import NO_REASON_PROVIDED
from .conflicts import has_conflict
from .errors import ConflictError, NotFoundError, ValidationError
from .models import CANCELLED, Appointment, AppointmentCreate, AppointmentPatch
from .store import AppointmentStore, SlotTakenError, StaleRecordError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("patient_id", "doctor_id", "appointment_date", "appointment_time")
SLOT_FIELDS = {"doctor_id", "appointment_date", "appointment_time"}
SLOT_TAKEN = "Time slot is already booked"
MODIFIED = "Appointment was modified by another request, reload and retry"


def _new_id() -> str:
    return str(uuid.uuid4())


class AppointmentManager:
    def __init__(self, store: AppointmentStore, clock: Clock, id_factory: Callable[[], str] = _new_id):
        self.store = store
        self.clock = clock
        self._new_id = id_factory

    async def _write(self, appointment: Appointment, expected: Optional[dict] = None) -> Appointment:
        """Single conditional write; `expected` is the record exactly as it was read."""
        try:
            saved = await self.store.put(appointment.to_wire(), expected=expected)
        except SlotTakenError as e:
            logger.warning(f"Conditional write rejected for {appointment.appointment_id}: {e}")
            raise ConflictError(SLOT_TAKEN, detail=str(e)) from e
        except StaleRecordError as e:
            logger.warning(f"Stale write rejected for {appointment.appointment_id}")
            raise ConflictError(MODIFIED, detail=str(e)) from e
        return Appointment.model_validate(saved)

    async def _read(self, appointment_id: str) -> tuple[dict, Appointment]:
        item = await self.store.get(appointment_id)
        if item is None:
            raise NotFoundError("Appointment not found", detail=appointment_id)
        return item, Appointment.model_validate(item)

    async def get(self, appointment_id: str) -> Appointment:
        _, appointment = await self._read(appointment_id)
        return appointment

    async def create(self, request: AppointmentCreate) -> Appointment:
        missing = [name for name in REQUIRED_FIELDS if not getattr(request, name)]
        if missing:
            raise ValidationError(
                "Missing required fields",
                detail=", ".join(to_camel(name) for name in missing),
            )

        if await has_conflict(self.store, request.doctor_id, request.appointment_date, request.appointment_time):
            logger.warning(
                f"Slot {request.appointment_date} {request.appointment_time} already booked "
                f"for doctor {request.doctor_id}"
            )
            raise ConflictError(SLOT_TAKEN)

        now = self.clock.now()
        appointment = Appointment(
            appointment_id=self._new_id(),
            **request.model_dump(),
            created_at=now,
            updated_at=now,
        )
        saved = await self._write(appointment)
        logger.info(f"Created appointment {saved.appointment_id} for doctor {saved.doctor_id}")
        return saved

    async def update(self, appointment_id: str, patch: AppointmentPatch) -> Appointment:
        stored, current = await self._read(appointment_id)
        changes = patch.model_dump(exclude_unset=True)
        emptied = [name for name in REQUIRED_FIELDS if name in changes and not changes[name]]
        if emptied:
            raise ValidationError(
                "Required fields cannot be empty",
                detail=", ".join(to_camel(name) for name in emptied),
            )

        updated = current.model_copy(
            update={**changes, "updated_at": max(current.updated_at, self.clock.now())}
        )
        # a cancelled record holds no slot, so there is nothing to collide with
        if current.is_active and SLOT_FIELDS & changes.keys():
            if await has_conflict(
                self.store,
                updated.doctor_id,
                updated.appointment_date,
                updated.appointment_time,
                exclude_appointment_id=appointment_id,
            ):
                logger.warning(f"Update of {appointment_id} would double-book its new slot")
                raise ConflictError(SLOT_TAKEN)

        saved = await self._write(updated, expected=stored)
        logger.info(f"Updated appointment {appointment_id}")
        return saved

    async def cancel(self, appointment_id: str, reason: Optional[str] = None) -> Appointment:
        """Cancel an appointment. Cancelling twice is accepted and only rewrites the reason."""
        stored, current = await self._read(appointment_id)
        cancelled = current.model_copy(
            update={
                "status": CANCELLED,
                "cancellation_reason": reason or NO_REASON_PROVIDED,
                "updated_at": max(current.updated_at, self.clock.now()),
            }
        )
        saved = await self._write(cancelled, expected=stored)
        logger.info(f"Cancelled appointment {appointment_id}")
        return saved

    async def list_for_doctor(
        self,
        doctor_id: str,
        date: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Appointment]:
        items = await self.store.query_doctor(doctor_id, date, date)
        return [
            Appointment.model_validate(item)
            for item in items
            if status is None or item.get("status") == status
        ]

    async def list_all(
        self,
        limit: int,
        last_evaluated_key: Optional[str] = None,
        date: Optional[str] = None,
        status: Optional[str] = None,
    ) -> tuple[list[Appointment], Optional[str]]:
        if limit <= 0:
            raise ValidationError("limit must be positive")
        try:
            items, last_key = await self.store.scan(limit, last_evaluated_key, date=date, status=status)
        except ValueError as e:
            raise ValidationError("Invalid lastEvaluatedKey", detail=str(e)) from e
        return [Appointment.model_validate(item) for item in items], last_key
