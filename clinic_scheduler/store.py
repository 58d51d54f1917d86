"""Appointment persistence.

Records are plain dicts keyed by wire field names. The store exposes point
reads, full-record writes, a (doctor, date range) query and a paginated scan.
Every write is conditional on the record being unchanged since it was read,
and a (doctorId, appointmentDate, appointmentTime) triple may be held by at
most one scheduled record.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class SlotTakenError(Exception):
    """Conditional write lost: another scheduled record already holds the slot."""

    def __init__(self, doctor_id: str, appointment_date: str, appointment_time: str, holder_id: str):
        super().__init__(f"{doctor_id} {appointment_date} {appointment_time} is held by {holder_id}")
        self.holder_id = holder_id


class StaleRecordError(Exception):
    """Conditional write lost: the record changed since it was read."""

    def __init__(self, appointment_id: str):
        super().__init__(f"{appointment_id} was modified by another request")
        self.appointment_id = appointment_id


class AppointmentStore(Protocol):
    async def get(self, appointment_id: str) -> Optional[dict]: ...

    async def put(self, record: dict, expected: Optional[dict] = None) -> dict: ...

    async def query_doctor(
        self,
        doctor_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]: ...

    async def scan(
        self,
        limit: int,
        start_key: Optional[str] = None,
        date: Optional[str] = None,
        status: Optional[str] = None,
    ) -> tuple[list[dict], Optional[str]]: ...


def _slot_key(record: dict) -> tuple:
    return record["doctorId"], record["appointmentDate"], record["appointmentTime"]


def encode_start_key(appointment_id: str) -> str:
    return json.dumps({"appointmentId": appointment_id})


def decode_start_key(start_key: str) -> str:
    """Return the appointment id inside a pagination key; ValueError if malformed."""
    try:
        decoded = json.loads(start_key)
    except json.JSONDecodeError as exc:
        raise ValueError(f"not a pagination key: {start_key!r}") from exc
    if not isinstance(decoded, dict) or not isinstance(decoded.get("appointmentId"), str):
        raise ValueError(f"not a pagination key: {start_key!r}")
    return decoded["appointmentId"]


class InMemoryAppointmentStore:
    """Process-local store, insertion ordered. Suitable for tests and single-node demos."""

    def __init__(self):
        self._items: dict[str, dict] = {}
        # scheduled slot -> appointment id holding it
        self._slots: dict[tuple, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, appointment_id: str) -> Optional[dict]:
        item = self._items.get(appointment_id)
        return dict(item) if item is not None else None

    async def put(self, record: dict, expected: Optional[dict] = None) -> dict:
        """Write `record` only if the stored version still equals `expected`.

        `expected=None` means the record must not exist yet.
        """
        appointment_id = record["appointmentId"]
        async with self._lock:
            previous = self._items.get(appointment_id)
            if previous != expected:
                raise StaleRecordError(appointment_id)
            if record.get("status") == "scheduled":
                key = _slot_key(record)
                holder = self._slots.get(key)
                if holder is not None and holder != appointment_id:
                    raise SlotTakenError(*key, holder_id=holder)
            if previous is not None and self._slots.get(_slot_key(previous)) == appointment_id:
                del self._slots[_slot_key(previous)]
            if record.get("status") == "scheduled":
                self._slots[_slot_key(record)] = appointment_id
            self._items[appointment_id] = dict(record)
        logger.debug(f"Stored appointment {appointment_id}")
        return dict(record)

    async def query_doctor(
        self,
        doctor_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]:
        # ISO dates compare correctly as strings
        return [
            dict(item)
            for item in self._items.values()
            if item["doctorId"] == doctor_id
            and (start_date is None or item["appointmentDate"] >= start_date)
            and (end_date is None or item["appointmentDate"] <= end_date)
        ]

    async def scan(
        self,
        limit: int,
        start_key: Optional[str] = None,
        date: Optional[str] = None,
        status: Optional[str] = None,
    ) -> tuple[list[dict], Optional[str]]:
        ids = list(self._items)
        offset = 0
        if start_key:
            last_id = decode_start_key(start_key)
            if last_id not in self._items:
                raise ValueError(f"unknown pagination key: {start_key!r}")
            offset = ids.index(last_id) + 1

        matches = [
            self._items[appointment_id]
            for appointment_id in ids[offset:]
            if (date is None or self._items[appointment_id]["appointmentDate"] == date)
            and (status is None or self._items[appointment_id].get("status") == status)
        ]
        page = [dict(item) for item in matches[:limit]]
        last_key = encode_start_key(page[-1]["appointmentId"]) if len(matches) > limit else None
        return page, last_key
