"""Async client for the doctor profile service.
Assumes OAuth2 client-credentials flow. Only working hours and slot duration are read.
"""
from __future__ import annotations
import logging
import os
import time
import httpx
from pydantic import ValidationError as SchemaError
from .config import (
    DOCTOR_SERVICE_URL as _BASE_URL,
    DOCTOR_TOKEN_URL as _TOKEN_URL,
    DOCTOR_CLIENT_ID as _CLIENT_ID,
    DOCTOR_CLIENT_SECRET as _CLIENT_SECRET,
    DEFAULT_SLOT_DURATION,
)
from .errors import StoreError
from .models import DoctorProfile, WorkingHours

logger = logging.getLogger(__name__)

_TOKEN_CACHE: dict[str, float | str | None] = {"token": None, "exp": 0.0}

async def _get_token() -> str:
    """Fetch and cache bearer token until five minutes before it expires."""
    now = time.time()
    token = _TOKEN_CACHE["token"]
    expires = _TOKEN_CACHE["exp"]
    if isinstance(token, str) and isinstance(expires, (int, float)) and now < expires:
        return token

    async with httpx.AsyncClient(http2=True, timeout=15) as client:
        resp = await client.post(
            _TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(_CLIENT_ID, _CLIENT_SECRET),
        )
        resp.raise_for_status()
        data = resp.json()
        token = data["access_token"]
        _TOKEN_CACHE.update(token=token, exp=now + data.get("expires_in", 3600) - 300)
        return token

def _offline_profile(doctor_id: str) -> DoctorProfile:
    return DoctorProfile(
        doctor_id=doctor_id,
        working_hours=WorkingHours(start="09:00", end="17:00"),
        slot_duration=DEFAULT_SLOT_DURATION,
    )

async def fetch_doctor_profile(doctor_id: str) -> DoctorProfile | None:
    """Return working hours and slot duration for a doctor, or None if the doctor is unknown."""
    if os.getenv("OFFLINE_MODE", "0") == "1":
        return _offline_profile(doctor_id)

    try:
        headers = {"Authorization": f"Bearer {await _get_token()}", "Accept": "application/json"}
        params = {"fields": "workingHours,slotDuration"}
        async with httpx.AsyncClient(http2=True, timeout=15) as client:
            resp = await client.get(f"{_BASE_URL}/doctors/{doctor_id}", headers=headers, params=params)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            payload = resp.json()
    except (httpx.HTTPError, ValueError, KeyError) as e:
        logger.error(f"Doctor profile lookup failed for {doctor_id}: {e}", exc_info=True)
        raise StoreError("Error fetching doctor profile", detail=str(e)) from e

    try:
        return DoctorProfile(
            doctor_id=payload.get("doctorId", doctor_id),
            working_hours=payload.get("workingHours"),
            slot_duration=payload.get("slotDuration") or DEFAULT_SLOT_DURATION,
        )
    except SchemaError as e:
        logger.error(f"Malformed profile for doctor {doctor_id}: {e}")
        raise StoreError("Malformed doctor profile", detail=str(e)) from e
