import logging
from typing import Optional
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException
from .clock import SystemClock
from .client import fetch_doctor_profile
from .config import DEFAULT_PAGE_LIMIT, LOG_LEVEL, SCHEDULER_API_KEY
from .errors import SchedulingError
from .models import AppointmentCreate, AppointmentPatch, CancelRequest
from .scheduler import Scheduler
from .store import InMemoryAppointmentStore

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

API_KEY = SCHEDULER_API_KEY
# HTTPBearer scheme so Swagger-UI can attach the Authorization header globally
auth_scheme = HTTPBearer(auto_error=False)

app = FastAPI(title="Clinic Scheduling Service")

_scheduler = Scheduler(InMemoryAppointmentStore(), fetch_doctor_profile, SystemClock())

def get_scheduler() -> Scheduler:
    return _scheduler

def verify_api_key(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)):
    """Validate Bearer token provided via Authorization header"""
    if credentials is None or credentials.scheme.lower() != "bearer" or credentials.credentials != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")

def _ok(data, status_code: int = 200, **meta) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, **meta, "data": data})

# Error envelopes -----------------------------------------------------------

@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.detail})")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error": exc.detail},
    )

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request", "error": jsonable_encoder(exc.errors())},
    )

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail), "error": None},
        headers=getattr(exc, "headers", None),
    )

@app.get("/health")
async def health():
    return {"success": True, "message": "Scheduling service is running"}

# Appointment lifecycle -------------------------------------------------------

@app.post("/api/appointments", dependencies=[Depends(verify_api_key)])
async def create_appointment(req: AppointmentCreate, scheduler: Scheduler = Depends(get_scheduler)):
    appointment = await scheduler.appointments.create(req)
    return _ok(appointment.to_wire(), status_code=201, message="Appointment created successfully")

@app.get("/api/appointments", dependencies=[Depends(verify_api_key)])
async def list_appointments(
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1),
    last_evaluated_key: Optional[str] = Query(None, alias="lastEvaluatedKey"),
    date: Optional[str] = Query(None, description="YYYY-MM-DD appointment date"),
    status: Optional[str] = Query(None, description="scheduled or cancelled"),
    scheduler: Scheduler = Depends(get_scheduler),
):
    items, last_key = await scheduler.appointments.list_all(limit, last_evaluated_key, date=date, status=status)
    return _ok([a.to_wire() for a in items], lastEvaluatedKey=last_key, count=len(items))

@app.get("/api/appointments/doctor/{doctor_id}", dependencies=[Depends(verify_api_key)])
async def doctor_appointments(
    doctor_id: str,
    date: Optional[str] = Query(None, description="YYYY-MM-DD appointment date"),
    status: Optional[str] = Query(None, description="scheduled or cancelled"),
    scheduler: Scheduler = Depends(get_scheduler),
):
    items = await scheduler.appointments.list_for_doctor(doctor_id, date=date, status=status)
    return _ok([a.to_wire() for a in items], count=len(items))

@app.get("/api/appointments/slots/{doctor_id}", dependencies=[Depends(verify_api_key)])
async def available_slots(
    doctor_id: str,
    date: Optional[str] = Query(None, description="YYYY-MM-DD date to list free slots for"),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """Return the free slots of a doctor on one date, in ascending order."""
    slots = await scheduler.available_slots(doctor_id, date)
    return _ok(slots.to_wire())

@app.get("/api/appointments/{appointment_id}", dependencies=[Depends(verify_api_key)])
async def get_appointment(appointment_id: str, scheduler: Scheduler = Depends(get_scheduler)):
    appointment = await scheduler.appointments.get(appointment_id)
    return _ok(appointment.to_wire())

@app.put("/api/appointments/{appointment_id}", dependencies=[Depends(verify_api_key)])
async def update_appointment(
    appointment_id: str,
    patch: AppointmentPatch,
    scheduler: Scheduler = Depends(get_scheduler),
):
    appointment = await scheduler.appointments.update(appointment_id, patch)
    return _ok(appointment.to_wire(), message="Appointment updated successfully")

@app.delete("/api/appointments/{appointment_id}", dependencies=[Depends(verify_api_key)])
async def cancel_appointment(
    appointment_id: str,
    req: Optional[CancelRequest] = Body(None),
    scheduler: Scheduler = Depends(get_scheduler),
):
    # the body is optional so plain DELETE requests work without JSON
    reason = req.cancellation_reason if req else None
    appointment = await scheduler.appointments.cancel(appointment_id, reason)
    return _ok(appointment.to_wire(), message="Appointment cancelled successfully")

# Doctor calendar views ---------------------------------------------------------

@app.get("/api/doctors/{doctor_id}/schedule", dependencies=[Depends(verify_api_key)])
async def doctor_schedule(
    doctor_id: str,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    scheduler: Scheduler = Depends(get_scheduler),
):
    schedule = await scheduler.doctor_schedule(doctor_id, start_date, end_date)
    return _ok(schedule.to_wire())

@app.get("/api/doctors/{doctor_id}/stats", dependencies=[Depends(verify_api_key)])
async def doctor_stats(
    doctor_id: str,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    scheduler: Scheduler = Depends(get_scheduler),
):
    stats = await scheduler.doctor_stats(doctor_id, start_date, end_date)
    return _ok(stats.to_wire())
