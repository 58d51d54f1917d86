import asyncio
from datetime import datetime, timedelta, timezone
import pytest
from clinic_scheduler.errors import ConflictError, NotFoundError, ValidationError
from clinic_scheduler.models import AppointmentCreate, AppointmentPatch
from clinic_scheduler.scheduler import Scheduler
from clinic_scheduler.store import InMemoryAppointmentStore


class InterleavingStore(InMemoryAppointmentStore):
    """Yields to the event loop on every query so concurrent requests interleave."""

    async def query_doctor(self, *args, **kwargs):
        items = await super().query_doctor(*args, **kwargs)
        await asyncio.sleep(0)
        return items


@pytest.mark.asyncio
async def test_create_sets_server_fields(scheduler, clock, booking):
    appt = await scheduler.appointments.create(booking("10:00", appointment_type="checkup", notes="first visit"))
    assert appt.appointment_id
    assert appt.status == "scheduled"
    assert appt.cancellation_reason is None
    assert appt.created_at == clock.now()
    assert appt.updated_at == clock.now()
    assert appt.appointment_type == "checkup"


@pytest.mark.asyncio
async def test_create_then_fetch_round_trip(scheduler, booking):
    request = booking("10:00", appointment_type="follow-up", notes="bring labs")
    created = await scheduler.appointments.create(request)
    fetched = await scheduler.appointments.get(created.appointment_id)
    assert fetched == created
    for field, value in request.model_dump().items():
        assert getattr(fetched, field) == value


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["patient_id", "doctor_id", "appointment_date", "appointment_time"])
async def test_create_requires_fields(scheduler, booking, missing):
    request = booking("10:00").model_copy(update={missing: ""})
    with pytest.raises(ValidationError) as exc:
        await scheduler.appointments.create(request)
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_second_booking_of_same_slot_conflicts(scheduler, booking):
    await scheduler.appointments.create(booking("10:00"))
    with pytest.raises(ConflictError) as exc:
        await scheduler.appointments.create(booking("10:00", patient="pat-2"))
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_booked_again(scheduler, booking):
    first = await scheduler.appointments.create(booking("10:00"))
    await scheduler.appointments.cancel(first.appointment_id)
    second = await scheduler.appointments.create(booking("10:00", patient="pat-2"))
    assert second.status == "scheduled"


@pytest.mark.asyncio
async def test_concurrent_bookings_of_one_slot_cannot_both_win(clock, doctors, booking):
    async def lookup(doctor_id):
        return doctors.get(doctor_id)

    store = InterleavingStore()
    scheduler = Scheduler(store, lookup, clock)
    results = await asyncio.gather(
        scheduler.appointments.create(booking("10:00", patient="pat-1")),
        scheduler.appointments.create(booking("10:00", patient="pat-2")),
        return_exceptions=True,
    )
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictError)
    active = await scheduler.appointments.list_for_doctor("doc-1", date="2026-10-20", status="scheduled")
    assert len(active) == 1


@pytest.mark.asyncio
async def test_update_overwrites_supplied_fields_only(scheduler, clock, booking):
    appt = await scheduler.appointments.create(booking("10:00", appointment_type="checkup", notes="n1"))
    clock.advance(minutes=5)
    updated = await scheduler.appointments.update(appt.appointment_id, AppointmentPatch(notes="n2"))
    assert updated.notes == "n2"
    assert updated.appointment_type == "checkup"
    assert updated.appointment_time == "10:00"
    assert updated.created_at == appt.created_at
    assert updated.updated_at == appt.created_at + timedelta(minutes=5)
    assert updated.status == "scheduled"


@pytest.mark.asyncio
async def test_update_to_own_time_is_not_a_conflict(scheduler, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    updated = await scheduler.appointments.update(
        appt.appointment_id, AppointmentPatch(appointment_time="10:00", appointment_date="2026-10-20")
    )
    assert updated.appointment_time == "10:00"


@pytest.mark.asyncio
async def test_update_into_taken_slot_conflicts(scheduler, booking):
    await scheduler.appointments.create(booking("10:00"))
    other = await scheduler.appointments.create(booking("11:00", patient="pat-2"))
    with pytest.raises(ConflictError):
        await scheduler.appointments.update(other.appointment_id, AppointmentPatch(appointment_time="10:00"))
    unchanged = await scheduler.appointments.get(other.appointment_id)
    assert unchanged.appointment_time == "11:00"


@pytest.mark.asyncio
async def test_update_doctor_change_checks_new_doctor(scheduler, booking):
    await scheduler.appointments.create(booking("09:00", doctor="doc-2"))
    appt = await scheduler.appointments.create(booking("09:00", doctor="doc-1", patient="pat-2"))
    with pytest.raises(ConflictError):
        await scheduler.appointments.update(appt.appointment_id, AppointmentPatch(doctor_id="doc-2"))


@pytest.mark.asyncio
async def test_update_moves_slot(scheduler, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    await scheduler.appointments.update(appt.appointment_id, AppointmentPatch(appointment_time="15:00"))
    # the old slot is free again
    again = await scheduler.appointments.create(booking("10:00", patient="pat-2"))
    assert again.appointment_time == "10:00"


@pytest.mark.asyncio
async def test_update_missing_appointment(scheduler):
    with pytest.raises(NotFoundError):
        await scheduler.appointments.update("missing", AppointmentPatch(notes="x"))


@pytest.mark.asyncio
async def test_update_cannot_empty_required_field(scheduler, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    with pytest.raises(ValidationError):
        await scheduler.appointments.update(appt.appointment_id, AppointmentPatch(patient_id=""))


def test_patch_rejects_unknown_fields():
    with pytest.raises(ValueError):
        AppointmentPatch.model_validate({"appointmentId": "forged", "notes": "x"})
    with pytest.raises(ValueError):
        AppointmentPatch.model_validate({"status": "cancelled"})


@pytest.mark.asyncio
async def test_updated_at_never_moves_backwards(scheduler, clock, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    clock.set(appt.created_at - timedelta(hours=1))
    updated = await scheduler.appointments.update(appt.appointment_id, AppointmentPatch(notes="late clock"))
    assert updated.updated_at == appt.updated_at


@pytest.mark.asyncio
async def test_cancel_records_reason(scheduler, clock, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    clock.advance(hours=1)
    cancelled = await scheduler.appointments.cancel(appt.appointment_id, "feeling better")
    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "feeling better"
    assert cancelled.updated_at == datetime(2026, 10, 16, 9, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_cancel_default_reason(scheduler, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    cancelled = await scheduler.appointments.cancel(appt.appointment_id)
    assert cancelled.cancellation_reason == "No reason provided"


@pytest.mark.asyncio
async def test_cancel_is_idempotent(scheduler, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    await scheduler.appointments.cancel(appt.appointment_id, "first")
    again = await scheduler.appointments.cancel(appt.appointment_id, "second")
    assert again.status == "cancelled"
    assert again.cancellation_reason == "second"


@pytest.mark.asyncio
async def test_cancel_missing_appointment(scheduler):
    with pytest.raises(NotFoundError):
        await scheduler.appointments.cancel("missing")


@pytest.mark.asyncio
async def test_get_missing_appointment(scheduler):
    with pytest.raises(NotFoundError) as exc:
        await scheduler.appointments.get("missing")
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_list_for_doctor_filters(scheduler, booking):
    a = await scheduler.appointments.create(booking("09:00"))
    await scheduler.appointments.create(booking("10:00"))
    await scheduler.appointments.create(booking("09:00", date="2026-10-21"))
    await scheduler.appointments.cancel(a.appointment_id)

    assert len(await scheduler.appointments.list_for_doctor("doc-1")) == 3
    assert len(await scheduler.appointments.list_for_doctor("doc-1", date="2026-10-20")) == 2
    scheduled = await scheduler.appointments.list_for_doctor("doc-1", date="2026-10-20", status="scheduled")
    assert [x.appointment_time for x in scheduled] == ["10:00"]
    assert await scheduler.appointments.list_for_doctor("nobody") == []


@pytest.mark.asyncio
async def test_list_all_paginates(scheduler, booking):
    for hour in range(9, 14):
        await scheduler.appointments.create(booking(f"{hour:02d}:00"))

    page, key = await scheduler.appointments.list_all(2)
    assert [a.appointment_time for a in page] == ["09:00", "10:00"]
    assert key is not None
    page, key = await scheduler.appointments.list_all(2, key)
    assert [a.appointment_time for a in page] == ["11:00", "12:00"]
    page, key = await scheduler.appointments.list_all(2, key)
    assert [a.appointment_time for a in page] == ["13:00"]
    assert key is None


@pytest.mark.asyncio
async def test_list_all_rejects_bad_key(scheduler):
    with pytest.raises(ValidationError):
        await scheduler.appointments.list_all(10, "not-json")


@pytest.mark.asyncio
async def test_create_accepts_off_grid_time(scheduler, booking):
    appt = await scheduler.appointments.create(booking("10:07"))
    assert appt.appointment_time == "10:07"


@pytest.mark.asyncio
async def test_update_of_cancelled_appointment_keeps_it_cancelled(scheduler, booking):
    appt = await scheduler.appointments.create(booking("10:00"))
    await scheduler.appointments.cancel(appt.appointment_id, "travel")
    # someone else now holds 10:00; moving the cancelled record there is not a conflict
    await scheduler.appointments.create(booking("10:00", patient="pat-2"))
    await scheduler.appointments.create(booking("12:00", patient="pat-3"))

    updated = await scheduler.appointments.update(
        appt.appointment_id, AppointmentPatch(appointment_time="12:00", notes="moved")
    )
    assert updated.status == "cancelled"
    assert updated.cancellation_reason == "travel"
    assert updated.appointment_time == "12:00"
    active = await scheduler.appointments.list_for_doctor("doc-1", date="2026-10-20", status="scheduled")
    assert sorted(a.appointment_time for a in active) == ["10:00", "12:00"]


@pytest.mark.asyncio
async def test_cancel_racing_an_update_is_not_lost(clock, doctors, booking):
    async def lookup(doctor_id):
        return doctors.get(doctor_id)

    scheduler = Scheduler(InterleavingStore(), lookup, clock)
    appt = await scheduler.appointments.create(booking("10:00"))
    update_result, cancel_result = await asyncio.gather(
        scheduler.appointments.update(appt.appointment_id, AppointmentPatch(appointment_time="11:00")),
        scheduler.appointments.cancel(appt.appointment_id, "patient called"),
        return_exceptions=True,
    )
    # the update read the record before the cancel landed, so its write is refused
    assert isinstance(update_result, ConflictError)
    assert cancel_result.status == "cancelled"

    stored = await scheduler.appointments.get(appt.appointment_id)
    assert stored.status == "cancelled"
    assert stored.cancellation_reason == "patient called"
    assert stored.appointment_time == "10:00"
