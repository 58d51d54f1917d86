"""Turning a doctor's working hours into bookable slots."""
from typing import Iterable, Optional
from .clock import format_minutes, minutes_of_day
from .errors import NotFoundError, ValidationError
from .models import WorkingHours


def compute_available_slots(
    working_hours: Optional[WorkingHours],
    slot_duration: int,
    booked: Iterable[str],
    date: Optional[str],
) -> list[str]:
    """
    Free slots for one day, ascending, as `HH:MM` strings.

    Candidates start at `working_hours.start` and step by `slot_duration`
    minutes until a candidate reaches `working_hours.end`. The last slot may
    therefore run past the end of working hours. Candidates whose label exactly
    matches an entry of `booked` are excluded.
    """
    if not date:
        raise ValidationError("Date is required")
    if working_hours is None:
        raise NotFoundError("Working hours not found")
    if slot_duration <= 0:
        raise ValidationError("Slot duration must be a positive number of minutes")

    taken = set(booked)
    end = minutes_of_day(working_hours.end)
    slots = []
    current = minutes_of_day(working_hours.start)
    while current < end:
        label = format_minutes(current)
        if label not in taken:
            slots.append(label)
        current += slot_duration
    return slots
