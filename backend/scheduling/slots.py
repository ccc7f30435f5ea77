"""Derive bookable slots from weekly availability windows.

Nothing here touches the database: callers pass in the provider's windows for
the weekday and the start times already booked, and get back the open slots.
Slots are never stored, so cancelling or deleting a booking reopens its slot
on the next query.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Iterable, Protocol

from pydantic import BaseModel

SLOT_DURATION_MINUTES = 30
MINUTES_PER_DAY = 24 * 60

_WALL_CLOCK_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2})?$')


class WindowLike(Protocol):
    start_time: str
    end_time: str


class SlotOption(BaseModel):
    start: datetime
    end: datetime
    counselor_id: int
    counselor_username: str


def day_of_week(slot_date: date) -> int:
    """Day index with 0 = Sunday, matching stored availability rows."""
    return (slot_date.weekday() + 1) % 7


def wall_clock_minutes(value: str | None) -> int | None:
    """Minutes after midnight for an ``HH:MM`` string, or None if unparseable."""
    if not value:
        return None

    match = _WALL_CLOCK_PATTERN.match(value.strip())
    if not match:
        return None

    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59:
        return None
    total = hours * 60 + minutes
    # 24:00 is accepted as an end-of-day bound
    if total > MINUTES_PER_DAY:
        return None
    return total


def slot_times_between(start_time: str, end_time: str, slot_minutes: int = SLOT_DURATION_MINUTES) -> list[time]:
    start_minutes = wall_clock_minutes(start_time)
    end_minutes = wall_clock_minutes(end_time)
    if start_minutes is None or end_minutes is None:
        return []

    starts: list[time] = []
    current = start_minutes
    while current + slot_minutes <= end_minutes:
        starts.append(time(current // 60, current % 60))
        current += slot_minutes

    return starts


def booked_slot_keys(scheduled_times: Iterable[datetime]) -> set[datetime]:
    return {
        scheduled_at.replace(second=0, microsecond=0, tzinfo=None)
        for scheduled_at in scheduled_times
        if scheduled_at is not None
    }


def generate_slots(
    slot_date: date,
    windows: Iterable[WindowLike],
    booked_starts: Iterable[datetime],
    provider_id: int,
    provider_name: str,
    slot_minutes: int = SLOT_DURATION_MINUTES,
) -> list[SlotOption]:
    """Open slots for one provider on one date.

    Windows are not merged, so overlapping windows yield repeated starts.
    The result follows window order and is not sorted.
    """
    booked = booked_slot_keys(booked_starts)
    slot_length = timedelta(minutes=slot_minutes)

    slots: list[SlotOption] = []
    for window in windows:
        for start in slot_times_between(window.start_time, window.end_time, slot_minutes):
            slot_start = datetime.combine(slot_date, start)
            if slot_start in booked:
                continue
            try:
                slot_end = slot_start + slot_length
            except OverflowError:
                # a slot ending at midnight after date.max cannot be represented
                continue
            slots.append(
                SlotOption(
                    start=slot_start,
                    end=slot_end,
                    counselor_id=provider_id,
                    counselor_username=provider_name,
                )
            )

    return slots
