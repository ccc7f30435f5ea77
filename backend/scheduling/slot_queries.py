import calendar
import re
from datetime import date, datetime, time

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from backend.database import is_row_id
from backend.models.appointment import APPOINTMENT_TYPES, Appointment
from backend.models.user import User
from backend.scheduling.availability_store import get_windows_for_day
from backend.scheduling.slots import SlotOption, day_of_week, generate_slots

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
MONTH_PATTERN = re.compile(r'^\d{4}-\d{2}$')


def parse_slot_date(value: str | None) -> date:
    if not value or not DATE_PATTERN.match(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Query date required (YYYY-MM-DD).',
        )
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Query date must be a real calendar date.',
        ) from exc


def parse_slot_month(value: str | None) -> tuple[int, int]:
    if not value or not MONTH_PATTERN.match(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Query month required (YYYY-MM).',
        )

    year, month = (int(part) for part in value.split('-'))
    if year < 1 or not 1 <= month <= 12:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Query month must be between 01 and 12.',
        )
    return year, month


def normalize_appointment_type(value: str | None) -> str | None:
    """Unknown types are ignored rather than rejected."""
    if not value:
        return None
    normalized = value.strip().lower()
    return normalized if normalized in APPOINTMENT_TYPES else None


def resolve_providers(db: Session, counselor_id: int | None, appointment_type: str | None) -> list[User]:
    if counselor_id is not None and not is_row_id(counselor_id):
        return []

    query = db.query(User).filter(User.role == 'counselor')
    if counselor_id is not None:
        query = query.filter(User.id == counselor_id)
    providers = query.order_by(User.id.asc()).all()

    if appointment_type == 'doctor':
        return [provider for provider in providers if provider.effective_provider_type == 'doctor']
    if appointment_type == 'counseling':
        return [provider for provider in providers if provider.effective_provider_type != 'doctor']
    return providers


def get_booked_starts(db: Session, provider_id: int, slot_date: date) -> list[datetime]:
    # inclusive upper bound; the next midnight is unrepresentable on date.max
    day_start = datetime.combine(slot_date, time.min)
    day_end = datetime.combine(slot_date, time.max)
    rows = db.query(Appointment.scheduled_at).filter(
        Appointment.assigned_to == provider_id,
        Appointment.status == 'scheduled',
        Appointment.scheduled_at >= day_start,
        Appointment.scheduled_at <= day_end,
    ).all()
    return [scheduled_at for (scheduled_at,) in rows]


def get_available_slots(
    db: Session,
    slot_date: date,
    counselor_id: int | None = None,
    appointment_type: str | None = None,
) -> list[SlotOption]:
    weekday = day_of_week(slot_date)

    all_slots: list[SlotOption] = []
    for provider in resolve_providers(db, counselor_id, appointment_type):
        windows = get_windows_for_day(db, provider.id, weekday)
        if not windows:
            continue
        all_slots.extend(
            generate_slots(
                slot_date,
                windows,
                get_booked_starts(db, provider.id, slot_date),
                provider.id,
                provider.username,
            )
        )

    # sorted() is stable, so equal starts keep provider order
    return sorted(all_slots, key=lambda slot: slot.start)


def get_dates_with_slots(
    db: Session,
    year: int,
    month: int,
    counselor_id: int | None = None,
    appointment_type: str | None = None,
) -> list[str]:
    """Dates in the month with at least one open slot, probed day by day."""
    _, last_day = calendar.monthrange(year, month)

    dates: list[str] = []
    for day in range(1, last_day + 1):
        current_day = date(year, month, day)
        if get_available_slots(db, current_day, counselor_id, appointment_type):
            dates.append(current_day.isoformat())

    return dates


def parse_counselor_id(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    digits = value.strip()
    if not (digits.isascii() and digits.isdigit()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='counselorId must be a number.',
        )
    return int(digits)
