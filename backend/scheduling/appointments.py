import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Iterator

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.database import is_row_id
from backend.models.appointment import (
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    TERMINAL_STATUSES,
    Appointment,
)
from backend.models.user import User
from backend.scheduling.notifications import notify
from backend.scheduling.policy import (
    ASSIGNED_OR_UNASSIGNED,
    OWN,
    forbidden_fields,
    in_scope,
    require_scope,
)

logger = logging.getLogger(__name__)

TYPE_LABELS = {
    'counseling': 'Counseling',
    'doctor': 'Doctor',
    'follow_up': 'Follow-up',
}
OUTCOME_LABELS = {
    'completed': 'Completed',
    'no_show': 'Missed (no-show)',
}
INVALID_REFERENCE_MESSAGE = 'Invalid student or assigned counselor (not found).'
DATABASE_UNAVAILABLE_MESSAGE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


@dataclass
class AppointmentFilters:
    student_id: int | None = None
    assigned_to: int | None = None
    assigned_to_me_or_unassigned: int | None = None
    status: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    limit: int = config.APPOINTMENT_LIST_LIMIT


def parse_scheduled_at(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp as provider wall-clock time.

    A UTC offset, when present, is dropped rather than converted: slots are
    compared on the written date and time only.
    """
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='scheduledAt (ISO datetime string) required.',
        )

    normalized = value.strip()
    if normalized.endswith(('Z', 'z')):
        normalized = normalized[:-1] + '+00:00'

    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='scheduledAt must be a valid ISO date/time.',
        ) from exc

    return parsed.replace(tzinfo=None)


def parse_range_boundary(value: str | None, end_of_day: bool = False) -> datetime | None:
    if value is None or not value.strip():
        return None

    normalized = value.strip()
    try:
        if len(normalized) == 10:
            day = datetime.fromisoformat(normalized).date()
            return datetime.combine(day, time.max if end_of_day else time.min)
        return parse_scheduled_at(normalized)
    except (ValueError, HTTPException) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='from/to must be ISO dates or date/times.',
        ) from exc


def parse_optional_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text.startswith('-') else text
        if digits.isascii() and digits.isdigit():
            return int(text)
    return None


def _clip(value: Any, limit: int) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()[:limit]


def _clock(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = 'AM' if moment.hour < 12 else 'PM'
    return f'{hour}:{moment.minute:02d} {suffix}'


def format_long_datetime(moment: datetime) -> str:
    return f'{moment:%B} {moment.day}, {moment.year} at {_clock(moment)}'


def format_medium_datetime(moment: datetime) -> str:
    return f'{moment:%b} {moment.day}, {moment.year}, {_clock(moment)}'


def list_counselors(db: Session) -> list[User]:
    return db.query(User).filter(User.role == 'counselor').order_by(User.username.asc()).all()


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id) if is_row_id(appointment_id) else None
    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )
    return appointment


@contextmanager
def _write_guard(db: Session) -> Iterator[None]:
    """Commit the work done in the block, translating storage errors."""
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        message = str(exc.orig).lower()
        if 'unique' in message or 'duplicate' in message:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This time slot is already booked.',
            ) from exc
        logger.warning('Appointment write rejected by a constraint: %s', exc.orig)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=INVALID_REFERENCE_MESSAGE,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Appointment write failed')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_MESSAGE,
        ) from exc


def booking_summary(appointment: Appointment, counselor_name: str | None) -> tuple[str, str]:
    type_label = TYPE_LABELS.get(appointment.type, 'Counseling')
    lines = [f'When: {format_long_datetime(appointment.scheduled_at)}']
    if appointment.location:
        lines.append(f'Where: {appointment.location}')
    if counselor_name:
        lines.append(f'With: {counselor_name}')
    if appointment.provider_or_notes:
        lines.append(appointment.provider_or_notes)

    body = '\n'.join(lines) + '\n\nPlease contact campus wellness if you need to reschedule or have questions.'
    return f'{type_label} appointment scheduled for you', body


def outcome_summary(outcome: str, scheduled_at: datetime, counselor_name: str, report: str | None) -> tuple[str, str]:
    label = OUTCOME_LABELS[outcome]
    body = f'{label} on {format_medium_datetime(scheduled_at)} by {counselor_name}.'
    if report:
        body += f'\n\nReport: {report}'
    return f'Appointment {label}', body


def create_appointment(
    db: Session,
    actor: User,
    *,
    scheduled_at: Any,
    student_id: Any = None,
    appointment_type: str | None = None,
    location: Any = None,
    provider_or_notes: Any = None,
    admin_notes: Any = None,
    assigned_to: Any = None,
) -> Appointment:
    scope = require_scope(actor, 'appointment.create')

    if scope == OWN:
        resolved_student_id = actor.id
    else:
        resolved_student_id = parse_optional_id(student_id)
        if resolved_student_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='studentId (number) required.',
            )

    scheduled = parse_scheduled_at(scheduled_at)

    student = None
    if is_row_id(resolved_student_id):
        student = db.query(User).filter(
            User.id == resolved_student_id,
            User.role == 'student',
        ).first()
    if student is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Student not found.',
        )

    # an unknown counselor id means "no preference", not an error
    assignee = None
    requested_assignee = parse_optional_id(assigned_to)
    if requested_assignee is not None:
        assignee = next((c for c in list_counselors(db) if c.id == requested_assignee), None)

    normalized_type = (appointment_type or '').strip().lower()
    appointment = Appointment(
        student_id=student.id,
        assigned_to=assignee.id if assignee else None,
        scheduled_at=scheduled,
        type=normalized_type if normalized_type in APPOINTMENT_TYPES else 'counseling',
        status='scheduled',
        location=_clip(location, config.MAX_LOCATION_LENGTH),
        provider_or_notes=_clip(provider_or_notes, config.MAX_NOTES_LENGTH),
        admin_notes=_clip(admin_notes, config.MAX_NOTES_LENGTH),
        created_by=actor.id,
    )

    with _write_guard(db):
        db.add(appointment)
        db.flush()
        title, body = booking_summary(appointment, assignee.username if assignee else None)
        notify(db, student.id, 'appointment_booked', title, body, 'appointment', appointment.id)
    db.refresh(appointment)

    logger.info(
        'Appointment %s created by user %s for student %s (assigned to %s)',
        appointment.id,
        actor.id,
        student.id,
        appointment.assigned_to,
    )
    return appointment


def query_appointments(db: Session, filters: AppointmentFilters) -> list[Appointment]:
    query = db.query(Appointment)
    if filters.student_id is not None:
        query = query.filter(Appointment.student_id == filters.student_id)
    if filters.assigned_to is not None:
        query = query.filter(Appointment.assigned_to == filters.assigned_to)
    if filters.assigned_to_me_or_unassigned is not None:
        query = query.filter(
            (Appointment.assigned_to == filters.assigned_to_me_or_unassigned)
            | Appointment.assigned_to.is_(None)
        )
    if filters.status is not None:
        query = query.filter(Appointment.status == filters.status)
    if filters.from_date is not None:
        query = query.filter(Appointment.scheduled_at >= filters.from_date)
    if filters.to_date is not None:
        query = query.filter(Appointment.scheduled_at <= filters.to_date)

    return query.order_by(
        Appointment.scheduled_at.asc(),
        Appointment.id.asc(),
    ).limit(filters.limit).all()


def list_appointments(
    db: Session,
    actor: User,
    *,
    status_filter: str | None = None,
    student_id: int | None = None,
    from_value: str | None = None,
    to_value: str | None = None,
) -> list[Appointment]:
    scope = require_scope(actor, 'appointment.list')

    filters = AppointmentFilters(
        status=status_filter if status_filter in APPOINTMENT_STATUSES else None,
        from_date=parse_range_boundary(from_value),
        to_date=parse_range_boundary(to_value, end_of_day=True),
    )
    if scope == OWN:
        filters.student_id = actor.id
    elif scope == ASSIGNED_OR_UNASSIGNED:
        if student_id is not None and not is_row_id(student_id):
            return []
        filters.assigned_to_me_or_unassigned = actor.id
        filters.student_id = student_id

    return query_appointments(db, filters)


def _apply_student_changes(appointment: Appointment, changes: dict[str, Any]) -> dict[str, Any]:
    if 'status' in changes and changes['status'] != 'cancelled':
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Students can only cancel their appointments.',
        )

    if appointment.status != 'scheduled':
        detail = (
            'Only scheduled appointments can be cancelled.'
            if 'status' in changes
            else 'Only scheduled appointments can be rescheduled.'
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    updates: dict[str, Any] = {}
    if 'scheduled_at' in changes:
        updates['scheduled_at'] = parse_scheduled_at(changes['scheduled_at'])
    if 'status' in changes:
        updates['status'] = 'cancelled'
    return updates


def _apply_counselor_changes(db: Session, appointment: Appointment, changes: dict[str, Any]) -> dict[str, Any]:
    updates: dict[str, Any] = {}

    if 'status' in changes:
        new_status = changes['status']
        if new_status not in APPOINTMENT_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'status must be one of: {", ".join(APPOINTMENT_STATUSES)}.',
            )
        if new_status != appointment.status:
            if appointment.status in TERMINAL_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f'Appointment is already {appointment.status} and can no longer change status.',
                )
            updates['status'] = new_status

    if 'counselor_report' in changes:
        report = changes['counselor_report']
        if report is not None and not isinstance(report, str):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='counselor_report must be text or null.',
            )
        updates['counselor_report'] = report[:config.MAX_COUNSELOR_REPORT_LENGTH] if report is not None else None

    if 'scheduled_at' in changes:
        updates['scheduled_at'] = parse_scheduled_at(changes['scheduled_at'])

    if 'assigned_to' in changes:
        raw_assignee = changes['assigned_to']
        if raw_assignee is None:
            updates['assigned_to'] = None
        else:
            assignee_id = parse_optional_id(raw_assignee)
            counselor_ids = {counselor.id for counselor in list_counselors(db)}
            if assignee_id not in counselor_ids:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Assigned counselor not found.',
                )
            updates['assigned_to'] = assignee_id

    return updates


def update_appointment(db: Session, actor: User, appointment_id: int, changes: dict[str, Any]) -> Appointment:
    """Merge-patch an appointment.

    ``changes`` holds only the fields the caller sent; an explicit None
    clears a nullable field while an absent key leaves it untouched.
    """
    scope = require_scope(actor, 'appointment.update')
    appointment = get_appointment(db, appointment_id)

    if not in_scope(scope, actor, appointment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Not your appointment.',
        )

    disallowed = forbidden_fields(actor, set(changes))
    if disallowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f'You cannot change: {", ".join(sorted(disallowed))}.',
        )

    if not changes:
        return appointment

    if actor.role == 'student':
        updates = _apply_student_changes(appointment, changes)
    else:
        updates = _apply_counselor_changes(db, appointment, changes)

    previous_scheduled_at = appointment.scheduled_at
    for field, value in updates.items():
        setattr(appointment, field, value)
    appointment.updated_at = datetime.now()

    outcome = updates.get('status') if actor.role == 'counselor' else None
    with _write_guard(db):
        if outcome in OUTCOME_LABELS:
            title, body = outcome_summary(
                outcome,
                previous_scheduled_at,
                actor.username or 'Counselor',
                appointment.counselor_report,
            )
            notify(db, appointment.student_id, 'appointment_outcome', title, body, 'appointment', appointment.id)
    db.refresh(appointment)

    logger.info(
        'Appointment %s updated by user %s (fields: %s)',
        appointment.id,
        actor.id,
        ', '.join(sorted(updates)) or 'none',
    )
    return appointment


def delete_appointment(db: Session, actor: User, appointment_id: int) -> None:
    """Hard delete. The student is deliberately not notified."""
    scope = require_scope(actor, 'appointment.delete')
    appointment = get_appointment(db, appointment_id)

    if not in_scope(scope, actor, appointment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You can only delete appointments assigned to you.',
        )

    with _write_guard(db):
        db.delete(appointment)
    logger.info('Appointment %s deleted by user %s', appointment_id, actor.id)
