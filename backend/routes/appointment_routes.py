import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.user import User
from backend.scheduling import appointments as appointment_service

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)


class CreateAppointmentRequest(BaseModel):
    studentId: int | str | None = None
    scheduledAt: str | None = None
    type: str | None = None
    location: str | None = None
    providerOrNotes: str | None = None
    adminNotes: str | None = None
    assignedTo: int | str | None = None


class UpdateAppointmentRequest(BaseModel):
    """Every field is optional; only the ones sent are applied."""
    status: str | None = None
    scheduled_at: str | None = None
    location: str | None = None
    provider_or_notes: str | None = None
    admin_notes: str | None = None
    assigned_to: int | None = None
    counselor_report: str | None = None


class AppointmentResponse(BaseModel):
    id: int
    student_id: int
    student_username: str | None = None
    assigned_to: int | None = None
    assigned_to_username: str | None = None
    scheduled_at: datetime
    type: str
    status: str
    location: str | None = None
    provider_or_notes: str | None = None
    admin_notes: str | None = None
    counselor_report: str | None = None
    created_by: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AppointmentEnvelope(BaseModel):
    appointment: AppointmentResponse


class AppointmentListResponse(BaseModel):
    appointments: list[AppointmentResponse]


def _database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.exception('Appointment storage failed', exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=appointment_service.DATABASE_UNAVAILABLE_MESSAGE,
    )


@router.post('/appointments', response_model=AppointmentEnvelope, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = appointment_service.create_appointment(
            db,
            current_user,
            student_id=data.studentId,
            scheduled_at=data.scheduledAt,
            appointment_type=data.type,
            location=data.location,
            provider_or_notes=data.providerOrNotes,
            admin_notes=data.adminNotes,
            assigned_to=data.assignedTo,
        )
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    return AppointmentEnvelope(appointment=AppointmentResponse.model_validate(appointment))


@router.get('/appointments', response_model=AppointmentListResponse)
def list_appointments(
    student_id: int | None = Query(default=None, alias='studentId'),
    status_filter: str | None = Query(default=None, alias='status'),
    from_value: str | None = Query(default=None, alias='from'),
    to_value: str | None = Query(default=None, alias='to'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointments = appointment_service.list_appointments(
            db,
            current_user,
            status_filter=status_filter,
            student_id=student_id,
            from_value=from_value,
            to_value=to_value,
        )
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
    )


@router.patch('/appointments/{appointment_id}', response_model=AppointmentEnvelope)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes: dict[str, Any] = data.model_dump(exclude_unset=True)

    try:
        appointment = appointment_service.update_appointment(db, current_user, appointment_id, changes)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    return AppointmentEnvelope(appointment=AppointmentResponse.model_validate(appointment))


@router.delete('/appointments/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment_service.delete_appointment(db, current_user, appointment_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)
