import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.user import User
from backend.scheduling.slot_queries import (
    get_available_slots,
    get_dates_with_slots,
    normalize_appointment_type,
    parse_counselor_id,
    parse_slot_date,
    parse_slot_month,
)
from backend.scheduling.slots import SlotOption

router = APIRouter(tags=['slots'])

logger = logging.getLogger(__name__)


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.exception('Slot lookup failed', exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


class SlotsResponse(BaseModel):
    slots: list[SlotOption]


class SlotDatesResponse(BaseModel):
    dates: list[str]


@router.get('/slots', response_model=SlotsResponse)
def list_slots(
    date: str | None = Query(default=None),
    counselor_id: str | None = Query(default=None, alias='counselorId'),
    appointment_type: str | None = Query(default=None, alias='type'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    slot_date = parse_slot_date(date)

    try:
        slots = get_available_slots(
            db,
            slot_date,
            parse_counselor_id(counselor_id),
            normalize_appointment_type(appointment_type),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return SlotsResponse(slots=slots)


@router.get('/slots/dates', response_model=SlotDatesResponse)
def list_slot_dates(
    month: str | None = Query(default=None),
    counselor_id: str | None = Query(default=None, alias='counselorId'),
    appointment_type: str | None = Query(default=None, alias='type'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    year, month_number = parse_slot_month(month)

    try:
        dates = get_dates_with_slots(
            db,
            year,
            month_number,
            parse_counselor_id(counselor_id),
            normalize_appointment_type(appointment_type),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return SlotDatesResponse(dates=dates)
