import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.user import User
from backend.scheduling import availability_store
from backend.scheduling.policy import require_scope

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)


class AvailabilityWindowResponse(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    availability: list[AvailabilityWindowResponse]


class SetAvailabilityRequest(BaseModel):
    # items are loose dicts: malformed windows are dropped, not rejected
    availability: list[dict[str, Any]]


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.exception('Availability storage failed', exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


@router.get('/availability', response_model=AvailabilityResponse)
def get_my_availability(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_scope(current_user, 'availability.manage')

    try:
        windows = availability_store.get_availability(db, current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return AvailabilityResponse(
        availability=[AvailabilityWindowResponse.model_validate(window) for window in windows],
    )


@router.put('/availability')
def set_my_availability(
    data: SetAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_scope(current_user, 'availability.manage')

    try:
        availability_store.set_availability(db, current_user.id, data.availability)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return {'ok': True}
