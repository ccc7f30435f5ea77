import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.user import User
from backend.scheduling import notifications

router = APIRouter(tags=['notifications'])

logger = logging.getLogger(__name__)


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    body: str
    read_at: datetime | None = None
    related_type: str | None = None
    related_id: int | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.exception('Notification storage failed', exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


@router.get('/notifications')
def list_my_notifications(
    unread_only: bool = Query(default=False, alias='unreadOnly'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        rows = notifications.list_notifications(db, current_user.id, unread_only)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return {'notifications': [NotificationResponse.model_validate(row) for row in rows]}


@router.get('/notifications/unread-count')
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        count = notifications.unread_count(db, current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return {'count': count}


@router.patch('/notifications/{notification_id}/read')
def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        updated = notifications.mark_read(db, notification_id, current_user.id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Notification not found or already read.',
        )
    return {'ok': True}
