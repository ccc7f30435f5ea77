from datetime import datetime

from sqlalchemy.orm import Session

from backend.core import config
from backend.database import is_row_id
from backend.models.notification import Notification


def notify(
    db: Session,
    user_id: int,
    notification_type: str,
    title: str,
    body: str,
    related_type: str | None = None,
    related_id: int | None = None,
) -> Notification:
    """Queue a notification in the caller's transaction; the caller commits."""
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        body=body,
        related_type=related_type,
        related_id=related_id,
    )
    db.add(notification)
    return notification


def list_notifications(db: Session, user_id: int, unread_only: bool = False) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    return query.order_by(
        Notification.created_at.desc(),
        Notification.id.desc(),
    ).limit(config.NOTIFICATION_LIST_LIMIT).all()


def unread_count(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read_at.is_(None),
    ).count()


def mark_read(db: Session, notification_id: int, user_id: int) -> bool:
    if not is_row_id(notification_id):
        return False
    updated = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
        Notification.read_at.is_(None),
    ).update({Notification.read_at: datetime.now()}, synchronize_session=False)
    db.commit()
    return updated > 0
