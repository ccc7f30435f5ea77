import logging
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models.availability import CounselorAvailability
from backend.scheduling.slots import wall_clock_minutes

logger = logging.getLogger(__name__)


def normalize_wall_clock(value: Any) -> str | None:
    if not isinstance(value, str):
        return None

    minutes = wall_clock_minutes(value)
    if minutes is None:
        return None
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def clean_windows(windows: Iterable[Mapping[str, Any]]) -> list[dict]:
    """Drop windows with an out-of-range day or a missing/unreadable time.

    start < end is left to the slot generator, which yields nothing for an
    inverted window.
    """
    cleaned: list[dict] = []
    for window in windows:
        day = window.get('day_of_week')
        if not isinstance(day, int) or isinstance(day, bool) or not 0 <= day <= 6:
            continue

        start_time = normalize_wall_clock(window.get('start_time'))
        end_time = normalize_wall_clock(window.get('end_time'))
        if start_time is None or end_time is None:
            continue

        cleaned.append({'day_of_week': day, 'start_time': start_time, 'end_time': end_time})

    return cleaned


def get_availability(db: Session, provider_id: int) -> list[CounselorAvailability]:
    return db.query(CounselorAvailability).filter(
        CounselorAvailability.user_id == provider_id,
    ).order_by(
        CounselorAvailability.day_of_week.asc(),
        CounselorAvailability.start_time.asc(),
    ).all()


def get_windows_for_day(db: Session, provider_id: int, weekday: int) -> list[CounselorAvailability]:
    return db.query(CounselorAvailability).filter(
        CounselorAvailability.user_id == provider_id,
        CounselorAvailability.day_of_week == weekday,
    ).order_by(CounselorAvailability.id.asc()).all()


def set_availability(db: Session, provider_id: int, windows: Iterable[Mapping[str, Any]]) -> list[CounselorAvailability]:
    """Replace the provider's whole weekly schedule in one commit."""
    cleaned = clean_windows(windows)

    try:
        db.query(CounselorAvailability).filter(
            CounselorAvailability.user_id == provider_id,
        ).delete(synchronize_session=False)
        db.add_all([CounselorAvailability(user_id=provider_id, **window) for window in cleaned])
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info('Replaced availability for provider %s with %s windows', provider_id, len(cleaned))
    return get_availability(db, provider_id)
