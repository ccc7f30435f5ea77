"""Availability model definitions."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String
from backend.database import Base


class CounselorAvailability(Base):
    """One recurring weekly window in which a counselor takes appointments."""
    __tablename__ = "counselor_availability"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_day_of_week"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
