"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from backend.database import Base


APPOINTMENT_TYPES = ("counseling", "doctor", "follow_up")
APPOINTMENT_STATUSES = ("scheduled", "completed", "cancelled", "no_show")
TERMINAL_STATUSES = ("completed", "cancelled", "no_show")


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_booked_slot",
            "assigned_to",
            "scheduled_at",
            unique=True,
            sqlite_where=text("status = 'scheduled'"),
            postgresql_where=text("status = 'scheduled'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_to = Column(Integer, ForeignKey("users.id"))
    scheduled_at = Column(DateTime, nullable=False)
    type = Column(String, nullable=False, default="counseling")
    status = Column(String, nullable=False, default="scheduled")
    location = Column(String)
    provider_or_notes = Column(Text)
    admin_notes = Column(Text)
    counselor_report = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime)

    student = relationship("User", foreign_keys=[student_id], lazy="joined")
    assignee = relationship("User", foreign_keys=[assigned_to], lazy="joined")

    @property
    def student_username(self) -> str | None:
        return self.student.username if self.student else None

    @property
    def assigned_to_username(self) -> str | None:
        return self.assignee.username if self.assignee else None
