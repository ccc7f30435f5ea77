"""Notification model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from backend.database import Base


class Notification(Base):
    """An in-app message addressed to one user."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    read_at = Column(DateTime)
    related_type = Column(String)
    related_id = Column(Integer)
    created_at = Column(DateTime, server_default=func.now())
