"""User model definitions."""

from passlib.context import CryptContext
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from backend.database import Base


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ROLES = ("student", "admin", "counselor")
PROVIDER_TYPES = ("counselor", "doctor")


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, index=True)  # student/admin/counselor
    provider_type = Column(String)  # counselor/doctor, counselors only
    created_at = Column(DateTime, server_default=func.now())

    @property
    def effective_provider_type(self) -> str | None:
        if self.role != "counselor":
            return None
        return "doctor" if self.provider_type == "doctor" else "counselor"

    def verify_password(self, plain_password: str) -> bool:
        if not self.hashed_password:
            return False
        return pwd_context.verify(plain_password, self.hashed_password)

    @staticmethod
    def hash_password(plain_password: str) -> str:
        return pwd_context.hash(plain_password)
