import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.user import User
from backend.scheduling.appointments import list_counselors
from backend.scheduling.policy import require_scope

router = APIRouter(tags=['users'])

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6


class CounselorResponse(BaseModel):
    id: int
    username: str
    provider_type: str | None = None
    created_at: datetime | None = None


class StudentResponse(BaseModel):
    id: int
    username: str
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CreateCounselorRequest(BaseModel):
    username: str
    password: str
    providerType: Literal['counselor', 'doctor'] = 'counselor'

    @field_validator('username')
    @classmethod
    def validate_username(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < MIN_USERNAME_LENGTH:
            raise ValueError(f'Username required (min {MIN_USERNAME_LENGTH} characters).')
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password required (min {MIN_PASSWORD_LENGTH} characters).')
        return value


def counselor_response(counselor: User) -> CounselorResponse:
    return CounselorResponse(
        id=counselor.id,
        username=counselor.username,
        provider_type=counselor.effective_provider_type,
        created_at=counselor.created_at,
    )


@router.get('/users/counselors')
def get_counselors(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    return {'counselors': [counselor_response(counselor) for counselor in list_counselors(db)]}


@router.post('/users/counselors', status_code=status.HTTP_201_CREATED)
def create_counselor(
    data: CreateCounselorRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_scope(current_user, 'user.create_counselor')

    counselor = User(
        username=data.username,
        hashed_password=User.hash_password(data.password),
        role='counselor',
        provider_type=data.providerType,
    )
    try:
        db.add(counselor)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='Username already taken.',
        ) from exc
    db.refresh(counselor)

    logger.info('Admin %s created %s account %s', current_user.id, counselor.provider_type, counselor.id)
    return {'user': counselor_response(counselor)}


@router.get('/users/students')
def get_students(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_scope(current_user, 'user.list_students')

    students = db.query(User).filter(User.role == 'student').order_by(User.username.asc()).all()
    return {'students': [StudentResponse.model_validate(student) for student in students]}
