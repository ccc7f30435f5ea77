import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.user import User
from backend.routes.user_routes import MIN_PASSWORD_LENGTH, MIN_USERNAME_LENGTH

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)


class CredentialsRequest(BaseModel):
    username: str
    password: str

    @field_validator('username')
    @classmethod
    def normalize_username(cls, value: str) -> str:
        return value.strip()


class UserResponse(BaseModel):
    id: int
    username: str
    role: str
    provider_type: str | None = None


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        provider_type=user.effective_provider_type,
    )


@router.post('/register', status_code=status.HTTP_201_CREATED)
def register(data: CredentialsRequest, db: Session = Depends(get_db)):
    if len(data.username) < MIN_USERNAME_LENGTH or len(data.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Username at least {MIN_USERNAME_LENGTH} characters, password at least {MIN_PASSWORD_LENGTH}.',
        )

    user = User(
        username=data.username,
        hashed_password=User.hash_password(data.password),
        role='student',
    )
    try:
        db.add(user)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='Username already taken.',
        ) from exc
    db.refresh(user)

    logger.info('Registered student %s', user.id)
    return {'user': user_response(user), 'token': jwt_handler.create_access_token(user)}


@router.post('/login')
def login(data: CredentialsRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == data.username).first()
    if user is None or not user.verify_password(data.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid credentials.',
        )

    return {'user': user_response(user), 'token': jwt_handler.create_access_token(user)}


@router.get('/me')
def me(current_user: User = Depends(get_current_user)):
    return user_response(current_user)
