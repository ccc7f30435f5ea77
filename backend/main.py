import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, SessionLocal, engine, run_migrations, seed_default_users
from backend.models import appointment, availability, notification, user  # noqa: F401
from backend.routes import (
    appointment_routes,
    auth_routes,
    availability_routes,
    notification_routes,
    slot_routes,
    user_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='Wellness Check-in API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        run_migrations(engine)
        if config.SEED_DEFAULT_USERS:
            db = SessionLocal()
            try:
                seed_default_users(db)
            finally:
                db.close()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # malformed ids and bodies are plain 400s, like every other input error
    del request
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'detail': jsonable_encoder(exc.errors())},
    )


@app.get('/')
def root():
    return {'status': 'Wellness Check-in API Running'}


@app.get('/health')
def health():
    return {'ok': True}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(user_routes.router)
app.include_router(availability_routes.router)
app.include_router(slot_routes.router)
app.include_router(appointment_routes.router)
app.include_router(notification_routes.router)
