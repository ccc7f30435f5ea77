import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./wellness.db")
SEED_DEFAULT_USERS = _get_bool(
    os.getenv("SEED_DEFAULT_USERS"),
    default=APP_ENV.lower() == "development",
)

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

APPOINTMENT_LIST_LIMIT = int(os.getenv("APPOINTMENT_LIST_LIMIT", "200"))
NOTIFICATION_LIST_LIMIT = int(os.getenv("NOTIFICATION_LIST_LIMIT", "100"))
MAX_COUNSELOR_REPORT_LENGTH = int(os.getenv("MAX_COUNSELOR_REPORT_LENGTH", "2000"))
MAX_LOCATION_LENGTH = int(os.getenv("MAX_LOCATION_LENGTH", "200"))
MAX_NOTES_LENGTH = int(os.getenv("MAX_NOTES_LENGTH", "500"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
