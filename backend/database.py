import logging
from threading import Lock
from typing import Callable

from sqlalchemy import Column, DateTime, Integer, String, create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.sql import func

from backend.core import config


logger = logging.getLogger(__name__)

_connect_args = {'check_same_thread': False} if config.DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(config.DATABASE_URL, connect_args=_connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

# Largest id an INTEGER primary key can hold on SQLite and PostgreSQL BIGINT.
MAX_ROW_ID = 2**63 - 1


def is_row_id(value: int) -> bool:
    return 1 <= value <= MAX_ROW_ID


@event.listens_for(Engine, 'connect')
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # SQLite ignores REFERENCES clauses unless asked per connection.
    if type(dbapi_connection).__module__.startswith('sqlite3'):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


class SchemaMigration(Base):
    """One applied schema version."""
    __tablename__ = 'schema_migrations'

    version = Column(Integer, primary_key=True)
    description = Column(String, nullable=False)
    applied_at = Column(DateTime, server_default=func.now())


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _add_missing_columns(connection: Connection, table: str, columns: list[tuple[str, str]]) -> None:
    inspector = inspect(connection)
    if table not in inspector.get_table_names():
        return

    existing_columns = {column['name'] for column in inspector.get_columns(table)}
    for column_name, statement in columns:
        if column_name not in existing_columns:
            connection.execute(text(statement))


def _add_provider_type(connection: Connection) -> None:
    _add_missing_columns(connection, 'users', [
        ('provider_type', 'ALTER TABLE users ADD COLUMN provider_type VARCHAR'),
    ])


def _add_appointment_columns(connection: Connection) -> None:
    _add_missing_columns(connection, 'appointments', [
        ('assigned_to', 'ALTER TABLE appointments ADD COLUMN assigned_to INTEGER REFERENCES users(id)'),
        ('counselor_report', 'ALTER TABLE appointments ADD COLUMN counselor_report TEXT'),
        ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
    ])


def _create_lookup_indexes(connection: Connection) -> None:
    statements = [
        'CREATE INDEX IF NOT EXISTS idx_appointments_student_id ON appointments(student_id)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_scheduled_at ON appointments(scheduled_at)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)',
        'CREATE INDEX IF NOT EXISTS idx_counselor_availability_user_id ON counselor_availability(user_id)',
        'CREATE INDEX IF NOT EXISTS idx_notifications_user_id ON notifications(user_id)',
    ]
    for statement in statements:
        connection.execute(text(statement))


def _create_booked_slot_index(connection: Connection) -> None:
    connection.execute(
        text(
            'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_booked_slot '
            "ON appointments(assigned_to, scheduled_at) WHERE status = 'scheduled'"
        )
    )


MIGRATIONS: list[tuple[int, str, Callable[[Connection], None]]] = [
    (1, 'add users.provider_type', _add_provider_type),
    (2, 'add appointment assignment and report columns', _add_appointment_columns),
    (3, 'create lookup indexes', _create_lookup_indexes),
    (4, 'unique scheduled slot per provider', _create_booked_slot_index),
]

_migration_lock = Lock()


def get_schema_version(db_engine: Engine) -> int:
    with db_engine.connect() as connection:
        if 'schema_migrations' not in inspect(connection).get_table_names():
            return 0
        version = connection.execute(text('SELECT MAX(version) FROM schema_migrations')).scalar()
    return version or 0


def run_migrations(db_engine: Engine = engine) -> list[int]:
    """Apply every migration newer than the recorded schema version.

    Each step is idempotent, so a database created by ``create_all`` simply
    records the versions without changing anything.
    """
    applied: list[int] = []

    with _migration_lock:
        SchemaMigration.__table__.create(bind=db_engine, checkfirst=True)
        current_version = get_schema_version(db_engine)

        for version, description, step in MIGRATIONS:
            if version <= current_version:
                continue

            with db_engine.begin() as connection:
                step(connection)
                connection.execute(
                    SchemaMigration.__table__.insert().values(version=version, description=description)
                )
            logger.info('Applied schema migration %s: %s', version, description)
            applied.append(version)

    return applied


def seed_default_users(db: Session) -> None:
    from backend.models.user import User

    defaults = [
        ('admin', 'admin', None),
        ('counselor', 'counselor', 'counselor'),
    ]
    for username, role, provider_type in defaults:
        if db.query(User).filter(User.role == role).first():
            continue
        db.add(User(
            username=username,
            hashed_password=User.hash_password('password'),
            role=role,
            provider_type=provider_type,
        ))
        logger.warning('Seeded default %s account (username: %s). Change its password.', role, username)
    db.commit()
