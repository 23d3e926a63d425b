from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from sparks.core import config


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_session_schema_checked = False


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'therapist_availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('therapist_availability')}
        migration_steps = [
            ('is_free', 'ALTER TABLE therapist_availability ADD COLUMN is_free BOOLEAN DEFAULT FALSE'),
            ('created_at', 'ALTER TABLE therapist_availability ADD COLUMN created_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_availability_therapist_date_time '
                    'ON therapist_availability(therapist_id, date, start_time)'
                )
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_availability_therapist_booked_date '
                    'ON therapist_availability(therapist_id, is_booked, date)'
                )
            )

        _availability_schema_checked = True


def ensure_session_schema() -> None:
    global _session_schema_checked

    if _session_schema_checked:
        return

    with _schema_lock:
        if _session_schema_checked:
            return

        inspector = inspect(engine)

        if 'therapy_sessions' not in inspector.get_table_names():
            _session_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('therapy_sessions')}
        migration_steps = [
            ('session_type', "ALTER TABLE therapy_sessions ADD COLUMN session_type VARCHAR(9) DEFAULT 'IN_PERSON'"),
            ('meeting_link', 'ALTER TABLE therapy_sessions ADD COLUMN meeting_link VARCHAR'),
            ('calendar_event_id', 'ALTER TABLE therapy_sessions ADD COLUMN calendar_event_id VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_sessions_therapist_scheduled '
                    'ON therapy_sessions(therapist_id, scheduled_at)'
                )
            )

        _session_schema_checked = True
