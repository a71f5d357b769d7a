from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from telehealth.core import config


def build_engine(database_url: str, **kwargs):
    connect_args = {}
    if database_url.startswith('sqlite'):
        # Sessions are handed across request threads.
        connect_args['check_same_thread'] = False
    return create_engine(database_url, connect_args=connect_args, echo=config.DATABASE_ECHO, **kwargs)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_blocked_interval_schema_checked = False
_appointment_schema_checked = False


def ensure_blocked_interval_schema() -> None:
    global _blocked_interval_schema_checked

    if _blocked_interval_schema_checked:
        return

    with _schema_lock:
        if _blocked_interval_schema_checked:
            return

        inspector = inspect(engine)

        if 'blocked_intervals' not in inspector.get_table_names():
            _blocked_interval_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('blocked_intervals')}
        migration_steps = [
            ('reason', 'ALTER TABLE blocked_intervals ADD COLUMN reason VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_blocked_intervals_doctor_date ON blocked_intervals(doctor_id, date)')
            )

        _blocked_interval_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        # Imported here: the model module needs Base from this one.
        from telehealth.models.appointment import ACTIVE_STATUS_CONDITION

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('consultation_type', 'ALTER TABLE appointments ADD COLUMN consultation_type VARCHAR'),
            ('payment_reference', 'ALTER TABLE appointments ADD COLUMN payment_reference VARCHAR'),
            ('idempotency_key', 'ALTER TABLE appointments ADD COLUMN idempotency_key VARCHAR'),
            ('reminder_sent', 'ALTER TABLE appointments ADD COLUMN reminder_sent BOOLEAN DEFAULT FALSE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_start ON appointments(doctor_id, scheduled_start)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)')
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_doctor_start '
                    f'ON appointments(doctor_id, scheduled_start) WHERE {ACTIVE_STATUS_CONDITION}'
                )
            )
            if 'idempotency_key' not in existing_columns:
                connection.execute(
                    text(
                        'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_idempotency_key '
                        'ON appointments(idempotency_key)'
                    )
                )

        _appointment_schema_checked = True
