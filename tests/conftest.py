import os
from datetime import datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from telehealth.database import Base  # noqa: E402
from telehealth.models.appointment import Appointment  # noqa: E402
from telehealth.models.doctor import BlockedInterval, Doctor, WeeklyAvailability  # noqa: E402
from telehealth.models.service import Service  # noqa: E402
from telehealth.models.user import User  # noqa: E402
from telehealth.scheduling.policy import BookingPolicy  # noqa: E402
from telehealth.scheduling.reservation import DoctorLockRegistry, ReservationCoordinator  # noqa: E402

# Monday 2026-01-05 is the booking day used throughout; "now" is the Sunday before.
MONDAY = datetime(2026, 1, 5).date()
SUNDAY_NOON = datetime(2026, 1, 4, 12, 0)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def appointment_booked(self, appointment):
        self.events.append(('booked', appointment.id))

    def appointment_cancelled(self, appointment):
        self.events.append(('cancelled', appointment.id))

    def appointment_reminder(self, appointment):
        self.events.append(('reminder', appointment.id))


@pytest.fixture
def session_factory(tmp_path):
    # A file database so that concurrent sessions see each other's commits.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def patient(db):
    user = User(email='patient@example.com', name='Pat Patient', hashed_password='', role='patient')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def doctor_user(db):
    user = User(email='doctor@example.com', name='Dr. Example', hashed_password='', role='doctor')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def service(db):
    consultation = Service(name='General Consultation', category='General Consultations', base_price=40.0, duration_minutes=30)
    db.add(consultation)
    db.commit()
    db.refresh(consultation)
    return consultation


@pytest.fixture
def doctor(db, doctor_user):
    profile = Doctor(
        user_id=doctor_user.id,
        specialty='General Practice',
        consultation_fee=75.0,
        license_number='LIC-1001',
        is_active=True,
        weekly_availability=[
            WeeklyAvailability(weekday='Monday', start_time=time(9, 0), end_time=time(17, 0), is_available=True),
            WeeklyAvailability(weekday='Tuesday', start_time=time(9, 0), end_time=time(12, 0), is_available=True),
            WeeklyAvailability(weekday='Wednesday', start_time=time(9, 0), end_time=time(17, 0), is_available=False),
        ],
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def lunch_block(db, doctor):
    blocked = BlockedInterval(doctor_id=doctor.id, date=MONDAY, start_time=time(12, 0), end_time=time(13, 0), reason='Lunch')
    db.add(blocked)
    db.commit()
    db.refresh(blocked)
    return blocked


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def coordinator(session_factory, notifier):
    return ReservationCoordinator(
        session_factory,
        clock=lambda: SUNDAY_NOON,
        policy=BookingPolicy(),
        notifier=notifier,
        granularity_minutes=15,
        lock_timeout=10,
        locks=DoctorLockRegistry(),
    )


@pytest.fixture
def book(db, patient, service, doctor):
    """Insert an appointment directly, bypassing the coordinator."""
    def _book(start: datetime, duration_minutes: int = 30, status: str = 'scheduled', **fields) -> Appointment:
        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            service_id=service.id,
            scheduled_start=start,
            duration_minutes=duration_minutes,
            status=status,
            payment_amount=doctor.consultation_fee,
            **fields,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _book
