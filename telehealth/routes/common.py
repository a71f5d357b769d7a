from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from telehealth.core.errors import (
    BookingError,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PolicyRejection,
    TransientStoreError,
)
from telehealth.database import SessionLocal, ensure_appointment_schema, ensure_blocked_interval_schema
from telehealth.models.doctor import Doctor
from telehealth.models.user import User
from telehealth.scheduling.reservation import ReservationCoordinator
from telehealth.services.notifications import LoggingNotificationDispatcher, NotificationDispatcher

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

_coordinator: ReservationCoordinator | None = None
_notifier = LoggingNotificationDispatcher()


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_blocked_interval_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_reservation_coordinator() -> ReservationCoordinator:
    global _coordinator

    if _coordinator is None:
        _coordinator = ReservationCoordinator(SessionLocal, notifier=_notifier)
    return _coordinator


def get_notifier() -> NotificationDispatcher:
    return _notifier


def http_error_for(exc: BookingError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PolicyRejection):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={'reason': exc.reason.value, 'message': str(exc)},
        )
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidArgumentError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, TransientStoreError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='Booking failed.')


def is_admin(user: User) -> bool:
    return user.role == 'admin'


def ensure_doctor_owner(doctor: Doctor, user: User) -> None:
    if is_admin(user):
        return
    if doctor.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the doctor who owns this profile can change it.',
        )
