import math
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.auth.dependencies import get_current_user
from telehealth.core.errors import BookingError, PolicyRejection
from telehealth.models.appointment import CONSULTATION_TYPES, Appointment, AppointmentStatus
from telehealth.models.doctor import Doctor
from telehealth.models.user import User
from telehealth.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_notifier,
    get_reservation_coordinator,
    http_error_for,
    is_admin,
)
from telehealth.scheduling.reservation import (
    ReservationCoordinator,
    ReservationRequest,
    ReservationState,
)
from telehealth.services.appointment_lifecycle import get_appointment, transition_status
from telehealth.services.notifications import NotificationDispatcher
from telehealth.services.payments import PaymentProcessor, get_payment_processor

router = APIRouter(tags=['appointments'])

MAX_REASON_FOR_VISIT_LENGTH = 500
MAX_IDEMPOTENCY_KEY_LENGTH = 128
VALID_STATUSES = {appointment_status.value for appointment_status in AppointmentStatus}


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    service_id: int
    start_time: datetime
    duration_minutes: int | None = None
    reason_for_visit: str
    consultation_type: str = 'video'
    idempotency_key: str | None = None

    @field_validator('reason_for_visit')
    @classmethod
    def validate_reason_for_visit(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Reason for visit is required.')
        if len(normalized) > MAX_REASON_FOR_VISIT_LENGTH:
            raise ValueError(f'Reason for visit must be {MAX_REASON_FOR_VISIT_LENGTH} characters or fewer.')
        return normalized

    @field_validator('consultation_type')
    @classmethod
    def validate_consultation_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in CONSULTATION_TYPES:
            raise ValueError('Invalid consultation type.')
        return normalized

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError('Duration must be a positive number of minutes.')
        return value

    @field_validator('idempotency_key')
    @classmethod
    def validate_idempotency_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        if len(normalized) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValueError('Idempotency key is too long.')
        return normalized


class UpdateStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in VALID_STATUSES:
            raise ValueError('Invalid status.')
        return normalized


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    service_id: int
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    status: str
    consultation_type: str | None = None
    reason_for_visit: str | None = None
    payment_status: str
    payment_amount: float | None = None

    class Config:
        from_attributes = True


class PaginationResponse(BaseModel):
    current: int
    pages: int
    total: int


class AppointmentListResponse(BaseModel):
    appointments: list[AppointmentResponse]
    pagination: PaginationResponse


def ensure_participant(appointment: Appointment, user: User, db: Session) -> None:
    if is_admin(user) or appointment.patient_id == user.id:
        return

    doctor = db.query(Doctor).filter(Doctor.id == appointment.doctor_id).first()
    if doctor is None or doctor.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Access denied.',
        )


def paginate(query, page: int, limit: int) -> AppointmentListResponse:
    total = query.count()
    appointments = query.offset((page - 1) * limit).limit(limit).all()
    return AppointmentListResponse(
        appointments=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
        pagination=PaginationResponse(current=page, pages=math.ceil(total / limit), total=total),
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    coordinator: ReservationCoordinator = Depends(get_reservation_coordinator),
):
    ensure_database_ready()

    if current_user.role != 'patient':
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients can book appointments.',
        )

    request = ReservationRequest(
        doctor_id=data.doctor_id,
        service_id=data.service_id,
        patient_id=current_user.id,
        desired_start=data.start_time,
        duration_minutes=data.duration_minutes,
        reason_for_visit=data.reason_for_visit,
        consultation_type=data.consultation_type,
        idempotency_key=data.idempotency_key,
    )

    try:
        outcome = coordinator.reserve(request)
    except BookingError as exc:
        raise http_error_for(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if outcome.state is ReservationState.REJECTED:
        raise http_error_for(PolicyRejection(outcome.reason))
    if outcome.state is ReservationState.CONFLICTED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This time is already booked.',
        )

    return outcome.appointment


@router.get('/my', response_model=AppointmentListResponse)
def list_my_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(Appointment).filter(Appointment.patient_id == current_user.id)
        if status_filter:
            query = query.filter(Appointment.status == status_filter)
        return paginate(query.order_by(Appointment.scheduled_start.desc()), page, limit)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctor', response_model=AppointmentListResponse)
def list_doctor_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    day: date | None = Query(default=None, alias='date'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = db.query(Doctor).filter(Doctor.user_id == current_user.id).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Access denied. Doctor profile required.',
            )

        query = db.query(Appointment).filter(Appointment.doctor_id == doctor.id)
        if status_filter:
            query = query.filter(Appointment.status == status_filter)
        if day:
            day_start = datetime.combine(day, time.min)
            query = query.filter(
                Appointment.scheduled_start >= day_start,
                Appointment.scheduled_start < day_start + timedelta(days=1),
            )
        return paginate(query.order_by(Appointment.scheduled_start.asc()), page, limit)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def read_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = get_appointment(db, appointment_id)
        ensure_participant(appointment, current_user, db)
        return appointment
    except BookingError as exc:
        raise http_error_for(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payments: PaymentProcessor = Depends(get_payment_processor),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = get_appointment(db, appointment_id)
        ensure_participant(appointment, current_user, db)
        return transition_status(db, appointment, data.status, payments=payments, notifier=notifier)
    except BookingError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
