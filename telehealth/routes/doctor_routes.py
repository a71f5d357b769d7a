import math
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.auth.dependencies import get_current_user
from telehealth.core import config
from telehealth.core.errors import BookingError
from telehealth.models.doctor import BlockedInterval, Doctor, Weekday, WeeklyAvailability
from telehealth.models.service import Service
from telehealth.models.user import User
from telehealth.routes.appointment_routes import PaginationResponse
from telehealth.routes.common import (
    database_unavailable,
    ensure_database_ready,
    ensure_doctor_owner,
    get_db,
    get_reservation_coordinator,
    http_error_for,
)
from telehealth.scheduling.conflicts import has_conflict
from telehealth.scheduling.intervals import Interval
from telehealth.scheduling.reservation import ReservationCoordinator, load_active_appointments

router = APIRouter(tags=['doctors'])

MAX_BLOCK_REASON_LENGTH = 200


def _normalize_time(value: time) -> time:
    return value.replace(second=0, microsecond=0)


class WeeklyAvailabilityEntry(BaseModel):
    weekday: str
    start_time: time | None = None
    end_time: time | None = None
    is_available: bool = True

    class Config:
        from_attributes = True

    @field_validator('weekday')
    @classmethod
    def validate_weekday(cls, value: str) -> str:
        normalized = value.strip().capitalize()
        if normalized not in {weekday.value for weekday in Weekday}:
            raise ValueError('Invalid weekday.')
        return normalized

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_to_minutes(cls, value: time | None) -> time | None:
        if value is None:
            return None
        return _normalize_time(value)

    @model_validator(mode='after')
    def validate_window(self) -> 'WeeklyAvailabilityEntry':
        if not self.is_available:
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError('Available days need a start and end time.')
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


def _ensure_unique_weekdays(entries: list[WeeklyAvailabilityEntry]) -> list[WeeklyAvailabilityEntry]:
    weekdays = [entry.weekday for entry in entries]
    if len(weekdays) != len(set(weekdays)):
        raise ValueError('Each weekday can only appear once.')
    return entries


class UpdateWeeklyAvailabilityRequest(BaseModel):
    availability: list[WeeklyAvailabilityEntry]

    @field_validator('availability')
    @classmethod
    def validate_unique_weekdays(cls, value: list[WeeklyAvailabilityEntry]) -> list[WeeklyAvailabilityEntry]:
        return _ensure_unique_weekdays(value)


class DoctorProfileRequest(BaseModel):
    specialty: str | None = None
    consultation_fee: float | None = None
    license_number: str | None = None
    weekly_availability: list[WeeklyAvailabilityEntry] | None = None

    @field_validator('specialty', 'license_number')
    @classmethod
    def normalize_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator('consultation_fee')
    @classmethod
    def validate_fee(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError('Consultation fee cannot be negative.')
        return value

    @field_validator('weekly_availability')
    @classmethod
    def validate_unique_weekdays(cls, value: list[WeeklyAvailabilityEntry] | None) -> list[WeeklyAvailabilityEntry] | None:
        if value is None:
            return None
        return _ensure_unique_weekdays(value)


class CreateBlockedIntervalRequest(BaseModel):
    date: date
    start_time: time
    end_time: time
    reason: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_to_minutes(cls, value: time) -> time:
        return _normalize_time(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_window(self) -> 'CreateBlockedIntervalRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class BlockedIntervalResponse(BaseModel):
    id: int
    doctor_id: int
    date: date
    start_time: time
    end_time: time
    reason: str | None = None

    class Config:
        from_attributes = True


class DoctorResponse(BaseModel):
    id: int
    name: str | None = None
    specialty: str | None = None
    consultation_fee: float | None = None
    is_active: bool
    weekly_availability: list[WeeklyAvailabilityEntry]

    class Config:
        from_attributes = True


class DoctorSummaryResponse(BaseModel):
    id: int
    name: str | None = None
    specialty: str | None = None
    consultation_fee: float | None = None

    class Config:
        from_attributes = True


class DoctorListResponse(BaseModel):
    doctors: list[DoctorSummaryResponse]
    pagination: PaginationResponse


class AvailableSlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    is_available: bool = True


class DoctorAvailabilityResponse(BaseModel):
    doctor_id: int
    date: date
    duration_minutes: int
    available_slots: list[AvailableSlotResponse]


def load_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if not doctor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Doctor not found.',
        )
    return doctor


def replace_schedule(db: Session, doctor: Doctor, entries: list[WeeklyAvailabilityEntry]) -> None:
    # Orphans must be deleted before the replacement rows hit the weekday unique constraint.
    doctor.weekly_availability = []
    db.flush()
    doctor.weekly_availability = [
        WeeklyAvailability(
            weekday=entry.weekday,
            start_time=entry.start_time,
            end_time=entry.end_time,
            is_available=entry.is_available,
        )
        for entry in entries
    ]


@router.get('', response_model=DoctorListResponse)
def list_doctors(
    specialty: str | None = Query(default=None),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Doctor).join(User, Doctor.user_id == User.id).filter(Doctor.is_active.is_(True))
        if specialty:
            query = query.filter(Doctor.specialty == specialty.strip())
        if search and search.strip():
            pattern = f'%{search.strip()}%'
            query = query.filter(or_(User.name.ilike(pattern), Doctor.specialty.ilike(pattern)))

        total = query.count()
        doctors = query.order_by(Doctor.id.asc()).offset((page - 1) * limit).limit(limit).all()
        return DoctorListResponse(
            doctors=[DoctorSummaryResponse.model_validate(doctor) for doctor in doctors],
            pagination=PaginationResponse(current=page, pages=math.ceil(total / limit), total=total),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/profile', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor_profile(
    data: DoctorProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        if db.query(Doctor).filter(Doctor.user_id == current_user.id).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Doctor profile already exists.',
            )

        doctor = Doctor(
            user_id=current_user.id,
            specialty=data.specialty,
            consultation_fee=data.consultation_fee or 0.0,
            license_number=data.license_number,
            is_active=True,
        )
        db.add(doctor)
        replace_schedule(db, doctor, data.weekly_availability or [])

        user = db.query(User).filter(User.id == current_user.id).first()
        if user is not None and user.role == 'patient':
            user.role = 'doctor'

        db.commit()
        db.refresh(doctor)
        return DoctorResponse.model_validate(doctor)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/profile', response_model=DoctorResponse)
def update_doctor_profile(
    data: DoctorProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        doctor = db.query(Doctor).filter(Doctor.user_id == current_user.id).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor profile not found.',
            )

        if data.specialty is not None:
            doctor.specialty = data.specialty
        if data.consultation_fee is not None:
            doctor.consultation_fee = data.consultation_fee
        if data.license_number is not None:
            doctor.license_number = data.license_number
        if data.weekly_availability is not None:
            replace_schedule(db, doctor, data.weekly_availability)

        db.commit()
        db.refresh(doctor)
        return DoctorResponse.model_validate(doctor)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    try:
        doctor = load_doctor(db, doctor_id)
        if not doctor.is_active:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found.')
        return doctor
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{doctor_id}/availability', response_model=DoctorAvailabilityResponse)
def get_doctor_availability(
    doctor_id: int,
    day: date = Query(..., alias='date'),
    duration: int | None = Query(default=None, ge=1, le=480),
    service_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    coordinator: ReservationCoordinator = Depends(get_reservation_coordinator),
):
    ensure_database_ready()

    try:
        duration_minutes = duration
        if duration_minutes is None and service_id is not None:
            service = db.query(Service).filter(Service.id == service_id, Service.is_active.is_(True)).first()
            if not service:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service not found.')
            duration_minutes = service.duration_minutes
        if duration_minutes is None:
            duration_minutes = config.DEFAULT_APPOINTMENT_DURATION_MINUTES

        slots = coordinator.resolve_available_slots(
            doctor_id,
            day,
            duration_minutes,
            now=coordinator.clock(),
        )

        return DoctorAvailabilityResponse(
            doctor_id=doctor_id,
            date=day,
            duration_minutes=duration_minutes,
            available_slots=[
                AvailableSlotResponse(
                    start_time=slot.start,
                    end_time=slot.end,
                    duration_minutes=slot.duration_minutes,
                )
                for slot in slots
            ],
        )
    except BookingError as exc:
        raise http_error_for(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{doctor_id}/weekly-availability', response_model=list[WeeklyAvailabilityEntry])
def replace_weekly_availability(
    doctor_id: int,
    data: UpdateWeeklyAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        doctor = load_doctor(db, doctor_id)
        ensure_doctor_owner(doctor, current_user)

        replace_schedule(db, doctor, data.availability)
        db.commit()
        db.refresh(doctor)

        return doctor.weekly_availability
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{doctor_id}/blocked-intervals', response_model=list[BlockedIntervalResponse])
def list_blocked_intervals(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        load_doctor(db, doctor_id)
        return db.query(BlockedInterval).filter(
            BlockedInterval.doctor_id == doctor_id,
            BlockedInterval.date >= date.today(),
        ).order_by(BlockedInterval.date.asc(), BlockedInterval.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/{doctor_id}/blocked-intervals',
    response_model=BlockedIntervalResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_blocked_interval(
    doctor_id: int,
    data: CreateBlockedIntervalRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = load_doctor(db, doctor_id)
        ensure_doctor_owner(doctor, current_user)

        overlapping_block = db.query(BlockedInterval).filter(
            BlockedInterval.doctor_id == doctor_id,
            BlockedInterval.date == data.date,
            BlockedInterval.start_time < data.end_time,
            BlockedInterval.end_time > data.start_time,
        ).first()
        if overlapping_block:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This time is already blocked.',
            )

        block_interval = Interval.from_times(data.date, data.start_time, data.end_time)
        booked = load_active_appointments(db, doctor_id, data.date)
        if has_conflict(block_interval, booked):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This time is already booked by a patient appointment.',
            )

        blocked = BlockedInterval(
            doctor_id=doctor_id,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
        )
        db.add(blocked)
        db.commit()
        db.refresh(blocked)

        return blocked
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{doctor_id}/blocked-intervals/{blocked_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_interval(
    doctor_id: int,
    blocked_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = load_doctor(db, doctor_id)
        ensure_doctor_owner(doctor, current_user)

        blocked = db.query(BlockedInterval).filter(
            BlockedInterval.id == blocked_id,
            BlockedInterval.doctor_id == doctor_id,
        ).first()
        if not blocked:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Blocked interval not found.',
            )

        db.delete(blocked)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
