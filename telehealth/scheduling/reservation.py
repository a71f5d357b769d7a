"""Concurrency-safe appointment reservation.

Each attempt moves through ``requested -> validated`` and ends in exactly one
of ``committed``, ``rejected`` or ``conflicted``. The conflict re-check and the
insert run while holding the doctor's serialization point, so two overlapping
reservations for one doctor can never both commit. Across processes the same
guarantee comes from a row lock on the doctor and the partial unique index on
active ``(doctor_id, scheduled_start)`` pairs.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from threading import Event, Lock
from typing import Callable

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from telehealth.core import config
from telehealth.core.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    RejectionReason,
    ReservationCancelled,
    TransientStoreError,
)
from telehealth.models.appointment import (
    ACTIVE_APPOINTMENT_STATUSES,
    CONSULTATION_TYPES,
    Appointment,
    AppointmentStatus,
    PaymentStatus,
)
from telehealth.models.doctor import Doctor
from telehealth.models.service import Service
from telehealth.scheduling.availability import AvailabilityResolver
from telehealth.scheduling.conflicts import find_conflicts, has_conflict
from telehealth.scheduling.intervals import Interval
from telehealth.scheduling.policy import BookingPolicy, admit, check_notice_window
from telehealth.scheduling.slots import Slot, generate_slots
from telehealth.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    dispatch_safely,
)

logger = logging.getLogger(__name__)


class ReservationState(str, Enum):
    REQUESTED = 'requested'
    VALIDATED = 'validated'
    COMMITTED = 'committed'
    REJECTED = 'rejected'
    CONFLICTED = 'conflicted'


@dataclass(frozen=True)
class ReservationRequest:
    doctor_id: int
    service_id: int
    patient_id: int
    desired_start: datetime
    duration_minutes: int | None = None
    reason_for_visit: str | None = None
    consultation_type: str = 'video'
    idempotency_key: str | None = None


@dataclass(frozen=True)
class ReservationOutcome:
    state: ReservationState
    appointment: Appointment | None = None
    reason: RejectionReason | None = None
    replayed: bool = False

    @classmethod
    def committed(cls, appointment: Appointment, replayed: bool = False) -> 'ReservationOutcome':
        return cls(ReservationState.COMMITTED, appointment=appointment, replayed=replayed)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> 'ReservationOutcome':
        return cls(ReservationState.REJECTED, reason=reason)

    @classmethod
    def conflicted(cls) -> 'ReservationOutcome':
        return cls(ReservationState.CONFLICTED)

    @property
    def is_committed(self) -> bool:
        return self.state is ReservationState.COMMITTED


class DoctorLockRegistry:
    """One lock per doctor, created on first use."""

    def __init__(self):
        self._locks: dict[int, Lock] = {}
        self._guard = Lock()

    def _lock_for(self, doctor_id: int) -> Lock:
        with self._guard:
            lock = self._locks.get(doctor_id)
            if lock is None:
                lock = Lock()
                self._locks[doctor_id] = lock
            return lock

    @contextmanager
    def hold(self, doctor_id: int, timeout: float):
        lock = self._lock_for(doctor_id)
        if not lock.acquire(timeout=timeout):
            raise TransientStoreError(f'Timed out waiting to book with doctor {doctor_id}.')
        try:
            yield
        finally:
            lock.release()


_doctor_locks = DoctorLockRegistry()


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    day_start = datetime.combine(day, time.min)
    return day_start, day_start + timedelta(days=1)


def load_active_appointments(db: Session, doctor_id: int, day: date) -> list[Appointment]:
    day_start, day_end = _day_bounds(day)
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        Appointment.scheduled_start >= day_start,
        Appointment.scheduled_start < day_end,
    ).order_by(Appointment.scheduled_start.asc()).all()


class ReservationCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = datetime.now,
        policy: BookingPolicy | None = None,
        notifier: NotificationDispatcher | None = None,
        granularity_minutes: int | None = None,
        lock_timeout: float | None = None,
        locks: DoctorLockRegistry | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.policy = policy or BookingPolicy.from_config()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.granularity_minutes = granularity_minutes or config.SLOT_GRANULARITY_MINUTES
        self.lock_timeout = config.RESERVATION_LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        self.locks = locks or _doctor_locks

    def resolve_available_slots(
        self,
        doctor_id: int,
        day: date,
        duration_minutes: int,
        now: datetime | None = None,
    ) -> list[Slot]:
        db = self.session_factory()
        try:
            resolver = AvailabilityResolver(db)
            doctor = resolver.load_doctor(doctor_id)
            free = resolver.resolve_for_doctor(doctor, day)
            slots = generate_slots(free, duration_minutes, self.granularity_minutes)

            appointments = load_active_appointments(db, doctor.id, day)
            slots = [slot for slot in slots if not has_conflict(slot.as_interval(), appointments)]

            if now is not None:
                slots = [
                    slot for slot in slots
                    if check_notice_window(now, slot.start, self.policy).admitted
                ]
            return slots
        finally:
            db.close()

    def reserve(self, request: ReservationRequest, cancel_event: Event | None = None) -> ReservationOutcome:
        if request.consultation_type not in CONSULTATION_TYPES:
            raise InvalidArgumentError(f'Unsupported consultation type: {request.consultation_type}.')

        desired_start = request.desired_start.replace(second=0, microsecond=0)
        logger.debug('Reservation %s: doctor=%s start=%s', ReservationState.REQUESTED.value, request.doctor_id, desired_start)

        db = self.session_factory()
        try:
            if request.idempotency_key:
                previous = self._find_by_idempotency_key(db, request)
                if previous is not None:
                    return ReservationOutcome.committed(previous, replayed=True)

            resolver = AvailabilityResolver(db)
            doctor = resolver.load_doctor(request.doctor_id)
            service = db.query(Service).filter(Service.id == request.service_id).first()
            if service is None or not service.is_active:
                raise NotFoundError(f'Service {request.service_id} not found.')

            duration_minutes = request.duration_minutes or service.duration_minutes or config.DEFAULT_APPOINTMENT_DURATION_MINUTES
            if duration_minutes <= 0:
                raise InvalidArgumentError('Appointment duration must be positive.')

            free = resolver.resolve_for_doctor(doctor, desired_start.date())
            decision = admit(self.clock(), desired_start, self.policy, free, duration_minutes)
            if not decision.admitted:
                logger.info('Reservation rejected for doctor %s at %s: %s', doctor.id, desired_start, decision.reason.value)
                return ReservationOutcome.rejected(decision.reason)

            candidate = Slot(desired_start, desired_start + timedelta(minutes=duration_minutes))
            if candidate not in generate_slots(free, duration_minutes, self.granularity_minutes):
                logger.info('Reservation rejected for doctor %s at %s: misaligned slot', doctor.id, desired_start)
                return ReservationOutcome.rejected(RejectionReason.MISALIGNED)

            doctor_id = doctor.id
            amount = doctor.consultation_fee or service.base_price or 0.0
            logger.debug('Reservation %s: doctor=%s start=%s', ReservationState.VALIDATED.value, doctor_id, desired_start)

            # End the read transaction so the re-check below sees every commit
            # made before the lock was granted.
            db.rollback()

            with self.locks.hold(doctor_id, self.lock_timeout):
                outcome = self._commit(db, request, doctor_id, candidate.as_interval(), amount, cancel_event)
        finally:
            db.close()

        if outcome.is_committed and not outcome.replayed:
            dispatch_safely(self.notifier, 'appointment_booked', outcome.appointment)
        return outcome

    def _find_by_idempotency_key(self, db: Session, request: ReservationRequest) -> Appointment | None:
        previous = db.query(Appointment).filter(
            Appointment.idempotency_key == request.idempotency_key,
        ).first()
        if previous is not None and previous.patient_id != request.patient_id:
            raise InvalidArgumentError('Idempotency key was already used by another booking.')
        return previous

    def _commit(
        self,
        db: Session,
        request: ReservationRequest,
        doctor_id: int,
        candidate: Interval,
        amount: float,
        cancel_event: Event | None,
    ) -> ReservationOutcome:
        if cancel_event is not None and cancel_event.is_set():
            raise ReservationCancelled('Reservation cancelled before commit.')

        try:
            if db.get_bind().dialect.name == 'sqlite':
                # SQLite ignores FOR UPDATE; take the database write lock up front instead.
                db.execute(text('BEGIN IMMEDIATE'))
            db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update().one()

            if request.idempotency_key:
                previous = self._find_by_idempotency_key(db, request)
                if previous is not None:
                    db.expunge(previous)
                    db.rollback()
                    logger.info('Reservation replayed appointment %s for key %s', previous.id, request.idempotency_key)
                    return ReservationOutcome.committed(previous, replayed=True)

            existing = load_active_appointments(db, doctor_id, candidate.day)
            conflicts = find_conflicts(candidate, existing)
            if conflicts:
                db.rollback()
                logger.info(
                    'Reservation conflicted for doctor %s at %s with appointment(s) %s',
                    doctor_id,
                    candidate.start,
                    [appointment.id for appointment in conflicts],
                )
                return ReservationOutcome.conflicted()

            if cancel_event is not None and cancel_event.is_set():
                db.rollback()
                raise ReservationCancelled('Reservation cancelled before commit.')

            appointment = Appointment(
                patient_id=request.patient_id,
                doctor_id=doctor_id,
                service_id=request.service_id,
                scheduled_start=candidate.start,
                duration_minutes=int(candidate.duration.total_seconds() // 60),
                status=AppointmentStatus.SCHEDULED.value,
                consultation_type=request.consultation_type,
                reason_for_visit=request.reason_for_visit,
                payment_status=PaymentStatus.PENDING.value,
                payment_amount=amount,
                idempotency_key=request.idempotency_key,
            )
            db.add(appointment)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ConflictError(f'Slot {candidate.start} is already taken.') from exc
            db.refresh(appointment)
        except ConflictError:
            if request.idempotency_key:
                previous = self._find_by_idempotency_key(db, request)
                if previous is not None:
                    return ReservationOutcome.committed(previous, replayed=True)
            logger.info('Reservation for doctor %s at %s lost the commit race', doctor_id, candidate.start)
            return ReservationOutcome.conflicted()
        except SQLAlchemyError as exc:
            db.rollback()
            raise TransientStoreError('Could not commit the appointment. Please retry.') from exc

        logger.info('Appointment %s committed for doctor %s at %s', appointment.id, doctor_id, candidate.start)
        return ReservationOutcome.committed(appointment)
