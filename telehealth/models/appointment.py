"""Appointment model definitions."""

from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, text

from telehealth.database import Base


class AppointmentStatus(str, Enum):
    SCHEDULED = 'scheduled'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in-progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no-show'


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    REFUNDED = 'refunded'


CONSULTATION_TYPES = ('video', 'chat', 'phone')

# Statuses that hold a doctor's time.
ACTIVE_APPOINTMENT_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.IN_PROGRESS.value,
})

ACTIVE_STATUS_CONDITION = "status IN ('scheduled', 'confirmed', 'in-progress')"


class Appointment(Base):
    """Represents a reservation of a doctor's time by a patient."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            'uq_appointments_active_doctor_start',
            'doctor_id',
            'scheduled_start',
            unique=True,
            sqlite_where=text(ACTIVE_STATUS_CONDITION),
            postgresql_where=text(ACTIVE_STATUS_CONDITION),
        ),
        Index('idx_appointments_doctor_start', 'doctor_id', 'scheduled_start'),
        Index('idx_appointments_patient_start', 'patient_id', 'scheduled_start'),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    scheduled_start = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    consultation_type = Column(String, default='video')
    reason_for_visit = Column(String)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    payment_amount = Column(Float, default=0.0)
    payment_reference = Column(String)
    idempotency_key = Column(String, unique=True)
    reminder_sent = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def scheduled_end(self) -> datetime:
        return self.scheduled_start + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_APPOINTMENT_STATUSES
