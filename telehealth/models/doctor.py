"""Doctor profile model definitions.

A doctor owns its recurring weekly schedule and its date-specific blocked
intervals; both collections live and die with the profile.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from telehealth.database import Base


class Weekday(str, Enum):
    MONDAY = 'Monday'
    TUESDAY = 'Tuesday'
    WEDNESDAY = 'Wednesday'
    THURSDAY = 'Thursday'
    FRIDAY = 'Friday'
    SATURDAY = 'Saturday'
    SUNDAY = 'Sunday'

    @classmethod
    def from_date(cls, value) -> 'Weekday':
        return list(cls)[value.weekday()]


class Doctor(Base):
    """Represents a doctor profile."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    specialty = Column(String)
    consultation_fee = Column(Float, default=0.0)
    license_number = Column(String)
    is_active = Column(Boolean, default=True)

    user = relationship("User")
    weekly_availability = relationship(
        "WeeklyAvailability",
        back_populates="doctor",
        cascade="all, delete-orphan",
        order_by="WeeklyAvailability.id",
    )
    blocked_intervals = relationship(
        "BlockedInterval",
        back_populates="doctor",
        cascade="all, delete-orphan",
        order_by="BlockedInterval.date",
    )

    @property
    def name(self) -> str | None:
        return self.user.name if self.user is not None else None

    def availability_for(self, weekday: Weekday) -> 'WeeklyAvailability | None':
        for entry in self.weekly_availability:
            if entry.weekday == weekday.value:
                return entry
        return None


class WeeklyAvailability(Base):
    """Recurring working hours for one weekday."""
    __tablename__ = "weekly_availability"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'weekday', name='uq_weekly_availability_doctor_weekday'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    weekday = Column(String, nullable=False)
    start_time = Column(Time)
    end_time = Column(Time)
    is_available = Column(Boolean, default=True)

    doctor = relationship("Doctor", back_populates="weekly_availability")


class BlockedInterval(Base):
    """A one-off exception carved out of a doctor's availability."""
    __tablename__ = "blocked_intervals"
    __table_args__ = (
        CheckConstraint('start_time < end_time', name='ck_blocked_interval_positive'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String)

    doctor = relationship("Doctor", back_populates="blocked_intervals")
