"""Free-time resolution for a doctor on a single calendar date."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from telehealth.core.errors import NotFoundError
from telehealth.models.doctor import BlockedInterval, Doctor, Weekday, WeeklyAvailability
from telehealth.scheduling.intervals import Interval, subtract_all

logger = logging.getLogger(__name__)


def resolve_free_intervals(
    weekly_availability: list[WeeklyAvailability],
    blocked_intervals: list[BlockedInterval],
    target_date: date,
) -> list[Interval]:
    """Apply the date's blocked intervals to the matching weekday window.

    Blocks recorded for other dates are ignored, so callers may pass the
    doctor's full collection.
    """
    weekday = Weekday.from_date(target_date).value
    entry = next((item for item in weekly_availability if item.weekday == weekday), None)
    if entry is None or not entry.is_available:
        return []
    if entry.start_time is None or entry.end_time is None:
        return []

    free = [Interval.from_times(target_date, entry.start_time, entry.end_time)]

    for blocked in blocked_intervals:
        if blocked.date != target_date:
            continue
        free = subtract_all(free, Interval.from_times(target_date, blocked.start_time, blocked.end_time))
        if not free:
            break

    return sorted(free)


class AvailabilityResolver:
    def __init__(self, db: Session):
        self.db = db

    def load_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if doctor is None or not doctor.is_active:
            raise NotFoundError(f'Doctor {doctor_id} not found.')
        return doctor

    def resolve(self, doctor_id: int, target_date: date) -> list[Interval]:
        doctor = self.load_doctor(doctor_id)
        return self.resolve_for_doctor(doctor, target_date)

    def resolve_for_doctor(self, doctor: Doctor, target_date: date) -> list[Interval]:
        blocked = self.db.query(BlockedInterval).filter(
            BlockedInterval.doctor_id == doctor.id,
            BlockedInterval.date == target_date,
        ).all()

        free = resolve_free_intervals(doctor.weekly_availability, blocked, target_date)
        logger.debug('Doctor %s has %d free interval(s) on %s', doctor.id, len(free), target_date)
        return free
