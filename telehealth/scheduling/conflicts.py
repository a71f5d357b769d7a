from typing import Iterable

from telehealth.models.appointment import ACTIVE_APPOINTMENT_STATUSES, Appointment
from telehealth.scheduling.intervals import Interval, overlaps


def appointment_interval(appointment: Appointment) -> Interval:
    return Interval.from_duration(appointment.scheduled_start, appointment.duration_minutes)


def find_conflicts(candidate: Interval, existing_appointments: Iterable[Appointment]) -> list[Appointment]:
    """Active appointments overlapping ``candidate``.

    The caller is responsible for passing only one doctor's appointments.
    """
    return [
        appointment
        for appointment in existing_appointments
        if appointment.status in ACTIVE_APPOINTMENT_STATUSES
        and overlaps(candidate, appointment_interval(appointment))
    ]


def has_conflict(candidate: Interval, existing_appointments: Iterable[Appointment]) -> bool:
    return bool(find_conflicts(candidate, existing_appointments))
