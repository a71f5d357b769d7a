"""Periodic appointment maintenance.

Usage:
    python -m telehealth.jobs
"""
import logging
import sys
from datetime import datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.database import SessionLocal
from telehealth.models import doctor, service, user  # noqa: F401
from telehealth.models.appointment import Appointment, AppointmentStatus
from telehealth.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    dispatch_safely,
)

logger = logging.getLogger(__name__)

_PENDING_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)


def mark_missed_appointments(db: Session, now: datetime, grace_minutes: int | None = None) -> int:
    grace = timedelta(minutes=config.NO_SHOW_GRACE_MINUTES if grace_minutes is None else grace_minutes)
    cutoff = now - grace

    missed = db.query(Appointment).filter(
        Appointment.status.in_(_PENDING_STATUSES),
        Appointment.scheduled_start <= cutoff,
    ).all()
    for appointment in missed:
        appointment.status = AppointmentStatus.NO_SHOW.value
    db.commit()

    if missed:
        logger.info('Updated %d appointments to no-show status', len(missed))
    return len(missed)


def send_appointment_reminders(db: Session, now: datetime, dispatcher: NotificationDispatcher) -> int:
    tomorrow = datetime.combine(now.date() + timedelta(days=1), time.min)
    day_after = tomorrow + timedelta(days=1)

    due = db.query(Appointment).filter(
        Appointment.status.in_(_PENDING_STATUSES),
        Appointment.scheduled_start >= tomorrow,
        Appointment.scheduled_start < day_after,
        Appointment.reminder_sent.is_not(True),
    ).order_by(Appointment.scheduled_start.asc()).all()

    sent = 0
    for appointment in due:
        if dispatch_safely(dispatcher, 'appointment_reminder', appointment):
            appointment.reminder_sent = True
            sent += 1
    db.commit()

    logger.info('Sent %d of %d appointment reminders', sent, len(due))
    return sent


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL)
    now = datetime.now()
    db = SessionLocal()
    try:
        mark_missed_appointments(db, now)
        send_appointment_reminders(db, now, LoggingNotificationDispatcher())
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Appointment maintenance failed. Check DATABASE_URL.')
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
