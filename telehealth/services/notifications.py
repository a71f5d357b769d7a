"""Notification dispatch for appointment lifecycle events.

Delivery channels (email, SMS, push) live outside this service; the default
dispatcher only records events in the application log.
"""

import logging
from typing import Protocol

from telehealth.models.appointment import Appointment

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def appointment_booked(self, appointment: Appointment) -> None: ...

    def appointment_cancelled(self, appointment: Appointment) -> None: ...

    def appointment_reminder(self, appointment: Appointment) -> None: ...


class LoggingNotificationDispatcher:
    def appointment_booked(self, appointment: Appointment) -> None:
        logger.info(
            'Appointment %s booked: doctor=%s patient=%s start=%s',
            appointment.id,
            appointment.doctor_id,
            appointment.patient_id,
            appointment.scheduled_start.isoformat(),
        )

    def appointment_cancelled(self, appointment: Appointment) -> None:
        logger.info('Appointment %s cancelled', appointment.id)

    def appointment_reminder(self, appointment: Appointment) -> None:
        logger.info(
            'Reminder for appointment %s at %s',
            appointment.id,
            appointment.scheduled_start.isoformat(),
        )


def dispatch_safely(dispatcher: NotificationDispatcher, event: str, appointment: Appointment) -> bool:
    """Fire-and-forget: a failing dispatcher never undoes the booking."""
    try:
        getattr(dispatcher, event)(appointment)
    except Exception:
        logger.exception('Notification %s failed for appointment %s', event, appointment.id)
        return False
    return True
