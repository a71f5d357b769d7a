"""Status transitions for appointments after they have been reserved.

Appointments are never deleted. Cancelling releases the doctor's time because
``cancelled`` is not an active status.
"""

import logging

from sqlalchemy.orm import Session

from telehealth.core.errors import InvalidTransitionError, NotFoundError
from telehealth.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from telehealth.services.notifications import NotificationDispatcher, dispatch_safely
from telehealth.services.payments import PaymentProcessor

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AppointmentStatus.SCHEDULED.value: frozenset({
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.IN_PROGRESS.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
    }),
    AppointmentStatus.CONFIRMED.value: frozenset({
        AppointmentStatus.IN_PROGRESS.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
    }),
    AppointmentStatus.IN_PROGRESS.value: frozenset({
        AppointmentStatus.COMPLETED.value,
    }),
    AppointmentStatus.COMPLETED.value: frozenset(),
    AppointmentStatus.CANCELLED.value: frozenset(),
    AppointmentStatus.NO_SHOW.value: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError(f'Appointment {appointment_id} not found.')
    return appointment


def transition_status(
    db: Session,
    appointment: Appointment,
    target: str,
    payments: PaymentProcessor | None = None,
    notifier: NotificationDispatcher | None = None,
) -> Appointment:
    """Move ``appointment`` to ``target`` and commit.

    Cancelling a paid appointment refunds it through ``payments`` when one is
    given.
    """
    if target not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f'Unknown status: {target}.')
    if not can_transition(appointment.status, target):
        raise InvalidTransitionError(f'Cannot move appointment from {appointment.status} to {target}.')

    previous = appointment.status
    appointment.status = target

    if (
        target == AppointmentStatus.CANCELLED.value
        and appointment.payment_status == PaymentStatus.COMPLETED.value
        and payments is not None
        and appointment.payment_reference
    ):
        payments.refund(appointment.payment_reference)
        appointment.payment_status = PaymentStatus.REFUNDED.value

    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s moved from %s to %s', appointment.id, previous, target)

    if target == AppointmentStatus.CANCELLED.value and notifier is not None:
        dispatch_safely(notifier, 'appointment_cancelled', appointment)
    return appointment


def record_payment_intent(db: Session, appointment: Appointment, payments: PaymentProcessor):
    if appointment.payment_status == PaymentStatus.COMPLETED.value:
        raise InvalidTransitionError('Appointment has already been paid.')
    if not appointment.is_active:
        raise InvalidTransitionError(f'Cannot pay for a {appointment.status} appointment.')

    intent = payments.create_intent(appointment.payment_amount or 0.0, reference=f'appointment:{appointment.id}')
    appointment.payment_reference = intent.id
    db.commit()
    db.refresh(appointment)
    return intent


def confirm_payment(db: Session, appointment: Appointment, payments: PaymentProcessor):
    """Settle the appointment's intent; success confirms a scheduled booking."""
    if appointment.payment_status == PaymentStatus.COMPLETED.value:
        raise InvalidTransitionError('Appointment has already been paid.')
    if not appointment.is_active:
        raise InvalidTransitionError(f'Cannot pay for a {appointment.status} appointment.')
    if not appointment.payment_reference:
        raise InvalidTransitionError('No payment has been started for this appointment.')

    intent = payments.confirm(appointment.payment_reference)
    if intent.status != 'succeeded':
        appointment.payment_status = PaymentStatus.FAILED.value
        db.commit()
        db.refresh(appointment)
        return intent

    appointment.payment_status = PaymentStatus.COMPLETED.value
    if appointment.status == AppointmentStatus.SCHEDULED.value:
        appointment.status = AppointmentStatus.CONFIRMED.value
    db.commit()
    db.refresh(appointment)
    logger.info('Payment %s settled for appointment %s', intent.id, appointment.id)
    return intent
