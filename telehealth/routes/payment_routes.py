from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.auth.dependencies import get_current_user
from telehealth.core.errors import BookingError
from telehealth.models.user import User
from telehealth.routes.appointment_routes import AppointmentResponse
from telehealth.routes.common import database_unavailable, ensure_database_ready, get_db, http_error_for
from telehealth.services.appointment_lifecycle import (
    confirm_payment,
    get_appointment,
    record_payment_intent,
)
from telehealth.services.payments import PaymentProcessor, get_payment_processor

router = APIRouter(tags=['payments'])


class PaymentRequest(BaseModel):
    appointment_id: int


class PaymentIntentResponse(BaseModel):
    payment_intent_id: str
    amount: float
    currency: str
    status: str


class PaymentConfirmationResponse(BaseModel):
    success: bool
    payment_status: str
    appointment: AppointmentResponse


def load_owned_appointment(db: Session, appointment_id: int, user: User):
    appointment = get_appointment(db, appointment_id)
    if appointment.patient_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Access denied.',
        )
    return appointment


@router.post('/intent', response_model=PaymentIntentResponse)
def create_payment_intent(
    data: PaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payments: PaymentProcessor = Depends(get_payment_processor),
):
    ensure_database_ready()

    try:
        appointment = load_owned_appointment(db, data.appointment_id, current_user)
        intent = record_payment_intent(db, appointment, payments)
        return PaymentIntentResponse(
            payment_intent_id=intent.id,
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status,
        )
    except BookingError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/confirm', response_model=PaymentConfirmationResponse)
def confirm_payment_intent(
    data: PaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payments: PaymentProcessor = Depends(get_payment_processor),
):
    ensure_database_ready()

    try:
        appointment = load_owned_appointment(db, data.appointment_id, current_user)
        intent = confirm_payment(db, appointment, payments)
        if intent.status != 'succeeded':
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Payment not completed.',
            )
        return PaymentConfirmationResponse(
            success=True,
            payment_status=appointment.payment_status,
            appointment=AppointmentResponse.model_validate(appointment),
        )
    except BookingError as exc:
        db.rollback()
        raise http_error_for(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
