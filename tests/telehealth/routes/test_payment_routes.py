from datetime import datetime, time

import pytest
from fastapi import HTTPException

from telehealth.models.appointment import Appointment
from telehealth.routes.payment_routes import PaymentRequest, confirm_payment_intent, create_payment_intent
from telehealth.services.payments import OfflinePaymentProcessor

from conftest import MONDAY


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('telehealth.routes.payment_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def payments():
    return OfflinePaymentProcessor(currency='usd')


@pytest.fixture
def appointment(book):
    return book(datetime.combine(MONDAY, time(10, 0)))


def test_create_payment_intent_uses_consultation_fee(db, patient, appointment, payments) -> None:
    response = create_payment_intent(
        data=PaymentRequest(appointment_id=appointment.id),
        current_user=patient,
        db=db,
        payments=payments,
    )

    assert response.amount == 75.0
    assert response.currency == 'usd'
    assert response.status == 'requires_confirmation'
    assert db.get(Appointment, appointment.id).payment_reference == response.payment_intent_id


def test_confirm_payment_confirms_appointment(db, patient, appointment, payments) -> None:
    create_payment_intent(data=PaymentRequest(appointment_id=appointment.id), current_user=patient, db=db, payments=payments)

    response = confirm_payment_intent(
        data=PaymentRequest(appointment_id=appointment.id),
        current_user=patient,
        db=db,
        payments=payments,
    )

    assert response.success
    assert response.payment_status == 'completed'
    assert response.appointment.status == 'confirmed'


def test_confirm_without_intent_returns_400(db, patient, appointment, payments) -> None:
    with pytest.raises(HTTPException) as exception_info:
        confirm_payment_intent(data=PaymentRequest(appointment_id=appointment.id), current_user=patient, db=db, payments=payments)

    assert exception_info.value.status_code == 400


def test_payment_for_someone_elses_appointment_is_forbidden(db, doctor_user, appointment, payments) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_payment_intent(data=PaymentRequest(appointment_id=appointment.id), current_user=doctor_user, db=db, payments=payments)

    assert exception_info.value.status_code == 403


def test_payment_for_missing_appointment_returns_not_found(db, patient, payments) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_payment_intent(data=PaymentRequest(appointment_id=404), current_user=patient, db=db, payments=payments)

    assert exception_info.value.status_code == 404
