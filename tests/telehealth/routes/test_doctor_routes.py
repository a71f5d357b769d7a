from datetime import date, datetime, time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from telehealth.models.doctor import BlockedInterval, Doctor, WeeklyAvailability
from telehealth.models.user import User
from telehealth.routes.doctor_routes import (
    CreateBlockedIntervalRequest,
    DoctorProfileRequest,
    DoctorResponse,
    UpdateWeeklyAvailabilityRequest,
    WeeklyAvailabilityEntry,
    create_blocked_interval,
    create_doctor_profile,
    get_doctor,
    get_doctor_availability,
    list_blocked_intervals,
    list_doctors,
    remove_blocked_interval,
    replace_weekly_availability,
    update_doctor_profile,
)

from conftest import MONDAY


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('telehealth.routes.doctor_routes.ensure_database_ready', lambda: None)


def test_weekly_availability_entry_normalizes_weekday_and_seconds() -> None:
    entry = WeeklyAvailabilityEntry(weekday=' monday ', start_time=time(9, 0, 30), end_time=time(17, 0))

    assert entry.weekday == 'Monday'
    assert entry.start_time == time(9, 0)


def test_weekly_availability_entry_rejects_unknown_weekday() -> None:
    with pytest.raises(ValidationError):
        WeeklyAvailabilityEntry(weekday='Funday', start_time=time(9, 0), end_time=time(17, 0))


def test_weekly_availability_entry_rejects_inverted_window() -> None:
    with pytest.raises(ValidationError):
        WeeklyAvailabilityEntry(weekday='Monday', start_time=time(17, 0), end_time=time(9, 0))


def test_weekly_availability_request_rejects_duplicate_weekdays() -> None:
    entry = {'weekday': 'Monday', 'start_time': time(9, 0), 'end_time': time(12, 0)}

    with pytest.raises(ValidationError):
        UpdateWeeklyAvailabilityRequest(availability=[entry, entry])


def test_blocked_interval_request_normalizes_blank_reason() -> None:
    request = CreateBlockedIntervalRequest(date=MONDAY, start_time=time(12, 0), end_time=time(13, 0), reason='   ')

    assert request.reason is None


def test_get_doctor_returns_weekly_schedule(db, doctor) -> None:
    profile = get_doctor(doctor_id=doctor.id, db=db)

    assert [entry.weekday for entry in profile.weekly_availability] == ['Monday', 'Tuesday', 'Wednesday']


def test_get_doctor_returns_not_found_for_inactive_profile(db, doctor) -> None:
    doctor.is_active = False
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        get_doctor(doctor_id=doctor.id, db=db)

    assert exception_info.value.status_code == 404


def test_availability_lists_open_slots(db, doctor, coordinator, lunch_block, book) -> None:
    book(datetime.combine(MONDAY, time(10, 0)), 30)

    response = get_doctor_availability(
        doctor_id=doctor.id,
        day=MONDAY,
        duration=30,
        service_id=None,
        db=db,
        coordinator=coordinator,
    )

    starts = [slot.start_time.time() for slot in response.available_slots]
    assert response.duration_minutes == 30
    assert starts[:4] == [time(9, 0), time(9, 15), time(9, 30), time(10, 30)]
    assert time(12, 0) not in starts
    assert starts[-1] == time(16, 30)


def test_availability_uses_service_duration(db, doctor, service, coordinator) -> None:
    response = get_doctor_availability(
        doctor_id=doctor.id,
        day=MONDAY,
        duration=None,
        service_id=service.id,
        db=db,
        coordinator=coordinator,
    )

    assert response.duration_minutes == 30
    assert all(slot.duration_minutes == 30 for slot in response.available_slots)


def test_availability_is_empty_on_unavailable_weekday(db, doctor, coordinator) -> None:
    response = get_doctor_availability(
        doctor_id=doctor.id,
        day=MONDAY + timedelta(days=2),
        duration=30,
        service_id=None,
        db=db,
        coordinator=coordinator,
    )

    assert response.available_slots == []


def test_availability_for_unknown_doctor_returns_not_found(db, coordinator) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_doctor_availability(doctor_id=999, day=MONDAY, duration=30, service_id=None, db=db, coordinator=coordinator)

    assert exception_info.value.status_code == 404


def test_replace_weekly_availability_requires_owner(db, doctor, patient) -> None:
    data = UpdateWeeklyAvailabilityRequest(
        availability=[{'weekday': 'Friday', 'start_time': time(9, 0), 'end_time': time(12, 0)}],
    )

    with pytest.raises(HTTPException) as exception_info:
        replace_weekly_availability(doctor_id=doctor.id, data=data, current_user=patient, db=db)

    assert exception_info.value.status_code == 403


def test_replace_weekly_availability_swaps_schedule(db, doctor, doctor_user) -> None:
    data = UpdateWeeklyAvailabilityRequest(
        availability=[
            {'weekday': 'Monday', 'start_time': time(13, 0), 'end_time': time(18, 0)},
            {'weekday': 'Friday', 'start_time': time(9, 0), 'end_time': time(12, 0)},
        ],
    )

    schedule = replace_weekly_availability(doctor_id=doctor.id, data=data, current_user=doctor_user, db=db)

    assert [(entry.weekday, entry.start_time) for entry in schedule] == [
        ('Monday', time(13, 0)),
        ('Friday', time(9, 0)),
    ]


def test_create_blocked_interval_rejects_overlapping_block(db, doctor, doctor_user, lunch_block) -> None:
    data = CreateBlockedIntervalRequest(date=MONDAY, start_time=time(12, 30), end_time=time(14, 0))

    with pytest.raises(HTTPException) as exception_info:
        create_blocked_interval(doctor_id=doctor.id, data=data, current_user=doctor_user, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is already blocked.'


def test_create_blocked_interval_rejects_booked_time(db, doctor, doctor_user, book) -> None:
    book(datetime.combine(MONDAY, time(15, 0)), 30)
    data = CreateBlockedIntervalRequest(date=MONDAY, start_time=time(15, 15), end_time=time(16, 0))

    with pytest.raises(HTTPException) as exception_info:
        create_blocked_interval(doctor_id=doctor.id, data=data, current_user=doctor_user, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is already booked by a patient appointment.'


def test_create_blocked_interval_allows_time_after_cancelled_booking(db, doctor, doctor_user, book) -> None:
    book(datetime.combine(MONDAY, time(15, 0)), 30, status='cancelled')
    data = CreateBlockedIntervalRequest(date=MONDAY, start_time=time(15, 0), end_time=time(16, 0), reason=' Training ')

    blocked = create_blocked_interval(doctor_id=doctor.id, data=data, current_user=doctor_user, db=db)

    assert blocked.id is not None
    assert blocked.reason == 'Training'


def test_blocked_intervals_list_and_remove(db, doctor, doctor_user) -> None:
    upcoming = date.today() + timedelta(days=7)
    data = CreateBlockedIntervalRequest(date=upcoming, start_time=time(9, 0), end_time=time(10, 0))
    blocked = create_blocked_interval(doctor_id=doctor.id, data=data, current_user=doctor_user, db=db)

    assert [entry.id for entry in list_blocked_intervals(doctor_id=doctor.id, db=db)] == [blocked.id]

    remove_blocked_interval(doctor_id=doctor.id, blocked_id=blocked.id, current_user=doctor_user, db=db)

    assert db.query(BlockedInterval).count() == 0


def test_remove_missing_blocked_interval_returns_not_found(db, doctor, doctor_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        remove_blocked_interval(doctor_id=doctor.id, blocked_id=404, current_user=doctor_user, db=db)

    assert exception_info.value.status_code == 404


def test_unavailable_day_without_times_serializes(db, doctor) -> None:
    doctor.weekly_availability.append(WeeklyAvailability(weekday='Thursday', is_available=False))
    db.commit()

    response = DoctorResponse.model_validate(get_doctor(doctor_id=doctor.id, db=db))

    thursday = next(entry for entry in response.weekly_availability if entry.weekday == 'Thursday')
    assert thursday.start_time is None
    assert thursday.is_available is False


def test_weekly_availability_entry_requires_times_when_available() -> None:
    with pytest.raises(ValidationError):
        WeeklyAvailabilityEntry(weekday='Friday', is_available=True)


def test_list_doctors_filters_by_specialty_and_search(db, doctor) -> None:
    other_user = User(email='derm@example.com', name='Dr. Skin', hashed_password='', role='doctor')
    db.add(other_user)
    db.commit()
    db.add(Doctor(user_id=other_user.id, specialty='Dermatology', consultation_fee=90.0, is_active=True))
    db.commit()

    everyone = list_doctors(specialty=None, search=None, page=1, limit=10, db=db)
    dermatology = list_doctors(specialty='Dermatology', search=None, page=1, limit=10, db=db)
    by_name = list_doctors(specialty=None, search='example', page=1, limit=10, db=db)

    assert everyone.pagination.total == 2
    assert [item.name for item in dermatology.doctors] == ['Dr. Skin']
    assert [item.id for item in by_name.doctors] == [doctor.id]


def test_list_doctors_hides_inactive_profiles(db, doctor) -> None:
    doctor.is_active = False
    db.commit()

    assert list_doctors(specialty=None, search=None, page=1, limit=10, db=db).doctors == []


def test_create_doctor_profile_promotes_user_and_sets_schedule(db, patient) -> None:
    data = DoctorProfileRequest(
        specialty=' Cardiology ',
        consultation_fee=120.0,
        license_number='LIC-2002',
        weekly_availability=[{'weekday': 'friday', 'start_time': time(8, 0), 'end_time': time(12, 0)}],
    )

    profile = create_doctor_profile(data=data, current_user=patient, db=db)

    assert profile.specialty == 'Cardiology'
    assert profile.name == 'Pat Patient'
    assert [(entry.weekday, entry.start_time) for entry in profile.weekly_availability] == [('Friday', time(8, 0))]
    assert db.query(User).filter(User.id == patient.id).one().role == 'doctor'


def test_create_doctor_profile_twice_is_refused(db, doctor, doctor_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_doctor_profile(data=DoctorProfileRequest(specialty='General Practice'), current_user=doctor_user, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Doctor profile already exists.'


def test_update_doctor_profile_changes_fee_and_keeps_schedule(db, doctor, doctor_user) -> None:
    profile = update_doctor_profile(data=DoctorProfileRequest(consultation_fee=95.0), current_user=doctor_user, db=db)

    assert profile.consultation_fee == 95.0
    assert [entry.weekday for entry in profile.weekly_availability] == ['Monday', 'Tuesday', 'Wednesday']


def test_update_doctor_profile_replaces_schedule(db, doctor, doctor_user) -> None:
    data = DoctorProfileRequest(
        weekly_availability=[{'weekday': 'Monday', 'start_time': time(10, 0), 'end_time': time(14, 0)}],
    )

    profile = update_doctor_profile(data=data, current_user=doctor_user, db=db)

    assert [(entry.weekday, entry.start_time) for entry in profile.weekly_availability] == [('Monday', time(10, 0))]


def test_update_doctor_profile_requires_existing_profile(db, patient) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_doctor_profile(data=DoctorProfileRequest(specialty='Neurology'), current_user=patient, db=db)

    assert exception_info.value.status_code == 404
