from datetime import date, datetime, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from sparks.models.availability import AvailabilitySlot
from sparks.models.therapy_session import MeetingType, SessionStatus, TherapySession
from sparks.models.user import User
from sparks.routes.availability_routes import (
    BulkAddAvailabilityRequest,
    CheckAvailabilityRequest,
    CreateAvailabilitySlotRequest,
    bulk_add_availability,
    check_availability,
    create_availability_slot,
    list_open_slots,
)

from factories import add_slot


def bulk_request(**overrides) -> BulkAddAvailabilityRequest:
    payload = {
        'startDate': '2025-10-08',
        'endDate': '2025-10-08',
        'startTime': '09:00',
        'endTime': '12:00',
        'recurrenceType': 'None',
    }
    payload.update(overrides)
    return BulkAddAvailabilityRequest(**payload)


def test_bulk_add_request_normalizes_times_and_days() -> None:
    request = bulk_request(startTime='9:00', recurrenceType='Custom', selectedDays=[3, 1, 3])

    assert request.start_time == '09:00'
    assert request.selected_days == [1, 3]


@pytest.mark.parametrize(
    'overrides',
    [
        {'startTime': '9am'},
        {'endTime': '24:00'},
        {'startDate': '2025-10-09', 'endDate': '2025-10-08'},
        {'recurrenceType': 'Custom', 'selectedDays': []},
        {'recurrenceType': 'Custom', 'selectedDays': [7]},
        {'recurrenceType': 'Fortnightly'},
    ],
)
def test_bulk_add_request_rejects_invalid_payloads(overrides) -> None:
    with pytest.raises(ValidationError):
        bulk_request(**overrides)


def test_bulk_add_availability_creates_slots(db, clinic) -> None:
    therapist_user = db.get(User, clinic.therapist_user_id)

    response = bulk_add_availability(bulk_request(), db=db, current_user=therapist_user)

    assert response.slots_created == 3
    assert response.date_range.start == date(2025, 10, 8)
    assert response.date_range.end == date(2025, 10, 8)
    assert response.model_dump(by_alias=True)['slotsCreated'] == 3
    starts = [slot.start_time for slot in db.query(AvailabilitySlot).order_by(AvailabilitySlot.start_time)]
    assert starts == ['09:00', '10:00', '11:00']


def test_bulk_add_availability_marks_free_slots(db, clinic) -> None:
    therapist_user = db.get(User, clinic.therapist_user_id)

    bulk_add_availability(bulk_request(isFree=True), db=db, current_user=therapist_user)

    assert all(slot.is_free for slot in db.query(AvailabilitySlot).all())


def test_bulk_add_availability_rejects_conflicts_with_capped_examples(db, clinic) -> None:
    therapist_user = db.get(User, clinic.therapist_user_id)
    for day in range(1, 9):
        add_slot(db, clinic.therapist_id, date(2025, 10, day), '09:00')

    with pytest.raises(HTTPException) as exception_info:
        bulk_add_availability(
            bulk_request(startDate='2025-10-01', endDate='2025-10-08', endTime='10:00', recurrenceType='Daily'),
            db=db,
            current_user=therapist_user,
        )

    assert exception_info.value.status_code == 409
    detail = exception_info.value.detail
    assert detail['totalConflicts'] == 8
    assert detail['conflicts'] == [
        '2025-10-01 at 09:00',
        '2025-10-02 at 09:00',
        '2025-10-03 at 09:00',
        '2025-10-04 at 09:00',
        '2025-10-05 at 09:00',
    ]
    assert db.query(AvailabilitySlot).count() == 8


def test_bulk_add_availability_is_all_or_nothing_with_one_conflict(db, clinic) -> None:
    therapist_user = db.get(User, clinic.therapist_user_id)
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '10:00')

    with pytest.raises(HTTPException) as exception_info:
        bulk_add_availability(bulk_request(), db=db, current_user=therapist_user)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['conflicts'] == ['2025-10-08 at 10:00']
    assert db.query(AvailabilitySlot).count() == 1


def test_bulk_add_availability_rejects_window_without_slots(db, clinic) -> None:
    therapist_user = db.get(User, clinic.therapist_user_id)

    with pytest.raises(HTTPException) as exception_info:
        bulk_add_availability(bulk_request(startTime='09:10', endTime='09:55'), db=db, current_user=therapist_user)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'No slots generated. Check your date range and recurrence settings.'


def test_bulk_add_availability_requires_therapist_role(db, clinic) -> None:
    patient_user = db.get(User, clinic.patient_user_id)

    with pytest.raises(HTTPException) as exception_info:
        bulk_add_availability(bulk_request(), db=db, current_user=patient_user)

    assert exception_info.value.status_code == 403
    assert db.query(AvailabilitySlot).count() == 0


def test_bulk_add_availability_requires_therapist_profile(db, clinic) -> None:
    orphan = User(email='new-therapist@sparks.test', name='New Therapist', role='THERAPIST')
    db.add(orphan)
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        bulk_add_availability(bulk_request(), db=db, current_user=orphan)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Therapist profile not found.'


def test_create_availability_slot_returns_slot(db, clinic) -> None:
    therapist_user = db.get(User, clinic.therapist_user_id)

    response = create_availability_slot(
        CreateAvailabilitySlotRequest(date='2025-10-08', startTime='9:00', isFree=True),
        db=db,
        current_user=therapist_user,
    )

    assert response.therapist_id == clinic.therapist_id
    assert response.start_time == '09:00'
    assert response.time_slot == '09:00-09:45'
    assert response.is_free is True
    assert response.is_booked is False


def test_create_availability_slot_rejects_duplicate(db, clinic) -> None:
    therapist_user = db.get(User, clinic.therapist_user_id)
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '09:00')

    with pytest.raises(HTTPException) as exception_info:
        create_availability_slot(
            CreateAvailabilitySlotRequest(date='2025-10-08', startTime='09:00'),
            db=db,
            current_user=therapist_user,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['conflicts'] == ['2025-10-08 at 09:00']


def test_list_open_slots_hides_booked_slots(db, clinic) -> None:
    patient_user = db.get(User, clinic.patient_user_id)
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '11:00')
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '09:00')
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '10:00', is_booked=True)
    add_slot(db, clinic.therapist_id, date(2025, 10, 9), '09:00')

    response = list_open_slots(clinic.therapist_id, slot_date='2025-10-08', db=db, current_user=patient_user)

    assert [slot.time_slot for slot in response] == ['09:00-09:45', '11:00-11:45']


def test_list_open_slots_rejects_unknown_therapist(db, clinic) -> None:
    patient_user = db.get(User, clinic.patient_user_id)

    with pytest.raises(HTTPException) as exception_info:
        list_open_slots(9999, slot_date='2025-10-08', db=db, current_user=patient_user)

    assert exception_info.value.status_code == 404


def test_list_open_slots_rejects_invalid_date(db, clinic) -> None:
    patient_user = db.get(User, clinic.patient_user_id)

    with pytest.raises(HTTPException) as exception_info:
        list_open_slots(clinic.therapist_id, slot_date='next week', db=db, current_user=patient_user)

    assert exception_info.value.status_code == 400


def check(db, clinic, when: str):
    patient_user = db.get(User, clinic.patient_user_id)
    return check_availability(
        CheckAvailabilityRequest(therapistId=clinic.therapist_id, dateTime=when),
        db=db,
        current_user=patient_user,
    )


def test_check_availability_without_slots_for_day(db, clinic) -> None:
    response = check(db, clinic, '2025-10-08T10:00:00Z')

    assert response.available is False
    assert response.message == 'Therapist has not set their availability for this day'


def test_check_availability_for_open_slot(db, clinic) -> None:
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '10:00')

    response = check(db, clinic, '2025-10-08T10:00:00Z')

    assert response.available is True
    assert response.message == 'Therapist is available at this time'


def test_check_availability_for_booked_slot_suggests_open_ones(db, clinic) -> None:
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '10:00', is_booked=True)
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '14:00')

    response = check(db, clinic, '2025-10-08T10:00:00Z')

    assert response.available is False
    assert response.message == 'The slot at this time is already booked'
    assert response.suggested_slots == ['14:00']


def test_check_availability_for_missing_slot(db, clinic) -> None:
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '10:00')

    response = check(db, clinic, '2025-10-08T12:00:00Z')

    assert response.available is False
    assert response.message == 'No slot exists at this time'
    assert response.suggested_slots == ['10:00']


def test_check_availability_detects_conflicting_session(db, clinic) -> None:
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '11:00')
    db.add(
        TherapySession(
            patient_id=clinic.patient_id,
            therapist_id=clinic.therapist_id,
            scheduled_at=datetime(2025, 10, 8, 10, 45, tzinfo=timezone.utc),
            duration=45,
            status=SessionStatus.SCHEDULED,
            session_type=MeetingType.IN_PERSON,
        )
    )
    db.commit()

    response = check(db, clinic, '2025-10-08T11:00:00Z')

    assert response.available is False
    assert response.message == 'Therapist has a conflicting appointment at this time'


def test_check_availability_ignores_cancelled_sessions(db, clinic) -> None:
    add_slot(db, clinic.therapist_id, date(2025, 10, 8), '11:00')
    db.add(
        TherapySession(
            patient_id=clinic.patient_id,
            therapist_id=clinic.therapist_id,
            scheduled_at=datetime(2025, 10, 8, 11, 0, tzinfo=timezone.utc),
            duration=45,
            status=SessionStatus.CANCELLED,
            session_type=MeetingType.IN_PERSON,
        )
    )
    db.commit()

    assert check(db, clinic, '2025-10-08T11:00:00Z').available is True


def test_check_availability_rejects_unknown_therapist(db, clinic) -> None:
    patient_user = db.get(User, clinic.patient_user_id)

    with pytest.raises(HTTPException) as exception_info:
        check_availability(
            CheckAvailabilityRequest(therapistId=9999, dateTime='2025-10-08T10:00:00Z'),
            db=db,
            current_user=patient_user,
        )

    assert exception_info.value.status_code == 404
