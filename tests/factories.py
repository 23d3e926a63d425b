from datetime import date
from types import SimpleNamespace

from sqlalchemy import text

from sparks.models.availability import AvailabilitySlot
from sparks.models.calendar_credential import CalendarCredential
from sparks.models.patient import ParentGuardian, Patient
from sparks.models.therapist import Therapist
from sparks.models.user import User
from sparks.services.meetings import MeetingDetails
from sparks.services.notifications import NotificationDispatcher


def seed_clinic(db) -> SimpleNamespace:
    therapist_user = User(email='therapist@sparks.test', name='Dr. Rivera', role='THERAPIST')
    patient_user = User(email='patient@sparks.test', name='Sam Patient', role='NORMAL_USER')
    parent_user = User(email='parent@sparks.test', name='Pat Parent', role='PARENT_GUARDIAN')
    other_parent_user = User(email='other-parent@sparks.test', name='Olive Other', role='PARENT_GUARDIAN')
    db.add_all([therapist_user, patient_user, parent_user, other_parent_user])
    db.flush()

    therapist = Therapist(user_id=therapist_user.id, specialization='Speech', session_rate=2500)
    db.add(therapist)
    db.flush()

    patient = Patient(user_id=patient_user.id, first_name='Sam', last_name='Patient')
    child = Patient(first_name='Kai', last_name='Parent', primary_therapist_id=therapist.id)
    db.add_all([patient, child])
    db.flush()

    db.add(ParentGuardian(user_id=parent_user.id, patient_id=child.id))
    db.commit()

    return SimpleNamespace(
        therapist_user_id=therapist_user.id,
        patient_user_id=patient_user.id,
        parent_user_id=parent_user.id,
        other_parent_user_id=other_parent_user.id,
        therapist_id=therapist.id,
        patient_id=patient.id,
        child_id=child.id,
    )


def add_slot(db, therapist_id: int, slot_date: date, start_time: str, is_free: bool = False, is_booked: bool = False):
    slot = AvailabilitySlot(
        therapist_id=therapist_id,
        date=slot_date,
        start_time=start_time,
        is_free=is_free,
        is_booked=is_booked,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent = []

    def dispatch(self, db, notifications):
        self.sent.extend(notifications)
        return super().dispatch(db, notifications)


class StaticProvisioner:
    def __init__(self, meeting_link='https://meet.google.com/abc-defg-hij', calendar_event_id='evt-123'):
        self.meeting_link = meeting_link
        self.calendar_event_id = calendar_event_id
        self.requests = []

    def provision(self, db, request):
        self.requests.append(request)
        return MeetingDetails(meeting_link=self.meeting_link, calendar_event_id=self.calendar_event_id)


class FailingProvisioner:
    def __init__(self):
        self.calls = 0

    def provision(self, db, request):
        self.calls += 1
        raise RuntimeError('calendar API unavailable')


class BrokenCredentialProvisioner:
    """Writes a credential row, then fails on a database error."""

    def __init__(self, user_id):
        self.user_id = user_id

    def provision(self, db, request):
        db.add(CalendarCredential(user_id=self.user_id, provider='google', access_token='partial'))
        db.flush()
        db.execute(text('SELECT access_token FROM missing_calendar_table'))
        return MeetingDetails(meeting_link='https://meet.google.com/never-returned')


class FailingDispatcher(NotificationDispatcher):
    def session_booked(self, db, **kwargs):
        raise RuntimeError('notification backend down')
