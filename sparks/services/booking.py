"""Session booking: claims one availability slot and creates the session.

The slot claim is a conditional update (``is_booked`` false -> true) whose
affected-row count decides the winner when several requests race for the same
slot. The claim and the session insert share one transaction; notifications
go out only after it commits.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sparks.core import config
from sparks.core.errors import InvalidInputError, NotFoundError, SlotAlreadyBookedError, SlotUnavailableError
from sparks.core.timeparse import parse_calendar_date, parse_time_slot_start, session_start_utc
from sparks.models.patient import ParentGuardian, Patient
from sparks.models.therapist import Therapist
from sparks.models.therapy_session import MeetingType, SessionStatus, TherapySession
from sparks.models.user import User
from sparks.services import availability_store
from sparks.services.meetings import (
    GoogleMeetProvisioner,
    MeetingDetails,
    MeetingRequest,
    generate_fallback_meeting_link,
)
from sparks.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The authenticated user a core operation runs on behalf of."""
    user_id: int
    role: str

    @classmethod
    def from_user(cls, user: User) -> 'Actor':
        return cls(user_id=user.id, role=user.role)


@dataclass(frozen=True)
class BookingRequest:
    date: str | date
    time_slot: str
    session_category: str = 'Individual'
    meeting_type: MeetingType | str = MeetingType.IN_PERSON


def resolve_patient_booking(db: Session, actor: Actor, therapist_id: int) -> tuple[Patient, Therapist]:
    patient = db.query(Patient).filter(Patient.user_id == actor.user_id).first()
    if patient is None:
        raise NotFoundError('Patient not found.')

    therapist = db.get(Therapist, therapist_id)
    if therapist is None:
        raise NotFoundError('Therapist not found.')

    # First booking wins: an unassigned patient gets this therapist. The change
    # is committed together with the booking.
    if patient.primary_therapist_id is None:
        logger.info('Assigning therapist %s to patient %s during booking', therapist.id, patient.id)
        patient.primary_therapist_id = therapist.id

    return patient, therapist


def resolve_parent_booking(db: Session, actor: Actor, child_id: int) -> tuple[Patient, Therapist]:
    child = db.query(Patient).join(
        ParentGuardian,
        ParentGuardian.patient_id == Patient.id,
    ).filter(
        Patient.id == child_id,
        ParentGuardian.user_id == actor.user_id,
    ).first()

    if child is None or child.primary_therapist_id is None:
        raise NotFoundError('Child not found or no therapist assigned.')

    therapist = db.get(Therapist, child.primary_therapist_id)
    if therapist is None:
        raise NotFoundError('Child not found or no therapist assigned.')

    return child, therapist


def parse_meeting_type(value) -> MeetingType:
    try:
        return MeetingType(value)
    except ValueError as exc:
        raise InvalidInputError('Invalid meetingType. Must be IN_PERSON, ONLINE, or HYBRID.') from exc


def obtain_meeting_details(provisioner, db: Session, request: MeetingRequest) -> MeetingDetails:
    # Database errors raised by the provisioner roll back only this savepoint.
    try:
        with db.begin_nested():
            return provisioner.provision(db, request)
    except Exception:
        logger.exception('Meeting provisioning failed for %s, using fallback link', request.reference)
        return MeetingDetails(meeting_link=generate_fallback_meeting_link(request.reference))


def _build_meeting_request(
    db: Session,
    actor: Actor,
    patient: Patient,
    therapist: Therapist,
    scheduled_at: datetime,
    session_category: str,
) -> MeetingRequest:
    booking_user = db.get(User, actor.user_id)
    therapist_user = therapist.user
    therapist_name = (therapist_user.name if therapist_user else None) or 'Therapist'
    attendee_emails = [
        user.email
        for user in (booking_user, therapist_user)
        if user is not None and user.email
    ]

    return MeetingRequest(
        summary=f'Therapy Session - {patient.full_name}',
        description=(
            f'Online therapy session\nSession Type: {session_category}\n'
            f'Patient: {patient.full_name}\nTherapist: {therapist_name}'
        ),
        start=scheduled_at,
        end=scheduled_at + timedelta(minutes=config.SESSION_DURATION_MINUTES),
        reference=f'{patient.id}-{int(datetime.now(timezone.utc).timestamp())}',
        attendee_emails=attendee_emails,
        organizer_user_ids=[therapist.user_id, actor.user_id],
    )


def book_session(
    db: Session,
    actor: Actor,
    patient: Patient,
    therapist: Therapist,
    request: BookingRequest,
    provisioner=None,
    dispatcher: NotificationDispatcher | None = None,
) -> TherapySession:
    provisioner = provisioner or GoogleMeetProvisioner()
    dispatcher = dispatcher or NotificationDispatcher()

    meeting_type = parse_meeting_type(request.meeting_type)
    session_date = parse_calendar_date(request.date)
    start_time = parse_time_slot_start(request.time_slot)
    scheduled_at = session_start_utc(session_date, start_time)

    logger.info(
        'Booking therapist %s for patient %s on %s at %s (%s)',
        therapist.id, patient.id, session_date.isoformat(), start_time, meeting_type.value,
    )

    slot = availability_store.find_open_slot(db, therapist.id, session_date, start_time)
    if slot is None:
        db.rollback()
        raise SlotUnavailableError()

    booked_rate = 0 if slot.is_free else (therapist.session_rate or 0)

    try:
        if not availability_store.claim(db, slot.id):
            db.rollback()
            logger.warning('Slot %s was claimed by a concurrent booking', slot.id)
            raise SlotAlreadyBookedError()

        meeting = None
        if meeting_type.is_remote:
            meeting = obtain_meeting_details(
                provisioner,
                db,
                _build_meeting_request(db, actor, patient, therapist, scheduled_at, request.session_category),
            )

        therapy_session = TherapySession(
            patient_id=patient.id,
            therapist_id=therapist.id,
            scheduled_at=scheduled_at,
            duration=config.SESSION_DURATION_MINUTES,
            status=SessionStatus.SCHEDULED,
            type=request.session_category,
            session_type=meeting_type,
            booked_rate=booked_rate,
            meeting_link=meeting.meeting_link if meeting else None,
            calendar_event_id=meeting.calendar_event_id if meeting else None,
        )
        db.add(therapy_session)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(therapy_session)
    logger.info('Session %s booked on slot %s', therapy_session.id, slot.id)

    try:
        dispatcher.session_booked(
            db,
            booked_by_user_id=actor.user_id,
            therapist_user_id=therapist.user_id,
            patient_name=patient.full_name,
            scheduled_label=f'{session_date.isoformat()} at {start_time}',
        )
    except Exception:
        logger.exception('Notifications for session %s could not be sent', therapy_session.id)

    return therapy_session
