import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sparks.auth.dependencies import NORMAL_USER, PARENT_GUARDIAN, get_current_user, get_db, require_role
from sparks.core.errors import SchedulingError
from sparks.core.timeparse import as_utc
from sparks.models.therapy_session import MeetingType, SessionStatus, TherapySession
from sparks.models.user import User
from sparks.routes.availability_routes import ensure_database_ready, raise_for_scheduling_error
from sparks.services.booking import (
    Actor,
    BookingRequest,
    book_session,
    resolve_parent_booking,
    resolve_patient_booking,
)
from sparks.services.meetings import GoogleMeetProvisioner
from sparks.services.notifications import NotificationDispatcher

router = APIRouter(tags=['sessions'])

logger = logging.getLogger(__name__)

MAX_SESSION_CATEGORY_LENGTH = 100


class BaseBookSessionRequest(BaseModel):
    date: str
    time_slot: str = Field(alias='timeSlot')
    session_type: str = Field(default='Individual', alias='sessionType')
    meeting_type: MeetingType = Field(default=MeetingType.IN_PERSON, alias='meetingType')

    class Config:
        populate_by_name = True

    @field_validator('date', 'time_slot')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Missing required fields: date and timeSlot.')
        return normalized

    @field_validator('session_type')
    @classmethod
    def validate_session_type(cls, value: str) -> str:
        normalized = value.strip() or 'Individual'
        if len(normalized) > MAX_SESSION_CATEGORY_LENGTH:
            raise ValueError(f'sessionType must be {MAX_SESSION_CATEGORY_LENGTH} characters or fewer.')
        return normalized

    def to_booking_request(self) -> BookingRequest:
        return BookingRequest(
            date=self.date,
            time_slot=self.time_slot,
            session_category=self.session_type,
            meeting_type=self.meeting_type,
        )


class PatientBookSessionRequest(BaseBookSessionRequest):
    therapist_id: int = Field(alias='therapistId')


class ParentBookSessionRequest(BaseBookSessionRequest):
    child_id: int = Field(alias='childId')


class BookedSessionResponse(BaseModel):
    id: int
    scheduled_at: datetime = Field(alias='scheduledAt')
    duration: int
    status: SessionStatus
    booked_rate: float = Field(alias='bookedRate')
    type: str
    session_type: MeetingType = Field(alias='sessionType')
    meeting_link: str | None = Field(default=None, alias='meetingLink')

    class Config:
        populate_by_name = True


class BookSessionResponse(BaseModel):
    message: str
    session: BookedSessionResponse


def get_meeting_provisioner():
    return GoogleMeetProvisioner()


def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


def to_booking_response(therapy_session: TherapySession) -> BookSessionResponse:
    return BookSessionResponse(
        message='Session booked successfully',
        session=BookedSessionResponse(
            id=therapy_session.id,
            scheduled_at=as_utc(therapy_session.scheduled_at),
            duration=therapy_session.duration,
            status=therapy_session.status,
            booked_rate=float(therapy_session.booked_rate or 0),
            type=therapy_session.type,
            session_type=therapy_session.session_type,
            meeting_link=therapy_session.meeting_link,
        ),
    )


@router.post('/patient/sessions/book', response_model=BookSessionResponse)
def book_patient_session(
    data: PatientBookSessionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provisioner=Depends(get_meeting_provisioner),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    require_role(current_user, NORMAL_USER)
    ensure_database_ready()

    actor = Actor.from_user(current_user)
    try:
        patient, therapist = resolve_patient_booking(db, actor, data.therapist_id)
        therapy_session = book_session(
            db, actor, patient, therapist, data.to_booking_request(),
            provisioner=provisioner,
            dispatcher=dispatcher,
        )
        return to_booking_response(therapy_session)
    except SchedulingError as exc:
        raise_for_scheduling_error(exc)
    except SQLAlchemyError as exc:
        logger.exception('Session booking failed on a database error')
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.post('/parent/sessions/book', response_model=BookSessionResponse)
def book_child_session(
    data: ParentBookSessionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provisioner=Depends(get_meeting_provisioner),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    require_role(current_user, PARENT_GUARDIAN)
    ensure_database_ready()

    actor = Actor.from_user(current_user)
    try:
        child, therapist = resolve_parent_booking(db, actor, data.child_id)
        therapy_session = book_session(
            db, actor, child, therapist, data.to_booking_request(),
            provisioner=provisioner,
            dispatcher=dispatcher,
        )
        return to_booking_response(therapy_session)
    except SchedulingError as exc:
        raise_for_scheduling_error(exc)
    except SQLAlchemyError as exc:
        logger.exception('Session booking failed on a database error')
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc
