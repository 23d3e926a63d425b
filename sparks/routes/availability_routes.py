import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sparks.auth.dependencies import THERAPIST, get_current_user, get_db, require_role
from sparks.core import config
from sparks.core.errors import InvalidInputError, NotFoundError, SchedulingError
from sparks.core.slots import RecurrenceRule, RecurrenceType, find_conflicts, generate_slots
from sparks.core.timeparse import as_utc, format_time_slot, is_clock_time, normalize_clock, parse_calendar_date
from sparks.database import ensure_availability_schema, ensure_session_schema
from sparks.models.therapist import Therapist
from sparks.models.therapy_session import SessionStatus, TherapySession
from sparks.models.user import User
from sparks.services import availability_store

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

MAX_SUGGESTED_SLOTS = 5


class BulkAddAvailabilityRequest(BaseModel):
    start_date: date = Field(alias='startDate')
    end_date: date = Field(alias='endDate')
    start_time: str = Field(alias='startTime')
    end_time: str = Field(alias='endTime')
    recurrence_type: RecurrenceType = Field(alias='recurrenceType')
    selected_days: list[int] = Field(default_factory=list, alias='selectedDays')
    is_free: bool = Field(default=False, alias='isFree')

    class Config:
        populate_by_name = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        if not is_clock_time(value):
            raise ValueError('Invalid time format. Use HH:MM format.')
        return normalize_clock(value)

    @field_validator('selected_days')
    @classmethod
    def validate_selected_days(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError('selectedDays must contain weekday numbers 0 (Sunday) to 6 (Saturday).')
        return sorted(set(value))

    @model_validator(mode='after')
    def validate_range(self) -> 'BulkAddAvailabilityRequest':
        if self.start_date > self.end_date:
            raise ValueError('Start date must be before or equal to end date.')
        if self.recurrence_type is RecurrenceType.CUSTOM and not self.selected_days:
            raise ValueError('Custom recurrence requires selectedDays.')
        return self

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            start_date=self.start_date,
            end_date=self.end_date,
            start_time=self.start_time,
            end_time=self.end_time,
            recurrence_type=self.recurrence_type,
            selected_days=frozenset(self.selected_days),
        )


class CreateAvailabilitySlotRequest(BaseModel):
    date: date
    start_time: str = Field(alias='startTime')
    is_free: bool = Field(default=False, alias='isFree')

    class Config:
        populate_by_name = True

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        if not is_clock_time(value):
            raise ValueError('Invalid time format. Use HH:MM format.')
        return normalize_clock(value)


class CheckAvailabilityRequest(BaseModel):
    therapist_id: int = Field(alias='therapistId')
    date_time: datetime = Field(alias='dateTime')
    duration: int = Field(default=60, ge=1, le=24 * 60)

    class Config:
        populate_by_name = True


class DateRange(BaseModel):
    start: date
    end: date


class BulkAddAvailabilityResponse(BaseModel):
    message: str
    slots_created: int = Field(alias='slotsCreated')
    date_range: DateRange = Field(alias='dateRange')

    class Config:
        populate_by_name = True


class AvailabilitySlotResponse(BaseModel):
    id: int
    therapist_id: int = Field(alias='therapistId')
    date: date
    start_time: str = Field(alias='startTime')
    time_slot: str = Field(alias='timeSlot')
    is_booked: bool = Field(alias='isBooked')
    is_free: bool = Field(alias='isFree')

    class Config:
        populate_by_name = True


class CheckAvailabilityResponse(BaseModel):
    available: bool
    message: str
    suggested_slots: list[str] = Field(default_factory=list, alias='suggestedSlots')

    class Config:
        populate_by_name = True


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_session_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def raise_for_scheduling_error(exc: SchedulingError) -> None:
    raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


def get_therapist_profile(db: Session, user: User) -> Therapist:
    therapist = db.query(Therapist).filter(Therapist.user_id == user.id).first()
    if therapist is None:
        raise NotFoundError('Therapist profile not found.')
    return therapist


def to_slot_response(slot) -> AvailabilitySlotResponse:
    return AvailabilitySlotResponse(
        id=slot.id,
        therapist_id=slot.therapist_id,
        date=slot.date,
        start_time=slot.start_time,
        time_slot=format_time_slot(slot.start_time, config.SESSION_DURATION_MINUTES),
        is_booked=slot.is_booked,
        is_free=slot.is_free,
    )


@router.post('/bulk-add', response_model=BulkAddAvailabilityResponse, status_code=status.HTTP_201_CREATED)
def bulk_add_availability(
    data: BulkAddAvailabilityRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, THERAPIST)
    ensure_database_ready()

    try:
        therapist = get_therapist_profile(db, current_user)

        candidates = generate_slots(data.to_rule())
        if not candidates:
            raise InvalidInputError('No slots generated. Check your date range and recurrence settings.')

        existing_slots = availability_store.list_slots_in_range(db, therapist.id, data.start_date, data.end_date)
        conflicts = find_conflicts(candidates, existing_slots)
        if conflicts:
            logger.info('Bulk add for therapist %s rejected with %d conflict(s)', therapist.id, len(conflicts))
            raise availability_store.report_conflicts(conflicts)

        slots_created = availability_store.bulk_insert(db, therapist.id, candidates, data.is_free)
        logger.info(
            'Therapist %s added %d slot(s) between %s and %s',
            therapist.id, slots_created, data.start_date, data.end_date,
        )

        return BulkAddAvailabilityResponse(
            message='Availability slots created successfully',
            slots_created=slots_created,
            date_range=DateRange(start=data.start_date, end=data.end_date),
        )
    except SchedulingError as exc:
        raise_for_scheduling_error(exc)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.post('/slots', response_model=AvailabilitySlotResponse, status_code=status.HTTP_201_CREATED)
def create_availability_slot(
    data: CreateAvailabilitySlotRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_role(current_user, THERAPIST)
    ensure_database_ready()

    try:
        therapist = get_therapist_profile(db, current_user)
        slot = availability_store.create_slot(db, therapist.id, data.date, data.start_time, data.is_free)
        return to_slot_response(slot)
    except SchedulingError as exc:
        raise_for_scheduling_error(exc)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.get('/therapists/{therapist_id}/slots', response_model=list[AvailabilitySlotResponse])
def list_open_slots(
    therapist_id: int,
    slot_date: str = Query(..., alias='date'),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    del current_user
    ensure_database_ready()

    try:
        day = parse_calendar_date(slot_date)
        if db.get(Therapist, therapist_id) is None:
            raise NotFoundError('Therapist not found.')

        return [to_slot_response(slot) for slot in availability_store.list_slots_for_day(db, therapist_id, day)]
    except SchedulingError as exc:
        raise_for_scheduling_error(exc)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.post('/check', response_model=CheckAvailabilityResponse)
def check_availability(
    data: CheckAvailabilityRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    del current_user
    ensure_database_ready()

    try:
        if db.get(Therapist, data.therapist_id) is None:
            raise NotFoundError('Therapist not found.')

        requested_start = as_utc(data.date_time) if data.date_time.tzinfo else data.date_time
        requested_time = f'{requested_start.hour:02d}:{requested_start.minute:02d}'
        day_slots = availability_store.list_slots_for_day(
            db, data.therapist_id, requested_start.date(), include_booked=True,
        )

        if not day_slots:
            return CheckAvailabilityResponse(
                available=False,
                message='Therapist has not set their availability for this day',
            )

        suggested_slots = [slot.start_time for slot in day_slots if not slot.is_booked][:MAX_SUGGESTED_SLOTS]
        matching_slot = next(
            (slot for slot in day_slots if slot.start_time == requested_time and not slot.is_booked),
            None,
        )
        if matching_slot is None:
            taken = any(slot.start_time == requested_time for slot in day_slots)
            return CheckAvailabilityResponse(
                available=False,
                message='The slot at this time is already booked' if taken else 'No slot exists at this time',
                suggested_slots=suggested_slots,
            )

        if has_conflicting_session(db, data.therapist_id, requested_start, data.duration):
            return CheckAvailabilityResponse(
                available=False,
                message='Therapist has a conflicting appointment at this time',
                suggested_slots=suggested_slots,
            )

        return CheckAvailabilityResponse(available=True, message='Therapist is available at this time')
    except SchedulingError as exc:
        raise_for_scheduling_error(exc)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def has_conflicting_session(db: Session, therapist_id: int, requested_start: datetime, duration: int) -> bool:
    buffer = timedelta(minutes=config.AVAILABILITY_CHECK_BUFFER_MINUTES)
    window_start = requested_start - buffer
    window_end = requested_start + timedelta(minutes=duration) + buffer

    conflicting = db.query(TherapySession.id).filter(
        TherapySession.therapist_id == therapist_id,
        TherapySession.scheduled_at >= window_start,
        TherapySession.scheduled_at <= window_end,
        TherapySession.status.in_([SessionStatus.SCHEDULED, SessionStatus.APPROVED]),
    ).first()
    return conflicting is not None
