import logging
from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sparks.core import config
from sparks.core.errors import SlotConflictError
from sparks.core.slots import SlotCandidate
from sparks.core.timeparse import day_bounds
from sparks.models.availability import AvailabilitySlot

logger = logging.getLogger(__name__)


def find_open_slot(db: Session, therapist_id: int, slot_date: date, start_time: str) -> AvailabilitySlot | None:
    day_start, next_day = day_bounds(slot_date)
    return db.query(AvailabilitySlot).filter(
        AvailabilitySlot.therapist_id == therapist_id,
        AvailabilitySlot.date >= day_start,
        AvailabilitySlot.date < next_day,
        AvailabilitySlot.start_time == start_time,
        AvailabilitySlot.is_booked.is_(False),
    ).first()


def list_slots_in_range(db: Session, therapist_id: int, start_date: date, end_date: date) -> list[AvailabilitySlot]:
    return db.query(AvailabilitySlot).filter(
        AvailabilitySlot.therapist_id == therapist_id,
        AvailabilitySlot.date >= start_date,
        AvailabilitySlot.date <= end_date,
    ).all()


def list_slots_for_day(
    db: Session,
    therapist_id: int,
    slot_date: date,
    include_booked: bool = False,
) -> list[AvailabilitySlot]:
    day_start, next_day = day_bounds(slot_date)
    query = db.query(AvailabilitySlot).filter(
        AvailabilitySlot.therapist_id == therapist_id,
        AvailabilitySlot.date >= day_start,
        AvailabilitySlot.date < next_day,
    )
    if not include_booked:
        query = query.filter(AvailabilitySlot.is_booked.is_(False))
    return query.order_by(AvailabilitySlot.start_time.asc()).all()


def bulk_insert(db: Session, therapist_id: int, candidates: list[SlotCandidate], is_free: bool) -> int:
    """Insert every candidate or none of them.

    Callers run the conflict check first; the unique index still catches a
    concurrent insert that slipped in between.
    """
    slots = [
        AvailabilitySlot(
            therapist_id=therapist_id,
            date=candidate.date,
            start_time=candidate.start_time,
            is_booked=False,
            is_free=is_free,
        )
        for candidate in candidates
    ]

    try:
        db.add_all(slots)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Bulk insert for therapist %s hit the uniqueness constraint', therapist_id)
        raise SlotConflictError(
            conflicts=[],
            total=0,
            message='Availability changed while saving. Review your existing slots and resubmit.',
        ) from exc

    return len(slots)


def create_slot(db: Session, therapist_id: int, slot_date: date, start_time: str, is_free: bool) -> AvailabilitySlot:
    slot = AvailabilitySlot(
        therapist_id=therapist_id,
        date=slot_date,
        start_time=start_time,
        is_booked=False,
        is_free=is_free,
    )

    try:
        db.add(slot)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        label = SlotCandidate(slot_date, start_time).label()
        raise SlotConflictError(
            conflicts=[label],
            total=1,
            message='An availability slot already exists at this time.',
        ) from exc

    db.refresh(slot)
    return slot


def claim(db: Session, slot_id: int) -> bool:
    """Flip ``is_booked`` only if it is still false.

    Returns whether this call won the slot. Does not commit; the caller owns
    the surrounding transaction.
    """
    result = db.execute(
        update(AvailabilitySlot)
        .where(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.is_booked.is_(False),
        )
        .values(is_booked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def report_conflicts(conflicts: list[SlotCandidate]) -> SlotConflictError:
    return SlotConflictError(
        conflicts=[conflict.label() for conflict in conflicts[:config.MAX_REPORTED_CONFLICTS]],
        total=len(conflicts),
    )
