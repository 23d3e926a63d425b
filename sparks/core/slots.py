"""Recurrence expansion and conflict detection for therapist availability.

Everything here is pure: no database, no clock. The same rule always expands
to the same slots.
"""

import calendar
import enum
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Iterator, NamedTuple

from sparks.core import config
from sparks.core.timeparse import clock_to_minutes, minutes_to_clock


class RecurrenceType(str, enum.Enum):
    NONE = 'None'
    DAILY = 'Daily'
    WEEKLY = 'Weekly'
    MONTHLY = 'Monthly'
    CUSTOM = 'Custom'


class SlotCandidate(NamedTuple):
    date: date
    start_time: str

    def label(self) -> str:
        return f'{self.date.isoformat()} at {self.start_time}'


@dataclass(frozen=True)
class RecurrenceRule:
    start_date: date
    end_date: date
    start_time: str
    end_time: str
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    # 0 = Sunday ... 6 = Saturday
    selected_days: frozenset[int] = field(default_factory=frozenset)


def sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def generate_time_slots(
    start_time: str,
    end_time: str,
    session_minutes: int = config.SESSION_DURATION_MINUTES,
    interval_minutes: int = config.SLOT_INTERVAL_MINUTES,
) -> list[str]:
    window_start = clock_to_minutes(start_time)
    window_end = clock_to_minutes(end_time)

    current = window_start
    if current % interval_minutes != 0:
        current += interval_minutes - (current % interval_minutes)

    time_slots: list[str] = []
    while current + session_minutes <= window_end:
        time_slots.append(minutes_to_clock(current))
        current += interval_minutes

    return time_slots


def _iter_days(start_date: date, end_date: date, step_days: int = 1) -> Iterator[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=step_days)


def _iter_monthly(start_date: date, end_date: date) -> Iterator[date]:
    day_of_month = start_date.day
    year, month = start_date.year, start_date.month

    while date(year, month, 1) <= end_date:
        # Months without this day (e.g. the 31st in April) are skipped.
        if day_of_month <= calendar.monthrange(year, month)[1]:
            candidate = date(year, month, day_of_month)
            if candidate > end_date:
                break
            yield candidate

        month += 1
        if month > 12:
            year, month = year + 1, 1


def iter_applicable_dates(
    start_date: date,
    end_date: date,
    recurrence_type: RecurrenceType,
    selected_days: Iterable[int] = (),
) -> Iterator[date]:
    recurrence_type = RecurrenceType(recurrence_type)

    if recurrence_type is RecurrenceType.NONE:
        yield start_date
    elif recurrence_type is RecurrenceType.DAILY:
        yield from _iter_days(start_date, end_date)
    elif recurrence_type is RecurrenceType.WEEKLY:
        yield from _iter_days(start_date, end_date, step_days=7)
    elif recurrence_type is RecurrenceType.MONTHLY:
        yield from _iter_monthly(start_date, end_date)
    elif recurrence_type is RecurrenceType.CUSTOM:
        weekdays = set(selected_days)
        for day in _iter_days(start_date, end_date):
            if sunday_based_weekday(day) in weekdays:
                yield day


def generate_slots(rule: RecurrenceRule) -> list[SlotCandidate]:
    """Expand a recurrence rule into ``(date, start_time)`` candidates.

    Returns an empty list when the time window fits no full session or the
    recurrence selects no dates.
    """
    time_slots = generate_time_slots(rule.start_time, rule.end_time)
    if not time_slots:
        return []

    applicable_dates = list(
        iter_applicable_dates(rule.start_date, rule.end_date, rule.recurrence_type, rule.selected_days)
    )

    return [
        SlotCandidate(date=slot_date, start_time=slot_time)
        for slot_date in applicable_dates
        for slot_time in time_slots
    ]


def find_conflicts(candidates: Iterable[SlotCandidate], existing: Iterable) -> list[SlotCandidate]:
    """Return the candidates whose date and start time match an existing slot.

    ``existing`` may hold candidates or persisted slots; anything exposing
    ``date`` and ``start_time`` works.
    """
    taken = {(_calendar_date(slot.date), slot.start_time) for slot in existing}
    return [candidate for candidate in candidates if (candidate.date, candidate.start_time) in taken]


def _calendar_date(value) -> date:
    # Persisted values may come back as datetimes depending on the driver.
    if hasattr(value, 'date') and callable(value.date):
        return value.date()
    return value
