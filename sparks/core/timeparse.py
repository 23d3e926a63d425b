import re
from datetime import date, datetime, time, timedelta, timezone

from sparks.core.errors import InvalidInputError

# Availability times accept an optional leading zero, e.g. "9:00" or "09:00".
CLOCK_TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):[0-5][0-9]$')
SLOT_START_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')
MINUTES_PER_DAY = 24 * 60


def is_clock_time(value: str) -> bool:
    return bool(CLOCK_TIME_PATTERN.match(value.strip()))


def clock_to_minutes(value: str) -> int:
    if not is_clock_time(value):
        raise InvalidInputError('Invalid time format. Use HH:MM format.')

    hours, minutes = value.strip().split(':')
    return int(hours) * 60 + int(minutes)


def minutes_to_clock(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes, 60)
    return f'{hours:02d}:{minutes:02d}'


def normalize_clock(value: str) -> str:
    return minutes_to_clock(clock_to_minutes(value))


def parse_time_slot_start(time_slot: str) -> str:
    """Return the zero-padded start of an ``"HH:MM-HH:MM"`` slot label.

    Only the start is meaningful; the end is whatever the client rendered.
    """
    if not time_slot or not time_slot.strip():
        raise InvalidInputError('Invalid date or time provided.')

    slot_start = time_slot.split('-', 1)[0].strip()
    match = SLOT_START_PATTERN.match(slot_start)
    if not match:
        raise InvalidInputError('Invalid date or time provided.')

    hours, minutes = int(match.group(1)), int(match.group(2))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise InvalidInputError('Invalid date or time provided.')

    return f'{hours:02d}:{minutes:02d}'


def parse_calendar_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not str(value).strip():
        raise InvalidInputError('Invalid date or time provided.')

    raw = str(value).strip()
    try:
        if 'T' in raw or ' ' in raw:
            return datetime.fromisoformat(raw.replace('Z', '+00:00')).date()
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidInputError('Invalid date or time provided.') from exc


def session_start_utc(session_date: date, start_time: str) -> datetime:
    """Combine the selected date and wall-clock time as a UTC instant.

    The numbers the user picked are stored verbatim; no server-local
    timezone conversion is applied.
    """
    hours, minutes = (int(part) for part in start_time.split(':'))
    return datetime.combine(session_date, time(hours, minutes), tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on read; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_time_slot(start_time: str, duration_minutes: int) -> str:
    start_minutes = clock_to_minutes(start_time)
    end_minutes = (start_minutes + duration_minutes) % MINUTES_PER_DAY
    return f'{minutes_to_clock(start_minutes)}-{minutes_to_clock(end_minutes)}'


def day_bounds(day: date) -> tuple[date, date]:
    return day, day + timedelta(days=1)
