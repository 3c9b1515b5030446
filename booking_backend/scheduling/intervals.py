"""Time interval helpers for a fixed-offset timezone model.

Everything here is pure: callers pass the offset in, nothing reads the host
timezone database or process configuration.
"""

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import NamedTuple

_OFFSET_PATTERN = re.compile(r'^([+-])(\d{2}):?(\d{2})$')
END_OF_DAY = '24:00:00'


class TimeRange(NamedTuple):
    """Half-open interval ``[start, end)`` between two aware instants."""

    start: datetime
    end: datetime


def parse_utc_offset(value: str) -> tzinfo:
    normalized = (value or '').strip()
    if normalized.upper() == 'Z':
        return timezone.utc

    match = _OFFSET_PATTERN.match(normalized)
    if not match:
        raise ValueError(f'Invalid UTC offset: {value!r}. Expected a value like "+06:00".')

    sign, hours, minutes = match.groups()
    if int(hours) > 23 or int(minutes) > 59:
        raise ValueError(f'Invalid UTC offset: {value!r}.')

    delta = timedelta(hours=int(hours), minutes=int(minutes))
    return timezone(-delta if sign == '-' else delta)


def normalize_time_of_day(raw: str | time | None) -> str | None:
    """Normalize ``HH:MM``, ``HH:MM:SS`` and ``HH:MM:SS.ffffff`` to ``HH:MM:SS``.

    Returns ``None`` for anything else, including empty values.
    """
    if raw is None:
        return None

    without_fraction = str(raw).strip().split('.')[0]
    if len(without_fraction) == 5:
        return f'{without_fraction}:00'
    if len(without_fraction) == 8:
        return without_fraction
    return None


def local_to_instant(day: date, raw_time: str | time | None, tz: tzinfo) -> datetime | None:
    hhmmss = normalize_time_of_day(raw_time)
    if hhmmss is None:
        return None
    if hhmmss == END_OF_DAY:
        # Midnight at the end of the day, as in an 18:00-24:00 window.
        return datetime.combine(day + timedelta(days=1), time(0, 0, 0), tzinfo=tz)

    try:
        local_time = time.fromisoformat(hhmmss)
    except ValueError:
        return None

    return datetime.combine(day, local_time, tzinfo=tz)


def day_bounds(day: date, tz: tzinfo) -> TimeRange:
    return TimeRange(
        start=datetime.combine(day, time(0, 0, 0), tzinfo=tz),
        end=datetime.combine(day, time(23, 59, 59), tzinfo=tz),
    )


def weekday_for(day: date, tz: tzinfo) -> int:
    # 0 = Sunday ... 6 = Saturday, matching the availability table.
    local_midnight = day_bounds(day, tz).start
    return local_midnight.isoweekday() % 7


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return not (end <= other_start or start >= other_end)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
