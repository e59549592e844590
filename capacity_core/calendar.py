"""
Calendar arithmetic for capacity planning.

Working days are Monday to Friday. Public holidays are not modeled.
Every external date is normalized to a plain ``date`` before it is stored
or compared, so arithmetic is free of intra-day drift.
"""

from dataclasses import dataclass
from datetime import datetime, date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from .errors import InvalidDate, InvalidRange


DayLike = Union[date, datetime, str]

WORKDAYS_PER_WEEK = 5


@dataclass(frozen=True)
class DayRange:
    """Inclusive range of calendar days."""
    start: date
    end: date

    @property
    def working_days(self) -> int:
        return working_days(self.start, self.end)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def normalize_day(value: DayLike) -> date:
    """
    Clamp a date, datetime or ISO-8601 string to a calendar day.

    Aware datetimes are converted to local time first.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return normalize_day(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            raise InvalidDate(value) from None
    raise InvalidDate(value)


def optional_day(value: Optional[DayLike]) -> Optional[date]:
    if value is None or value == "":
        return None
    return normalize_day(value)


def normalize_range(start: DayLike, end: DayLike) -> DayRange:
    """Normalize both endpoints and reject inverted ranges."""
    start_day = normalize_day(start)
    end_day = normalize_day(end)
    if start_day > end_day:
        raise InvalidRange(start_day, end_day)
    return DayRange(start_day, end_day)


def is_working_day(day: date) -> bool:
    return day.weekday() < WORKDAYS_PER_WEEK  # Monday = 0, Friday = 4


def working_days(start: date, end: date) -> int:
    """Number of weekdays in ``[start, end]``; 0 when ``end < start``."""
    if end < start:
        return 0

    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * WORKDAYS_PER_WEEK

    current = start + timedelta(days=full_weeks * 7)
    for _ in range(remainder):
        if is_working_day(current):
            count += 1
        current += timedelta(days=1)
    return count


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Closed-interval overlap test."""
    return a_start <= b_end and b_start <= a_end


def overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> Optional[DayRange]:
    """Intersection of two inclusive ranges, or None when they are disjoint."""
    if not ranges_overlap(a_start, a_end, b_start, b_end):
        return None
    return DayRange(max(a_start, b_start), min(a_end, b_end))


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def week_window(anchor: date, index: int) -> DayRange:
    """
    Monday-to-Sunday window for forecast week ``index`` (1-based).

    Week 1 is the week containing ``anchor``.
    """
    start = week_start(anchor) + timedelta(weeks=index - 1)
    return DayRange(start, start + timedelta(days=6))


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero, matching how the dashboard displays hours."""
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)
