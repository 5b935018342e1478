"""Recurrence math for maintenance frequencies."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import TypeVar

from dateutil.relativedelta import relativedelta

# purpose: map maintenance frequencies onto calendar steps with month-end clamping
# status: active
# depends_on: dateutil.relativedelta

logger = logging.getLogger(__name__)

_D = TypeVar("_D", date, datetime)

_STEPS: dict[str, timedelta | relativedelta] = {
    "Daily": timedelta(days=1),
    "Weekly": timedelta(days=7),
    "Monthly": relativedelta(months=1),
    "3 Months": relativedelta(months=3),
    "6 Months": relativedelta(months=6),
    "1 Year": relativedelta(years=1),
}

_ALIASES = {
    "Quarterly": "3 Months",
    "Semi-Annual": "6 Months",
    "Annual": "1 Year",
}

_OCCURRENCES_PER_YEAR = {
    "Daily": 365,
    "Weekly": 52,
    "Monthly": 12,
    "3 Months": 4,
    "6 Months": 2,
    "1 Year": 1,
}

FALLBACK_FREQUENCY = "Monthly"
WINDOW = relativedelta(years=1)


def normalize_frequency(frequency: str | None) -> str | None:
    """Return the canonical frequency name, or None when it is not recognised."""

    if frequency in _STEPS:
        return frequency
    return _ALIASES.get(frequency or "")


def _resolve(frequency: str | None) -> str:
    canonical = normalize_frequency(frequency)
    if canonical is None:
        logger.warning("Unrecognised frequency %r, falling back to %s", frequency, FALLBACK_FREQUENCY)
        return FALLBACK_FREQUENCY
    return canonical


def next_schedule_date(current: _D, frequency: str | None) -> _D:
    """Advance ``current`` by one period of ``frequency``.

    Month and year steps clamp to the last valid day of the target month
    (Jan 31 + 1 month is the last day of February). Time of day and tzinfo
    are carried over unchanged.
    """

    return current + _STEPS[_resolve(frequency)]


def occurrences_per_year(frequency: str | None) -> int:
    return _OCCURRENCES_PER_YEAR[_resolve(frequency)]


def window_end(anchor: _D) -> _D:
    return anchor + WINDOW


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC (SQLite drops tzinfo on read)."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_day(value: datetime | date) -> date:
    """Calendar day of a due date, used as the occurrence identity key."""

    if isinstance(value, datetime):
        return as_utc(value).date()
    return value


def offset_minutes(value: datetime) -> int:
    """UTC offset of ``value`` in minutes; naive datetimes count as UTC."""

    offset = value.utcoffset()
    if offset is None:
        return 0
    return int(offset.total_seconds() // 60)


def in_offset(value: datetime, minutes: int | None) -> datetime:
    """Express ``value`` as wall-clock time at a fixed UTC offset."""

    return as_utc(value).astimezone(timezone(timedelta(minutes=minutes or 0)))


def calendar_day(value: datetime) -> date:
    """Calendar day of ``value`` in its own offset, with no conversion."""

    return value.date()
