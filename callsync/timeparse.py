# callsync/timeparse.py
"""
Appointment-Time Resolver
-------------------------
Turns informal phrases like "tomorrow", "friday" or "3:30pm" into a concrete
datetime. Unrecognised phrases never raise: the date or time-of-day simply
stays as it was on the reference instant.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Optional

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TIME_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?", re.IGNORECASE)


def next_weekday(reference: datetime, weekday: int) -> datetime:
    """Next ``weekday`` (Monday=0) strictly after ``reference``; same weekday rolls a full week."""
    days_until = weekday - reference.weekday()
    if days_until <= 0:
        days_until += 7
    return reference + timedelta(days=days_until)


def _resolve_date(phrase: str, reference: datetime) -> datetime:
    lower = phrase.lower()
    if "today" in lower:
        return reference
    if "tomorrow" in lower:
        return reference + timedelta(days=1)
    for index, name in enumerate(WEEKDAYS):
        if name in lower:
            return next_weekday(reference, index)
    return reference


def _resolve_time(phrase: str, target: datetime) -> datetime:
    match = _TIME_RE.search(phrase)
    if not match:
        return target
    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    meridiem = (match.group(3) or "").lower()

    if meridiem == "pm" and hours < 12:
        hours += 12
    if meridiem == "am" and hours == 12:
        hours = 0

    try:
        return target.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    except ValueError:
        # out-of-range hour/minute: time of day stays unchanged
        return target


def resolve_preferred_time(
    date_phrase: Optional[str],
    time_phrase: Optional[str],
    now: datetime,
) -> Optional[datetime]:
    """
    Resolve a preferred date/time phrase pair against ``now``.

    Returns ``None`` when neither phrase is supplied so the caller can apply
    its own default (distinct from a resolved midnight).
    """
    if not date_phrase and not time_phrase:
        return None

    target = now
    if date_phrase:
        target = _resolve_date(date_phrase, target)
    if time_phrase:
        target = _resolve_time(time_phrase, target)
    return target


def default_booking_time(now: datetime, hour: int = 10) -> datetime:
    """Tomorrow at ``hour``:00 in ``now``'s timezone."""
    return (now + timedelta(days=1)).replace(hour=hour, minute=0, second=0, microsecond=0)


__all__ = ["WEEKDAYS", "default_booking_time", "next_weekday", "resolve_preferred_time"]
