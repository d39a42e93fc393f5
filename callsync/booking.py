"""
Booking-Intent Handler
----------------------
Turns a caller's booking intent into a pending appointment:

    resolve start  → tomorrow 10:00 local when nothing usable was said
    service length → catalog match (case-insensitive) or the default
    conflicts      → step forward until the slot is free
    persist        → appointment row, customer's last-appointment marker,
                     outbound confirmation message
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from callsync.config import settings
from callsync.customers import append_message, set_last_appointment
from callsync.datastore import CONNECTOR, create_record, formula_equals, list_records
from callsync.models import Business, Customer
from callsync.runtime import get_logger, parse_iso, to_iso, utc_now
from callsync.schema import (
    APPOINTMENTS_TABLE,
    AppointmentStatus,
    MessageChannel,
    MessageDirection,
)
from callsync.timeparse import default_booking_time, resolve_preferred_time

logger = get_logger(__name__)

APPT = APPOINTMENTS_TABLE.field_names()

Interval = Tuple[datetime, datetime]


@dataclass
class BookingIntent:
    service: Optional[str] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None


@dataclass
class BookingResult:
    appointment: Dict[str, Any]
    start: datetime
    end: datetime
    service: str
    confirmation_message: str
    shifted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.appointment.get("id"),
            "start_time": to_iso(self.start),
            "end_time": to_iso(self.end),
            "service": self.service,
        }


def business_timezone(business: Business) -> ZoneInfo:
    for name in (business.timezone, settings().DEFAULT_TIMEZONE, "UTC"):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r for business %s", name, business.id)
    return ZoneInfo("UTC")


def service_duration(business: Business, service_name: Optional[str]) -> int:
    default = settings().DEFAULT_SERVICE_MINUTES
    if not service_name:
        return default
    wanted = service_name.strip().lower()
    for service in business.services:
        if service.name.strip().lower() == wanted:
            return service.duration or default
    return default


def overlaps(start: datetime, end: datetime, other: Interval) -> bool:
    """Half-open interval overlap: ``[start, end)`` against ``[other_start, other_end)``."""
    return other[0] < end and other[1] > start


def booked_intervals(business_id: str) -> List[Interval]:
    """Start/end of every non-cancelled appointment for the business."""
    rows = list_records(CONNECTOR.appointments(), formula=formula_equals(APPT["BUSINESS_ID"], business_id))
    intervals: List[Interval] = []
    for row in rows:
        f = row.get("fields", {}) or {}
        if f.get(APPT["STATUS"]) == AppointmentStatus.CANCELLED.value:
            continue
        start = parse_iso(f.get(APPT["START_TIME"]))
        end = parse_iso(f.get(APPT["END_TIME"]))
        if start is None or end is None:
            continue
        intervals.append((start, end))
    return intervals


def find_free_slot(start: datetime, duration: timedelta, booked: List[Interval]) -> Tuple[datetime, bool]:
    """Earliest conflict-free start at or after ``start``, stepping by the shift increment."""
    s = settings()
    step = timedelta(minutes=s.BOOKING_SHIFT_MINUTES)
    candidate = start
    for shift in range(s.BOOKING_MAX_SHIFTS + 1):
        candidate = start + step * shift
        if not any(overlaps(candidate, candidate + duration, slot) for slot in booked):
            return candidate, shift > 0
    logger.warning(
        "No free slot within %s shifts of %s; booking at %s anyway",
        s.BOOKING_MAX_SHIFTS,
        start.isoformat(),
        candidate.isoformat(),
    )
    return candidate, True


def confirmation_text(service: str, start: datetime) -> str:
    date_text = f"{start.month}/{start.day}/{start.year}"
    time_text = start.strftime("%I:%M %p").lstrip("0")
    return f"Great! I've booked your {service} for {date_text} at {time_text}. See you then!"


def handle_booking_intent(
    business: Business,
    customer: Customer,
    intent: BookingIntent,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Book the requested service for ``customer``.

    Persistence failures propagate so the webhook can answer with an error
    instead of dropping the intent.
    """
    tz = business_timezone(business)
    local_now = (now or utc_now()).astimezone(tz)

    start = resolve_preferred_time(intent.preferred_date, intent.preferred_time, local_now)
    if start is None:
        start = default_booking_time(local_now, settings().DEFAULT_BOOKING_HOUR)

    service = (intent.service or "").strip() or "Appointment"
    duration = timedelta(minutes=service_duration(business, intent.service))

    start, shifted = find_free_slot(start, duration, booked_intervals(business.id))
    end = start + duration
    if shifted:
        logger.info("Booking for customer %s shifted to %s to avoid a conflict", customer.id, start.isoformat())

    appointment = create_record(
        CONNECTOR.appointments(),
        {
            APPT["BUSINESS_ID"]: business.id,
            APPT["CUSTOMER_ID"]: customer.id,
            APPT["START_TIME"]: to_iso(start),
            APPT["END_TIME"]: to_iso(end),
            APPT["SERVICE"]: service,
            APPT["STATUS"]: AppointmentStatus.PENDING.value,
        },
    )
    set_last_appointment(customer.id, to_iso(start))

    message = confirmation_text(service, start)
    append_message(
        business_id=business.id,
        customer_id=customer.id,
        direction=MessageDirection.OUTBOUND,
        channel=MessageChannel.SMS,
        content=message,
    )
    logger.info("📅 Booked %s for customer %s at %s (%s)", service, customer.id, start.isoformat(), business.id)
    return BookingResult(
        appointment=appointment,
        start=start,
        end=end,
        service=service,
        confirmation_message=message,
        shifted=shifted,
    )
