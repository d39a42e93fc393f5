"""
Customer Upsert Engine
----------------------
Find-or-create a customer by (business, phone), merge extracted fields
non-destructively, and append the interaction to the message log.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from callsync.datastore import (
    CONNECTOR,
    create_record,
    first_record,
    formula_and,
    formula_equals,
    get_record,
    list_records,
    update_record,
)
from callsync.models import Customer, dump_json
from callsync.runtime import get_logger, iso_now, normalize_phone, parse_iso
from callsync.schema import (
    CUSTOMERS_TABLE,
    MESSAGES_TABLE,
    MessageChannel,
    MessageDirection,
)

logger = get_logger(__name__)

CUST = CUSTOMERS_TABLE.field_names()
MSG = MESSAGES_TABLE.field_names()

DEFAULT_FIRST_NAME = "New"
DEFAULT_LAST_NAME = "Customer"

# Universal field → customer column for the "keep existing unless supplied" merge.
_UNIVERSAL_COLUMNS = {
    "first_name": CUST["FIRST_NAME"],
    "last_name": CUST["LAST_NAME"],
    "email": CUST["EMAIL"],
    "appointment_time": CUST["APPOINTMENT_TIME"],
    "day": CUST["DAY"],
    "month": CUST["MONTH"],
}


# -----------------------------
# Per-(business, phone) locks
# -----------------------------
class _KeyLock:
    """A lock plus the number of threads holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


_LOCKS: Dict[Tuple[str, str], _KeyLock] = {}
_LOCKS_GUARD = threading.Lock()


@contextmanager
def _customer_lock(business_id: str, phone: str) -> Iterator[None]:
    """Serialise upserts for one (business, phone); the entry is dropped once nobody uses it."""
    key = (business_id, phone)
    with _LOCKS_GUARD:
        entry = _LOCKS.get(key)
        if entry is None:
            entry = _LOCKS[key] = _KeyLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _LOCKS_GUARD:
            entry.users -= 1
            if entry.users == 0 and _LOCKS.get(key) is entry:
                del _LOCKS[key]


@dataclass
class CustomerUpsert:
    customer: Customer
    is_new: bool
    message: Dict[str, Any]


def _has_value(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def find_customer(business_id: str, phone: str) -> Optional[Dict[str, Any]]:
    return first_record(
        CONNECTOR.customers(),
        formula_and(formula_equals(CUST["BUSINESS_ID"], business_id), formula_equals(CUST["PHONE"], phone)),
    )


def get_customer(customer_id: str) -> Optional[Customer]:
    record = get_record(CONNECTOR.customers(), customer_id)
    return Customer.from_record(record) if record else None


def _new_customer_fields(
    business_id: str,
    phone: str,
    universal: Mapping[str, str],
    custom: Mapping[str, str],
    call_id: Optional[str],
) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        CUST["BUSINESS_ID"]: business_id,
        CUST["FIRST_NAME"]: universal.get("first_name") or DEFAULT_FIRST_NAME,
        CUST["LAST_NAME"]: universal.get("last_name") or DEFAULT_LAST_NAME,
        CUST["PHONE"]: phone,
        CUST["EMAIL"]: universal.get("email") or None,
        CUST["CUSTOM_FIELDS"]: dump_json(dict(custom)),
        CUST["APPOINTMENT_TIME"]: universal.get("appointment_time") or None,
        CUST["DAY"]: universal.get("day") or None,
        CUST["MONTH"]: universal.get("month") or None,
        CUST["LAST_CALL_ID"]: call_id,
        CUST["CREATED_AT"]: iso_now(),
    }
    return fields


def _merged_customer_fields(
    existing: Customer,
    universal: Mapping[str, str],
    custom: Mapping[str, str],
    call_id: Optional[str],
) -> Dict[str, Any]:
    patch: Dict[str, Any] = {}
    for key, column in _UNIVERSAL_COLUMNS.items():
        value = universal.get(key)
        if _has_value(value):
            patch[column] = value

    merged = dict(existing.custom_fields)
    merged.update(custom)
    patch[CUST["CUSTOM_FIELDS"]] = dump_json(merged)
    if call_id:
        patch[CUST["LAST_CALL_ID"]] = call_id
    return patch


def append_message(
    *,
    business_id: str,
    customer_id: str,
    direction: MessageDirection,
    channel: MessageChannel,
    content: str,
    raw_payload: Optional[Mapping[str, Any]] = None,
    call_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Append one immutable row to the interaction log."""
    fields = {
        MSG["BUSINESS_ID"]: business_id,
        MSG["CUSTOMER_ID"]: customer_id,
        MSG["DIRECTION"]: direction.value,
        MSG["CHANNEL"]: channel.value,
        MSG["CONTENT"]: content,
        MSG["RAW_PAYLOAD"]: dump_json(dict(raw_payload)) if raw_payload is not None else None,
        MSG["CALL_ID"]: call_id or None,
        MSG["CREATED_AT"]: iso_now(),
    }
    return create_record(CONNECTOR.messages(), fields)


def upsert_customer(
    business_id: str,
    phone: str,
    universal: Mapping[str, str],
    custom: Mapping[str, str],
    *,
    content: Optional[str] = None,
    channel: MessageChannel = MessageChannel.CALL,
    raw_payload: Optional[Mapping[str, Any]] = None,
    call_id: Optional[str] = None,
) -> CustomerUpsert:
    """
    Find-or-create the customer for ``(business_id, phone)`` and log the interaction.

    Names, email and the appointment descriptor are only replaced by non-empty
    new values; custom fields are shallow-merged with new keys winning. Exactly
    one inbound message row is appended, tagged with ``call_id`` when given.
    """
    normalized = normalize_phone(phone)
    if not normalized:
        raise ValueError(f"Invalid phone number: {phone!r}")

    handle = CONNECTOR.customers()
    with _customer_lock(business_id, normalized):
        existing = find_customer(business_id, normalized)
        if existing is None:
            record = create_record(handle, _new_customer_fields(business_id, normalized, universal, custom, call_id))
            is_new = True
            logger.info("👤 New customer %s for business %s (%s)", record["id"], business_id, normalized)
        else:
            current = Customer.from_record(existing)
            record = update_record(handle, current.id, _merged_customer_fields(current, universal, custom, call_id))
            is_new = False
            logger.debug("Updated customer %s for business %s", current.id, business_id)

    customer = Customer.from_record(record)
    if not content:
        noun = "Call" if channel == MessageChannel.CALL else "Message"
        content = f"{noun} from {normalized}"

    message = append_message(
        business_id=business_id,
        customer_id=customer.id,
        direction=MessageDirection.INBOUND,
        channel=channel,
        content=content,
        raw_payload=raw_payload,
        call_id=call_id,
    )
    return CustomerUpsert(customer=customer, is_new=is_new, message=message)


def set_last_appointment(customer_id: str, start_iso: str) -> Dict[str, Any]:
    return update_record(CONNECTOR.customers(), customer_id, {CUST["LAST_APPOINTMENT"]: start_iso})


def save_call_transcript(customer_id: str, transcript: str) -> Dict[str, Any]:
    return update_record(CONNECTOR.customers(), customer_id, {CUST["CALL_TRANSCRIPT"]: transcript})


def list_customers(business_id: Optional[str] = None) -> List[Customer]:
    handle = CONNECTOR.customers()
    if business_id:
        rows = list_records(handle, formula=formula_equals(CUST["BUSINESS_ID"], business_id))
    else:
        rows = list_records(handle)
    return [Customer.from_record(r) for r in rows]


def _created_key(customer: Customer):
    return parse_iso(customer.created_at) or parse_iso("1970-01-01T00:00:00Z")


def recent_customers(business_id: str, limit: int = 10) -> List[Customer]:
    """Newest customers first."""
    customers = sorted(list_customers(business_id), key=_created_key, reverse=True)
    return customers[: max(limit, 0)]


def customers_since(business_id: str, since: str) -> List[Customer]:
    """Customers created strictly after ``since`` (ISO8601), newest first."""
    cutoff = parse_iso(since)
    if cutoff is None:
        raise ValueError(f"Invalid 'since' timestamp: {since!r}")
    fresh = [c for c in list_customers(business_id) if (parse_iso(c.created_at) or cutoff) > cutoff]
    return sorted(fresh, key=_created_key, reverse=True)
