"""
Central CRM table schema definitions.

Canonical table and column names for the Businesses, Customers, Messages,
Appointments and Logs tables live here so sync logic never hard-codes
strings. Environment variables can override individual names to line up
with a customised base.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple


def _env_override(names: Tuple[str, ...], fallback: str) -> str:
    """First non-blank value among ``names``, else ``fallback``."""
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return fallback


@dataclass(frozen=True)
class FieldDefinition:
    """A column: canonical name plus env vars (in priority order) that may rename it."""

    default: str
    env_vars: Tuple[str, ...] = ()

    def resolve(self) -> str:
        return _env_override(self.env_vars, self.default)


@dataclass(frozen=True)
class TableDefinition:
    default: str
    env_vars: Tuple[str, ...] = ()
    fields: Dict[str, FieldDefinition] = field(default_factory=dict)

    def name(self) -> str:
        return _env_override(self.env_vars, self.default)

    def field_names(self) -> Dict[str, str]:
        """Logical key → active column name, resolved at call time."""
        return {key: column.resolve() for key, column in self.fields.items()}


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageChannel(str, Enum):
    CALL = "call"
    SMS = "sms"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REMINDER_SENT = "reminder-sent"


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

BUSINESSES_TABLE = TableDefinition(
    default="Businesses",
    env_vars=("BUSINESSES_TABLE",),
    fields={
        "NAME": FieldDefinition("Name", ("BUSINESS_NAME_FIELD",)),
        "SLUG": FieldDefinition("Business Name", ("BUSINESS_SLUG_FIELD",)),
        "AGENT_ID": FieldDefinition("Teli Agent ID", ("BUSINESS_AGENT_ID_FIELD",)),
        "PHONE": FieldDefinition("Teli Phone Number", ("BUSINESS_PHONE_FIELD",)),
        "SERVICES": FieldDefinition("Services"),
        "TIMEZONE": FieldDefinition("Timezone"),
        "WORK_HOURS": FieldDefinition("Work Hours"),
    },
)

CUSTOMERS_TABLE = TableDefinition(
    default="Customers",
    env_vars=("CUSTOMERS_TABLE",),
    fields={
        "BUSINESS_ID": FieldDefinition("Business ID"),
        "FIRST_NAME": FieldDefinition("First Name"),
        "LAST_NAME": FieldDefinition("Last Name"),
        "PHONE": FieldDefinition("Phone", ("CUSTOMER_PHONE_FIELD",)),
        "EMAIL": FieldDefinition("Email"),
        "CUSTOM_FIELDS": FieldDefinition("Custom Fields"),
        "APPOINTMENT_TIME": FieldDefinition("Appointment Time"),
        "DAY": FieldDefinition("Day"),
        "MONTH": FieldDefinition("Month"),
        "LAST_APPOINTMENT": FieldDefinition("Last Appointment"),
        "LAST_CALL_ID": FieldDefinition("Last Call ID"),
        "CALL_TRANSCRIPT": FieldDefinition("Call Transcript"),
        "CREATED_AT": FieldDefinition("Created At"),
    },
)

MESSAGES_TABLE = TableDefinition(
    default="Messages",
    env_vars=("MESSAGES_TABLE",),
    fields={
        "BUSINESS_ID": FieldDefinition("Business ID"),
        "CUSTOMER_ID": FieldDefinition("Customer ID"),
        "DIRECTION": FieldDefinition("Direction"),
        "CHANNEL": FieldDefinition("Channel"),
        "CONTENT": FieldDefinition("Content"),
        "RAW_PAYLOAD": FieldDefinition("Raw Payload", ("MESSAGE_PAYLOAD_FIELD",)),
        "CALL_ID": FieldDefinition("Call ID", ("MESSAGE_CALL_ID_FIELD",)),
        "CREATED_AT": FieldDefinition("Created At"),
    },
)

APPOINTMENTS_TABLE = TableDefinition(
    default="Appointments",
    env_vars=("APPOINTMENTS_TABLE",),
    fields={
        "BUSINESS_ID": FieldDefinition("Business ID"),
        "CUSTOMER_ID": FieldDefinition("Customer ID"),
        "START_TIME": FieldDefinition("Start Time"),
        "END_TIME": FieldDefinition("End Time"),
        "SERVICE": FieldDefinition("Service"),
        "STATUS": FieldDefinition("Status"),
        "ASSIGNEE": FieldDefinition("Assignee"),
    },
)

LOGS_TABLE = TableDefinition(
    default="Logs",
    env_vars=("LOGS_TABLE",),
    fields={
        "TYPE": FieldDefinition("Type"),
        "PROCESSED": FieldDefinition("Processed"),
        "BREAKDOWN": FieldDefinition("Breakdown"),
        "STATUS": FieldDefinition("Status"),
        "TIMESTAMP": FieldDefinition("Timestamp"),
    },
)
