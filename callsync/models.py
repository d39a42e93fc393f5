"""Typed views over CRM rows and Teli call payloads."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from callsync.schema import BUSINESSES_TABLE, CUSTOMERS_TABLE


def load_json(value: Any, default: Any) -> Any:
    """Decode a JSON text column; structured values pass through unchanged."""
    if value in (None, ""):
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def _json_object(value: Any) -> Dict[str, Any]:
    decoded = load_json(value, {})
    return decoded if isinstance(decoded, dict) else {}


@dataclass
class Service:
    name: str
    duration: int
    price: Optional[float] = None


@dataclass
class Business:
    id: str
    name: str
    business_name: Optional[str] = None
    agent_id: Optional[str] = None
    phone: Optional[str] = None
    services: List[Service] = field(default_factory=list)
    timezone: Optional[str] = None
    work_hours: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Business":
        f = record.get("fields", {}) or {}
        names = BUSINESSES_TABLE.field_names()
        services = []
        for item in load_json(f.get(names["SERVICES"]), []):
            if not isinstance(item, dict) or not item.get("name"):
                continue
            try:
                duration = int(item.get("duration") or 0)
            except (TypeError, ValueError):
                duration = 0
            services.append(Service(name=str(item["name"]), duration=duration, price=item.get("price")))
        return cls(
            id=record["id"],
            name=f.get(names["NAME"]) or "",
            business_name=f.get(names["SLUG"]),
            agent_id=f.get(names["AGENT_ID"]) or None,
            phone=f.get(names["PHONE"]),
            services=services,
            timezone=f.get(names["TIMEZONE"]),
            work_hours=load_json(f.get(names["WORK_HOURS"]), {}),
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "business_name": self.business_name,
            "phone": self.phone,
        }


@dataclass
class Customer:
    id: str
    business_id: str
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    custom_fields: Dict[str, str] = field(default_factory=dict)
    appointment_time: Optional[str] = None
    day: Optional[str] = None
    month: Optional[str] = None
    last_appointment: Optional[str] = None
    last_call_id: Optional[str] = None
    call_transcript: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Customer":
        f = record.get("fields", {}) or {}
        names = CUSTOMERS_TABLE.field_names()
        return cls(
            id=record["id"],
            business_id=f.get(names["BUSINESS_ID"]) or "",
            first_name=f.get(names["FIRST_NAME"]) or "",
            last_name=f.get(names["LAST_NAME"]) or "",
            phone=f.get(names["PHONE"]) or "",
            email=f.get(names["EMAIL"]) or None,
            custom_fields=_json_object(f.get(names["CUSTOM_FIELDS"])),
            appointment_time=f.get(names["APPOINTMENT_TIME"]),
            day=f.get(names["DAY"]),
            month=f.get(names["MONTH"]),
            last_appointment=f.get(names["LAST_APPOINTMENT"]),
            last_call_id=f.get(names["LAST_CALL_ID"]),
            call_transcript=f.get(names["CALL_TRANSCRIPT"]),
            created_at=f.get(names["CREATED_AT"]),
        )

    def to_dict(self, *, is_new: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "email": self.email,
            "custom_fields": dict(self.custom_fields),
            "created_at": self.created_at,
            "is_new": is_new,
        }


@dataclass
class TeliCall:
    """One ended call as returned by the Teli voice API."""

    call_id: str
    from_number: str
    agent_id: Optional[str] = None
    call_status: Optional[str] = None
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    extracted_fields: Dict[str, str] = field(default_factory=dict)
    start_timestamp: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TeliCall":
        extracted = data.get("extracted_fields") or {}
        if not isinstance(extracted, dict):
            extracted = {}
        transcript = data.get("transcript")
        return cls(
            call_id=str(data.get("call_id") or ""),
            from_number=str(data.get("from_number") or data.get("phone") or ""),
            agent_id=data.get("voice_agent_id") or data.get("agent_id"),
            call_status=data.get("call_status") or data.get("status"),
            transcript=transcript if isinstance(transcript, str) and transcript else None,
            recording_url=data.get("recording_url"),
            extracted_fields={str(k): ("" if v is None else str(v)) for k, v in extracted.items()},
            start_timestamp=data.get("start_timestamp") or data.get("timestamp"),
            raw=dict(data),
        )
