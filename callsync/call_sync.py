"""
Single-Call Sync Pipeline
-------------------------
classify extracted fields → upsert customer → log the call (tagged with its
provider call id, which is what makes it visible to the dedup index).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from callsync.config import settings
from callsync.customers import upsert_customer
from callsync.datastore import DatastoreError
from callsync.dedup import build_dedup_index
from callsync.fields import split_extracted_fields
from callsync.models import TeliCall
from callsync.runtime import get_logger
from callsync.schema import MessageChannel
from callsync.teli_client import TeliError, fetch_calls

logger = get_logger(__name__)


@dataclass
class CallSyncOutcome:
    success: bool
    call_id: str
    customer_id: Optional[str] = None
    is_new: bool = False
    error: Optional[str] = None


@dataclass
class BusinessSyncResult:
    success: bool = True
    synced: int = 0
    new_customers: int = 0
    duplicates: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "synced": self.synced,
            "new_customers": self.new_customers,
            "duplicates": self.duplicates,
        }
        if self.errors:
            out["errors"] = list(self.errors)
        return out


def sync_call(
    business_id: str,
    call: TeliCall,
    attribution: Optional[Mapping[str, str]] = None,
) -> CallSyncOutcome:
    """Sync one provider call into the CRM; failures are returned, never raised."""
    if not call.call_id:
        return CallSyncOutcome(success=False, call_id="", error="malformed call record: missing call_id")
    if not call.from_number:
        return CallSyncOutcome(success=False, call_id=call.call_id, error="malformed call record: missing from_number")

    extracted = dict(call.extracted_fields)
    if attribution:
        extracted.update(attribution)
    split = split_extracted_fields(extracted, attribution_fields=(attribution or {}).keys())

    raw = dict(call.raw) or {"call_id": call.call_id, "from_number": call.from_number}
    try:
        result = upsert_customer(
            business_id,
            call.from_number,
            split.universal,
            split.custom,
            content=call.transcript,
            channel=MessageChannel.CALL,
            raw_payload=raw,
            call_id=call.call_id,
        )
    except (DatastoreError, ValueError) as exc:
        logger.warning("Call %s failed to sync for business %s: %s", call.call_id, business_id, exc)
        return CallSyncOutcome(success=False, call_id=call.call_id, error=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error syncing call %s for business %s", call.call_id, business_id)
        return CallSyncOutcome(success=False, call_id=call.call_id, error=f"{type(exc).__name__}: {exc}")

    return CallSyncOutcome(
        success=True,
        call_id=call.call_id,
        customer_id=result.customer.id,
        is_new=result.is_new,
    )


def pull_and_sync_calls(business_id: str, agent_id: str, since: Optional[str] = None) -> BusinessSyncResult:
    """Fetch one agent's ended calls and sync each that is not already logged."""
    result = BusinessSyncResult()

    try:
        calls = fetch_calls(agent_id, is_admin=False, since=since, limit=settings().TELI_SYNC_LIMIT)
    except TeliError as exc:
        logger.error("Per-business sync aborted for %s: %s", business_id, exc)
        return BusinessSyncResult(success=False, errors=[str(exc) or "Failed to fetch calls"])

    try:
        synced_ids = build_dedup_index(business_id)
    except DatastoreError as exc:
        return BusinessSyncResult(success=False, errors=[f"Failed to read message log: {exc}"])

    for call in calls:
        if call.call_id and call.call_id in synced_ids:
            result.duplicates += 1
            continue
        outcome = sync_call(business_id, call)
        if outcome.success:
            result.synced += 1
            synced_ids.add(outcome.call_id)
            if outcome.is_new:
                result.new_customers += 1
        else:
            result.errors.append(f"Call {outcome.call_id or '<unknown>'}: {outcome.error}")

    logger.info(
        "✅ Business %s sync: synced=%s new=%s duplicates=%s errors=%s",
        business_id,
        result.synced,
        result.new_customers,
        result.duplicates,
        len(result.errors),
    )
    return result
