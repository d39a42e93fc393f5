"""
Organization-Wide Sync Orchestrator
-----------------------------------
Fetch the org call feed once, build the agent router and dedup index once,
then walk the feed in order:

    duplicate?   → count, no side effects
    unroutable?  → count + error, keep going
    otherwise    → single-call pipeline, fold outcome into the aggregate
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from callsync.agent_router import build_agent_router
from callsync.call_sync import sync_call
from callsync.config import settings
from callsync.datastore import DatastoreError
from callsync.dedup import build_dedup_index
from callsync.run_log import log_run
from callsync.runtime import get_logger
from callsync.teli_client import TeliError, fetch_calls

logger = get_logger(__name__)


@dataclass
class BusinessBreakdown:
    name: str
    synced: int = 0
    new: int = 0


@dataclass
class OrgSyncResult:
    success: bool = True
    total_calls: int = 0
    synced_calls: int = 0
    new_customers: int = 0
    skipped_calls: int = 0
    duplicate_calls: int = 0
    calls_by_business: Dict[str, BusinessBreakdown] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalCalls": self.total_calls,
            "syncedCalls": self.synced_calls,
            "newCustomers": self.new_customers,
            "skippedCalls": self.skipped_calls,
            "duplicateCalls": self.duplicate_calls,
            "callsByBusiness": {
                business_id: {"name": b.name, "synced": b.synced, "new": b.new}
                for business_id, b in self.calls_by_business.items()
            },
            "errors": list(self.errors),
        }


def _failed(message: str) -> OrgSyncResult:
    return OrgSyncResult(success=False, errors=[message])


def sync_all_organization_calls(since: Optional[str] = None) -> OrgSyncResult:
    """Sync every ended call in the Teli organization to its owning business."""
    s = settings()
    if not s.TELI_ORGANIZATION_ID:
        return _failed("TELI_ORGANIZATION_ID is not configured")

    logger.info("🚀 Starting organization sync (since=%s)", since or "beginning")
    try:
        calls = fetch_calls(s.TELI_ORGANIZATION_ID, is_admin=True, since=since, limit=s.TELI_ORG_SYNC_LIMIT)
    except TeliError as exc:
        logger.error("Organization sync aborted, feed fetch failed: %s", exc)
        result = _failed(str(exc) or "Failed to fetch calls")
        log_run("ORG_SYNC", processed=0, breakdown=result.to_dict(), status="ERROR")
        return result

    try:
        router = build_agent_router()
        synced_ids = build_dedup_index()
    except DatastoreError as exc:
        logger.error("Organization sync aborted, index build failed: %s", exc)
        result = _failed(f"Failed to build sync indexes: {exc}")
        log_run("ORG_SYNC", processed=0, breakdown=result.to_dict(), status="ERROR")
        return result

    result = OrgSyncResult(total_calls=len(calls))
    for agent_id, business_ids in router.collisions.items():
        result.errors.append(f"Agent {agent_id} is assigned to multiple businesses ({', '.join(business_ids)})")

    for call in calls:
        if call.call_id and call.call_id in synced_ids:
            result.duplicate_calls += 1
            continue

        business = router.lookup(call.agent_id)
        if business is None:
            result.skipped_calls += 1
            result.errors.append(f"Call {call.call_id or '<unknown>'}: no business for agent {call.agent_id or '<none>'}")
            continue

        attribution = {"business_name": business.business_name} if business.business_name else None
        outcome = sync_call(business.id, call, attribution=attribution)
        if not outcome.success:
            result.errors.append(f"Call {outcome.call_id or '<unknown>'}: {outcome.error}")
            continue

        synced_ids.add(outcome.call_id)
        result.synced_calls += 1
        breakdown = result.calls_by_business.setdefault(business.id, BusinessBreakdown(name=business.name))
        breakdown.synced += 1
        if outcome.is_new:
            result.new_customers += 1
            breakdown.new += 1

    logger.info(
        "✅ Organization sync: total=%s synced=%s new=%s skipped=%s duplicates=%s errors=%s",
        result.total_calls,
        result.synced_calls,
        result.new_customers,
        result.skipped_calls,
        result.duplicate_calls,
        len(result.errors),
    )
    log_run(
        "ORG_SYNC",
        processed=result.synced_calls,
        breakdown=result.to_dict(),
        status="OK" if not result.errors else "PARTIAL",
    )
    return result
