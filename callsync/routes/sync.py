# callsync/routes/sync.py
"""
🔁 Sync Trigger Router
----------------------
Dashboard / CRON endpoints that pull ended calls from Teli into the CRM:
  - /teli/sync                  one business (its agent's calls)
  - /teli/sync-all              whole organization, routed by agent id
  - /teli/backfill-transcripts  fill transcripts that arrived late
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from callsync.agent_router import get_business
from callsync.auth import require_cron_token
from callsync.call_sync import pull_and_sync_calls
from callsync.config import settings
from callsync.org_sync import sync_all_organization_calls
from callsync.run_log import log_run
from callsync.runtime import get_logger
from callsync.transcripts import backfill_transcripts

log = get_logger("sync_routes")

router = APIRouter(prefix="/teli", tags=["Sync"])


class SyncRequest(BaseModel):
    business_id: Optional[str] = None
    agent_id: Optional[str] = None
    since: Optional[str] = None


class SyncAllRequest(BaseModel):
    since: Optional[str] = None


class BackfillRequest(BaseModel):
    business_id: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


# -------------------------------------------------------------------
# Per-business sync
# -------------------------------------------------------------------
@router.post("/sync", dependencies=[Depends(require_cron_token)])
def sync_business(body: Optional[SyncRequest] = None):
    body = body or SyncRequest()
    try:
        business_id = body.business_id or settings().DEFAULT_BUSINESS_ID
        business = get_business(business_id) if business_id else None
        if business is None:
            return _error(404, "No business found")

        agent_id = body.agent_id or business.agent_id
        if not agent_id:
            return _error(400, "No Teli agent ID configured for this business")

        result = pull_and_sync_calls(business.id, agent_id, body.since)
        status = "OK"
        if not result.success:
            status = "ERROR"
        elif result.errors:
            status = "PARTIAL"
        log_run(
            "BUSINESS_SYNC",
            processed=result.synced,
            breakdown={"business_id": business.id, **result.to_dict()},
            status=status,
        )
        return result.to_dict()
    except Exception as exc:
        log.error(f"❌ Sync error: {exc}")
        return _error(500, "Internal server error")


@router.get("/sync")
def sync_business_health():
    return {"status": "ok", "endpoint": "teli-sync"}


# -------------------------------------------------------------------
# Organization-wide sync
# -------------------------------------------------------------------
@router.post("/sync-all", dependencies=[Depends(require_cron_token)])
def sync_all(body: Optional[SyncAllRequest] = None):
    body = body or SyncAllRequest()
    log.info("🚀 Starting full organization sync...")
    try:
        return sync_all_organization_calls(since=body.since).to_dict()
    except Exception as exc:
        log.error(f"❌ Sync-all error: {exc}")
        return _error(500, str(exc) or "Internal server error")


@router.get("/sync-all")
def sync_all_health():
    return {
        "status": "ok",
        "endpoint": "teli-sync-all",
        "description": "POST to this endpoint to sync all organization calls",
    }


# -------------------------------------------------------------------
# Transcript backfill
# -------------------------------------------------------------------
@router.post("/backfill-transcripts", dependencies=[Depends(require_cron_token)])
def backfill(body: Optional[BackfillRequest] = None):
    body = body or BackfillRequest()
    try:
        return backfill_transcripts(body.business_id)
    except Exception as exc:
        log.error(f"❌ Transcript backfill error: {exc}")
        return _error(500, str(exc) or "Internal server error")
