# callsync/routes/calls.py
"""
Calls Router
------------
  GET  /calls             recent customers (or customers created since a timestamp)
  POST /calls             push one call through the sync pipeline
  GET  /calls/transcript  fetch a call transcript, optionally saving it on a customer
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from callsync.call_sync import sync_call
from callsync.customers import customers_since, get_customer, recent_customers
from callsync.datastore import DatastoreError
from callsync.dedup import is_call_synced
from callsync.models import TeliCall
from callsync.runtime import get_logger
from callsync.teli_client import TeliError, fetch_call_transcript
from callsync.transcripts import save_transcript

log = get_logger("calls_routes")

router = APIRouter(prefix="/calls", tags=["Calls"])

PREVIEW_CHARS = 200


class ProcessCallRequest(BaseModel):
    business_id: Optional[str] = None
    call_data: Optional[Dict[str, Any]] = Field(default=None)


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


@router.get("")
def list_calls(
    business_id: Optional[str] = Query(default=None),
    since: Optional[str] = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
):
    if not business_id:
        return _error(400, "business_id is required")
    try:
        if since:
            customers = customers_since(business_id, since)
            return {"success": True, "customers": [c.to_dict(is_new=True) for c in customers]}
        customers = recent_customers(business_id, limit)
        return {"success": True, "customers": [c.to_dict() for c in customers]}
    except ValueError as exc:
        return _error(400, str(exc))
    except DatastoreError as exc:
        log.error(f"Error in GET /calls: {exc}")
        return _error(500, "Internal server error")


@router.post("")
def process_call(body: ProcessCallRequest):
    if not body.business_id:
        return _error(400, "business_id is required")
    call_data = body.call_data or {}
    if not (call_data.get("phone") or call_data.get("from_number")):
        return _error(400, "call_data with phone is required")
    if not call_data.get("call_id"):
        return _error(400, "call_data with call_id is required")

    call = TeliCall.from_api(call_data)
    try:
        if is_call_synced(call.call_id):
            return {"success": True, "skipped": True, "call_id": call.call_id, "message": "Call already synced"}
    except DatastoreError as exc:
        log.error(f"Error in POST /calls: {exc}")
        return _error(500, "Internal server error")

    outcome = sync_call(body.business_id, call)
    if not outcome.success:
        return _error(500, outcome.error or "Unknown error", call_id=call.call_id)

    customer = get_customer(outcome.customer_id)
    return {
        "success": True,
        "customer": customer.to_dict(is_new=outcome.is_new) if customer else {"id": outcome.customer_id},
        "message": "New customer created from call" if outcome.is_new else "Existing customer updated from call",
    }


@router.get("/transcript")
def call_transcript(
    call_id: Optional[str] = Query(default=None),
    customer_id: Optional[str] = Query(default=None),
):
    if not call_id:
        return _error(400, "call_id query parameter is required")

    try:
        transcript = fetch_call_transcript(call_id)
    except TeliError as exc:
        log.error(f"Transcript fetch failed for {call_id}: {exc}")
        return _error(500, str(exc))

    if not transcript:
        return {"success": False, "error": "No transcript found for this call_id", "call_id": call_id}

    if customer_id:
        try:
            save_transcript(customer_id, transcript)
        except DatastoreError as exc:
            return {
                "success": False,
                "error": f"Failed to save transcript: {exc}",
                "transcript_preview": transcript[:PREVIEW_CHARS],
            }
        log.info(f"📝 Transcript for {call_id} saved to customer {customer_id}")
        return {
            "success": True,
            "message": "Transcript fetched and saved to customer",
            "customer_id": customer_id,
            "transcript_length": len(transcript),
            "transcript_preview": transcript[:PREVIEW_CHARS],
        }

    return {
        "success": True,
        "call_id": call_id,
        "transcript_length": len(transcript),
        "transcript": transcript,
    }
