# callsync/transcripts.py
"""
Transcript Backfill
-------------------
Customers synced before the provider finished transcribing keep a
``Last Call ID`` with an empty ``Call Transcript``. This job re-fetches those
transcripts and stores them on the customer row.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from callsync.customers import list_customers, save_call_transcript
from callsync.datastore import DatastoreError
from callsync.run_log import log_run
from callsync.runtime import get_logger
from callsync.teli_client import TeliError, fetch_call_transcript

logger = get_logger(__name__)


def save_transcript(customer_id: str, transcript: str) -> Dict[str, Any]:
    if not transcript:
        raise ValueError("transcript is empty")
    return save_call_transcript(customer_id, transcript)


def backfill_transcripts(business_id: Optional[str] = None) -> Dict[str, Any]:
    """Fill in missing transcripts; returns ``{success, checked, updated, errors}``."""
    try:
        customers = list_customers(business_id)
    except DatastoreError as exc:
        logger.error("Transcript backfill aborted: %s", exc)
        return {"success": False, "checked": 0, "updated": 0, "errors": [str(exc)]}

    checked = updated = 0
    errors = []
    for customer in customers:
        if not customer.last_call_id or customer.call_transcript:
            continue
        checked += 1
        try:
            transcript = fetch_call_transcript(customer.last_call_id)
        except TeliError as exc:
            errors.append(f"Call {customer.last_call_id}: {exc}")
            continue
        if not transcript:
            continue
        try:
            save_transcript(customer.id, transcript)
        except DatastoreError as exc:
            errors.append(f"Customer {customer.id}: {exc}")
            continue
        updated += 1

    logger.info("📝 Transcript backfill: checked=%s updated=%s errors=%s", checked, updated, len(errors))
    result = {"success": True, "checked": checked, "updated": updated, "errors": errors}
    log_run("TRANSCRIPT_BACKFILL", processed=updated, breakdown=result, status="OK" if not errors else "PARTIAL")
    return result
