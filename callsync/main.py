"""
CallSync CRM Service
- Teli voice-agent webhook (customer upsert + booking)
- Per-business and organization-wide call sync
- Calls / transcript endpoints for the dashboard
"""

from __future__ import annotations

import traceback
from typing import Any, Dict

from fastapi import FastAPI

from callsync.config import settings
from callsync.datastore import CONNECTOR, DatastoreError, list_records, using_airtable
from callsync.routes.calls import router as calls_router
from callsync.routes.sync import router as sync_router
from callsync.runtime import configure_logging, get_logger, iso_now
from callsync.webhook import router as webhook_router

VERSION = "1.0.0"

configure_logging()
logger = get_logger("main")

app = FastAPI(title="CallSync CRM", version=VERSION)
app.include_router(webhook_router)  # → /teli/webhook
app.include_router(sync_router)  # → /teli/sync, /teli/sync-all, /teli/backfill-transcripts
app.include_router(calls_router)  # → /calls


@app.get("/ping")
def ping():
    return {"ok": True, "pong": True, "time": iso_now()}


@app.get("/health")
def health():
    s = settings()
    return {
        "ok": True,
        "timestamp": iso_now(),
        "datastore": "airtable" if using_airtable() else "memory",
        "teli_configured": bool(s.TELI_API_KEY),
        "version": VERSION,
    }


def strict_health() -> Dict[str, Any]:
    """Confirm each CRM table answers a one-record read."""
    tables = {
        "businesses": CONNECTOR.businesses,
        "customers": CONNECTOR.customers,
        "messages": CONNECTOR.messages,
        "appointments": CONNECTOR.appointments,
    }
    errors = []
    for key, accessor in tables.items():
        handle = accessor()
        try:
            list_records(handle, max_records=1)
        except DatastoreError as err:
            errors.append(f"{key} ({handle.table_name}): {err}")
    return {"ok": not errors, "errors": errors, "timestamp": iso_now()}


@app.get("/health/strict")
def health_strict_endpoint():
    try:
        return strict_health()
    except Exception as e:
        logger.error(f"strict_health failed: {e}")
        traceback.print_exc()
        return {"ok": False, "error": str(e)}
