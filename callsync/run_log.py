# callsync/run_log.py
"""
Run Logger
----------
Lightweight utility to record sync runs (per-business, organization-wide,
transcript backfill) in the Logs table.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from callsync.datastore import CONNECTOR, DatastoreError, create_record
from callsync.models import dump_json
from callsync.runtime import get_logger, iso_now
from callsync.schema import LOGS_TABLE

logger = get_logger("run_logger")

LOG = LOGS_TABLE.field_names()


def log_run(
    run_type: str,
    processed: int = 0,
    breakdown: Optional[Dict[str, Any]] = None,
    status: str = "OK",
) -> Dict[str, Any]:
    """
    Log a sync run into the Logs table. Audit failures are reported, never raised.
    Example:
        log_run("ORG_SYNC", processed=42, breakdown=result.to_dict())
    """
    record = {
        LOG["TYPE"]: run_type,
        LOG["PROCESSED"]: processed,
        LOG["BREAKDOWN"]: dump_json(breakdown or {}),
        LOG["STATUS"]: status,
        LOG["TIMESTAMP"]: iso_now(),
    }
    try:
        create_record(CONNECTOR.logs(), record)
    except DatastoreError as e:
        logger.error(f"❌ log_run failed: {run_type}: {e}")
        return {"ok": False, "error": str(e)}
    logger.info(f"📝 Logged run: {run_type} | {status} | processed={processed}")
    return {"ok": True, "type": run_type, "status": status}
