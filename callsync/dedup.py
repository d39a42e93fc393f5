"""Call deduplication index over the durable message log."""

from __future__ import annotations

from typing import Any, Dict, Optional, Set

from callsync.datastore import CONNECTOR, first_record, formula_and, formula_equals, list_records
from callsync.models import load_json
from callsync.runtime import get_logger
from callsync.schema import MESSAGES_TABLE, MessageChannel

logger = get_logger(__name__)

MSG = MESSAGES_TABLE.field_names()


def call_id_from_message(record: Dict[str, Any]) -> Optional[str]:
    """Provider call id of a logged call: the ``Call ID`` column, else the raw payload."""
    fields = record.get("fields", {}) or {}
    call_id = fields.get(MSG["CALL_ID"])
    if call_id:
        return str(call_id)
    payload = load_json(fields.get(MSG["RAW_PAYLOAD"]), {})
    if isinstance(payload, dict) and payload.get("call_id"):
        return str(payload["call_id"])
    return None


def build_dedup_index(business_id: Optional[str] = None) -> Set[str]:
    """
    Collect every provider call id already represented in the message log.

    Scoped to one business when ``business_id`` is given, otherwise the whole
    organization. Read failures propagate: an incomplete index would re-sync
    calls that were already ingested.
    """
    parts = [formula_equals(MSG["CHANNEL"], MessageChannel.CALL.value)]
    if business_id:
        parts.append(formula_equals(MSG["BUSINESS_ID"], business_id))

    index: Set[str] = set()
    for record in list_records(CONNECTOR.messages(), formula=formula_and(*parts)):
        call_id = call_id_from_message(record)
        if call_id:
            index.add(call_id)
    logger.info("Dedup index built: %s synced call ids (scope=%s)", len(index), business_id or "organization")
    return index


def is_call_synced(call_id: str) -> bool:
    """Point lookup on the ``Call ID`` column."""
    if not call_id:
        return False
    return first_record(CONNECTOR.messages(), formula_equals(MSG["CALL_ID"], call_id)) is not None
