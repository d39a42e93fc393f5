# callsync/webhook.py
"""
Teli Inbound Webhook
--------------------
Receives message / call / booking_intent events from the voice agent:
  - resolves the tenant (agent id → business id → configured default)
  - upserts the customer and logs the interaction
  - books an appointment when the intent is "book"
"""

from __future__ import annotations

import traceback
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from callsync.auth import require_webhook_token
from callsync.booking import BookingIntent, handle_booking_intent
from callsync.customers import upsert_customer
from callsync.fields import split_extracted_fields
from callsync.runtime import get_logger
from callsync.schema import MessageChannel
from callsync.tenants import BusinessNotFound, resolve_business

logger = get_logger("teli_webhook")

router = APIRouter(prefix="/teli", tags=["Teli"])


class WebhookIntent(BaseModel):
    type: str
    service: Optional[str] = None
    preferred_time: Optional[str] = None
    preferred_date: Optional[str] = None


class TeliWebhookPayload(BaseModel):
    event_type: str = "message"
    phone: str
    message: Optional[str] = None
    intent: Optional[WebhookIntent] = None
    agent_id: Optional[str] = None
    business_id: Optional[str] = None
    timestamp: Optional[str] = None
    extracted_fields: Dict[str, Any] = Field(default_factory=dict)


def handle_webhook(payload: TeliWebhookPayload) -> Dict[str, Any]:
    business = resolve_business(agent_id=payload.agent_id, business_id=payload.business_id)

    extracted = {k: ("" if v is None else str(v)) for k, v in payload.extracted_fields.items()}
    split = split_extracted_fields(extracted)
    channel = MessageChannel.CALL if payload.event_type == "call" else MessageChannel.SMS

    upsert = upsert_customer(
        business.id,
        payload.phone,
        split.universal,
        split.custom,
        content=payload.message,
        channel=channel,
        raw_payload=payload.model_dump(exclude_none=True),
    )
    customer = upsert.customer

    if payload.intent is not None and payload.intent.type == "book":
        booking = handle_booking_intent(
            business,
            customer,
            BookingIntent(
                service=payload.intent.service,
                preferred_date=payload.intent.preferred_date,
                preferred_time=payload.intent.preferred_time,
            ),
        )
        return {
            "success": True,
            "action": "booked",
            "appointment": booking.to_dict(),
            "confirmation_message": booking.confirmation_message,
        }

    return {"success": True, "action": "logged", "customer_id": customer.id}


@router.post("/webhook", dependencies=[Depends(require_webhook_token)])
def teli_webhook(payload: TeliWebhookPayload):
    logger.info("📞 Teli webhook received: event=%s agent=%s", payload.event_type, payload.agent_id or "-")
    try:
        return handle_webhook(payload)
    except BusinessNotFound as exc:
        logger.warning("Teli webhook rejected: %s", exc)
        return JSONResponse(status_code=404, content={"error": "No business found", "details": str(exc)})
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"error": "Invalid payload", "details": str(exc)})
    except Exception as exc:
        logger.error("Teli webhook error: %s", exc)
        traceback.print_exc()
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})


@router.get("/webhook")
def teli_webhook_health():
    return {"status": "ok", "endpoint": "teli-webhook"}
