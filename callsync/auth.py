"""Shared-secret guards for the Teli webhook and the cron-triggered sync routes."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import HTTPException, Request

from callsync.config import settings


def _bearer(request: Request) -> Optional[str]:
    scheme, _, credentials = (request.headers.get("Authorization") or "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def _check(request: Request, expected: Optional[str], header_name: str, label: str) -> None:
    if not expected:
        return  # guard disabled
    candidates = (request.query_params.get("token"), request.headers.get(header_name), _bearer(request))
    supplied = next((c for c in candidates if c), "")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail=f"Invalid {label} token")


async def require_webhook_token(request: Request) -> None:
    """``?token=``, ``x-webhook-token`` or a Bearer header must match ``WEBHOOK_TOKEN`` when set."""
    _check(request, settings().WEBHOOK_TOKEN, "x-webhook-token", "webhook")


async def require_cron_token(request: Request) -> None:
    _check(request, settings().CRON_TOKEN, "x-cron-token", "cron")
