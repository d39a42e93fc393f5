# callsync/teli_client.py
"""
📡 Teli Voice API Client
- Pulls ended calls for one agent or the whole organization (admin scope)
- Fetches single-call details / transcripts
- Raises TeliError (with HTTP metadata) on transport failure or non-2xx
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from callsync.config import settings
from callsync.models import TeliCall
from callsync.runtime import get_logger, retry

logger = get_logger("teli_client")

ENDED = "ended"


class TeliError(RuntimeError):
    """Provider error that carries HTTP metadata and response body."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _headers() -> Dict[str, str]:
    return {
        "X-API-Key": settings().TELI_API_KEY or "",
        "Content-Type": "application/json",
    }


def _extract_error_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return (resp.text or "").strip()


def _get(path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    s = settings()
    url = f"{s.TELI_API_BASE}{path}"
    try:
        resp = retry(
            lambda: requests.get(url, params=params, headers=_headers(), timeout=s.TELI_TIMEOUT_SEC),
            retries=2,
            base_delay=0.5,
            exceptions=(requests.exceptions.ConnectionError, requests.exceptions.Timeout),
            logger=logger,
        )
    except requests.exceptions.RequestException as exc:
        raise TeliError(f"Teli API unreachable: {exc}") from exc

    if not resp.ok:
        body = _extract_error_body(resp)
        logger.error("Teli %s error body: %s", resp.status_code, body)
        raise TeliError(f"Teli API error: {resp.status_code} - {body}", status_code=resp.status_code, body=body)
    try:
        return resp.json()
    except ValueError as exc:
        raise TeliError(f"Teli API returned non-JSON body: {resp.text[:200]}", status_code=resp.status_code) from exc


def fetch_calls(
    scope_id: str,
    *,
    is_admin: bool = False,
    since: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[TeliCall]:
    """
    Fetch ended calls.

    ``scope_id`` is an agent id (``is_admin=False``) or the organization id
    (``is_admin=True``, returns calls across every agent in the org).
    """
    if not scope_id:
        raise TeliError("Teli scope id (agent or organization) is required")

    params: Dict[str, Any] = {
        "organization_id": scope_id,
        "is_admin": "true" if is_admin else "false",
        "limit": str(limit or settings().TELI_SYNC_LIMIT),
        "call_status": ENDED,
    }
    if since:
        params["start_date"] = since

    data = _get("/v1/voice/calls", params)
    calls = [TeliCall.from_api(item) for item in (data.get("calls") or []) if isinstance(item, dict)]
    logger.info("📥 Fetched %s calls from Teli (scope=%s admin=%s)", len(calls), scope_id, is_admin)
    return calls


def fetch_call_details(call_id: str) -> TeliCall:
    if not call_id:
        raise TeliError("call_id is required")
    data = _get(f"/v1/voice/calls/{call_id}")
    call = data.get("call")
    if not isinstance(call, dict):
        raise TeliError(f"Teli API returned no call for {call_id}", body=data)
    return TeliCall.from_api(call)


def _transcript_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        lines = []
        for turn in value:
            if isinstance(turn, dict):
                role = turn.get("role") or turn.get("speaker") or ""
                text = turn.get("content") or turn.get("text") or ""
                lines.append(f"{role}: {text}".strip(": ").strip())
            elif turn:
                lines.append(str(turn))
        return "\n".join(line for line in lines if line) or None
    return None


def fetch_call_transcript(call_id: str) -> Optional[str]:
    """Transcript text for one call, or ``None`` when the provider has none yet."""
    call = fetch_call_details(call_id)
    return _transcript_text(call.raw.get("transcript"))
