"""
🧠 Call Sync Runtime Core
-------------------------
Process-wide plumbing shared by every module: logging bootstrap, the
uncaught-exception hook, UTC timestamp helpers, caller phone cleanup and
the retry loop wrapped around Airtable and Teli calls.
"""

from __future__ import annotations

import logging
import os
import re
import sys
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_SECRET_ENV = ("AIRTABLE_API_KEY", "TELI_API_KEY", "WEBHOOK_TOKEN", "CRON_TOKEN")
_NON_DIGIT = re.compile(r"\D+")

_state = {"logging": False, "hook": False}


# ────────────────────────────────────────────────
# LOGGING
# ────────────────────────────────────────────────
def _redact(value: Optional[str]) -> str:
    if not value or not value.strip():
        return "<missing>"
    secret = value.strip()
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}…{secret[-2:]}"


def _level_from(value: int | str | None) -> int:
    raw = value if value is not None else os.getenv("CALLSYNC_LOG_LEVEL", "INFO")
    if isinstance(raw, int):
        return raw
    resolved = logging.getLevelName(str(raw).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: int | str | None = None) -> None:
    """Set up root logging once and print a redacted startup summary."""
    if _state["logging"]:
        return
    logging.basicConfig(level=_level_from(level), format=_LOG_FORMAT)
    _state["logging"] = True

    env_logger = logging.getLogger("env")
    env_logger.info(
        "Call sync env | base=%s in_memory=%s org=%s default_business=%s",
        os.getenv("CRM_BASE_ID") or os.getenv("AIRTABLE_CRM_BASE_ID") or "<missing>",
        os.getenv("CALLSYNC_FORCE_IN_MEMORY", "0"),
        os.getenv("TELI_ORGANIZATION_ID") or "<missing>",
        os.getenv("DEFAULT_BUSINESS_ID") or "<unset>",
    )
    env_logger.info("Secrets | %s", ", ".join(f"{name}={_redact(os.getenv(name))}" for name in _SECRET_ENV))


def get_logger(name: str = "callsync") -> logging.Logger:
    """Return a named logger, bootstrapping logging on first use."""
    configure_logging()
    return logging.getLogger(name)


def install_global_exception_hook() -> None:
    """Send uncaught exceptions to the ``uncaught`` logger instead of bare stderr."""
    if _state["hook"]:
        return

    def _log_uncaught(exc_type, exc, tb):
        get_logger("uncaught").critical("Unhandled %s: %s", exc_type.__name__, exc, exc_info=(exc_type, exc, tb))

    sys.excepthook = _log_uncaught
    _state["hook"] = True


# ────────────────────────────────────────────────
# TIME
# ────────────────────────────────────────────────
def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize as second-precision ISO8601 UTC with a ``Z`` suffix; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def iso_now() -> str:
    return to_iso(utc_now())


def parse_iso(value: str | None) -> Optional[datetime]:
    """Parse ISO8601 (``Z`` allowed) into an aware datetime, or ``None`` when unparseable."""
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ────────────────────────────────────────────────
# PHONE
# ────────────────────────────────────────────────
def normalize_phone(value: str | None) -> Optional[str]:
    """
    Canonical ``+digits`` form used as the customer match key.

    Bare 10-digit numbers are treated as North American and get a leading 1;
    anything else keeps its digits as given. Returns ``None`` when no digits remain.
    """
    digits = _NON_DIGIT.sub("", value or "")
    if not digits:
        return None
    if len(digits) == 10:
        digits = f"1{digits}"
    return f"+{digits}"


# ────────────────────────────────────────────────
# RETRY
# ────────────────────────────────────────────────
def retry(
    func: Callable[[], T],
    *,
    retries: int = 3,
    base_delay: float = 0.5,
    backoff: float = 2.0,
    exceptions: Iterable[type[BaseException]] = (Exception,),
    logger: Optional[logging.Logger] = None,
) -> T:
    """Call ``func`` up to ``retries + 1`` times, sleeping with exponential backoff between failures."""
    log = logger or get_logger(__name__)
    retryable = tuple(exceptions)
    for attempt in range(retries + 1):
        try:
            return func()
        except retryable as exc:
            if attempt == retries:
                log.error("Giving up after %s attempts: %s", attempt + 1, exc)
                raise
            pause = base_delay * (backoff ** attempt)
            log.warning("Attempt %s/%s failed (%s); retrying in %.2fs", attempt + 1, retries + 1, exc, pause)
            time.sleep(pause)
    raise RuntimeError("unreachable")


install_global_exception_hook()
