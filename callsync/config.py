"""Environment-driven settings for the call sync service (cached; tests call ``settings.cache_clear()``)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Project-root .env; real environment variables win.
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env", override=False)

TELI_API_BASE_DEFAULT = "https://teli-hackathon--transfer-message-service-fastapi-app.modal.run"
_TRUTHY = {"1", "true", "yes", "on"}


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    raw = (os.getenv(key) or "").strip()
    return raw or default


def env_int(key: str, default: int) -> int:
    raw = env_str(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_bool(key: str, default: bool = False) -> bool:
    raw = env_str(key)
    return default if raw is None else raw.lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    AIRTABLE_API_KEY: Optional[str]
    CRM_BASE_ID: Optional[str]
    TELI_API_BASE: str
    TELI_API_KEY: Optional[str]
    TELI_ORGANIZATION_ID: Optional[str]
    TELI_TIMEOUT_SEC: int
    TELI_SYNC_LIMIT: int
    TELI_ORG_SYNC_LIMIT: int
    DEFAULT_BUSINESS_ID: Optional[str]
    DEFAULT_TIMEZONE: str
    DEFAULT_SERVICE_MINUTES: int
    DEFAULT_BOOKING_HOUR: int
    BOOKING_SHIFT_MINUTES: int
    BOOKING_MAX_SHIFTS: int
    WEBHOOK_TOKEN: Optional[str]
    CRON_TOKEN: Optional[str]
    FORCE_IN_MEMORY: bool


@lru_cache(maxsize=1)
def settings() -> Settings:
    return Settings(
        AIRTABLE_API_KEY=env_str("AIRTABLE_API_KEY"),
        CRM_BASE_ID=env_str("CRM_BASE_ID") or env_str("AIRTABLE_CRM_BASE_ID"),
        TELI_API_BASE=env_str("TELI_API_BASE", TELI_API_BASE_DEFAULT).rstrip("/"),
        TELI_API_KEY=env_str("TELI_API_KEY"),
        TELI_ORGANIZATION_ID=env_str("TELI_ORGANIZATION_ID"),
        TELI_TIMEOUT_SEC=env_int("TELI_TIMEOUT_SEC", 15),
        TELI_SYNC_LIMIT=env_int("TELI_SYNC_LIMIT", 50),
        TELI_ORG_SYNC_LIMIT=env_int("TELI_ORG_SYNC_LIMIT", 500),
        DEFAULT_BUSINESS_ID=env_str("DEFAULT_BUSINESS_ID"),
        DEFAULT_TIMEZONE=env_str("DEFAULT_TIMEZONE", "America/Chicago"),
        DEFAULT_SERVICE_MINUTES=env_int("DEFAULT_SERVICE_MINUTES", 30),
        DEFAULT_BOOKING_HOUR=env_int("DEFAULT_BOOKING_HOUR", 10),
        BOOKING_SHIFT_MINUTES=env_int("BOOKING_SHIFT_MINUTES", 30),
        BOOKING_MAX_SHIFTS=env_int("BOOKING_MAX_SHIFTS", 16),
        WEBHOOK_TOKEN=env_str("WEBHOOK_TOKEN"),
        CRON_TOKEN=env_str("CRON_TOKEN"),
        FORCE_IN_MEMORY=env_bool("CALLSYNC_FORCE_IN_MEMORY"),
    )
