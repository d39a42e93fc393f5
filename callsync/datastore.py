"""
Airtable access for the CRM tables.

Every read and write goes through :func:`_call`, which retries transport
errors and converts whatever finally fails into :class:`DatastoreError`.
When Airtable credentials are absent (or ``CALLSYNC_FORCE_IN_MEMORY`` is set)
each table is served by :class:`InMemoryTable`, which understands the
equality / ``AND(...)`` formulas built by :func:`formula_equals` and
:func:`formula_and`.
"""

from __future__ import annotations

import copy
import itertools
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests
from pyairtable import Api

from callsync.config import settings
from callsync.runtime import get_logger, retry
from callsync.schema import (
    APPOINTMENTS_TABLE,
    BUSINESSES_TABLE,
    CUSTOMERS_TABLE,
    LOGS_TABLE,
    MESSAGES_TABLE,
)

logger = get_logger(__name__)

_EQUALITY_TERM = re.compile(r"\{([^}]+)\}\s*=\s*'((?:[^'\\]|\\.)*)'")
_UNESCAPE = re.compile(r"\\(.)")


class DatastoreError(RuntimeError):
    """Raised when a store read/write fails after retries."""

    def __init__(self, message: str, *, action: str, table: str) -> None:
        super().__init__(message)
        self.action = action
        self.table = table


# ============================================================
# FORMULAS
# ============================================================


def formula_equals(field_name: str, value: Any) -> str:
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"{{{field_name}}}='{escaped}'"


def formula_and(*parts: str) -> str:
    terms = [p for p in parts if p]
    return terms[0] if len(terms) == 1 else f"AND({', '.join(terms)})"


def _equality_terms(formula: str) -> Dict[str, str]:
    return {name: _UNESCAPE.sub(r"\1", raw) for name, raw in _EQUALITY_TERM.findall(formula)}


# ============================================================
# IN-MEMORY BACKEND
# ============================================================


class InMemoryTable:
    """Process-local stand-in for a pyairtable ``Table`` (create/update/get/all/first)."""

    def __init__(self, name: str):
        self.name = name
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._guard = threading.Lock()

    def _missing(self, record_id: str) -> KeyError:
        return KeyError(f"{self.name}: no record {record_id}")

    def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._guard:
            record_id = f"rec{self.name[:3].lower()}{next(self._ids)}"
            self._rows[record_id] = copy.deepcopy(dict(fields))
            return {"id": record_id, "fields": copy.deepcopy(self._rows[record_id])}

    def update(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._guard:
            if record_id not in self._rows:
                raise self._missing(record_id)
            self._rows[record_id].update(copy.deepcopy(dict(fields)))
            return {"id": record_id, "fields": copy.deepcopy(self._rows[record_id])}

    def get(self, record_id: str) -> Dict[str, Any]:
        with self._guard:
            if record_id not in self._rows:
                raise self._missing(record_id)
            return {"id": record_id, "fields": copy.deepcopy(self._rows[record_id])}

    def all(self, formula: Optional[str] = None, max_records: Optional[int] = None, **_ignored) -> List[Dict[str, Any]]:
        wanted = _equality_terms(formula) if formula else None
        if formula and not wanted:
            return []
        with self._guard:
            snapshot = [(rid, copy.deepcopy(f)) for rid, f in self._rows.items()]
        out = []
        for record_id, fields in snapshot:
            if wanted and any(_as_text(fields.get(k)) != v for k, v in wanted.items()):
                continue
            out.append({"id": record_id, "fields": fields})
            if max_records is not None and len(out) >= int(max_records):
                break
        return out

    def first(self, **kwargs) -> Optional[Dict[str, Any]]:
        kwargs["max_records"] = 1
        found = self.all(**kwargs)
        return found[0] if found else None


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


# ============================================================
# CONNECTOR
# ============================================================


@dataclass
class TableHandle:
    table: Any
    in_memory: bool
    table_name: str


def using_airtable() -> bool:
    s = settings()
    return bool(s.AIRTABLE_API_KEY and s.CRM_BASE_ID) and not s.FORCE_IN_MEMORY


class DataConnector:
    """Hands out one :class:`TableHandle` per (base, table), created on first use."""

    def __init__(self) -> None:
        self._handles: Dict[tuple, TableHandle] = {}
        self._api: Optional[Api] = None

    def clear(self) -> None:
        self._handles.clear()
        self._api = None

    def _open(self, table_name: str) -> TableHandle:
        base = settings().CRM_BASE_ID
        if using_airtable():
            if self._api is None:
                self._api = Api(settings().AIRTABLE_API_KEY)
            return TableHandle(self._api.table(base, table_name), False, table_name)
        if not settings().FORCE_IN_MEMORY:
            logger.warning("Airtable credentials missing; %s is held in memory", table_name)
        return TableHandle(InMemoryTable(table_name), True, table_name)

    def _handle(self, table_name: str) -> TableHandle:
        cache_key = (settings().CRM_BASE_ID or "memory", table_name)
        if cache_key not in self._handles:
            self._handles[cache_key] = self._open(table_name)
        return self._handles[cache_key]

    def businesses(self) -> TableHandle:
        return self._handle(BUSINESSES_TABLE.name())

    def customers(self) -> TableHandle:
        return self._handle(CUSTOMERS_TABLE.name())

    def messages(self) -> TableHandle:
        return self._handle(MESSAGES_TABLE.name())

    def appointments(self) -> TableHandle:
        return self._handle(APPOINTMENTS_TABLE.name())

    def logs(self) -> TableHandle:
        return self._handle(LOGS_TABLE.name())


CONNECTOR = DataConnector()


# ============================================================
# RECORD OPERATIONS
# ============================================================


def _call(handle: TableHandle, action: str, fn: Callable[[], Any]) -> Any:
    try:
        return retry(fn, retries=3, base_delay=0.6, exceptions=(requests.exceptions.RequestException,), logger=logger)
    except Exception as exc:
        logger.error("❌ %s.%s failed: %s", handle.table_name, action, exc)
        raise DatastoreError(f"{handle.table_name} {action} failed: {exc}", action=action, table=handle.table_name) from exc


def _without_nulls(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {name: value for name, value in (fields or {}).items() if value is not None}


def list_records(handle: TableHandle, **kwargs) -> List[Dict[str, Any]]:
    """Read every matching row (pyairtable pages transparently)."""
    return list(_call(handle, "all", lambda: handle.table.all(**kwargs)))


def get_record(handle: TableHandle, record_id: str) -> Optional[Dict[str, Any]]:
    """Fetch one row by id; unknown ids (404 or in-memory miss) give ``None``."""
    if not record_id:
        return None
    try:
        return _call(handle, "get", lambda: handle.table.get(record_id))
    except DatastoreError as exc:
        cause = exc.__cause__
        not_found = isinstance(cause, KeyError) or (
            isinstance(cause, requests.exceptions.HTTPError) and getattr(cause.response, "status_code", None) == 404
        )
        if not_found:
            return None
        raise


def first_record(handle: TableHandle, formula: str) -> Optional[Dict[str, Any]]:
    found = list_records(handle, formula=formula, max_records=1)
    return found[0] if found else None


def create_record(handle: TableHandle, fields: Dict[str, Any]) -> Dict[str, Any]:
    payload = _without_nulls(fields)
    return _call(handle, "create", lambda: handle.table.create(payload))


def update_record(handle: TableHandle, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    payload = _without_nulls(fields)
    return _call(handle, "update", lambda: handle.table.update(record_id, payload))


def reset_state() -> None:
    """Drop cached table handles (and in-memory rows) and re-read settings."""
    CONNECTOR.clear()
    settings.cache_clear()
    logger.debug("🧹 Datastore handles cleared")
