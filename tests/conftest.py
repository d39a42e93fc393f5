import os
import sys

# Ensure project root is in sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from callsync import customers
from callsync.datastore import CONNECTOR, create_record, reset_state
from callsync.models import Business, dump_json
from callsync.schema import BUSINESSES_TABLE

BIZ = BUSINESSES_TABLE.field_names()


@pytest.fixture(autouse=True)
def _reset_datastore():
    for key in [
        "AIRTABLE_API_KEY",
        "CRM_BASE_ID",
        "AIRTABLE_CRM_BASE_ID",
        "TELI_API_KEY",
        "TELI_ORGANIZATION_ID",
        "DEFAULT_BUSINESS_ID",
        "WEBHOOK_TOKEN",
        "CRON_TOKEN",
    ]:
        os.environ.pop(key, None)
    os.environ["CALLSYNC_FORCE_IN_MEMORY"] = "1"
    reset_state()
    customers._LOCKS.clear()


@pytest.fixture
def configure(monkeypatch):
    """Set env vars and drop the cached settings so the next read sees them."""

    def _configure(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, str(value))
        from callsync.config import settings

        settings.cache_clear()

    return _configure


@pytest.fixture
def make_business():
    def _make(name="Acme Salon", agent_id=None, slug=None, services=None, timezone="America/Chicago"):
        record = create_record(
            CONNECTOR.businesses(),
            {
                BIZ["NAME"]: name,
                BIZ["SLUG"]: slug,
                BIZ["AGENT_ID"]: agent_id,
                BIZ["SERVICES"]: dump_json(services or []),
                BIZ["TIMEZONE"]: timezone,
            },
        )
        return Business.from_record(record)

    return _make
