import pytest

from callsync import call_sync, org_sync
from callsync.customers import list_customers
from callsync.datastore import CONNECTOR, create_record, list_records
from callsync.models import TeliCall
from callsync.teli_client import TeliError


def _feed(*items):
    return [TeliCall.from_api(item) for item in items]


@pytest.fixture
def org(configure):
    configure(TELI_ORGANIZATION_ID="org_1")


def _use_feed(monkeypatch, feed, captured=None):
    def fake_fetch(scope_id, **kwargs):
        if captured is not None:
            captured["scope"] = scope_id
            captured.update(kwargs)
        return feed

    monkeypatch.setattr(org_sync, "fetch_calls", fake_fetch)


def test_single_call_scenario_and_rerun(org, monkeypatch, make_business):
    acme = make_business("Acme", agent_id="agentA", slug="acme")
    captured = {}
    _use_feed(
        monkeypatch,
        _feed({"call_id": "c1", "from_number": "+15550001", "voice_agent_id": "agentA", "extracted_fields": {"first_name": "Sam"}}),
        captured,
    )

    first = org_sync.sync_all_organization_calls().to_dict()

    assert captured["scope"] == "org_1"
    assert captured["is_admin"] is True
    assert first["success"] is True
    assert first["totalCalls"] == 1
    assert first["syncedCalls"] == 1
    assert first["newCustomers"] == 1
    assert first["duplicateCalls"] == 0
    assert first["skippedCalls"] == 0
    assert first["callsByBusiness"] == {acme.id: {"name": "Acme", "synced": 1, "new": 1}}
    assert first["errors"] == []

    [customer] = list_customers(acme.id)
    assert (customer.first_name, customer.last_name) == ("Sam", "Customer")
    assert customer.custom_fields == {}
    [message] = list_records(CONNECTOR.messages())
    assert message["fields"]["Call ID"] == "c1"
    assert message["fields"]["Direction"] == "inbound"

    second = org_sync.sync_all_organization_calls().to_dict()

    assert second["duplicateCalls"] == 1
    assert second["syncedCalls"] == 0
    assert second["newCustomers"] == 0
    assert len(list_customers(acme.id)) == 1
    assert len(list_records(CONNECTOR.messages())) == 1


def test_unroutable_call_is_isolated(org, monkeypatch, make_business):
    acme = make_business("Acme", agent_id="agentA")
    bolt = make_business("Bolt", agent_id="agentB")
    _use_feed(
        monkeypatch,
        _feed(
            {"call_id": "c1", "from_number": "+15550000001", "voice_agent_id": "agentA"},
            {"call_id": "c2", "from_number": "+15550000002", "voice_agent_id": "agentX"},
            {"call_id": "c3", "from_number": "+15550000003", "voice_agent_id": "agentB"},
            {"call_id": "c4", "from_number": "+15550000001", "voice_agent_id": "agentA"},
        ),
    )

    result = org_sync.sync_all_organization_calls().to_dict()

    assert result["totalCalls"] == 4
    assert result["skippedCalls"] == 1
    assert result["syncedCalls"] == 3
    assert result["newCustomers"] == 2
    assert result["errors"] == ["Call c2: no business for agent agentX"]
    assert result["callsByBusiness"][acme.id] == {"name": "Acme", "synced": 2, "new": 1}
    assert result["callsByBusiness"][bolt.id] == {"name": "Bolt", "synced": 1, "new": 1}


def test_duplicate_ids_within_one_feed_sync_once(org, monkeypatch, make_business):
    make_business("Acme", agent_id="agentA")
    _use_feed(
        monkeypatch,
        _feed(
            {"call_id": "c1", "from_number": "+15550000001", "voice_agent_id": "agentA"},
            {"call_id": "c1", "from_number": "+15550000001", "voice_agent_id": "agentA"},
        ),
    )

    result = org_sync.sync_all_organization_calls()

    assert result.synced_calls == 1
    assert result.duplicate_calls == 1


def test_per_call_failures_do_not_abort(org, monkeypatch, make_business):
    make_business("Acme", agent_id="agentA")
    _use_feed(
        monkeypatch,
        _feed(
            {"call_id": "c1", "voice_agent_id": "agentA"},
            {"call_id": "c2", "from_number": "+15550000002", "voice_agent_id": "agentA"},
        ),
    )

    result = org_sync.sync_all_organization_calls()

    assert result.success is True
    assert result.synced_calls == 1
    assert result.errors == ["Call c1: malformed call record: missing from_number"]


def test_agent_collision_is_reported(org, monkeypatch, make_business):
    first = make_business("First", agent_id="agentA")
    second = make_business("Second", agent_id="agentA")
    _use_feed(monkeypatch, _feed({"call_id": "c1", "from_number": "+15550000001", "voice_agent_id": "agentA"}))

    result = org_sync.sync_all_organization_calls()

    assert list(result.calls_by_business) == [second.id]
    assert result.errors == [f"Agent agentA is assigned to multiple businesses ({first.id}, {second.id})"]


def test_fetch_failure_returns_single_error(org, monkeypatch):
    def failing_fetch(*_a, **_k):
        raise TeliError("Teli API unreachable: connection refused")

    monkeypatch.setattr(org_sync, "fetch_calls", failing_fetch)

    result = org_sync.sync_all_organization_calls().to_dict()

    assert result == {
        "success": False,
        "totalCalls": 0,
        "syncedCalls": 0,
        "newCustomers": 0,
        "skippedCalls": 0,
        "duplicateCalls": 0,
        "callsByBusiness": {},
        "errors": ["Teli API unreachable: connection refused"],
    }


def test_missing_organization_id(monkeypatch):
    monkeypatch.setattr(org_sync, "fetch_calls", lambda *_a, **_k: pytest.fail("should not fetch"))

    result = org_sync.sync_all_organization_calls()

    assert result.success is False
    assert result.errors == ["TELI_ORGANIZATION_ID is not configured"]


def test_run_is_logged(org, monkeypatch, make_business):
    make_business("Acme", agent_id="agentA")
    _use_feed(monkeypatch, _feed({"call_id": "c1", "from_number": "+15550000001", "voice_agent_id": "agentA"}))

    org_sync.sync_all_organization_calls()

    [row] = list_records(CONNECTOR.logs())
    assert row["fields"]["Type"] == "ORG_SYNC"
    assert row["fields"]["Processed"] == 1
    assert row["fields"]["Status"] == "OK"


def test_non_object_custom_fields_do_not_stop_the_batch(org, monkeypatch, make_business):
    acme = make_business("Acme", agent_id="agentA")
    create_record(
        CONNECTOR.customers(),
        {"Business ID": acme.id, "Phone": "+15550001", "First Name": "Sam", "Custom Fields": "null"},
    )
    _use_feed(
        monkeypatch,
        _feed(
            {"call_id": "c1", "from_number": "+15550001", "voice_agent_id": "agentA", "extracted_fields": {"color": "blue"}},
            {"call_id": "c2", "from_number": "+15550002", "voice_agent_id": "agentA"},
        ),
    )

    result = org_sync.sync_all_organization_calls().to_dict()

    assert result["success"] is True
    assert result["syncedCalls"] == 2
    assert result["newCustomers"] == 1
    assert result["errors"] == []
    by_phone = {c.phone: c for c in list_customers(acme.id)}
    assert by_phone["+15550001"].custom_fields == {"color": "blue"}
    assert "+15550002" in by_phone


def test_unexpected_error_in_one_call_is_captured(org, monkeypatch, make_business):
    acme = make_business("Acme", agent_id="agentA")
    real_upsert = call_sync.upsert_customer

    def flaky_upsert(business_id, phone, *args, **kwargs):
        if phone == "+15550001":
            raise TypeError("'NoneType' object is not iterable")
        return real_upsert(business_id, phone, *args, **kwargs)

    monkeypatch.setattr(call_sync, "upsert_customer", flaky_upsert)
    _use_feed(
        monkeypatch,
        _feed(
            {"call_id": "c1", "from_number": "+15550001", "voice_agent_id": "agentA"},
            {"call_id": "c2", "from_number": "+15550002", "voice_agent_id": "agentA"},
        ),
    )

    result = org_sync.sync_all_organization_calls().to_dict()

    assert result["syncedCalls"] == 1
    assert result["errors"] == ["Call c1: TypeError: 'NoneType' object is not iterable"]
    assert [c.phone for c in list_customers(acme.id)] == ["+15550002"]
