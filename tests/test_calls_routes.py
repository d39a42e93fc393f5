from fastapi.testclient import TestClient

from callsync.customers import get_customer, upsert_customer
from callsync.datastore import CONNECTOR, list_records, update_record
from callsync.main import app
from callsync.routes import calls as calls_routes
from callsync.teli_client import TeliError

client = TestClient(app)


def test_list_calls_requires_business_id():
    response = client.get("/calls")
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "business_id is required"}


def test_list_recent_and_since():
    old = upsert_customer("recbiz1", "+15550000001", {"first_name": "Old"}, {}).customer
    new = upsert_customer("recbiz1", "+15550000002", {"first_name": "New"}, {}).customer
    update_record(CONNECTOR.customers(), old.id, {"Created At": "2024-01-01T00:00:00Z"})
    update_record(CONNECTOR.customers(), new.id, {"Created At": "2024-02-01T00:00:00Z"})

    recent = client.get("/calls", params={"business_id": "recbiz1", "limit": 1}).json()
    assert recent["success"] is True
    assert [c["id"] for c in recent["customers"]] == [new.id]
    assert recent["customers"][0]["is_new"] is False

    since = client.get("/calls", params={"business_id": "recbiz1", "since": "2024-01-15T00:00:00Z"}).json()
    assert [c["id"] for c in since["customers"]] == [new.id]
    assert since["customers"][0]["is_new"] is True


def test_list_calls_bad_since_is_400():
    response = client.get("/calls", params={"business_id": "recbiz1", "since": "soon"})
    assert response.status_code == 400


def test_post_call_creates_then_skips_duplicate():
    body = {
        "business_id": "recbiz1",
        "call_data": {
            "call_id": "c1",
            "phone": "+15550000001",
            "status": "completed",
            "extracted_fields": {"first_name": "Sam", "favorite_service": "fade"},
        },
    }

    first = client.post("/calls", json=body).json()
    assert first["success"] is True
    assert first["message"] == "New customer created from call"
    assert first["customer"]["first_name"] == "Sam"
    assert first["customer"]["custom_fields"] == {"favorite_service": "fade"}
    assert first["customer"]["is_new"] is True

    second = client.post("/calls", json=body).json()
    assert second["success"] is True
    assert second["skipped"] is True
    assert len(list_records(CONNECTOR.messages())) == 1


def test_post_call_validation():
    assert client.post("/calls", json={"call_data": {"phone": "+1555"}}).status_code == 400
    assert client.post("/calls", json={"business_id": "recbiz1", "call_data": {"call_id": "c1"}}).status_code == 400
    assert client.post("/calls", json={"business_id": "recbiz1", "call_data": {"phone": "+15550000001"}}).status_code == 400


def test_transcript_requires_call_id():
    response = client.get("/calls/transcript")
    assert response.status_code == 400


def test_transcript_fetch_and_save(monkeypatch):
    customer = upsert_customer("recbiz1", "+15550000001", {}, {}, call_id="c1").customer
    monkeypatch.setattr(calls_routes, "fetch_call_transcript", lambda call_id: "agent: hi\nuser: hello")

    plain = client.get("/calls/transcript", params={"call_id": "c1"}).json()
    assert plain == {"success": True, "call_id": "c1", "transcript_length": 21, "transcript": "agent: hi\nuser: hello"}

    saved = client.get("/calls/transcript", params={"call_id": "c1", "customer_id": customer.id}).json()
    assert saved["success"] is True
    assert saved["customer_id"] == customer.id
    assert get_customer(customer.id).call_transcript == "agent: hi\nuser: hello"


def test_transcript_missing_and_provider_error(monkeypatch):
    monkeypatch.setattr(calls_routes, "fetch_call_transcript", lambda call_id: None)
    missing = client.get("/calls/transcript", params={"call_id": "c1"}).json()
    assert missing == {"success": False, "error": "No transcript found for this call_id", "call_id": "c1"}

    def failing(call_id):
        raise TeliError("Teli API error: 502 - bad gateway", status_code=502)

    monkeypatch.setattr(calls_routes, "fetch_call_transcript", failing)
    response = client.get("/calls/transcript", params={"call_id": "c1"})
    assert response.status_code == 500
    assert response.json()["success"] is False
