from __future__ import annotations

from datetime import date

from fastapi.testclient import TestClient
import httpx
import pytest

from citetally.main import create_app
from citetally.services.citations.errors import AutoUpdateAlreadyRunningError
from citetally.services.citations.orchestrator import CitationOrchestrator
from citetally.services.preferences import PREF_DATABASE_ORDER
from citetally.settings import Settings
from tests.unit.fakes import FakeEnvironment, FakePreferenceStore, FakeRecord, FakeRecordStore, RecordedSleep


def _handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"is-referenced-by-count": 42})


@pytest.fixture
def preference_store() -> FakePreferenceStore:
    return FakePreferenceStore()


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore(
        [
            FakeRecord(1, doi="10.1/abc", title="Paper one"),
            FakeRecord(2, item_type="note"),
        ]
    )


@pytest.fixture
def orchestrator(record_store, preference_store) -> CitationOrchestrator:
    return CitationOrchestrator(
        record_store=record_store,
        preference_store=preference_store,
        environment=FakeEnvironment(),
        app_settings=Settings(),
        transport=httpx.MockTransport(_handler),
        sleep=RecordedSleep(),
    )


@pytest.fixture
def client(orchestrator) -> TestClient:
    app = create_app()
    app.state.orchestrator = orchestrator
    return TestClient(app)


@pytest.mark.integration
def test_get_preferences_returns_defaults(client: TestClient) -> None:
    response = client.get("/api/v1/preferences")

    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {
        "database_order": ["crossref"],
        "rate_limits_ms": {},
        "auto_update": "never",
        "auto_update_cutoff": 6,
        "use_colors": False,
    }
    assert body["meta"]["request_id"]


@pytest.mark.integration
def test_update_database_order(client: TestClient, preference_store: FakePreferenceStore) -> None:
    accepted = client.put("/api/v1/preferences/database-order", json={"value": "Inspire, crossref"})
    rejected = client.put("/api/v1/preferences/database-order", json={"value": "crossref,scopus"})

    assert accepted.status_code == 200
    assert accepted.json()["data"]["databases"] == ["inspire", "crossref"]
    assert rejected.status_code == 422
    assert rejected.json()["error"] == {
        "code": "invalid_database_order",
        "message": "Invalid database(s): scopus",
        "details": None,
    }
    assert preference_store.values[PREF_DATABASE_ORDER] == "inspire,crossref"


@pytest.mark.integration
def test_update_preferences(client: TestClient) -> None:
    response = client.put(
        "/api/v1/preferences",
        json={"rate_limits_ms": {"crossref": 1500}, "auto_update": "startup", "auto_update_cutoff": 3, "use_colors": True},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["rate_limits_ms"] == {"crossref": 1500}
    assert data["auto_update"] == "startup"
    assert data["auto_update_cutoff"] == 3
    assert data["use_colors"] is True


@pytest.mark.integration
def test_invalid_preferences_map_to_422(client: TestClient) -> None:
    response = client.put("/api/v1/preferences", json={"auto_update": "hourly"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "invalid_preferences"


@pytest.mark.integration
def test_rejected_preferences_update_stores_nothing(
    client: TestClient,
    preference_store: FakePreferenceStore,
) -> None:
    response = client.put(
        "/api/v1/preferences",
        json={"rate_limits_ms": {"crossref": 1500}, "auto_update": "hourly"},
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "invalid_preferences"
    assert preference_store.values == {}
    assert client.get("/api/v1/preferences").json()["data"]["rate_limits_ms"] == {}


@pytest.mark.integration
def test_manual_update_then_read_columns(client: TestClient) -> None:
    update = client.post("/api/v1/citations/update", json={"record_ids": [1]})

    assert update.status_code == 200
    summary = update.json()["data"]["summary"]
    assert summary["mode"] == "manual"
    assert summary["updated"] == 1

    columns = client.get("/api/v1/records/1/citations")

    assert columns.status_code == 200
    data = columns.json()["data"]
    assert data["identifier"] == "doi:10.1/abc"
    assert data["columns"] == [{"database": "crossref", "display_name": "Crossref", "count": "42", "color": ""}]

    latest = client.get("/api/v1/citations/runs/latest").json()["data"]
    assert latest["summary"]["updated"] == 1
    assert latest["auto_update_in_progress"] is False


@pytest.mark.integration
def test_manual_update_rejects_unknown_databases(client: TestClient, record_store: FakeRecordStore) -> None:
    unknown = client.post("/api/v1/citations/update", json={"record_ids": [1], "databases": ["crossref", "scopus"]})
    duplicate = client.post("/api/v1/citations/update", json={"record_ids": [1], "databases": ["inspire", "INSPIRE"]})

    assert unknown.status_code == 422
    assert unknown.json()["error"] == {
        "code": "invalid_databases",
        "message": "Invalid database(s): scopus",
        "details": None,
    }
    assert duplicate.status_code == 422
    assert duplicate.json()["error"]["message"] == "Duplicate databases found"
    assert record_store.records[1].save_count == 0


@pytest.mark.integration
def test_manual_update_with_named_database(client: TestClient) -> None:
    response = client.post("/api/v1/citations/update", json={"record_ids": [1], "databases": ["Crossref"]})

    assert response.status_code == 200
    assert response.json()["data"]["summary"]["updated"] == 1


@pytest.mark.integration
def test_manual_update_without_regular_records_returns_notice(client: TestClient) -> None:
    response = client.post("/api/v1/citations/update", json={"record_ids": [2]})

    assert response.status_code == 200
    assert response.json()["data"] == {
        "summary": None,
        "notices": ["No valid items selected for citation count update."],
    }


@pytest.mark.integration
def test_unknown_record_is_404(client: TestClient) -> None:
    response = client.get("/api/v1/records/99/citations")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "record_not_found"


@pytest.mark.integration
def test_retally_accepts_and_rejects_concurrent_runs(client: TestClient, orchestrator, monkeypatch) -> None:
    calls: list[bool] = []
    monkeypatch.setattr(orchestrator, "trigger_retally", lambda: calls.append(True))

    accepted = client.post("/api/v1/citations/retally")

    def _busy():
        raise AutoUpdateAlreadyRunningError("An automatic citation update is already running.")

    monkeypatch.setattr(orchestrator, "trigger_retally", _busy)
    rejected = client.post("/api/v1/citations/retally")

    assert accepted.status_code == 202
    assert accepted.json()["data"] == {"accepted": True}
    assert calls == [True]
    assert rejected.status_code == 409
    assert rejected.json()["error"]["code"] == "auto_update_running"


@pytest.mark.integration
def test_record_added_event_updates_records(client: TestClient, record_store: FakeRecordStore) -> None:
    handled = client.post("/api/v1/records/events", json={"event": "add", "type": "item", "ids": [1]})
    ignored = client.post("/api/v1/records/events", json={"event": "trash", "type": "item", "ids": [1]})

    assert handled.json()["data"]["handled"] is True
    assert handled.json()["data"]["summary"]["updated"] == 1
    assert ignored.json()["data"] == {"handled": False, "summary": None}
    assert record_store.records[1].get_field("extra") == f"Citations: 42 (Crossref) [{date.today():%Y-%m-%d}]"


@pytest.mark.integration
def test_api_without_orchestrator_is_unavailable() -> None:
    response = TestClient(create_app()).get("/api/v1/preferences")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "orchestrator_unavailable"
