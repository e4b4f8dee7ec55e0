import pytest
from fastapi.testclient import TestClient

from app.api.fastapi_app import create_app
from app.codes.master import MasterCodeLoader


class BrokenLoader(MasterCodeLoader):
    async def load_all(self):
        raise OSError("code list unavailable")


@pytest.fixture
def client(mpfs_store, master_loader, monkeypatch):
    monkeypatch.delenv("REFSTORE_BACKEND", raising=False)
    with TestClient(create_app(store=mpfs_store, loader=master_loader)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_ready_reports_index_size(client, master_entries):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "ready": True, "index_entries": len(master_entries)}


def test_normalize(client):
    response = client.post("/api/v1/codes/normalize", json={"value": "cpt 99213"})
    assert response.status_code == 200
    assert response.json() == {"normalized": "99213", "is_valid_format": True, "code": "99213", "modifier": None}

    response = client.post("/api/v1/codes/normalize", json={"value": "A4570TC"})
    body = response.json()
    assert body["is_valid_format"] is False
    assert (body["code"], body["modifier"]) == ("A4570", "TC")


def test_search(client):
    response = client.post("/api/v1/codes/search", json={"query": "colonoscopy biopsy", "max_results": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["query"] == "colonoscopy biopsy"
    assert [c["code"] for c in body["candidates"]] == ["45380", "45378"]


def test_search_rejects_bad_limits(client):
    response = client.post("/api/v1/codes/search", json={"query": "colonoscopy", "max_results": 0})
    assert response.status_code == 422


def test_resolve(client):
    response = client.post("/api/v1/codes/resolve", json={"query_text": "knee arthroscopy meniscectomy"})
    assert response.status_code == 200
    body = response.json()
    assert body["is_valid_query"] is True
    assert body["search_method"] == "ilike"
    assert body["primary_candidate"]["code"] == "29881"


def test_resolve_invalid_query(client):
    response = client.post("/api/v1/codes/resolve", json={"query_text": "knee"})
    assert response.status_code == 200
    body = response.json()
    assert body["is_valid_query"] is False
    assert body["candidates"] == []


def test_location_scan(client):
    response = client.post(
        "/api/v1/location/scan",
        json={"text": "Patient address: 123 Main St, Springfield, IL 62704"},
    )
    assert response.status_code == 200
    body = response.json()
    assert (body["zip5"], body["state_abbr"], body["confidence"]) == ("62704", "IL", "high")


def test_location_scan_uses_filename_without_text(client):
    response = client.post("/api/v1/location/scan", json={"filename": "statement_62704.pdf"})
    body = response.json()
    assert (body["zip5"], body["state_abbr"], body["state_source"]) == ("62704", "IL", "zip_lookup")


def test_location_scan_without_input(client):
    body = client.post("/api/v1/location/scan", json={}).json()
    assert body["ran"] is True
    assert body["error"] == "No text content to scan"


def test_dataset_status(client):
    response = client.get("/api/v1/datasets")
    assert response.status_code == 200
    counts = {entry["dataset"]: entry["row_count"] for entry in response.json()}
    assert counts == {"mpfs": 5, "gpci": 0, "zip": 0, "opps": 0, "dmepos": 0}


def test_metrics_disabled_by_default(client, monkeypatch):
    monkeypatch.delenv("METRICS_BACKEND", raising=False)
    monkeypatch.delenv("METRICS_ENABLED", raising=False)
    assert client.get("/metrics").status_code == 404


def test_metrics_with_registry_backend(client, monkeypatch, registry_metrics):
    monkeypatch.setenv("METRICS_BACKEND", "registry")
    monkeypatch.delenv("METRICS_ENABLED", raising=False)

    client.post("/api/v1/codes/resolve", json={"query_text": "knee arthroscopy meniscectomy"})
    client.post("/api/v1/codes/resolve", json={"query_text": "knee"})

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "refcode_reverse_search_requests_total" in response.text

    summary = client.get("/metrics/resolution").json()
    assert summary["total_requests"] == 2
    assert summary["invalid_queries"] == 1
    assert summary["fallback_rate"] == 0.0

    assert client.get("/metrics/imports").json() == {"datasets": {}}


def test_failed_index_build_is_not_ready(mpfs_store, monkeypatch):
    monkeypatch.delenv("REFSTORE_BACKEND", raising=False)
    with TestClient(create_app(store=mpfs_store, loader=BrokenLoader())) as client:
        ready = client.get("/ready")
        assert ready.status_code == 503
        assert ready.json()["status"] == "error"

        search = client.post("/api/v1/codes/search", json={"query": "colonoscopy"})
        assert search.status_code == 503

        assert client.get("/health").status_code == 200
