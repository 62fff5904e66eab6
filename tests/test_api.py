"""
API tests using FastAPI's TestClient with temporary stores injected.

Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from muni_ingest.api import app, get_collection_store, get_importer
from muni_ingest.logic.blob_store import LocalBlobStore
from muni_ingest.services.importer import ImporterService

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class BrokenBlobStore(LocalBlobStore):
    def store(self, data, original_name, prefix="upload"):
        raise OSError("disk full")


@pytest.fixture
def client(store, importer):
    app.dependency_overrides[get_collection_store] = lambda: store
    app.dependency_overrides[get_importer] = lambda: importer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def tabarim_file(make_workbook, tabarim_headers, tabarim_rows):
    return {"file": ("tabarim.xlsx", make_workbook(tabarim_headers, tabarim_rows), XLSX_TYPE)}


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "Backend Online"


class TestPreviewEndpoint:

    def test_preview(self, client, tabarim_file):
        response = client.post("/api/v1/preview", files=tabarim_file, data={"context": "global"})
        assert response.status_code == 200
        body = response.json()
        assert body["detected_type"] == "tabarim"
        assert body["row_count"] == 3
        assert body["requires_mode_confirmation"] is False

    def test_preview_unreadable(self, client):
        files = {"file": ("bad.xlsx", b"not a workbook", XLSX_TYPE)}
        response = client.post("/api/v1/preview", files=files)
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "UNREADABLE_FILE"

    def test_unknown_context_rejected(self, client, tabarim_file):
        response = client.post("/api/v1/preview", files=tabarim_file, data={"context": "nowhere"})
        assert response.status_code == 422


class TestUploadEndpoint:

    def test_upload(self, client, store, tabarim_file):
        response = client.post("/api/v1/upload", files=tabarim_file, data={"context": "tabarim", "mode": "replace"})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["inserted_rows"] == 3
        assert body["states"][-1] == "finalized"
        assert store.count("tabarim") == 3

    def test_mode_is_required(self, client, tabarim_file):
        response = client.post("/api/v1/upload", files=tabarim_file, data={"context": "tabarim"})
        assert response.status_code == 422

    def test_empty_file(self, client):
        files = {"file": ("empty.xlsx", b"", XLSX_TYPE)}
        response = client.post("/api/v1/upload", files=files, data={"mode": "append"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "EMPTY_FILE"

    def test_undetected_type(self, client, make_workbook):
        files = {"file": ("mystery.xlsx", make_workbook(["foo", "bar"], [["a", "b"]]), XLSX_TYPE)}
        response = client.post("/api/v1/upload", files=files, data={"mode": "append"})
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "UNDETECTED_TYPE"
        assert detail["details"]["stage"] == "detect"

    def test_storage_failure(self, client, store, tmp_path, tabarim_file):
        """Failure to keep the original file is a server error."""
        broken = ImporterService(store, BrokenBlobStore(tmp_path / "broken"))
        app.dependency_overrides[get_importer] = lambda: broken

        response = client.post("/api/v1/upload", files=tabarim_file, data={"context": "tabarim", "mode": "append"})
        assert response.status_code == 500
        assert response.json()["detail"]["details"]["stage"] == "store"
        assert store.count("tabarim") == 0


class TestListingEndpoints:

    def test_ingestion_logs(self, client, tabarim_file):
        client.post("/api/v1/upload", files=tabarim_file, data={"context": "tabarim", "mode": "append"})
        response = client.get("/api/v1/ingestion-logs", params={"limit": 5})
        assert response.status_code == 200
        logs = response.json()
        assert len(logs) == 1
        assert logs[0]["status"] == "completed"

    def test_records(self, client, tabarim_file):
        client.post("/api/v1/upload", files=tabarim_file, data={"context": "tabarim", "mode": "append"})
        response = client.get("/api/v1/records/tabarim", params={"limit": 2})
        body = response.json()
        assert body["total"] == 3
        assert len(body["records"]) == 2

    def test_undetected_records_not_found(self, client):
        assert client.get("/api/v1/records/undetected").status_code == 404

    def test_unknown_record_type(self, client):
        assert client.get("/api/v1/records/parking_tickets").status_code == 422
