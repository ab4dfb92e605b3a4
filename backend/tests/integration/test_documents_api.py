"""Integration tests for the document storage API

Runs against local fallback storage (no S3 configured):
- Upload, download through the internal signed URL, delete
- Compliance uploads with version chains
- Listing, storage status, health and metrics
"""

import io

from fastapi.testclient import TestClient


def _upload(client: TestClient, content=b"%PDF-1.4\nlicense\n", filename="license.pdf", **form):
    return client.post(
        "/api/documents/upload",
        files={"file": (filename, io.BytesIO(content), "application/pdf")},
        data=form,
    )


class TestDocumentUploadAPI:
    """Integration tests for POST /api/documents/upload"""

    def test_upload_falls_back_to_local(self, client: TestClient):
        response = _upload(client, subject_id="42", category="licenses")

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["storage_type"] == "local"
        assert data["storage_key"].startswith("employees/42/licenses/")
        assert data["content_type"] == "application/pdf"

    def test_signed_url_download_round_trip(self, client: TestClient):
        key = _upload(client, content=b"%PDF-1.4\nbody\n", subject_id="7").json()["storage_key"]

        signed = client.get("/api/documents/signed-url", params={"key": key})
        assert signed.status_code == 200
        url = signed.json()["url"]
        assert url == f"/api/documents/download/local/{key}"
        assert signed.json()["expires_in"] is None

        download = client.get(url)
        assert download.status_code == 200
        assert download.content == b"%PDF-1.4\nbody\n"
        assert download.headers["content-type"] == "application/pdf"

    def test_traversal_filename_is_sanitized(self, client: TestClient):
        response = _upload(client, filename="../../../etc/passwd")

        assert response.status_code == 201
        key = response.json()["storage_key"]
        assert "../" not in key
        assert key.endswith("-passwd")

    def test_download_missing_key(self, client: TestClient):
        response = client.get("/api/documents/download/local/documents/missing.pdf")
        assert response.status_code == 404

    def test_delete_twice(self, client: TestClient):
        key = _upload(client).json()["storage_key"]

        assert client.delete(f"/api/documents/{key}").status_code == 200
        second = client.delete(f"/api/documents/{key}")
        assert second.status_code == 404
        assert second.json()["detail"].startswith("NoSuchKey")

    def test_list_by_prefix(self, client: TestClient):
        _upload(client, subject_id="1")
        _upload(client, subject_id="1")
        _upload(client, subject_id="2")

        response = client.get("/api/documents", params={"prefix": "employees/1/"})

        assert response.status_code == 200
        assert len(response.json()["files"]) == 2

    def test_request_id_echoed(self, client: TestClient):
        response = _upload(client)
        assert response.headers.get("X-Request-ID")
        echoed = client.get("/api/documents", headers={"X-Request-ID": "req-123"})
        assert echoed.headers["X-Request-ID"] == "req-123"


class TestComplianceUploadAPI:
    def test_version_chain(self, client: TestClient):
        first = client.post(
            "/api/documents/compliance",
            files={"file": ("fire.pdf", io.BytesIO(b"%PDF v1"), "application/pdf")},
            data={"document_type": "fire_inspection", "version": "1", "location_id": "loc-1"},
        )
        assert first.status_code == 201

        second = client.post(
            "/api/documents/compliance",
            files={"file": ("fire.pdf", io.BytesIO(b"%PDF v2"), "application/pdf")},
            data={
                "document_type": "fire_inspection",
                "version": "2",
                "location_id": "loc-1",
                "is_required": "true",
                "expiration_date": "2027-06-30",
                "previous_version_id": first.json()["storage_key"],
            },
        )

        assert second.status_code == 201
        data = second.json()
        assert data["version_id"].startswith("v2_")
        assert data["previous_version_key"] == first.json()["storage_key"]
        assert data["storage_key"].startswith("compliance/loc-1/fire_inspection/v2/")


class TestStorageStatusAndHealth:
    def test_storage_status_reports_local_mode(self, client: TestClient):
        response = client.get("/api/documents/storage/status")

        assert response.status_code == 200
        data = response.json()
        assert data["access"]["has_access"] is False
        assert data["stats"]["storage_type"] == "local"
        assert data["stats"]["is_configured"] is False

    def test_health_is_degraded_on_local_fallback(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["object_storage"]["status"] == "degraded"
        assert data["components"]["esignature_provider"]["status"] == "healthy"

    def test_metrics_exposed(self, client: TestClient):
        _upload(client)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "staffhub_storage_operations_total" in response.text

    def test_ready_after_startup(self, client: TestClient):
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}
