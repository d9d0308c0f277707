"""
HTTP route tests for download, preview and verification.

Example usage:
    pytest tests/test_api.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from core.errors import ConfigurationError, RenderFailedError
from core.export import PNG_SIGNATURE
from core.models_sql import CertificateStatus
from core.store import CertificateStore
from tests.helpers import FAKE_PDF, make_record

CERT_ID = "FOM-2025-ABC-0001"


class UnavailableStore(CertificateStore):
    async def get_certificate(self, certificate_id):
        raise ConfigurationError("DATABASE_URL is not set")

    async def get_by_verification_id(self, verification_id):
        raise ConfigurationError("DATABASE_URL is not set")

    async def save_artifact_path(self, certificate_id, fmt, path):
        raise ConfigurationError("DATABASE_URL is not set")


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "certrender"
        assert data["backends"]["primaryPdf"] == "browser"

    def test_request_id_generated(self, client):
        response = client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 8

    def test_request_id_propagated(self, client):
        response = client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"


class TestDownload:
    def test_pdf_download(self, client):
        response = client.get(f"/api/certificates/{CERT_ID}/download?format=pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="Baptism-Ada-Lovelace.pdf"'
        assert response.headers["content-length"] == str(len(FAKE_PDF))
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.content == FAKE_PDF

    def test_pdf_is_default_format(self, client):
        response = client.get(f"/api/certificates/{CERT_ID}/download")
        assert response.headers["content-type"] == "application/pdf"

    def test_png_download(self, client):
        response = client.get(f"/api/certificates/{CERT_ID}/download?format=PNG")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-disposition"].endswith('filename="Baptism-Ada-Lovelace.png"')
        assert response.content.startswith(PNG_SIGNATURE)

    def test_pdf_request_answered_with_png_fallback(self, client, stub_backends):
        stub_backends["browser-pdf"].error = RenderFailedError("PDF generation failed")

        response = client.get(f"/api/certificates/{CERT_ID}/download?format=pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-disposition"].endswith('.png"')

    def test_generated_artifact_is_cached(self, client, store, stub_backends, tmp_path):
        first = client.get(f"/api/certificates/{CERT_ID}/download")
        second = client.get(f"/api/certificates/{CERT_ID}/download")

        assert first.content == second.content == FAKE_PDF
        assert stub_backends["browser-pdf"].calls == 1
        assert store.saved_paths[0][2] == f"certificates/{CERT_ID}.pdf"
        assert (tmp_path / "certificates" / f"{CERT_ID}.pdf").read_bytes() == FAKE_PDF

    def test_missing_cached_file_is_regenerated(self, client, store, stub_backends):
        store.records[CERT_ID] = store.records[CERT_ID].model_copy(update={"pdf_path": "certificates/gone.pdf"})

        response = client.get(f"/api/certificates/{CERT_ID}/download")

        assert response.status_code == 200
        assert stub_backends["browser-pdf"].calls == 1

    def test_corrupt_cached_file_is_regenerated(self, client, store, stub_backends, tmp_path):
        cached = tmp_path / "certificates" / f"{CERT_ID}.pdf"
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"%PD")
        store.records[CERT_ID] = store.records[CERT_ID].model_copy(
            update={"pdf_path": f"certificates/{CERT_ID}.pdf"}
        )

        response = client.get(f"/api/certificates/{CERT_ID}/download")

        assert response.status_code == 200
        assert response.content == FAKE_PDF
        assert stub_backends["browser-pdf"].calls == 1
        assert cached.read_bytes() == FAKE_PDF

    def test_unreadable_cache_is_a_miss(self, client, store, stub_backends, monkeypatch):
        def unreadable(self, relative):
            raise PermissionError(f"Permission denied: {relative}")

        monkeypatch.setattr("core.store.ArtifactStorage.read", unreadable)
        store.records[CERT_ID] = store.records[CERT_ID].model_copy(
            update={"pdf_path": f"certificates/{CERT_ID}.pdf"}
        )

        response = client.get(f"/api/certificates/{CERT_ID}/download")

        assert response.status_code == 200
        assert response.content == FAKE_PDF
        assert stub_backends["browser-pdf"].calls == 1

    def test_non_ascii_filename(self, client, store):
        store.records[CERT_ID] = make_record(recipientFirstName="José")

        response = client.get(f"/api/certificates/{CERT_ID}/download")

        disposition = response.headers["content-disposition"]
        assert 'filename="Baptism-Jos-Lovelace.pdf"' in disposition
        assert "filename*=UTF-8''Baptism-Jos%C3%A9-Lovelace.pdf" in disposition

    def test_total_failure_returns_actionable_500(self, client, stub_backends):
        for backend in stub_backends.values():
            backend.error = RenderFailedError(f"{backend.name} failed")

        response = client.get(f"/api/certificates/{CERT_ID}/download?format=pdf")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "PDF generation failed"
        assert data["certificateId"] == CERT_ID
        assert data["viewUrl"] == f"/api/certificates/{CERT_ID}/preview"
        assert [alt["method"] for alt in data["alternatives"]] == [
            "preview-print", "download-png", "download-html",
        ]
        assert len(data["attempts"]) == 3

    def test_corrupt_template_returns_500_payload(self, client, store, stub_backends):
        store.records[CERT_ID] = make_record(templateData={"elements": [{"id": "x", "type": "video"}]})

        response = client.get(f"/api/certificates/{CERT_ID}/download")

        assert response.status_code == 500
        assert "is invalid" in response.json()["message"]
        assert stub_backends["browser-pdf"].calls == 0

    def test_unknown_certificate(self, client):
        response = client.get("/api/certificates/NOPE/download")
        assert response.status_code == 404
        assert response.json()["error"] == "Certificate not found"

    def test_unsupported_format(self, client):
        response = client.get(f"/api/certificates/{CERT_ID}/download?format=gif")
        assert response.status_code == 400
        data = response.json()
        assert data["format"] == "gif"
        assert data["supported_formats"] == ["pdf", "png"]


class TestHtmlRoutes:
    def test_preview(self, client):
        response = client.get(f"/api/certificates/{CERT_ID}/preview")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert 'id="certificate-root"' in response.text
        assert "Ada Lovelace" in response.text

    def test_download_html(self, client):
        response = client.get(f"/api/certificates/{CERT_ID}/download-html")

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="Baptism-Ada-Lovelace.html"'
        assert response.text.startswith("<!DOCTYPE html>")

    def test_preview_unknown(self, client):
        assert client.get("/api/certificates/NOPE/preview").status_code == 404


class TestVerify:
    def test_valid(self, client):
        response = client.get("/api/certificates/verify/verify-0001")

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["message"] == "Certificate is valid"
        certificate = data["certificate"]
        assert certificate["id"] == CERT_ID
        assert certificate["recipient"] == {"firstName": "Ada", "lastName": "Lovelace"}
        assert certificate["template"]["name"] == "Baptism"
        assert certificate["issuer"] == {"firstName": "Hetawk", "lastName": ""}
        assert certificate["verificationUrl"] == \
            "https://certs.example.org/community/verify-certificate?id=verify-0001"

    def test_issuer_from_authorizing_official(self, client, store):
        store.records[CERT_ID] = make_record(certificateData={"authorizingOfficial": "Rev. Grace Hopper"})
        issuer = client.get("/api/certificates/verify/verify-0001").json()["certificate"]["issuer"]
        assert issuer == {"firstName": "Rev.", "lastName": "Grace Hopper"}

    def test_revoked(self, client, store):
        store.records[CERT_ID] = make_record(status=CertificateStatus.REVOKED)
        data = client.get("/api/certificates/verify/verify-0001").json()
        assert data["valid"] is False
        assert data["message"] == "This certificate has been revoked"
        assert data["certificate"]["status"] == "revoked"

    def test_expired_by_date(self, client, store):
        store.records[CERT_ID] = make_record(expiryDate=datetime.now(timezone.utc) - timedelta(days=1))
        data = client.get("/api/certificates/verify/verify-0001").json()
        assert data["valid"] is False
        assert data["message"] == "This certificate has expired"

    def test_unknown(self, client):
        response = client.get("/api/certificates/verify/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"valid": False, "message": "Certificate not found or invalid"}


@pytest.mark.parametrize("path", [
    f"/api/certificates/{CERT_ID}/download",
    f"/api/certificates/{CERT_ID}/preview",
    "/api/certificates/verify/verify-0001",
])
def test_store_unavailable_returns_503(render_config, exporter, tmp_path, path):
    from app import create_app

    app = create_app(config=render_config, store=UnavailableStore(), exporter=exporter, storage_dir=tmp_path)
    with TestClient(app) as client:
        response = client.get(path)

    assert response.status_code == 503
    assert response.json()["errorCode"] == "CONFIGURATION_ERROR"
