"""
Test Configuration and Shared Fixtures

Provides a render configuration that never touches the network or a real
browser, sample certificates, and an application wired to in-memory
collaborators.

Example usage:
    def test_download(client, store):
        response = client.get("/api/certificates/FOM-2025-ABC-0001/download")
"""

import os

os.environ.setdefault("CERT_TEST_DISABLE_RATELIMIT", "1")

import pytest
from fastapi.testclient import TestClient

from core.config import RenderConfig
from core.export import CertificateExporter
from core.models import ExportFormat
from tests.helpers import (
    FAKE_PDF,
    InMemoryCertificateStore,
    StaticBackend,
    make_certificate,
    make_record,
    png_bytes,
)


@pytest.fixture
def render_config():
    """
    Render configuration for tests: no remote image fetches, no settle delay.

    Returns:
        RenderConfig
    """
    return RenderConfig(
        inline_remote_images=False,
        settle_delay_ms=0,
        base_url="https://certs.example.org",
    )


@pytest.fixture
def certificate():
    return make_certificate()


@pytest.fixture
def store():
    """In-memory store holding the sample certificate."""
    return InMemoryCertificateStore(make_record())


@pytest.fixture
def stub_backends():
    """
    Scripted backends keyed by name, all succeeding.

    Returns:
        Dict of StaticBackend
    """
    return {
        "browser-pdf": StaticBackend("browser-pdf", ExportFormat.PDF, output=FAKE_PDF),
        "browser-png": StaticBackend("browser-png", ExportFormat.PNG, output=png_bytes(2400, 1800)),
        "direct-pdf": StaticBackend("direct-pdf", ExportFormat.PDF, output=FAKE_PDF),
    }


@pytest.fixture
def exporter(render_config, stub_backends):
    return CertificateExporter(render_config, backends=stub_backends)


@pytest.fixture
def client(render_config, store, exporter, tmp_path):
    """
    TestClient for an app using the in-memory store and stub exporter.

    Yields:
        TestClient
    """
    from app import create_app

    app = create_app(config=render_config, store=store, exporter=exporter, storage_dir=tmp_path)
    with TestClient(app) as test_client:
        yield test_client
