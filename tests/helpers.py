"""
Test helpers for the certificate rendering pipeline.

Provides sample certificate data, an in-memory certificate store, a fake
headless browser context that records every session it opens, and stub
export backends with scripted results.

Example usage:
    tracker = ContextTracker()
    backend = BrowserPdfBackend(config, context_factory=fake_context_factory(tracker))
    await backend.render(document)
    assert tracker.live == 0
"""

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Dict, List, Optional

from PIL import Image

from core.browser import HeadlessRenderContext, RenderJob
from core.models import CertificateData, ExportFormat
from core.models_sql import CertificateStatus
from core.store import CertificateRecord, CertificateStore

FAKE_PDF = b"%PDF-1.4\n% fake\n%%EOF\n"

SAMPLE_TEMPLATE: Dict[str, Any] = {
    "pageSettings": {
        "width": 800,
        "height": 600,
        "background": {"color": "#fffdf5", "border": "2px solid #2563eb"},
    },
    "elements": [
        {
            "id": "frame",
            "type": "shape",
            "content": "",
            "position": {"x": 20, "y": 20, "width": 760, "height": 560},
            "style": {"backgroundColor": "#f8fafc", "opacity": 0.5},
        },
        {
            "id": "title",
            "type": "text",
            "content": "Certificate of Baptism",
            "position": {"x": 100, "y": 60, "width": 600, "height": 60},
            "style": {"fontSize": "36px", "fontWeight": "bold", "textAlign": "center", "color": "#1e3a8a"},
        },
        {
            "id": "recipient",
            "type": "text",
            "content": "This certifies that {{recipientName}} was baptised",
            "position": {"x": 100, "y": 200, "width": 600, "height": 50},
            "style": {"fontSize": "24px", "textAlign": "center"},
        },
        {
            "id": "certificate-id",
            "type": "text",
            "content": "Certificate ID: {{certificateId}}",
            "position": {"x": 40, "y": 520, "width": 360, "height": 30},
            "style": {"fontSize": 12},
        },
        {
            "id": "issuer",
            "type": "text",
            "content": "Issued by {issuerName} on {{issueDate}}",
            "position": {"x": 400, "y": 520, "width": 360, "height": 30},
            "style": {"fontSize": "12px", "textAlign": "right"},
        },
        {
            "id": "qr",
            "type": "qr",
            "content": "{{qrCode}}",
            "position": {"x": 660, "y": 400, "width": 100, "height": 100},
            "style": {},
        },
    ],
}


def sample_template_data() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_TEMPLATE)


def make_certificate(**overrides) -> CertificateData:
    """Build a CertificateData from camelCase overrides on top of the sample."""
    data = {
        "id": "FOM-2025-ABC-0001",
        "templateName": "Baptism",
        "recipientFirstName": "Ada",
        "recipientLastName": "Lovelace",
        "recipientEmail": "ada@example.com",
        "issueDate": "2025-06-13T10:00:00Z",
        "templateData": sample_template_data(),
        "verificationId": "verify-0001",
    }
    data.update(overrides)
    return CertificateData.model_validate(data)


def make_record(**overrides) -> CertificateRecord:
    data = {
        "id": "FOM-2025-ABC-0001",
        "templateName": "Baptism",
        "recipientFirstName": "Ada",
        "recipientLastName": "Lovelace",
        "recipientEmail": "ada@example.com",
        "issueDate": datetime(2025, 6, 13, tzinfo=timezone.utc),
        "status": CertificateStatus.ACTIVE,
        "verificationId": "verify-0001",
        "certificateData": None,
        "templateData": sample_template_data(),
    }
    data.update(overrides)
    return CertificateRecord.model_validate(data)


def png_bytes(width: int, height: int, color: str = "white") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class InMemoryCertificateStore(CertificateStore):
    """Dict-backed store recording artifact path updates."""

    def __init__(self, *records: CertificateRecord):
        self.records = {record.id: record for record in records}
        self.saved_paths: List[tuple] = []

    async def get_certificate(self, certificate_id: str) -> Optional[CertificateRecord]:
        return self.records.get(certificate_id)

    async def get_by_verification_id(self, verification_id: str) -> Optional[CertificateRecord]:
        for record in self.records.values():
            if record.verification_id == verification_id:
                return record
        return None

    async def save_artifact_path(self, certificate_id: str, fmt: ExportFormat, path: str) -> None:
        self.saved_paths.append((certificate_id, fmt, path))
        record = self.records[certificate_id]
        field_name = "pdf_path" if fmt is ExportFormat.PDF else "png_path"
        self.records[certificate_id] = record.model_copy(update={field_name: path})


@dataclass
class ContextTracker:
    """Shared counters for every FakeRenderContext created by one factory."""
    opened: int = 0
    closed: int = 0
    live: int = 0
    peak: int = 0
    jobs: List[RenderJob] = field(default_factory=list)
    html: List[str] = field(default_factory=list)


class FakeRenderContext(HeadlessRenderContext):
    def __init__(
        self,
        tracker: ContextTracker,
        output: bytes = FAKE_PDF,
        open_error: Optional[Exception] = None,
        render_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
        delay: float = 0,
    ):
        self.tracker = tracker
        self.output = output
        self.open_error = open_error
        self.render_error = render_error
        self.close_error = close_error
        self.delay = delay
        self.is_open = False
        self.is_closed = False

    async def open(self) -> None:
        self.tracker.opened += 1
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True
        self.tracker.live += 1
        self.tracker.peak = max(self.tracker.peak, self.tracker.live)

    async def render(self, html: str, job: RenderJob) -> bytes:
        self.tracker.jobs.append(job)
        self.tracker.html.append(html)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.render_error is not None:
            raise self.render_error
        return self.output

    async def close(self) -> None:
        if self.is_closed:
            return
        self.is_closed = True
        self.tracker.closed += 1
        if self.is_open:
            self.tracker.live -= 1
        if self.close_error is not None:
            raise self.close_error


def fake_context_factory(tracker: ContextTracker, **kwargs):
    return lambda config: FakeRenderContext(tracker, **kwargs)


class StaticBackend:
    """Backend stub returning scripted bytes or raising a scripted error."""

    def __init__(self, name: str, fmt: ExportFormat, output: Optional[bytes] = None,
                 error: Optional[BaseException] = None):
        self.name = name
        self.format = fmt
        self.output = output
        self.error = error
        self.calls = 0

    async def render(self, document) -> bytes:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.output
