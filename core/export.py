"""
Format Fallback Orchestrator

Exports a certificate as PDF or PNG by walking an ordered chain of backends
until one produces a valid artifact:

    pdf  ->  primary PDF backend, browser PNG, direct PDF
    png  ->  browser PNG, browser PDF, direct PDF

The primary PDF backend is the browser print path unless the configuration
selects the direct-draw backend. Disabled backends are skipped and recorded.
Every output is validated (non-empty, correct file signature) before it is
returned. ``CertificateExporter.export`` never raises for a render problem:
the result is either an ``ExportResult`` or an ``ExportFailure`` carrying an
actionable payload with manual alternatives.

Example usage:
    from core.export import CertificateExporter
    from core.models import ExportFormat

    exporter = CertificateExporter(RenderConfig.from_env())
    outcome = await exporter.export(certificate, ExportFormat.PDF)
    if outcome.ok:
        Path(outcome.filename).write_bytes(outcome.content)
"""

import logging
import time
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, List, Optional, Union

from PIL import Image, UnidentifiedImageError

from core.compose import PreparedDocument, prepare_document
from core.config import RenderConfig
from core.errors import CertificateRenderError, GenerationDisabledError, InvalidOutputError
from core.models import CertificateData, ExportFormat
from core.render_browser import BrowserPdfBackend, BrowserPngBackend
from core.render_direct import DirectPdfBackend

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

CERTIFICATES_API_PREFIX = "/api/certificates"


@dataclass
class BackendAttempt:
    """Outcome of one backend in the chain."""
    backend: str
    format: ExportFormat
    status: str  # ok | disabled | failed | invalid
    error_code: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "format": self.format.value,
            "status": self.status,
            "errorCode": self.error_code,
            "message": self.message,
        }


@dataclass
class ExportResult:
    """A validated artifact."""
    certificate_id: str
    requested_format: ExportFormat
    format: ExportFormat
    content: bytes
    backend: str
    filename: str
    attempts: List[BackendAttempt] = field(default_factory=list)

    ok = True

    @property
    def fallback_used(self) -> bool:
        return self.format is not self.requested_format or len(self.attempts) > 1

    @property
    def media_type(self) -> str:
        return self.format.media_type


@dataclass
class ExportFailure:
    """Every backend failed; carries what the caller needs to show the user."""
    certificate_id: str
    requested_format: ExportFormat
    attempts: List[BackendAttempt] = field(default_factory=list)
    reason: Optional[str] = None

    ok = False

    def to_payload(self, api_prefix: str = CERTIFICATES_API_PREFIX) -> Dict[str, Any]:
        """
        Build the HTTP 500 body.

        Always lists three manual paths: print from the live preview, retry
        with the other format, download the raw HTML.
        """
        fmt = self.requested_format.value.upper()
        other = self.requested_format.alternate
        base = f"{api_prefix}/{self.certificate_id}"
        view_url = f"{base}/preview"
        reason = self.reason or (self.attempts[-1].message if self.attempts else "No export backend available")

        return {
            "error": f"{fmt} generation failed",
            "message": (
                f"Unable to generate {fmt}: {reason}\n"
                f"Please open the preview page and print to {fmt} using your browser,\n"
                f"or try downloading the certificate as {other.value.upper()}."
            ),
            "certificateId": self.certificate_id,
            "viewUrl": view_url,
            "alternatives": [
                {
                    "method": "preview-print",
                    "url": view_url,
                    "description": f"Open the live preview and use your browser's print dialog to save as {fmt}",
                },
                {
                    "method": f"download-{other.value}",
                    "url": f"{base}/download?format={other.value}",
                    "description": f"Retry the download as {other.value.upper()}",
                },
                {
                    "method": "download-html",
                    "url": f"{base}/download-html",
                    "description": "Download the certificate as a standalone HTML file",
                },
            ],
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


ExportOutcome = Union[ExportResult, ExportFailure]


def validate_output(content: Optional[bytes], fmt: ExportFormat) -> None:
    """Raise InvalidOutputError unless content is a non-empty file of the given format."""
    if not content:
        raise InvalidOutputError(f"Empty {fmt.value.upper()} output", {"format": fmt.value})
    signature = PDF_SIGNATURE if fmt is ExportFormat.PDF else PNG_SIGNATURE
    if not content.startswith(signature):
        raise InvalidOutputError(
            f"Output is not a valid {fmt.value.upper()} file",
            {"format": fmt.value, "leading_bytes": content[:8].hex()},
        )


def check_png_dimensions(content: bytes, document: PreparedDocument, device_scale_factor: float) -> None:
    """Log when a screenshot does not match the page size times the device scale factor."""
    expected = (round(document.width * device_scale_factor), round(document.height * device_scale_factor))
    try:
        with Image.open(BytesIO(content)) as image:
            actual = image.size
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not read PNG dimensions for {document.certificate_id}: {e}")
        return
    if actual != expected:
        logger.warning(
            f"PNG size {actual[0]}x{actual[1]} differs from expected {expected[0]}x{expected[1]}",
            extra={"certificate_id": document.certificate_id},
        )


class CertificateExporter:
    """Runs the fallback chain for one requested format."""

    def __init__(self, config: RenderConfig, backends: Optional[Dict[str, Any]] = None):
        self.config = config
        self.backends = backends if backends is not None else {
            "browser-pdf": BrowserPdfBackend(config),
            "browser-png": BrowserPngBackend(config),
            "direct-pdf": DirectPdfBackend(config),
        }

    def chain_for(self, fmt: ExportFormat) -> List[str]:
        """Backend names to try, in order, for a requested format."""
        primary_pdf = "direct-pdf" if self.config.pdf_backend == "direct" else "browser-pdf"
        if fmt is ExportFormat.PDF:
            names = [primary_pdf, "browser-png", "direct-pdf"]
        else:
            names = ["browser-png", "browser-pdf", "direct-pdf"]

        chain = []
        for name in names:
            if name in self.backends and name not in chain:
                chain.append(name)
        return chain

    async def export(self, certificate: CertificateData, fmt: ExportFormat) -> ExportOutcome:
        """
        Export a certificate, falling back across backends.

        Args:
            certificate: Render input
            fmt: Requested format

        Returns:
            ExportResult on success, ExportFailure when every backend failed
        """
        started = time.perf_counter()
        attempts: List[BackendAttempt] = []

        try:
            document = await prepare_document(certificate, self.config)
        except Exception as e:
            logger.error(
                f"Could not prepare certificate {certificate.id} for export: {e}",
                extra={"certificate_id": certificate.id, "format": fmt.value},
            )
            return ExportFailure(certificate.id, fmt, attempts, reason=f"template could not be prepared ({e})")

        for name in self.chain_for(fmt):
            backend = self.backends[name]
            try:
                content = await backend.render(document)
                validate_output(content, backend.format)
            except GenerationDisabledError as e:
                logger.info(f"Skipping {name}: {e.message}", extra={"certificate_id": certificate.id, "backend": name})
                attempts.append(BackendAttempt(name, backend.format, "disabled", e.error_code, e.message))
                continue
            except CertificateRenderError as e:
                status = "invalid" if isinstance(e, InvalidOutputError) else "failed"
                logger.warning(
                    f"{name} failed for certificate {certificate.id}: {e.message}",
                    extra={"certificate_id": certificate.id, "backend": name, "error_code": e.error_code},
                )
                attempts.append(BackendAttempt(name, backend.format, status, e.error_code, e.message))
                continue
            except Exception as e:
                logger.exception(
                    f"Unexpected error from {name} for certificate {certificate.id}",
                    extra={"certificate_id": certificate.id, "backend": name},
                )
                attempts.append(BackendAttempt(name, backend.format, "failed", "UNEXPECTED_ERROR", str(e)))
                continue

            if backend.format is ExportFormat.PNG:
                check_png_dimensions(content, document, self.config.device_scale_factor)

            attempts.append(BackendAttempt(name, backend.format, "ok"))
            result = ExportResult(
                certificate_id=certificate.id,
                requested_format=fmt,
                format=backend.format,
                content=content,
                backend=name,
                filename=certificate.export_filename(backend.format),
                attempts=attempts,
            )
            logger.info(
                f"Exported certificate {certificate.id} as {backend.format.value} via {name}"
                + (" (fallback)" if result.fallback_used else ""),
                extra={
                    "certificate_id": certificate.id,
                    "backend": name,
                    "format": backend.format.value,
                    "bytes": len(content),
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            return result

        logger.error(
            f"All export backends failed for certificate {certificate.id}",
            extra={"certificate_id": certificate.id, "format": fmt.value, "attempts": len(attempts)},
        )
        return ExportFailure(certificate.id, fmt, attempts)
