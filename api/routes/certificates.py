"""
Certificate download routes.

GET /api/certificates/{certificate_id}/download?format=pdf|png
    Binary artifact. Served from the artifact cache when present, otherwise
    rendered through the fallback chain and cached. When every backend fails
    the response is HTTP 500 with manual alternatives.
GET /api/certificates/{certificate_id}/preview
    The composed HTML document, for viewing and printing in a browser.
GET /api/certificates/{certificate_id}/download-html
    The same document as an attachment.
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from api.deps import (
    get_artifact_storage,
    get_exporter,
    get_rate_limit_decorator,
    get_render_config,
    get_store,
)
from core.compose import compose_html, prepare_document
from core.config import RenderConfig
from core.errors import (
    ConfigurationError,
    InvalidOutputError,
    TemplateDataError,
    certificate_not_found_response,
    export_failure_response,
    invalid_format_response,
    service_unavailable_response,
)
from core.export import CertificateExporter, ExportFailure, validate_output
from core.logging import log_with_context
from core.models import CertificateData, ExportFormat
from core.store import ArtifactStorage, CertificateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/certificates", tags=["certificates"])

NO_CACHE = "no-cache, no-store, must-revalidate"


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and the UTF-8 name."""
    ascii_name = filename.encode("ascii", "ignore").decode("ascii") or "certificate"
    if ascii_name == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def read_cached_artifact(
    artifacts: ArtifactStorage, relative: Optional[str], fmt: ExportFormat, certificate_id: str
) -> Optional[bytes]:
    """Cached bytes that pass the format signature check; anything else is a cache miss."""
    try:
        cached = artifacts.read(relative)
        if cached is not None:
            validate_output(cached, fmt)
    except (OSError, InvalidOutputError) as e:
        logger.warning(f"Ignoring cached {fmt.value} for {certificate_id} at {relative}: {e}",
                       extra={"certificate_id": certificate_id})
        return None
    return cached


def binary_response(content: bytes, fmt: ExportFormat, filename: str) -> Response:
    return Response(
        content=content,
        media_type=fmt.media_type,
        headers={
            "Content-Disposition": content_disposition(filename),
            "Content-Length": str(len(content)),
            "Cache-Control": NO_CACHE,
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.get("/{certificate_id}/download")
@get_rate_limit_decorator()
async def download_certificate(
    request: Request,
    certificate_id: str,
    format: Optional[str] = Query("pdf", description="pdf or png"),
    store: CertificateStore = Depends(get_store),
    exporter: CertificateExporter = Depends(get_exporter),
    artifacts: ArtifactStorage = Depends(get_artifact_storage),
):
    """
    Download a certificate as PDF or PNG.

    A PDF request may be answered with a PNG when every PDF path failed;
    the Content-Type and filename always describe the bytes actually sent.
    """
    requested = (format or "pdf").strip().lower()
    try:
        fmt = ExportFormat(requested)
    except ValueError:
        return invalid_format_response(requested, [f.value for f in ExportFormat])

    try:
        record = await store.get_certificate(certificate_id)
    except ConfigurationError as e:
        logger.error(f"Certificate store unavailable: {e.message}")
        return service_unavailable_response(e)
    if record is None:
        return certificate_not_found_response(certificate_id)

    try:
        certificate = record.to_certificate_data()
    except TemplateDataError as e:
        logger.error(e.message, extra={"certificate_id": certificate_id, "details": e.details})
        failure = ExportFailure(certificate_id, fmt, reason=e.message)
        return export_failure_response(failure.to_payload())

    cached = read_cached_artifact(artifacts, record.artifact_path(fmt), fmt, certificate_id)
    if cached is not None:
        log_with_context(logger, "info", f"Serving cached {fmt.value} for {certificate_id}",
                         request=request, certificate_id=certificate_id)
        return binary_response(cached, fmt, certificate.export_filename(fmt))

    outcome = await exporter.export(certificate, fmt)
    if not outcome.ok:
        return export_failure_response(outcome.to_payload())

    try:
        relative = artifacts.write(certificate_id, outcome.format, outcome.content)
        await store.save_artifact_path(certificate_id, outcome.format, relative)
    except (OSError, ConfigurationError) as e:
        logger.warning(f"Could not cache {outcome.format.value} for {certificate_id}: {e}")

    log_with_context(
        logger, "info", f"Generated {outcome.format.value} for {certificate_id}",
        request=request,
        certificate_id=certificate_id,
        backend=outcome.backend,
        fallback_used=outcome.fallback_used,
        bytes=len(outcome.content),
    )
    return binary_response(outcome.content, outcome.format, outcome.filename)


async def _render_html(
    store: CertificateStore,
    config: RenderConfig,
    certificate_id: str,
):
    """Composed HTML for a certificate, or the JSON error response to return."""
    try:
        record = await store.get_certificate(certificate_id)
    except ConfigurationError as e:
        return None, None, service_unavailable_response(e)
    if record is None:
        return None, None, certificate_not_found_response(certificate_id)

    try:
        certificate: CertificateData = record.to_certificate_data()
    except TemplateDataError as e:
        return None, None, JSONResponse(status_code=500, content={"error": e.message, "code": 500})

    document = await prepare_document(certificate, config)
    return certificate, compose_html(document), None


@router.get("/{certificate_id}/preview", response_class=HTMLResponse)
async def preview_certificate(
    certificate_id: str,
    store: CertificateStore = Depends(get_store),
    config: RenderConfig = Depends(get_render_config),
):
    """Live HTML preview; identical to the document the browser backends render."""
    _, html, error = await _render_html(store, config, certificate_id)
    if error is not None:
        return error
    return HTMLResponse(content=html, headers={"Cache-Control": NO_CACHE})


@router.get("/{certificate_id}/download-html")
async def download_certificate_html(
    certificate_id: str,
    store: CertificateStore = Depends(get_store),
    config: RenderConfig = Depends(get_render_config),
):
    """Raw HTML download, the last manual path when binary export fails."""
    certificate, html, error = await _render_html(store, config, certificate_id)
    if error is not None:
        return error
    body = html.encode("utf-8")
    return Response(
        content=body,
        media_type="text/html; charset=utf-8",
        headers={
            "Content-Disposition": content_disposition(certificate.export_filename("html")),
            "Content-Length": str(len(body)),
            "Cache-Control": NO_CACHE,
            "X-Content-Type-Options": "nosniff",
        },
    )
