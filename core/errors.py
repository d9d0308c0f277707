"""Centralized error taxonomy and response helpers for certificate rendering."""

from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse


class CertificateRenderError(Exception):
    """Base class for every rendering failure surfaced to the orchestrator."""

    error_code = "RENDER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(CertificateRenderError):
    """
    The environment cannot run a backend (no browser runtime, no database URL).

    Never retried by the backend itself; the orchestrator routes to a fallback.
    """

    error_code = "CONFIGURATION_ERROR"


class GenerationDisabledError(ConfigurationError):
    """Raised before launch when a backend is switched off by configuration."""

    error_code = "GENERATION_DISABLED"

    def __init__(self, backend: str):
        super().__init__(
            f"{backend} generation is disabled in this environment",
            {"backend": backend},
        )


class TemplateDataError(CertificateRenderError):
    """Stored template JSON could not be turned into a renderable document."""

    error_code = "TEMPLATE_DATA_ERROR"


class RenderFailedError(CertificateRenderError):
    """Launch, navigation, print or drawing failed inside a backend."""

    error_code = "RENDER_FAILED"


class InvalidOutputError(CertificateRenderError):
    """A backend returned an empty buffer or one with the wrong file signature."""

    error_code = "INVALID_OUTPUT"


def certificate_not_found_response(certificate_id: str) -> JSONResponse:
    """Create response for an unknown certificate id."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "Certificate not found",
            "code": 404,
            "certificateId": certificate_id,
        },
    )


def invalid_format_response(requested: str, supported: List[str]) -> JSONResponse:
    """Create response for an unsupported export format."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "Unsupported format",
            "code": 400,
            "format": requested,
            "supported_formats": supported,
            "hints": [
                f"Use one of: {', '.join(supported)}",
                "Omit the format parameter to download a PDF",
            ],
        },
    )


def export_failure_response(payload: Dict[str, Any]) -> JSONResponse:
    """Create the HTTP 500 response for an export whose every backend failed."""
    return JSONResponse(status_code=500, content=payload)


def service_unavailable_response(error: CertificateRenderError) -> JSONResponse:
    """Create response for a dependency the service cannot reach (database, storage)."""
    return JSONResponse(
        status_code=503,
        content={
            "error": "Service unavailable",
            "code": 503,
            "message": error.message,
            "errorCode": error.error_code,
        },
    )
