"""
Structured JSON logging for the certificate rendering service.

Every record is emitted as one JSON object. Fields passed through ``extra=``
(certificate_id, backend, format, bytes, duration_ms, request_id, ...) become
top-level keys so render events can be filtered by certificate or backend.

Example usage:
    >>> from core.logging import get_logger, setup_logging
    >>> setup_logging(level="DEBUG")
    >>> logger = get_logger(__name__)
    >>> logger.info("Rendered", extra={"certificate_id": "FOM-2025-ABC-0001", "backend": "browser-pdf"})
"""

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Attributes every LogRecord carries; anything else came from extra=
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

REQUEST_ID_HEADER = "X-Request-ID"


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Example:
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(JSONFormatter())
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request with status and timing and tag the response with a request id.

    An incoming ``X-Request-ID`` header is reused so ids can be correlated
    across services; otherwise a short random id is generated.
    """

    def __init__(self, app, logger_name: str = "certrender.requests"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        client_ip = self._get_client_ip(request)
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": client_ip,
        }
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    **context,
                    "status": 500,
                    "duration_ms": int((time.perf_counter() - start_time) * 1000),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        self.logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={
                **context,
                "status": response.status_code,
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
                "query_params": str(request.query_params) if request.query_params else None,
            },
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
        if request.client:
            return request.client.host
        return "unknown"


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    logger_name: Optional[str] = None,
) -> None:
    """
    Configure logging for the service.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        format_type: "json" for structured output, anything else for plain text
        logger_name: Logger to configure; the root logger when None
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_type.lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)

    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    if logger_name:
        logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    request: Optional[Request] = None,
    **kwargs,
) -> None:
    """
    Log a message carrying the current request's id and path.

    Example:
        >>> log_with_context(logger, "info", "Served cached artifact", request=request, certificate_id=cid)
    """
    extra_fields = dict(kwargs)
    if request is not None:
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            extra_fields["request_id"] = request_id
        extra_fields["path"] = request.url.path
        extra_fields["method"] = request.method

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(message, extra=extra_fields)
