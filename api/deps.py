"""
Shared FastAPI dependencies.

The application keeps one render configuration, certificate store, exporter
and artifact storage on ``app.state``; routes receive them through these
dependencies so tests can swap any of them when building the app.
"""

import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import RenderConfig
from core.export import CertificateExporter
from core.store import ArtifactStorage, CertificateStore

RATE_LIMIT_PER_MIN = int(os.environ.get("RATE_LIMIT_PER_MIN", "30"))

limiter = Limiter(key_func=get_remote_address)


def get_rate_limit_decorator():
    """
    Rate limit decorator for render endpoints, disabled when
    CERT_TEST_DISABLE_RATELIMIT is set.

    Example:
        @router.get("/{certificate_id}/download")
        @get_rate_limit_decorator()
        async def download(request: Request, ...):
            ...
    """
    if os.environ.get("CERT_TEST_DISABLE_RATELIMIT", "").lower() in ["1", "true"]:
        def no_limit_decorator(func):
            return func
        return no_limit_decorator
    return limiter.limit(f"{RATE_LIMIT_PER_MIN}/minute")


def get_render_config(request: Request) -> RenderConfig:
    return request.app.state.render_config


def get_store(request: Request) -> CertificateStore:
    return request.app.state.store


def get_exporter(request: Request) -> CertificateExporter:
    return request.app.state.exporter


def get_artifact_storage(request: Request) -> ArtifactStorage:
    return request.app.state.artifacts
