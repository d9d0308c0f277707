"""
Certificate Rendering Service - FastAPI Application

HTTP entry point for downloading issued certificates as PDF or PNG, previewing
them as HTML and verifying them from their QR code.

Example usage:
    # Start the server
    uvicorn app:app --host 0.0.0.0 --port 8000 --reload

    # Download a certificate
    curl -OJ "http://localhost:8000/api/certificates/FOM-2025-ABC-0001/download?format=pdf"

    # Health check
    curl http://localhost:8000/health
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.deps import limiter
from api.routes.certificates import router as certificates_router
from api.routes.verify import router as verify_router
from core import __version__
from core.config import RenderConfig
from core.db import close_db, init_db
from core.export import CertificateExporter
from core.logging import RequestLoggingMiddleware, get_logger, setup_logging
from core.store import ArtifactStorage, CertificateStore, SqlCertificateStore

# Initialize structured logging
setup_logging(level=os.environ.get("LOG_LEVEL", "INFO"), format_type=os.environ.get("LOG_FORMAT", "json"))
logger = get_logger(__name__)

# Environment configuration
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()]
STORAGE_DIR = Path(os.environ.get("CERT_STORAGE_DIR", "storage"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.environ.get("DATABASE_URL"):
        await init_db()
        logger.info("Database tables ready")
    yield
    await close_db()
    logger.info("Certificate service stopped")


def create_app(
    config: Optional[RenderConfig] = None,
    store: Optional[CertificateStore] = None,
    exporter: Optional[CertificateExporter] = None,
    storage_dir: Optional[Path] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        config: Render configuration; read from the environment when omitted
        store: Certificate store; SQL-backed when omitted
        exporter: Export orchestrator; built from config when omitted
        storage_dir: Root for cached artifacts

    Example:
        >>> app = create_app(config=RenderConfig(browser_pdf_enabled=False))
    """
    config = config or RenderConfig.from_env()

    tags_metadata = [
        {"name": "certificates", "description": "Certificate download and preview"},
        {"name": "verify", "description": "Public certificate verification"},
        {"name": "health", "description": "System health and status endpoints"},
    ]

    app = FastAPI(
        title="Certificate Rendering Service",
        description="Render issued certificates to PDF, PNG and HTML",
        version=__version__,
        docs_url="/api-docs",
        redoc_url="/redoc",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )

    app.state.render_config = config
    app.state.store = store or SqlCertificateStore()
    app.state.exporter = exporter or CertificateExporter(config)
    app.state.artifacts = ArtifactStorage(storage_dir or STORAGE_DIR)

    # With credentials, browsers require explicit origins (not *)
    _allow_origins = CORS_ORIGINS if CORS_ORIGINS != ["*"] else ["http://localhost:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
        max_age=3600,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Verification paths are more specific than /{certificate_id}/...
    app.include_router(verify_router)
    app.include_router(certificates_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> JSONResponse:
        """
        Health check endpoint for monitoring and load balancer readiness.

        Example:
            >>> # GET /health
            >>> {"status": "healthy", "service": "certrender", "version": "0.1.0", "backends": {...}}
        """
        health_data: Dict[str, Any] = {
            "status": "healthy",
            "service": "certrender",
            "version": __version__,
            "backends": {
                "browser-pdf": config.browser_pdf_enabled,
                "browser-png": config.browser_png_enabled,
                "direct-pdf": config.direct_pdf_enabled,
                "primaryPdf": config.pdf_backend,
            },
        }
        return JSONResponse(content=health_data, status_code=200)

    logger.info(
        "Certificate service configured",
        extra={
            "browser_pdf": config.browser_pdf_enabled,
            "browser_png": config.browser_png_enabled,
            "direct_pdf": config.direct_pdf_enabled,
            "pdf_backend": config.pdf_backend,
        },
    )
    return app


# Create the main app instance
app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
        log_level="info",
    )
