"""
Browser-driven export backends.

``BrowserPdfBackend`` prints the composed HTML to a single-page PDF whose page
box equals the certificate page; ``BrowserPngBackend`` screenshots the root
container at the configured device scale factor. Both open a fresh headless
session per render and close it whatever happens.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from core.browser import (
    BrowserGate,
    HeadlessRenderContext,
    PlaywrightRenderContext,
    PrintJob,
    RenderJob,
    ScreenshotJob,
    browser_session,
)
from core.compose import ROOT_SELECTOR, PreparedDocument, compose_html
from core.config import RenderConfig
from core.errors import CertificateRenderError, GenerationDisabledError, RenderFailedError
from core.models import ExportFormat

logger = logging.getLogger(__name__)

ContextFactory = Callable[[RenderConfig], HeadlessRenderContext]

_shared_gates = {}


def shared_gate(limit: int) -> BrowserGate:
    """Process-wide gate per concurrency limit."""
    gate = _shared_gates.get(limit)
    if gate is None:
        gate = _shared_gates[limit] = BrowserGate(limit)
    return gate


class BrowserBackend:
    """Shared session handling for the two DOM backends."""

    name = "browser"
    format = ExportFormat.PDF
    failure_message = "Generation failed"

    def __init__(
        self,
        config: RenderConfig,
        context_factory: Optional[ContextFactory] = None,
        gate: Optional[BrowserGate] = None,
    ):
        self.config = config
        self.context_factory = context_factory or PlaywrightRenderContext
        self.gate = gate if gate is not None else shared_gate(config.max_concurrent_browsers)

    @property
    def enabled(self) -> bool:
        raise NotImplementedError

    def build_job(self, document: PreparedDocument) -> RenderJob:
        raise NotImplementedError

    async def render(self, document: PreparedDocument) -> bytes:
        """
        Render a prepared document.

        Raises:
            GenerationDisabledError: backend switched off; no browser is launched
            ConfigurationError: no usable browser runtime
            RenderFailedError: launch, navigation or capture failed
        """
        if not self.enabled:
            raise GenerationDisabledError(self.name)

        html = compose_html(document)
        job = self.build_job(document)
        started = time.perf_counter()

        try:
            async with browser_session(self.context_factory(self.config), self.gate) as context:
                output = await context.render(html, job)
        except (asyncio.CancelledError, CertificateRenderError):
            raise
        except Exception as e:
            logger.error(
                f"{self.failure_message} for certificate {document.certificate_id}: {e}",
                extra={"certificate_id": document.certificate_id, "backend": self.name},
            )
            raise RenderFailedError(self.failure_message, {"backend": self.name, "reason": str(e)}) from e

        logger.info(
            f"{self.name} rendered certificate {document.certificate_id}",
            extra={
                "certificate_id": document.certificate_id,
                "backend": self.name,
                "bytes": len(output),
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return output


class BrowserPdfBackend(BrowserBackend):
    name = "browser-pdf"
    format = ExportFormat.PDF
    failure_message = "PDF generation failed"

    @property
    def enabled(self) -> bool:
        return self.config.browser_pdf_enabled

    def build_job(self, document: PreparedDocument) -> PrintJob:
        return PrintJob(width=document.width, height=document.height)


class BrowserPngBackend(BrowserBackend):
    name = "browser-png"
    format = ExportFormat.PNG
    failure_message = "PNG generation failed"

    @property
    def enabled(self) -> bool:
        return self.config.browser_png_enabled

    def build_job(self, document: PreparedDocument) -> ScreenshotJob:
        return ScreenshotJob(
            width=document.width,
            height=document.height,
            selector=ROOT_SELECTOR,
            viewport_padding=self.config.viewport_padding,
            device_scale_factor=self.config.device_scale_factor,
        )
