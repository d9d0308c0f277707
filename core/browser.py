"""
Headless browser sessions for the DOM-based export backends.

A ``HeadlessRenderContext`` is one isolated browser session: it is opened,
used for exactly one render and closed. Closing is guaranteed by
``browser_session`` on success, failure and task cancellation, so a render can
never leak a browser process.

``PlaywrightRenderContext`` drives Chromium through Playwright's async API.
Tests substitute a fake context implementing the same three methods.

Example usage:
    from core.browser import PlaywrightRenderContext, PrintJob, browser_session

    async with browser_session(PlaywrightRenderContext(config)) as context:
        pdf_bytes = await context.render(html, PrintJob(width=800, height=600))
"""

import asyncio
import logging
import math
import weakref
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from core.config import RenderConfig
from core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Resolves once web fonts are ready and every image has loaded, errored or
# timed out; returns the number of images that did not load.
WAIT_FOR_ASSETS_JS = """
async (timeoutMs) => {
  if (document.fonts && document.fonts.ready) {
    await document.fonts.ready;
  }
  const images = Array.from(document.images);
  const results = await Promise.all(images.map((img) => {
    if (img.complete) {
      return Promise.resolve(img.naturalWidth > 0);
    }
    return new Promise((resolve) => {
      const timer = setTimeout(() => resolve(false), timeoutMs);
      img.addEventListener('load', () => { clearTimeout(timer); resolve(true); }, { once: true });
      img.addEventListener('error', () => { clearTimeout(timer); resolve(false); }, { once: true });
    });
  }));
  return results.filter((ok) => !ok).length;
}
"""


@dataclass(frozen=True)
class PrintJob:
    """Print the whole document as a single page of exactly width x height px."""
    width: float
    height: float


@dataclass(frozen=True)
class ScreenshotJob:
    """Screenshot the root container at a device scale factor."""
    width: float
    height: float
    selector: str
    viewport_padding: int = 40
    device_scale_factor: float = 3


RenderJob = Union[PrintJob, ScreenshotJob]


class HeadlessRenderContext(ABC):
    """One isolated headless browser session."""

    @abstractmethod
    async def open(self) -> None:
        """Start the browser. Raises ConfigurationError when no runtime is available."""

    @abstractmethod
    async def render(self, html: str, job: RenderJob) -> bytes:
        """Load html, wait for its assets and produce the job's output bytes."""

    @abstractmethod
    async def close(self) -> None:
        """Release every resource held by the session. Must be safe to call twice."""


class PlaywrightRenderContext(HeadlessRenderContext):
    """Chromium session driven through Playwright."""

    def __init__(self, config: RenderConfig):
        self.config = config
        self._playwright = None
        self._browser = None
        self._context = None

    async def open(self) -> None:
        self._playwright = await async_playwright().start()
        launch_options = {"headless": True, "args": list(self.config.browser_args)}
        if self.config.browser_executable:
            launch_options["executable_path"] = self.config.browser_executable
        try:
            self._browser = await self._playwright.chromium.launch(**launch_options)
        except PlaywrightError as e:
            raise ConfigurationError(
                "Headless browser could not be launched",
                {"executable": self.config.browser_executable, "reason": str(e)},
            ) from e
        logger.debug(f"Launched headless browser (executable={self.config.browser_executable or 'bundled'})")

    async def render(self, html: str, job: RenderJob) -> bytes:
        if self._browser is None:
            raise RuntimeError("Browser session is not open")

        if isinstance(job, ScreenshotJob):
            viewport = {
                "width": math.ceil(job.width) + job.viewport_padding,
                "height": math.ceil(job.height) + job.viewport_padding,
            }
            scale = job.device_scale_factor
        else:
            viewport = {"width": math.ceil(job.width), "height": math.ceil(job.height)}
            scale = 1

        self._context = await self._browser.new_context(viewport=viewport, device_scale_factor=scale)
        page = await self._context.new_page()
        page.set_default_timeout(self.config.navigation_timeout_ms)

        await page.set_content(html, wait_until="load", timeout=self.config.navigation_timeout_ms)
        failed_images = await page.evaluate(WAIT_FOR_ASSETS_JS, self.config.asset_timeout_ms)
        if failed_images:
            logger.warning(f"{failed_images} image(s) failed to load before capture")
        if self.config.settle_delay_ms:
            await asyncio.sleep(self.config.settle_delay_ms / 1000)

        if isinstance(job, PrintJob):
            await page.emulate_media(media="print")
            return await page.pdf(
                width=f"{job.width}px",
                height=f"{job.height}px",
                print_background=True,
                margin={"top": "0", "right": "0", "bottom": "0", "left": "0"},
                scale=1,
                prefer_css_page_size=True,
            )

        element = await page.query_selector(job.selector)
        if element is None:
            raise RuntimeError(f"Container {job.selector} not found in rendered document")
        return await element.screenshot(type="png", omit_background=False)

    async def close(self) -> None:
        for name in ("_context", "_browser"):
            resource = getattr(self, name)
            setattr(self, name, None)
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as e:
                logger.error(f"Error closing browser {name.strip('_')}: {e}")
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            try:
                await playwright.stop()
            except PlaywrightError as e:
                logger.error(f"Error stopping Playwright: {e}")


class BrowserGate:
    """
    Caps the number of browser sessions open at the same time.

    One semaphore is kept per event loop, so a process-wide gate can be shared
    by applications and tests that each run their own loop.
    """

    def __init__(self, limit: int):
        self.limit = limit
        self._semaphores = weakref.WeakKeyDictionary()

    def _semaphore(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        semaphore = self._semaphores.get(loop)
        if semaphore is None:
            semaphore = self._semaphores[loop] = asyncio.Semaphore(self.limit)
        return semaphore

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._semaphore():
            yield


@asynccontextmanager
async def browser_session(
    context: HeadlessRenderContext,
    gate: Optional[BrowserGate] = None,
) -> AsyncIterator[HeadlessRenderContext]:
    """
    Open a render context and always close it.

    The context is closed when the body finishes, raises, or the surrounding
    task is cancelled. Closing is shielded so cancellation cannot interrupt it.
    A failed close is logged and never replaces the body's result or error.
    """
    if gate is not None:
        async with gate.slot():
            async with browser_session(context) as session:
                yield session
        return

    try:
        await context.open()
        yield context
    finally:
        try:
            await asyncio.shield(context.close())
        except Exception as e:
            logger.error(
                f"Failed to close render context: {e}",
                extra={"context": type(context).__name__},
                exc_info=True,
            )
