"""
Direct-draw PDF backend.

Draws the certificate straight onto a ReportLab canvas without a browser. It
is the last resort in the fallback chain and the only backend that works on
hosts without a headless browser runtime. Output is lower fidelity: only the
page background and border, text elements, shapes and raster images are
drawn, and only the fontSize/fontWeight/color/textAlign/backgroundColor style
subset is honoured. Text markup is stripped.

Coordinates: the template uses top-left origin px; ReportLab uses bottom-left
origin points. Every length is multiplied by ``PX_TO_PT`` (96 DPI -> 72 DPI)
and y is flipped against the page height.
"""

import asyncio
import base64
import binascii
import logging
import re
import time
from io import BytesIO
from typing import Optional, Tuple

from reportlab.lib.colors import Color, HexColor
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from core.compose import PreparedDocument, plain_text
from core.config import RenderConfig
from core.errors import CertificateRenderError, GenerationDisabledError, RenderFailedError
from core.models import ElementType, ExportFormat, TemplateElement
from core.styles import extract_number, hex_to_rgb, resolve_pdf_text_style

logger = logging.getLogger(__name__)

PX_TO_PT = 0.75

DEFAULT_BORDER_COLOR = "#2563eb"
DEFAULT_BORDER_WIDTH = 2  # px
TEXT_PADDING = 5  # pt on each side of a text box
PLACEHOLDER_FILL = HexColor("#f3f4f6")
PLACEHOLDER_STROKE = HexColor("#9ca3af")
PLACEHOLDER_TEXT = HexColor("#6b7280")

_RASTER_DATA_URI = re.compile(r"^data:image/(png|jpe?g|gif|bmp);base64,(.+)$", re.IGNORECASE | re.DOTALL)
_HEX_IN_TEXT = re.compile(r"#(?:[0-9a-f]{6}|[0-9a-f]{3})\b", re.IGNORECASE)
_PX_IN_TEXT = re.compile(r"(?<![\w.#])(\d+(?:\.\d+)?)px\b", re.IGNORECASE)


def _rgb(triple: Tuple[int, int, int], alpha: float = 1) -> Color:
    return Color(triple[0] / 255, triple[1] / 255, triple[2] / 255, alpha=alpha)


def _border_color(border: Optional[str], border_color: Optional[str]) -> Tuple[int, int, int]:
    rgb = hex_to_rgb(border_color)
    if rgb is None and border:
        match = _HEX_IN_TEXT.search(border)
        rgb = hex_to_rgb(match.group(0)) if match else None
    return rgb or hex_to_rgb(DEFAULT_BORDER_COLOR)


def _border_width(border: Optional[str], border_width: Optional[float]) -> float:
    """Page border width in px: explicit width, then the shorthand's px length, then the default."""
    if border_width is not None:
        return border_width
    match = _PX_IN_TEXT.search(border or "")
    return float(match.group(1)) if match else DEFAULT_BORDER_WIDTH


def _decode_raster(source: str) -> Optional[ImageReader]:
    match = _RASTER_DATA_URI.match(source or "")
    if not match:
        return None
    try:
        return ImageReader(BytesIO(base64.b64decode(match.group(2))))
    except (binascii.Error, ValueError, OSError) as e:
        logger.warning(f"Undecodable image data in direct PDF: {e}")
        return None


class PageCanvas:
    """A ReportLab canvas addressed in template px with a top-left origin."""

    def __init__(self, c: canvas.Canvas, page_height_pt: float):
        self.c = c
        self.page_height_pt = page_height_pt

    def box(self, element: TemplateElement) -> Tuple[float, float, float, float]:
        """Element box as (x, top, width, height) in points, top measured from the page top."""
        p = element.position
        return p.x * PX_TO_PT, p.y * PX_TO_PT, p.width * PX_TO_PT, p.height * PX_TO_PT

    def flip(self, top: float, height: float = 0) -> float:
        """Bottom-left y of a box whose top edge is ``top`` points below the page top."""
        return self.page_height_pt - top - height


def _draw_page(pc: PageCanvas, document: PreparedDocument, width_pt: float, height_pt: float) -> None:
    background = document.page.background
    c = pc.c

    fill = hex_to_rgb(background.color)
    if fill is not None and fill != (255, 255, 255):
        c.setFillColor(_rgb(fill))
        c.rect(0, 0, width_pt, height_pt, stroke=0, fill=1)

    if background.border:
        border_width = _border_width(background.border, background.border_width) * PX_TO_PT
        if border_width <= 0:
            return
        c.setStrokeColor(_rgb(_border_color(background.border, background.border_color)))
        c.setLineWidth(border_width)
        c.rect(border_width / 2, border_width / 2, width_pt - border_width, height_pt - border_width,
               stroke=1, fill=0)


def _draw_text(pc: PageCanvas, element: TemplateElement) -> None:
    text = plain_text(element.content).strip()
    if not text:
        return

    style = resolve_pdf_text_style(element.style)
    x, top, width, height = pc.box(element)
    c = pc.c

    if style.background_color is not None:
        c.setFillColor(_rgb(style.background_color))
        c.rect(x, pc.flip(top, height), width, height, stroke=0, fill=1)

    font_name = "Helvetica-Bold" if style.bold else "Helvetica"
    font_size = style.font_size * PX_TO_PT
    c.setFont(font_name, font_size)
    c.setFillColor(_rgb(style.color))

    max_width = max(width - 2 * TEXT_PADDING, font_size)
    lines = []
    for paragraph in text.splitlines() or [text]:
        lines.extend(simpleSplit(paragraph, font_name, font_size, max_width) or [""])

    ascent = pdfmetrics.getAscent(font_name, font_size)
    line_height = font_size * 1.2
    baseline = top + TEXT_PADDING + ascent
    for line in lines:
        y = pc.flip(baseline)
        if style.text_align == "center":
            c.drawCentredString(x + width / 2, y, line)
        elif style.text_align == "right":
            c.drawRightString(x + width - TEXT_PADDING, y, line)
        else:
            c.drawString(x + TEXT_PADDING, y, line)
        baseline += line_height


def _draw_shape(pc: PageCanvas, element: TemplateElement) -> None:
    style = element.style
    fill = hex_to_rgb(style.get("backgroundColor") or style.get("color"))
    if fill is None:
        return
    opacity = min(max(extract_number(style.get("opacity"), 1), 0), 1)
    x, top, width, height = pc.box(element)
    pc.c.setFillColor(_rgb(fill, opacity))
    pc.c.rect(x, pc.flip(top, height), width, height, stroke=0, fill=1)


def _draw_image(pc: PageCanvas, element: TemplateElement) -> None:
    x, top, width, height = pc.box(element)
    if width <= 0 or height <= 0:
        return
    c = pc.c
    y = pc.flip(top, height)

    image = _decode_raster(element.content)
    if image is not None:
        c.drawImage(image, x, y, width=width, height=height, preserveAspectRatio=True, anchor="c", mask="auto")
        return

    # SVG and remote sources cannot be drawn here
    c.setFillColor(PLACEHOLDER_FILL)
    c.setStrokeColor(PLACEHOLDER_STROKE)
    c.setLineWidth(1)
    c.rect(x, y, width, height, stroke=1, fill=1)
    label = "QR Code" if element.type is ElementType.QR else "Image"
    label_size = max(min(height / 6, 12), 4)
    c.setFont("Helvetica", label_size)
    c.setFillColor(PLACEHOLDER_TEXT)
    c.drawCentredString(x + width / 2, y + height / 2 - label_size / 3, label)


def draw_certificate_pdf(document: PreparedDocument) -> bytes:
    """
    Draw a prepared document to PDF bytes.

    The single page measures exactly width x height px converted to points.
    Elements are drawn in array order so later elements overlay earlier ones.
    """
    width_pt = document.width * PX_TO_PT
    height_pt = document.height * PX_TO_PT

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=(width_pt, height_pt))
    c.setTitle(document.title)
    c.setCreator("certrender")
    pc = PageCanvas(c, height_pt)

    _draw_page(pc, document, width_pt, height_pt)

    for element in document.elements:
        c.saveState()
        if element.type is ElementType.TEXT:
            _draw_text(pc, element)
        elif element.type is ElementType.SHAPE:
            _draw_shape(pc, element)
        else:
            _draw_image(pc, element)
        c.restoreState()

    c.showPage()
    c.save()
    return buffer.getvalue()


class DirectPdfBackend:
    """Browserless PDF export through ReportLab."""

    name = "direct-pdf"
    format = ExportFormat.PDF

    def __init__(self, config: RenderConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.direct_pdf_enabled

    async def render(self, document: PreparedDocument) -> bytes:
        if not self.enabled:
            raise GenerationDisabledError(self.name)

        started = time.perf_counter()
        try:
            output = await asyncio.to_thread(draw_certificate_pdf, document)
        except CertificateRenderError:
            raise
        except Exception as e:
            logger.error(
                f"Direct PDF drawing failed for certificate {document.certificate_id}: {e}",
                extra={"certificate_id": document.certificate_id, "backend": self.name},
            )
            raise RenderFailedError("PDF generation failed", {"backend": self.name, "reason": str(e)}) from e

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
