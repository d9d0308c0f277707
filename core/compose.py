"""
Certificate HTML Compositor

Turns a certificate's template into a single self-contained HTML document:
inline CSS, a root container sized exactly to the page, and one absolutely
positioned child per element in array order. The same document is the live
preview and the input of both browser-driven export backends.

Rendering happens in two steps:

- ``prepare_document`` (async) deep-copies the template, resolves placeholder
  values, generates the QR image and inlines image sources.
- ``compose_html`` (pure) lays the prepared document out as HTML. Identical
  input always yields byte-identical output.

Example usage:
    from core.compose import prepare_document, compose_html

    document = await prepare_document(certificate, config)
    html = compose_html(document)
"""

import html
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

import httpx
from jinja2 import Environment

from core.assets import inline_image_source
from core.config import RenderConfig
from core.models import CertificateData, ElementType, PageSettings, TemplateElement
from core.placeholders import (
    PlaceholderValues,
    find_unresolved_tokens,
    format_issue_date,
    substitute_placeholders,
)
from core.qr import generate_qr_data_uri, looks_like_image_source, verification_url_for
from core.styles import fit_font_size, is_long_text, justify_for_alignment, style_to_css

logger = logging.getLogger(__name__)

ROOT_ELEMENT_ID = "certificate-root"
ROOT_SELECTOR = f"#{ROOT_ELEMENT_ID}"
DEFAULT_FONT_FAMILY = "'Times New Roman', serif"

# Geometry and stacking come from the element box and array order only
RESERVED_STYLE_KEYS = {"position", "left", "top", "right", "bottom", "width", "height", "zIndex"}

_TAG = re.compile(r"<[^>]*>")
_CSS_UNSAFE = re.compile(r"[<>{};]")

DOCUMENT_TEMPLATE = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True).from_string(
    """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width={{ width }}, initial-scale=1.0">
<title>{{ title }}</title>
<style>
@page { size: {{ width }}px {{ height }}px; margin: 0; }
* { box-sizing: border-box; margin: 0; padding: 0; }
html, body { margin: 0; padding: 0; background: #ffffff; }
body {
  -webkit-print-color-adjust: exact;
  print-color-adjust: exact;
  -webkit-font-smoothing: antialiased;
  text-rendering: optimizeLegibility;
}
.certificate-container {
  position: relative;
  width: {{ width }}px;
  height: {{ height }}px;
  overflow: hidden;
  font-family: {{ font_family|safe }};
  background: {{ background|safe }};
{% if border %}
  border: {{ border|safe }};
{% endif %}
{% if border_color %}
  border-color: {{ border_color|safe }};
{% endif %}
{% if border_width %}
  border-width: {{ border_width }}px;
{% endif %}
}
.certificate-container .element-text {
  max-width: 100%;
  overflow-wrap: break-word;
  word-break: break-word;
}
.certificate-container img {
  display: block;
}
@media print {
  html, body { width: {{ width }}px; height: {{ height }}px; }
  .certificate-container { page-break-inside: avoid; }
}
</style>
</head>
<body>
<div id="{{ root_id }}" class="certificate-container">
{% for element in elements %}
{{ element | safe }}
{% endfor %}
</div>
</body>
</html>
"""
)


@dataclass(frozen=True)
class PreparedDocument:
    """A certificate ready for layout: substituted, inlined, detached from storage."""
    certificate_id: str
    title: str
    page: PageSettings
    elements: Tuple[TemplateElement, ...]
    values: PlaceholderValues
    auto_fit_text: bool = True

    @property
    def width(self) -> float:
        return self.page.width

    @property
    def height(self) -> float:
        return self.page.height


def resolve_placeholder_values(certificate: CertificateData, config: RenderConfig) -> PlaceholderValues:
    """
    Collect the token values for one certificate.

    The QR source is the stored ``qrCodeData`` when that is already an image
    source; otherwise a QR code for the verification URL is generated. A failed
    generation leaves the source empty so the placeholder graphic is used.
    """
    verification_url = certificate.verification_url or verification_url_for(
        config.base_url,
        config.verification_path,
        certificate.verification_id or certificate.id,
    )

    if looks_like_image_source(certificate.qr_code_data):
        qr_source = certificate.qr_code_data.strip()
    else:
        qr_source = generate_qr_data_uri(verification_url)

    return PlaceholderValues(
        recipient_name=certificate.recipient_name,
        issuer_name=certificate.authorizing_official or config.default_issuer_name,
        issue_date=format_issue_date(certificate.issue_date),
        certificate_id=certificate.id,
        qr_code_image_source=qr_source,
        verification_url=verification_url,
    )


async def prepare_document(
    certificate: CertificateData,
    config: RenderConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> PreparedDocument:
    """
    Produce a render-ready copy of a certificate's template.

    The stored template is never modified; every element is copied before its
    content is rewritten.

    Args:
        certificate: Render input for this request
        config: Render configuration
        client: Optional shared HTTP client for image inlining

    Returns:
        PreparedDocument with substituted text and inlined image sources
    """
    template = certificate.template_data.model_copy(deep=True)
    values = resolve_placeholder_values(certificate, config)

    if values.qr_code_image_source and not values.qr_code_image_source.startswith("data:"):
        inlined_qr = await inline_image_source(values.qr_code_image_source, config, client)
        values = replace(values, qr_code_image_source=inlined_qr)

    text_values = replace(values, underline_values=config.underline_values)

    elements = []
    for element in template.elements:
        if element.type is ElementType.TEXT:
            content = substitute_placeholders(
                element.content, text_values, strip_unknown_braces=config.strip_unknown_braces
            )
            leftover = find_unresolved_tokens(content)
            if leftover:
                logger.warning(
                    f"Unresolved placeholders in element {element.id}: {leftover}",
                    extra={"certificate_id": certificate.id, "element_id": element.id},
                )
        elif element.type is ElementType.IMAGE:
            source = substitute_placeholders(
                element.content, values, strip_unknown_braces=False, escape_values=False
            )
            content = await inline_image_source(source, config, client)
        elif element.type is ElementType.QR:
            content = values.qr_source
        else:
            content = element.content
        elements.append(element.model_copy(update={"content": content}))

    return PreparedDocument(
        certificate_id=certificate.id,
        title=f"Certificate - {certificate.id}",
        page=template.page_settings,
        elements=tuple(elements),
        values=values,
        auto_fit_text=config.auto_fit_text,
    )


def plain_text(content: str) -> str:
    """Strip markup and decode entities from substituted text content."""
    return html.unescape(_TAG.sub("", content or ""))


def _px(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value)}px"
    return f"{round(value, 3)}px"


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(round(value, 3))


def _box(element: TemplateElement) -> Dict[str, Any]:
    position = element.position
    return {
        "position": "absolute",
        "left": _px(position.x),
        "top": _px(position.y),
        "width": _px(position.width),
        "height": _px(position.height),
        "boxSizing": "border-box",
    }


def _user_style(element: TemplateElement) -> Dict[str, Any]:
    return {key: value for key, value in element.style.items() if key not in RESERVED_STYLE_KEYS}


def _style_attr(style: Dict[str, Any]) -> str:
    return html.escape(style_to_css(style), quote=True)


def _text_html(element: TemplateElement, auto_fit_text: bool) -> str:
    style = element.style
    text = plain_text(element.content)
    long_text = is_long_text(text)

    css = _box(element)
    css.update(_user_style(element))
    css.setdefault("color", "#000000")
    css.setdefault("fontWeight", "normal")
    css.setdefault("lineHeight", "1.4" if long_text else "1.2")
    if auto_fit_text:
        css["fontSize"] = fit_font_size(
            style.get("fontSize"), element.position.width, element.position.height, text
        )
    else:
        css.setdefault("fontSize", "14px")
    css.update({
        "display": "flex",
        "alignItems": "flex-start" if long_text else "center",
        "justifyContent": justify_for_alignment(style.get("textAlign")),
        "textAlign": style.get("textAlign") or "left",
        "whiteSpace": "pre-wrap",
        "overflow": "hidden",
    })
    return f'<div data-element-id="{html.escape(element.id)}" style="{_style_attr(css)}">' \
           f'<div class="element-text">{element.content}</div></div>'


def _image_html(element: TemplateElement) -> str:
    css = _box(element)
    css.update(_user_style(element))
    css.update({"objectFit": "contain", "objectPosition": "center"})
    alt = "Verification QR code" if element.type is ElementType.QR else "Certificate element"
    return f'<img data-element-id="{html.escape(element.id)}" src="{html.escape(element.content, quote=True)}" ' \
           f'alt="{alt}" style="{_style_attr(css)}">'


def _shape_html(element: TemplateElement) -> str:
    style = element.style
    css = _box(element)
    css.update(_user_style(element))
    css.pop("color", None)

    background = style.get("backgroundColor") or style.get("color")
    if background:
        css["backgroundColor"] = background
    if style.get("borderWidth") and style.get("borderStyle"):
        border_width = style["borderWidth"]
        if isinstance(border_width, (int, float)):
            border_width = _px(border_width)
        css["border"] = f"{border_width} {style['borderStyle']} {style.get('borderColor') or style.get('color') or '#000'}"
        for key in ("borderWidth", "borderStyle", "borderColor"):
            css.pop(key, None)
    css.setdefault("opacity", 1)
    return f'<div data-element-id="{html.escape(element.id)}" style="{_style_attr(css)}"></div>'


def render_element(element: TemplateElement, auto_fit_text: bool = True) -> str:
    """Render one prepared element as an absolutely positioned HTML node."""
    if element.type is ElementType.TEXT:
        return _text_html(element, auto_fit_text)
    if element.type in (ElementType.IMAGE, ElementType.QR):
        return _image_html(element)
    return _shape_html(element)


def _css_safe(value: Optional[str]) -> Optional[str]:
    """Keep a page-level CSS value inside its declaration."""
    if not value:
        return value
    return _CSS_UNSAFE.sub("", str(value)).strip() or None


def compose_html(document: PreparedDocument) -> str:
    """
    Lay out a prepared document as one self-contained HTML page.

    Returns:
        HTML string; identical documents produce identical strings
    """
    background = document.page.background
    return DOCUMENT_TEMPLATE.render(
        title=document.title,
        width=_number(document.width),
        height=_number(document.height),
        font_family=DEFAULT_FONT_FAMILY,
        background=_css_safe(background.color) or "#ffffff",
        border=_css_safe(background.border),
        border_color=_css_safe(background.border_color),
        border_width=_number(background.border_width) if background.border_width else None,
        root_id=ROOT_ELEMENT_ID,
        elements=[render_element(element, document.auto_fit_text) for element in document.elements],
    )
