"""
Style resolution for certificate elements.

Element styles are open maps of CSS-like camelCase keys. DOM backends receive
them as CSS declaration strings with unknown keys passed through; the direct
PDF backend reads only a small subset. Nothing in this module raises on bad
input: malformed values degrade to the documented defaults and the fallback is
logged.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 14
DEFAULT_TEXT_COLOR = "#000000"
BASE_FONT_SIZE = 16  # em/rem/% reference size

# Average glyph width and line height as fractions of the font size
AVERAGE_CHAR_WIDTH = 0.6
LINE_HEIGHT = 1.2
LONG_TEXT_THRESHOLD = 100

NAMED_FONT_SIZES = {
    "xx-small": 10,
    "x-small": 12,
    "small": 14,
    "medium": 16,
    "large": 20,
    "x-large": 26,
    "xx-large": 32,
    "larger": 20,
    "smaller": 14,
}

# Properties whose bare numeric values are lengths in px
LENGTH_PROPERTIES = {
    "fontSize", "letterSpacing", "wordSpacing", "borderWidth", "borderRadius",
    "padding", "paddingTop", "paddingRight", "paddingBottom", "paddingLeft",
    "margin", "marginTop", "marginRight", "marginBottom", "marginLeft",
    "width", "height", "minWidth", "minHeight", "maxWidth", "maxHeight",
    "top", "left", "right", "bottom", "outlineWidth", "textIndent",
}

BOLD_WEIGHTS = {"bold", "bolder", "600", "700", "800", "900"}

_HEX_COLOR = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)
_SHORT_HEX_COLOR = re.compile(r"^#?([a-f\d])([a-f\d])([a-f\d])$", re.IGNORECASE)
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_VENDOR_PREFIX = re.compile(r"^(Webkit|Moz|ms|O)(?=[A-Z])")
_UPPER = re.compile(r"([A-Z])")


@dataclass(frozen=True)
class PdfTextStyle:
    """Subset of an element style understood by the direct PDF backend (px units)."""
    font_size: float = DEFAULT_FONT_SIZE
    bold: bool = False
    color: Optional[Tuple[int, int, int]] = (0, 0, 0)
    text_align: str = "left"
    background_color: Optional[Tuple[int, int, int]] = None


def css_property_name(key: str) -> str:
    """
    Convert a camelCase style key to its CSS property name.

    Example:
        >>> css_property_name("WebkitFontSmoothing")
        '-webkit-font-smoothing'
    """
    if key.startswith("--") or "-" in key:
        return key
    name = _VENDOR_PREFIX.sub(lambda m: "-" + m.group(1).lower(), key)
    return _UPPER.sub(r"-\1", name).lower()


def css_value(key: str, value: Any) -> str:
    """Render a style value, adding px to bare numbers on length properties."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return f"{value}px" if key in LENGTH_PROPERTIES and value != 0 else str(value)
    return str(value).strip()


def style_to_css(style: Optional[Dict[str, Any]]) -> str:
    """
    Convert a style map to a CSS declaration string.

    Keys keep their insertion order; ``None`` and empty values are skipped;
    unknown keys are emitted verbatim in kebab-case.
    """
    declarations = []
    for key, value in (style or {}).items():
        if value is None or value == "" or isinstance(value, (dict, list)):
            continue
        declarations.append(f"{css_property_name(key)}: {css_value(key, value)}")
    return "; ".join(declarations)


def extract_number(value: Any, default: float) -> float:
    """
    Extract the numeric part of a CSS value such as ``"14px"`` or ``14``.

    Returns the default, logging the fallback, when nothing numeric is found.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        logger.warning(f"Unparsable style number {value!r}, using default {default}")
        return default
    if isinstance(value, (int, float)):
        if math.isfinite(value):
            return value
        logger.warning(f"Non-finite style number {value!r}, using default {default}")
        return default
    if isinstance(value, str):
        match = _NUMBER.search(value)
        if match:
            return float(match.group(0))
    logger.warning(f"Unparsable style number {value!r}, using default {default}")
    return default


def hex_to_rgb(value: Any) -> Optional[Tuple[int, int, int]]:
    """
    Convert ``#rrggbb`` (or ``#rgb``) to an RGB triple.

    Returns None for anything else, meaning "keep the current color".
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    match = _HEX_COLOR.match(text)
    if match:
        return tuple(int(part, 16) for part in match.groups())
    match = _SHORT_HEX_COLOR.match(text)
    if match:
        return tuple(int(part * 2, 16) for part in match.groups())
    return None


def parse_font_size(value: Any) -> float:
    """Resolve a CSS font size (px, em, rem, %, named or bare number) to px."""
    if value is None or value == "":
        return BASE_FONT_SIZE
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if value > 0 else BASE_FONT_SIZE

    text = str(value).strip().lower()
    if text in NAMED_FONT_SIZES:
        return float(NAMED_FONT_SIZES[text])

    number = extract_number(text, BASE_FONT_SIZE)
    if number <= 0:
        return BASE_FONT_SIZE
    if text.endswith("rem") or text.endswith("em"):
        return number * BASE_FONT_SIZE
    if text.endswith("%"):
        return number / 100 * BASE_FONT_SIZE
    if text.endswith("pt"):
        return number / 0.75
    return number


def is_long_text(text: str) -> bool:
    return len(text) > LONG_TEXT_THRESHOLD


def fit_font_size(font_size: Any, container_width: float, container_height: float, text: str) -> str:
    """
    Shrink a font size so the text plausibly fits its box.

    Uses a font-metric approximation (average glyph width of 0.6 em and a line
    height of 1.2 em) instead of real measurement, so the result is identical
    for every backend. Long text (over 100 characters) is only reduced when it
    overflows by more than half the box height and never below 80%.

    Args:
        font_size: Style value as stored
        container_width: Element box width in px
        container_height: Element box height in px
        text: Plain text content (markup already stripped)

    Returns:
        CSS font size in whole px, e.g. ``"24px"``
    """
    size = parse_font_size(font_size)
    if container_width <= 0 or container_height <= 0 or not text:
        return f"{round(size)}px"

    long_text = is_long_text(text)
    estimated_width = len(text) * size * AVERAGE_CHAR_WIDTH

    if long_text:
        lines = math.ceil(estimated_width / (container_width * 0.9))
        estimated_height = lines * size * LINE_HEIGHT
        if estimated_height > container_height * 1.5:
            size *= max((container_height * 1.3) / estimated_height, 0.8)
    else:
        if estimated_width > container_width * 0.9:
            size *= (container_width * 0.9) / estimated_width
        size = min(size, container_height * 0.8)

    size = max(size, 12 if long_text else 10)
    return f"{round(size)}px"


def is_bold(font_weight: Any) -> bool:
    return str(font_weight).strip().lower() in BOLD_WEIGHTS if font_weight is not None else False


def resolve_pdf_text_style(style: Optional[Dict[str, Any]]) -> PdfTextStyle:
    """
    Read the direct-PDF subset of an element style.

    Only fontSize, fontWeight, color, textAlign and backgroundColor are
    interpreted; an invalid color keeps the default black text.
    """
    style = style or {}

    font_size = extract_number(style.get("fontSize"), DEFAULT_FONT_SIZE)
    if font_size <= 0:
        logger.warning(f"Non-positive fontSize {style.get('fontSize')!r}, using default {DEFAULT_FONT_SIZE}")
        font_size = DEFAULT_FONT_SIZE

    color = hex_to_rgb(style.get("color", DEFAULT_TEXT_COLOR))
    if color is None:
        if style.get("color"):
            logger.debug(f"Unsupported text color {style.get('color')!r} in PDF, keeping default")
        color = (0, 0, 0)

    text_align = str(style.get("textAlign") or "left").strip().lower()
    if text_align not in ("left", "center", "right"):
        text_align = "left"

    return PdfTextStyle(
        font_size=font_size,
        bold=is_bold(style.get("fontWeight")),
        color=color,
        text_align=text_align,
        background_color=hex_to_rgb(style.get("backgroundColor")),
    )


def justify_for_alignment(text_align: Any) -> str:
    """Map textAlign to the flex justify-content used by the compositor."""
    value = str(text_align or "").strip().lower()
    if value == "center":
        return "center"
    if value == "right":
        return "flex-end"
    return "flex-start"
