"""
QR code helpers for certificate verification.

The QR bitmap itself comes from the ``qrcode`` library; this module only builds
the verification URL, wraps the image as a data URI and provides the neutral
placeholder used whenever no QR image can be produced.
"""

import base64
import logging
from io import BytesIO
from typing import Optional
from urllib.parse import quote

import qrcode
from qrcode.constants import ERROR_CORRECT_H

logger = logging.getLogger(__name__)

_PLACEHOLDER_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="120" height="120" viewBox="0 0 120 120">'
    '<rect width="120" height="120" fill="#f3f4f6" stroke="#9ca3af" stroke-width="2"/>'
    '<text x="60" y="66" font-family="Arial, sans-serif" font-size="16" fill="#6b7280" '
    'text-anchor="middle">QR Code</text></svg>'
)

PLACEHOLDER_QR_DATA_URI = "data:image/svg+xml;base64," + base64.b64encode(
    _PLACEHOLDER_SVG.encode("utf-8")
).decode("ascii")

IMAGE_SOURCE_PREFIXES = ("data:image/", "http://", "https://", "/")


def verification_url_for(base_url: str, verification_path: str, verification_id: str) -> str:
    """
    Build the public verification URL encoded into certificate QR codes.

    Example:
        >>> verification_url_for("https://example.org", "/community/verify-certificate", "abc")
        'https://example.org/community/verify-certificate?id=abc'
    """
    return f"{base_url.rstrip('/')}{verification_path}?id={quote(verification_id, safe='')}"


def looks_like_image_source(value: Optional[str]) -> bool:
    """True when a stored value can be used directly as an <img> source."""
    return bool(value) and value.strip().startswith(IMAGE_SOURCE_PREFIXES)


def generate_qr_data_uri(data: str, box_size: int = 8, border: int = 1) -> Optional[str]:
    """
    Encode data as a PNG QR code data URI.

    Args:
        data: Payload, normally the verification URL
        box_size: Pixels per module
        border: Quiet zone in modules

    Returns:
        ``data:image/png;base64,...`` or None when the code cannot be generated
    """
    if not data:
        return None
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECT_H,
            box_size=box_size,
            border=border,
        )
        qr.add_data(data)
        qr.make(fit=True)

        qr_img = qr.make_image(fill_color="black", back_color="white")
        img_buffer = BytesIO()
        qr_img.save(img_buffer, format="PNG")
    except Exception as e:
        logger.warning(f"QR code generation failed: {e}", extra={"qr_payload_length": len(data)})
        return None

    return "data:image/png;base64," + base64.b64encode(img_buffer.getvalue()).decode("ascii")
