"""
QR helper tests.

Example usage:
    pytest tests/test_qr.py -v
"""

import base64
from io import BytesIO

import pytest
from PIL import Image

from core.qr import (
    PLACEHOLDER_QR_DATA_URI,
    generate_qr_data_uri,
    looks_like_image_source,
    verification_url_for,
)


def test_verification_url():
    url = verification_url_for("https://certs.example.org/", "/community/verify-certificate", "a b/c")
    assert url == "https://certs.example.org/community/verify-certificate?id=a%20b%2Fc"


def test_generated_qr_is_png():
    uri = generate_qr_data_uri("https://certs.example.org/community/verify-certificate?id=verify-0001")
    assert uri.startswith("data:image/png;base64,")
    with Image.open(BytesIO(base64.b64decode(uri.split(",", 1)[1]))) as image:
        assert image.format == "PNG"
        assert image.size[0] == image.size[1]


def test_empty_payload():
    assert generate_qr_data_uri("") is None


def test_generation_error_returns_none(monkeypatch):
    def broken(self, *args, **kwargs):
        raise ValueError("too much data")

    monkeypatch.setattr("qrcode.QRCode.make", broken)
    assert generate_qr_data_uri("payload") is None


def test_placeholder_is_svg():
    assert PLACEHOLDER_QR_DATA_URI.startswith("data:image/svg+xml;base64,")
    svg = base64.b64decode(PLACEHOLDER_QR_DATA_URI.split(",", 1)[1]).decode("utf-8")
    assert "QR Code" in svg


@pytest.mark.parametrize("value,expected", [
    ("data:image/png;base64,AAAA", True),
    ("https://cdn.example.org/qr.png", True),
    ("/uploads/qr.png", True),
    ("verify-0001", False),
    ("", False),
    (None, False),
])
def test_looks_like_image_source(value, expected):
    assert looks_like_image_source(value) is expected
