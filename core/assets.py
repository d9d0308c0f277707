"""
Image inlining for certificate documents.

Every image source is embedded as a data URI before rendering so the browser
backends never depend on network access mid-render and the direct PDF backend
can draw the image bytes. Sources that cannot be inlined are left untouched.
"""

import base64
import logging
import mimetypes
from pathlib import Path
from typing import Optional

import httpx

from core.config import RenderConfig

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024


def to_data_uri(data: bytes, media_type: str) -> str:
    return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"


def guess_media_type(name: str) -> str:
    media_type, _ = mimetypes.guess_type(name)
    return media_type if media_type and media_type.startswith("image/") else "image/png"


def _read_public_file(public_dir: Path, source: str) -> Optional[bytes]:
    root = public_dir.resolve()
    candidate = (root / source.lstrip("/")).resolve()
    if root not in candidate.parents:
        logger.warning(f"Refusing image path outside public dir: {source}")
        return None
    if not candidate.is_file():
        return None
    return candidate.read_bytes()


async def _fetch(client: httpx.AsyncClient, url: str) -> Optional[str]:
    response = await client.get(url)
    response.raise_for_status()
    if len(response.content) > MAX_IMAGE_BYTES:
        logger.warning(f"Image too large to inline ({len(response.content)} bytes): {url}")
        return None
    media_type = response.headers.get("content-type", "").split(";")[0].strip()
    if not media_type.startswith("image/"):
        media_type = guess_media_type(url)
    return to_data_uri(response.content, media_type)


async def inline_image_source(
    source: str,
    config: RenderConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Resolve an image source to a data URI where possible.

    Args:
        source: ``data:`` URI, absolute URL, or site-relative ``/path``
        config: Render configuration (public dir, base URL, timeouts)
        client: Shared HTTP client; a short-lived one is created when omitted

    Returns:
        Data URI, or the original source when it cannot be inlined
    """
    source = (source or "").strip()
    if not source or source.startswith("data:"):
        return source

    try:
        if source.startswith("/") and config.public_dir is not None:
            data = _read_public_file(config.public_dir, source)
            if data is not None:
                return to_data_uri(data, guess_media_type(source))

        if not config.inline_remote_images:
            return source

        if source.startswith("/"):
            url = f"{config.base_url.rstrip('/')}{source}"
        elif source.startswith(("http://", "https://")):
            url = source
        else:
            return source

        if client is not None:
            inlined = await _fetch(client, url)
        else:
            async with httpx.AsyncClient(timeout=config.image_fetch_timeout_s, follow_redirects=True) as own_client:
                inlined = await _fetch(own_client, url)
        return inlined or source

    except (httpx.HTTPError, OSError) as e:
        logger.warning(f"Failed to inline image {source[:120]}: {e}")
        return source
