"""
Render configuration.

All environment-driven switches for the rendering pipeline are collected into
one immutable ``RenderConfig`` value that is handed to each backend, so the
disable/fallback behaviour can be exercised without touching the process
environment.

Example usage:
    from core.config import RenderConfig

    config = RenderConfig.from_env()
    pdf_only = config.model_copy(update={"browser_png_enabled": False})
"""

import logging
import os
import sys
from pathlib import Path
from typing import Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# Common Chromium locations on servers and in containers
CHROME_PATHS = {
    "linux": (
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/usr/bin/chromium-browser",
        "/usr/bin/chromium",
        "/opt/google/chrome/chrome",
    ),
    "win32": (
        "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
        "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    ),
    "darwin": (
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
        "/Applications/Chromium.app/Contents/MacOS/Chromium",
    ),
}

BROWSER_ARGS: Tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--no-first-run",
    "--force-color-profile=srgb",
    "--font-render-hinting=none",
)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_number(env: Mapping[str, str], name: str, default, cast=int):
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return cast(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def find_browser_executable(env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Locate a Chromium executable for the current platform.

    ``CHROMIUM_EXECUTABLE_PATH`` wins when set. Returns None to let Playwright
    use its bundled browser.
    """
    env = os.environ if env is None else env
    explicit = env.get("CHROMIUM_EXECUTABLE_PATH")
    if explicit:
        return explicit

    platform = "linux" if sys.platform.startswith("linux") else sys.platform
    for candidate in CHROME_PATHS.get(platform, ()):
        if Path(candidate).exists():
            return candidate
    return None


class RenderConfig(BaseModel):
    """Immutable settings for one rendering pipeline."""
    model_config = ConfigDict(frozen=True)

    browser_pdf_enabled: bool = True
    browser_png_enabled: bool = True
    direct_pdf_enabled: bool = True
    pdf_backend: Literal["browser", "direct"] = "browser"

    browser_executable: Optional[str] = None
    browser_args: Tuple[str, ...] = BROWSER_ARGS
    device_scale_factor: float = Field(3, ge=1, le=4)
    viewport_padding: int = Field(40, ge=0)
    navigation_timeout_ms: int = Field(30000, gt=0)
    asset_timeout_ms: int = Field(5000, gt=0)
    settle_delay_ms: int = Field(250, ge=0)
    max_concurrent_browsers: int = Field(2, ge=1)

    base_url: str = "http://localhost:8000"
    verification_path: str = "/community/verify-certificate"
    default_issuer_name: str = "Hetawk"
    public_dir: Optional[Path] = None
    inline_remote_images: bool = True
    image_fetch_timeout_s: float = Field(10.0, gt=0)

    auto_fit_text: bool = True
    strip_unknown_braces: bool = True
    underline_values: bool = True

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RenderConfig":
        """
        Build a configuration from environment variables.

        Args:
            env: Mapping to read instead of ``os.environ`` (used by tests)

        Returns:
            RenderConfig with every unset variable at its default
        """
        env = os.environ if env is None else env
        all_disabled = _env_flag(env, "DISABLE_CERTIFICATE_GENERATION")

        pdf_backend = env.get("CERT_PDF_BACKEND", "browser").strip().lower()
        if pdf_backend not in ("browser", "direct"):
            logger.warning(f"Unknown CERT_PDF_BACKEND={pdf_backend!r}, using browser")
            pdf_backend = "browser"

        public_dir = env.get("CERT_PUBLIC_DIR")

        return cls(
            browser_pdf_enabled=not (all_disabled or _env_flag(env, "CERT_DISABLE_PDF_GENERATION")),
            browser_png_enabled=not (all_disabled or _env_flag(env, "CERT_DISABLE_PNG_GENERATION")),
            direct_pdf_enabled=not _env_flag(env, "CERT_DISABLE_DIRECT_PDF"),
            pdf_backend=pdf_backend,
            browser_executable=find_browser_executable(env),
            device_scale_factor=_env_number(env, "CERT_DEVICE_SCALE_FACTOR", 3, float),
            navigation_timeout_ms=_env_number(env, "CERT_NAVIGATION_TIMEOUT_MS", 30000),
            asset_timeout_ms=_env_number(env, "CERT_ASSET_TIMEOUT_MS", 5000),
            settle_delay_ms=_env_number(env, "CERT_SETTLE_DELAY_MS", 250),
            max_concurrent_browsers=_env_number(env, "CERT_MAX_CONCURRENT_BROWSERS", 2),
            base_url=env.get("BASE_URL", "http://localhost:8000").rstrip("/"),
            default_issuer_name=env.get("CERT_DEFAULT_ISSUER", "Hetawk"),
            public_dir=Path(public_dir) if public_dir else None,
            inline_remote_images=_env_flag(env, "CERT_INLINE_REMOTE_IMAGES", True),
            auto_fit_text=_env_flag(env, "CERT_AUTO_FIT_TEXT", True),
            strip_unknown_braces=_env_flag(env, "CERT_STRIP_UNKNOWN_BRACES", True),
            underline_values=_env_flag(env, "CERT_UNDERLINE_VALUES", True),
        )
