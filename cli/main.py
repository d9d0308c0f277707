"""
Certificate CLI Main Module

Command-line interface using Typer. Renders certificate JSON files (the same
camelCase shape the API stores) without a database or web server.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from core.compose import compose_html, prepare_document
from core.config import RenderConfig
from core.export import CertificateExporter
from core.models import CERTIFICATE_PRESETS, CertificateData, ExportFormat

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="certrender",
    help="Render certificates to PDF, PNG and HTML",
    add_completion=False,
)


def _load_certificate(path: Path) -> CertificateData:
    if not path.exists():
        typer.echo(f"Certificate file not found: {path}", err=True)
        raise typer.Exit(1)
    try:
        return CertificateData.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except json.JSONDecodeError as e:
        typer.echo(f"Invalid JSON in {path}: {e}", err=True)
        raise typer.Exit(1)
    except ValidationError as e:
        typer.echo(f"Invalid certificate data in {path}:", err=True)
        for error in e.errors(include_url=False):
            location = ".".join(str(part) for part in error["loc"])
            typer.echo(f"  - {location}: {error['msg']}", err=True)
        raise typer.Exit(1)


@app.command()
def render(
    certificate_json: Path = typer.Argument(..., help="Path to certificate JSON"),
    format: ExportFormat = typer.Option(ExportFormat.PDF, "--format", "-f", help="Requested output format"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: generated filename)"),
    pdf_backend: Optional[str] = typer.Option(None, "--pdf-backend", help="Primary PDF backend: browser or direct"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Disable both browser backends"),
) -> None:
    """
    Export a certificate through the fallback chain.

    The written file may have the other format when the requested one could
    not be produced; the output extension is adjusted to match.
    """
    certificate = _load_certificate(certificate_json)

    overrides = {}
    if pdf_backend:
        if pdf_backend not in ("browser", "direct"):
            typer.echo("--pdf-backend must be 'browser' or 'direct'", err=True)
            raise typer.Exit(1)
        overrides["pdf_backend"] = pdf_backend
    if no_browser:
        overrides.update(browser_pdf_enabled=False, browser_png_enabled=False)
    config = RenderConfig.from_env().model_copy(update=overrides)

    outcome = asyncio.run(CertificateExporter(config).export(certificate, format))

    if not outcome.ok:
        payload = outcome.to_payload()
        typer.echo(payload["message"], err=True)
        for attempt in outcome.attempts:
            typer.echo(f"  - {attempt.backend}: {attempt.status} {attempt.message or ''}".rstrip(), err=True)
        raise typer.Exit(1)

    target = output or Path(outcome.filename)
    if target.suffix.lower() != f".{outcome.format.value}":
        target = target.with_suffix(f".{outcome.format.value}")
    target.write_bytes(outcome.content)

    typer.echo(f"✓ Rendered {certificate.id} with {outcome.backend}")
    if outcome.fallback_used:
        typer.echo(f"  Fallback used: requested {format.value}, produced {outcome.format.value}")
    typer.echo(f"  Path: {target}")
    typer.echo(f"  Size: {len(outcome.content):,} bytes")


@app.command()
def preview(
    certificate_json: Path = typer.Argument(..., help="Path to certificate JSON"),
    output: Path = typer.Option("certificate.html", "--output", "-o", help="Output HTML file"),
) -> None:
    """Write the composed HTML document used by the preview and the browser backends."""
    certificate = _load_certificate(certificate_json)
    document = asyncio.run(prepare_document(certificate, RenderConfig.from_env()))
    output.write_text(compose_html(document), encoding="utf-8")
    typer.echo(f"✓ Preview written to {output} ({document.width:g}x{document.height:g}px)")


@app.command()
def presets() -> None:
    """List the page size presets."""
    for name, size in CERTIFICATE_PRESETS.items():
        typer.echo(f"{name:<18} {size['width']}x{size['height']}px")


if __name__ == "__main__":
    app()
