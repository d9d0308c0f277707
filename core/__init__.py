"""
Certificate rendering core.

Template model, placeholder substitution, style resolution, HTML composition,
the three export backends and the fallback orchestrator. Nothing here depends
on the web layer, so the pipeline can be driven from the CLI or tests.

Example usage:
    from core.config import RenderConfig
    from core.export import CertificateExporter
    from core.models import CertificateData, ExportFormat

    outcome = await CertificateExporter(RenderConfig.from_env()).export(certificate, ExportFormat.PDF)
"""

__version__ = "0.1.0"
__all__ = [
    "__version__",
]
