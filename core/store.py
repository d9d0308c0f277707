"""
Certificate storage access for the HTTP layer.

``CertificateStore`` is the narrow interface the routes depend on; the SQL
implementation reads the SQLModel tables, tests supply an in-memory one.
``ArtifactStorage`` keeps generated PDF/PNG files on disk so a certificate is
rendered once and then served from the cache.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from core.db import get_db_session
from core.errors import TemplateDataError
from core.models import CamelModel, CertificateData, ExportFormat, TemplateData
from core.models_sql import Certificate, CertificateStatus

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]")


class CertificateRecord(CamelModel):
    """A stored certificate joined with its template, as the routes see it."""
    id: str
    template_name: Optional[str] = None
    recipient_first_name: str = ""
    recipient_last_name: str = ""
    recipient_email: str = ""
    issue_date: Union[datetime, date]
    expiry_date: Optional[datetime] = None
    status: CertificateStatus = CertificateStatus.ACTIVE
    verification_id: str
    qr_code_data: Optional[str] = None
    certificate_data: Optional[Dict[str, Any]] = None
    template_data: Optional[Dict[str, Any]] = None
    pdf_path: Optional[str] = None
    png_path: Optional[str] = None

    def artifact_path(self, fmt: ExportFormat) -> Optional[str]:
        return self.pdf_path if fmt is ExportFormat.PDF else self.png_path

    @property
    def authorizing_official(self) -> Optional[str]:
        value = (self.certificate_data or {}).get("authorizingOfficial")
        return str(value) if value else None

    def layout(self) -> Dict[str, Any]:
        """The certificate's customized layout copy, else the shared template's."""
        customized = self.certificate_data or {}
        if customized.get("elements") or customized.get("pageSettings"):
            return customized
        return self.template_data or {}

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry_date is None:
            return False
        now = now or datetime.now(timezone.utc)
        expiry = self.expiry_date
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return expiry < now

    def to_certificate_data(self) -> CertificateData:
        """
        Build the render input for this record.

        Raises:
            TemplateDataError: stored layout JSON does not describe a valid template
        """
        try:
            template = TemplateData.model_validate(self.layout())
        except ValidationError as e:
            raise TemplateDataError(
                f"Stored template for certificate {self.id} is invalid",
                {"certificate_id": self.id, "errors": e.errors(include_url=False)},
            ) from e

        return CertificateData(
            id=self.id,
            template_name=self.template_name or "Certificate",
            recipient_first_name=self.recipient_first_name,
            recipient_last_name=self.recipient_last_name,
            recipient_email=self.recipient_email,
            issue_date=self.issue_date,
            template_data=template,
            qr_code_data=self.qr_code_data,
            verification_id=self.verification_id,
            authorizing_official=self.authorizing_official,
        )


class CertificateStore(ABC):
    @abstractmethod
    async def get_certificate(self, certificate_id: str) -> Optional[CertificateRecord]:
        ...

    @abstractmethod
    async def get_by_verification_id(self, verification_id: str) -> Optional[CertificateRecord]:
        ...

    @abstractmethod
    async def save_artifact_path(self, certificate_id: str, fmt: ExportFormat, path: str) -> None:
        ...


def _record_from_row(row: Certificate) -> CertificateRecord:
    template = row.template
    return CertificateRecord(
        id=row.id,
        template_name=template.name if template else None,
        recipient_first_name=row.recipient_first_name,
        recipient_last_name=row.recipient_last_name,
        recipient_email=row.recipient_email,
        issue_date=row.issue_date,
        expiry_date=row.expiry_date,
        status=row.status,
        verification_id=row.verification_id,
        qr_code_data=row.qr_code_data,
        certificate_data=row.certificate_data,
        template_data=template.template_data if template else None,
        pdf_path=row.pdf_path,
        png_path=row.png_path,
    )


class SqlCertificateStore(CertificateStore):
    """Store backed by the ``certificates`` and ``certificate_templates`` tables."""

    async def _first(self, clause) -> Optional[CertificateRecord]:
        stmt = select(Certificate).options(selectinload(Certificate.template)).where(clause)
        async with get_db_session() as session:
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            return _record_from_row(row) if row else None

    async def get_certificate(self, certificate_id: str) -> Optional[CertificateRecord]:
        return await self._first(Certificate.id == certificate_id)

    async def get_by_verification_id(self, verification_id: str) -> Optional[CertificateRecord]:
        return await self._first(Certificate.verification_id == verification_id)

    async def save_artifact_path(self, certificate_id: str, fmt: ExportFormat, path: str) -> None:
        async with get_db_session() as session:
            row = await session.get(Certificate, certificate_id)
            if row is None:
                return
            if fmt is ExportFormat.PDF:
                row.pdf_path = path
            else:
                row.png_path = path
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)


class ArtifactStorage:
    """Generated files under ``<root>/certificates/``, addressed by relative path."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, relative: str) -> Optional[Path]:
        root = self.root.resolve()
        candidate = (root / relative.lstrip("/")).resolve()
        if root not in candidate.parents:
            logger.warning(f"Ignoring artifact path outside storage: {relative}")
            return None
        return candidate

    def read(self, relative: Optional[str]) -> Optional[bytes]:
        """Cached bytes for a stored path, or None when absent."""
        if not relative:
            return None
        path = self._resolve(relative)
        if path is None or not path.is_file():
            return None
        return path.read_bytes()

    def write(self, certificate_id: str, fmt: ExportFormat, content: bytes) -> str:
        """Persist an artifact and return its path relative to the storage root."""
        relative = f"certificates/{_UNSAFE_FILENAME.sub('_', certificate_id)}.{fmt.value}"
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return relative
