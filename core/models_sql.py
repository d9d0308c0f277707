"""
SQLModel tables for issued certificates and their templates.

Only the columns the rendering service reads are modelled: the template's
layout JSON, the certificate's recipient fields, its customized layout copy,
verification data and the paths of cached artifacts.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlmodel import JSON, Column, Field, Relationship, SQLModel


class CertificateStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class CertificateTemplate(SQLModel, table=True):
    __tablename__ = "certificate_templates"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    category: str = Field(default="general", index=True)
    template_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    certificates: List["Certificate"] = Relationship(back_populates="template")


class Certificate(SQLModel, table=True):
    __tablename__ = "certificates"

    id: str = Field(primary_key=True)
    template_id: Optional[UUID] = Field(default=None, foreign_key="certificate_templates.id", index=True)
    recipient_first_name: str
    recipient_last_name: str
    recipient_email: str = Field(index=True)
    issue_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expiry_date: Optional[datetime] = None
    status: CertificateStatus = Field(default=CertificateStatus.ACTIVE)
    verification_id: str = Field(unique=True, index=True)
    qr_code_data: Optional[str] = None
    # Customized copy of the template layout plus extra fields (authorizingOfficial)
    certificate_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    pdf_path: Optional[str] = None
    png_path: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    template: Optional[CertificateTemplate] = Relationship(back_populates="certificates")
