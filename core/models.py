"""
Certificate Template Models

Pydantic v2 models for the certificate template document, its page settings
and the per-render certificate input. The stored template JSON uses camelCase
keys; every model accepts both the camelCase aliases and the snake_case field
names.

Example usage:
    from core.models import CertificateData

    certificate = CertificateData(**{
        "id": "FOM-2025-ABC-0001",
        "templateName": "Baptism",
        "recipientFirstName": "Ada",
        "recipientLastName": "Lovelace",
        "recipientEmail": "ada@example.com",
        "issueDate": "2025-06-13",
        "templateData": {"elements": [], "pageSettings": {"width": 800, "height": 600}},
    })
    print(certificate.template_data.page_settings.width)
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


DEFAULT_PAGE_WIDTH = 800
DEFAULT_PAGE_HEIGHT = 600
DEFAULT_BACKGROUND_COLOR = "#ffffff"
DEFAULT_BORDER = "2px solid #2563eb"

# Page size presets offered by the template builder (px at 96 DPI)
CERTIFICATE_PRESETS: Dict[str, Dict[str, int]] = {
    "landscape-a4": {"width": 1122, "height": 794},
    "portrait-a4": {"width": 794, "height": 1122},
    "standard-4-3": {"width": 800, "height": 600},
    "wide-5-3": {"width": 1000, "height": 600},
    "square": {"width": 600, "height": 600},
    "banner": {"width": 1200, "height": 400},
    "letter-landscape": {"width": 1056, "height": 816},
    "letter-portrait": {"width": 816, "height": 1056},
}


class CamelModel(BaseModel):
    """Base model reading and writing the stored camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ElementType(str, Enum):
    """Enumeration of renderable element types."""
    TEXT = "text"
    IMAGE = "image"
    SHAPE = "shape"
    QR = "qr"


class ExportFormat(str, Enum):
    """Binary export formats."""
    PDF = "pdf"
    PNG = "png"

    @property
    def media_type(self) -> str:
        return "application/pdf" if self is ExportFormat.PDF else "image/png"

    @property
    def alternate(self) -> "ExportFormat":
        return ExportFormat.PNG if self is ExportFormat.PDF else ExportFormat.PDF


class Margin(CamelModel):
    """Page margin in px."""
    top: float = Field(20, ge=0)
    right: float = Field(20, ge=0)
    bottom: float = Field(20, ge=0)
    left: float = Field(20, ge=0)


class PageBackground(CamelModel):
    """Page background color and border."""
    color: Optional[str] = Field(DEFAULT_BACKGROUND_COLOR, description="CSS color of the page")
    border: Optional[str] = Field(DEFAULT_BORDER, description="CSS border shorthand")
    border_color: Optional[str] = None
    border_width: Optional[float] = Field(None, ge=0)


class PageSettings(CamelModel):
    """Fixed canvas size and page decoration."""
    width: float = Field(DEFAULT_PAGE_WIDTH, gt=0, description="Page width in px")
    height: float = Field(DEFAULT_PAGE_HEIGHT, gt=0, description="Page height in px")
    margin: Margin = Field(default_factory=Margin)
    background: PageBackground = Field(default_factory=PageBackground)

    @field_validator("width", "height", mode="before")
    @classmethod
    def default_missing_dimension(cls, v, info):
        """Absent or zero dimensions fall back to the 800x600 default."""
        if v is None or v == 0 or v == "":
            return DEFAULT_PAGE_WIDTH if info.field_name == "width" else DEFAULT_PAGE_HEIGHT
        return v

    @field_validator("margin", "background", mode="before")
    @classmethod
    def default_missing_section(cls, v):
        return {} if v is None else v

    @classmethod
    def from_preset(cls, name: str) -> "PageSettings":
        """Build page settings from a named preset."""
        if name not in CERTIFICATE_PRESETS:
            raise ValueError(f"Unknown page preset '{name}'")
        return cls(**CERTIFICATE_PRESETS[name])


class ElementPosition(CamelModel):
    """Absolute box of an element, origin at the page's top-left corner."""
    x: float = Field(0, ge=0)
    y: float = Field(0, ge=0)
    width: float = Field(0, ge=0)
    height: float = Field(0, ge=0)


class TemplateElement(CamelModel):
    """One absolutely-positioned visual element."""
    id: str = Field(..., min_length=1)
    type: ElementType
    content: str = ""
    position: ElementPosition = Field(default_factory=ElementPosition)
    style: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v):
        return "" if v is None else str(v)

    @field_validator("style", mode="before")
    @classmethod
    def coerce_style(cls, v):
        return v if isinstance(v, dict) else {}


class TemplateData(CamelModel):
    """
    Full document definition: page settings and ordered elements.

    Array order is paint order, so later elements overlay earlier ones.
    """
    elements: List[TemplateElement] = Field(default_factory=list)
    page_settings: PageSettings = Field(default_factory=PageSettings)

    @field_validator("elements", mode="before")
    @classmethod
    def default_elements(cls, v):
        return [] if v is None else v

    @field_validator("page_settings", mode="before")
    @classmethod
    def default_page_settings(cls, v):
        return {} if v is None else v

    @model_validator(mode="after")
    def validate_unique_ids(self):
        """Element ids must be unique within a template."""
        seen = set()
        duplicates = []
        for element in self.elements:
            if element.id in seen:
                duplicates.append(element.id)
            seen.add(element.id)
        if duplicates:
            raise ValueError(f"Duplicate element ids: {', '.join(sorted(set(duplicates)))}")
        return self


class CertificateData(CamelModel):
    """Render input for one certificate, built by the caller per request."""
    id: str = Field(..., min_length=1)
    template_name: str = "Certificate"
    recipient_first_name: str = ""
    recipient_last_name: str = ""
    recipient_email: str = ""
    issue_date: Union[datetime, date]
    template_data: TemplateData = Field(default_factory=TemplateData)
    qr_code_data: Optional[str] = None
    verification_id: Optional[str] = None
    verification_url: Optional[str] = None
    authorizing_official: Optional[str] = None

    @property
    def recipient_name(self) -> str:
        return f"{self.recipient_first_name} {self.recipient_last_name}".strip()

    def export_filename(self, fmt: Union[ExportFormat, str]) -> str:
        """Attachment filename: <Template>-<FirstName>-<LastName>.<ext>"""
        parts = [self.template_name or "Certificate", self.recipient_first_name, self.recipient_last_name]
        stem = "-".join(part for part in parts if part)
        stem = stem.replace('"', "").replace("\\", "").replace("/", "-").replace("\r", "").replace("\n", "")
        extension = fmt.value if isinstance(fmt, ExportFormat) else fmt
        return f"{stem}.{extension}"
