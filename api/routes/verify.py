"""
Verify API route - public certificate verification

Resolves the verification id encoded in a certificate's QR code and reports
whether the certificate is currently valid. Revoked and expired certificates
are returned with ``valid: false``.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.deps import get_render_config, get_store
from core.config import RenderConfig
from core.errors import ConfigurationError, service_unavailable_response
from core.logging import log_with_context
from core.models_sql import CertificateStatus
from core.qr import verification_url_for
from core.store import CertificateRecord, CertificateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/certificates/verify", tags=["verify"])


def _split_name(full_name: str) -> Dict[str, str]:
    first, _, last = (full_name or "").strip().partition(" ")
    return {"firstName": first, "lastName": last.strip()}


def verification_status(record: CertificateRecord) -> Dict[str, Any]:
    if record.status is CertificateStatus.REVOKED:
        return {"valid": False, "message": "This certificate has been revoked"}
    if record.status is CertificateStatus.EXPIRED or record.is_expired():
        return {"valid": False, "message": "This certificate has expired"}
    return {"valid": True, "message": "Certificate is valid"}


@router.get("/{verification_id}")
async def verify_certificate(
    request: Request,
    verification_id: str,
    store: CertificateStore = Depends(get_store),
    config: RenderConfig = Depends(get_render_config),
):
    """
    Look up a certificate by verification id.

    Returns 404 with ``valid: false`` for unknown ids.
    """
    try:
        record = await store.get_by_verification_id(verification_id)
    except ConfigurationError as e:
        return service_unavailable_response(e)

    if record is None:
        log_with_context(logger, "info", "Verification of unknown certificate", request=request,
                         verification_id=verification_id)
        return JSONResponse(
            status_code=404,
            content={"valid": False, "message": "Certificate not found or invalid"},
        )

    status = verification_status(record)
    log_with_context(logger, "info", f"Verified certificate {record.id}: valid={status['valid']}",
                     request=request, certificate_id=record.id)

    issuer = record.authorizing_official or config.default_issuer_name
    return {
        **status,
        "certificate": {
            "id": record.id,
            "verificationId": record.verification_id,
            "verificationUrl": verification_url_for(
                config.base_url, config.verification_path, record.verification_id
            ),
            "template": {"name": record.template_name or "Certificate"},
            "recipient": {
                "firstName": record.recipient_first_name,
                "lastName": record.recipient_last_name,
            },
            "issueDate": record.issue_date.isoformat(),
            "expiryDate": record.expiry_date.isoformat() if record.expiry_date else None,
            "status": record.status.value,
            "issuer": _split_name(issuer),
        },
    }
