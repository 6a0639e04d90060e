"""
Local digital signature API - sign a stored PDF, verify a signature, list
the signatures of an opportunity.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from solarsign.auth import verify_internal_secret
from solarsign.config import Settings, get_settings
from solarsign.exceptions import PathNotAllowed, status_for_code
from solarsign.models import (
    ErrorResponse,
    SignatureHistoryResponse,
    SignPdfRequest,
    SignPdfResponse,
    VerifySignatureResponse,
)
from solarsign.services.digital_signature import DigitalSignatureService, get_digital_signature_service
from solarsign.utils.logging import set_context
from solarsign.utils.security import resolve_under_root

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/digital-signature",
    tags=["digital-signature"],
    dependencies=[Depends(verify_internal_secret)],
    responses={
        401: {"model": ErrorResponse, "description": "Missing internal secret"},
        403: {"model": ErrorResponse, "description": "Invalid secret or path outside documents root"},
    },
)


def resolve_document_path(path: str, settings: Settings) -> str:
    """Resolve a client-supplied path under DOCUMENTS_ROOT or reject it."""
    resolved = resolve_under_root(path, settings.documents_root)
    if resolved is None:
        logger.warning(f"Rejected document path outside documents root: {path}")
        raise PathNotAllowed(path)
    return resolved


def model_response(model: BaseModel, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(mode="json", by_alias=True))


@router.post("/sign-pdf", response_model=SignPdfResponse)
async def sign_pdf(
    request: SignPdfRequest,
    settings: Settings = Depends(get_settings),
    service: DigitalSignatureService = Depends(get_digital_signature_service),
):
    """
    Draw the signature into the PDF, stamp it and embed the digital footprint.

    The PDF is signed in place. Pages default to 6, 19, 21 and 23.
    """
    set_context(opportunity_id=request.opportunity_id)
    pdf_path = resolve_document_path(request.pdf_path, settings)

    result = await service.sign_pdf_with_digital_footprint(
        pdf_path=pdf_path,
        signature_data=request.signature_data,
        digital_footprint=request.digital_footprint,
        opportunity_id=request.opportunity_id,
        signed_by=request.signed_by,
        page_numbers=request.page_numbers,
    )

    response = SignPdfResponse(
        success=result.success,
        message=result.message,
        metadata=result.metadata,
        error=result.error,
        code=result.code,
    )
    if not result.success:
        return model_response(response, status_for_code(result.code))
    return response


@router.get("/verify/{signature_id}", response_model=VerifySignatureResponse)
async def verify_signature(
    signature_id: str,
    pdf_path: Optional[str] = Query(None, alias="pdfPath"),
    settings: Settings = Depends(get_settings),
    service: DigitalSignatureService = Depends(get_digital_signature_service),
):
    """Check that a signature record exists and its PDF is still on disk."""
    set_context(signature_id=signature_id)
    resolved = resolve_document_path(pdf_path, settings) if pdf_path else None

    result = await service.verify_signature(signature_id, resolved)
    response = VerifySignatureResponse(
        success=result.success,
        is_valid=result.is_valid,
        metadata=result.metadata,
        error=result.error,
    )
    if not result.success:
        return model_response(response, 404)
    return response


@router.get("/history/{opportunity_id}", response_model=SignatureHistoryResponse)
async def signature_history(
    opportunity_id: str,
    service: DigitalSignatureService = Depends(get_digital_signature_service),
):
    """All signatures recorded for an opportunity, newest first."""
    signatures = await service.get_signature_history(opportunity_id)
    return SignatureHistoryResponse(success=True, signatures=signatures)
