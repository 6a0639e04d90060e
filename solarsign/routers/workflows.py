"""
Signing workflow API, called by the CRM when a document is ready to sign.
"""
import logging

from fastapi import APIRouter, Depends

from solarsign.auth import verify_internal_secret
from solarsign.config import Settings, get_settings
from solarsign.exceptions import status_for_code
from solarsign.models import (
    BookingWorkflowRequest,
    ContractWorkflowRequest,
    DisclaimerWorkflowRequest,
    ErrorResponse,
    LocalContractSignRequest,
    PreparedSubmitRequest,
    WorkflowResponse,
)
from solarsign.routers.digital_signature import model_response, resolve_document_path
from solarsign.services.workflow import SigningWorkflowService, WorkflowResult, get_workflow_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/workflows",
    tags=["workflows"],
    dependencies=[Depends(verify_internal_secret)],
    responses={
        401: {"model": ErrorResponse, "description": "Missing internal secret"},
        403: {"model": ErrorResponse, "description": "Invalid secret or path outside documents root"},
    },
)


def to_response(result: WorkflowResult):
    response = WorkflowResponse(
        success=result.success,
        message=result.message,
        template_id=result.template_id,
        submission_id=result.submission_id,
        signing_url=result.signing_url,
        total_pages=result.total_pages,
        unvalidated_page_count=result.unvalidated_page_count,
        signature_id=result.signature_id,
        error=result.error,
        code=result.code,
    )
    if not result.success:
        return model_response(response, status_for_code(result.code))
    return response


@router.post("/contract", response_model=WorkflowResponse)
async def create_contract_workflow(
    request: ContractWorkflowRequest,
    settings: Settings = Depends(get_settings),
    service: SigningWorkflowService = Depends(get_workflow_service),
):
    """Merge contract + booking confirmation and send it to the customer via DocuSeal."""
    result = await service.create_contract_and_booking_confirmation_workflow(
        contract_pdf_path=resolve_document_path(request.contract_pdf_path, settings),
        booking_confirmation_pdf_path=resolve_document_path(request.booking_confirmation_pdf_path, settings),
        opportunity_id=request.opportunity_id,
        customer=request.customer,
        calculator_type=request.calculator_type,
    )
    return to_response(result)


@router.post("/contract/prepare", response_model=WorkflowResponse)
async def prepare_contract_template(
    request: ContractWorkflowRequest,
    settings: Settings = Depends(get_settings),
    service: SigningWorkflowService = Depends(get_workflow_service),
):
    """Create the contract template without sending it, for a manual field check."""
    result = await service.prepare_contract_template(
        contract_pdf_path=resolve_document_path(request.contract_pdf_path, settings),
        booking_confirmation_pdf_path=resolve_document_path(request.booking_confirmation_pdf_path, settings),
        opportunity_id=request.opportunity_id,
        customer_name=request.customer.name,
        calculator_type=request.calculator_type,
    )
    return to_response(result)


@router.post("/contract/submit", response_model=WorkflowResponse)
async def submit_prepared_template(
    request: PreparedSubmitRequest,
    service: SigningWorkflowService = Depends(get_workflow_service),
):
    result = await service.submit_prepared_template(
        opportunity_id=request.opportunity_id,
        customer=request.customer,
    )
    return to_response(result)


@router.post("/disclaimer", response_model=WorkflowResponse)
async def create_disclaimer_workflow(
    request: DisclaimerWorkflowRequest,
    settings: Settings = Depends(get_settings),
    service: SigningWorkflowService = Depends(get_workflow_service),
):
    result = await service.create_disclaimer_workflow(
        disclaimer_pdf_path=resolve_document_path(request.disclaimer_pdf_path, settings),
        opportunity_id=request.opportunity_id,
        customer=request.customer,
        installer_name=request.installer_name,
        values=request.values,
    )
    return to_response(result)


@router.post("/booking-confirmation", response_model=WorkflowResponse)
async def create_booking_confirmation_workflow(
    request: BookingWorkflowRequest,
    settings: Settings = Depends(get_settings),
    service: SigningWorkflowService = Depends(get_workflow_service),
):
    result = await service.create_booking_confirmation_workflow(
        booking_confirmation_pdf_path=resolve_document_path(request.booking_confirmation_pdf_path, settings),
        opportunity_id=request.opportunity_id,
        customer=request.customer,
    )
    return to_response(result)


@router.post("/contract/local-sign", response_model=WorkflowResponse)
async def sign_contract_locally(
    request: LocalContractSignRequest,
    settings: Settings = Depends(get_settings),
    service: SigningWorkflowService = Depends(get_workflow_service),
):
    """
    Sign the merged contract without DocuSeal.

    The signed PDF is written next to the contract.
    """
    result = await service.sign_contract_locally(
        contract_pdf_path=resolve_document_path(request.contract_pdf_path, settings),
        booking_confirmation_pdf_path=resolve_document_path(request.booking_confirmation_pdf_path, settings),
        opportunity_id=request.opportunity_id,
        signed_by=request.signed_by,
        signature_data=request.signature_data,
        digital_footprint=request.digital_footprint,
        calculator_type=request.calculator_type,
    )
    return to_response(result)
