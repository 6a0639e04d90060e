"""
Signing workflow orchestration.

Contract workflow:
1. Merge contract + booking confirmation into one PDF
2. Shift contract fields by (actual - baseline) pages, put booking
   confirmation fields on the page after the contract
3. Check every field lands inside the merged document
4. Create a DocuSeal template and a submission for the customer

When no vendor is configured, sign_contract_locally() runs the same merge and
field correction and signs the merged PDF with DigitalSignatureService.

Only one run per (opportunity, document kind) is allowed at a time. Temp
files live in a per-run directory removed on success and failure.
"""
import base64
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import fitz  # PyMuPDF

from solarsign.config import Settings, get_settings
from solarsign.models import (
    CalculatorType,
    CustomerInfo,
    DigitalFootprint,
    DocumentKind,
    FieldType,
    SignatureField,
)
from solarsign.pdf.errors import DocumentPipelineError, SourceNotFound
from solarsign.pdf.field_maps import (
    BOOKING_CONFIRMATION_FIELDS,
    DISCLAIMER_FIELDS,
    DISCLAIMER_VALUE_FIELDS,
    contract_and_booking_fields,
)
from solarsign.pdf.fields import (
    area_to_pdf_rect,
    correct_page_offsets,
    ensure_unique_names,
    is_validated_page_count,
    to_page_index,
    to_vendor_fields,
    validate_field_pages,
)
from solarsign.pdf.merge import MergeResult, get_page_count, merge_pdf_files
from solarsign.services.digital_signature import DigitalSignatureService, get_digital_signature_service
from solarsign.services.docuseal import DocuSealClient, Signer, get_docuseal_client
from solarsign.utils.cache import InFlightRegistry, TTLCache, get_in_flight_registry, get_template_cache
from solarsign.utils.datetime_utils import format_short_date, utc_now
from solarsign.utils.logging import mask_email, set_context

logger = logging.getLogger(__name__)


@dataclass
class WorkflowResult:
    success: bool
    message: str
    template_id: Optional[int] = None
    submission_id: Optional[int] = None
    signing_url: Optional[str] = None
    total_pages: Optional[int] = None
    unvalidated_page_count: bool = False
    signature_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


@dataclass
class PreparedTemplate:
    """Contract template created but not yet sent to the customer."""
    template_id: int
    opportunity_id: str
    total_pages: int
    unvalidated_page_count: bool
    document_name: str


@dataclass
class ContractLayout:
    merge: MergeResult
    fields: List[SignatureField]
    unvalidated_page_count: bool


class SigningWorkflowService:
    """Builds signable documents and hands them to DocuSeal or the local signer."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        docuseal: Optional[DocuSealClient] = None,
        signature_service: Optional[DigitalSignatureService] = None,
        template_cache: Optional[TTLCache] = None,
        in_flight: Optional[InFlightRegistry] = None,
    ):
        self.settings = settings or get_settings()
        self.docuseal = docuseal or get_docuseal_client()
        self._signature_service = signature_service
        self.template_cache = template_cache or get_template_cache(self.settings.template_cache_ttl_seconds)
        self.in_flight = in_flight or get_in_flight_registry()

    @property
    def signature_service(self) -> DigitalSignatureService:
        if self._signature_service is None:
            self._signature_service = get_digital_signature_service()
        return self._signature_service

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _guarded(
        self,
        kind: DocumentKind,
        opportunity_id: str,
        failure_message: str,
        action: Callable[[str], Awaitable[WorkflowResult]],
    ) -> WorkflowResult:
        """Run action(work_dir) exclusively per (opportunity, kind) and convert failures."""
        set_context(opportunity_id=opportunity_id)

        if not self.in_flight.acquire(opportunity_id, kind.value):
            logger.warning(f"{kind.value} workflow already running for {opportunity_id}")
            return WorkflowResult(
                success=False,
                message=failure_message,
                error=f"A {kind.value} workflow is already in progress for this opportunity",
                code="WORKFLOW_IN_PROGRESS",
            )

        work_dir: Optional[str] = None
        try:
            os.makedirs(self.settings.temp_dir, exist_ok=True)
            work_dir = tempfile.mkdtemp(prefix=f"{kind.value}_", dir=self.settings.temp_dir)
            return await action(work_dir)
        except DocumentPipelineError as e:
            logger.error(f"{failure_message}: {e.code} - {e.message}")
            return WorkflowResult(success=False, message=failure_message, error=e.message, code=e.code)
        except Exception as e:
            logger.exception(failure_message)
            return WorkflowResult(success=False, message=failure_message, error=str(e), code="INTERNAL_ERROR")
        finally:
            if work_dir is not None:
                shutil.rmtree(work_dir, ignore_errors=True)
            self.in_flight.release(opportunity_id, kind.value)

    def _layout_contract(
        self,
        contract_pdf_path: str,
        booking_confirmation_pdf_path: str,
        calculator_type: CalculatorType,
        work_dir: str,
    ) -> ContractLayout:
        """Merge the documents and place all fields on the merged page numbers."""
        if not os.path.isfile(booking_confirmation_pdf_path):
            raise SourceNotFound(
                f"Booking confirmation PDF not found at {booking_confirmation_pdf_path}. "
                f"Booking confirmation is required for all contract signings."
            )

        merged = merge_pdf_files(
            contract_pdf_path,
            booking_confirmation_pdf_path,
            os.path.join(work_dir, "merged_contract.pdf"),
        )
        logger.info(
            f"Contract has {merged.primary_pages} pages. Booking confirmation will be on "
            f"page {merged.primary_pages + 1}"
        )

        unvalidated = not is_validated_page_count(
            merged.primary_pages, self.settings.validated_contract_page_counts
        )
        if unvalidated:
            logger.warning(
                f"Contract has {merged.primary_pages} pages (validated: "
                f"{self.settings.validated_contract_page_counts}) - field placement is unverified"
            )

        fields = correct_page_offsets(
            contract_and_booking_fields(calculator_type),
            self.settings.contract_baseline_pages,
            merged.primary_pages,
        )
        ensure_unique_names(fields)
        validate_field_pages(fields, merged.total_pages)

        return ContractLayout(merge=merged, fields=fields, unvalidated_page_count=unvalidated)

    @staticmethod
    def _read_base64(path: str) -> str:
        with open(path, "rb") as f:
            return base64.b64encode(f.read()).decode()

    async def _submit(
        self,
        template_id: int,
        customer: CustomerInfo,
        values: Dict[str, Any],
    ) -> Tuple[Optional[int], Optional[str]]:
        """Create the submission and return (submission_id, signing_url)."""
        logger.info(f"Creating submission and sending email to {mask_email(customer.email)}")
        submitters = await self.docuseal.create_submission(
            template_id,
            [Signer(name=customer.name, email=customer.email)],
            values={k: v for k, v in values.items() if v not in (None, "")},
        )
        first = submitters[0]
        return first.submission_id, self.docuseal.build_signing_url(first)

    @staticmethod
    def _today() -> str:
        return format_short_date(utc_now())

    # ------------------------------------------------------------------
    # Contract + booking confirmation
    # ------------------------------------------------------------------

    async def create_contract_and_booking_confirmation_workflow(
        self,
        contract_pdf_path: str,
        booking_confirmation_pdf_path: str,
        opportunity_id: str,
        customer: CustomerInfo,
        calculator_type: CalculatorType = CalculatorType.FLUX,
    ) -> WorkflowResult:
        """Merge, map fields, create the template and send it to the customer."""
        failure = "Failed to create contract signing workflow"

        async def run(work_dir: str) -> WorkflowResult:
            layout = self._layout_contract(
                contract_pdf_path, booking_confirmation_pdf_path, calculator_type, work_dir
            )
            document_name = f"Contract & Booking Confirmation - {customer.name}"
            template = await self.docuseal.create_template_from_pdf(
                name=f"{document_name} - {opportunity_id}",
                document_name=document_name,
                file_base64=self._read_base64(layout.merge.output_path),
                fields=to_vendor_fields(layout.fields, self.settings.docuseal_page_base),
                external_id=opportunity_id,
            )
            submission_id, signing_url = await self._submit(
                template.id,
                customer,
                {"Full Name": customer.name, "Date Signed": self._today()},
            )
            logger.info(
                f"Contract workflow created for {opportunity_id}: template {template.id}, "
                f"submission {submission_id}"
            )
            return WorkflowResult(
                success=True,
                message="Contract and booking confirmation sent for signing",
                template_id=template.id,
                submission_id=submission_id,
                signing_url=signing_url,
                total_pages=layout.merge.total_pages,
                unvalidated_page_count=layout.unvalidated_page_count,
            )

        return await self._guarded(DocumentKind.CONTRACT, opportunity_id, failure, run)

    async def prepare_contract_template(
        self,
        contract_pdf_path: str,
        booking_confirmation_pdf_path: str,
        opportunity_id: str,
        customer_name: str,
        calculator_type: CalculatorType = CalculatorType.FLUX,
    ) -> WorkflowResult:
        """
        Create the contract template without sending it.

        The template is kept in the template cache until submit_prepared_template()
        is called or the entry expires.
        """
        failure = "Failed to prepare contract template"

        async def run(work_dir: str) -> WorkflowResult:
            layout = self._layout_contract(
                contract_pdf_path, booking_confirmation_pdf_path, calculator_type, work_dir
            )
            document_name = f"Contract & Booking Confirmation - {customer_name}"
            template = await self.docuseal.create_template_from_pdf(
                name=f"{document_name} - {opportunity_id}",
                document_name=document_name,
                file_base64=self._read_base64(layout.merge.output_path),
                fields=to_vendor_fields(layout.fields, self.settings.docuseal_page_base),
                external_id=opportunity_id,
            )
            self.template_cache.set(
                opportunity_id,
                PreparedTemplate(
                    template_id=template.id,
                    opportunity_id=opportunity_id,
                    total_pages=layout.merge.total_pages,
                    unvalidated_page_count=layout.unvalidated_page_count,
                    document_name=document_name,
                ),
            )
            logger.info(f"Prepared contract template {template.id} for {opportunity_id}")
            return WorkflowResult(
                success=True,
                message="Contract template created; review field positions before sending",
                template_id=template.id,
                total_pages=layout.merge.total_pages,
                unvalidated_page_count=layout.unvalidated_page_count,
            )

        return await self._guarded(DocumentKind.CONTRACT, opportunity_id, failure, run)

    async def submit_prepared_template(
        self,
        opportunity_id: str,
        customer: CustomerInfo,
    ) -> WorkflowResult:
        """Send a template created by prepare_contract_template() to the customer."""
        failure = "Failed to submit prepared contract template"

        async def run(work_dir: str) -> WorkflowResult:
            prepared: Optional[PreparedTemplate] = self.template_cache.get(opportunity_id)
            if prepared is None:
                return WorkflowResult(
                    success=False,
                    message=failure,
                    error=f"No prepared template for opportunity {opportunity_id}",
                    code="TEMPLATE_NOT_FOUND",
                )
            submission_id, signing_url = await self._submit(
                prepared.template_id,
                customer,
                {"Full Name": customer.name, "Date Signed": self._today()},
            )
            self.template_cache.delete(opportunity_id)
            return WorkflowResult(
                success=True,
                message="Contract and booking confirmation sent for signing",
                template_id=prepared.template_id,
                submission_id=submission_id,
                signing_url=signing_url,
                total_pages=prepared.total_pages,
                unvalidated_page_count=prepared.unvalidated_page_count,
            )

        return await self._guarded(DocumentKind.CONTRACT, opportunity_id, failure, run)

    # ------------------------------------------------------------------
    # Stand-alone documents
    # ------------------------------------------------------------------

    async def _single_document_workflow(
        self,
        kind: DocumentKind,
        title: str,
        pdf_path: str,
        opportunity_id: str,
        customer: CustomerInfo,
        fields: List[SignatureField],
        values: Dict[str, Any],
    ) -> WorkflowResult:
        failure = f"Failed to create {title.lower()} signing workflow"

        async def run(work_dir: str) -> WorkflowResult:
            total_pages = get_page_count(pdf_path)
            validate_field_pages(fields, total_pages)
            document_name = f"{title} - {customer.name}"
            template = await self.docuseal.create_template_from_pdf(
                name=f"{document_name} - {opportunity_id}",
                document_name=document_name,
                file_base64=self._read_base64(pdf_path),
                fields=to_vendor_fields(fields, self.settings.docuseal_page_base),
                external_id=opportunity_id,
            )
            submission_id, signing_url = await self._submit(template.id, customer, values)
            logger.info(f"{title} workflow created for {opportunity_id}: template {template.id}")
            return WorkflowResult(
                success=True,
                message=f"{title} sent for signing",
                template_id=template.id,
                submission_id=submission_id,
                signing_url=signing_url,
                total_pages=total_pages,
            )

        return await self._guarded(kind, opportunity_id, failure, run)

    async def create_disclaimer_workflow(
        self,
        disclaimer_pdf_path: str,
        opportunity_id: str,
        customer: CustomerInfo,
        installer_name: Optional[str] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> WorkflowResult:
        """Send the disclaimer with installer/customer names and bill figures prefilled."""
        prefill: Dict[str, Any] = {
            "Customer Name": customer.name,
            "Customer Name (Signature Block)": customer.name,
            "Installers Name": installer_name,
            "Date Signed": self._today(),
        }
        for key, field_name in DISCLAIMER_VALUE_FIELDS.items():
            if values and key in values:
                prefill[field_name] = values[key]

        return await self._single_document_workflow(
            DocumentKind.DISCLAIMER,
            "Disclaimer",
            disclaimer_pdf_path,
            opportunity_id,
            customer,
            DISCLAIMER_FIELDS,
            prefill,
        )

    async def create_booking_confirmation_workflow(
        self,
        booking_confirmation_pdf_path: str,
        opportunity_id: str,
        customer: CustomerInfo,
    ) -> WorkflowResult:
        """Send the booking confirmation on its own."""
        return await self._single_document_workflow(
            DocumentKind.BOOKING_CONFIRMATION,
            "Booking Confirmation",
            booking_confirmation_pdf_path,
            opportunity_id,
            customer,
            BOOKING_CONFIRMATION_FIELDS,
            {"Full Name": customer.name, "Date Signed": self._today()},
        )

    # ------------------------------------------------------------------
    # Local signing
    # ------------------------------------------------------------------

    @staticmethod
    def signature_anchors(
        fields: List[SignatureField],
        merged_pdf_path: str,
    ) -> Tuple[List[int], Dict[int, Tuple[float, float]]]:
        """
        Target pages and bottom-left anchors from the signature fields.

        The first signature area on a page decides that page's anchor.
        """
        doc = fitz.open(merged_pdf_path)
        try:
            anchors: Dict[int, Tuple[float, float]] = {}
            for field in fields:
                if field.type != FieldType.SIGNATURE:
                    continue
                for area in field.areas:
                    if area.page in anchors:
                        continue
                    rect = doc[to_page_index(area.page)].rect
                    x, y, _, _ = area_to_pdf_rect(area, rect.width, rect.height)
                    anchors[area.page] = (x, y)
        finally:
            doc.close()
        return sorted(anchors), anchors

    async def sign_contract_locally(
        self,
        contract_pdf_path: str,
        booking_confirmation_pdf_path: str,
        opportunity_id: str,
        signed_by: str,
        signature_data: str,
        digital_footprint: DigitalFootprint,
        calculator_type: CalculatorType = CalculatorType.FLUX,
        output_path: Optional[str] = None,
    ) -> WorkflowResult:
        """Merge, map fields and sign the merged contract without the vendor."""
        failure = "Failed to sign contract locally"
        target = output_path or os.path.join(
            os.path.dirname(os.path.abspath(contract_pdf_path)),
            f"signed_contract_{opportunity_id}_{int(time.time() * 1000)}.pdf",
        )

        async def run(work_dir: str) -> WorkflowResult:
            layout = self._layout_contract(
                contract_pdf_path, booking_confirmation_pdf_path, calculator_type, work_dir
            )
            pages, anchors = self.signature_anchors(layout.fields, layout.merge.output_path)

            signed = await self.signature_service.sign_pdf_with_digital_footprint(
                pdf_path=layout.merge.output_path,
                signature_data=signature_data,
                digital_footprint=digital_footprint,
                opportunity_id=opportunity_id,
                signed_by=signed_by,
                page_numbers=pages,
                anchors=anchors,
                output_path=target,
            )
            if not signed.success:
                return WorkflowResult(
                    success=False,
                    message=failure,
                    total_pages=layout.merge.total_pages,
                    unvalidated_page_count=layout.unvalidated_page_count,
                    error=signed.error,
                    code=signed.code,
                )
            return WorkflowResult(
                success=True,
                message=signed.message,
                total_pages=layout.merge.total_pages,
                unvalidated_page_count=layout.unvalidated_page_count,
                signature_id=signed.metadata.signature_id if signed.metadata else None,
            )

        return await self._guarded(DocumentKind.CONTRACT, opportunity_id, failure, run)


# Singleton instance
_workflow_service: Optional[SigningWorkflowService] = None


def get_workflow_service() -> SigningWorkflowService:
    """Get the workflow service singleton."""
    global _workflow_service
    if _workflow_service is None:
        _workflow_service = SigningWorkflowService()
    return _workflow_service
