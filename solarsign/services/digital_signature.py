"""
Local digital signing: draws the customer's signature into a PDF, stamps it,
embeds the digital footprint and records verifiable metadata.

Flow:
1. Open the PDF and check every target page exists
2. Decode the signature image (SVG / undecodable -> placeholder)
3. Size it once, build metadata + verification hash
4. Place the image, stamp every page, stamp the signature pages
5. Embed the footprint (info dict + attached JSON file)
6. Save atomically (temp file, then replace)
7. Persist metadata; a persistence failure is logged, not fatal
"""
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from solarsign.models import DigitalFootprint, SignatureMetadata, SignaturePosition
from solarsign.pdf.errors import (
    DocumentPipelineError,
    MalformedDocument,
    MetadataPersistenceFailure,
    SourceNotFound,
    UnsupportedImageFormat,
)
from solarsign.pdf.sign import (
    DEFAULT_SIGNATURE_PAGES,
    SignaturePlacementEngine,
    SignatureSize,
    anchor_for_page,
    compute_signature_size,
    decode_signature_image,
    get_placement_engine,
    placeholder_signature,
    validate_target_pages,
)
from solarsign.pdf.stamp import stamp_all, stamp_detailed
from solarsign.services.footprint import build_signature_metadata, footprint_document
from solarsign.services.metadata_store import SignatureMetadataStore, get_metadata_store
from solarsign.utils.logging import fingerprint, set_context

logger = logging.getLogger(__name__)

FOOTPRINT_FILE_PREFIX = "signature-footprint"
PRODUCER = "Solar Sign - Digital Signature Service"


@dataclass
class SigningResult:
    success: bool
    message: str
    metadata: Optional[SignatureMetadata] = None
    error: Optional[str] = None
    code: Optional[str] = None


@dataclass
class VerificationResult:
    success: bool
    is_valid: bool
    metadata: Optional[SignatureMetadata] = None
    error: Optional[str] = None


def _open_pdf(pdf_path: str) -> fitz.Document:
    if not pdf_path or not os.path.isfile(pdf_path):
        raise SourceNotFound(f"PDF not found: {pdf_path}")
    try:
        return fitz.open(pdf_path)
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise MalformedDocument(f"Invalid PDF file: {e}")


def _footprint_files(doc: fitz.Document) -> List[str]:
    return [name for name in doc.embfile_names() if name.startswith(FOOTPRINT_FILE_PREFIX)]


def embed_footprint(doc: fitz.Document, metadata: SignatureMetadata) -> None:
    """Write the footprint into the document info dict and as an attached JSON file."""
    info = doc.metadata or {}
    info.update({
        "title": f"Signed Document - {metadata.opportunity_id}",
        "author": metadata.signed_by,
        "subject": f"Digital Signature - {metadata.signature_id}",
        "keywords": f"digital-signature, signed, {metadata.opportunity_id}",
        "producer": PRODUCER,
        "creator": PRODUCER,
    })
    doc.set_metadata(info)

    payload = json.dumps(footprint_document(metadata), indent=2).encode("utf-8")
    doc.embfile_add(
        f"{FOOTPRINT_FILE_PREFIX}-{metadata.signature_id}.json",
        payload,
        filename=f"{FOOTPRINT_FILE_PREFIX}-{metadata.signature_id}.json",
        desc=f"Digital footprint for {metadata.signature_id}",
    )


def read_embedded_footprints(pdf_path: str) -> List[Dict[str, Any]]:
    """Return every footprint document attached to a signed PDF, oldest first."""
    doc = _open_pdf(pdf_path)
    try:
        return [json.loads(doc.embfile_get(name)) for name in _footprint_files(doc)]
    finally:
        doc.close()


def save_atomically(doc: fitz.Document, output_path: str) -> None:
    """
    Save to a temp file next to output_path, then replace it.

    The target is either fully written or left untouched.
    """
    directory = os.path.dirname(os.path.abspath(output_path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(suffix=".pdf", prefix=".signing-", dir=directory)
    os.close(fd)
    try:
        doc.save(tmp_path, garbage=4, deflate=True)
        os.replace(tmp_path, output_path)
    except Exception:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class DigitalSignatureService:
    """Signs PDFs locally and keeps a verifiable record of each signature."""

    def __init__(
        self,
        store: Optional[SignatureMetadataStore] = None,
        placement_engine: Optional[SignaturePlacementEngine] = None,
    ):
        self.store = store or get_metadata_store()
        self.placement_engine = placement_engine or get_placement_engine()

    async def sign_pdf_with_digital_footprint(
        self,
        pdf_path: str,
        signature_data: str,
        digital_footprint: DigitalFootprint,
        opportunity_id: str,
        signed_by: str,
        page_numbers: Optional[Sequence[int]] = None,
        anchors: Optional[Mapping[int, Tuple[float, float]]] = None,
        output_path: Optional[str] = None,
    ) -> SigningResult:
        """
        Sign a PDF with the customer's signature and digital footprint.

        Args:
            pdf_path: PDF to sign
            signature_data: Base64 / data-URL signature image
            digital_footprint: Client-captured footprint
            opportunity_id: CRM opportunity the document belongs to
            signed_by: Customer name
            page_numbers: 1-based pages to sign (default 6, 19, 21, 23)
            anchors: page -> (x, y) bottom-left anchor in points
            output_path: Where to write the signed PDF (default: overwrite pdf_path)

        Returns:
            SigningResult; failures are reported, never raised
        """
        pages = list(page_numbers or DEFAULT_SIGNATURE_PAGES)
        target_path = output_path or pdf_path
        set_context(opportunity_id=opportunity_id)

        logger.info(
            f"Adding digital signature to {os.path.basename(pdf_path or '')} "
            f"on pages {pages} (signature {fingerprint(signature_data, 'sig_')})"
        )

        doc: Optional[fitz.Document] = None
        try:
            doc = _open_pdf(pdf_path)
            logger.info(f"PDF has {doc.page_count} pages")
            validate_target_pages(pages, doc.page_count)

            previous = _footprint_files(doc)
            if previous:
                logger.warning(
                    f"PDF already carries {len(previous)} digital footprint(s); "
                    f"new stamps will be drawn over the existing ones"
                )

            try:
                image = decode_signature_image(signature_data)
            except UnsupportedImageFormat as e:
                logger.warning(f"Signature image could not be decoded, using placeholder: {e.message}")
                image = placeholder_signature()

            width, height = compute_signature_size(image.width, image.height)
            size = SignatureSize(width=width, height=height)
            anchor_x, anchor_y = anchor_for_page(pages[0], anchors)

            metadata = build_signature_metadata(
                opportunity_id=opportunity_id,
                signed_by=signed_by,
                footprint=digital_footprint,
                signature_payload=signature_data,
                pdf_path=target_path,
                position=SignaturePosition(
                    x=anchor_x,
                    y=anchor_y,
                    width=width,
                    height=height,
                    page=pages[0],
                ),
            )
            set_context(signature_id=metadata.signature_id)

            self.placement_engine.place(doc, image, pages, anchors=anchors, size=size)
            stamp_all(doc, metadata)
            stamp_detailed(doc, metadata, pages)
            embed_footprint(doc, metadata)

            save_atomically(doc, target_path)
            doc.close()
            doc = None

        except DocumentPipelineError as e:
            logger.error(f"Error adding digital signature to PDF: {e.code} - {e.message}")
            return SigningResult(
                success=False,
                message="Failed to add digital signature to PDF",
                error=e.message,
                code=e.code,
            )
        except Exception as e:
            logger.exception("Failed to sign PDF")
            return SigningResult(
                success=False,
                message="Failed to add digital signature to PDF",
                error=str(e),
                code="SIGNING_ERROR",
            )
        finally:
            if doc is not None:
                doc.close()

        try:
            await self.store.save(metadata)
        except MetadataPersistenceFailure as e:
            # Signed PDF is already on disk and carries the embedded footprint
            logger.error(f"Error saving signature metadata: {e.message}")
        except Exception:
            logger.exception(f"Unexpected error saving signature metadata {metadata.signature_id}")

        pages_text = ", ".join(str(p) for p in pages)
        logger.info(f"Digital signature added with footprint to pages {pages_text}")
        return SigningResult(
            success=True,
            message=f"Digital signature added to pages {pages_text} with digital footprint",
            metadata=metadata,
        )

    async def verify_signature(
        self,
        signature_id: str,
        pdf_path: Optional[str] = None,
    ) -> VerificationResult:
        """
        Check that a signature record exists and its PDF is still present.

        Uses the stored pdfPath when pdf_path is not given. The PDF bytes are
        not rehashed.
        """
        try:
            metadata = await self.store.find_by_id(signature_id)
        except MetadataPersistenceFailure as e:
            logger.error(f"Error verifying signature: {e.message}")
            return VerificationResult(success=False, is_valid=False, error=e.message)

        if metadata is None:
            return VerificationResult(
                success=False,
                is_valid=False,
                error=f"Signature not found: {signature_id}",
            )

        path = pdf_path or metadata.pdf_path
        if not path or not os.path.isfile(path):
            return VerificationResult(
                success=True,
                is_valid=False,
                metadata=metadata,
                error="PDF file not found",
            )

        return VerificationResult(success=True, is_valid=True, metadata=metadata)

    async def get_signature_history(self, opportunity_id: str) -> List[SignatureMetadata]:
        """All signatures for an opportunity, newest first. Empty on store errors."""
        try:
            return await self.store.find_by_opportunity(opportunity_id)
        except MetadataPersistenceFailure as e:
            logger.error(f"Error getting signature history: {e.message}")
            return []


# Singleton instance
_digital_signature_service: Optional[DigitalSignatureService] = None


def get_digital_signature_service() -> DigitalSignatureService:
    """Get the digital signature service singleton."""
    global _digital_signature_service
    if _digital_signature_service is None:
        _digital_signature_service = DigitalSignatureService()
    return _digital_signature_service
