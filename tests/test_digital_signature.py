"""
Tests for local PDF signing with a digital footprint.
"""
import os
from unittest.mock import AsyncMock, MagicMock

import fitz  # PyMuPDF
import pytest

from solarsign.pdf.errors import MetadataPersistenceFailure
from solarsign.services.digital_signature import (
    DigitalSignatureService,
    read_embedded_footprints,
)
from solarsign.services.footprint import compute_verification_hash
from solarsign.services.metadata_store import FileSignatureMetadataStore


@pytest.fixture
def service(file_store):
    return DigitalSignatureService(store=file_store)


class TestSignPdf:
    """sign_pdf_with_digital_footprint"""

    @pytest.mark.asyncio
    async def test_signs_default_pages(self, service, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(23, "contract.pdf")

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
        )

        assert result.success, result.error
        assert result.message == "Digital signature added to pages 6, 19, 21, 23 with digital footprint"
        assert result.metadata.signature_position.page == 6
        assert result.metadata.signature_position.width == pytest.approx(200)

        doc = fitz.open(pdf_path)
        assert doc.page_count == 23
        for index in range(doc.page_count):
            page = doc[index]
            assert "[VERIFIED]" in page.get_text()
            signed = (index + 1) in (6, 19, 21, 23)
            assert bool(page.get_images()) == signed
            assert ("[DIGITALLY SIGNED]" in page.get_text()) == signed
        assert doc.metadata["author"] == "Jane Smith"
        assert result.metadata.signature_id in doc.metadata["subject"]
        doc.close()

    @pytest.mark.asyncio
    async def test_embeds_footprint(self, service, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(23)

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
        )

        embedded = read_embedded_footprints(pdf_path)
        assert len(embedded) == 1
        assert embedded[0]["signatureId"] == result.metadata.signature_id
        assert embedded[0]["verificationHash"] == compute_verification_hash(
            footprint, sample_png_base64, result.metadata.signed_at
        )

    @pytest.mark.asyncio
    async def test_metadata_persisted(self, service, file_store, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(23)

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
        )

        stored = await file_store.find_by_id(result.metadata.signature_id)
        assert stored == result.metadata
        assert stored.pdf_path == pdf_path

    @pytest.mark.asyncio
    async def test_output_path_leaves_source(self, service, make_pdf, temp_dir, sample_png_base64, footprint):
        pdf_path = make_pdf(2)
        with open(pdf_path, "rb") as f:
            original = f.read()
        output = os.path.join(temp_dir, "signed", "out.pdf")

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[2],
            output_path=output,
        )

        assert result.success
        assert result.metadata.pdf_path == output
        assert os.path.exists(output)
        with open(pdf_path, "rb") as f:
            assert f.read() == original

    @pytest.mark.asyncio
    async def test_missing_page_leaves_file_untouched(self, service, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(10)
        with open(pdf_path, "rb") as f:
            original = f.read()

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
        )

        assert not result.success
        assert result.code == "PAGE_INDEX_OUT_OF_RANGE"
        assert "Page 19 does not exist. Document has 10 pages." == result.error
        with open(pdf_path, "rb") as f:
            assert f.read() == original
        assert [n for n in os.listdir(os.path.dirname(pdf_path)) if n.startswith(".signing-")] == []

    @pytest.mark.asyncio
    async def test_missing_pdf(self, service, temp_dir, sample_png_base64, footprint):
        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=os.path.join(temp_dir, "nope.pdf"),
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
        )
        assert not result.success
        assert result.code == "SOURCE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_undecodable_signature_uses_placeholder(self, service, make_pdf, footprint):
        pdf_path = make_pdf(1)

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data="data:image/png;base64,bm90IGFuIGltYWdl",
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[1],
        )

        assert result.success
        assert result.metadata.signature_position.width == pytest.approx(60)
        assert result.metadata.signature_position.height == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_custom_anchor(self, service, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(3)

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[3],
            anchors={3: (120, 400)},
        )

        assert (result.metadata.signature_position.x, result.metadata.signature_position.y) == (120, 400)

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_fail_signing(self, make_pdf, sample_png_base64, footprint):
        store = MagicMock()
        store.save = AsyncMock(side_effect=MetadataPersistenceFailure("disk full"))
        service = DigitalSignatureService(store=store)
        pdf_path = make_pdf(1)

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[1],
        )

        assert result.success
        store.save.assert_awaited_once()
        assert len(read_embedded_footprints(pdf_path)) == 1

    @pytest.mark.asyncio
    async def test_unwritable_metadata_directory_does_not_fail_signing(
        self, make_pdf, temp_dir, sample_png_base64, footprint
    ):
        blocker = os.path.join(temp_dir, "not-a-directory")
        with open(blocker, "w") as f:
            f.write("x")
        service = DigitalSignatureService(store=FileSignatureMetadataStore(os.path.join(blocker, "meta")))
        pdf_path = make_pdf(1)

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[1],
        )

        assert result.success
        assert result.metadata is not None
        assert len(read_embedded_footprints(pdf_path)) == 1

    @pytest.mark.asyncio
    async def test_unexpected_store_error_does_not_fail_signing(self, make_pdf, sample_png_base64, footprint):
        store = MagicMock()
        store.save = AsyncMock(side_effect=RuntimeError("connection reset"))
        service = DigitalSignatureService(store=store)

        result = await service.sign_pdf_with_digital_footprint(
            pdf_path=make_pdf(1),
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[1],
        )

        assert result.success
        store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resigning_keeps_both_footprints(self, service, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(1)
        kwargs = dict(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[1],
        )

        first = await service.sign_pdf_with_digital_footprint(**kwargs)
        second = await service.sign_pdf_with_digital_footprint(**kwargs)

        assert first.success and second.success
        ids = {d["signatureId"] for d in read_embedded_footprints(pdf_path)}
        assert ids == {first.metadata.signature_id, second.metadata.signature_id}


class TestVerifySignature:

    @pytest.mark.asyncio
    async def test_valid(self, service, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(1)
        signed = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[1],
        )

        result = await service.verify_signature(signed.metadata.signature_id)

        assert result.success
        assert result.is_valid
        assert result.metadata == signed.metadata

    @pytest.mark.asyncio
    async def test_pdf_gone(self, service, make_pdf, sample_png_base64, footprint):
        pdf_path = make_pdf(1)
        signed = await service.sign_pdf_with_digital_footprint(
            pdf_path=pdf_path,
            signature_data=sample_png_base64,
            digital_footprint=footprint,
            opportunity_id="OPP-1",
            signed_by="Jane Smith",
            page_numbers=[1],
        )
        os.remove(pdf_path)

        result = await service.verify_signature(signed.metadata.signature_id)

        assert result.success
        assert not result.is_valid
        assert result.error == "PDF file not found"

    @pytest.mark.asyncio
    async def test_unknown_signature(self, service):
        result = await service.verify_signature("SIG_1_0123456789ABCDEF")
        assert not result.success
        assert not result.is_valid
        assert result.error == "Signature not found: SIG_1_0123456789ABCDEF"


class TestSignatureHistory:

    @pytest.mark.asyncio
    async def test_newest_first(self, service, make_pdf, sample_png_base64, footprint):
        ids = []
        for name in ("a.pdf", "b.pdf"):
            result = await service.sign_pdf_with_digital_footprint(
                pdf_path=make_pdf(1, name),
                signature_data=sample_png_base64,
                digital_footprint=footprint,
                opportunity_id="OPP-7",
                signed_by="Jane Smith",
                page_numbers=[1],
            )
            ids.append(result.metadata.signature_id)

        history = await service.get_signature_history("OPP-7")

        assert {m.signature_id for m in history} == set(ids)
        assert history[0].signed_at >= history[1].signed_at

    @pytest.mark.asyncio
    async def test_store_failure_returns_empty(self):
        store = MagicMock()
        store.find_by_opportunity = AsyncMock(side_effect=MetadataPersistenceFailure("down"))
        service = DigitalSignatureService(store=store)

        assert await service.get_signature_history("OPP-1") == []
