"""
Tests for PDF merging and page counting.
"""
import os

import fitz  # PyMuPDF
import pytest

from solarsign.pdf.errors import MalformedDocument, SourceNotFound
from solarsign.pdf.merge import get_page_count, get_page_count_from_bytes, merge_pdf_files, merge_pdfs


class TestMergePdfs:
    """In-memory merge."""

    @pytest.mark.parametrize("primary,secondary", [(23, 1), (24, 1), (1, 3), (5, 5)])
    def test_page_count_is_sum(self, pdf_bytes, primary, secondary):
        merged = merge_pdfs(pdf_bytes(primary), pdf_bytes(secondary))
        assert get_page_count_from_bytes(merged) == primary + secondary

    def test_page_order_preserved(self, pdf_bytes):
        """Primary pages come first, then secondary pages, each in order."""
        merged = merge_pdfs(pdf_bytes(2, label="Contract"), pdf_bytes(2, label="Booking"))

        doc = fitz.open(stream=merged, filetype="pdf")
        texts = [doc[i].get_text().strip() for i in range(doc.page_count)]
        doc.close()

        assert texts == ["Contract 1", "Contract 2", "Booking 1", "Booking 2"]

    def test_empty_input_is_source_not_found(self, pdf_bytes):
        with pytest.raises(SourceNotFound):
            merge_pdfs(b"", pdf_bytes(1))

    def test_garbage_input_is_malformed(self, pdf_bytes):
        with pytest.raises(MalformedDocument):
            merge_pdfs(pdf_bytes(1), b"this is not a pdf at all")


class TestMergePdfFiles:
    """Merge on disk."""

    def test_writes_output_and_reports_counts(self, make_pdf, temp_dir):
        contract = make_pdf(24, "contract.pdf")
        booking = make_pdf(1, "booking.pdf")
        output = os.path.join(temp_dir, "out", "merged.pdf")

        result = merge_pdf_files(contract, booking, output)

        assert result.primary_pages == 24
        assert result.secondary_pages == 1
        assert result.total_pages == 25
        assert os.path.exists(output)
        assert get_page_count(output) == 25

    def test_missing_secondary(self, make_pdf, temp_dir):
        contract = make_pdf(23, "contract.pdf")
        with pytest.raises(SourceNotFound):
            merge_pdf_files(contract, os.path.join(temp_dir, "missing.pdf"), os.path.join(temp_dir, "m.pdf"))

    def test_inputs_not_modified(self, make_pdf, temp_dir):
        contract = make_pdf(3, "contract.pdf")
        booking = make_pdf(1, "booking.pdf")
        with open(contract, "rb") as f:
            before = f.read()

        merge_pdf_files(contract, booking, os.path.join(temp_dir, "merged.pdf"))

        with open(contract, "rb") as f:
            assert f.read() == before


class TestGetPageCount:

    def test_missing_file(self, temp_dir):
        with pytest.raises(SourceNotFound):
            get_page_count(os.path.join(temp_dir, "nope.pdf"))

    def test_not_a_pdf(self, temp_dir):
        path = os.path.join(temp_dir, "fake.pdf")
        with open(path, "wb") as f:
            f.write(b"hello")
        with pytest.raises(MalformedDocument):
            get_page_count(path)
