"""
PDF merge and page-count inspection using PyMuPDF (fitz).

Pages are copied as PDF objects with insert_pdf, never rasterized, so text
and vector content of both sources survive the merge.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

import fitz  # PyMuPDF

from solarsign.pdf.errors import MalformedDocument, SourceNotFound

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of merging two PDF files on disk."""
    output_path: str
    primary_pages: int
    secondary_pages: int
    total_pages: int


def _open_bytes(data: Optional[bytes], label: str) -> fitz.Document:
    if not data:
        raise SourceNotFound(f"{label} PDF is empty")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise MalformedDocument(f"{label} PDF cannot be parsed: {e}")
    if doc.page_count == 0:
        doc.close()
        raise MalformedDocument(f"{label} PDF has no pages")
    return doc


def _read_file(path: str, label: str) -> bytes:
    if not path or not os.path.isfile(path):
        raise SourceNotFound(f"{label} PDF not found: {path}")
    with open(path, "rb") as f:
        return f.read()


def get_page_count_from_bytes(data: bytes) -> int:
    """Return the number of pages of an in-memory PDF."""
    doc = _open_bytes(data, "Source")
    try:
        return doc.page_count
    finally:
        doc.close()


def get_page_count(path: str) -> int:
    """
    Return the number of pages of a PDF on disk.

    Raises:
        SourceNotFound: path does not exist
        MalformedDocument: file is not a readable PDF
    """
    count = get_page_count_from_bytes(_read_file(path, "Source"))
    logger.debug(f"PDF {os.path.basename(path)} has {count} pages")
    return count


def merge_pdfs(primary: bytes, secondary: bytes) -> bytes:
    """
    Concatenate two PDFs: all pages of primary, then all pages of secondary.

    Output page count is always primary + secondary. Neither input is modified.
    """
    primary_doc = _open_bytes(primary, "Primary")
    try:
        secondary_doc = _open_bytes(secondary, "Secondary")
    except Exception:
        primary_doc.close()
        raise

    merged = fitz.open()
    try:
        merged.insert_pdf(primary_doc)
        merged.insert_pdf(secondary_doc)

        expected = primary_doc.page_count + secondary_doc.page_count
        if merged.page_count != expected:
            raise MalformedDocument(
                f"Merged document has {merged.page_count} pages, expected {expected}"
            )

        logger.info(
            f"Merged PDFs: {primary_doc.page_count} + {secondary_doc.page_count} "
            f"= {merged.page_count} pages"
        )
        return merged.tobytes(garbage=3, deflate=True)
    finally:
        merged.close()
        secondary_doc.close()
        primary_doc.close()


def merge_pdf_files(primary_path: str, secondary_path: str, output_path: str) -> MergeResult:
    """
    Merge two PDF files on disk and write the result to output_path.

    Raises:
        SourceNotFound: either input path is missing
        MalformedDocument: either input cannot be parsed
    """
    primary = _read_file(primary_path, "Primary")
    secondary = _read_file(secondary_path, "Secondary")

    primary_pages = get_page_count_from_bytes(primary)
    secondary_pages = get_page_count_from_bytes(secondary)

    merged = merge_pdfs(primary, secondary)

    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    with open(output_path, "wb") as f:
        f.write(merged)

    return MergeResult(
        output_path=output_path,
        primary_pages=primary_pages,
        secondary_pages=secondary_pages,
        total_pages=primary_pages + secondary_pages,
    )
