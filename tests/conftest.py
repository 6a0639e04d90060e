"""
Pytest configuration and fixtures.
"""
import base64
import io
import os
import sys
import tempfile
from unittest.mock import MagicMock

import fitz  # PyMuPDF
import pytest
from PIL import Image

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from solarsign.config import Settings  # noqa: E402
from solarsign.models import DigitalFootprint  # noqa: E402
from solarsign.services.metadata_store import FileSignatureMetadataStore  # noqa: E402

A4_WIDTH = 595
A4_HEIGHT = 842


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def make_pdf(temp_dir):
    """Factory writing an A4 PDF with numbered pages; returns its path."""

    def _make(pages: int, name: str = "document.pdf", label: str = "Page") -> str:
        path = os.path.join(temp_dir, name)
        doc = fitz.open()
        for i in range(pages):
            page = doc.new_page(width=A4_WIDTH, height=A4_HEIGHT)
            page.insert_text((72, 72), f"{label} {i + 1}", fontsize=12)
        doc.save(path)
        doc.close()
        return path

    return _make


@pytest.fixture
def pdf_bytes():
    """Factory returning in-memory PDF bytes."""

    def _make(pages: int, label: str = "Page") -> bytes:
        doc = fitz.open()
        for i in range(pages):
            page = doc.new_page(width=A4_WIDTH, height=A4_HEIGHT)
            page.insert_text((72, 72), f"{label} {i + 1}", fontsize=12)
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def make_image_base64():
    """Factory returning a base64 image drawn with Pillow."""

    def _make(width: int = 300, height: int = 100, fmt: str = "PNG", data_url: bool = True) -> str:
        if fmt == "PNG":
            img = Image.new("RGBA", (width, height), (255, 255, 255, 0))
            ink = (0, 0, 0, 255)
        else:
            img = Image.new("RGB", (width, height), (255, 255, 255))
            ink = (0, 0, 0)
        for x in range(min(width, height)):
            img.putpixel((x, x * height // max(width, 1)), ink)
        buffer = io.BytesIO()
        img.save(buffer, format=fmt)
        encoded = base64.b64encode(buffer.getvalue()).decode()
        if not data_url:
            return encoded
        return f"data:image/{fmt.lower()};base64,{encoded}"

    return _make


@pytest.fixture
def sample_png_base64(make_image_base64):
    """Signature-sized PNG as a data URL."""
    return make_image_base64(300, 100)


@pytest.fixture
def footprint_payload():
    """Footprint as the signing pad sends it."""
    return {
        "deviceInfo": {
            "platform": "iPad",
            "userAgent": "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)",
            "screenResolution": "1024x1366",
            "timezone": "Europe/London",
            "language": "en-GB",
        },
        "signatureData": {
            "totalPoints": 142,
            "duration": 2315,
            "startTime": 1724926530000,
            "endTime": 1724926532315,
            "pressurePoints": [0.4, 0.5, 0.55],
            "velocityPoints": [1.2, 0.8, 1.1],
            "boundingBox": {"minX": 10, "minY": 12, "maxX": 290, "maxY": 88},
        },
        "security": {
            "hash": "a3f1c2",
            "timestamp": 1724926532400,
            "sessionId": "sess-42",
        },
    }


@pytest.fixture
def footprint(footprint_payload):
    return DigitalFootprint.model_validate(footprint_payload)


@pytest.fixture
def settings(temp_dir):
    """Settings isolated to the test's temp directory."""
    documents = os.path.join(temp_dir, "documents")
    os.makedirs(documents, exist_ok=True)
    return Settings(
        ENVIRONMENT="test",
        DOCUSEAL_BASE_URL="https://api.docuseal.com",
        DOCUSEAL_API_KEY="test-api-key",
        SIGNATURE_METADATA_DIR=os.path.join(temp_dir, "signature-metadata"),
        DOCUMENTS_ROOT=documents,
        TEMP_DIR=os.path.join(temp_dir, "work"),
    )


@pytest.fixture
def file_store(settings):
    return FileSignatureMetadataStore(settings.signature_metadata_dir)


@pytest.fixture
def mock_supabase():
    """Create mock Supabase client."""
    client = MagicMock()

    # Mock table operations
    table_mock = MagicMock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.order.return_value = table_mock
    table_mock.execute.return_value = MagicMock(data=[], count=0)

    client.table.return_value = table_mock
    return client
