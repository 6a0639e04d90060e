"""
Signature image placement using PyMuPDF (fitz) and Pillow.

The customer's drawn signature arrives as a base64 (optionally data-URL)
image. It is decoded, sized once with an adaptive policy, and drawn at a
per-page anchor on every target page.

PDF coordinate system for anchors: origin at bottom-left, Y increases upward,
all values in points. PyMuPDF rects use a top-left origin, so anchors are
flipped before insertion.
"""
import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from solarsign.pdf.errors import PageIndexOutOfRange, UnsupportedImageFormat

logger = logging.getLogger(__name__)

# Reference business case: contract signature pages and their anchors
DEFAULT_SIGNATURE_PAGES = [6, 19, 21, 23]
DEFAULT_SIGNATURE_ANCHORS: Dict[int, Tuple[float, float]] = {
    1: (200, 180),   # Booking confirmation
    6: (300, 10),
    19: (150, 160),
    21: (150, 150),
    23: (80, 330),
}
FALLBACK_ANCHOR: Tuple[float, float] = (250, 180)

# Adaptive sizing policy (points)
SIGNATURE_AREA_WIDTH = 200
SIGNATURE_AREA_HEIGHT = 100
SMALL_WIDTH_THRESHOLD = 50
SMALL_HEIGHT_THRESHOLD = 25
LARGE_WIDTH_THRESHOLD = 300
LARGE_HEIGHT_THRESHOLD = 150
MIN_BOX_WIDTH = 80
MIN_BOX_HEIGHT = 40
ABSOLUTE_MIN_WIDTH = 60
ABSOLUTE_MIN_HEIGHT = 30

# 1x1 transparent PNG used when the payload cannot be rasterized (SVG)
PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
JPEG_MAGIC = b"\xff\xd8\xff"


@dataclass
class DecodedSignature:
    """Raster signature ready to embed."""
    data: bytes
    width: int
    height: int
    is_placeholder: bool = False


@dataclass
class SignatureSize:
    width: float
    height: float


def _split_data_url(payload: str) -> Tuple[Optional[str], str]:
    """Return (media_type, base64_body). media_type is None without a data-URL header."""
    if payload.startswith("data:") and "," in payload:
        header, body = payload.split(",", 1)
        media_type = header[5:].split(";", 1)[0].strip().lower()
        return media_type or None, body
    return None, payload


def placeholder_signature() -> DecodedSignature:
    return DecodedSignature(data=PLACEHOLDER_PNG, width=1, height=1, is_placeholder=True)


def decode_signature_image(payload: str) -> DecodedSignature:
    """
    Decode a signature payload into raster bytes and pixel dimensions.

    Args:
        payload: Base64 string, optionally prefixed with a data-URL header

    Returns:
        DecodedSignature (PNG or JPEG bytes)

    Raises:
        UnsupportedImageFormat: payload is not base64 or not a raster image
    """
    if not payload:
        raise UnsupportedImageFormat("Signature payload is empty")

    media_type, body = _split_data_url(payload.strip())

    if media_type == "image/svg+xml":
        logger.warning("SVG signature received, using placeholder image")
        return placeholder_signature()

    try:
        data = base64.b64decode("".join(body.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise UnsupportedImageFormat(f"Signature is not valid base64: {e}")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            width, height = img.size
            if data[:8] == PNG_MAGIC or data[:3] == JPEG_MAGIC:
                return DecodedSignature(data=data, width=width, height=height)

            # Other raster formats are normalized to PNG for embedding
            source_format = img.format or "raster"
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            buffer = io.BytesIO()
            img.save(buffer, format="PNG")
            logger.info(f"Re-encoded {source_format} signature as PNG")
            return DecodedSignature(data=buffer.getvalue(), width=width, height=height)
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedImageFormat(f"Signature is not a supported image: {e}")


def _fit(ratio: float, box_width: float, box_height: float) -> Tuple[float, float]:
    """Largest size with the given aspect ratio that fits the box."""
    if ratio > box_width / box_height:
        return box_width, box_width / ratio
    return box_height * ratio, box_height


def compute_signature_size(original_width: float, original_height: float) -> Tuple[float, float]:
    """
    Adaptive signature sizing in points.

    - small (w < 50 or h < 25): scaled up to fit an 80x40 box
    - large (w > 300 or h > 150): scaled down to fit the 200x100 area
    - medium: fit min(w, 200) x min(h, 100)

    Then enforced floor of 60 wide and 30 tall, re-deriving the other axis
    from the aspect ratio.
    """
    if original_width <= 0 or original_height <= 0:
        raise UnsupportedImageFormat(
            f"Signature image has invalid dimensions {original_width}x{original_height}"
        )

    ratio = original_width / original_height

    if original_width < SMALL_WIDTH_THRESHOLD or original_height < SMALL_HEIGHT_THRESHOLD:
        width, height = _fit(ratio, MIN_BOX_WIDTH, MIN_BOX_HEIGHT)
        tier = "small"
    elif original_width > LARGE_WIDTH_THRESHOLD or original_height > LARGE_HEIGHT_THRESHOLD:
        width, height = _fit(ratio, SIGNATURE_AREA_WIDTH, SIGNATURE_AREA_HEIGHT)
        tier = "large"
    else:
        width, height = _fit(
            ratio,
            min(original_width, SIGNATURE_AREA_WIDTH),
            min(original_height, SIGNATURE_AREA_HEIGHT),
        )
        tier = "medium"

    if width < ABSOLUTE_MIN_WIDTH:
        width = ABSOLUTE_MIN_WIDTH
        height = ABSOLUTE_MIN_WIDTH / ratio
    if height < ABSOLUTE_MIN_HEIGHT:
        height = ABSOLUTE_MIN_HEIGHT
        width = ABSOLUTE_MIN_HEIGHT * ratio

    logger.debug(
        f"Signature {original_width}x{original_height} ({tier}) -> {width:.1f}x{height:.1f}"
    )
    return width, height


def anchor_for_page(
    page_number: int,
    anchors: Optional[Mapping[int, Tuple[float, float]]] = None,
) -> Tuple[float, float]:
    """Bottom-left anchor for a 1-based page, falling back to (250, 180)."""
    table = DEFAULT_SIGNATURE_ANCHORS if anchors is None else anchors
    return table.get(page_number, FALLBACK_ANCHOR)


def validate_target_pages(page_numbers: Sequence[int], page_count: int) -> None:
    """Raise PageIndexOutOfRange for any 1-based page outside the document."""
    for page_number in page_numbers:
        if page_number < 1 or page_number > page_count:
            raise PageIndexOutOfRange(page=page_number, page_count=page_count)


class SignaturePlacementEngine:
    """Draws one signature image on several pages of an open document."""

    def place(
        self,
        doc: fitz.Document,
        image: DecodedSignature,
        target_pages: Sequence[int],
        anchors: Optional[Mapping[int, Tuple[float, float]]] = None,
        size: Optional[SignatureSize] = None,
    ) -> SignatureSize:
        """
        Draw the signature on each target page.

        Args:
            doc: Open PyMuPDF document (modified in place)
            image: Decoded signature
            target_pages: 1-based page numbers
            anchors: page -> (x, y) bottom-left corner in points
            size: Precomputed size; computed from the image when omitted

        Returns:
            The size used on every page

        Raises:
            PageIndexOutOfRange: a target page does not exist
        """
        validate_target_pages(target_pages, doc.page_count)

        if size is None:
            width, height = compute_signature_size(image.width, image.height)
            size = SignatureSize(width=width, height=height)

        for page_number in target_pages:
            page = doc[page_number - 1]
            x, y = anchor_for_page(page_number, anchors)
            page_height = page.rect.height

            # Flip from bottom-left to PyMuPDF top-left coordinates
            y_top = page_height - y - size.height
            rect = fitz.Rect(x, y_top, x + size.width, y_top + size.height)

            page.insert_image(rect, stream=image.data, keep_proportion=True)
            logger.info(
                f"Added signature to page {page_number} at ({x}, {y}) "
                f"size ({size.width:.1f}x{size.height:.1f})"
            )

        return size


# Singleton instance
_placement_engine: Optional[SignaturePlacementEngine] = None


def get_placement_engine() -> SignaturePlacementEngine:
    """Get the placement engine singleton."""
    global _placement_engine
    if _placement_engine is None:
        _placement_engine = SignaturePlacementEngine()
    return _placement_engine
