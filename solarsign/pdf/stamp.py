"""
Verification stamps drawn onto a signed document.

- stamp_all: a one-line "[VERIFIED]" marker in the top-right of every page
- stamp_detailed: a bordered "[DIGITALLY SIGNED]" panel in the bottom-left
  of each signature page

Layout values are in PDF points measured from the bottom-left corner and are
flipped to PyMuPDF's top-left system when drawn.
"""
import logging
import os
from typing import List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from solarsign.models import SignatureMetadata
from solarsign.pdf.sign import validate_target_pages
from solarsign.utils.datetime_utils import format_short_date, format_stamp_datetime

logger = logging.getLogger(__name__)

# Fonts with extended Latin coverage; helv is used when none is installed
FONT_PATHS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
]

Color = Tuple[float, float, float]

# Page-wide marker
MARKER_FONT_SIZE = 7
MARKER_COLOR: Color = (0.4, 0.4, 0.4)
MARKER_TOP_OFFSET = 15
MARKER_RIGHT_MARGIN = 50
MARKER_ICON_SIZE = 8
MARKER_ICON_SPACING = 4

# Signature page panel
PANEL_X = 1
PANEL_Y = 1
PANEL_WIDTH = 100
PANEL_HEIGHT = 50
PANEL_BORDER: Color = (0.7, 0.7, 0.7)
PANEL_FILL: Color = (0.98, 0.98, 0.98)
PANEL_TITLE_COLOR: Color = (0.2, 0.2, 0.2)
PANEL_TEXT_COLOR: Color = (0.3, 0.3, 0.3)
PANEL_ICON_BORDER: Color = (0.2, 0.6, 0.2)
PANEL_ICON_FILL: Color = (0.9, 1.0, 0.9)
PANEL_ICON_SIZE = 10


def find_stamp_font() -> Optional[str]:
    for path in FONT_PATHS:
        if os.path.exists(path):
            return path
    return None


def load_stamp_font() -> Tuple[Optional[str], fitz.Font]:
    """Font file used for stamps (None means built-in helv) and its metrics."""
    font_path = find_stamp_font()
    if font_path:
        try:
            return font_path, fitz.Font(fontfile=font_path)
        except (RuntimeError, ValueError) as e:
            logger.warning(f"Font {font_path} failed: {e}")
    return None, fitz.Font("helv")


def _insert_text(
    page: fitz.Page,
    point: Tuple[float, float],
    text: str,
    size: float,
    color: Color,
    font_path: Optional[str],
) -> None:
    if font_path:
        page.insert_text(point, text, fontfile=font_path, fontname="stampfont", fontsize=size, color=color)
    else:
        page.insert_text(point, text, fontname="helv", fontsize=size, color=color)


def _draw_checkmark(shape: fitz.Shape, rect: fitz.Rect, color: Color, width: float = 0.5) -> None:
    cx = (rect.x0 + rect.x1) / 2
    cy = (rect.y0 + rect.y1) / 2
    check = min(rect.width, rect.height) / 2 * 1.2
    shape.draw_polyline([
        fitz.Point(cx - check * 0.3, cy),
        fitz.Point(cx - check * 0.1, cy + check * 0.3),
        fitz.Point(cx + check * 0.3, cy - check * 0.3),
    ])
    shape.finish(color=color, width=width, closePath=False)


def marker_text(metadata: SignatureMetadata) -> str:
    """'[VERIFIED] SIG_1724... | Aug 29, 10:15 AM'"""
    short_id = metadata.signature_id[:8] + "..."
    return f"[VERIFIED] {short_id} | {format_stamp_datetime(metadata.signed_at)}"


def stamp_all(doc: fitz.Document, metadata: SignatureMetadata) -> List[int]:
    """
    Draw the verification marker on every page.

    Returns:
        1-based page numbers that were stamped
    """
    text = marker_text(metadata)
    font_path, font = load_stamp_font()
    # Width from the font that is drawn
    text_width = font.text_length(text, fontsize=MARKER_FONT_SIZE)
    stamped: List[int] = []

    for index in range(doc.page_count):
        page = doc[index]
        page_width = page.rect.width

        text_x = page_width - text_width - MARKER_RIGHT_MARGIN
        baseline_y = MARKER_TOP_OFFSET

        icon_x = text_x - MARKER_ICON_SIZE - MARKER_ICON_SPACING
        # Icon bottom edge sits 2pt below the text baseline
        icon_rect = fitz.Rect(
            icon_x,
            baseline_y + 2 - MARKER_ICON_SIZE,
            icon_x + MARKER_ICON_SIZE,
            baseline_y + 2,
        )
        shape = page.new_shape()
        _draw_checkmark(shape, icon_rect, MARKER_COLOR)
        shape.commit()

        _insert_text(page, (text_x, baseline_y), text, MARKER_FONT_SIZE, MARKER_COLOR, font_path)
        stamped.append(index + 1)

    logger.info(f"Added verification marker to all {len(stamped)} pages")
    return stamped


def stamp_detailed(
    doc: fitz.Document,
    metadata: SignatureMetadata,
    signature_pages: Sequence[int],
) -> List[int]:
    """
    Draw the signed-by panel on each signature page.

    Duplicate page numbers are stamped once.

    Returns:
        1-based page numbers that were stamped
    """
    short_id = metadata.signature_id[:8]
    customer = metadata.signed_by or "Unknown Customer"
    lines = [
        ("[DIGITALLY SIGNED]", 8, PANEL_TITLE_COLOR, 40),
        (f"Customer: {customer}", 7, PANEL_TEXT_COLOR, 30),
        (f"Date: {format_short_date(metadata.signed_at)}", 7, PANEL_TEXT_COLOR, 20),
        (f"ID: {short_id}", 7, PANEL_TEXT_COLOR, 10),
    ]

    validate_target_pages(signature_pages, doc.page_count)
    font_path, _ = load_stamp_font()

    stamped: List[int] = []
    for page_number in signature_pages:
        if page_number in stamped:
            continue
        page = doc[page_number - 1]
        page_height = page.rect.height

        panel = fitz.Rect(
            PANEL_X,
            page_height - PANEL_Y - PANEL_HEIGHT,
            PANEL_X + PANEL_WIDTH,
            page_height - PANEL_Y,
        )
        shape = page.new_shape()
        shape.draw_rect(panel)
        shape.finish(color=PANEL_BORDER, fill=PANEL_FILL, width=0.5)

        # Icon in the top-right of the panel
        icon_x = PANEL_X + PANEL_WIDTH - 15
        icon_y = PANEL_Y + PANEL_HEIGHT - 15
        icon_rect = fitz.Rect(
            icon_x,
            page_height - icon_y - PANEL_ICON_SIZE,
            icon_x + PANEL_ICON_SIZE,
            page_height - icon_y,
        )
        center = fitz.Point((icon_rect.x0 + icon_rect.x1) / 2, (icon_rect.y0 + icon_rect.y1) / 2)
        shape.draw_circle(center, PANEL_ICON_SIZE / 2 - 1)
        shape.finish(color=PANEL_ICON_BORDER, fill=PANEL_ICON_FILL, width=1)
        _draw_checkmark(shape, icon_rect, PANEL_ICON_BORDER, width=1)
        shape.commit()

        for text, size, color, offset in lines:
            _insert_text(page, (PANEL_X + 5, page_height - PANEL_Y - offset), text, size, color, font_path)

        stamped.append(page_number)

    logger.info(f"Added signed-by panel to pages {stamped}")
    return stamped
