"""
Field coordinate mapping.

Signature fields are authored against a baseline contract length. When the
generated contract comes out longer or shorter, every contract field moves
by the same page offset, and fields of an appended document move to the
first page after the contract.

Page conventions:
- Field maps in this service are authored with 1-based page numbers.
- to_page_index() converts to the 0-based index PyMuPDF uses.
- to_vendor_page() converts to the page base the signing vendor expects.
"""
import logging
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from solarsign.models import FieldAnchor, FieldArea, FieldType, SignatureField
from solarsign.pdf.errors import PageIndexOutOfRange

logger = logging.getLogger(__name__)

DEFAULT_VALIDATED_PAGE_COUNTS: Tuple[int, ...] = (23, 24)
VENDOR_DATE_FORMAT = "DD/MM/YYYY"


def to_page_index(page: int) -> int:
    """1-based authored page number -> 0-based document index."""
    return page - 1


def to_vendor_page(page: int, vendor_page_base: int = 1) -> int:
    """1-based authored page number -> page number in the vendor's convention."""
    return page - 1 + vendor_page_base


def _shift_area(area: FieldArea, page: int) -> FieldArea:
    return FieldArea(page=page, x=area.x, y=area.y, w=area.w, h=area.h)


def correct_page_offsets(
    fields: Sequence[SignatureField],
    authored_baseline_pages: int,
    actual_primary_pages: int,
) -> List[SignatureField]:
    """
    Move field areas to follow the real page count of the primary document.

    offset = actual_primary_pages - authored_baseline_pages is added to every
    area of a primary-anchored field. Every area of a secondary-anchored
    field is placed on page actual_primary_pages + 1.

    Returns new SignatureField objects; the input is not mutated.
    """
    if actual_primary_pages < 1:
        raise ValueError(f"Primary document must have pages, got {actual_primary_pages}")

    offset = actual_primary_pages - authored_baseline_pages
    secondary_page = actual_primary_pages + 1

    corrected: List[SignatureField] = []
    for field in fields:
        if field.anchor == FieldAnchor.SECONDARY:
            areas = [_shift_area(area, secondary_page) for area in field.areas]
        else:
            areas = []
            for area in field.areas:
                page = area.page + offset
                if page < 1:
                    raise PageIndexOutOfRange(page=page, page_count=actual_primary_pages)
                areas.append(_shift_area(area, page))
        corrected.append(field.model_copy(update={"areas": areas}))

    if offset:
        logger.info(
            f"Shifted contract fields by {offset:+d} page(s) "
            f"({authored_baseline_pages} -> {actual_primary_pages} pages)"
        )
    return corrected


def is_validated_page_count(
    actual_primary_pages: int,
    validated: Iterable[int] = DEFAULT_VALIDATED_PAGE_COUNTS,
) -> bool:
    """True when field placement has been verified for this contract length."""
    return actual_primary_pages in set(validated)


def validate_field_pages(fields: Sequence[SignatureField], total_pages: int) -> None:
    """
    Raise PageIndexOutOfRange if any area falls outside the document.

    Never clamps: a field on a non-existent page means the field map no longer
    matches the document.
    """
    for field in fields:
        for area in field.areas:
            index = to_page_index(area.page)
            if index < 0 or index > total_pages - 1:
                raise PageIndexOutOfRange(
                    page=area.page,
                    page_count=total_pages,
                    message=(
                        f"Field '{field.name}' is on page {area.page} but the "
                        f"document has {total_pages} pages"
                    ),
                )


def ensure_unique_names(fields: Sequence[SignatureField]) -> None:
    """Raise ValueError if two fields share a name."""
    seen = set()
    for field in fields:
        if field.name in seen:
            raise ValueError(f"Duplicate field name: {field.name}")
        seen.add(field.name)


def to_vendor_fields(
    fields: Sequence[SignatureField],
    vendor_page_base: int = 1,
) -> List[Dict[str, Any]]:
    """Serialize fields into the vendor template payload format."""
    payload = []
    for field in fields:
        item: Dict[str, Any] = {
            "name": field.name,
            "type": field.type.value,
            "role": field.role,
            "required": field.required,
            "areas": [
                {
                    "page": to_vendor_page(area.page, vendor_page_base),
                    "x": area.x,
                    "y": area.y,
                    "w": area.w,
                    "h": area.h,
                }
                for area in field.areas
            ],
        }
        if field.type == FieldType.DATE:
            item["preferences"] = {"format": VENDOR_DATE_FORMAT}
        payload.append(item)
    return payload


def area_to_pdf_rect(
    area: FieldArea,
    page_width: float,
    page_height: float,
) -> Tuple[float, float, float, float]:
    """
    Convert a normalized top-left area to PDF points with a bottom-left origin.

    Returns (x, y, width, height) where (x, y) is the lower-left corner.
    """
    width = area.w * page_width
    height = area.h * page_height
    x = area.x * page_width
    y = page_height - (area.y * page_height) - height
    return x, y, width, height
