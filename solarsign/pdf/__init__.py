# PDF module
from solarsign.pdf.errors import (
    DocumentPipelineError,
    MalformedDocument,
    MetadataPersistenceFailure,
    PageIndexOutOfRange,
    SigningServiceError,
    SourceNotFound,
    UnsupportedImageFormat,
)
from solarsign.pdf.merge import MergeResult, merge_pdf_files, merge_pdfs
from solarsign.pdf.fields import correct_page_offsets, to_vendor_fields, validate_field_pages
from solarsign.pdf.sign import SignaturePlacementEngine, compute_signature_size, get_placement_engine
from solarsign.pdf.stamp import stamp_all, stamp_detailed

__all__ = [
    "DocumentPipelineError",
    "MalformedDocument",
    "MetadataPersistenceFailure",
    "PageIndexOutOfRange",
    "SigningServiceError",
    "SourceNotFound",
    "UnsupportedImageFormat",
    "MergeResult",
    "merge_pdf_files",
    "merge_pdfs",
    "correct_page_offsets",
    "to_vendor_fields",
    "validate_field_pages",
    "SignaturePlacementEngine",
    "compute_signature_size",
    "get_placement_engine",
    "stamp_all",
    "stamp_detailed",
]
