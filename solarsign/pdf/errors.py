"""
Document pipeline errors.

Every failure raised by the merge / field-mapping / signing / metadata steps
carries a stable ``code`` so services can turn it into a structured result.
"""
from typing import Optional


class DocumentPipelineError(Exception):
    """Base error for the document assembly and signing pipeline."""

    code = "DOCUMENT_PIPELINE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class SourceNotFound(DocumentPipelineError):
    """Input PDF path does not exist or input bytes are empty."""

    code = "SOURCE_NOT_FOUND"


class MalformedDocument(DocumentPipelineError):
    """Input bytes cannot be parsed as a PDF."""

    code = "MALFORMED_DOCUMENT"


class UnsupportedImageFormat(DocumentPipelineError):
    """Signature payload cannot be decoded into a raster image."""

    code = "UNSUPPORTED_IMAGE_FORMAT"


class PageIndexOutOfRange(DocumentPipelineError):
    """A field area or target page falls outside the document."""

    code = "PAGE_INDEX_OUT_OF_RANGE"

    def __init__(self, page: int, page_count: int, message: Optional[str] = None):
        self.page = page
        self.page_count = page_count
        super().__init__(
            message or f"Page {page} does not exist. Document has {page_count} pages."
        )


class MetadataPersistenceFailure(DocumentPipelineError):
    """Signature metadata could not be written or read."""

    code = "METADATA_PERSISTENCE_FAILURE"


class SigningServiceError(DocumentPipelineError):
    """The e-signature vendor API rejected a request or was unreachable."""

    code = "SIGNING_SERVICE_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.status_code = status_code


__all__ = [
    "DocumentPipelineError",
    "SourceNotFound",
    "MalformedDocument",
    "UnsupportedImageFormat",
    "PageIndexOutOfRange",
    "MetadataPersistenceFailure",
    "SigningServiceError",
]
