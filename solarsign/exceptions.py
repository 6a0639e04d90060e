"""
HTTP exceptions and the JSON error envelope.

Every error leaves the API as
{"error": true, "code": ..., "message": ..., "request_id": ..., "details"?: ...}
with CORS headers for allowed origins, since CORSMiddleware does not see
responses produced by exception handlers.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from solarsign.config import get_cors_origins
from solarsign.pdf.errors import DocumentPipelineError
from solarsign.utils.logging import get_request_id

logger = logging.getLogger(__name__)


class AppException(HTTPException):
    """HTTPException carrying a machine-readable code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message)


class PathNotAllowed(AppException):
    """Document path resolves outside DOCUMENTS_ROOT."""

    def __init__(self, path: str):
        super().__init__(
            status_code=403,
            code="PATH_NOT_ALLOWED",
            message=f"Path is outside the documents root: {path}",
        )


# Failed service results are returned with these statuses
STATUS_BY_CODE = {
    "SOURCE_NOT_FOUND": 404,
    "TEMPLATE_NOT_FOUND": 404,
    "PAGE_INDEX_OUT_OF_RANGE": 400,
    "MALFORMED_DOCUMENT": 422,
    "UNSUPPORTED_IMAGE_FORMAT": 422,
    "WORKFLOW_IN_PROGRESS": 409,
    "METADATA_PERSISTENCE_FAILURE": 500,
    "SIGNING_SERVICE_ERROR": 502,
    "SIGNING_SERVICE_NOT_CONFIGURED": 503,
    "INTERNAL_ERROR": 500,
}


def status_for_code(code: Optional[str], default: int = 400) -> int:
    return STATUS_BY_CODE.get(code or "", default)


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "error": True,
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        body["details"] = details
    response = JSONResponse(status_code=status_code, content=body)

    origin = request.headers.get("origin")
    if origin and origin in get_cors_origins():
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Vary"] = "Origin"
    return response


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(f"{exc.code} ({exc.status_code}): {exc.message}")
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


async def pipeline_exception_handler(request: Request, exc: DocumentPipelineError) -> JSONResponse:
    """Pipeline errors that escape a route (services normally return them as results)."""
    status_code = status_for_code(exc.code, default=422)
    logger.warning(f"{exc.code} ({status_code}): {exc.message}")
    return error_response(request, status_code, exc.code, exc.message)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, dict) else {}
    code = detail.get("code", "HTTP_ERROR")
    message = detail.get("message", str(exc.detail))
    logger.warning(f"HTTP {exc.status_code}: {message}")
    return error_response(request, exc.status_code, code, message)


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Request body and model validation errors, flattened to field paths."""
    raw = exc.errors() if isinstance(exc, (RequestValidationError, ValidationError)) else []
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in raw
    ]
    logger.warning(f"Validation failed on {request.url.path}: {[e['field'] for e in errors]}")
    return error_response(request, 422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred")
