"""
Request-correlated logging.

Every record carries the request id and, once known, the opportunity and
signature ids. Production emits one JSON object per line for Cloud Logging;
development prints a bracketed prefix.

Signature payloads, footprint hashes and customer emails are never logged
raw: use fingerprint() / mask_email().
"""
import hashlib
import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from solarsign.utils.datetime_utils import to_iso_millis


def fingerprint(value: Optional[str], prefix: str = "") -> str:
    """
    Short sha256 digest for correlating a sensitive value across log lines.

    Example:
        fingerprint("data:image/png;base64,iVBOR...", "sig_") -> "sig_a1b2c3d4"
    """
    if not value:
        return f"{prefix}none"
    return prefix + hashlib.sha256(value.encode()).hexdigest()[:8]


def mask_email(email: Optional[str]) -> str:
    """jane@example.com -> j***@example.com"""
    local, sep, domain = (email or "").partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
opportunity_id_var: ContextVar[Optional[str]] = ContextVar("opportunity_id", default=None)
signature_id_var: ContextVar[Optional[str]] = ContextVar("signature_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_context(
    opportunity_id: Optional[str] = None,
    signature_id: Optional[str] = None,
) -> None:
    """Bind ids to the current request; None leaves the existing value."""
    if opportunity_id:
        opportunity_id_var.set(opportunity_id)
    if signature_id:
        signature_id_var.set(signature_id)


def clear_context() -> None:
    for var in (request_id_var, opportunity_id_var, signature_id_var):
        var.set(None)


def _context_ids() -> Dict[str, str]:
    ids = {
        "request_id": request_id_var.get(),
        "opportunity_id": opportunity_id_var.get(),
        "signature_id": signature_id_var.get(),
    }
    return {key: value for key, value in ids.items() if value}


class CloudLoggingFormatter(logging.Formatter):
    """One JSON object per record, in Cloud Logging's structured format."""

    def format(self, record: logging.LogRecord) -> str:
        ids = _context_ids()
        entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "timestamp": to_iso_millis(datetime.fromtimestamp(record.created, timezone.utc)),
            "logger": record.name,
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
            **ids,
        }
        if "request_id" in ids:
            entry["logging.googleapis.com/trace"] = ids["request_id"]
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class DevelopmentFormatter(logging.Formatter):
    """[LEVEL] [request] [opp:...] [sig:...] message"""

    def format(self, record: logging.LogRecord) -> str:
        ids = _context_ids()
        tags = [record.levelname, ids.get("request_id", "-")[:8]]
        if "opportunity_id" in ids:
            tags.append(f"opp:{ids['opportunity_id']}")
        if "signature_id" in ids:
            tags.append(f"sig:{ids['signature_id'][:12]}")

        line = "".join(f"[{tag}] " for tag in tags) + record.getMessage()
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(environment: str = "development", level: int = logging.INFO) -> None:
    """Replace root handlers with a stdout handler; JSON in production."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        CloudLoggingFormatter() if environment == "production" else DevelopmentFormatter()
    )
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for noisy in ("httpx", "httpcore", "hpack", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


_HISTORY_PATH = re.compile(r"/history/([^/]+)")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Binds X-Request-ID (or a fresh uuid4) to the request and echoes it back.

    History lookups carry the opportunity id in the path, so it is bound here
    before the route runs.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)

        match = _HISTORY_PATH.search(request.url.path)
        if match:
            set_context(opportunity_id=match.group(1))

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()
