"""
Shared-secret authentication for CRM -> service calls.

Callers send X-Internal-Secret. An empty INTERNAL_API_SECRET disables the
check (local development only; config logs an error in production).
"""
import logging
from typing import Optional

from fastapi import Depends, Header

from solarsign.config import Settings, get_settings
from solarsign.exceptions import AppException
from solarsign.utils.security import secrets_match

logger = logging.getLogger(__name__)


class AuthenticationError(AppException):
    """Authentication failed."""

    def __init__(self, message: str, code: str = "UNAUTHORIZED", status_code: int = 401):
        super().__init__(status_code=status_code, code=code, message=message)


async def verify_internal_secret(
    x_internal_secret: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Dependency to verify the internal API secret."""
    if not settings.internal_api_secret:
        return

    if not x_internal_secret:
        logger.warning("Endpoint called without X-Internal-Secret header")
        raise AuthenticationError("Missing X-Internal-Secret header", "MISSING_SECRET")

    if not secrets_match(x_internal_secret, settings.internal_api_secret):
        logger.warning("Internal secret mismatch")
        raise AuthenticationError("Invalid internal secret", "INVALID_SECRET", status_code=403)
