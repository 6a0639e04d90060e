"""
Configuration module - loads settings from environment variables / .env.
"""
import json
import logging
import os
from functools import lru_cache
from typing import Annotated, Any, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode

logger = logging.getLogger(__name__)


def _parse_list(v: Any) -> List[str]:
    """Parse a list from JSON, CSV, semicolon-separated string, or list."""
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return [str(item) for item in v]
    if isinstance(v, (int, float)):
        return [str(v)]
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        # Try JSON list first (e.g., '[23, 24]')
        if s.startswith("["):
            try:
                return [str(item) for item in json.loads(s)]
            except json.JSONDecodeError:
                pass  # Fall through to delimiter parsing
        # Semicolon is useful in Cloud Build where comma separates env vars
        parts = [p.strip() for p in s.replace(",", ";").split(";")]
        return [p for p in parts if p]
    return []


class Settings(BaseSettings):
    """Application settings."""

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Shared secret for CRM -> service calls (empty disables the check)
    internal_api_secret: str = Field(default="", alias="INTERNAL_API_SECRET")

    # DocuSeal
    docuseal_base_url: str = Field(default="https://api.docuseal.com", alias="DOCUSEAL_BASE_URL")
    docuseal_api_key: str = Field(default="", alias="DOCUSEAL_API_KEY")
    docuseal_page_base: int = Field(
        default=1,
        alias="DOCUSEAL_PAGE_BASE",
        description="Page number the vendor uses for the first page (0 or 1)",
    )
    docuseal_timeout_seconds: float = Field(default=60.0, alias="DOCUSEAL_TIMEOUT_SECONDS")

    # Signature metadata store
    metadata_store_backend: str = Field(default="file", alias="METADATA_STORE_BACKEND")
    signature_metadata_dir: str = Field(
        default_factory=lambda: os.path.join(os.getcwd(), "signature-metadata"),
        alias="SIGNATURE_METADATA_DIR",
    )

    # Supabase (service key, server-side only)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_service_key: str = Field(default="", alias="SUPABASE_SERVICE_KEY")

    # Documents
    documents_root: str = Field(
        default_factory=lambda: os.path.join(os.getcwd(), "documents"),
        alias="DOCUMENTS_ROOT",
    )
    temp_dir: str = Field(default="/tmp", alias="TEMP_DIR")

    # Contract field maps
    contract_baseline_pages: int = Field(default=23, alias="CONTRACT_BASELINE_PAGES")
    # NoDecode lets the validators below accept CSV as well as JSON
    validated_contract_page_counts: Annotated[List[int], NoDecode] = Field(
        default=[23, 24],
        alias="VALIDATED_CONTRACT_PAGE_COUNTS",
    )
    template_cache_ttl_seconds: int = Field(default=3600, alias="TEMPLATE_CACHE_TTL_SECONDS")

    # CORS
    allowed_origins: Annotated[List[str], NoDecode] = Field(default=[], alias="ALLOWED_ORIGINS")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _parse_allowed_origins(cls, v: Any) -> List[str]:
        return _parse_list(v)

    @field_validator("validated_contract_page_counts", mode="before")
    @classmethod
    def _parse_page_counts(cls, v: Any) -> List[int]:
        try:
            return [int(item) for item in _parse_list(v)]
        except ValueError:
            raise ValueError(f"VALIDATED_CONTRACT_PAGE_COUNTS must be integers, got {v!r}")

    @field_validator("docuseal_page_base")
    @classmethod
    def _check_page_base(cls, v: int) -> int:
        if v not in (0, 1):
            raise ValueError("DOCUSEAL_PAGE_BASE must be 0 or 1")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @model_validator(mode="after")
    def validate_environment(self) -> "Settings":
        """Warn about configuration that is unsafe outside development."""
        if self.environment == "production":
            if not self.internal_api_secret:
                logger.error(
                    "CRITICAL: INTERNAL_API_SECRET is not set in production! "
                    "Signing endpoints are unauthenticated."
                )
            if not self.docuseal_base_url.startswith("https://"):
                logger.warning(
                    f"Configuration Warning: DOCUSEAL_BASE_URL ('{self.docuseal_base_url}') "
                    f"does not start with 'https://' in a '{self.environment}' environment."
                )
        if self.metadata_store_backend == "supabase" and not (self.supabase_url and self.supabase_service_key):
            logger.error("METADATA_STORE_BACKEND=supabase but SUPABASE_URL / SUPABASE_SERVICE_KEY are missing")
        return self

    @property
    def docuseal_configured(self) -> bool:
        return bool(self.docuseal_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Development origins (only in non-production)
DEV_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def get_cors_origins() -> List[str]:
    """
    Get list of allowed CORS origins.

    Combines origins from ALLOWED_ORIGINS with development origins when not
    in production.
    """
    settings = get_settings()
    origins = set(settings.allowed_origins)
    if settings.environment != "production":
        origins.update(DEV_CORS_ORIGINS)
    return sorted(origins)
