"""
Health check endpoints.
"""
import os

from fastapi import APIRouter, Depends

from solarsign.config import Settings, get_settings
from solarsign.pdf.stamp import find_stamp_font

router = APIRouter(
    prefix="/health",
    tags=["health"],
)


@router.get("")
async def health_check(settings: Settings = Depends(get_settings)):
    """Liveness check."""
    return {
        "status": "healthy",
        "environment": settings.environment,
    }


@router.get("/dependencies")
async def health_check_dependencies(settings: Settings = Depends(get_settings)):
    """
    Reports what the signing paths depend on. Useful when a deploy signs
    with the fallback font or cannot reach DocuSeal.
    """
    font = find_stamp_font()
    return {
        "status": "healthy",
        "docuseal_configured": settings.docuseal_configured,
        "docuseal_base_url": settings.docuseal_base_url,
        "metadata_store_backend": settings.metadata_store_backend,
        "documents_root_exists": os.path.isdir(settings.documents_root),
        "temp_dir_writable": os.access(settings.temp_dir, os.W_OK),
        "stamp_font": font or "helv (built-in)",
    }
