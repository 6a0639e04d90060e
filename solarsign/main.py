"""
Solar Sign - contract signing service.

Prepares solar installation contracts, disclaimers and booking confirmations
for e-signature (DocuSeal) and signs them locally with a digital footprint
when no vendor is involved.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from solarsign import __version__
from solarsign.config import get_cors_origins, get_settings
from solarsign.exceptions import (
    AppException,
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    pipeline_exception_handler,
    validation_exception_handler,
)
from solarsign.pdf.errors import DocumentPipelineError
from solarsign.routers import digital_signature, health, workflows
from solarsign.utils.logging import RequestIdMiddleware, setup_logging

logger = logging.getLogger(__name__)

VERSION = __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(
        environment=settings.environment,
        level=logging.DEBUG if settings.debug else logging.INFO,
    )
    logger.info(
        f"Starting Solar Sign v{VERSION} ({settings.environment}), "
        f"DocuSeal {'configured' if settings.docuseal_configured else 'not configured'}, "
        f"metadata store: {settings.metadata_store_backend}"
    )
    yield
    logger.info("Shutting down Solar Sign")


app = FastAPI(
    title="Solar Sign",
    description="""Contract signing service.

## Authentication

Callers send `X-Internal-Secret` with the shared INTERNAL_API_SECRET.
Document paths are resolved under DOCUMENTS_ROOT.
""",
    version=VERSION,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "workflows", "description": "DocuSeal signing workflows"},
        {"name": "digital-signature", "description": "Local signing with digital footprint"},
        {"name": "health", "description": "Health check endpoints"},
    ],
)

# Middleware
app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(DocumentPipelineError, pipeline_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(health.router)
app.include_router(digital_signature.router)
app.include_router(workflows.router)
