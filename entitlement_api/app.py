"""
FastAPI application for AI tool entitlements.

Serves the paywall state to the web app: entitlement checks, the AI hub
catalog, purchase history and purchase recording after checkout.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.common.error_handling import EntitlementError
from src.common.logger import setup_logging
from version import __version__

from .config import settings, validate_config_on_startup
from .routes import entitlements_router

setup_logging(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)

validate_config_on_startup()

app = FastAPI(title="AI Tool Entitlements", version=__version__)

if settings.cors_origins_list:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

app.include_router(entitlements_router)


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(request: Request, exc: EntitlementError) -> JSONResponse:
    """Map domain errors to their HTTP status with a machine-readable code."""
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(log_level, f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "error_code": exc.error_code},
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint for container orchestration."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
    )
