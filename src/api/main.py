"""FastAPI application for the fulfillment service.

Provides the main application instance with routers, middleware,
and exception handlers configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.middleware.auth import maybe_require_api_key, validate_api_key_strength
from src.api.routes import batches, files, jobs, orders, products, status
from src.db.connection import SessionLocal, close_db, init_db
from src.errors.domain import NotFoundError, ValidationError
from src.services.errors import CarrierAPIError, StorefrontError
from src.services.job_store import JobStore

logger = logging.getLogger(__name__)

_startup_time: float | None = None


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _package_version() -> str:
    try:
        return _pkg_version("fulfillment-desk")
    except PackageNotFoundError:
        return "unknown"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: schema setup and recovery of interrupted jobs."""
    global _startup_time

    _startup_time = _time.time()
    validate_api_key_strength()
    init_db()

    recovered = JobStore(SessionLocal).recover_interrupted()
    if recovered:
        logger.warning("Startup recovery: %d job(s) were interrupted", recovered)

    logger.warning(
        "Label jobs run in-process; start the server with a single worker."
    )
    yield
    close_db()


app = FastAPI(
    title="Fulfillment Desk API",
    description="Order manifests and automated shipping labels for a print-on-demand store",
    version="0.1.0",
    lifespan=lifespan,
)

# Optional API auth for /api/* when FULFILLMENT_API_KEY is configured.
app.middleware("http")(maybe_require_api_key)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
        expose_headers=["Content-Disposition", "X-Filename", "X-Batch-Id"],
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Map missing resources to 404."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Map rejected input to 400."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(StorefrontError)
@app.exception_handler(CarrierAPIError)
async def upstream_error_handler(
    request: Request, exc: StorefrontError | CarrierAPIError
) -> JSONResponse:
    """Upstream API failures surface as 502 with the upstream message.

    Args:
        request: The incoming request.
        exc: The storefront or carrier error.

    Returns:
        JSONResponse with ``success: false`` and the error message.
    """
    logger.error("Upstream error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"success": False, "error": str(exc)})


# Include routers
app.include_router(jobs.router, prefix="/api/v1")
app.include_router(files.router, prefix="/api/v1")
app.include_router(orders.router, prefix="/api/v1")
app.include_router(batches.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(status.router, prefix="/api/v1")


@app.get("/health")
@app.get("/api/v1/health")
def health_check() -> dict:
    """Liveness check with version and uptime."""
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    return {
        "status": "healthy",
        "version": _package_version(),
        "uptime_seconds": uptime,
    }
