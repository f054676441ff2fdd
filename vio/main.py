"""
VIO Agent - Main Application
============================

FastAPI application exposing the targeting pipeline to agent sessions.

This module sets up:
- FastAPI application with CORS
- Route registration
- Middleware (request logging)
- Error handling (model contract mismatches)
- Lifespan management (detector model loading)

Usage:
    # Development
    uvicorn vio.main:app --reload

    # Production
    uvicorn vio.main:app --host 0.0.0.0 --port 8000
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vio import __version__
from vio.api.routes import health_router, sessions_router
from vio.api.session_manager import SessionManager
from vio.config import get_settings
from vio.errors import DecodeError
from vio.utils.logger import get_logger, setup_logging
from vio.vision.detector import UIDetector

settings = get_settings()
setup_logging()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load the detector model on startup."""
    manager: SessionManager = app.state.session_manager
    logger.info(
        "Starting VIO Agent",
        version=__version__,
        environment=settings.server.environment,
    )

    enabled = manager.detector.initialize()
    if not enabled:
        logger.warning("Running with element detection disabled")

    yield

    logger.info("Shutting down VIO Agent", sessions=len(manager))


def create_app(manager: Optional[SessionManager] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        manager: Session manager; defaults to one around a detector
            built from settings.

    Returns:
        The configured application.
    """
    application = FastAPI(
        title="VIO Agent",
        description=(
            "Perception-to-action targeting for a screen-driving agent. "
            "Detects UI elements, resolves semantic targets to device "
            "coordinates and watches action histories for loops."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.server.debug else None,
        redoc_url="/redoc" if settings.server.debug else None,
        openapi_url="/openapi.json" if settings.server.debug else None,
    )
    if manager is None:
        manager = SessionManager(
            detector=UIDetector.from_settings(settings.vision),
            settings=settings,
        )
    application.state.session_manager = manager

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with timing."""
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Request completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response

    @application.exception_handler(DecodeError)
    async def decode_error_handler(request: Request, exc: DecodeError) -> JSONResponse:
        """Model and decoder disagree on the output layout."""
        logger.error(
            "Model contract mismatch",
            path=request.url.path,
            shape=list(exc.shape),
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "model_contract_mismatch",
                "detail": str(exc),
            },
        )

    application.include_router(health_router)
    application.include_router(sessions_router)

    @application.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        """Root endpoint with service information."""
        return {
            "service": "VIO Agent",
            "version": __version__,
            "docs": "/docs" if settings.server.debug else None,
            "health": "/health",
        }

    return application


app = create_app()


# Run directly (for development)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vio.main:app",
        host=settings.server.server_host,
        port=settings.server.server_port,
        reload=settings.server.debug,
        log_level=settings.server.log_level.lower(),
    )
