"""
Health Check Routes
===================

Endpoints for health monitoring and service status.

Includes:
- Basic health check
- Readiness probe (detector model loaded)
- Liveness probe
- Detailed status information
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from vio import __version__
from vio.api.dependencies import get_session_manager
from vio.api.session_manager import SessionManager
from vio.config import Settings, get_settings
from vio.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get(
    "",
    summary="Basic health check",
    response_description="Service health status",
)
async def health_check() -> dict[str, str]:
    """
    Basic health check endpoint.

    Returns:
        Simple status message indicating service is running.
    """
    return {"status": "healthy", "timestamp": _now()}


@router.get(
    "/ready",
    summary="Readiness probe",
    response_description="Service readiness status",
)
async def readiness_check(
    manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """
    Readiness probe.

    The service can run without a model, but every observation is then
    empty, so it is reported as not ready.

    Raises:
        HTTPException: 503 if the detector is disabled.
    """
    checks = {"detector_enabled": manager.detector.enabled}

    if not all(checks.values()):
        logger.warning("Detector model not loaded")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "not_ready",
                "checks": checks,
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": _now(),
    }


@router.get(
    "/live",
    summary="Liveness probe",
    response_description="Service liveness status",
)
async def liveness_check() -> dict[str, str]:
    """Return quickly to show the process is alive."""
    return {"status": "alive"}


@router.get(
    "/info",
    summary="Service information",
    response_description="Detailed service information",
)
async def service_info(
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """
    Get detailed service information.

    Returns:
        Service version, configuration, and environment info.
    """
    return {
        "service": "vio-agent",
        "version": __version__,
        "environment": settings.server.environment,
        "config": {
            "model_path": settings.vision.model_path,
            "model_input_size": settings.vision.model_input_size,
            "confidence_threshold": settings.vision.confidence_threshold,
            "iou_threshold": settings.vision.iou_threshold,
            "nms_class_aware": settings.vision.nms_class_aware,
            "stagnation_threshold": settings.history.stagnation_threshold,
            "history_recent_count": settings.history.history_recent_count,
            "debug_mode": settings.server.debug,
        },
        "timestamp": _now(),
    }
