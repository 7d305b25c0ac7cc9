"""Health check endpoints.

- GET /health: destination folder checks plus job counters
- GET /liveness: container liveness check
"""

import os
import time
from datetime import datetime, timezone
from typing import Dict, Literal

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from fetchbay import __version__
from fetchbay.api.schemas import ComponentHealth, HealthResponse, LivenessResponse
from fetchbay.services.orchestrator import Orchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])

# Track application start time for uptime calculation
_start_time: float = time.time()


def reset_start_time() -> None:
    """Reset the start time (for testing)."""
    global _start_time
    _start_time = time.time()


# Dependency placeholder (to be configured in main app)
async def get_orchestrator() -> Orchestrator:
    """Get orchestrator instance."""
    raise NotImplementedError("Orchestrator dependency not configured")


def _check_folders(orchestrator: Orchestrator) -> ComponentHealth:
    """Check that every configured folder exists (or can be created) and is writable."""
    keys = orchestrator.folder_keys()
    if not keys:
        return ComponentHealth(
            status="unhealthy",
            details={"error": "No download folders configured"},
        )

    details: Dict[str, Dict[str, bool]] = {}
    healthy = True
    for key in keys:
        folder = orchestrator.destination_folder(key)
        if folder is None:
            continue
        # A missing folder is created on first use, so check the nearest existing parent
        existing = folder
        while not existing.exists() and existing != existing.parent:
            existing = existing.parent
        writable = os.access(existing, os.W_OK)
        details[key] = {"exists": folder.exists(), "writable": writable}
        healthy = healthy and writable

    return ComponentHealth(status="healthy" if healthy else "unhealthy", details=details)


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        200: {"description": "All components healthy"},
        503: {"description": "One or more components unhealthy"},
    },
)
async def health_check(
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> JSONResponse:
    """
    Detailed health check endpoint.

    Returns HTTP 200 if every destination folder is usable,
    HTTP 503 otherwise.
    """
    components = {"folders": _check_folders(orchestrator)}

    all_healthy = all(c.status == "healthy" for c in components.values())
    overall_status: Literal["healthy", "unhealthy"] = "healthy" if all_healthy else "unhealthy"

    response = HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        active_jobs=orchestrator.registry.get_active_job_count(),
        components=components,
    )

    status_code = status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE

    logger.info(
        "health_check_completed",
        status=overall_status,
        components={k: v.status for k, v in components.items()},
    )

    return JSONResponse(content=response.model_dump(), status_code=status_code)


@router.get("/liveness", response_model=LivenessResponse)
async def liveness_check() -> LivenessResponse:
    """
    Liveness check endpoint.

    Returns HTTP 200 if the process is alive.
    """
    return LivenessResponse(status="alive")
