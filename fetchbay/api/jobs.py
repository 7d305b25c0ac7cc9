"""Job query and cancellation endpoints.

- GET /api/jobs
- GET /api/status/{job_id}
- DELETE /api/jobs/{job_id}
"""

from typing import List

import structlog
from fastapi import APIRouter, Depends

from fetchbay.api.schemas import CancelResponse, JobResponse
from fetchbay.middleware.auth import require_session
from fetchbay.services.orchestrator import Orchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


# Dependency placeholder (to be configured in main app)
async def get_orchestrator() -> Orchestrator:
    """Get orchestrator instance."""
    raise NotImplementedError("Orchestrator dependency not configured")


@router.get(
    "/jobs",
    response_model=List[JobResponse],
    dependencies=[Depends(require_session)],
)
async def list_jobs(
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> List[JobResponse]:
    """List every retained job, newest first."""
    return [JobResponse(**snapshot) for snapshot in orchestrator.list_job_snapshots()]


@router.get(
    "/status/{job_id}",
    response_model=JobResponse,
    dependencies=[Depends(require_session)],
    responses={404: {"description": "Job not found"}},
)
async def get_job_status(
    job_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> JobResponse:
    """
    Get job status.

    Returns status, message, byte counters and, for torrents, the live peer
    count and download speed. Unknown and evicted jobs give 404.
    """
    logger.debug("job_status_requested", job_id=job_id)
    return JobResponse(**orchestrator.job_snapshot(job_id))


@router.delete(
    "/jobs/{job_id}",
    response_model=CancelResponse,
    dependencies=[Depends(require_session)],
    responses={
        404: {"description": "Job not found"},
        409: {"description": "Job already finished"},
    },
)
async def cancel_job(
    job_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> CancelResponse:
    """Cancel a queued or downloading job."""
    job = orchestrator.cancel_job(job_id)
    return CancelResponse(id=job.job_id)
