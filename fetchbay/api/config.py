"""Client configuration endpoint.

- GET /api/config lists folder keys and the extension allow-list
"""

from fastapi import APIRouter, Depends

from fetchbay.api.schemas import ConfigResponse
from fetchbay.middleware.auth import require_session
from fetchbay.services.orchestrator import Orchestrator

router = APIRouter(prefix="/api", tags=["config"])


# Dependency placeholder (to be configured in main app)
async def get_orchestrator() -> Orchestrator:
    """Get orchestrator instance."""
    raise NotImplementedError("Orchestrator dependency not configured")


@router.get(
    "/config",
    response_model=ConfigResponse,
    dependencies=[Depends(require_session)],
)
async def get_config(
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> ConfigResponse:
    """Return the destination folder keys and allowed extensions."""
    return ConfigResponse(
        folders=orchestrator.folder_keys(),
        allowed_extensions=orchestrator.allowed_extensions(),
    )
