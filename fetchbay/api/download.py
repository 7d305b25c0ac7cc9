"""Job admission endpoints.

- POST /api/download: retrieve a remote URL in the background
- POST /api/upload: store an uploaded file directly
- POST /api/torrent: retrieve a magnet link or .torrent file
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from fetchbay.api.schemas import DownloadRequest, JobCreatedResponse, UploadResponse
from fetchbay.middleware.auth import require_session
from fetchbay.services.orchestrator import Orchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["download"])

UPLOAD_CHUNK_SIZE = 1024 * 1024


# Dependency placeholder (to be configured in main app)
async def get_orchestrator() -> Orchestrator:
    """Get orchestrator instance."""
    raise NotImplementedError("Orchestrator dependency not configured")


async def _read_upload(file: UploadFile, limit: Optional[int]) -> bytes:
    """Read an uploaded file, stopping one byte past ``limit``.

    The admission check then sees an oversized payload without the whole
    body having been buffered.
    """
    chunks = []
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        chunks.append(chunk)
        size += len(chunk)
        if limit is not None and size > limit:
            break
    return b"".join(chunks)


@router.post(
    "/download",
    response_model=JobCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_session)],
    responses={
        400: {"description": "Request rejected at admission"},
        401: {"description": "Unauthorized"},
    },
)
async def download_url(
    request: DownloadRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> JobCreatedResponse:
    """
    Retrieve a remote URL into a destination folder.

    Returns immediately with the queued job; poll GET /api/status/{id}.
    """
    logger.info(
        "download_requested",
        url=request.url,
        folder_key=request.folder_key,
        filename_override=request.filename_override,
    )

    job = orchestrator.admit_http_job(
        request.url,
        request.folder_key,
        request.filename_override,
    )
    return JobCreatedResponse(id=job.job_id, status=job.status.value, type=job.kind.value)


@router.post(
    "/upload",
    response_model=UploadResponse,
    dependencies=[Depends(require_session)],
    responses={
        400: {"description": "Request rejected at admission"},
        401: {"description": "Unauthorized"},
        413: {"description": "File exceeds the maximum upload size"},
        500: {"description": "Failed to save file"},
    },
)
async def upload_file(
    file: Optional[UploadFile] = File(None),  # noqa: B008
    folder_key: Optional[str] = Form(None, alias="folderKey"),  # noqa: B008
    filename_override: Optional[str] = Form(None, alias="filenameOverride"),  # noqa: B008
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> UploadResponse:
    """
    Store an uploaded file in a destination folder.

    The file is written before the response is sent; the returned job is
    already done.
    """
    data: Optional[bytes] = None
    original_name: Optional[str] = None
    if file is not None:
        original_name = file.filename
        data = await _read_upload(file, orchestrator.admission.max_upload_size)

    logger.info(
        "upload_requested",
        original_name=original_name,
        size=len(data) if data is not None else None,
        folder_key=folder_key,
    )

    job = await orchestrator.admit_upload_job(data, original_name, folder_key, filename_override)
    return UploadResponse(
        id=job.job_id,
        filename=job.filename,
        folder_key=job.folder_key,
        message=job.message,
    )


@router.post(
    "/torrent",
    response_model=JobCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_session)],
    responses={
        400: {"description": "Request rejected at admission"},
        401: {"description": "Unauthorized"},
    },
)
async def add_torrent(
    magnet: Optional[str] = Form(None),  # noqa: B008
    torrent: Optional[UploadFile] = File(None),  # noqa: B008
    folder_key: Optional[str] = Form(None, alias="folderKey"),  # noqa: B008
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> JobCreatedResponse:
    """
    Retrieve a magnet link or an uploaded .torrent file.

    Returns immediately with the queued job; poll GET /api/status/{id}.
    """
    torrent_bytes = await torrent.read() if torrent is not None else None

    logger.info(
        "torrent_requested",
        has_magnet=bool(magnet),
        has_torrent_file=bool(torrent_bytes),
        folder_key=folder_key,
    )

    job = orchestrator.admit_torrent_job(folder_key, magnet=magnet, torrent_bytes=torrent_bytes)
    return JobCreatedResponse(id=job.job_id, status=job.status.value, type=job.kind.value)
