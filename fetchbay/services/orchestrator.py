"""Orchestrator: the entry point the route layer talks to.

Wires admission, the job registry, the dispatcher and the two retrieval
engines together. Admission failures raise ``AdmissionError`` before any
job exists; execution outcomes arrive later through the registry.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from fetchbay.core.metrics import MetricsCollector
from fetchbay.engines.base import RetrievalEngine
from fetchbay.engines.exceptions import WriteError
from fetchbay.engines.http import write_atomic
from fetchbay.models.job import (
    HttpPayload,
    Job,
    JobKind,
    JobStatus,
    TorrentPayload,
    UploadPayload,
)
from fetchbay.services.admission import AdmissionError, AdmissionPipeline
from fetchbay.services.dispatcher import JobDispatcher
from fetchbay.services.job_registry import JobRegistry

logger = structlog.get_logger(__name__)


class Orchestrator:
    """Admits jobs, hands them to engines and answers job queries."""

    def __init__(
        self,
        admission: AdmissionPipeline,
        registry: JobRegistry,
        dispatcher: JobDispatcher,
        http_engine: RetrievalEngine,
        torrent_engine: RetrievalEngine,
    ) -> None:
        self.admission = admission
        self.registry = registry
        self.dispatcher = dispatcher
        self.http_engine = http_engine
        self.torrent_engine = torrent_engine

    def admit_http_job(
        self,
        url: Optional[str],
        folder_key: Optional[str],
        filename_override: Optional[str] = None,
    ) -> Job:
        """Admit a remote URL and start retrieving it in the background.

        Returns:
            The queued job.

        Raises:
            AdmissionError: If the request is rejected.
        """
        ticket = self._admit(self.admission.admit_http, url, folder_key, filename_override)
        self._ensure_folder(ticket.folder_key)

        job = self.registry.create(
            kind=JobKind.HTTP,
            source=ticket.source,
            folder_key=ticket.folder_key,
            destination_path=str(ticket.destination_path),
            filename=ticket.filename,
            payload=HttpPayload(url=ticket.source),
        )
        MetricsCollector.record_admission(JobKind.HTTP.value)
        self.dispatcher.submit(job, self.http_engine, ticket.source)
        return job

    async def admit_upload_job(
        self,
        data: Optional[bytes],
        original_name: Optional[str],
        folder_key: Optional[str],
        filename_override: Optional[str] = None,
    ) -> Job:
        """Write uploaded bytes and record a finished job.

        Returns:
            A job that is already ``done``.

        Raises:
            AdmissionError: If the upload is rejected.
            WriteError: If the file cannot be written; no job is recorded.
        """
        size = len(data) if data is not None else None
        ticket = self._admit(
            self.admission.admit_upload, size, original_name, folder_key, filename_override
        )
        content = data or b""
        self._ensure_folder(ticket.folder_key)

        try:
            await asyncio.to_thread(write_atomic, ticket.destination_path, content)
        except WriteError as e:
            logger.error(
                "upload_write_failed",
                destination=str(ticket.destination_path),
                error=str(e),
            )
            raise

        job = self.registry.create(
            kind=JobKind.UPLOAD,
            source=ticket.source,
            folder_key=ticket.folder_key,
            destination_path=str(ticket.destination_path),
            filename=ticket.filename,
            payload=UploadPayload(original_name=original_name or "", size=len(content)),
            status=JobStatus.DONE,
            message=f"Uploaded to {ticket.destination_path}",
            total_bytes=len(content),
        )
        MetricsCollector.record_admission(JobKind.UPLOAD.value)
        return job

    def admit_torrent_job(
        self,
        folder_key: Optional[str],
        magnet: Optional[str] = None,
        torrent_bytes: Optional[bytes] = None,
    ) -> Job:
        """Admit a magnet link or .torrent file and start the swarm transfer.

        A magnet link wins when both are given.

        Raises:
            AdmissionError: If the request is rejected.
        """
        ticket = self._admit(self.admission.admit_torrent, folder_key, magnet, torrent_bytes)
        self._ensure_folder(ticket.folder_key)

        if magnet:
            source, source_kind = magnet, "magnet"
        else:
            source, source_kind = torrent_bytes, "file"

        job = self.registry.create(
            kind=JobKind.TORRENT,
            source=ticket.source,
            folder_key=ticket.folder_key,
            destination_path=str(ticket.destination_path),
            filename="",
            payload=TorrentPayload(source_kind=source_kind),
        )
        MetricsCollector.record_admission(JobKind.TORRENT.value)
        self.dispatcher.submit(job, self.torrent_engine, source)
        return job

    def get_job(self, job_id: str) -> Job:
        """Raises JobNotFoundError for unknown or evicted jobs."""
        return self.registry.get_or_raise(job_id)

    def list_jobs(self) -> List[Job]:
        return self.registry.list()

    def job_snapshot(self, job_id: str) -> Dict[str, Any]:
        """Raises JobNotFoundError for unknown or evicted jobs."""
        return self.registry.snapshot(job_id)

    def list_job_snapshots(self) -> List[Dict[str, Any]]:
        return self.registry.snapshots()

    def cancel_job(self, job_id: str) -> Job:
        """Raises JobNotFoundError or JobConflictError."""
        return self.registry.cancel(job_id)

    def folder_keys(self) -> List[str]:
        return self.admission.folders.keys()

    def allowed_extensions(self) -> List[str]:
        return list(self.admission.extensions.extensions)

    def destination_folder(self, folder_key: str) -> Optional[Path]:
        return self.admission.folders.resolve(folder_key)

    async def shutdown(self) -> None:
        """Stop running jobs, close engines and disarm eviction timers."""
        await self.dispatcher.stop()
        await self.http_engine.close()
        await self.torrent_engine.close()
        self.registry.close()
        logger.info("orchestrator_stopped")

    def _ensure_folder(self, folder_key: str) -> Path:
        try:
            return self.admission.folders.ensure(folder_key)
        except OSError as e:
            logger.error("destination_folder_unavailable", folder_key=folder_key, error=str(e))
            raise WriteError(f"Cannot create destination folder: {e.strerror or e}") from e

    @staticmethod
    def _admit(check, *args):
        try:
            return check(*args)
        except AdmissionError as e:
            MetricsCollector.record_rejection(str(e.error_code))
            raise


# Global orchestrator instance
_orchestrator: Optional[Orchestrator] = None


def configure_orchestrator(orchestrator: Orchestrator) -> Orchestrator:
    """Install the global orchestrator."""
    global _orchestrator
    _orchestrator = orchestrator
    return _orchestrator


def get_orchestrator() -> Orchestrator:
    """Get the global orchestrator instance.

    Raises:
        RuntimeError: If the orchestrator is not configured.
    """
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not configured. Call configure_orchestrator() first.")
    return _orchestrator
