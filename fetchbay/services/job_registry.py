"""Job registry for tracking retrieval jobs.

- In-memory job storage with UUID generation
- Compare-and-set status transitions along the job state machine
- Progress writes gated on the downloading status
- 24-hour retention for terminal jobs, one eviction timer per job
"""

import asyncio
import itertools
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from fetchbay.core.cancellation import CancellationToken
from fetchbay.models.job import (
    TERMINAL_STATUSES,
    Job,
    JobKind,
    JobPayload,
    JobStatus,
    TorrentPayload,
    can_transition,
)

logger = structlog.get_logger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 60 * 60

# Fields an engine may patch alongside a transition or a progress write
_PATCHABLE_FIELDS = frozenset({"message", "total_bytes", "downloaded_bytes", "filename"})
_PROGRESS_FIELDS = frozenset({"downloaded_bytes", "total_bytes", "filename"})
_TORRENT_FIELDS = frozenset({"peers", "download_rate"})


class JobNotFoundError(Exception):
    """Raised when a job is not found."""

    pass


class JobConflictError(Exception):
    """Raised when an operation is not allowed in the job's current status."""

    def __init__(self, job_id: str, status: JobStatus) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__(f"Cannot cancel a job that is already {status.value}")


class JobRegistry:
    """Authoritative in-memory table of jobs.

    Every mutation takes the registry lock and re-checks the job's status
    immediately before applying, so a stale write from a still-unwinding
    engine becomes a no-op instead of corrupting a terminal job.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        on_job_evicted: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Initialize the job registry.

        Args:
            retention_seconds: How long a terminal job stays visible.
            on_job_evicted: Optional callback called with job_id when a job is
                removed by its retention timer.
        """
        self.retention_seconds = retention_seconds
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.RLock()
        self._sequence = itertools.count()
        self._timers: Dict[str, Union[asyncio.TimerHandle, threading.Timer]] = {}
        self._on_job_evicted = on_job_evicted

        logger.debug("job_registry_initialized", retention_seconds=retention_seconds)

    def create(
        self,
        kind: JobKind,
        source: str,
        folder_key: str,
        destination_path: str,
        filename: str,
        payload: JobPayload,
        status: JobStatus = JobStatus.QUEUED,
        message: Optional[str] = None,
        total_bytes: Optional[int] = None,
    ) -> Job:
        """Create a new job.

        Jobs start queued with a fresh cancellation token. A job created
        directly in a terminal status (uploads) gets no token and has its
        eviction armed straight away.

        Returns:
            The created Job object.
        """
        job = Job(
            job_id=str(uuid.uuid4()),
            kind=kind,
            source=source,
            folder_key=folder_key,
            destination_path=destination_path,
            filename=filename,
            payload=payload,
            status=status,
            message=message,
            total_bytes=total_bytes,
            downloaded_bytes=total_bytes,
        )

        with self._lock:
            job.sequence = next(self._sequence)
            if status not in TERMINAL_STATUSES:
                job.cancellation = CancellationToken()
            self._jobs[job.job_id] = job

        logger.info(
            "job_created",
            job_id=job.job_id,
            kind=kind.value,
            source=source,
            folder_key=folder_key,
            filename=filename,
            status=status.value,
        )

        if job.is_terminal():
            self.evict_after(job.job_id, self.retention_seconds)

        return job

    def get(self, job_id: str) -> Optional[Job]:
        """Get a job by ID, or None if unknown or evicted."""
        with self._lock:
            return self._jobs.get(job_id)

    def get_or_raise(self, job_id: str) -> Job:
        """Get a job by ID or raise an error.

        Raises:
            JobNotFoundError: If the job is not found.
        """
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def list(self) -> List[Job]:
        """List all jobs, newest first."""
        with self._lock:
            jobs = list(self._jobs.values())
        jobs.sort(key=lambda j: (j.created_at, j.sequence), reverse=True)
        return jobs

    def snapshot(self, job_id: str) -> Dict[str, Any]:
        """Serialize one job under the lock.

        The returned dict is a copy; later transitions do not change it.

        Raises:
            JobNotFoundError: If the job is not found.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")
            return job.to_dict()

    def snapshots(self) -> List[Dict[str, Any]]:
        """Serialize every job under the lock, newest first."""
        with self._lock:
            return [job.to_dict() for job in self.list()]

    def transition(self, job_id: str, status: JobStatus, **patch: Any) -> bool:
        """Move a job to ``status`` if that is a legal successor.

        Args:
            job_id: The job's unique identifier.
            status: The new status.
            **patch: Fields to update together with the status (message,
                total_bytes, downloaded_bytes, filename, peers, download_rate).

        Returns:
            True if applied, False if the job is unknown or the transition is
            not legal from its current status (typically already terminal).
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False

            old_status = job.status
            if not can_transition(old_status, status):
                logger.debug(
                    "job_transition_ignored",
                    job_id=job_id,
                    current_status=old_status.value,
                    requested_status=status.value,
                )
                return False

            job.status = status
            self._apply_patch(job, patch)
            if status in TERMINAL_STATUSES:
                job.cancellation = None
                job.engine_ref = None
            job.touch()

        logger.info(
            "job_status_updated",
            job_id=job_id,
            old_status=old_status.value,
            new_status=status.value,
            **{k: v for k, v in patch.items() if k != "filename"},
        )

        if status in TERMINAL_STATUSES:
            self.evict_after(job_id, self.retention_seconds)

        return True

    def update_progress(self, job_id: str, **counters: Any) -> bool:
        """Write progress counters while the job is downloading.

        Returns:
            True if applied, False if the job left the downloading status.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.DOWNLOADING:
                return False
            self._apply_patch(job, counters, allowed=_PROGRESS_FIELDS)
            job.touch()

        logger.debug("job_progress_updated", job_id=job_id, **counters)
        return True

    def attach_engine(self, job_id: str, teardown: Callable[[], None]) -> bool:
        """Install the engine's teardown callable on an active job."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal():
                return False
            job.engine_ref = teardown
            return True

    def cancel(self, job_id: str) -> Job:
        """Cancel a queued or downloading job.

        The cancellation token is signalled for cooperative engines and the
        engine teardown, if any, runs outside the lock.

        Raises:
            JobNotFoundError: If the job is not found.
            JobConflictError: If the job is already terminal.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job not found: {job_id}")
            if job.is_terminal():
                raise JobConflictError(job_id, job.status)

            old_status = job.status
            token = job.cancellation
            teardown = job.engine_ref

            job.status = JobStatus.CANCELLED
            job.message = "Download cancelled"
            job.cancellation = None
            job.engine_ref = None
            job.touch()

        if token is not None:
            token.cancel()
        if teardown is not None:
            try:
                teardown()
            except Exception as e:
                logger.error("job_teardown_failed", job_id=job_id, error=str(e), exc_info=True)

        logger.info("job_cancelled", job_id=job_id, old_status=old_status.value)

        self.evict_after(job_id, self.retention_seconds)
        return job

    def evict_after(self, job_id: str, seconds: float) -> None:
        """Arm a one-shot timer removing the job after ``seconds``.

        The timer is fire-and-forget: it never keeps the process alive and
        is not joined on shutdown. Re-arming replaces the previous timer.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        timer: Union[asyncio.TimerHandle, threading.Timer]
        if loop is not None:
            timer = loop.call_later(seconds, self._evict, job_id)
        else:
            timer = threading.Timer(seconds, self._evict, args=(job_id,))
            timer.daemon = True
            timer.start()

        with self._lock:
            previous = self._timers.pop(job_id, None)
            self._timers[job_id] = timer
        if previous is not None:
            previous.cancel()

    def _evict(self, job_id: str) -> None:
        with self._lock:
            self._timers.pop(job_id, None)
            job = self._jobs.pop(job_id, None)

        if job is None:
            return

        if self._on_job_evicted is not None:
            self._on_job_evicted(job_id)

        logger.info("job_evicted", job_id=job_id, status=job.status.value)

    def close(self) -> None:
        """Disarm every pending eviction timer."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def get_active_job_count(self) -> int:
        """Get the count of queued or downloading jobs."""
        with self._lock:
            return sum(1 for job in self._jobs.values() if not job.is_terminal())

    def get_job_count(self) -> int:
        """Get the total number of jobs."""
        with self._lock:
            return len(self._jobs)

    @staticmethod
    def _apply_patch(
        job: Job, patch: Dict[str, Any], allowed: frozenset = _PATCHABLE_FIELDS
    ) -> None:
        for key, value in patch.items():
            if key in allowed:
                setattr(job, key, value)
            elif key in _TORRENT_FIELDS and isinstance(job.payload, TorrentPayload):
                setattr(job.payload, key, value)


# Global job registry instance
_job_registry: Optional[JobRegistry] = None


def configure_job_registry(
    retention_seconds: float = DEFAULT_RETENTION_SECONDS,
    on_job_evicted: Optional[Callable[[str], None]] = None,
) -> JobRegistry:
    """Configure and initialize the global job registry."""
    global _job_registry
    _job_registry = JobRegistry(
        retention_seconds=retention_seconds,
        on_job_evicted=on_job_evicted,
    )
    return _job_registry


def get_job_registry() -> JobRegistry:
    """Get the global job registry instance.

    Raises:
        RuntimeError: If the job registry is not configured.
    """
    if _job_registry is None:
        raise RuntimeError("Job registry not configured. Call configure_job_registry() first.")
    return _job_registry
