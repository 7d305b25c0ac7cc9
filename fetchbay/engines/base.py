"""Abstract base class for retrieval engines."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fetchbay.core.cancellation import CancellationToken
from fetchbay.models.job import Job, JobStatus


@dataclass(frozen=True)
class RetrievalOutcome:
    """Final result of an engine run.

    ``status`` is always terminal: DONE, ERROR or CANCELLED.
    """

    status: JobStatus
    message: Optional[str] = None
    total_bytes: Optional[int] = None
    filename: Optional[str] = None

    @classmethod
    def done(
        cls, message: str, total_bytes: Optional[int], filename: Optional[str] = None
    ) -> "RetrievalOutcome":
        return cls(JobStatus.DONE, message, total_bytes, filename)

    @classmethod
    def failed(cls, message: str) -> "RetrievalOutcome":
        return cls(JobStatus.ERROR, message)

    @classmethod
    def cancelled(cls) -> "RetrievalOutcome":
        return cls(JobStatus.CANCELLED, "Download cancelled")


class ProgressSink(ABC):
    """Channel from a running engine back into the job registry."""

    @abstractmethod
    def started(self) -> bool:
        """
        Report that the engine is about to move bytes.

        Returns:
            False if the job is no longer queued (cancelled meanwhile)
        """
        pass

    @abstractmethod
    def progress(self, **counters: Any) -> bool:
        """
        Report live counters (downloaded_bytes, total_bytes, filename, peers,
        download_rate).

        Returns:
            False once the job has left the downloading status
        """
        pass

    @abstractmethod
    def attach(self, teardown: Callable[[], None]) -> bool:
        """
        Hand the registry a callable that tears down the running transfer.

        Returns:
            False if the job is already terminal
        """
        pass


class RetrievalEngine(ABC):
    """Abstract base class for retrieval back-ends."""

    name: str = "engine"

    @abstractmethod
    async def run(
        self,
        job: Job,
        token: CancellationToken,
        sink: ProgressSink,
        source: Any = None,
    ) -> RetrievalOutcome:
        """
        Execute the retrieval for an admitted job.

        Engines never raise for transfer problems; every exit path returns an
        outcome and releases the engine's resources.

        Args:
            job: The admitted job (queued)
            token: Cancellation token polled at every suspension point
            sink: Progress channel into the registry
            source: Engine-specific source (torrent magnet or file bytes)

        Returns:
            The terminal outcome of the run
        """
        pass

    async def close(self) -> None:
        """Release shared resources held by the engine."""
        return None
