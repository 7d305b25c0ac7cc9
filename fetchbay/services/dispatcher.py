"""Job dispatcher running retrieval engines for admitted jobs.

Each job runs as its own asyncio task, independently of every other job.
The dispatcher owns the glue between an engine and the registry: the
progress sink, the final transition, metrics and task bookkeeping.
"""

import asyncio
import contextlib
import time
from typing import Any, Callable, Set

import structlog

from fetchbay.core.cancellation import CancellationToken
from fetchbay.core.metrics import MetricsCollector
from fetchbay.engines.base import ProgressSink, RetrievalEngine, RetrievalOutcome
from fetchbay.models.job import Job, JobStatus
from fetchbay.services.job_registry import JobRegistry

logger = structlog.get_logger(__name__)


class RegistrySink(ProgressSink):
    """ProgressSink writing into the job registry for one job."""

    def __init__(self, registry: JobRegistry, job_id: str) -> None:
        self.registry = registry
        self.job_id = job_id

    def started(self) -> bool:
        return self.registry.transition(self.job_id, JobStatus.DOWNLOADING)

    def progress(self, **counters: Any) -> bool:
        return self.registry.update_progress(self.job_id, **counters)

    def attach(self, teardown: Callable[[], None]) -> bool:
        return self.registry.attach_engine(self.job_id, teardown)


class JobDispatcher:
    """Hands admitted jobs to their engines and records the outcomes.

    Handles job lifecycle:
    - Start the engine in a background task
    - Translate the engine outcome into a registry transition
    - Turn unexpected engine exceptions into an error status
    - Record retrieval metrics
    """

    def __init__(self, registry: JobRegistry) -> None:
        self.registry = registry
        self._tasks: Set[asyncio.Task] = set()

    def submit(
        self,
        job: Job,
        engine: RetrievalEngine,
        source: Any = None,
    ) -> asyncio.Task:
        """Start ``engine`` for a queued job.

        Must be called from a running event loop.
        """
        token = job.cancellation or CancellationToken()
        task = asyncio.create_task(
            self.process_job(job, engine, token, source),
            name=f"job-{job.job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.debug("job_dispatched", job_id=job.job_id, engine=engine.name)
        return task

    async def process_job(
        self,
        job: Job,
        engine: RetrievalEngine,
        token: CancellationToken,
        source: Any = None,
    ) -> RetrievalOutcome:
        """Run one job to completion and record its outcome."""
        start_time = time.time()
        sink = RegistrySink(self.registry, job.job_id)
        self._update_active_gauge()

        try:
            outcome = await engine.run(job, token, sink, source)
        except asyncio.CancelledError:
            self.registry.transition(job.job_id, JobStatus.ERROR, message="Service shutting down")
            raise
        except Exception as e:
            logger.error(
                "job_failed_unexpected_error",
                job_id=job.job_id,
                engine=engine.name,
                error=str(e),
                exc_info=True,
            )
            outcome = RetrievalOutcome.failed(f"Unexpected error: {e}")

        self._record(job.job_id, outcome)

        MetricsCollector.record_retrieval(
            engine=engine.name,
            outcome=outcome.status.value,
            duration=time.time() - start_time,
            size=outcome.total_bytes or 0,
        )
        self._update_active_gauge()
        return outcome

    def _record(self, job_id: str, outcome: RetrievalOutcome) -> None:
        patch: dict = {"message": outcome.message}
        if outcome.status == JobStatus.DONE:
            patch.update(
                downloaded_bytes=outcome.total_bytes,
                total_bytes=outcome.total_bytes,
                peers=None,
                download_rate=None,
            )
            if outcome.filename:
                patch["filename"] = outcome.filename

        applied = self.registry.transition(job_id, outcome.status, **patch)
        if not applied:
            # Cancelled by the registry before the engine unwound
            logger.debug(
                "job_outcome_discarded",
                job_id=job_id,
                outcome=outcome.status.value,
            )

    def _update_active_gauge(self) -> None:
        MetricsCollector.update_active_jobs(self.registry.get_active_job_count())

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def stop(self) -> None:
        """Cancel running tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        logger.info("job_dispatcher_stopped", cancelled_tasks=len(tasks))
