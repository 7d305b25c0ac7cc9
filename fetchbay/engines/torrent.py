"""Torrent retrieval engine.

Wraps the shared swarm client: adds the torrent, samples its counters into
the job on a fixed interval and removes the torrent from the swarm on every
exit path. Cancelled torrents keep their downloaded data on disk.
"""

import asyncio
from pathlib import Path
from typing import Any

import structlog

from fetchbay.core.cancellation import CancellationToken
from fetchbay.engines.base import ProgressSink, RetrievalEngine, RetrievalOutcome
from fetchbay.engines.exceptions import SwarmError
from fetchbay.engines.swarm import SwarmClient, SwarmHandle, SwarmStatus
from fetchbay.models.job import Job

logger = structlog.get_logger(__name__)

DEFAULT_SAMPLE_INTERVAL = 0.5


class TorrentRetrievalEngine(RetrievalEngine):
    """Pulls single- or multi-file torrents into the job's folder."""

    name = "torrent"

    def __init__(
        self,
        client: SwarmClient,
        sample_interval: float = DEFAULT_SAMPLE_INTERVAL,
    ) -> None:
        self.client = client
        self.sample_interval = sample_interval

    async def close(self) -> None:
        await self.client.close()

    async def run(
        self,
        job: Job,
        token: CancellationToken,
        sink: ProgressSink,
        source: Any = None,
    ) -> RetrievalOutcome:
        folder = Path(job.destination_path)
        log = logger.bind(job_id=job.job_id)

        if source is None:
            return RetrievalOutcome.failed("No torrent source provided")
        if token.cancelled:
            return RetrievalOutcome.cancelled()

        try:
            handle = await self.client.add(source, str(folder))
        except SwarmError as e:
            log.error("torrent_add_failed", error=str(e))
            return RetrievalOutcome.failed(str(e))

        try:
            if not sink.attach(handle.remove) or not sink.started():
                return RetrievalOutcome.cancelled()

            log.info("torrent_retrieval_started", folder=str(folder))
            sink.progress(downloaded_bytes=0)
            return await self._sample(handle, token, sink, folder, log)
        finally:
            handle.remove()

    async def _sample(
        self,
        handle: SwarmHandle,
        token: CancellationToken,
        sink: ProgressSink,
        folder: Path,
        log: Any,
    ) -> RetrievalOutcome:
        while True:
            if token.cancelled:
                log.info("torrent_retrieval_cancelled", folder=str(folder))
                return RetrievalOutcome.cancelled()

            try:
                status = handle.status()
            except SwarmError as e:
                if token.cancelled:
                    return RetrievalOutcome.cancelled()
                log.error("torrent_retrieval_failed", error=str(e))
                return RetrievalOutcome.failed(str(e))

            if status.error:
                log.error("torrent_retrieval_failed", error=status.error)
                return RetrievalOutcome.failed(status.error)

            if status.finished:
                log.info(
                    "torrent_retrieval_completed",
                    name=status.name,
                    bytes=status.total_length,
                )
                return RetrievalOutcome.done(
                    f"Downloaded to {folder}",
                    status.total_length,
                    filename=status.name,
                )

            if not sink.progress(**self._counters(status)):
                # Job left downloading (cancelled) between ticks
                return RetrievalOutcome.cancelled()

            await asyncio.sleep(self.sample_interval)

    @staticmethod
    def _counters(status: SwarmStatus) -> dict:
        counters = {
            "downloaded_bytes": status.downloaded,
            "peers": status.peers,
            "download_rate": round(status.download_rate),
        }
        if status.has_metadata:
            if status.total_length:
                counters["total_bytes"] = status.total_length
            if status.name:
                counters["filename"] = status.name
        return counters
