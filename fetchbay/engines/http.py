"""Streamed HTTP(S) retrieval engine.

The body is read chunk by chunk into memory, progress is sampled with a
byte threshold, and the payload is written in one atomic rename once the
transfer finishes. The cancellation token is polled between chunks.
"""

import asyncio
import contextlib
import os
import uuid
from pathlib import Path
from typing import Any, List, Optional

import httpx
import structlog

from fetchbay.core.cancellation import CancellationToken
from fetchbay.engines.base import ProgressSink, RetrievalEngine, RetrievalOutcome
from fetchbay.engines.exceptions import TransferError, WriteError
from fetchbay.models.job import HttpPayload, Job

logger = structlog.get_logger(__name__)

PROGRESS_THROTTLE_BYTES = 512 * 1024
PROGRESS_THROTTLE_RATIO = 0.01


def progress_threshold(total: Optional[int], floor: int = PROGRESS_THROTTLE_BYTES) -> int:
    """Bytes to accumulate between progress reports.

    ``max(1% of total, floor)`` when the total is known; 0 (report every
    chunk) when it is not.
    """
    if not total:
        return 0
    return max(int(total * PROGRESS_THROTTLE_RATIO), floor)


def _content_length(response: httpx.Response) -> Optional[int]:
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        return None
    return length if length > 0 else None


def write_atomic(destination: Path, data: bytes) -> None:
    """Write ``data`` to a temporary sibling, then rename onto ``destination``.

    Raises:
        WriteError: If the file cannot be written.
    """
    temp_path = destination.with_name(f".{destination.name}.{uuid.uuid4().hex[:8]}.part")
    try:
        temp_path.write_bytes(data)
        os.replace(temp_path, destination)
    except OSError as e:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        raise WriteError(f"Failed to write {destination}: {e.strerror or e}") from e


class HttpRetrievalEngine(RetrievalEngine):
    """Retrieves a single URL into the job's destination path."""

    name = "http"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        progress_bytes: int = PROGRESS_THROTTLE_BYTES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the HTTP engine.

        Args:
            client: Shared AsyncClient (created lazily when None)
            timeout: Connect/read timeout in seconds
            progress_bytes: Minimum bytes between progress reports
            transport: Custom transport for the lazily created client
        """
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.progress_bytes = progress_bytes
        self._transport = transport

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def run(
        self,
        job: Job,
        token: CancellationToken,
        sink: ProgressSink,
        source: Any = None,
    ) -> RetrievalOutcome:
        url = source or self._url_for(job)
        destination = Path(job.destination_path)
        log = logger.bind(job_id=job.job_id)

        if token.cancelled or not sink.started():
            return RetrievalOutcome.cancelled()

        log.info("http_retrieval_started", url=url, destination=str(destination))
        sink.progress(downloaded_bytes=0)

        try:
            data = await self._fetch(url, token, sink)
            if data is None:
                return self._cancel(destination, log)

            await asyncio.to_thread(write_atomic, destination, data)

            if token.cancelled:
                return self._cancel(destination, log)

        except TransferError as e:
            log.error("http_retrieval_failed", url=url, error=str(e), status_code=e.status_code)
            return RetrievalOutcome.failed(str(e))
        except WriteError as e:
            log.error("http_retrieval_write_failed", destination=str(destination), error=str(e))
            return RetrievalOutcome.failed(str(e))

        log.info("http_retrieval_completed", destination=str(destination), bytes=len(data))
        return RetrievalOutcome.done(f"Downloaded to {destination}", len(data))

    async def _fetch(
        self,
        url: str,
        token: CancellationToken,
        sink: ProgressSink,
    ) -> Optional[bytes]:
        """Stream ``url`` into memory.

        Returns:
            The payload, or None if cancellation was observed.

        Raises:
            TransferError: On non-2xx responses and network failures.
        """
        chunks: List[bytes] = []
        downloaded = 0
        last_reported = 0

        try:
            async with self.client.stream("GET", url, follow_redirects=True) as response:
                if not response.is_success:
                    raise TransferError(
                        f"HTTP error: {response.status_code} {response.reason_phrase}",
                        status_code=response.status_code,
                    )

                total = _content_length(response)
                threshold = progress_threshold(total, self.progress_bytes)

                async for chunk in response.aiter_bytes():
                    if token.cancelled:
                        return None
                    chunks.append(chunk)
                    downloaded += len(chunk)
                    if downloaded - last_reported >= threshold:
                        last_reported = downloaded
                        sink.progress(downloaded_bytes=downloaded, total_bytes=total)

                if token.cancelled:
                    return None
                sink.progress(downloaded_bytes=downloaded, total_bytes=total)

        except httpx.HTTPError as e:
            if token.cancelled:
                return None
            raise TransferError(f"Transfer failed: {e}") from e

        return b"".join(chunks)

    @staticmethod
    def _cancel(destination: Path, log: Any) -> RetrievalOutcome:
        # Buffered bytes are dropped with the frame; only the disk needs care.
        with contextlib.suppress(FileNotFoundError):
            destination.unlink()
        log.info("http_retrieval_cancelled", destination=str(destination))
        return RetrievalOutcome.cancelled()

    @staticmethod
    def _url_for(job: Job) -> str:
        if isinstance(job.payload, HttpPayload):
            return job.payload.url
        return job.source
