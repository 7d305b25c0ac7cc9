"""Job data models for retrieval tracking.

A job is a common envelope (identity, status, timestamps, progress) plus a
payload that depends on the job kind. Torrent-only counters live on the
torrent payload instead of being optional fields on every job.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Union

from fetchbay.core.cancellation import CancellationToken


class JobStatus(str, Enum):
    """Status of a retrieval job.

    State transitions:
    - QUEUED -> DOWNLOADING: When the engine starts
    - QUEUED -> ERROR: When the engine fails before starting
    - QUEUED -> CANCELLED: When cancelled before the engine starts
    - DOWNLOADING -> DONE: When the retrieval succeeds
    - DOWNLOADING -> ERROR: When the retrieval fails
    - DOWNLOADING -> CANCELLED: When cancelled mid-flight
    """

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


class JobKind(str, Enum):
    """How a job's bytes are obtained."""

    HTTP = "http"
    UPLOAD = "upload"
    TORRENT = "torrent"


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.DONE, JobStatus.ERROR, JobStatus.CANCELLED}
)

ACTIVE_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.QUEUED, JobStatus.DOWNLOADING})

LEGAL_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.DOWNLOADING, JobStatus.ERROR, JobStatus.CANCELLED}),
    JobStatus.DOWNLOADING: frozenset({JobStatus.DONE, JobStatus.ERROR, JobStatus.CANCELLED}),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    """Check whether ``new`` is a legal successor of ``current``."""
    return new in LEGAL_TRANSITIONS[current]


@dataclass
class HttpPayload:
    """Payload of a job fetched over HTTP(S)."""

    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {}


@dataclass
class UploadPayload:
    """Payload of a job whose bytes were uploaded directly."""

    original_name: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {}


@dataclass
class TorrentPayload:
    """Payload of a job retrieved from a BitTorrent swarm.

    ``source_kind`` is ``magnet`` or ``file``. ``peers`` and
    ``download_rate`` are live sampler values, cleared when the swarm
    finishes.
    """

    source_kind: str
    peers: Optional[int] = None
    download_rate: Optional[int] = None  # bytes per second

    def to_dict(self) -> Dict[str, Any]:
        return {"peers": self.peers, "download_speed": self.download_rate}


JobPayload = Union[HttpPayload, UploadPayload, TorrentPayload]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """Represents a single retrieval or upload tracked by the registry.

    ``cancellation`` exists only while the job is queued or downloading.
    ``engine_ref`` is a teardown callable installed by the engine that owns
    the job; it is never serialized.
    """

    job_id: str
    kind: JobKind
    source: str
    folder_key: str
    destination_path: str
    filename: str
    payload: JobPayload
    status: JobStatus = JobStatus.QUEUED
    message: Optional[str] = None
    total_bytes: Optional[int] = None
    downloaded_bytes: Optional[int] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    sequence: int = 0
    cancellation: Optional[CancellationToken] = field(default=None, repr=False)
    engine_ref: Optional[Callable[[], None]] = field(default=None, repr=False)

    def is_terminal(self) -> bool:
        """Check if the job is in a terminal state (done, error or cancelled)."""
        return self.status in TERMINAL_STATUSES

    def touch(self) -> None:
        """Refresh ``updated_at``."""
        self.updated_at = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for API responses."""
        data: Dict[str, Any] = {
            "id": self.job_id,
            "type": self.kind.value,
            "url": self.source,
            "status": self.status.value,
            "message": self.message,
            "filename": self.filename,
            "folder_key": self.folder_key,
            "total_bytes": self.total_bytes,
            "downloaded_bytes": self.downloaded_bytes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        data.update(self.payload.to_dict())
        return data
