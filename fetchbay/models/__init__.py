"""Data models for the application."""

from fetchbay.models.job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    HttpPayload,
    Job,
    JobKind,
    JobStatus,
    TorrentPayload,
    UploadPayload,
    can_transition,
)

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "HttpPayload",
    "Job",
    "JobKind",
    "JobStatus",
    "TorrentPayload",
    "UploadPayload",
    "can_transition",
]
