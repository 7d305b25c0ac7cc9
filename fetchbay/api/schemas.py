"""Request and response schemas for API endpoints.

This module provides Pydantic models for API request validation
and response serialization with OpenAPI examples.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthRequest(BaseModel):
    """Login request."""

    password: Optional[str] = Field(None, examples=["s3cret"])


class AuthResponse(BaseModel):
    """Login response carrying a bearer token."""

    token: str = Field(..., examples=["9f86d081884c7d659a2feaa0c55ad015..."])


class ConfigResponse(BaseModel):
    """Client-facing configuration."""

    model_config = ConfigDict(populate_by_name=True)

    folders: List[str] = Field(..., examples=[["movies", "files"]])
    allowed_extensions: List[str] = Field(
        ..., alias="allowedExtensions", examples=[[".mkv", ".zip"]]
    )


class DownloadRequest(BaseModel):
    """Request to retrieve a remote URL.

    Fields are optional here so missing values surface as an admission
    rejection rather than a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = Field(None, examples=["https://example.com/sample.txt"])
    folder_key: Optional[str] = Field(None, alias="folderKey", examples=["files"])
    filename_override: Optional[str] = Field(
        None, alias="filenameOverride", examples=["renamed.txt"]
    )


class JobCreatedResponse(BaseModel):
    """Response for an admitted background job."""

    id: str = Field(..., examples=["550e8400-e29b-41d4-a716-446655440000"])
    status: str = Field(..., examples=["queued"])
    type: str = Field(..., examples=["http", "torrent"])


class UploadResponse(BaseModel):
    """Response for a finished upload."""

    id: str = Field(..., examples=["550e8400-e29b-41d4-a716-446655440000"])
    status: Literal["done"] = Field("done", examples=["done"])
    filename: str = Field(..., examples=["report.pdf"])
    folder_key: str = Field(..., examples=["files"])
    message: Optional[str] = Field(None, examples=["Uploaded to /srv/files/report.pdf"])


class JobResponse(BaseModel):
    """Full job view returned by the status and list endpoints."""

    id: str = Field(..., examples=["550e8400-e29b-41d4-a716-446655440000"])
    type: str = Field(..., examples=["http", "upload", "torrent"])
    url: str = Field(..., examples=["https://example.com/sample.txt"])
    status: str = Field(
        ...,
        description="Job status",
        examples=["queued", "downloading", "done", "error", "cancelled"],
    )
    message: Optional[str] = Field(None, examples=["Downloaded to /srv/files/sample.txt"])
    filename: str = Field(..., examples=["sample.txt"])
    folder_key: str = Field(..., examples=["files"])
    total_bytes: Optional[int] = Field(None, examples=[52428800])
    downloaded_bytes: Optional[int] = Field(None, examples=[26214400])
    created_at: str = Field(..., examples=["2025-12-25T10:30:00+00:00"])
    updated_at: str = Field(..., examples=["2025-12-25T10:31:00+00:00"])
    peers: Optional[int] = Field(None, description="Torrent jobs only", examples=[12])
    download_speed: Optional[int] = Field(
        None, description="Torrent jobs only, bytes per second", examples=[1048576]
    )


class CancelResponse(BaseModel):
    """Response for a successful cancellation."""

    id: str = Field(..., examples=["550e8400-e29b-41d4-a716-446655440000"])
    status: Literal["cancelled"] = Field("cancelled", examples=["cancelled"])


class ComponentHealth(BaseModel):
    """Health status of a single component."""

    status: Literal["healthy", "unhealthy"] = Field(..., examples=["healthy"])
    details: Optional[Dict[str, Any]] = Field(default=None, examples=[{"writable": True}])


class HealthResponse(BaseModel):
    """Detailed health check response."""

    status: Literal["healthy", "unhealthy"] = Field(..., examples=["healthy"])
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00Z"])
    version: str = Field(..., examples=["1.0.0"])
    uptime_seconds: float = Field(..., examples=[3600.5])
    active_jobs: int = Field(..., examples=[2])
    components: Dict[str, ComponentHealth]


class LivenessResponse(BaseModel):
    """Simple liveness check response for container orchestration."""

    status: Literal["alive"] = Field(..., examples=["alive"])


class ErrorDetail(BaseModel):
    """Structured error response.

    All API errors follow this format with machine-readable error codes
    and optional suggestions for resolution.
    """

    error_code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=["DISALLOWED_ORIGIN", "JOB_NOT_FOUND", "RATE_LIMIT_EXCEEDED"],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Internal/private IP addresses are not allowed"],
    )
    details: Optional[str] = Field(None, description="Additional error details")
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00+00:00"])
    request_id: Optional[str] = Field(None, examples=["req_1a2b3c4d5e6f"])
    suggestion: Optional[str] = Field(
        None,
        description="Suggested action for resolution",
        examples=["Use one of the folder keys listed by GET /api/config"],
    )
