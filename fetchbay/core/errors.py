"""Centralized error handling for the API.

This module provides standardized error codes, exception-to-response mapping,
and a global exception handler for FastAPI.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Type

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from fetchbay.core.logging import get_request_id
from fetchbay.engines.exceptions import WriteError
from fetchbay.services.admission import AdmissionError
from fetchbay.services.job_registry import JobConflictError, JobNotFoundError

logger = structlog.get_logger(__name__)


class ErrorCode:
    """Standardized error codes for API responses.

    These codes provide machine-readable identifiers for error conditions
    that clients can use to implement error handling logic.
    """

    # Admission rejections (4xx)
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_URL_FORMAT = "INVALID_URL_FORMAT"
    DISALLOWED_SCHEME = "DISALLOWED_SCHEME"
    DISALLOWED_ORIGIN = "DISALLOWED_ORIGIN"
    UNKNOWN_FOLDER_KEY = "UNKNOWN_FOLDER_KEY"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"
    MISSING_EXTENSION = "MISSING_EXTENSION"
    DISALLOWED_EXTENSION = "DISALLOWED_EXTENSION"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    INVALID_TORRENT_SOURCE = "INVALID_TORRENT_SOURCE"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Other client errors
    AUTH_FAILED = "AUTH_FAILED"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    JOB_CONFLICT = "JOB_CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server errors (5xx)
    WRITE_FAILED = "WRITE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    COMPONENT_UNAVAILABLE = "COMPONENT_UNAVAILABLE"


# Error code to HTTP status code mapping
ERROR_CODE_TO_STATUS: Dict[str, int] = {
    # 400 Bad Request
    ErrorCode.MISSING_FIELD: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_URL_FORMAT: HTTP_400_BAD_REQUEST,
    ErrorCode.DISALLOWED_SCHEME: HTTP_400_BAD_REQUEST,
    ErrorCode.DISALLOWED_ORIGIN: HTTP_400_BAD_REQUEST,
    ErrorCode.UNKNOWN_FOLDER_KEY: HTTP_400_BAD_REQUEST,
    ErrorCode.PATH_TRAVERSAL: HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_EXTENSION: HTTP_400_BAD_REQUEST,
    ErrorCode.DISALLOWED_EXTENSION: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TORRENT_SOURCE: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_REQUEST: HTTP_400_BAD_REQUEST,
    # 401 Unauthorized
    ErrorCode.AUTH_FAILED: HTTP_401_UNAUTHORIZED,
    # 404 Not Found
    ErrorCode.JOB_NOT_FOUND: HTTP_404_NOT_FOUND,
    # 409 Conflict
    ErrorCode.JOB_CONFLICT: HTTP_409_CONFLICT,
    # 413 Payload Too Large
    ErrorCode.PAYLOAD_TOO_LARGE: HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    # 429 Too Many Requests
    ErrorCode.RATE_LIMIT_EXCEEDED: HTTP_429_TOO_MANY_REQUESTS,
    # 500 Internal Server Error
    ErrorCode.WRITE_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INTERNAL_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    # 503 Service Unavailable
    ErrorCode.COMPONENT_UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
}


# User-friendly suggestions for error resolution
ERROR_SUGGESTIONS: Dict[str, str] = {
    ErrorCode.MISSING_FIELD: "Provide every required field of the request",
    ErrorCode.INVALID_URL_FORMAT: "Provide an absolute URL such as https://example.com/file.zip",
    ErrorCode.DISALLOWED_SCHEME: "Only http:// and https:// URLs can be downloaded",
    ErrorCode.DISALLOWED_ORIGIN: "Downloads from localhost or private networks are blocked",
    ErrorCode.UNKNOWN_FOLDER_KEY: "Use one of the folder keys listed by GET /api/config",
    ErrorCode.PATH_TRAVERSAL: "Choose a plain filename without directory components",
    ErrorCode.MISSING_EXTENSION: "Add a file extension or set filenameOverride",
    ErrorCode.DISALLOWED_EXTENSION: "Use one of the extensions listed by GET /api/config",
    ErrorCode.PAYLOAD_TOO_LARGE: "The file exceeds the configured maximum upload size",
    ErrorCode.INVALID_TORRENT_SOURCE: "Provide a magnet: link or a .torrent file",
    ErrorCode.AUTH_FAILED: "Log in via POST /api/auth and send the token as a Bearer header",
    ErrorCode.JOB_NOT_FOUND: "The job ID does not exist or has expired (TTL: 24 hours)",
    ErrorCode.JOB_CONFLICT: "The job already finished; only queued or downloading jobs can be cancelled",
    ErrorCode.RATE_LIMIT_EXCEEDED: "Wait for the Retry-After period before trying again",
    ErrorCode.WRITE_FAILED: "The server could not write to the destination folder",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Contact administrator if the issue persists",
    ErrorCode.COMPONENT_UNAVAILABLE: "A required component is unavailable. Check /health for status",
}


# Exception type to error code mapping
# Order matters: subclasses must come before their base classes
EXCEPTION_TO_ERROR_CODE: Dict[Type[Exception], str] = {
    JobNotFoundError: ErrorCode.JOB_NOT_FOUND,
    JobConflictError: ErrorCode.JOB_CONFLICT,
    WriteError: ErrorCode.WRITE_FAILED,
}


class APIError(Exception):
    """Structured API error that can be converted to ErrorDetail response.

    Raise it from route handlers; the global exception handler turns it
    into a consistent error response.
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        """Initialize an API error.

        Args:
            error_code: Machine-readable error code from ErrorCode class.
            message: Human-readable error message.
            details: Optional additional details about the error.
            suggestion: Optional suggestion for resolution. If not provided,
                        the default suggestion for the error code is used.
        """
        self.error_code = error_code
        self.message = message
        self.details = details
        self.suggestion = suggestion or ERROR_SUGGESTIONS.get(error_code)
        super().__init__(message)


# Exceptions routed through global_exception_handler by type
HANDLED_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    APIError,
    HTTPException,
    AdmissionError,
    JobNotFoundError,
    JobConflictError,
    WriteError,
)


def map_exception_to_api_error(exc: Exception) -> APIError:
    """Map admission and service exceptions to APIError.

    Admission errors carry their own code; everything else is looked up in
    EXCEPTION_TO_ERROR_CODE.

    Args:
        exc: The exception to map.

    Returns:
        An APIError with the appropriate error code and message.
    """
    if isinstance(exc, AdmissionError):
        return APIError(str(exc.error_code), exc.message)
    for exc_type, error_code in EXCEPTION_TO_ERROR_CODE.items():
        if isinstance(exc, exc_type):
            return APIError(error_code, str(exc))
    return APIError(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")


def _build_error_response(
    error_code: str,
    message: str,
    details: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a standardized error response dictionary."""
    request_id = get_request_id()
    timestamp = datetime.now(timezone.utc).isoformat()

    response: Dict[str, Any] = {
        "error_code": error_code,
        "message": message,
        "timestamp": timestamp,
    }

    if details:
        response["details"] = details
    if request_id:
        response["request_id"] = request_id
    if suggestion:
        response["suggestion"] = suggestion

    return response


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for FastAPI.

    Converts all exceptions to standardized ErrorDetail responses with
    consistent structure, proper HTTP status codes, and request tracing.

    Args:
        request: The FastAPI request object.
        exc: The exception that was raised.

    Returns:
        JSONResponse with ErrorDetail body and appropriate status code.
    """
    headers: Optional[Dict[str, str]] = None

    if isinstance(exc, APIError):
        status_code = ERROR_CODE_TO_STATUS.get(exc.error_code, HTTP_500_INTERNAL_SERVER_ERROR)
        response = _build_error_response(
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details,
            suggestion=exc.suggestion,
        )
        logger.warning(
            "api_error",
            error_code=exc.error_code,
            message=exc.message,
            path=request.url.path,
        )

    elif isinstance(exc, HTTPException):
        status_code = exc.status_code
        headers = exc.headers

        if isinstance(exc.detail, dict) and "error_code" in exc.detail:
            error_code = exc.detail["error_code"]
            message = exc.detail.get("message", str(exc.detail))
            details = exc.detail.get("details")
        else:
            error_code = _status_to_error_code(status_code)
            message = str(exc.detail) if exc.detail else "An error occurred"
            details = None

        response = _build_error_response(
            error_code=error_code,
            message=message,
            details=details,
            suggestion=ERROR_SUGGESTIONS.get(error_code),
        )
        logger.warning(
            "http_exception",
            status_code=status_code,
            error_code=error_code,
            path=request.url.path,
        )

    elif isinstance(exc, (AdmissionError, JobNotFoundError, JobConflictError, WriteError)):
        api_error = map_exception_to_api_error(exc)
        if isinstance(exc, WriteError):
            # Disk paths stay in the logs
            api_error.details = None
            api_error.message = "Failed to save file"
        status_code = ERROR_CODE_TO_STATUS.get(api_error.error_code, HTTP_500_INTERNAL_SERVER_ERROR)
        response = _build_error_response(
            error_code=api_error.error_code,
            message=api_error.message,
            details=api_error.details,
            suggestion=api_error.suggestion,
        )
        logger.warning(
            "service_error",
            error_code=api_error.error_code,
            error_type=type(exc).__name__,
            message=str(exc),
            path=request.url.path,
        )

    else:
        status_code = HTTP_500_INTERNAL_SERVER_ERROR
        response = _build_error_response(
            error_code=ErrorCode.INTERNAL_ERROR,
            message="An unexpected error occurred",
            suggestion=ERROR_SUGGESTIONS.get(ErrorCode.INTERNAL_ERROR),
        )
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

    return JSONResponse(status_code=status_code, content=response, headers=headers)


def _status_to_error_code(status_code: int) -> str:
    """Infer error code from HTTP status code."""
    if status_code == HTTP_400_BAD_REQUEST:
        return ErrorCode.INVALID_REQUEST
    elif status_code == HTTP_401_UNAUTHORIZED:
        return ErrorCode.AUTH_FAILED
    elif status_code == HTTP_404_NOT_FOUND:
        return ErrorCode.JOB_NOT_FOUND
    elif status_code == HTTP_409_CONFLICT:
        return ErrorCode.JOB_CONFLICT
    elif status_code == HTTP_413_REQUEST_ENTITY_TOO_LARGE:
        return ErrorCode.PAYLOAD_TOO_LARGE
    elif status_code == HTTP_429_TOO_MANY_REQUESTS:
        return ErrorCode.RATE_LIMIT_EXCEEDED
    elif status_code == HTTP_503_SERVICE_UNAVAILABLE:
        return ErrorCode.COMPONENT_UNAVAILABLE
    else:
        return ErrorCode.INTERNAL_ERROR
