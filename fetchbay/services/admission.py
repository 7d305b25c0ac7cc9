"""Admission pipeline deciding whether a request becomes a job.

Checks run in a fixed order and the first failure is reported:
required fields, origin (HTTP only), folder key, filename sanitizing,
extension allow-list (HTTP and uploads only), path guard. Uploads also
check the size cap; torrents validate their source instead of the
extension. Nothing here touches shared mutable state.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from fetchbay.core.validation import (
    ExtensionPolicy,
    OriginGuard,
    PathTraversalError,
    RejectionCode,
    filename_from_url,
    guard_path,
    sanitize_filename,
)
from fetchbay.services.folders import FolderRegistry

logger = structlog.get_logger(__name__)

HTTP_PLACEHOLDER = "download"
UPLOAD_PLACEHOLDER = "upload"
MAGNET_PREFIX = "magnet:"
TORRENT_FILE_SOURCE = "[torrent file]"


class AdmissionError(Exception):
    """Base exception for rejected admissions."""

    error_code = "ADMISSION_REJECTED"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MissingFieldError(AdmissionError):
    error_code = "MISSING_FIELD"


class InvalidURLFormatError(AdmissionError):
    error_code = RejectionCode.INVALID_URL_FORMAT


class DisallowedSchemeError(AdmissionError):
    error_code = RejectionCode.DISALLOWED_SCHEME


class DisallowedOriginError(AdmissionError):
    error_code = RejectionCode.DISALLOWED_ORIGIN


class UnknownFolderKeyError(AdmissionError):
    error_code = "UNKNOWN_FOLDER_KEY"


class PathTraversalRejected(AdmissionError):
    error_code = "PATH_TRAVERSAL"


class MissingExtensionError(AdmissionError):
    error_code = RejectionCode.MISSING_EXTENSION


class DisallowedExtensionError(AdmissionError):
    error_code = RejectionCode.DISALLOWED_EXTENSION


class PayloadTooLargeError(AdmissionError):
    error_code = "PAYLOAD_TOO_LARGE"


class InvalidTorrentSourceError(AdmissionError):
    error_code = "INVALID_TORRENT_SOURCE"


_REJECTION_TYPES = {
    cls.error_code: cls
    for cls in (
        InvalidURLFormatError,
        DisallowedSchemeError,
        DisallowedOriginError,
        MissingExtensionError,
        DisallowedExtensionError,
    )
}


@dataclass(frozen=True)
class AdmissionTicket:
    """A fully resolved destination, ready for the job registry."""

    folder_key: str
    folder: Path
    filename: str
    destination_path: Path
    source: str = ""


class AdmissionPipeline:
    """Composes folder resolution, origin check, sanitizer, extension policy
    and path guard."""

    def __init__(
        self,
        folders: FolderRegistry,
        extensions: Optional[ExtensionPolicy] = None,
        max_upload_size: Optional[int] = None,
        origin_guard: Optional[OriginGuard] = None,
    ) -> None:
        self.folders = folders
        self.extensions = extensions or ExtensionPolicy()
        self.max_upload_size = max_upload_size
        self.origin_guard = origin_guard or OriginGuard()

    def admit_http(
        self,
        url: Optional[str],
        folder_key: Optional[str],
        filename_override: Optional[str] = None,
    ) -> AdmissionTicket:
        """Validate a remote retrieval request.

        Raises:
            AdmissionError: The first failing check.
        """
        if not url or not folder_key:
            raise self._reject(MissingFieldError("Missing required fields: url and folderKey"))

        origin = self.origin_guard.check(url)
        if not origin.is_valid:
            rejection = _REJECTION_TYPES[origin.error_code or RejectionCode.INVALID_URL_FORMAT]
            raise self._reject(rejection(origin.error_message or "Invalid URL"))

        folder = self._resolve_folder(folder_key)

        raw_name = filename_override or filename_from_url(url) or HTTP_PLACEHOLDER
        filename = sanitize_filename(raw_name) or HTTP_PLACEHOLDER

        self._check_extension(filename)
        return self._ticket(folder_key, folder, filename, source=url)

    def admit_upload(
        self,
        size: Optional[int],
        original_name: Optional[str],
        folder_key: Optional[str],
        filename_override: Optional[str] = None,
    ) -> AdmissionTicket:
        """Validate a direct upload of ``size`` bytes.

        ``size`` is None when no file was provided.

        Raises:
            AdmissionError: The first failing check.
        """
        if size is None:
            raise self._reject(MissingFieldError("No file provided"))
        if not folder_key:
            raise self._reject(MissingFieldError("Missing required field: folderKey"))
        if self.max_upload_size is not None and size > self.max_upload_size:
            raise self._reject(
                PayloadTooLargeError(
                    f"File exceeds the maximum upload size of {self.max_upload_size} bytes"
                )
            )

        folder = self._resolve_folder(folder_key)

        raw_name = filename_override or original_name or UPLOAD_PLACEHOLDER
        filename = sanitize_filename(raw_name) or UPLOAD_PLACEHOLDER

        self._check_extension(filename)
        return self._ticket(folder_key, folder, filename, source=f"[upload] {filename}")

    def admit_torrent(
        self,
        folder_key: Optional[str],
        magnet: Optional[str] = None,
        torrent_bytes: Optional[bytes] = None,
    ) -> AdmissionTicket:
        """Validate a torrent request.

        The ticket's ``destination_path`` is the folder itself; the real
        name is only known once peers deliver metadata.

        Raises:
            AdmissionError: The first failing check.
        """
        if not folder_key:
            raise self._reject(MissingFieldError("Missing required field: folderKey"))
        if not magnet and not torrent_bytes:
            raise self._reject(
                InvalidTorrentSourceError("Provide a magnet link or .torrent file")
            )
        if magnet and not magnet.startswith(MAGNET_PREFIX):
            raise self._reject(InvalidTorrentSourceError("Invalid magnet link format"))

        folder = self._resolve_folder(folder_key)
        return AdmissionTicket(
            folder_key=folder_key,
            folder=folder,
            filename="",
            destination_path=folder,
            source=magnet or TORRENT_FILE_SOURCE,
        )

    def _resolve_folder(self, folder_key: str) -> Path:
        folder = self.folders.resolve(folder_key)
        if folder is None:
            raise self._reject(UnknownFolderKeyError(f"Invalid folder key: {folder_key}"))
        return folder

    def _check_extension(self, filename: str) -> None:
        result = self.extensions.check(filename)
        if not result.is_valid:
            rejection = _REJECTION_TYPES[result.error_code or RejectionCode.DISALLOWED_EXTENSION]
            raise self._reject(rejection(result.error_message or "Extension not allowed"))

    def _ticket(
        self, folder_key: str, folder: Path, filename: str, source: str
    ) -> AdmissionTicket:
        try:
            destination = guard_path(folder, filename)
        except PathTraversalError as e:
            raise self._reject(PathTraversalRejected(str(e))) from e

        return AdmissionTicket(
            folder_key=folder_key,
            folder=folder,
            filename=filename,
            destination_path=destination,
            source=source,
        )

    @staticmethod
    def _reject(error: AdmissionError) -> AdmissionError:
        logger.info("admission_rejected", error_code=error.error_code, reason=error.message)
        return error
