"""Input validation utilities for admission.

This module provides the filename sanitizer, the destination path guard,
the network origin guard and the extension allow-list used before a job
is admitted.
"""

import ipaddress
import re
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Tuple, Union
from urllib.parse import urlparse

import structlog

logger = structlog.get_logger(__name__)

MAX_FILENAME_LENGTH = 255

_TRAVERSAL_PATTERN = re.compile(r"\.\.")
_SEPARATOR_PATTERN = re.compile(r"[/\\]")
_UNSAFE_CHAR_PATTERN = re.compile(r"[^a-zA-Z0-9._-]")
_IPV4_PART_PATTERN = re.compile(r"^(0[xX][0-9a-fA-F]*|0[0-7]*|[1-9][0-9]*)$")

INTERNAL_NETWORKS: Tuple[ipaddress.IPv4Network, ...] = tuple(
    ipaddress.IPv4Network(net)
    for net in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "127.0.0.0/8", "169.254.0.0/16")
)

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?$", re.IGNORECASE)

_SIZE_MULTIPLIERS = {"b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}
DEFAULT_SIZE_FALLBACK = 100 * 1024 * 1024


class RejectionCode:
    """Machine-readable reasons produced by the validators."""

    INVALID_URL_FORMAT = "INVALID_URL_FORMAT"
    DISALLOWED_SCHEME = "DISALLOWED_SCHEME"
    DISALLOWED_ORIGIN = "DISALLOWED_ORIGIN"
    MISSING_EXTENSION = "MISSING_EXTENSION"
    DISALLOWED_EXTENSION = "DISALLOWED_EXTENSION"


@dataclass(frozen=True)
class ValidationResult:
    """Result of a validation operation."""

    is_valid: bool
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    sanitized_value: Optional[str] = None


class PathTraversalError(ValueError):
    """Raised when a destination path escapes its folder."""


def sanitize_filename(name: str) -> str:
    """Normalize an untrusted filename.

    Removes ``..`` sequences and path separators, replaces any character
    outside ``[A-Za-z0-9._-]`` with ``_`` and truncates to 255 characters.
    The result may be empty; callers substitute their own placeholder.
    """
    cleaned = _TRAVERSAL_PATTERN.sub("", name)
    cleaned = _SEPARATOR_PATTERN.sub("", cleaned)
    cleaned = _UNSAFE_CHAR_PATTERN.sub("_", cleaned)
    return cleaned[:MAX_FILENAME_LENGTH]


def guard_path(folder: Union[str, Path], filename: str) -> Path:
    """Join ``folder`` and ``filename`` and prove the result stays inside.

    Both sides are resolved to canonical absolute form (symlinks included).
    The full path must be a strict descendant of the folder.

    Raises:
        PathTraversalError: If the resolved path is the folder itself or
            lies outside it.
    """
    resolved_folder = Path(folder).resolve()
    resolved_full = (Path(folder) / filename).resolve()

    if resolved_full == resolved_folder or resolved_folder not in resolved_full.parents:
        logger.warning(
            "path_traversal_detected",
            folder=str(resolved_folder),
            filename=filename,
        )
        raise PathTraversalError("Path traversal detected")

    return resolved_full


def filename_from_url(url: str) -> str:
    """Return the last path segment of ``url`` (may be empty)."""
    path = urlparse(url).path
    return path[path.rfind("/") + 1 :]


def parse_ipv4_literal(hostname: str) -> Optional[ipaddress.IPv4Address]:
    """Parse ``hostname`` as an IPv4 literal the way URL parsers and ``inet_aton`` do.

    Accepts one to four dot separated parts in decimal, octal (leading ``0``)
    or hex (``0x``); the last part fills the remaining bytes, so ``127.1``
    and ``2130706433`` both mean ``127.0.0.1``. Returns None for anything
    that is not such a literal.
    """
    parts = hostname.split(".")
    if len(parts) > 1 and parts[-1] == "":
        parts.pop()
    if not 1 <= len(parts) <= 4:
        return None

    numbers = []
    for part in parts:
        if not _IPV4_PART_PATTERN.match(part):
            return None
        if part[:2].lower() == "0x":
            numbers.append(int(part[2:] or "0", 16))
        elif len(part) > 1 and part[0] == "0":
            numbers.append(int(part, 8))
        else:
            numbers.append(int(part))

    *head, last = numbers
    if any(n > 255 for n in head) or last >= 256 ** (4 - len(head)):
        return None

    value = last
    for index, number in enumerate(head):
        value += number << (8 * (3 - index))
    return ipaddress.IPv4Address(value)


def is_internal_host(hostname: str) -> bool:
    """Check whether ``hostname`` is localhost or a private IPv4 literal.

    Shorthand literals (``127.1``, ``0x7f.0.0.1``, ``2130706433``) are
    normalized first. DNS names are not resolved.
    """
    if hostname == "localhost":
        return True

    address = parse_ipv4_literal(hostname)
    if address is None:
        return False
    return any(address in network for network in INTERNAL_NETWORKS)


class OriginGuard:
    """Rejects URLs whose scheme or host must never be fetched."""

    ALLOWED_SCHEMES: FrozenSet[str] = frozenset({"http", "https"})

    def check(self, url: str) -> ValidationResult:
        """Validate ``url`` for outbound retrieval.

        Args:
            url: URL to validate

        Returns:
            ValidationResult with validation status and any error code
        """
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError as e:
            logger.debug("url_parse_failed", url=url, error=str(e))
            return ValidationResult(
                is_valid=False,
                error_message="Invalid URL format",
                error_code=RejectionCode.INVALID_URL_FORMAT,
            )

        if parsed.scheme and parsed.scheme not in self.ALLOWED_SCHEMES:
            return ValidationResult(
                is_valid=False,
                error_message="Only HTTP and HTTPS protocols are allowed",
                error_code=RejectionCode.DISALLOWED_SCHEME,
            )

        if not parsed.scheme or not parsed.netloc or not hostname:
            return ValidationResult(
                is_valid=False,
                error_message="Invalid URL format",
                error_code=RejectionCode.INVALID_URL_FORMAT,
            )

        if is_internal_host(hostname):
            logger.warning("internal_origin_rejected", url=url, hostname=hostname)
            return ValidationResult(
                is_valid=False,
                error_message="Internal/private IP addresses are not allowed",
                error_code=RejectionCode.DISALLOWED_ORIGIN,
            )

        return ValidationResult(is_valid=True, sanitized_value=url)

    def is_allowed(self, url: str) -> bool:
        """Quick check if URL may be fetched."""
        return self.check(url).is_valid


class ExtensionPolicy:
    """Case-insensitive suffix allow-list for admitted filenames.

    An empty allow-list lets every filename through.
    """

    def __init__(self, extensions: Iterable[str] = ()) -> None:
        self.extensions: Tuple[str, ...] = tuple(
            ext.strip().lower() for ext in extensions if ext.strip()
        )

    @classmethod
    def from_string(cls, raw: str) -> "ExtensionPolicy":
        """Build a policy from a comma separated list (``.jpg,.png``)."""
        return cls(raw.split(","))

    def check(self, filename: str) -> ValidationResult:
        if not self.extensions:
            return ValidationResult(is_valid=True, sanitized_value=filename)

        dot_idx = filename.rfind(".")
        if dot_idx == -1:
            return ValidationResult(
                is_valid=False,
                error_message="File has no extension. An extension is required.",
                error_code=RejectionCode.MISSING_EXTENSION,
            )

        extension = filename[dot_idx:].lower()
        if extension not in self.extensions:
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"File extension {extension} is not allowed. "
                    f"Allowed: {', '.join(self.extensions)}"
                ),
                error_code=RejectionCode.DISALLOWED_EXTENSION,
            )

        return ValidationResult(is_valid=True, sanitized_value=filename)


def parse_size(raw: str, fallback: int = DEFAULT_SIZE_FALLBACK) -> int:
    """Parse a human size such as ``10gb`` or ``512 kb`` into bytes.

    Unparsable values fall back to ``fallback``.
    """
    match = _SIZE_PATTERN.match(raw.strip())
    if not match:
        return fallback
    number = float(match.group(1))
    unit = (match.group(2) or "b").lower()
    return int(number * _SIZE_MULTIPLIERS[unit])


# Singleton instance for convenience
origin_guard = OriginGuard()
