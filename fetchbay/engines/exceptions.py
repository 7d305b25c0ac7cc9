"""Retrieval engine exceptions."""

from typing import Optional


class EngineError(Exception):
    """Base exception for retrieval engine errors."""

    pass


class TransferError(EngineError):
    """Raised when the network transfer fails or upstream answers non-2xx."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class WriteError(EngineError):
    """Raised when the retrieved bytes cannot be written locally."""

    pass


class SwarmError(EngineError):
    """Raised when the swarm client or a torrent fails."""

    pass
