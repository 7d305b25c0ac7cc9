"""Retrieval engine implementations."""

from fetchbay.engines.base import ProgressSink, RetrievalEngine, RetrievalOutcome
from fetchbay.engines.exceptions import EngineError, SwarmError, TransferError, WriteError
from fetchbay.engines.http import HttpRetrievalEngine
from fetchbay.engines.swarm import (
    LibtorrentSwarmClient,
    SwarmClient,
    SwarmHandle,
    SwarmStatus,
)
from fetchbay.engines.torrent import TorrentRetrievalEngine

__all__ = [
    "RetrievalEngine",
    "RetrievalOutcome",
    "ProgressSink",
    "HttpRetrievalEngine",
    "TorrentRetrievalEngine",
    "SwarmClient",
    "SwarmHandle",
    "SwarmStatus",
    "LibtorrentSwarmClient",
    "EngineError",
    "TransferError",
    "WriteError",
    "SwarmError",
]
