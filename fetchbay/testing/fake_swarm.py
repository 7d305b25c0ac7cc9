"""In-process swarm client for test mode.

Simulates torrents without touching the network: every status read
advances the torrent by one tick and writes the bytes "received" so far to
disk, so tests can observe both progress sampling and the data left behind
after cancellation. Used when FETCHBAY_TESTING_FAKE_SWARM=true.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from fetchbay.engines.exceptions import SwarmError
from fetchbay.engines.swarm import SwarmClient, SwarmHandle, SwarmStatus, TorrentSource

logger = structlog.get_logger(__name__)


@dataclass
class FakeTorrent:
    """Script for one simulated torrent."""

    name: str = "demo-torrent.bin"
    total_length: int = 4096
    ticks_to_finish: int = 4
    metadata_after: int = 1
    peers: int = 3
    error: Optional[str] = None
    error_after: int = 0


class FakeSwarmHandle(SwarmHandle):
    """Handle advancing a FakeTorrent one tick per status read."""

    def __init__(self, torrent: FakeTorrent, save_path: str) -> None:
        self.torrent = torrent
        self.save_path = Path(save_path)
        self.ticks = 0
        self.removed = False
        self.remove_calls = 0

    @property
    def file_path(self) -> Path:
        return self.save_path / self.torrent.name

    def status(self) -> SwarmStatus:
        if self.removed:
            raise SwarmError("Torrent handle is no longer valid")

        self.ticks += 1
        torrent = self.torrent

        if torrent.error is not None and self.ticks > torrent.error_after:
            return SwarmStatus(
                name=None,
                total_length=None,
                downloaded=0,
                peers=0,
                download_rate=0.0,
                has_metadata=False,
                finished=False,
                error=torrent.error,
            )

        has_metadata = self.ticks > torrent.metadata_after
        fraction = min(self.ticks / max(torrent.ticks_to_finish, 1), 1.0)
        downloaded = int(torrent.total_length * fraction) if has_metadata else 0
        finished = has_metadata and self.ticks >= torrent.ticks_to_finish

        if has_metadata:
            self._write(downloaded)

        return SwarmStatus(
            name=torrent.name if has_metadata else None,
            total_length=torrent.total_length if has_metadata else None,
            downloaded=downloaded,
            peers=torrent.peers,
            download_rate=float(torrent.total_length) / max(torrent.ticks_to_finish, 1),
            has_metadata=has_metadata,
            finished=finished,
        )

    def remove(self) -> None:
        self.remove_calls += 1
        self.removed = True

    def _write(self, size: int) -> None:
        self.save_path.mkdir(parents=True, exist_ok=True)
        self.file_path.write_bytes(b"\x00" * size)


class FakeSwarmClient(SwarmClient):
    """SwarmClient serving scripted FakeTorrents.

    ``torrents`` maps a magnet link (or the raw bytes of a .torrent file) to
    its script; unknown sources get ``default``.
    """

    def __init__(
        self,
        torrents: Optional[Dict[TorrentSource, FakeTorrent]] = None,
        default: Optional[FakeTorrent] = None,
        fail_start: bool = False,
    ) -> None:
        super().__init__()
        self.torrents = torrents or {}
        self.default = default or FakeTorrent()
        self.fail_start = fail_start
        self.handles: List[FakeSwarmHandle] = []
        self.start_count = 0

    def _start(self) -> None:
        if self.fail_start:
            raise SwarmError("Failed to initialize torrent client: simulated failure")
        self.start_count += 1

    def _add(self, source: TorrentSource, save_path: str) -> SwarmHandle:
        torrent = self.torrents.get(source, self.default)
        handle = FakeSwarmHandle(torrent, save_path)
        self.handles.append(handle)
        logger.debug("fake_torrent_added", name=torrent.name, save_path=save_path)
        return handle

    def _stop(self) -> None:
        for handle in self.handles:
            handle.remove()
