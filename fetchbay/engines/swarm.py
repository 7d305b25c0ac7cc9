"""Shared BitTorrent swarm client.

One client serves every torrent job in the process. It is constructed
explicitly, injected into the torrent engine, started on first use and shut
down with the application.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import structlog

from fetchbay.engines.exceptions import SwarmError

logger = structlog.get_logger(__name__)

TorrentSource = Union[str, bytes]


@dataclass(frozen=True)
class SwarmStatus:
    """Point-in-time counters of one torrent."""

    name: Optional[str]
    total_length: Optional[int]
    downloaded: int
    peers: int
    download_rate: float
    has_metadata: bool
    finished: bool
    error: Optional[str] = None


class SwarmHandle(ABC):
    """A torrent added to the swarm client."""

    @abstractmethod
    def status(self) -> SwarmStatus:
        """
        Read the torrent's live counters.

        Raises:
            SwarmError: If the handle is no longer valid
        """
        pass

    @abstractmethod
    def remove(self) -> None:
        """Detach the torrent from the swarm. Downloaded data stays on disk.

        Must be idempotent: both cancellation and the engine's own cleanup
        call it.
        """
        pass


class SwarmClient(ABC):
    """Lazily started peer-to-peer client shared by all torrent jobs."""

    def __init__(self) -> None:
        self._start_lock = asyncio.Lock()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def ensure_started(self) -> None:
        """Start the client on first use.

        Raises:
            SwarmError: If the client cannot be initialized.
        """
        if self._started:
            return
        async with self._start_lock:
            if self._started:
                return
            try:
                self._start()
            except SwarmError:
                raise
            except Exception as e:
                raise SwarmError(f"Failed to initialize torrent client: {e}") from e
            self._started = True
            logger.info("swarm_client_started", client=type(self).__name__)

    async def add(self, source: TorrentSource, save_path: str) -> SwarmHandle:
        """Add a magnet link or raw .torrent bytes, downloading into ``save_path``.

        Raises:
            SwarmError: If the client cannot start or the source is rejected.
        """
        await self.ensure_started()
        try:
            return self._add(source, save_path)
        except SwarmError:
            raise
        except Exception as e:
            raise SwarmError(f"Failed to add torrent: {e}") from e

    async def close(self) -> None:
        if not self._started:
            return
        self._stop()
        self._started = False
        logger.info("swarm_client_stopped", client=type(self).__name__)

    @abstractmethod
    def _start(self) -> None:
        pass

    @abstractmethod
    def _add(self, source: TorrentSource, save_path: str) -> SwarmHandle:
        pass

    @abstractmethod
    def _stop(self) -> None:
        pass


class LibtorrentHandle(SwarmHandle):
    """SwarmHandle backed by a libtorrent torrent_handle."""

    def __init__(self, session: Any, handle: Any) -> None:
        self._session = session
        self._handle = handle
        self._removed = False

    def status(self) -> SwarmStatus:
        if self._removed or not self._handle.is_valid():
            raise SwarmError("Torrent handle is no longer valid")

        st = self._handle.status()
        error = st.errc.message() if st.errc.value() != 0 else None
        has_metadata = bool(st.has_metadata)

        return SwarmStatus(
            name=st.name or None,
            total_length=st.total_wanted if has_metadata and st.total_wanted > 0 else None,
            downloaded=st.total_wanted_done,
            peers=st.num_peers,
            download_rate=float(st.download_rate),
            has_metadata=has_metadata,
            finished=has_metadata and (st.is_finished or st.is_seeding),
            error=error,
        )

    def remove(self) -> None:
        if self._removed:
            return
        self._removed = True
        if self._handle.is_valid():
            self._session.remove_torrent(self._handle)


class LibtorrentSwarmClient(SwarmClient):
    """Swarm client on top of libtorrent.

    uTP is disabled so only plain TCP peer connections are used.
    """

    def __init__(
        self,
        listen_interfaces: str = "0.0.0.0:6881",
        enable_utp: bool = False,
    ) -> None:
        super().__init__()
        self.listen_interfaces = listen_interfaces
        self.enable_utp = enable_utp
        self._lt: Any = None
        self._session: Any = None

    def settings(self) -> Dict[str, Any]:
        return {
            "listen_interfaces": self.listen_interfaces,
            "enable_outgoing_utp": self.enable_utp,
            "enable_incoming_utp": self.enable_utp,
            "user_agent": "fetchbay",
        }

    def _start(self) -> None:
        try:
            import libtorrent
        except ImportError as e:
            raise SwarmError(
                "Failed to initialize torrent client: libtorrent is not installed"
            ) from e

        self._lt = libtorrent
        self._session = libtorrent.session(self.settings())

    def _add(self, source: TorrentSource, save_path: str) -> SwarmHandle:
        lt = self._lt
        if isinstance(source, str):
            params = lt.parse_magnet_uri(source)
            params.save_path = save_path
            handle = self._session.add_torrent(params)
        else:
            decoded = lt.bdecode(source)
            if decoded is None:
                raise SwarmError("Invalid torrent file")
            info = lt.torrent_info(decoded)
            handle = self._session.add_torrent({"ti": info, "save_path": save_path})

        return LibtorrentHandle(self._session, handle)

    def _stop(self) -> None:
        if self._session is not None:
            self._session.pause()
            self._session = None
