"""SFTP capability objects and their per-endpoint cache.

A FileTransfer is bound to one live TransportSession and lazily starts its
SFTP subsystem on first use. The orchestrator keeps at most one per
endpoint in a CapabilityCache keyed by HopKey / RemoteKey, so a hop and a
named remote that happen to share a name never collide.
"""

import asyncio
import logging
import posixpath
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

import asyncssh

from ssh_orchestra.errors import TransportError
from ssh_orchestra.services.transport import TransportSession
from ssh_orchestra.utils.loggers import StdlibLogger

if TYPE_CHECKING:
    from ssh_orchestra.protocols import OrchestraLogger

logger = logging.getLogger(__name__)

SFTP_ERRORS = (asyncssh.SFTPError, OSError)


class FileTransfer:
    """File operations over SFTP on one endpoint.

    upload, download, exists and mkdir report failure as False (after
    logging it). append_text and list raise TransportError.
    """

    def __init__(self, session: TransportSession, logger: "OrchestraLogger | None" = None) -> None:
        self.session = session
        self.logger = logger or StdlibLogger()
        self._sftp: asyncssh.SFTPClient | None = None
        self._init_lock = asyncio.Lock()

    @property
    def endpoint_name(self) -> str:
        return self.session.name

    async def _client(self) -> asyncssh.SFTPClient:
        if self._sftp is None:
            async with self._init_lock:
                if self._sftp is None:
                    logger.debug("Starting SFTP subsystem on %s", self.endpoint_name)
                    self._sftp = await self.session.start_sftp_client()
        return self._sftp

    async def upload(self, local_path: str, remote_path: str) -> bool:
        """Upload a local file, creating the remote parent directory first."""
        sftp = await self._client()

        parent = posixpath.dirname(remote_path)
        if parent:
            await self.ensure_directory(parent)

        try:
            await sftp.put(local_path, remote_path)
        except SFTP_ERRORS as e:
            self.logger.error(f"Failed to upload {local_path}: {e}")
            return False
        return True

    async def download(self, remote_path: str, local_path: str) -> bool:
        sftp = await self._client()
        try:
            await sftp.get(remote_path, local_path)
        except SFTP_ERRORS as e:
            self.logger.error(f"Failed to download {remote_path}: {e}")
            return False
        return True

    async def exists(self, remote_path: str) -> bool:
        sftp = await self._client()
        try:
            await sftp.stat(remote_path)
        except SFTP_ERRORS:
            return False
        return True

    async def mkdir(self, remote_path: str) -> bool:
        sftp = await self._client()
        try:
            await sftp.mkdir(remote_path)
        except SFTP_ERRORS as e:
            self.logger.error(f"Failed to create directory {remote_path}: {e}")
            return False
        return True

    async def append_text(self, remote_path: str, text: str) -> None:
        """Append text to a remote file, creating it if needed.

        Raises:
            TransportError: If the file cannot be opened or written
        """
        sftp = await self._client()
        try:
            async with sftp.open(remote_path, "a") as remote_file:
                await remote_file.write(text)
        except SFTP_ERRORS as e:
            raise TransportError(self.endpoint_name, e) from e

    async def ensure_directory(self, remote_path: str) -> None:
        """Create `remote_path` unless it already exists.

        A failed mkdir is logged, not raised; the following operation will
        report its own failure.
        """
        if await self.exists(remote_path):
            return

        self.logger.warning(f"Directory {remote_path} does not exist")
        self.logger.task(f"Creating {remote_path}...")

        if not await self.mkdir(remote_path):
            self.logger.error(f"Failed to create directory {remote_path}")
            return

        self.logger.success(f"Successfully created {remote_path}")

    def close(self) -> None:
        """Close the SFTP subsystem, if it was started."""
        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None

    async def list(self, remote_path: str) -> list[asyncssh.SFTPName]:
        """List directory entries (including . and ..).

        Raises:
            TransportError: If the directory cannot be read
        """
        sftp = await self._client()
        try:
            return await sftp.readdir(remote_path)
        except SFTP_ERRORS as e:
            raise TransportError(self.endpoint_name, e) from e


@dataclass(frozen=True)
class HopKey:
    """Cache key for a positional hop."""

    name: str


@dataclass(frozen=True)
class RemoteKey:
    """Cache key for a named remote."""

    name: str


CapabilityKey = Union[HopKey, RemoteKey]


class CapabilityCache:
    """Lazily built FileTransfer objects, one per endpoint."""

    def __init__(self, factory: Callable[[TransportSession], FileTransfer]) -> None:
        self._factory = factory
        self._entries: dict[CapabilityKey, FileTransfer] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get_or_create(self, key: CapabilityKey, session: TransportSession) -> FileTransfer:
        """Return the cached object for `key`, building it on first use."""
        transfer = self._entries.get(key)
        if transfer is None:
            transfer = self._factory(session)
            self._entries[key] = transfer
            logger.debug("Created file transfer for %s", key)
        return transfer

    def invalidate(self, key: CapabilityKey) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug("Invalidated file transfer for %s", key)

    def clear(self) -> None:
        if self._entries:
            logger.debug("Clearing %d cached file transfer(s)", len(self._entries))
        self._entries.clear()
