"""Multi-hop SSH tunnel chain orchestration.

Connection:
- Hops connect strictly in order. Hop 0 is opened directly, every later hop
  is tunneled through the session of the hop before it.
- connect() resumes from the first hop without a session, so a partially
  built chain is completed rather than rebuilt. Failures leave the prefix
  in place.

Disconnection & reconnection:
- Losing hop i drops sessions i..N-1 (everything forwarded through it),
  clears every cached FileTransfer and schedules a background reconnect.
- At most one reconnect task runs at a time; losses reported while it runs
  are coalesced into one more connect() attempt after it finishes.
- Explicit disconnect() disarms sessions before closing them, so tearing
  down never triggers a reconnect.

Locking Strategy:
- `_connect_lock` serializes connect() calls (caller and reconnect task).
- Everything else runs on the event loop without awaiting in between the
  reads and writes of shared state.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import asyncssh

from ssh_orchestra.errors import (
    ConfigurationError,
    EndpointNotFound,
    StreamError,
    TransportError,
    UnexpectedClose,
)
from ssh_orchestra.models import (
    ChainConfig,
    ChainState,
    HopDescriptor,
    ResolvedEndpoint,
    TwoHopConfig,
)
from ssh_orchestra.models.chain import coerce_hop
from ssh_orchestra.services.credentials import resolve_endpoint
from ssh_orchestra.services.registry import EndpointRegistry
from ssh_orchestra.services.sftp import CapabilityCache, FileTransfer, HopKey, RemoteKey
from ssh_orchestra.services.transport import TransportSession, decode_output
from ssh_orchestra.utils.loggers import StdlibLogger

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class ChainOrchestrator:
    """Manage a chain of SSH hops and the named remotes reachable from it."""

    def __init__(self, config: ChainConfig | TwoHopConfig) -> None:
        """Initialize orchestrator from a chain or legacy two-hop config.

        Args:
            config: ChainConfig, or TwoHopConfig (converted to hops
                "jump" and "remote")
        """
        if isinstance(config, TwoHopConfig):
            config = config.to_chain_config()

        self.config = config
        self.logger = config.logger or StdlibLogger()
        self._registry = EndpointRegistry(config.hops)
        self._capabilities = CapabilityCache(lambda session: FileTransfer(session, self.logger))

        self._connect_lock = asyncio.Lock()
        self._connecting = False
        self._torn_down = False
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_pending = False
        self._last_lost: str | None = None
        # bumped by every teardown; in-flight connects compare against it
        self._generation = 0
        self._closing = False

        if config.host_keys is None or not config.host_keys.is_enabled():
            logger.warning(
                "SSH host key verification DISABLED for this chain - vulnerable "
                "to MITM attacks. Pass host_keys=HostKeyVerifier(...) to enable it."
            )

        logger.debug(
            "ChainOrchestrator initialized (hops=%s)",
            " -> ".join(config.hop_names) or "<none>",
        )

    async def __aenter__(self) -> "ChainOrchestrator":
        try:
            await self.connect()
        except BaseException:
            await self.disconnect()
            raise
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @property
    def hops(self) -> list[HopDescriptor]:
        return self._registry.hops

    @property
    def sessions(self) -> list[TransportSession]:
        """Live hop sessions in chain order."""
        return self._registry.sessions

    @property
    def remote_names(self) -> list[str]:
        return list(self._registry.remotes)

    @property
    def is_fully_connected(self) -> bool:
        """Whether every configured hop has a live session."""
        return self._registry.is_fully_connected

    @property
    def is_connected(self) -> bool:
        return self.is_fully_connected

    @property
    def state(self) -> ChainState:
        if self._connecting:
            return ChainState.CONNECTING
        if self._registry.is_fully_connected:
            return ChainState.CONNECTED
        if self._registry.next_index > 0:
            return ChainState.PARTIALLY_CONNECTED
        if self._torn_down:
            return ChainState.DISCONNECTED
        return ChainState.UNCONNECTED

    def _require_hops(self) -> list[HopDescriptor]:
        if not self._registry.hops:
            raise ConfigurationError("No hops configured")
        return self._registry.hops

    # -- connection -------------------------------------------------------

    async def connect(self) -> None:
        """Establish (or complete) the tunnel chain.

        Runs on_before_connect, then connects every hop that has no session
        yet, awaiting on_hop_connected after each one.

        A disconnect() while this runs aborts it; nothing opened after the
        teardown is kept.

        Raises:
            ConfigurationError: If no hops are configured
            TransportError: If a hop cannot be reached (hops connected so
                far stay connected), or the chain was disconnected meanwhile
        """
        hops = self._require_hops()

        async with self._connect_lock:
            if self._registry.is_fully_connected:
                return

            generation = self._generation
            self._connecting = True
            self._torn_down = False
            try:
                if self.config.on_before_connect is not None:
                    await self.config.on_before_connect()
                    self._check_generation(generation, hops[self._registry.next_index].name)

                while not self._registry.is_fully_connected:
                    index = self._registry.next_index
                    hop = hops[index]
                    endpoint = resolve_endpoint(hop, self.config.current_defaults())
                    parent = self._registry.sessions[index - 1] if index > 0 else None

                    session = await self._open_session(endpoint, parent)
                    if self._generation != generation:
                        self._close_quietly(session)
                        self._check_generation(generation, hop.name)
                    session.arm(self._on_hop_lost)
                    self._registry.append(session)

                    if self.config.on_hop_connected is not None:
                        await self.config.on_hop_connected(index, hop)
                        self._check_generation(generation, hop.name)
            finally:
                self._connecting = False

    def _check_generation(self, generation: int, endpoint_name: str) -> None:
        if self._generation != generation:
            logger.info("Connect through %s aborted by disconnect", endpoint_name)
            raise TransportError(
                endpoint_name, ConnectionAbortedError("chain disconnected while connecting")
            )

    async def _open_session(
        self, endpoint: ResolvedEndpoint, parent: TransportSession | None
    ) -> TransportSession:
        host_keys = self.config.host_keys
        try:
            session = await TransportSession.open(
                endpoint,
                tunnel=parent,
                known_hosts=host_keys.get_known_hosts_path() if host_keys else None,
                strict_host_key_checking=host_keys.strict_checking if host_keys else False,
            )
        except TransportError as e:
            if parent is None:
                self.logger.error(f"Failed to connect to {endpoint.name} ({endpoint.address})")
            else:
                self.logger.error(f"{endpoint.name} connect error: {e.original_error}")
            raise

        if parent is None:
            self.logger.success(f"Connected to {endpoint.name} ({endpoint.address})")
        else:
            self.logger.success(f"Forwarded to {endpoint.name} ({endpoint.host})")
        return session

    def _on_hop_lost(self, session: TransportSession, exc: Exception | None) -> None:
        index = self._registry.index_of(session)
        if index is None:
            logger.debug("Ignoring loss of stale session %s", session.name)
            return

        if exc is not None:
            self.logger.error(f"{session.name} Error: {exc}")
        else:
            self.logger.warning(f"{session.name} Closed")
        self.logger.warning(f"Attempting to re-establish {session.name}...")

        # Everything forwarded through the lost hop is unreachable now
        for dropped in self._registry.truncate(index):
            self._close_quietly(dropped)
        self._capabilities.clear()

        self._request_reconnect(session.name)

    def _request_reconnect(self, hop_name: str) -> None:
        if self._closing:
            logger.debug("Not reconnecting %s: disconnect in progress", hop_name)
            return
        self._last_lost = hop_name
        self._reconnect_pending = True
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        while self._reconnect_pending:
            self._reconnect_pending = False
            hop_name = self._last_lost
            try:
                await self.connect()
            except Exception as e:
                # logged, never raised
                self.logger.error(f"Failed to re-establish {hop_name}: {e}")
            else:
                logger.info("Chain re-established after losing %s", hop_name)

    async def wait_for_reconnect(self) -> None:
        """Wait until a pending background reconnect (if any) has finished."""
        task = self._reconnect_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    def _cancel_reconnect(self) -> asyncio.Task[None] | None:
        """Cancel the reconnect task; returns it if it was still running."""
        self._reconnect_pending = False
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task.done():
            return None
        task.cancel()
        logger.debug("Pending reconnect cancelled")
        return task

    def _close_quietly(self, session: TransportSession) -> None:
        try:
            session.close()
        except Exception as e:
            logger.warning("Error closing session %s: %s", session.name, e)

    async def disconnect(self) -> None:
        """Close all named remotes, then all hops in reverse order.

        Sessions, remotes and cached FileTransfers are cleared even if the
        on_before_disconnect hook fails; the hook's exception is re-raised
        after teardown.

        Losses reported while the hook runs do not schedule a reconnect,
        and a connect() in flight is aborted.
        """
        self._closing = True
        cancelled = [self._cancel_reconnect()]
        try:
            if self.config.on_before_disconnect is not None:
                await self.config.on_before_disconnect()
        finally:
            try:
                self._teardown()
                cancelled.append(self._cancel_reconnect())
            finally:
                self._closing = False
            await self._wait_cancelled(cancelled)

    async def _wait_cancelled(self, tasks: list[asyncio.Task[None] | None]) -> None:
        current = asyncio.current_task()
        pending = {task for task in tasks if task is not None and task is not current}
        if pending:
            await asyncio.wait(pending)

    def _teardown(self) -> None:
        self._generation += 1
        for name, remote in self._registry.clear_remotes().items():
            self._close_quietly(remote)
            self.logger.info(f"Disconnected remote: {name}")

        sessions = self._registry.clear_sessions()
        for index in reversed(range(len(sessions))):
            self._close_quietly(sessions[index])
            self.logger.info(f"Disconnected: {self._registry.hops[index].name}")

        self._capabilities.clear()
        self._torn_down = True

    # -- command execution ------------------------------------------------

    async def exec(self, hop_name: str, command: str, debug: bool = False) -> str:
        """Execute a command on the hop called `hop_name`.

        Args:
            hop_name: Name of the hop to execute on
            command: Shell command
            debug: Log the command's stderr (if any) at info level

        Returns:
            Standard output of the command

        Raises:
            EndpointNotFound: No hop has that name
            EndpointNotConnected: The hop has no live session
            TransportError: The command channel failed
        """
        session = self._registry.session_for(hop_name)
        return await self._exec_on(session, command, debug)

    async def exec_jump(self, command: str, debug: bool = False) -> str:
        """Execute a command on the first hop."""
        return await self.exec(self._require_hops()[0].name, command, debug)

    async def exec_remote(self, command: str, debug: bool = False) -> str:
        """Execute a command on the last hop."""
        return await self.exec(self._require_hops()[-1].name, command, debug)

    async def exec_on_remote(self, remote_name: str, command: str, debug: bool = False) -> str:
        """Execute a command on a named remote added with add_remote().

        Raises:
            RemoteNotConnected: No remote registered under that name
        """
        session = self._registry.remote_session(remote_name)
        return await self._exec_on(session, command, debug)

    async def _exec_on(self, session: TransportSession, command: str, debug: bool) -> str:
        logger.debug("Executing on %s: %s", session.name, command)
        result = await session.run(command)
        # stderr is diagnostic only, never an error by itself
        if debug and result.error:
            self.logger.info(f"Debug output: {result.error}")
        return result.output

    # -- named remotes ----------------------------------------------------

    async def add_remote(
        self,
        name: str,
        descriptor: HopDescriptor | Mapping[str, Any],
        from_hop: str | None = None,
    ) -> None:
        """Connect an extra endpoint through a hop and register it as `name`.

        Args:
            name: Name for exec_on_remote() / get_sftp_for()
            descriptor: Connection details; chain defaults apply
            from_hop: Hop to forward through (defaults to the last hop)

        Raises:
            ConfigurationError: The descriptor is malformed or has no host
            SourceHopNotFound: from_hop is not a configured hop
            SourceHopNotConnected: from_hop has no live session
            TransportError: The remote cannot be reached, or the chain was
                disconnected meanwhile
        """
        descriptor = coerce_hop(descriptor, name=name)

        source = from_hop or self._require_hops()[-1].name
        parent = self._registry.source_session(source)

        generation = self._generation
        endpoint = resolve_endpoint(descriptor, self.config.current_defaults())
        session = await self._open_session(endpoint, parent)
        if self._generation != generation:
            self._close_quietly(session)
            self._check_generation(generation, name)
        session.arm(self._remote_loss_handler(name))

        previous = self._registry.set_remote(name, session)
        self._capabilities.invalidate(RemoteKey(name))
        if previous is not None:
            self.logger.warning(f"Replacing existing remote connection '{name}'")
            self._close_quietly(previous)

    def _remote_loss_handler(self, name: str):
        def on_remote_lost(session: TransportSession, exc: Exception | None) -> None:
            if self._registry.pop_remote(name, session) is None:
                return
            self._capabilities.invalidate(RemoteKey(name))
            if exc is not None:
                self.logger.warning(f"Remote {name} lost: {exc}")
            else:
                self.logger.warning(f"Remote {name} Closed")

        return on_remote_lost

    # -- interactive sessions ---------------------------------------------

    async def open_shell(self, hop_name: str | None = None) -> asyncssh.SSHClientProcess:
        """Open an interactive shell on a hop (defaults to the last hop).

        Raises:
            EndpointNotFound: No hop has that name
            EndpointNotConnected: The hop has no live session
        """
        target = hop_name or self._require_hops()[-1].name
        session = self._registry.session_for(target)
        return await session.create_process()

    async def wait_for_string(
        self,
        process: asyncssh.SSHClientProcess,
        expected: str,
        timeout: float | None = None,
    ) -> str:
        """Read shell output until it contains `expected`.

        Args:
            process: Interactive session from open_shell()
            expected: Text to wait for
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            All output read so far, including `expected`

        Raises:
            StreamError: The session wrote to its error stream
            UnexpectedClose: Output ended before `expected` appeared
            TimeoutError: timeout elapsed first
        """
        if timeout is None:
            return await self._read_until(process, expected)
        return await asyncio.wait_for(self._read_until(process, expected), timeout)

    async def _read_until(self, process: asyncssh.SSHClientProcess, expected: str) -> str:
        received = ""
        stdout_read: asyncio.Future[Any] = asyncio.ensure_future(process.stdout.read(READ_CHUNK_SIZE))
        stderr_read: asyncio.Future[Any] | None = asyncio.ensure_future(
            process.stderr.read(READ_CHUNK_SIZE)
        )
        try:
            while True:
                waiting = {stdout_read} if stderr_read is None else {stdout_read, stderr_read}
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if stderr_read is not None and stderr_read in done:
                    data = decode_output(stderr_read.result())
                    if data:
                        raise StreamError(data)
                    # error stream reached EOF; keep reading stdout
                    stderr_read = None

                if stdout_read in done:
                    chunk = decode_output(stdout_read.result())
                    if not chunk:
                        raise UnexpectedClose(expected, received)
                    self.logger.info(chunk)
                    received += chunk
                    if expected in received:
                        return received
                    stdout_read = asyncio.ensure_future(process.stdout.read(READ_CHUNK_SIZE))
        finally:
            for pending in (stdout_read, stderr_read):
                if pending is not None and not pending.done():
                    pending.cancel()

    # -- file transfer ----------------------------------------------------

    async def get_sftp(self, endpoint_name: str | None = None) -> FileTransfer:
        """FileTransfer for a hop or named remote (defaults to the last hop).

        Hop names are tried first, then named remotes. The same object is
        returned until the endpoint's session is lost or replaced.

        Raises:
            EndpointNotFound: Neither a hop nor a named remote has that name
            EndpointNotConnected: The hop exists but has no live session
        """
        target = endpoint_name or self._require_hops()[-1].name

        if self._registry.is_hop(target):
            session = self._registry.session_for(target)
            return self._capabilities.get_or_create(HopKey(target), session)
        if self._registry.has_remote(target):
            session = self._registry.remote_session(target)
            return self._capabilities.get_or_create(RemoteKey(target), session)
        raise EndpointNotFound(target)

    async def get_jump_sftp(self) -> FileTransfer:
        """FileTransfer for the first hop."""
        return await self.get_sftp(self._require_hops()[0].name)

    async def get_remote_sftp(self) -> FileTransfer:
        """FileTransfer for the last hop."""
        return await self.get_sftp(self._require_hops()[-1].name)

    async def get_sftp_for(self, remote_name: str) -> FileTransfer:
        """FileTransfer for a named remote only.

        Raises:
            RemoteNotConnected: No remote registered under that name
        """
        session = self._registry.remote_session(remote_name)
        return self._capabilities.get_or_create(RemoteKey(remote_name), session)
