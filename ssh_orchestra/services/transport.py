"""Transport sessions: one asyncssh connection per hop or named remote.

A session is opened either directly or tunneled through a parent session's
connection. Once READY it reports loss of the underlying connection exactly
once to the handler registered with arm(): an exception for transport
errors, None for a clean close. Losses before READY, after disarm(), or
after an explicit close() are not reported.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from typing import Any

import asyncssh

from ssh_orchestra.errors import TransportError
from ssh_orchestra.models import CommandResult, ResolvedEndpoint, SessionState

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (asyncssh.Error, OSError, asyncio.TimeoutError)

LossHandler = Callable[["TransportSession", Exception | None], None]


def decode_output(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _client_keys(private_key: str | bytes) -> list[Any]:
    """Turn a configured private key into an asyncssh client_keys list.

    PEM/OpenSSH key text is imported in memory; anything else is a path.
    """
    if isinstance(private_key, bytes) or "-----BEGIN" in private_key:
        return [asyncssh.import_private_key(private_key)]
    return [os.path.expanduser(private_key)]


class _SessionClient(asyncssh.SSHClient):
    """asyncssh client callbacks routed back to the owning session."""

    def __init__(self, session: "TransportSession") -> None:
        self._session = session

    def connection_lost(self, exc: Exception | None) -> None:
        self._session._connection_lost(exc)


class TransportSession:
    """One live SSH connection plus its lifecycle state."""

    def __init__(self, endpoint: ResolvedEndpoint) -> None:
        self.endpoint = endpoint
        self.connection: asyncssh.SSHClientConnection | None = None
        self.state = SessionState.CONNECTING
        self._on_lost: LossHandler | None = None

    def __repr__(self) -> str:
        return f"TransportSession({self.name!r}, {self.endpoint.address}, {self.state.value})"

    @property
    def name(self) -> str:
        return self.endpoint.name

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    @classmethod
    async def open(
        cls,
        endpoint: ResolvedEndpoint,
        tunnel: "TransportSession | None" = None,
        known_hosts: str | None = None,
        strict_host_key_checking: bool = True,
    ) -> "TransportSession":
        """Open a session, directly or forwarded through `tunnel`.

        Args:
            endpoint: Resolved connection descriptor
            tunnel: Parent session to forward the connection through
            known_hosts: known_hosts path, or None to skip verification
            strict_host_key_checking: Fail instead of retrying unverified

        Returns:
            READY session

        Raises:
            TransportError: If the connection cannot be established
        """
        session = cls(endpoint)

        try:
            options = session._connect_options(tunnel, known_hosts)
        except asyncssh.KeyImportError as e:
            session.state = SessionState.CLOSED
            raise TransportError(endpoint.name, e) from e

        if tunnel is not None:
            logger.info(
                "Forwarding SSH connection to %s (%s) through %s",
                endpoint.name,
                endpoint.address,
                tunnel.name,
            )
        else:
            logger.info(
                "Opening SSH connection to %s (%s@%s)",
                endpoint.name,
                endpoint.username or "<default>",
                endpoint.address,
            )

        try:
            try:
                conn = await asyncssh.connect(endpoint.host, port=endpoint.port, **options)
            except asyncssh.HostKeyNotVerifiable as e:
                if strict_host_key_checking or known_hosts is None:
                    logger.error(
                        "Host key verification failed for %s: %s. "
                        "Add the host key to %s or set "
                        "ORCHESTRA_STRICT_HOST_KEY_CHECKING=false",
                        endpoint.name,
                        e,
                        known_hosts,
                    )
                    raise
                logger.warning(
                    "Host key not verified for %s (strict mode disabled): %s",
                    endpoint.name,
                    e,
                )
                options["known_hosts"] = None
                conn = await asyncssh.connect(endpoint.host, port=endpoint.port, **options)
        except TRANSPORT_ERRORS as e:
            session.state = SessionState.CLOSED
            raise TransportError(endpoint.name, e) from e

        session.connection = conn
        session.state = SessionState.READY
        logger.debug("Session %s ready", endpoint.name)
        return session

    def _connect_options(
        self, tunnel: "TransportSession | None", known_hosts: str | None
    ) -> dict[str, Any]:
        endpoint = self.endpoint
        options: dict[str, Any] = {
            "known_hosts": known_hosts,
            "connect_timeout": endpoint.connect_timeout,
            "client_factory": lambda: _SessionClient(self),
        }
        # Empty username lets asyncssh fall back to the local user
        if endpoint.username:
            options["username"] = endpoint.username
        if endpoint.password is not None:
            options["password"] = endpoint.password
        if endpoint.private_key:
            options["client_keys"] = _client_keys(endpoint.private_key)
        if tunnel is not None:
            options["tunnel"] = tunnel._require_connection()
        return options

    def arm(self, handler: LossHandler) -> None:
        """Report loss of this session to `handler` from now on."""
        self._on_lost = handler

    def disarm(self) -> None:
        """Stop reporting loss of this session."""
        self._on_lost = None

    def _connection_lost(self, exc: Exception | None) -> None:
        if self.state is not SessionState.READY:
            return
        self.state = SessionState.CLOSED
        handler, self._on_lost = self._on_lost, None
        if exc is not None:
            logger.debug("Session %s lost: %s", self.name, exc)
        else:
            logger.debug("Session %s closed by peer", self.name)
        if handler is not None:
            handler(self, exc)

    def _require_connection(self) -> asyncssh.SSHClientConnection:
        if self.connection is None or self.state is not SessionState.READY:
            raise TransportError(self.name, ConnectionError(f"session is {self.state.value}"))
        return self.connection

    async def run(self, command: str) -> CommandResult:
        """Run a command and collect its output.

        Raises:
            TransportError: If the channel cannot be opened or is lost
        """
        conn = self._require_connection()
        try:
            result = await conn.run(command, check=False)
        except TRANSPORT_ERRORS as e:
            raise TransportError(self.name, e) from e

        return CommandResult(
            output=decode_output(result.stdout),
            error=decode_output(result.stderr),
            returncode=result.returncode,
        )

    async def create_process(self, term_type: str = "xterm") -> asyncssh.SSHClientProcess:
        """Open an interactive shell with a pseudo-terminal."""
        conn = self._require_connection()
        try:
            return await conn.create_process(term_type=term_type)
        except TRANSPORT_ERRORS as e:
            raise TransportError(self.name, e) from e

    async def start_sftp_client(self) -> asyncssh.SFTPClient:
        """Start an SFTP subsystem on this connection."""
        conn = self._require_connection()
        try:
            return await conn.start_sftp_client()
        except TRANSPORT_ERRORS as e:
            raise TransportError(self.name, e) from e

    def close(self) -> None:
        """Close the connection without reporting a loss."""
        self._on_lost = None
        if self.state is SessionState.CLOSED and self.connection is None:
            return
        self.state = SessionState.CLOSED
        if self.connection is not None:
            self.connection.close()
