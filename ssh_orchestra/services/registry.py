"""Endpoint registry: positional hop sessions plus named remotes.

Hop sessions are index-aligned with the configured hops and always form a
prefix of the chain; len(sessions) is the index of the next hop to connect.
Named remotes live in a separate namespace and are never looked up by hop
name (and vice versa).
"""

import logging
from collections.abc import Sequence

from ssh_orchestra.errors import (
    EndpointNotConnected,
    EndpointNotFound,
    RemoteNotConnected,
    SourceHopNotConnected,
    SourceHopNotFound,
)
from ssh_orchestra.models import HopDescriptor
from ssh_orchestra.services.transport import TransportSession

logger = logging.getLogger(__name__)


class EndpointRegistry:
    """Tracks which hops and named remotes have a live session."""

    def __init__(self, hops: Sequence[HopDescriptor]) -> None:
        self.hops: list[HopDescriptor] = list(hops)
        self._index = {hop.name: i for i, hop in enumerate(self.hops)}
        self._sessions: list[TransportSession] = []
        self._remotes: dict[str, TransportSession] = {}

    @property
    def sessions(self) -> list[TransportSession]:
        """Snapshot of live hop sessions in chain order."""
        return list(self._sessions)

    @property
    def remotes(self) -> dict[str, TransportSession]:
        """Snapshot of named remote sessions."""
        return dict(self._remotes)

    @property
    def next_index(self) -> int:
        return len(self._sessions)

    @property
    def is_fully_connected(self) -> bool:
        return len(self.hops) > 0 and len(self._sessions) == len(self.hops)

    @property
    def first_hop_name(self) -> str | None:
        return self.hops[0].name if self.hops else None

    @property
    def last_hop_name(self) -> str | None:
        return self.hops[-1].name if self.hops else None

    def hop_index(self, name: str) -> int | None:
        """Position of the hop called `name`, or None."""
        return self._index.get(name)

    def is_hop(self, name: str) -> bool:
        return name in self._index

    def session_for(self, name: str) -> TransportSession:
        """Live session of the hop called `name`.

        Raises:
            EndpointNotFound: No hop has that name
            EndpointNotConnected: The hop has no live session
        """
        index = self.hop_index(name)
        if index is None:
            raise EndpointNotFound(name)
        if index >= len(self._sessions):
            raise EndpointNotConnected(name)
        return self._sessions[index]

    def source_session(self, name: str) -> TransportSession:
        """Live session of a hop used as the source of a named remote.

        Raises:
            SourceHopNotFound: No hop has that name
            SourceHopNotConnected: The hop has no live session
        """
        index = self.hop_index(name)
        if index is None:
            raise SourceHopNotFound(name)
        if index >= len(self._sessions):
            raise SourceHopNotConnected(name)
        return self._sessions[index]

    def remote_session(self, name: str) -> TransportSession:
        """Session of the named remote `name`.

        Raises:
            RemoteNotConnected: No remote registered under that name
        """
        session = self._remotes.get(name)
        if session is None:
            raise RemoteNotConnected(name)
        return session

    def has_remote(self, name: str) -> bool:
        return name in self._remotes

    def index_of(self, session: TransportSession) -> int | None:
        """Position of `session` among live hop sessions, by identity."""
        for i, live in enumerate(self._sessions):
            if live is session:
                return i
        return None

    def append(self, session: TransportSession) -> int:
        """Record the session of the next hop; returns its index."""
        if self.is_fully_connected:
            raise RuntimeError("All hops already have a session")
        self._sessions.append(session)
        return len(self._sessions) - 1

    def truncate(self, length: int) -> list[TransportSession]:
        """Keep the first `length` hop sessions; return the dropped ones."""
        dropped = self._sessions[length:]
        del self._sessions[length:]
        if dropped:
            logger.debug(
                "Dropped %d session(s) from position %d (%d remaining)",
                len(dropped),
                length,
                len(self._sessions),
            )
        return dropped

    def clear_sessions(self) -> list[TransportSession]:
        return self.truncate(0)

    def set_remote(self, name: str, session: TransportSession) -> TransportSession | None:
        """Register a named remote; returns the session it replaced, if any."""
        previous = self._remotes.get(name)
        self._remotes[name] = session
        return previous

    def pop_remote(self, name: str, session: TransportSession | None = None) -> TransportSession | None:
        """Remove a named remote.

        When `session` is given the entry is only removed if it is still that
        exact session, so a stale loss report cannot evict a replacement.
        """
        current = self._remotes.get(name)
        if current is None or (session is not None and current is not session):
            return None
        return self._remotes.pop(name)

    def clear_remotes(self) -> dict[str, TransportSession]:
        remotes, self._remotes = self._remotes, {}
        return remotes
