"""Hop descriptors and resolved connection endpoints."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

DEFAULT_PORT = 22
DEFAULT_USERNAME = ""
DEFAULT_READY_TIMEOUT_MS = 60_000

# camelCase keys accepted from JSON-style configs
_KEY_ALIASES = {
    "privateKey": "private_key",
    "readyTimeout": "ready_timeout_ms",
    "readyTimeoutMs": "ready_timeout_ms",
}


@dataclass(frozen=True)
class HopDescriptor:
    """One host in the tunnel chain (or a named remote)."""

    name: str
    host: str
    port: int | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    private_key: str | bytes | None = None
    ready_timeout_ms: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: str | None = None) -> "HopDescriptor":
        """Build a descriptor from a mapping.

        Args:
            data: Mapping with hop fields (snake_case or camelCase keys)
            name: Name to use instead of data["name"]

        Returns:
            HopDescriptor with unknown keys ignored
        """
        fields: dict[str, Any] = {}
        for key, value in data.items():
            key = _KEY_ALIASES.get(key, key)
            if key in cls.__dataclass_fields__:
                fields[key] = value
        if name is not None:
            fields["name"] = name
        return cls(**fields)


@dataclass(frozen=True)
class ChainDefaults:
    """Values applied to every hop lacking the corresponding field."""

    port: int | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    private_key: str | bytes | None = None
    ready_timeout_ms: int | None = None


@dataclass(frozen=True)
class ResolvedEndpoint:
    """Connection descriptor with every optional field filled in."""

    name: str
    host: str
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    password: str | None = field(default=None, repr=False)
    private_key: str | bytes | None = None
    ready_timeout_ms: int = DEFAULT_READY_TIMEOUT_MS

    @property
    def connect_timeout(self) -> float:
        """Connect timeout in seconds, as asyncssh expects it."""
        return self.ready_timeout_ms / 1000

    @property
    def address(self) -> str:
        """host:port string for log messages."""
        return f"{self.host}:{self.port}"
