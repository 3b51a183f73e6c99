"""Chain configuration models.

ChainConfig is the standard form. TwoHopConfig is the legacy jump/remote
shorthand and converts itself into a two-hop ChainConfig.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Union

from ssh_orchestra.errors import ConfigurationError
from ssh_orchestra.models.hop import ChainDefaults, HopDescriptor

if TYPE_CHECKING:
    from ssh_orchestra.config.host_keys import HostKeyVerifier
    from ssh_orchestra.protocols import OrchestraLogger

BeforeConnectHook = Callable[[], Awaitable[None]]
HopConnectedHook = Callable[[int, HopDescriptor], Awaitable[None]]
BeforeDisconnectHook = Callable[[], Awaitable[None]]
DefaultsSource = Union[ChainDefaults, Callable[[], ChainDefaults], None]

JUMP_HOP_NAME = "jump"
REMOTE_HOP_NAME = "remote"


def coerce_hop(hop: HopDescriptor | Mapping[str, Any], name: str | None = None) -> HopDescriptor:
    """Normalize a hop definition into a validated HopDescriptor.

    Args:
        hop: Descriptor or mapping with at least ``host``
        name: Name to register the hop under, overriding its own

    Raises:
        ConfigurationError: If the definition is malformed or lacks a name or host
    """
    if isinstance(hop, HopDescriptor):
        if name is not None and hop.name != name:
            hop = replace(hop, name=name)
    elif isinstance(hop, Mapping):
        try:
            hop = HopDescriptor.from_dict(hop, name=name)
        except TypeError as e:
            raise ConfigurationError(f"Invalid hop definition {dict(hop)!r}: {e}") from e
    else:
        raise ConfigurationError(f"Invalid hop definition: {hop!r}")

    if not hop.name:
        raise ConfigurationError("Hop name must be a non-empty string")
    if not hop.host:
        raise ConfigurationError(f"Hop '{hop.name}' has no host")
    return hop


@dataclass
class ChainConfig:
    """Configuration for a tunnel chain.

    Hops are connected in list order. Defaults may be a ChainDefaults or a
    zero-argument callable returning one; a callable is re-read on every
    connection attempt so rotated credentials are picked up on reconnect.
    """

    hops: Sequence[HopDescriptor | Mapping[str, Any]] = field(default_factory=list)
    defaults: DefaultsSource = None
    logger: "OrchestraLogger | None" = None
    on_before_connect: BeforeConnectHook | None = None
    on_hop_connected: HopConnectedHook | None = None
    on_before_disconnect: BeforeDisconnectHook | None = None
    host_keys: "HostKeyVerifier | None" = None

    def __post_init__(self) -> None:
        """Normalize hops and reject malformed definitions.

        Raises:
            ConfigurationError: On empty or duplicate names, or empty hosts
        """
        self.hops = [coerce_hop(hop) for hop in self.hops]

        seen: set[str] = set()
        for hop in self.hops:
            if hop.name in seen:
                raise ConfigurationError(f"Duplicate hop name '{hop.name}'")
            seen.add(hop.name)

    def current_defaults(self) -> ChainDefaults:
        """Return the defaults in effect right now."""
        if self.defaults is None:
            return ChainDefaults()
        if callable(self.defaults):
            return self.defaults()
        return self.defaults

    @property
    def hop_names(self) -> list[str]:
        """Names of all hops in chain order."""
        return [hop.name for hop in self.hops]


@dataclass
class TwoHopConfig:
    """Legacy jump server + remote server configuration."""

    jump_server: Mapping[str, Any]
    remote_server: Mapping[str, Any]
    logger: "OrchestraLogger | None" = None
    on_jump_connected: Callable[[], Awaitable[None]] | None = None
    on_remote_connected: Callable[[], Awaitable[None]] | None = None
    defaults: DefaultsSource = None
    host_keys: "HostKeyVerifier | None" = None

    def to_chain_config(self) -> ChainConfig:
        """Convert to the standard two-hop ChainConfig.

        Returns:
            ChainConfig with hops named "jump" and "remote"
        """
        on_jump = self.on_jump_connected
        on_remote = self.on_remote_connected

        async def on_hop_connected(index: int, hop: HopDescriptor) -> None:
            if index == 0 and on_jump is not None:
                await on_jump()
            elif index == 1 and on_remote is not None:
                await on_remote()

        return ChainConfig(
            hops=[
                {**self.jump_server, "name": JUMP_HOP_NAME},
                {**self.remote_server, "name": REMOTE_HOP_NAME},
            ],
            defaults=self.defaults,
            logger=self.logger,
            on_hop_connected=on_hop_connected,
            host_keys=self.host_keys,
        )
