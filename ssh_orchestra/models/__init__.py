"""Data models for SSH Orchestra."""

from ssh_orchestra.models.chain import ChainConfig, TwoHopConfig
from ssh_orchestra.models.command import CommandResult
from ssh_orchestra.models.hop import ChainDefaults, HopDescriptor, ResolvedEndpoint
from ssh_orchestra.models.state import ChainState, SessionState

__all__ = [
    "ChainConfig",
    "ChainDefaults",
    "ChainState",
    "CommandResult",
    "HopDescriptor",
    "ResolvedEndpoint",
    "SessionState",
    "TwoHopConfig",
]
