"""SSH Orchestra: chained SSH tunnels over asyncssh.

Usage:

    from ssh_orchestra import ChainConfig, ChainOrchestrator

    config = ChainConfig(
        hops=[
            {"name": "bastion", "host": "bastion.example.com", "username": "ops"},
            {"name": "db", "host": "10.0.0.5", "username": "postgres"},
        ],
    )
    async with ChainOrchestrator(config) as chain:
        print(await chain.exec("db", "uptime"))
"""

from ssh_orchestra.config import HostKeyVerifier, Settings
from ssh_orchestra.errors import (
    ConfigurationError,
    EndpointNotConnected,
    EndpointNotFound,
    OrchestraError,
    RemoteNotConnected,
    SourceHopNotConnected,
    SourceHopNotFound,
    StreamError,
    TransportError,
    UnexpectedClose,
)
from ssh_orchestra.models import (
    ChainConfig,
    ChainDefaults,
    ChainState,
    CommandResult,
    HopDescriptor,
    ResolvedEndpoint,
    SessionState,
    TwoHopConfig,
)
from ssh_orchestra.protocols import FileOperations, OrchestraLogger
from ssh_orchestra.services import ChainOrchestrator, FileTransfer
from ssh_orchestra.utils import (
    ConsoleLogger,
    KubectlCurlBuilder,
    NoOpLogger,
    StdlibLogger,
    configure_logging,
    setup_ssh_key,
)

__version__ = "0.1.0"

__all__ = [
    "ChainConfig",
    "ChainDefaults",
    "ChainOrchestrator",
    "ChainState",
    "CommandResult",
    "ConfigurationError",
    "ConsoleLogger",
    "EndpointNotConnected",
    "EndpointNotFound",
    "FileOperations",
    "FileTransfer",
    "HopDescriptor",
    "HostKeyVerifier",
    "KubectlCurlBuilder",
    "NoOpLogger",
    "OrchestraError",
    "OrchestraLogger",
    "RemoteNotConnected",
    "ResolvedEndpoint",
    "SessionState",
    "Settings",
    "SourceHopNotConnected",
    "SourceHopNotFound",
    "StdlibLogger",
    "StreamError",
    "TransportError",
    "TwoHopConfig",
    "UnexpectedClose",
    "configure_logging",
    "setup_ssh_key",
]
