"""Services for SSH Orchestra."""

from ssh_orchestra.services.credentials import resolve_endpoint
from ssh_orchestra.services.orchestrator import ChainOrchestrator
from ssh_orchestra.services.registry import EndpointRegistry
from ssh_orchestra.services.sftp import CapabilityCache, FileTransfer, HopKey, RemoteKey
from ssh_orchestra.services.transport import TransportSession

__all__ = [
    "CapabilityCache",
    "ChainOrchestrator",
    "EndpointRegistry",
    "FileTransfer",
    "HopKey",
    "RemoteKey",
    "TransportSession",
    "resolve_endpoint",
]
