"""Protocol interfaces for dependency inversion.

Defines the collaborator contracts the orchestrator depends on, so callers
can plug in their own implementations and tests can pass simple fakes.

Usage Example:

    from ssh_orchestra.protocols import OrchestraLogger

    class SlackLogger:
        def info(self, message: str) -> None: ...
        def error(self, message: str) -> None: ...
        def warning(self, message: str) -> None: ...
        def success(self, message: str) -> None: ...
        def task(self, message: str) -> None: ...

    orchestrator = ChainOrchestrator(ChainConfig(hops=hops, logger=SlackLogger()))
"""

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class OrchestraLogger(Protocol):
    """Five-level logging sink used for user-facing chain events."""

    def info(self, message: str) -> None:
        """Log an informational message."""
        ...

    def error(self, message: str) -> None:
        """Log an error message."""
        ...

    def warning(self, message: str) -> None:
        """Log a warning message."""
        ...

    def success(self, message: str) -> None:
        """Log a success message."""
        ...

    def task(self, message: str) -> None:
        """Log a task/action message."""
        ...


@runtime_checkable
class FileOperations(Protocol):
    """Protocol for file transfer operations bound to one live session.

    Boolean operations report failure by returning False rather than
    raising; append_text and list raise on failure.
    """

    async def upload(self, local_path: str, remote_path: str) -> bool:
        """Upload a local file, creating the remote parent directory."""
        ...

    async def download(self, remote_path: str, local_path: str) -> bool:
        """Download a remote file to the local filesystem."""
        ...

    async def exists(self, remote_path: str) -> bool:
        """Check whether a remote file or directory exists."""
        ...

    async def mkdir(self, remote_path: str) -> bool:
        """Create a remote directory."""
        ...

    async def append_text(self, remote_path: str, text: str) -> None:
        """Append text to a remote file."""
        ...

    async def list(self, remote_path: str) -> Sequence[Any]:
        """List entries of a remote directory."""
        ...

    async def ensure_directory(self, remote_path: str) -> None:
        """Create a remote directory if it does not exist yet."""
        ...


__all__ = [
    "FileOperations",
    "OrchestraLogger",
]
