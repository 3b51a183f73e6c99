"""Exception taxonomy for SSH Orchestra.

Addressing errors (not found / not connected) are raised to the immediate
caller of the offending operation. Transport failures are wrapped in
TransportError so callers see the endpoint name alongside the asyncssh error.
"""


class OrchestraError(Exception):
    """Base class for all SSH Orchestra errors."""


class ConfigurationError(OrchestraError):
    """Chain configuration is missing or malformed."""


class EndpointNotFound(OrchestraError):
    """No hop with the given name is configured."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        super().__init__(message or f"Hop '{name}' not found")


class EndpointNotConnected(OrchestraError):
    """Hop is configured but has no live session."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        super().__init__(message or f"Tunnel for '{name}' not established")


class SourceHopNotFound(EndpointNotFound):
    """Source hop for a named remote is not configured."""

    def __init__(self, name: str):
        super().__init__(name, f"Source hop '{name}' not found")


class SourceHopNotConnected(EndpointNotConnected):
    """Source hop for a named remote has no live session."""

    def __init__(self, name: str):
        super().__init__(name, f"Source hop '{name}' not connected")


class RemoteNotConnected(OrchestraError):
    """No named remote is registered under the given name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Remote '{name}' not connected")


class TransportError(OrchestraError):
    """The SSH transport failed while talking to an endpoint."""

    def __init__(self, endpoint_name: str, original_error: BaseException):
        """Initialize transport error.

        Args:
            endpoint_name: Hop or remote name the failure relates to
            original_error: Exception raised by asyncssh or the socket layer
        """
        self.endpoint_name = endpoint_name
        self.original_error = original_error
        super().__init__(f"Transport failure on {endpoint_name}: {original_error}")


class StreamError(OrchestraError):
    """Interactive session wrote to its error stream while being watched."""

    def __init__(self, data: str):
        self.data = data
        super().__init__(f"STDERR: {data}")


class UnexpectedClose(OrchestraError):
    """Interactive session closed before the awaited output appeared."""

    def __init__(self, expected: str, received: str = ""):
        self.expected = expected
        self.received = received
        super().__init__(f"Unexpected stream close while waiting for {expected!r}")
