"""Credential resolution with layered defaults.

Priority: hop field > chain defaults > built-in fallback.
"""

from ssh_orchestra.models.hop import (
    DEFAULT_PORT,
    DEFAULT_READY_TIMEOUT_MS,
    DEFAULT_USERNAME,
    ChainDefaults,
    HopDescriptor,
    ResolvedEndpoint,
)


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


def resolve_endpoint(hop: HopDescriptor, defaults: ChainDefaults | None = None) -> ResolvedEndpoint:
    """Merge a hop with chain defaults into a fully resolved endpoint.

    Only None counts as missing, so an explicit empty password on a hop
    still overrides a default password.

    Args:
        hop: Hop or named-remote descriptor
        defaults: Chain-wide defaults, if any

    Returns:
        ResolvedEndpoint with every optional field filled
    """
    defaults = defaults or ChainDefaults()

    return ResolvedEndpoint(
        name=hop.name,
        host=hop.host,
        port=int(_first_set(hop.port, defaults.port, DEFAULT_PORT)),
        username=_first_set(hop.username, defaults.username, DEFAULT_USERNAME),
        password=_first_set(hop.password, defaults.password),
        private_key=_first_set(hop.private_key, defaults.private_key),
        ready_timeout_ms=int(
            _first_set(hop.ready_timeout_ms, defaults.ready_timeout_ms, DEFAULT_READY_TIMEOUT_MS)
        ),
    )
