"""Lifecycle states for the chain and for individual sessions."""

from enum import Enum


class ChainState(Enum):
    """Connection state of a whole tunnel chain."""

    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PARTIALLY_CONNECTED = "partially_connected"
    DISCONNECTED = "disconnected"


class SessionState(Enum):
    """Connection state of one transport session."""

    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"
