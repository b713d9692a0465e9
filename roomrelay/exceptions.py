"""Exception types raised by signaling clients and servers."""
from __future__ import annotations


class RelayClientError(Exception):
    """Base exception type for exceptions raised by signaling clients."""

    pass


class RelayNotConnectedError(RelayClientError):
    """Exception raised if a client is not connected to a relay server."""

    pass


class RelayHandshakeError(RelayClientError):
    """Relay server did not greet a new connection as expected."""

    pass
