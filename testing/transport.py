"""In-memory transport that records what the router delivers."""
from __future__ import annotations

import dataclasses
from typing import Any

from roomrelay.registry import RoomRegistry


@dataclasses.dataclass
class Delivery:
    """One event delivered to one connection."""

    conn_id: str
    event: str
    payload: Any


class RecordingTransport:
    """Transport which records deliveries instead of writing to sockets.

    Broadcasts are expanded to one
    [`Delivery`][testing.transport.Delivery] per recipient using the same
    registry the router mutates, so tests can assert on exactly who
    received what.

    Args:
        registry: Registry used to resolve room members on broadcast.
        connected: Optional set of reachable connections. Deliveries to
            other connections are dropped. If `None`, every connection is
            reachable.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        connected: set[str] | None = None,
    ) -> None:
        self.registry = registry
        self.connected = connected
        self.deliveries: list[Delivery] = []

    def send(self, conn_id: str, event: str, payload: Any) -> None:
        if self.connected is None or conn_id in self.connected:
            self.deliveries.append(Delivery(conn_id, event, payload))

    def broadcast(
        self,
        room_id: str,
        exclude: str | None,
        event: str,
        payload: Any,
    ) -> None:
        for conn_id in sorted(self.registry.members(room_id)):
            if conn_id != exclude:
                self.send(conn_id, event, payload)

    def received(self, conn_id: str) -> list[Delivery]:
        """Get deliveries to a connection in order."""
        return [d for d in self.deliveries if d.conn_id == conn_id]

    def clear(self) -> None:
        self.deliveries.clear()
