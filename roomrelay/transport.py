"""Delivery of relay events to client connections."""
from __future__ import annotations

import logging
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from websockets.asyncio.server import broadcast
from websockets.asyncio.server import ServerConnection

from roomrelay.messages import encode_envelope
from roomrelay.messages import MessageEncodeError
from roomrelay.registry import RoomRegistry

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Fire-and-forget delivery used by the signaling router.

    Implementations must not block and must not raise when a destination
    is unknown or no longer reachable. Such messages are dropped.
    """

    def send(self, conn_id: str, event: str, payload: Any) -> None:
        """Send an event to a single connection."""
        ...

    def broadcast(
        self,
        room_id: str,
        exclude: str | None,
        event: str,
        payload: Any,
    ) -> None:
        """Send an event to every member of a room except `exclude`."""
        ...


class WebSocketTransport:
    """Transport writing JSON envelopes to websocket connections.

    Writes go through [`broadcast()`][websockets.asyncio.server.broadcast]
    which queues the frame on each connection and returns immediately, so a
    slow peer never holds up delivery to others. Connections that are
    closing are skipped and write errors are logged by `websockets`.

    Args:
        registry: Room registry used to resolve the members of a room when
            broadcasting.
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self._registry = registry
        self._connections: dict[str, ServerConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def add_connection(
        self,
        conn_id: str,
        websocket: ServerConnection,
    ) -> None:
        """Make a connection addressable by its identifier."""
        self._connections[conn_id] = websocket

    def get_connection(self, conn_id: str) -> ServerConnection | None:
        """Get the websocket of a connection."""
        return self._connections.get(conn_id, None)

    def remove_connection(self, conn_id: str) -> None:
        """Forget a connection. Unknown identifiers are ignored."""
        self._connections.pop(conn_id, None)

    def send(self, conn_id: str, event: str, payload: Any) -> None:
        """Send an event to a single connection.

        Events to unknown connections are dropped.
        """
        websocket = self._connections.get(conn_id, None)
        if websocket is None:
            logger.debug(
                f'Dropping {event} event for unknown connection {conn_id}',
            )
            return

        message = self._encode(event, payload)
        if message is not None:
            broadcast([websocket], message)

    def broadcast(
        self,
        room_id: str,
        exclude: str | None,
        event: str,
        payload: Any,
    ) -> None:
        """Send an event to the members of a room.

        Args:
            room_id: Room whose members receive the event.
            exclude: Optional member to skip, typically the sender.
            event: Event name.
            payload: JSON compatible event data.
        """
        websockets = []
        for conn_id in self._registry.members(room_id):
            if conn_id == exclude:
                continue
            websocket = self._connections.get(conn_id, None)
            if websocket is not None:
                websockets.append(websocket)

        if len(websockets) == 0:
            return

        message = self._encode(event, payload)
        if message is not None:
            broadcast(websockets, message)

    def _encode(self, event: str, payload: Any) -> str | None:
        try:
            return encode_envelope(event, payload)
        except MessageEncodeError as e:
            logger.error(f'Failed to encode message: {e}')
            return None
