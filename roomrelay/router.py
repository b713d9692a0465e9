"""Routing of signaling events between connections in a room.

The router owns no connections. It reads and updates a
[`RoomRegistry`][roomrelay.registry.RoomRegistry] and hands outgoing events
to a [`Transport`][roomrelay.transport.Transport].

Every handler is fail-silent: requests without a usable room identifier or
without signal data are dropped, and delivery to connections that are gone
is the transport's problem.
"""
from __future__ import annotations

import logging
from typing import Any

from roomrelay.messages import PeerJoined
from roomrelay.messages import PeerLeft
from roomrelay.messages import RoomInfo
from roomrelay.messages import ServerEvent
from roomrelay.messages import Signal
from roomrelay.registry import RoomRegistry
from roomrelay.transport import Transport

logger = logging.getLogger(__name__)


def _is_identifier(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


class SignalingRouter:
    """Dispatches join, signal, leave, and disconnect events.

    Args:
        registry: Registry of room membership.
        transport: Transport used to deliver events to connections.
    """

    def __init__(self, registry: RoomRegistry, transport: Transport) -> None:
        self._registry = registry
        self._transport = transport

    @property
    def registry(self) -> RoomRegistry:
        """Registry of room membership."""
        return self._registry

    @property
    def transport(self) -> Transport:
        """Transport events are delivered with."""
        return self._transport

    def _send(self, conn_id: str, message: ServerEvent) -> None:
        self._transport.send(
            conn_id,
            message.event.value,
            message.to_payload(),
        )

    def _broadcast(
        self,
        room_id: str,
        exclude: str | None,
        message: ServerEvent,
    ) -> None:
        self._transport.broadcast(
            room_id,
            exclude,
            message.event.value,
            message.to_payload(),
        )

    def handle_join(self, conn_id: str, room_id: Any) -> None:
        """Add a connection to a room.

        The joining connection is sent a `room-info` event listing the
        members already present, and those members are sent a
        `peer-joined` event naming the new connection.
        """
        if not _is_identifier(room_id):
            logger.debug(f'Ignoring join from {conn_id} without a room')
            return

        peers = self._registry.join(room_id, conn_id)
        logger.info(f'Connection {conn_id} joined room {room_id}')

        self._send(conn_id, RoomInfo(peers=sorted(peers)))
        self._broadcast(room_id, conn_id, PeerJoined(socket_id=conn_id))

    def handle_signal(
        self,
        from_id: str,
        room_id: Any,
        target_id: Any,
        data: Any,
    ) -> None:
        """Relay an opaque signal payload.

        If `target_id` is given, the payload is delivered only to that
        connection. Membership of the target in the room is not checked
        because peers learn each other's identifiers from `room-info` and
        `peer-joined` events. Otherwise the payload is delivered to every
        member of the room except the sender.
        """
        if not _is_identifier(room_id) or not data:
            logger.debug(f'Ignoring malformed signal from {from_id}')
            return

        message = Signal(source=from_id, data=data)
        if target_id:
            if not isinstance(target_id, str):
                logger.debug(
                    f'Ignoring signal from {from_id} with invalid target '
                    f'{target_id!r}',
                )
                return
            logger.debug(f'Relaying signal from {from_id} to {target_id}')
            self._send(target_id, message)
        else:
            logger.debug(f'Relaying signal from {from_id} to room {room_id}')
            self._broadcast(room_id, from_id, message)

    def handle_leave(self, conn_id: str, room_id: Any) -> None:
        """Remove a connection from a room.

        Remaining members are sent a `peer-left` event only if the connection
        was actually in the room.
        """
        if not _is_identifier(room_id):
            logger.debug(f'Ignoring leave from {conn_id} without a room')
            return

        if not self._registry.leave(room_id, conn_id):
            logger.debug(
                f'Ignoring leave from {conn_id} for room {room_id} it is '
                'not a member of',
            )
            return

        logger.info(f'Connection {conn_id} left room {room_id}')
        if room_id in self._registry:
            self._broadcast(room_id, conn_id, PeerLeft(socket_id=conn_id))

    def handle_disconnect(self, conn_id: str) -> None:
        """Remove a closed connection from every room it was in.

        Each room with members remaining is sent one `peer-left` event.
        Rooms left empty have already been deleted by the registry.
        """
        for room_id, remaining in self._registry.disconnect_all(conn_id):
            logger.info(
                f'Connection {conn_id} removed from room {room_id} on '
                f'disconnect ({remaining} remaining)',
            )
            if remaining > 0:
                self._broadcast(room_id, conn_id, PeerLeft(socket_id=conn_id))
