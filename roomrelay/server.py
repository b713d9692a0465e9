"""Signaling server implementation for facilitating WebRTC peer connections.

The signaling server is a lightweight server accessible by all peers (e.g.,
has a public IP address) that lets peers find each other in a named room and
relays the session descriptions and ICE candidates they exchange until a
direct connection is established. Media never passes through the server.
"""
from __future__ import annotations

import logging
import uuid

import websockets.exceptions
from websockets.asyncio.server import ServerConnection

from roomrelay.messages import ClientEvent
from roomrelay.messages import Connected
from roomrelay.messages import decode_client_event
from roomrelay.messages import JoinRequest
from roomrelay.messages import LeaveRequest
from roomrelay.messages import MessageDecodeError
from roomrelay.messages import SignalRequest
from roomrelay.messages import UnknownEventError
from roomrelay.registry import RoomRegistry
from roomrelay.router import SignalingRouter
from roomrelay.transport import WebSocketTransport

logger = logging.getLogger(__name__)


class SignalingServer:
    """WebRTC signaling server.

    Each websocket connection is assigned an identifier which is sent back
    to the client in a `connected` event. Decoded client events are handed
    to a [`SignalingRouter`][roomrelay.router.SignalingRouter] and the
    connection is removed from all of its rooms once the websocket closes.

    The server is built on websockets and designed to be served using
    [`serve()`][roomrelay.run.serve].

    Args:
        max_message_bytes: Optional maximum size of client messages in bytes.
            Clients that send oversized messages will have their connections
            closed.
    """

    def __init__(self, max_message_bytes: int | None = None) -> None:
        self._registry = RoomRegistry()
        self._transport = WebSocketTransport(self._registry)
        self._router = SignalingRouter(self._registry, self._transport)
        self._max_message_bytes = max_message_bytes

    @property
    def registry(self) -> RoomRegistry:
        """Registry of rooms and their members."""
        return self._registry

    @property
    def router(self) -> SignalingRouter:
        """Router that dispatches client events."""
        return self._router

    @property
    def transport(self) -> WebSocketTransport:
        """Transport holding the open client connections."""
        return self._transport

    def connect(self, websocket: ServerConnection) -> str:
        """Register a new websocket connection.

        Args:
            websocket: Newly opened connection.

        Returns:
            Identifier assigned to the connection.
        """
        conn_id = str(uuid.uuid4())
        self._transport.add_connection(conn_id, websocket)
        logger.info(
            f'Client connected: {conn_id} ({websocket.remote_address})',
        )

        greeting = Connected(socket_id=conn_id)
        self._transport.send(
            conn_id,
            greeting.event.value,
            greeting.to_payload(),
        )
        return conn_id

    def disconnect(self, conn_id: str) -> None:
        """Remove a closed connection from its rooms and forget it."""
        self._router.handle_disconnect(conn_id)
        self._transport.remove_connection(conn_id)
        logger.info(f'Client disconnected: {conn_id}')

    def dispatch(self, conn_id: str, event: ClientEvent) -> None:
        """Pass a client event to the matching router handler."""
        if isinstance(event, JoinRequest):
            self._router.handle_join(conn_id, event.room_id)
        elif isinstance(event, SignalRequest):
            self._router.handle_signal(
                conn_id,
                event.room_id,
                event.target_id,
                event.data,
            )
        elif isinstance(event, LeaveRequest):
            self._router.handle_leave(conn_id, event.room_id)
        else:
            raise AssertionError('Unreachable.')

    async def handler(self, websocket: ServerConnection) -> None:
        """Websocket server connection handler.

        The handler will close the connection for the following reasons.

        - A message that is not a JSON event envelope is received
          (code 4000).
        - The client sends a message larger than the allowed size (code 4003).

        Envelopes naming an unknown event are logged and ignored. The
        connection is removed from every room it joined when the handler
        exits, whatever the cause.

        Args:
            websocket: Websocket connection with the client.
        """
        conn_id = self.connect(websocket)
        try:
            await self._serve_connection(conn_id, websocket)
        finally:
            self.disconnect(conn_id)

    async def _serve_connection(
        self,
        conn_id: str,
        websocket: ServerConnection,
    ) -> None:
        while True:
            try:
                message_str = await websocket.recv()
            except websockets.exceptions.ConnectionClosedOK:
                break
            except websockets.exceptions.ConnectionClosedError as e:
                logger.warning(
                    f'Connection {conn_id} closed unexpectedly: {e}',
                )
                break

            message_size = (
                len(message_str.encode())
                if isinstance(message_str, str)
                else len(message_str)
            )
            if (
                self._max_message_bytes is not None
                and message_size > self._max_message_bytes
            ):
                logger.warning(
                    f'Client {conn_id} at {websocket.remote_address} sent '
                    f'message with size {message_size} bytes which '
                    f'exceeds the max configured size of '
                    f'{self._max_message_bytes} bytes. Connection closed '
                    'with error code 4003',
                )
                await websocket.close(
                    4003,
                    reason='Message length exceeds limit.',
                )
                break

            try:
                if isinstance(message_str, bytes):
                    raise MessageDecodeError(
                        'Got message as bytes but expected str.',
                    )
                event = decode_client_event(message_str)
            except UnknownEventError as e:
                logger.warning(f'Ignoring message from {conn_id}: {e}')
                continue
            except MessageDecodeError as e:
                logger.error(
                    'Closing websocket because deserialization error was '
                    f'caught on message received from {conn_id}. {e}',
                )
                await websocket.close(4000, reason='Unknown message type.')
                break

            self.dispatch(conn_id, event)
