"""Client interface to a signaling relay server."""
from __future__ import annotations

import asyncio
import logging
import ssl
import sys
from types import TracebackType
from typing import Any

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect

from roomrelay.exceptions import RelayHandshakeError
from roomrelay.exceptions import RelayNotConnectedError
from roomrelay.messages import ClientEvent
from roomrelay.messages import Connected
from roomrelay.messages import decode_server_event
from roomrelay.messages import encode_event
from roomrelay.messages import JoinRequest
from roomrelay.messages import LeaveRequest
from roomrelay.messages import MessageDecodeError
from roomrelay.messages import ServerEvent
from roomrelay.messages import SignalRequest

logger = logging.getLogger(__name__)


class SignalingClient:
    """Client interface to a signaling relay server.

    Tip:
        This class can be used as an async context manager!
        ```python
        from roomrelay.client import SignalingClient

        async with SignalingClient('ws://localhost:3000') as client:
            await client.join('my-room')
            room_info = await client.recv()
        ```

    Args:
        address: Address of the relay server. Should start with `ws://` or
            `wss://`.
        ssl_context: Custom SSL context to pass to
            [`connect()`][websockets.asyncio.client.connect]. A TLS context
            is created with
            [`ssl.create_default_context()`][ssl.create_default_context]
            when connecting to a `wss://` URI and `ssl_context` is not
            provided.
        timeout: Time to wait in seconds on opening the connection and on
            the server greeting.
        verify_certificate: Verify the relay server's SSL certificate. Only
            used if `ssl_context` is `None` and connecting to a `wss://` URI.

    Raises:
        ValueError: If address does not start with `ws://` or `wss://`.
    """

    def __init__(
        self,
        address: str,
        *,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float = 10,
        verify_certificate: bool = True,
    ) -> None:
        if not (address.startswith('ws://') or address.startswith('wss://')):
            raise ValueError(
                'Relay server address must start with ws:// or wss://. '
                f'Got {address}.',
            )

        self._address = address
        self._timeout = timeout

        if self._address.startswith('wss://') and ssl_context is None:
            ssl_context = ssl.create_default_context()
            if not verify_certificate:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

        self._ssl_context = ssl_context
        self._socket_id: str | None = None
        self._websocket: ClientConnection | None = None

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_traceback: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def address(self) -> str:
        """Address of the relay server."""
        return self._address

    @property
    def socket_id(self) -> str:
        """Identifier the relay server assigned to this connection.

        Raises:
            RelayNotConnectedError: if the client has not connected yet.
        """
        if self._socket_id is None:
            raise RelayNotConnectedError(
                'Client has not connected to the relay server.',
            )
        return self._socket_id

    @property
    def websocket(self) -> ClientConnection:
        """Websocket connection to the relay server.

        Raises:
            RelayNotConnectedError: if the client has not connected yet.
        """
        if self._websocket is None:
            raise RelayNotConnectedError(
                'Client has not connected to the relay server.',
            )
        return self._websocket

    async def connect(self) -> None:
        """Open the connection and wait for the server greeting.

        Raises:
            asyncio.TimeoutError: If the server did not greet the client
                within the timeout.
            websockets.exceptions.ConnectionClosed: If the websocket connection
                was closed during the handshake.
            RelayHandshakeError: If the first message from the server is not
                a `connected` event.
        """
        websocket = await connect(
            self._address,
            open_timeout=self._timeout,
            ssl=self._ssl_context,
        )

        try:
            message_str = await asyncio.wait_for(
                websocket.recv(),
                self._timeout,
            )
            if not isinstance(message_str, str):
                raise RelayHandshakeError(
                    'Received non-string type on websocket.',
                )
            greeting = decode_server_event(message_str)
        except MessageDecodeError as e:
            await websocket.close()
            raise RelayHandshakeError(
                'Unable to decode greeting from relay server.',
            ) from e
        except BaseException:
            await websocket.close()
            raise

        if not isinstance(greeting, Connected):
            await websocket.close()
            raise RelayHandshakeError(
                'Relay server replied with unexpected event type: '
                f'{type(greeting).__name__}.',
            )

        self._websocket = websocket
        self._socket_id = greeting.socket_id
        logger.info(
            f'Established connection to relay server at {self._address} '
            f'with socket id {self._socket_id}',
        )

    async def close(self) -> None:
        """Close the connection to the relay server."""
        if self._websocket is not None:
            await self._websocket.close()

    async def send(self, event: ClientEvent) -> None:
        """Send an event to the relay server.

        Raises:
            RelayNotConnectedError: if the client has not connected yet.
        """
        await self.websocket.send(encode_event(event))

    async def recv(self) -> ServerEvent:
        """Receive the next event from the relay server.

        Raises:
            RelayNotConnectedError: if the client has not connected yet.
            MessageDecodeError: If the message received cannot be decoded.
        """
        message_str = await self.websocket.recv()
        if not isinstance(message_str, str):
            raise MessageDecodeError('Received non-string from websocket.')
        return decode_server_event(message_str)

    async def join(self, room_id: str) -> None:
        """Join (and create if needed) a room."""
        await self.send(JoinRequest(room_id=room_id))

    async def leave(self, room_id: str) -> None:
        """Leave a room."""
        await self.send(LeaveRequest(room_id=room_id))

    async def signal(
        self,
        room_id: str,
        data: Any,
        target_id: str | None = None,
    ) -> None:
        """Send an opaque payload to peers in a room.

        Args:
            room_id: Room the client is in.
            data: JSON compatible payload, typically a session description or
                ICE candidate.
            target_id: Socket id of the peer to deliver to. If `None`, every
                other member of the room receives the payload.
        """
        await self.send(
            SignalRequest(room_id=room_id, data=data, target_id=target_id),
        )
