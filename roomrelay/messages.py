"""Event types exchanged between signaling clients and the relay server.

Every websocket text frame carries one JSON encoded envelope of the form
`#!json {"event": "<name>", "data": <payload>}`. The payload shape depends on
the event name and on the direction of the message, e.g., a `signal` sent by
a client names the room and target while a `signal` delivered by the server
names the sending connection.
"""
from __future__ import annotations

import abc
import dataclasses
import enum
import json
import sys
from typing import Any
from typing import ClassVar
from typing import Mapping
from typing import TypeVar

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

EventT = TypeVar('EventT', bound='Event')


class EventType(enum.Enum):
    """Names of events supported on the wire."""

    connected = 'connected'
    """Server greeting carrying the identifier of the new connection."""
    join = 'join'
    """Client request to join (and create if needed) a room."""
    leave = 'leave'
    """Client request to leave a room."""
    peer_joined = 'peer-joined'
    """Server notice that a connection joined the room."""
    peer_left = 'peer-left'
    """Server notice that a connection left the room."""
    room_info = 'room-info'
    """Server reply to a join listing connections already in the room."""
    signal = 'signal'
    """Opaque handshake payload relayed between peers."""


class MessageError(Exception):
    """Base exception type for signaling messages."""

    pass


class MessageDecodeError(MessageError):
    """Exception raised when a message cannot be decoded."""

    pass


class MessageEncodeError(MessageError):
    """Exception raised when a message cannot be encoded."""

    pass


class UnknownEventError(MessageDecodeError):
    """Exception raised when a well-formed envelope names an unknown event."""

    pass


@dataclasses.dataclass
class Event(abc.ABC):
    """Base event."""

    event: ClassVar[EventType]

    @abc.abstractmethod
    def to_payload(self) -> Any:
        """Convert the event to the JSON compatible `data` of an envelope."""
        ...

    @classmethod
    @abc.abstractmethod
    def from_payload(cls, payload: Any) -> Self:
        """Create the event from the `data` of a decoded envelope."""
        ...


@dataclasses.dataclass
class ClientEvent(Event):
    """Base event sent by clients to the relay server.

    Client payloads are kept as received. Validating room identifiers and
    signal data is left to the router which drops malformed requests.
    """

    pass


@dataclasses.dataclass
class ServerEvent(Event):
    """Base event sent by the relay server to clients."""

    pass


@dataclasses.dataclass
class JoinRequest(ClientEvent):
    """Join a room.

    Attributes:
        room_id: Name of the room to join.
    """

    event: ClassVar[EventType] = EventType.join

    room_id: Any

    def to_payload(self) -> Any:
        return self.room_id

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        return cls(room_id=payload)


@dataclasses.dataclass
class LeaveRequest(ClientEvent):
    """Leave a room.

    Attributes:
        room_id: Name of the room to leave.
    """

    event: ClassVar[EventType] = EventType.leave

    room_id: Any

    def to_payload(self) -> Any:
        return self.room_id

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        return cls(room_id=payload)


@dataclasses.dataclass
class SignalRequest(ClientEvent):
    """Relay an opaque payload to peers in a room.

    Attributes:
        room_id: Name of the room the sender is in.
        data: Opaque payload (e.g., a session description or an ICE
            candidate) which is forwarded without interpretation.
        target_id: Connection to deliver the payload to. If `None`, the
            payload is delivered to every other member of the room.
    """

    event: ClassVar[EventType] = EventType.signal

    room_id: Any
    data: Any = None
    target_id: Any = None

    def to_payload(self) -> Any:
        payload = {'roomId': self.room_id, 'data': self.data}
        if self.target_id is not None:
            payload['targetId'] = self.target_id
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        if not isinstance(payload, dict):
            return cls(room_id=None)
        return cls(
            room_id=payload.get('roomId'),
            data=payload.get('data'),
            target_id=payload.get('targetId'),
        )


def _require_field(payload: Any, key: str, kind: type) -> Any:
    if not isinstance(payload, dict) or not isinstance(payload.get(key), kind):
        raise MessageDecodeError(
            f'Expected payload with a {kind.__name__} "{key}" field. '
            f'Got {payload!r}.',
        )
    return payload[key]


@dataclasses.dataclass
class Connected(ServerEvent):
    """Greeting sent to a connection once the websocket is open.

    Attributes:
        socket_id: Identifier the relay server assigned to the connection.
    """

    event: ClassVar[EventType] = EventType.connected

    socket_id: str

    def to_payload(self) -> Any:
        return {'socketId': self.socket_id}

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        return cls(socket_id=_require_field(payload, 'socketId', str))


@dataclasses.dataclass
class RoomInfo(ServerEvent):
    """Reply to a join request.

    Attributes:
        peers: Connections that were in the room before the join.
    """

    event: ClassVar[EventType] = EventType.room_info

    peers: list[str] = dataclasses.field(default_factory=list)

    def to_payload(self) -> Any:
        return {'peers': list(self.peers)}

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        return cls(peers=list(_require_field(payload, 'peers', list)))


@dataclasses.dataclass
class PeerJoined(ServerEvent):
    """Notice that a connection joined a room.

    Attributes:
        socket_id: Connection that joined.
    """

    event: ClassVar[EventType] = EventType.peer_joined

    socket_id: str

    def to_payload(self) -> Any:
        return {'socketId': self.socket_id}

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        return cls(socket_id=_require_field(payload, 'socketId', str))


@dataclasses.dataclass
class PeerLeft(ServerEvent):
    """Notice that a connection left a room.

    Attributes:
        socket_id: Connection that left.
    """

    event: ClassVar[EventType] = EventType.peer_left

    socket_id: str

    def to_payload(self) -> Any:
        return {'socketId': self.socket_id}

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        return cls(socket_id=_require_field(payload, 'socketId', str))


@dataclasses.dataclass
class Signal(ServerEvent):
    """Opaque payload delivered from a peer.

    Attributes:
        source: Connection that sent the payload.
        data: Payload exactly as the sender provided it.
    """

    event: ClassVar[EventType] = EventType.signal

    source: str
    data: Any

    def to_payload(self) -> Any:
        return {'from': self.source, 'data': self.data}

    @classmethod
    def from_payload(cls, payload: Any) -> Self:
        source = _require_field(payload, 'from', str)
        return cls(source=source, data=payload.get('data'))


_CLIENT_EVENTS: dict[EventType, type[ClientEvent]] = {
    EventType.join: JoinRequest,
    EventType.leave: LeaveRequest,
    EventType.signal: SignalRequest,
}

_SERVER_EVENTS: dict[EventType, type[ServerEvent]] = {
    EventType.connected: Connected,
    EventType.peer_joined: PeerJoined,
    EventType.peer_left: PeerLeft,
    EventType.room_info: RoomInfo,
    EventType.signal: Signal,
}


def _decode_envelope(message: str) -> tuple[str, Any]:
    try:
        envelope = json.loads(message)
    except (ValueError, RecursionError) as e:
        # Also covers deep nesting and integers over the digit limit
        raise MessageDecodeError(f'Failed to load string as JSON: {e}') from e

    if not isinstance(envelope, dict):
        raise MessageDecodeError(
            f'Expected a JSON object but got {type(envelope).__name__}.',
        )

    name = envelope.get('event')
    if not isinstance(name, str):
        raise MessageDecodeError('Message does not contain an event name.')

    return name, envelope.get('data')


def _lookup(
    name: str,
    events: Mapping[EventType, type[EventT]],
) -> type[EventT]:
    try:
        return events[EventType(name)]
    except (KeyError, ValueError) as e:
        raise UnknownEventError(f'Unknown event: {name}.') from e


def decode_client_event(message: str) -> ClientEvent:
    """Decode a JSON envelope sent by a client.

    Args:
        message: JSON string to decode.

    Returns:
        Parsed event.

    Raises:
        UnknownEventError: If the envelope names an event clients cannot send.
        MessageDecodeError: If the message is not a valid envelope.
    """
    name, payload = _decode_envelope(message)
    event_type = _lookup(name, _CLIENT_EVENTS)
    return event_type.from_payload(payload)


def decode_server_event(message: str) -> ServerEvent:
    """Decode a JSON envelope sent by the relay server.

    Args:
        message: JSON string to decode.

    Returns:
        Parsed event.

    Raises:
        UnknownEventError: If the envelope names an event servers do not send.
        MessageDecodeError: If the message is not a valid envelope or the
            payload does not have the expected shape.
    """
    name, payload = _decode_envelope(message)
    event_type = _lookup(name, _SERVER_EVENTS)
    return event_type.from_payload(payload)


def encode_envelope(event: str, payload: Any) -> str:
    """Encode an event name and payload as a JSON envelope.

    Raises:
        MessageEncodeError: If the payload cannot be JSON encoded.
    """
    try:
        return json.dumps({'event': event, 'data': payload})
    except (TypeError, ValueError) as e:
        raise MessageEncodeError(
            f'Error encoding payload of {event} event.',
        ) from e


def encode_event(event: Event) -> str:
    """Encode an event as a JSON envelope.

    Args:
        event: Event to JSON encode.

    Raises:
        MessageEncodeError: If the event cannot be JSON encoded.
    """
    if not isinstance(event, Event):
        raise MessageEncodeError(
            f'Message is not an instance of {Event.__name__}. '
            f'Got {type(event).__name__}.',
        )
    return encode_envelope(event.event.value, event.to_payload())
