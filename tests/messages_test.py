from __future__ import annotations

import json
from typing import Any

import pytest

from roomrelay.messages import ClientEvent
from roomrelay.messages import Connected
from roomrelay.messages import decode_client_event
from roomrelay.messages import decode_server_event
from roomrelay.messages import encode_envelope
from roomrelay.messages import encode_event
from roomrelay.messages import Event
from roomrelay.messages import EventType
from roomrelay.messages import JoinRequest
from roomrelay.messages import LeaveRequest
from roomrelay.messages import MessageDecodeError
from roomrelay.messages import MessageEncodeError
from roomrelay.messages import PeerJoined
from roomrelay.messages import PeerLeft
from roomrelay.messages import RoomInfo
from roomrelay.messages import ServerEvent
from roomrelay.messages import Signal
from roomrelay.messages import SignalRequest
from roomrelay.messages import UnknownEventError


@pytest.mark.parametrize(
    'event',
    (
        JoinRequest('room'),
        LeaveRequest('room'),
        SignalRequest('room', {'type': 'offer', 'sdp': '...'}, 'peer'),
        SignalRequest('room', {'candidate': {'sdpMid': '0'}}),
    ),
)
def test_encode_decode_client_events(event: ClientEvent) -> None:
    assert decode_client_event(encode_event(event)) == event


@pytest.mark.parametrize(
    'event',
    (
        Connected('a'),
        RoomInfo(['a', 'b']),
        RoomInfo(),
        PeerJoined('a'),
        PeerLeft('a'),
        Signal('a', {'type': 'answer', 'sdp': '...'}),
    ),
)
def test_encode_decode_server_events(event: ServerEvent) -> None:
    assert decode_server_event(encode_event(event)) == event


@pytest.mark.parametrize(
    ('event', 'envelope'),
    (
        (JoinRequest('room'), {'event': 'join', 'data': 'room'}),
        (LeaveRequest('room'), {'event': 'leave', 'data': 'room'}),
        (
            SignalRequest('room', {'x': 1}, 'b'),
            {
                'event': 'signal',
                'data': {'roomId': 'room', 'data': {'x': 1}, 'targetId': 'b'},
            },
        ),
        (
            SignalRequest('room', {'x': 1}),
            {'event': 'signal', 'data': {'roomId': 'room', 'data': {'x': 1}}},
        ),
        (Connected('a'), {'event': 'connected', 'data': {'socketId': 'a'}}),
        (RoomInfo(['a']), {'event': 'room-info', 'data': {'peers': ['a']}}),
        (PeerJoined('a'), {'event': 'peer-joined', 'data': {'socketId': 'a'}}),
        (PeerLeft('a'), {'event': 'peer-left', 'data': {'socketId': 'a'}}),
        (
            Signal('a', [1, 'two']),
            {'event': 'signal', 'data': {'from': 'a', 'data': [1, 'two']}},
        ),
    ),
)
def test_wire_format(event: Any, envelope: dict[str, Any]) -> None:
    assert json.loads(encode_event(event)) == envelope


def test_signal_data_is_not_interpreted() -> None:
    data = {
        'type': 'offer',
        'sdp': 'v=0\r\no=- 46117317 2 IN IP4 127.0.0.1\r\n',
        'nested': {'list': [1, 2.5, None, True], 'unicode': 'привет'},
    }
    envelope = encode_envelope(
        'signal',
        {'roomId': 'room', 'targetId': 'b', 'data': data},
    )

    request = decode_client_event(envelope)
    assert isinstance(request, SignalRequest)
    assert request.data == data

    relayed = decode_server_event(encode_event(Signal('a', request.data)))
    assert isinstance(relayed, Signal)
    assert relayed.data == data


@pytest.mark.parametrize(
    ('envelope', 'expected'),
    (
        # Malformed values are kept and left for the router to reject
        ({'event': 'join'}, JoinRequest(None)),
        ({'event': 'join', 'data': ''}, JoinRequest('')),
        ({'event': 'leave', 'data': 42}, LeaveRequest(42)),
        ({'event': 'signal'}, SignalRequest(None)),
        ({'event': 'signal', 'data': 'room'}, SignalRequest(None)),
        (
            {'event': 'signal', 'data': {'roomId': 'room'}},
            SignalRequest('room'),
        ),
    ),
)
def test_decode_lenient_client_payloads(
    envelope: dict[str, Any],
    expected: ClientEvent,
) -> None:
    assert decode_client_event(json.dumps(envelope)) == expected


@pytest.mark.parametrize(
    'message',
    (
        'not json',
        '["join", "room"]',
        '{"data": "room"}',
        '{"event": 1, "data": "room"}',
    ),
)
def test_decode_bad_envelope(message: str) -> None:
    with pytest.raises(MessageDecodeError):
        decode_client_event(message)
    with pytest.raises(MessageDecodeError):
        decode_server_event(message)


def test_decode_unknown_event() -> None:
    with pytest.raises(UnknownEventError, match='Unknown event: ping.'):
        decode_client_event('{"event": "ping"}')

    # Server-only events cannot be sent by clients and vice versa
    with pytest.raises(UnknownEventError):
        decode_client_event(encode_event(PeerJoined('a')))
    with pytest.raises(UnknownEventError):
        decode_server_event(encode_event(JoinRequest('room')))


@pytest.mark.parametrize(
    'envelope',
    (
        {'event': 'connected', 'data': {}},
        {'event': 'room-info', 'data': {'peers': 'a'}},
        {'event': 'peer-joined', 'data': 'a'},
        {'event': 'peer-left', 'data': {'socketId': None}},
        {'event': 'signal', 'data': {'data': {}}},
    ),
)
def test_decode_bad_server_payload(envelope: dict[str, Any]) -> None:
    with pytest.raises(MessageDecodeError):
        decode_server_event(json.dumps(envelope))


def test_event_types() -> None:
    assert EventType('room-info') is EventType.room_info
    assert RoomInfo.event is EventType.room_info
    assert Signal.event is SignalRequest.event


def test_encode_non_event() -> None:
    with pytest.raises(MessageEncodeError, match='Got object'):
        encode_event(object())  # type: ignore[arg-type]


def test_encode_unserializable_payload() -> None:
    with pytest.raises(MessageEncodeError):
        encode_envelope('signal', {'from': 'a', 'data': object()})


@pytest.mark.parametrize(
    'message',
    (
        '{"event": "signal", "data": ' + '[' * 100000 + ']' * 100000 + '}',
        '{"event": "join", "data": ' + '9' * 5000 + '}',
    ),
    ids=('deep-nesting', 'long-integer'),
)
def test_decode_json_refused_by_decoder(message: str) -> None:
    with pytest.raises(MessageDecodeError, match='Failed to load string'):
        decode_client_event(message)


def test_base_events_are_abstract() -> None:
    for event_type in (Event, ClientEvent, ServerEvent):
        with pytest.raises(TypeError):
            event_type()  # type: ignore[abstract]
