import pytest

from tramway.websockets import (
    InvalidWebSocketFrame,
    InvalidWebSocketPayload,
    MessageTooBig,
    ServerWebSocket,
    WebSocketClosed,
    WebSocketCloseCode,
    WebSocketFrame,
    WebSocketOpcode,
    WebSocketState,
)

from conftest import FakeWriter, decode_all, make_reader


def client_frame(data: bytes, opcode: WebSocketOpcode, *, fin: bool = True) -> bytes:
    return WebSocketFrame.create(data, opcode=opcode, fin=fin).encode(masked=True)


def client_close(code=WebSocketCloseCode.NORMAL, reason='') -> bytes:
    return WebSocketFrame.create_close_frame(code, reason).encode(masked=True)


def make_websocket(data: bytes, writer: FakeWriter, **kwargs) -> ServerWebSocket:
    return ServerWebSocket(make_reader(data), writer, **kwargs)


async def test_receive_text(fake_writer):
    websocket = make_websocket(client_frame(b'ping', WebSocketOpcode.TEXT), fake_writer)
    data = await websocket.receive()

    assert data.opcode is WebSocketOpcode.TEXT
    assert data.text() == 'ping'


async def test_fragmented_message_is_reassembled(fake_writer):
    data = (
        client_frame(b'Hel', WebSocketOpcode.TEXT, fin=False)
        + client_frame(b'lo, ', WebSocketOpcode.CONTINUATION, fin=False)
        + client_frame(b'world', WebSocketOpcode.CONTINUATION)
    )
    websocket = make_websocket(data, fake_writer)

    assert (await websocket.receive()).text() == 'Hello, world'


async def test_ping_between_fragments_is_answered(fake_writer):
    data = (
        client_frame(b'a', WebSocketOpcode.BINARY, fin=False)
        + WebSocketFrame.create_control_frame(b'hb', opcode=WebSocketOpcode.PING).encode(masked=True)
        + client_frame(b'b', WebSocketOpcode.CONTINUATION)
    )
    websocket = make_websocket(data, fake_writer)

    ping = await websocket.receive()
    assert ping.opcode is WebSocketOpcode.PING

    message = await websocket.receive()
    assert message.opcode is WebSocketOpcode.BINARY
    assert message.data == b'ab'

    pong, = await decode_all(fake_writer.data, masked=False)
    assert pong.opcode is WebSocketOpcode.PONG
    assert pong.data == b'hb'


async def test_unexpected_continuation_frame(fake_writer):
    websocket = make_websocket(client_frame(b'x', WebSocketOpcode.CONTINUATION), fake_writer)

    with pytest.raises(InvalidWebSocketFrame):
        await websocket.receive()


async def test_interleaved_message(fake_writer):
    data = client_frame(b'a', WebSocketOpcode.TEXT, fin=False) + client_frame(b'b', WebSocketOpcode.TEXT)
    websocket = make_websocket(data, fake_writer)

    with pytest.raises(InvalidWebSocketFrame):
        await websocket.receive()


async def test_invalid_utf8_text(fake_writer):
    websocket = make_websocket(client_frame(b'\xff\xfe', WebSocketOpcode.TEXT), fake_writer)

    with pytest.raises(InvalidWebSocketPayload) as info:
        await websocket.receive()

    assert info.value.close_code is WebSocketCloseCode.UNSUPPORTED_PAYLOAD


async def test_reassembled_message_is_limited(fake_writer):
    data = (
        client_frame(b'a' * 6, WebSocketOpcode.BINARY, fin=False)
        + client_frame(b'a' * 6, WebSocketOpcode.CONTINUATION)
    )
    websocket = make_websocket(data, fake_writer, max_size=10)

    with pytest.raises(MessageTooBig):
        await websocket.receive()


async def test_unmasked_client_frame_is_rejected(fake_writer):
    data = WebSocketFrame.create(b'ping', opcode=WebSocketOpcode.TEXT).encode(masked=False)
    websocket = make_websocket(data, fake_writer)

    with pytest.raises(InvalidWebSocketFrame):
        await websocket.receive()


async def test_close_echoes_the_peers_code(fake_writer):
    websocket = make_websocket(client_close(WebSocketCloseCode.GOING_AWAY, 'bye'), fake_writer)

    data = await websocket.receive()
    assert data.opcode is WebSocketOpcode.CLOSE
    assert data.close_code is WebSocketCloseCode.GOING_AWAY
    assert data.close_reason == 'bye'
    assert websocket.state is WebSocketState.CLOSING

    with pytest.raises(WebSocketClosed):
        await websocket.receive()

    with pytest.raises(WebSocketClosed):
        await websocket.send_str('too late')

    await websocket.close()
    assert websocket.is_closed()
    assert fake_writer.closed

    close, = await decode_all(fake_writer.data, masked=False)
    assert close.opcode is WebSocketOpcode.CLOSE
    assert close.close_code is WebSocketCloseCode.GOING_AWAY


async def test_iteration_stops_at_close(fake_writer):
    data = (
        client_frame(b'one', WebSocketOpcode.TEXT)
        + client_frame(b'two', WebSocketOpcode.BINARY)
        + client_close()
    )
    websocket = make_websocket(data, fake_writer)

    messages = [message.data async for message in websocket]
    assert messages == [b'one', b'two']


async def test_server_frames_are_not_masked(fake_writer):
    websocket = make_websocket(b'', fake_writer)

    await websocket.send_str('ping')
    await websocket.binary(b'\x00\x01')
    await websocket.send_json({'a': 1})

    frames = await decode_all(fake_writer.data, masked=False)
    assert [frame.opcode for frame in frames] == [
        WebSocketOpcode.TEXT, WebSocketOpcode.BINARY, WebSocketOpcode.TEXT
    ]
    assert frames[0].data == b'ping'
    assert frames[2].data == b'{"a":1}'


async def test_send_after_close(fake_writer):
    websocket = make_websocket(b'', fake_writer)
    await websocket.close(code=WebSocketCloseCode.GOING_AWAY)

    with pytest.raises(WebSocketClosed):
        await websocket.send_str('ping')

    close, = await decode_all(fake_writer.data, masked=False)
    assert close.close_code is WebSocketCloseCode.GOING_AWAY
