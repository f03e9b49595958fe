from tramway import (
    ConnectionHandler,
    ConnectionState,
    EchoPolicy,
    PartialRead,
    ServerWebSocket,
    WebSocketCloseCode,
    WebSocketFrame,
    WebSocketOpcode,
)
from tramway.dispatcher import Decision

from conftest import FakeWriter, decode_all, make_reader


def client_frame(data: bytes, opcode: WebSocketOpcode = WebSocketOpcode.TEXT) -> bytes:
    return WebSocketFrame.create(data, opcode=opcode).encode(masked=True)


def client_close(code=WebSocketCloseCode.NORMAL) -> bytes:
    return WebSocketFrame.create_close_frame(code).encode(masked=True)


def make_handler(data: bytes, writer: FakeWriter, policy=None) -> ConnectionHandler:
    websocket = ServerWebSocket(make_reader(data), writer)
    return ConnectionHandler(websocket, policy or EchoPolicy(), id=1)


async def test_echoes_then_closes(fake_writer):
    data = client_frame(b'ping') + client_frame(b'\x00\x01', WebSocketOpcode.BINARY) + client_close()
    handler = make_handler(data, fake_writer)

    await handler.run()

    assert handler.state is ConnectionState.CLOSED
    assert handler.messages == 3
    assert handler.error is None
    assert fake_writer.closed

    text, binary, close = await decode_all(fake_writer.data, masked=False)
    assert (text.opcode, text.data) == (WebSocketOpcode.TEXT, b'ping')
    assert (binary.opcode, binary.data) == (WebSocketOpcode.BINARY, b'\x00\x01')
    assert close.opcode is WebSocketOpcode.CLOSE
    assert close.close_code is WebSocketCloseCode.NORMAL


async def test_frames_after_close_are_not_answered(fake_writer):
    data = client_close() + client_frame(b'ignored')
    handler = make_handler(data, fake_writer)

    await handler.run()

    frames = await decode_all(fake_writer.data, masked=False)
    assert [frame.opcode for frame in frames] == [WebSocketOpcode.CLOSE]
    assert handler.messages == 1


async def test_ignored_binary_gets_no_response(fake_writer):
    data = client_frame(b'\x00', WebSocketOpcode.BINARY) + client_frame(b'hi') + client_close()
    handler = make_handler(data, fake_writer, EchoPolicy('Echo: ', forward_binary=False))

    await handler.run()

    text, close = await decode_all(fake_writer.data, masked=False)
    assert text.data == b'Echo: hi'
    assert close.opcode is WebSocketOpcode.CLOSE


async def test_read_error_abandons_without_close_frame(fake_writer):
    handler = make_handler(client_frame(b'ping'), fake_writer)

    await handler.run()

    assert handler.state is ConnectionState.CLOSED
    assert isinstance(handler.error, PartialRead)
    assert fake_writer.closed

    frames = await decode_all(fake_writer.data, masked=False)
    assert [frame.data for frame in frames] == [b'ping']


async def test_protocol_error_closes_with_its_code(fake_writer):
    unmasked = WebSocketFrame.create(b'ping', opcode=WebSocketOpcode.TEXT).encode(masked=False)
    handler = make_handler(unmasked, fake_writer)

    await handler.run()

    close, = await decode_all(fake_writer.data, masked=False)
    assert close.close_code is WebSocketCloseCode.PROTOCOL_ERROR
    assert handler.state is ConnectionState.CLOSED


async def test_write_error_abandons_connection():
    writer = FakeWriter(fail_on_write=True)
    handler = make_handler(client_frame(b'ping') + client_close(), writer)

    await handler.run()

    assert handler.state is ConnectionState.CLOSED
    assert isinstance(handler.error, ConnectionResetError)
    assert handler.messages == 1
    assert writer.closed


async def test_failing_policy_closes_with_internal_error(fake_writer):
    class BrokenPolicy:
        def dispatch(self, data):
            raise RuntimeError('broken')

    handler = make_handler(client_frame(b'ping'), fake_writer, BrokenPolicy())
    await handler.run()

    close, = await decode_all(fake_writer.data, masked=False)
    assert close.close_code is WebSocketCloseCode.INTERNAL_ERROR
    assert isinstance(handler.error, RuntimeError)


async def test_custom_policy_can_close(fake_writer):
    class CloseOnBye:
        def dispatch(self, data):
            if data.text() == 'bye':
                return Decision.close()

            return Decision.reply(data)

    data = client_frame(b'hi') + client_frame(b'bye') + client_frame(b'unanswered')
    handler = make_handler(data, fake_writer, CloseOnBye())

    await handler.run()

    hi, close = await decode_all(fake_writer.data, masked=False)
    assert hi.data == b'hi'
    assert close.close_code is WebSocketCloseCode.NORMAL
