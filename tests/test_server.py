"""
End to end tests running real clients against a real server.
"""
import asyncio
import errno
import socket

import pytest

from tramway import (
    BindError,
    EchoServer,
    PartialRead,
    Settings,
    WebSocketCloseCode,
    WebSocketFrame,
    WebSocketOpcode,
    client_handshake,
    connect,
    open_connection,
)

from conftest import server_url

TIMEOUT = 5


async def open_raw(server: EchoServer):
    """Opens a connection and performs the handshake, without wrapping it into a websocket."""
    host, port = server.sockname
    reader, writer = await open_connection(host, port)
    await client_handshake(reader, writer, f'{host}:{port}')

    return reader, writer


async def read_frame(reader) -> WebSocketFrame:
    return await asyncio.wait_for(WebSocketFrame.decode(reader.read, masked=False), TIMEOUT)


async def test_echo(url):
    async with connect(url) as websocket:
        await websocket.send_str('ping')
        data = await asyncio.wait_for(websocket.receive(), TIMEOUT)

        assert data.opcode is WebSocketOpcode.TEXT
        assert data.text() == 'ping'


@pytest.mark.parametrize('payload', ['', 'héllo', 'x' * 70000])
async def test_echo_payloads(url, payload):
    async with connect(url) as websocket:
        await websocket.send_str(payload)
        assert await asyncio.wait_for(websocket.receive_str(), TIMEOUT) == payload


async def test_prefixed_echo(make_server):
    server = await make_server(prefix='Echo: ')

    async with connect(server_url(server)) as websocket:
        await websocket.send_str('ping')
        assert await asyncio.wait_for(websocket.receive_str(), TIMEOUT) == 'Echo: ping'


async def test_binary_is_forwarded(url):
    async with connect(url) as websocket:
        await websocket.binary(b'\x00\xffdata')
        data = await asyncio.wait_for(websocket.receive(), TIMEOUT)

        assert data.opcode is WebSocketOpcode.BINARY
        assert data.data == b'\x00\xffdata'


async def test_binary_can_be_ignored(make_server):
    server = await make_server(forward_binary=False)

    async with connect(server_url(server)) as websocket:
        await websocket.binary(b'dropped')
        await websocket.send_str('kept')

        assert await asyncio.wait_for(websocket.receive_str(), TIMEOUT) == 'kept'


async def test_ping_is_answered(url):
    async with connect(url) as websocket:
        await websocket.ping(b'heartbeat')
        data = await asyncio.wait_for(websocket.receive(), TIMEOUT)

        assert data.opcode is WebSocketOpcode.PONG
        assert data.data == b'heartbeat'


async def test_clients_are_isolated(url):
    async def exchange(websocket, payload):
        await websocket.send_str(payload)
        return await asyncio.wait_for(websocket.receive_str(), TIMEOUT)

    async with connect(url) as first, connect(url) as second:
        results = await asyncio.gather(exchange(first, 'A'), exchange(second, 'B'))
        assert results == ['A', 'B']

        for _ in range(10):
            await first.send_str('A')

        assert [await first.receive_str() for _ in range(10)] == ['A'] * 10

        await second.send_str('B')
        assert await second.receive_str() == 'B'


async def test_close_terminates_connection(server):
    reader, writer = await open_raw(server)

    close = WebSocketFrame.create_close_frame(WebSocketCloseCode.NORMAL, 'done')
    after = WebSocketFrame.create(b'ignored', opcode=WebSocketOpcode.TEXT)
    writer.write(close.encode(masked=True) + after.encode(masked=True))

    frame = await read_frame(reader)
    assert frame.opcode is WebSocketOpcode.CLOSE
    assert frame.close_code is WebSocketCloseCode.NORMAL

    with pytest.raises(PartialRead):
        await read_frame(reader)

    writer.close()


async def test_client_close_completes(url):
    async with connect(url) as websocket:
        await websocket.send_str('ping')
        await websocket.receive()

        await asyncio.wait_for(websocket.close(), TIMEOUT)

        assert websocket.is_closed()
        assert websocket.close_code is WebSocketCloseCode.NORMAL


async def test_active_connections(server, url):
    async with connect(url) as websocket:
        await websocket.send_str('ping')
        await websocket.receive()

        assert server.active_connections == 1

    for _ in range(50):
        if server.active_connections == 0:
            break

        await asyncio.sleep(0.01)

    assert server.active_connections == 0


async def test_accept_failure_does_not_stop_the_server(make_server):
    class FlakyServer(EchoServer):
        failures = 2

        async def accept(self, sock):
            if self.failures:
                self.failures -= 1
                raise OSError(errno.EMFILE, 'Too many open files')

            return await super().accept(sock)

    server = await make_server(server_cls=FlakyServer)

    async with connect(server_url(server)) as websocket:
        await websocket.send_str('still serving')
        assert await asyncio.wait_for(websocket.receive_str(), TIMEOUT) == 'still serving'

    assert server.failures == 0


async def test_handshake_failure_is_isolated(server, url):
    host, port = server.sockname
    reader, writer = await open_connection(host, port)

    writer.write(b'GET / HTTP/1.1\r\nHost: localhost\r\n\r\n')
    response = await asyncio.wait_for(reader.readuntil(b'\r\n\r\n'), TIMEOUT)
    assert response.startswith(b'HTTP/1.1 400 Bad Request')

    writer.close()

    async with connect(url) as websocket:
        await websocket.send_str('ping')
        assert await asyncio.wait_for(websocket.receive_str(), TIMEOUT) == 'ping'


async def test_protocol_error_closes_only_that_connection(server, url):
    async with connect(url) as healthy:
        reader, writer = await open_raw(server)

        # Clients must mask their frames.
        writer.write(WebSocketFrame.create(b'ping', opcode=WebSocketOpcode.TEXT).encode(masked=False))

        frame = await read_frame(reader)
        assert frame.close_code is WebSocketCloseCode.PROTOCOL_ERROR
        writer.close()

        await healthy.send_str('ping')
        assert await asyncio.wait_for(healthy.receive_str(), TIMEOUT) == 'ping'


async def test_oversized_message_is_rejected(make_server):
    server = await make_server(max_size=16)
    reader, writer = await open_raw(server)

    writer.write(WebSocketFrame.create(b'a' * 32, opcode=WebSocketOpcode.BINARY).encode(masked=True))

    frame = await read_frame(reader)
    assert frame.close_code is WebSocketCloseCode.TOO_LARGE

    writer.close()


async def test_bind_failure():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        sock.listen()
        port = sock.getsockname()[1]

        server = EchoServer(Settings(port=port))
        with pytest.raises(BindError) as info:
            await server.serve()

        assert info.value.port == port
        assert not server.is_serving()


async def test_close_stops_serving(make_server):
    server = await make_server()
    host, port = server.sockname

    async with connect(server_url(server)) as websocket:
        await server.close()

        assert server.is_closed()
        with pytest.raises(PartialRead):
            await asyncio.wait_for(websocket.receive(), TIMEOUT)

    with pytest.raises(OSError):
        await open_connection(host, port)


async def test_default_address_scenario():
    server = EchoServer(Settings())
    try:
        await server.serve()
    except BindError:
        pytest.skip('port 8080 is in use')

    try:
        async with connect('ws://127.0.0.1:8080') as websocket:
            await websocket.send_str('ping')
            assert await asyncio.wait_for(websocket.receive_str(), TIMEOUT) == 'ping'

            await asyncio.wait_for(websocket.close(), TIMEOUT)
            assert websocket.is_closed()
    finally:
        await server.close()
