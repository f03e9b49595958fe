"""
pytest configuration and fixtures.
"""
from typing import AsyncIterator, Awaitable, Callable, List, Optional
import asyncio

import pytest
import pytest_asyncio

from tramway import EchoServer, Settings, StreamReader, WebSocketFrame
from tramway.dispatcher import Policy


class FakeWriter:
    """Collects everything written to it instead of sending it anywhere."""

    def __init__(self, *, fail_on_write: bool = False) -> None:
        self.data = bytearray()
        self.closed = False
        self.fail_on_write = fail_on_write

    def write(self, data: bytes, *, drain: bool = False):
        if self.fail_on_write:
            raise ConnectionResetError('Connection lost')

        self.data.extend(data)
        if drain:
            return self.drain()

    async def drain(self) -> None:
        pass

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass

    def get_extra_info(self, name: str, default=None):
        return default


def make_reader(data: bytes = b'', *, eof: bool = True) -> StreamReader:
    reader = StreamReader(asyncio.get_running_loop())
    if data:
        reader.feed_data(data)

    if eof:
        reader.feed_eof()

    return reader


async def decode_all(data: bytes, *, masked: Optional[bool] = None) -> List[WebSocketFrame]:
    """Decodes every frame contained in ``data``."""
    reader = make_reader(bytes(data))
    frames = []

    while reader.buffer:
        frames.append(await WebSocketFrame.decode(reader.read, masked=masked))

    return frames


def server_url(server: EchoServer, path: str = '/') -> str:
    host, port = server.sockname
    return f'ws://{host}:{port}{path}'


@pytest.fixture
def fake_writer() -> FakeWriter:
    return FakeWriter()


@pytest_asyncio.fixture
async def make_server() -> AsyncIterator[Callable[..., Awaitable[EchoServer]]]:
    """Starts echo servers on OS assigned ports and closes them after the test."""
    servers: List[EchoServer] = []

    async def factory(policy: Optional[Policy] = None, server_cls=EchoServer, **kwargs) -> EchoServer:
        kwargs.setdefault('port', 0)
        server = server_cls(Settings(**kwargs), policy=policy)

        await server.serve()
        servers.append(server)

        return server

    yield factory

    for server in servers:
        await server.close()


@pytest_asyncio.fixture
async def server(make_server) -> EchoServer:
    return await make_server()


@pytest.fixture
def url(server: EchoServer) -> str:
    return server_url(server)
