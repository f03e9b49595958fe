"""
MIT License

Copyright (c) 2021 blanketsucks

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.
"""
from __future__ import annotations

from typing import Callable, List, Literal, Tuple, Optional, Any, overload
import asyncio
import socket
import ssl

from . import compat, utils
from .types import Address, BytesLike, Coro
from .errors import PartialRead, LimitOverrun

__all__ = (
    'StreamWriter',
    'StreamReader',
    'StreamProtocol',
    'get_address',
    'open_connection',
    'connect_accepted_socket',
)

def get_address(writer: StreamWriter, name: Literal['peername', 'sockname']) -> Optional[Address]:
    """
    Returns the local or remote address of a writer's transport.

    Parameters
    ----------
    writer: :class:`~tramway.streams.StreamWriter`
        The writer to get the address of.
    name: :class:`str`
        Either ``peername`` or ``sockname``.
    """
    address = writer.get_extra_info(name)
    if not address:
        return None

    return Address(address[0], address[1])

class StreamWriter:
    """
    Parameters
    -----------
    transport: :class:`asyncio.Transport`
        The transport to use.
    close_waiter: :class:`asyncio.Future`
        A future resolved once the connection is lost.
    """
    def __init__(self, transport: asyncio.Transport, close_waiter: asyncio.Future[None]) -> None:
        self._transport = transport
        self._close_waiter = close_waiter
        self._waiter: Optional[asyncio.Future[None]] = None
        self._loop = compat.get_running_loop()

    def __repr__(self) -> str:
        return f'<StreamWriter closing={self.is_closing()}>'

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args: Any):
        self.close()
        await self.wait_closed()

    @property
    def transport(self) -> asyncio.Transport:
        """
        The transport used by this writer
        """
        return self._transport

    async def _wait_for_drain(self, timeout: Optional[float] = None) -> None:
        if self._waiter is None:
            return

        try:
            await asyncio.wait_for(self._waiter, timeout)
        finally:
            self._waiter = None

    def pause_writing(self):
        """
        Creates a future that is resolved when :meth:`~.StreamWriter.resume_writing` is called.
        This is supposed to be called when :meth:`asyncio.Protocol.pause_writing` is called.
        """
        if not self._waiter:
            self._waiter = self._loop.create_future()

    def resume_writing(self):
        """
        Sets the future that was created by :meth:`~.StreamWriter.pause_writing` to be resolved.
        This is supposed to be called when :meth:`asyncio.Protocol.resume_writing` is called.
        """
        if self._waiter and not self._waiter.done():
            self._waiter.set_result(None)

    @overload
    def write(self, data: BytesLike) -> None:
        ...
    @overload
    def write(self, data: BytesLike, *, drain: Literal[True]) -> Coro[None]:
        ...
    @overload
    def write(self, data: BytesLike, *, drain: Literal[False]) -> None:
        ...
    def write(self, data: BytesLike, *, drain: bool = False) -> Any:
        """
        Writes data to the transport.

        Parameters
        ----------
        data: Union[:class:`bytearray`, :class:`bytes`]
            data to write.
        drain: :class:`bool`
            Whether to wait until all data has been written.
        """
        self._transport.write(data)
        if drain:
            return self.drain()

    def write_eof(self):
        """
        Writes EOF to the transport.
        """
        self._transport.write_eof()

    def get_write_buffer_size(self) -> int:
        """
        Gets the size of the write buffer.
        """
        return self._transport.get_write_buffer_size()

    async def drain(self, *, timeout: Optional[float] = None):
        """
        Waits until all data has been written.

        Raises
        ------
        ConnectionResetError
            If the transport is closing or already closed.
        """
        if self._transport.is_closing():
            # Let connection_lost run before reporting the failure.
            await asyncio.sleep(0)
            raise ConnectionResetError('Connection lost')

        await self._wait_for_drain(timeout)

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        """
        Gets extra info about the transport.

        Parameters
        ----------
        name: :class:`str`
            The name of the extra info.
        """
        return self._transport.get_extra_info(name, default)

    def is_closing(self) -> bool:
        """
        True if the transport is closing or closed.
        """
        return self._transport.is_closing()

    def close(self):
        """
        Closes the transport.
        """
        self._transport.close()

    def abort(self):
        """
        Closes the transport immediately, discarding any buffered data.
        """
        self._transport.abort()

    async def wait_closed(self) -> None:
        """
        Waits until the transport is closed.
        """
        await self._close_waiter


class StreamReader:
    """
    Attributes
    ----------
    buffer: :class:`bytearray`
        A bytearray containing the data.
    loop: :class:`asyncio.AbstractEventLoop`
        A reference to the event loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.buffer: bytearray = bytearray()
        self.loop: asyncio.AbstractEventLoop = loop or compat.get_running_loop()

        self._waiter: Optional[asyncio.Future[None]] = None
        self._eof = False

    def __repr__(self) -> str:
        return f'<StreamReader buffered={len(self.buffer)} eof={self._eof}>'

    async def _wait_for_data(self, timeout: Optional[float] = None):
        if self.at_eof():
            raise RuntimeError('Cannot wait for data after EOF')

        if self._waiter is not None:
            raise RuntimeError('Already waiting for data')

        self._waiter = self.loop.create_future()

        try:
            await asyncio.wait_for(self._waiter, timeout)
        finally:
            self._waiter = None

    def _wakeup(self) -> None:
        if self._waiter and not self._waiter.done():
            self._waiter.set_result(None)

    def at_eof(self) -> bool:
        """
        Returns whether the reader has reached EOF.
        """
        return self._eof

    def reset(self) -> bytes:
        """
        Resets the reader's buffer.
        """
        data = self.buffer
        self.buffer = bytearray()

        return bytes(data)

    def feed_data(self, data: BytesLike) -> None:
        """
        Feeds the data to the reader.

        Parameters
        ----------
        data: Union[:class:`bytearray`, :class:`bytes`]
            data to be fed.
        """
        if self._eof:
            raise RuntimeError('Cannot feed data after EOF')

        self.buffer.extend(data)
        self._wakeup()

    def feed_eof(self):
        """
        Feeds EOF to the reader.
        """
        self._eof = True
        self._wakeup()

    async def read(
        self,
        nbytes: Optional[int] = None,
        *,
        timeout: Optional[float] = None,
        wait: bool = True
    ) -> bytes:
        """
        Reads ``nbytes`` off the stream. If ``nbytes`` is not provided, reads whatever is buffered.

        Parameters
        ----------
        nbytes: :class:`int`
            Number of bytes to read.
        timeout: Optional[:class:`float`]
            Timeout to wait for the read to complete.
        wait: :class:`bool`
            Whether to wait for data to be available.

        Raises
        ------
        asyncio.TimeoutError: If the timeout expires.
        PartialRead: If EOF is reached before ``nbytes`` could be read.
        """
        if nbytes == 0:
            return b''

        if not self.buffer:
            if not wait:
                return b''

            if self.at_eof():
                raise PartialRead(b'', nbytes)

            await self._wait_for_data(timeout=timeout)

        if not nbytes:
            return self.reset()

        while nbytes > len(self.buffer):
            if self.at_eof():
                buffer = self.reset()
                raise PartialRead(buffer, nbytes)

            await self._wait_for_data(timeout=timeout)

        data = self.buffer[:nbytes]
        del self.buffer[:nbytes]

        return bytes(data)

    async def readuntil(
        self,
        delimiter: BytesLike,
        *,
        timeout: Optional[float] = None,
        include: bool = False,
        limit: Optional[int] = None
    ) -> bytes:
        """
        Reads until the delimiter is found.

        Parameters
        ----------
        delimiter: Union[:class:`bytearray`, :class:`bytes`]
            The delimiter to read until.
        timeout: Optional[:class:`float`]
            Timeout to wait for the read to complete.
        include: :class:`bool`
            Whether to include the delimiter in the returned data.
        limit: Optional[:class:`int`]
            The maximum number of bytes to buffer while looking for the delimiter.

        Raises
        ------
        asyncio.TimeoutError: If the timeout expires.
        PartialRead: If EOF is reached before the delimiter is found.
        LimitOverrun: If ``limit`` bytes were buffered without finding the delimiter.
        """
        pos = self.buffer.find(delimiter)
        while pos == -1:
            if limit is not None and len(self.buffer) > limit:
                raise LimitOverrun(limit)

            if self.at_eof():
                buffer = self.reset()
                raise PartialRead(buffer, None)

            await self._wait_for_data(timeout=timeout)
            pos = self.buffer.find(delimiter)

        end = pos + len(delimiter)
        if limit is not None and end > limit:
            raise LimitOverrun(limit)

        data = self.buffer[:end] if include else self.buffer[:pos]
        del self.buffer[:end]

        return bytes(data)


class StreamProtocol(asyncio.Protocol):
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        connection_callback: Callable[[StreamReader, StreamWriter], Any],
    ) -> None:
        self.loop = loop
        self.connection_callback = connection_callback
        self.reader = StreamReader(loop)
        self.writer: Optional[StreamWriter] = None
        self.paused = False
        self.waiter = loop.create_future()

    def __call__(self) -> Any:
        return self.__class__(self.loop, self.connection_callback)

    def connection_made(self, transport: Any) -> None:
        self.writer = writer = StreamWriter(transport, self.waiter)

        if utils.iscoroutinefunction(self.connection_callback):
            self.loop.create_task(self.connection_callback(self.reader, writer))
        else:
            self.connection_callback(self.reader, writer)

    def connection_lost(self, exc: Optional[BaseException]) -> None:
        if not self.waiter.done():
            self.waiter.set_result(None)

        if self.writer:
            self.writer.resume_writing()

        self.reader.feed_eof()

    def data_received(self, data: bytes) -> None:
        self.reader.feed_data(data)

    def eof_received(self) -> None:
        self.reader.feed_eof()

    def resume_writing(self) -> None:
        if not self.writer or not self.paused:
            return

        self.paused = False
        self.writer.resume_writing()

    def pause_writing(self) -> None:
        if not self.writer or self.paused:
            return

        self.paused = True
        self.writer.pause_writing()

def _ignore(reader: StreamReader, writer: StreamWriter) -> None:
    pass

async def open_connection(
    host: Optional[str] = None, port: Optional[int] = None, **kwargs: Any
) -> Tuple[StreamReader, StreamWriter]:
    """
    Opens a connection to a remote host.

    Parameters
    -----------
    host: Optional[:class:`str`]
        The host to connect to.
    port: Optional[:class:`int`]
        The port to connect to.
    **kwargs: Any
        Additional keyword arguments to pass to :meth:`asyncio.loop.create_connection`.
    """
    loop = kwargs.pop('loop', None) or compat.get_running_loop()
    protocol = StreamProtocol(loop, _ignore)

    _, proto = await loop.create_connection(protocol, host=host, port=port, **kwargs) # type: ignore
    return proto.reader, proto.writer

async def connect_accepted_socket(
    sock: socket.socket, *, ssl: Optional[ssl.SSLContext] = None, **kwargs: Any
) -> Tuple[StreamReader, StreamWriter]:
    """
    Wraps an already accepted socket into a reader and writer pair.

    Parameters
    -----------
    sock: :class:`socket.socket`
        The accepted socket.
    ssl: Optional[:class:`ssl.SSLContext`]
        The SSL context used to perform a server side TLS handshake.
    **kwargs: Any
        Additional keyword arguments to pass to :meth:`asyncio.loop.connect_accepted_socket`.
    """
    loop = kwargs.pop('loop', None) or compat.get_running_loop()
    protocol = StreamProtocol(loop, _ignore)

    _, proto = await loop.connect_accepted_socket(protocol, sock, ssl=ssl, **kwargs) # type: ignore
    return proto.reader, proto.writer
