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

from typing import Any, Optional, Set, Tuple
import asyncio
import logging
import socket
import ssl

from . import compat, utils
from .errors import BindError
from .streams import StreamReader, StreamWriter, connect_accepted_socket
from .types import Address

__all__ = (
    'BaseServer',
    'TCPServer',
)

log = logging.getLogger(__name__)

def _get_event_loop(loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.AbstractEventLoop:
    if loop:
        if not isinstance(loop, asyncio.AbstractEventLoop):
            raise TypeError('Invalid argument type for loop argument')

        return loop

    return compat.get_event_loop()

class BaseServer:
    """
    A base server class, All server classes should inherit from this class.

    Parameters
    ----------
    loop: :class:`asyncio.AbstractEventLoop`
        The event loop used.
    ssl_context: :class:`ssl.SSLContext`
        The SSL context to use.

    Attributes
    ----------
    loop: :class:`asyncio.AbstractEventLoop`
        The event loop used.
    """
    def __init__(
        self,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        ssl_context: Optional[ssl.SSLContext] = None
    ) -> None:
        self.loop: asyncio.AbstractEventLoop = _get_event_loop(loop)
        self._ssl_context = ssl_context

        self._closed = False
        self._serving = False

    def is_ssl(self) -> bool:
        """
        True if the server is using SSL.
        """
        return isinstance(self._ssl_context, ssl.SSLContext)

    def is_serving(self) -> bool:
        """
        True if the server is serving.
        """
        return self._serving

    def is_closed(self) -> bool:
        """
        True if the server is closed.
        """
        return self._closed

    def __await__(self):
        return self.serve().__await__()

    async def __aenter__(self):
        await self.serve()
        return self

    async def __aexit__(self, *exc: Any):
        await self.close()

    async def serve(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    async def on_transport_connect(self, reader: StreamReader, writer: StreamWriter) -> None:
        """
        A callback called on a new connection.
        To be subclassed and overriden by users.

        Parameters
        ----------
        reader: :class:`~tramway.streams.StreamReader`
            The reader of the connection.
        writer: :class:`~tramway.streams.StreamWriter`
            The writer of the connection.
        """

class TCPServer(BaseServer):
    """
    A TCP server with an explicit accept loop.
    Every accepted connection is handed to :meth:`on_transport_connect` in its own task,
    so a slow connection never holds up the next accept.

    Parameters
    ----------
    host: Optional[:class:`str`]
        The host to listen on. Defaults to the loopback address.
    port: Optional[:class:`int`]
        The port to listen on. ``0`` lets the OS pick one.
    loop: :class:`asyncio.AbstractEventLoop`
        The event loop used.
    ipv6: :class:`bool`
        Whether to listen on an IPv6 socket.
    backlog: :class:`int`
        The maximum number of queued connections.
    ssl_context: :class:`ssl.SSLContext`
        The SSL context to use.

    Attributes
    ----------
    loop: :class:`asyncio.AbstractEventLoop`
        The event loop used.
    host: :class:`str`
        The host to listen on.
    port: :class:`int`
        The port to listen on.
    """
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        ipv6: bool = False,
        backlog: int = 200,
        ssl_context: Optional[ssl.SSLContext] = None
    ) -> None:
        self.host = utils.validate_ip(host, ipv6=ipv6)
        self.port = 8080 if port is None else port
        self.ipv6 = ipv6
        self.backlog = backlog

        self._socket: Optional[socket.socket] = None
        self._accept_task: Optional[asyncio.Task[None]] = None
        self._connections: Set[asyncio.Task[None]] = set()

        super().__init__(loop=loop, ssl_context=ssl_context)

    def __repr__(self) -> str:
        name = self.__class__.__name__
        return f'<{name} host={self.host!r} port={self.port!r}>'

    @property
    def socket(self) -> Optional[socket.socket]:
        """
        The listening socket, if the server is serving.
        """
        return self._socket

    @property
    def sockname(self) -> Optional[Address]:
        """
        The address the listening socket is bound to.
        """
        if self._socket is None:
            return None

        address = self._socket.getsockname()
        return Address(address[0], address[1])

    @property
    def connections(self) -> int:
        """
        The number of connections currently being handled.
        """
        return len(self._connections)

    def create_socket(self) -> socket.socket:
        """
        Creates, binds and listens on a non-blocking TCP socket.

        Raises
        ------
        BindError
            If the address could not be bound.
        """
        family = socket.AF_INET6 if self.ipv6 else socket.AF_INET
        if self.ipv6 and not utils.has_ipv6():
            raise BindError(self.host, self.port, OSError('IPv6 is not supported on this platform'))

        sock = socket.socket(family, socket.SOCK_STREAM, socket.IPPROTO_TCP)

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError as exc:
            sock.close()
            raise BindError(self.host, self.port, exc) from exc

        sock.setblocking(False)
        return sock

    async def serve(self) -> None:
        """
        Binds the listening socket and starts the accept loop in the background.
        Returns once the socket is bound.

        Raises
        ------
        BindError
            If the address could not be bound.
        RuntimeError
            If the server is already serving or was closed.
        """
        if self.is_serving():
            raise RuntimeError('Server is already serving')

        if self.is_closed():
            raise RuntimeError('Server is closed')

        self._socket = sock = self.create_socket()
        self._serving = True

        self._accept_task = self.loop.create_task(self.accept_loop(sock))
        log.info(f'[Server] Listening on {self.sockname}.')

    async def accept(self, sock: socket.socket) -> Tuple[socket.socket, Any]:
        """
        Accepts a single connection.

        Parameters
        ----------
        sock: :class:`socket.socket`
            The listening socket.
        """
        return await self.loop.sock_accept(sock)

    async def accept_loop(self, sock: socket.socket) -> None:
        """
        Accepts connections until the server is closed.
        A failed accept is logged and does not stop the loop.

        Parameters
        ----------
        sock: :class:`socket.socket`
            The listening socket.
        """
        while self.is_serving():
            try:
                client, address = await self.accept(sock)
            except OSError as exc:
                if not self.is_serving():
                    break

                log.error(f'[Server] Failed to accept a connection: {exc!r}')
                # Yield so an error that keeps repeating (e.g. EMFILE) does not starve the loop.
                await asyncio.sleep(0)

                continue

            log.debug(f'[Server] Accepted a connection from {address!r}.')

            task = self.loop.create_task(self._handle_socket(client))
            self._connections.add(task)
            task.add_done_callback(self._connections.discard)

    async def _handle_socket(self, client: socket.socket) -> None:
        try:
            reader, writer = await connect_accepted_socket(client, ssl=self._ssl_context, loop=self.loop)
        except (OSError, ssl.SSLError) as exc:
            log.warning(f'[Server] Failed to set up an accepted connection: {exc!r}')
            client.close()

            return

        try:
            await self.on_transport_connect(reader, writer)
        except Exception:
            log.exception('[Server] Unhandled exception in connection handler')
            writer.close()

    async def close(self) -> None:
        """
        Stops the accept loop, closes the listening socket and cancels outstanding connections.
        """
        if self.is_closed():
            return

        self._serving = False
        self._closed = True

        if self._accept_task is not None:
            self._accept_task.cancel()
            await asyncio.gather(self._accept_task, return_exceptions=True)

        if self._socket is not None:
            self._socket.close()

        tasks = list(self._connections)
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)

        self._accept_task = None
        log.info('[Server] Closed server.')
