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

from typing import Optional
import asyncio
import itertools
import logging
import signal

from .dispatcher import EchoPolicy, Policy
from .errors import HandshakeError, PartialRead
from .handler import ConnectionHandler
from .handshake import server_handshake
from .server import TCPServer
from .settings import Settings
from .streams import StreamReader, StreamWriter, get_address
from .websockets import ServerWebSocket

__all__ = (
    'EchoServer',
    'create_server',
)

log = logging.getLogger(__name__)

class EchoServer(TCPServer):
    """
    A websocket server that runs every connection through a :class:`~tramway.handler.ConnectionHandler`.

    Parameters
    ----------
    settings: Optional[:class:`~tramway.settings.Settings`]
        The server's settings. Defaults to ``Settings()``.
    policy: Optional[:class:`~tramway.dispatcher.Policy`]
        The policy shared by every connection. Defaults to an :class:`~tramway.dispatcher.EchoPolicy`
        built from ``settings``.
    loop: Optional[:class:`asyncio.AbstractEventLoop`]
        The event loop used.

    Attributes
    ----------
    settings: :class:`~tramway.settings.Settings`
        The server's settings.
    policy: :class:`~tramway.dispatcher.Policy`
        The policy shared by every connection.
    """
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        policy: Optional[Policy] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> None:
        self.settings = settings = settings or Settings()
        self.policy: Policy = policy or EchoPolicy.from_settings(settings)

        self._ids = itertools.count(1)
        self._active = 0

        super().__init__(
            settings.host,
            settings.port,
            loop=loop,
            ipv6=settings.ipv6,
            backlog=settings.backlog,
            ssl_context=settings.ssl,
        )

    @property
    def active_connections(self) -> int:
        """
        The number of connections that completed the opening handshake and are still open.
        """
        return self._active

    async def on_transport_connect(self, reader: StreamReader, writer: StreamWriter) -> None:
        id = next(self._ids)
        peername = get_address(writer, 'peername')

        log.info(f'[Connection-{id}] Accepted a connection from {peername}.')

        try:
            request = await server_handshake(reader, writer)
        except HandshakeError as exc:
            log.warning(f'[Connection-{id}] Opening handshake failed: {exc}')
            writer.close()

            return
        except (PartialRead, ConnectionError, OSError) as exc:
            log.warning(f'[Connection-{id}] Connection lost during the opening handshake: {exc!r}')
            writer.close()

            return

        log.debug(f'[Connection-{id}] Upgraded {request.path!r} to a websocket.')

        websocket = ServerWebSocket(reader, writer, max_size=self.settings.max_size)
        handler = ConnectionHandler(websocket, self.policy, id=id)

        self._active += 1
        try:
            await handler.run()
        finally:
            self._active -= 1

    def run(self) -> None:
        """
        Starts the server and blocks until interrupted with Ctrl-C or ``SIGTERM``.

        Raises
        ------
        BindError
            If the address could not be bound.
        """
        loop = self.loop
        loop.run_until_complete(self.serve())

        try:
            loop.add_signal_handler(signal.SIGTERM, loop.stop)
        except (NotImplementedError, RuntimeError):
            pass

        try:
            loop.run_forever()
        except KeyboardInterrupt:
            pass
        finally:
            if not self.is_closed():
                loop.run_until_complete(self.close())

def create_server(
    settings: Optional[Settings] = None,
    *,
    policy: Optional[Policy] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None
) -> EchoServer:
    """
    Creates an :class:`EchoServer`. The server is not started.

    Parameters
    ----------
    settings: Optional[:class:`~tramway.settings.Settings`]
        The server's settings.
    policy: Optional[:class:`~tramway.dispatcher.Policy`]
        The policy shared by every connection.
    loop: Optional[:class:`asyncio.AbstractEventLoop`]
        The event loop used.
    """
    return EchoServer(settings, policy=policy, loop=loop)
