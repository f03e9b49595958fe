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

from typing import Any, Generator, Mapping, Optional
from urllib.parse import urlsplit
import ssl as _ssl

from .errors import HandshakeError, PartialRead
from .handshake import client_handshake
from .streams import open_connection
from .websockets import ClientWebSocket
from .websockets.websocket import DEFAULT_MAX_SIZE

__all__ = (
    'connect',
    'WebSocketConnector',
)

DEFAULT_PORTS = {'ws': 80, 'wss': 443}

class WebSocketConnector:
    """
    Returned by :func:`connect`.
    Can either be awaited, which returns the connected websocket, or used as an async context manager,
    which closes the websocket on exit.

    Parameters
    ----------
    url: :class:`str`
        A ``ws://`` or ``wss://`` URL.
    max_size: Optional[:class:`int`]
        The maximum size of a received message.
    close_timeout: :class:`float`
        How long closing waits for the server's close frame.
    headers: Optional[Mapping[:class:`str`, :class:`str`]]
        Extra headers sent with the opening handshake.
    ssl: Optional[:class:`ssl.SSLContext`]
        The SSL context used for ``wss://`` URLs.
    """
    def __init__(
        self,
        url: str,
        *,
        max_size: Optional[int] = DEFAULT_MAX_SIZE,
        close_timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        ssl: Optional[_ssl.SSLContext] = None
    ) -> None:
        parts = urlsplit(url)
        if parts.scheme not in DEFAULT_PORTS:
            raise ValueError(f'Unsupported URL scheme: {parts.scheme!r}')

        if not parts.hostname:
            raise ValueError(f'Missing host in URL: {url!r}')

        self.url = url
        self.host = parts.hostname
        self.port = parts.port or DEFAULT_PORTS[parts.scheme]
        self.path = parts.path or '/'
        if parts.query:
            self.path += '?' + parts.query

        self.secure = parts.scheme == 'wss'
        self.max_size = max_size
        self.close_timeout = close_timeout
        self.headers = headers

        if self.secure and ssl is None:
            ssl = _ssl.create_default_context()
        self.ssl = ssl

        self.websocket: Optional[ClientWebSocket] = None

    def __repr__(self) -> str:
        return f'<WebSocketConnector url={self.url!r}>'

    @property
    def netloc(self) -> str:
        host = f'[{self.host}]' if ':' in self.host else self.host
        if self.port == DEFAULT_PORTS['wss' if self.secure else 'ws']:
            return host

        return f'{host}:{self.port}'

    async def connect(self) -> ClientWebSocket:
        """
        Opens the connection and performs the opening handshake.

        Raises
        ------
        HandshakeError
            If the server did not accept the upgrade.
        OSError
            If the connection could not be established.
        """
        reader, writer = await open_connection(self.host, self.port, ssl=self.ssl)

        try:
            await client_handshake(reader, writer, self.netloc, self.path, headers=self.headers)
        except (HandshakeError, PartialRead, OSError):
            writer.close()
            raise

        self.websocket = ClientWebSocket(
            reader, writer, max_size=self.max_size, close_timeout=self.close_timeout
        )
        return self.websocket

    def __await__(self) -> Generator[Any, None, ClientWebSocket]:
        return self.connect().__await__()

    async def __aenter__(self) -> ClientWebSocket:
        return await self.connect()

    async def __aexit__(self, *args: Any) -> None:
        if self.websocket is None or self.websocket.is_closed():
            return

        try:
            await self.websocket.close()
        except (PartialRead, ConnectionError):
            self.websocket.abort()

def connect(
    url: str,
    *,
    max_size: Optional[int] = DEFAULT_MAX_SIZE,
    close_timeout: float = 10.0,
    headers: Optional[Mapping[str, str]] = None,
    ssl: Optional[_ssl.SSLContext] = None
) -> WebSocketConnector:
    """
    Connects to a websocket server.

    Example
    -------
    .. code-block:: python3

        async with tramway.connect('ws://127.0.0.1:8080') as websocket:
            await websocket.send_str('ping')
            data = await websocket.receive()

    Parameters
    ----------
    url: :class:`str`
        A ``ws://`` or ``wss://`` URL.
    max_size: Optional[:class:`int`]
        The maximum size of a received message.
    close_timeout: :class:`float`
        How long closing waits for the server's close frame.
    headers: Optional[Mapping[:class:`str`, :class:`str`]]
        Extra headers sent with the opening handshake.
    ssl: Optional[:class:`ssl.SSLContext`]
        The SSL context used for ``wss://`` URLs.
    """
    return WebSocketConnector(
        url, max_size=max_size, close_timeout=close_timeout, headers=headers, ssl=ssl
    )
