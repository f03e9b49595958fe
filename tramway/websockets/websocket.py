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

from typing import Any, Dict, List, Optional, Union
import asyncio
import logging

from tramway.streams import StreamReader, StreamWriter, get_address
from tramway.utils import clear_docstring, dumps
from tramway.types import BytesLike
from tramway.errors import PartialRead
from .frame import WebSocketFrame, Data
from .enums import WebSocketState, WebSocketOpcode, WebSocketCloseCode
from .errors import WebSocketError, WebSocketClosed, InvalidWebSocketFrame, InvalidWebSocketPayload, MessageTooBig

__all__ = (
    'BaseWebSocket',
    'ServerWebSocket',
    'ClientWebSocket',
    'WebSocket',
)

log = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 2 ** 20


class BaseWebSocket:
    """
    A base websocket class.
    Subclasses of this class override :meth:`send_frame` to either mask or not mask the frame.

    Parameters
    -----------
    reader: :class:`~tramway.streams.StreamReader`
        The reader to use.
    writer: :class:`~tramway.streams.StreamWriter`
        The writer to use.
    max_size: Optional[:class:`int`]
        The maximum size of a single message, in bytes. ``None`` disables the limit.
    """
    # Whether frames received by this side of the connection must be masked.
    expects_masked: Optional[bool] = None

    def __init__(self, reader: StreamReader, writer: StreamWriter, *, max_size: Optional[int] = DEFAULT_MAX_SIZE) -> None:
        self._reader = reader
        self._writer = writer
        self._max_size = max_size

        self._received_close_frame = False
        self._sent_close_frame = False
        self._state = WebSocketState.OPEN

        self._fragments: List[bytes] = []
        self._fragment_opcode: Optional[WebSocketOpcode] = None
        self._close_data: Optional[Data] = None

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} state={self.state}>'

    def __aiter__(self):
        return self

    async def __anext__(self) -> Data:
        data = await self.receive()
        if data.opcode is WebSocketOpcode.CLOSE:
            raise StopAsyncIteration

        return data

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
        await self.wait_closed()

    def _set_state(self, state: WebSocketState):
        self._state = state

    @property
    def state(self) -> WebSocketState:
        """
        The state of the websocket.
        """
        return self._state

    @property
    def writer(self) -> StreamWriter:
        """
        The writer to use.
        """
        return self._writer

    @property
    def reader(self) -> StreamReader:
        """
        The reader to use.
        """
        return self._reader

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    @property
    def close_code(self) -> Optional[int]:
        """
        The close code sent by the peer, if a close frame was received.
        """
        if self._close_data is None:
            return None

        return self._close_data.close_code

    @property
    def sockname(self):
        """
        The address of the local endpoint.
        """
        return get_address(self.writer, 'sockname')

    @property
    def peername(self):
        """
        The address of the remote endpoint.
        """
        return get_address(self.writer, 'peername')

    def create_frame(self, data: Union[str, BytesLike], opcode: WebSocketOpcode, *, control: bool = False) -> WebSocketFrame:
        """
        Creates a frame.

        Parameters
        -----------
        data: Union[:class:`str`, :class:`bytes`]
            The data to send.
        opcode: :class:`~tramway.websockets.WebSocketOpcode`
            The opcode to use.
        control: :class:`bool`
            Whether the frame is a control frame.
        """
        if isinstance(data, str):
            data = data.encode('utf-8')

        if control:
            return WebSocketFrame.create_control_frame(data, opcode=opcode)

        return WebSocketFrame.create(data, opcode=opcode)

    def is_closed(self) -> bool:
        """
        True if the websocket has been closed.
        """
        return self._state is WebSocketState.CLOSED

    def should_close(self) -> bool:
        """
        True if a close frame was received or sent and the websocket should be closed.
        """
        return self._state is WebSocketState.CLOSING or self._received_close_frame

    async def wait_closed(self) -> None:
        """
        Waits until the underlying transport is closed.
        """
        await self.writer.wait_closed()

    async def send_frame(self, frame: WebSocketFrame, *, masked: bool = True) -> int:
        """
        Sends a frame.

        Parameters
        -----------
        frame: :class:`~tramway.websockets.WebSocketFrame`
            The frame to send.
        masked: :class:`bool`
            Whether to mask the frame.

        Raises
        -------
        WebSocketClosed
            If the websocket is closed, or is closing and the frame is not a close frame.
        """
        if self.is_closed() or self._sent_close_frame:
            raise WebSocketClosed()

        if self.should_close() and frame.opcode is not WebSocketOpcode.CLOSE:
            raise WebSocketClosed('websocket is closing')

        data = frame.encode(masked=masked)
        await self.writer.write(data, drain=True)

        return len(data)

    async def send_bytes(self, data: BytesLike, *, opcode: Optional[WebSocketOpcode] = None) -> int:
        """
        Sends bytes.

        Parameters
        -----------
        data: :class:`bytes`
            The data to send. Can be any bytes-like object.
        opcode: :class:`~tramway.websockets.WebSocketOpcode`
            The opcode to use. Defaults to :attr:`~tramway.websockets.WebSocketOpcode.TEXT`.
        """
        if opcode is None:
            opcode = WebSocketOpcode.TEXT

        frame = self.create_frame(data, opcode=opcode)
        return await self.send_frame(frame)

    async def send(self, data: Union[str, BytesLike]) -> int:
        """
        Sends ``data`` as a text message if it is a string, otherwise as a binary message.
        """
        if isinstance(data, str):
            return await self.send_str(data)

        return await self.binary(data)

    async def send_str(self, data: str) -> int:
        """
        Sends a string as a text message.

        Parameters
        -----------
        data: :class:`str`
            The data to send.
        """
        return await self.send_bytes(data.encode('utf-8'), opcode=WebSocketOpcode.TEXT)

    async def send_json(self, data: Union[List[Any], Dict[str, Any]]) -> int:
        """
        Sends a JSON object as a text message.

        Parameters
        -----------
        data: Union[:class:`list`, :class:`dict`]
            The data to send.
        """
        return await self.send_str(dumps(data))

    async def send_data(self, data: Data) -> int:
        """
        Sends a :class:`~tramway.websockets.Data` back out with the same opcode.

        Parameters
        -----------
        data: :class:`~tramway.websockets.Data`
            The message to send.
        """
        if data.opcode is WebSocketOpcode.CLOSE:
            await self.close(data.close_reason.encode('utf-8'), code=data.close_code)
            return 0

        if data.opcode in (WebSocketOpcode.PING, WebSocketOpcode.PONG):
            frame = self.create_frame(data.data, opcode=data.opcode, control=True)
            return await self.send_frame(frame)

        return await self.send_bytes(data.data, opcode=data.opcode)

    async def binary(self, data: BytesLike) -> int:
        """
        Sends ``data`` with the :attr:`~tramway.websockets.WebSocketOpcode.BINARY` opcode.

        Parameters
        -----------
        data: :class:`bytes`
            The data to send. Can be any bytes-like object.
        """
        return await self.send_bytes(data, opcode=WebSocketOpcode.BINARY)

    async def ping(self, data: BytesLike = b'') -> int:
        """
        Sends ``data`` with the :attr:`~tramway.websockets.WebSocketOpcode.PING` opcode.

        Parameters
        -----------
        data: :class:`bytes`
            The data to send. Can be any bytes-like object.
        """
        frame = self.create_frame(data, opcode=WebSocketOpcode.PING, control=True)
        return await self.send_frame(frame)

    async def pong(self, data: BytesLike = b'') -> int:
        """
        Sends ``data`` with the :attr:`~tramway.websockets.WebSocketOpcode.PONG` opcode.

        Parameters
        -----------
        data: :class:`bytes`
            The data to send. Can be any bytes-like object.
        """
        frame = self.create_frame(data, opcode=WebSocketOpcode.PONG, control=True)
        return await self.send_frame(frame)

    async def close(self, data: Optional[BytesLike] = None, *, code: Optional[int] = None) -> None:
        """
        Closes the websocket.
        Sends a close frame, waits for the peer's close frame if it has not been received yet,
        then closes the transport.

        If the peer already sent a close frame, the close frame sent back echoes its close code.

        Parameters
        -----------
        data: :class:`bytes`
            The close reason. Can be any bytes-like object.
        code: :class:`int`
            The close code to send. Defaults to :attr:`~tramway.websockets.WebSocketCloseCode.NORMAL`.
        """
        if self.is_closed() or self._sent_close_frame:
            return

        if code is None:
            if self._received_close_frame:
                code = self.close_code
            else:
                code = WebSocketCloseCode.NORMAL

        reason = bytes(data).decode('utf-8') if data else ''
        frame = WebSocketFrame.create_close_frame(code, reason)

        self._set_state(WebSocketState.CLOSING)

        try:
            await self.send_frame(frame)
            self._sent_close_frame = True

            if not self._received_close_frame:
                await self.wait_for_close_frame()
        finally:
            self.abort()

    async def wait_for_close_frame(self) -> None:
        """
        Called after a close frame was sent but none was received yet.
        The default implementation does not wait.
        """

    def abort(self) -> None:
        """
        Closes the transport without performing the closing handshake.
        """
        self._set_state(WebSocketState.CLOSED)
        self.writer.close()

    async def _read_frame(self) -> WebSocketFrame:
        return await WebSocketFrame.decode(
            self.reader.read, max_size=self._max_size, masked=self.expects_masked
        )

    async def receive(self) -> Data:
        """
        Receives the next message.
        Fragmented messages are reassembled before being returned. Pings are answered
        with a pong before being returned.

        Raises
        -------
        WebSocketClosed
            If the websocket is closing or closed.
        WebSocketError
            If the peer violated the protocol.
        PartialRead
            If the connection was lost mid frame.
        """
        if self.is_closed() or self.should_close():
            raise WebSocketClosed()

        while True:
            frame = await self._read_frame()
            opcode = frame.opcode

            if frame.is_control():
                if opcode is WebSocketOpcode.CLOSE:
                    self._received_close_frame = True
                    self._set_state(WebSocketState.CLOSING)

                    self._fragments.clear()
                    self._close_data = Data.from_frame(frame)

                    return self._close_data

                if opcode is WebSocketOpcode.PING:
                    await self.pong(frame.data)

                return Data.from_frame(frame)

            if opcode is WebSocketOpcode.CONTINUATION:
                if self._fragment_opcode is None:
                    raise InvalidWebSocketFrame('Received a continuation frame without a message to continue')
            else:
                if self._fragment_opcode is not None:
                    raise InvalidWebSocketFrame('Received a new message before the previous one was finished')

                self._fragment_opcode = opcode  # type: ignore

            self._fragments.append(frame.data)
            if self._max_size is not None:
                size = sum(len(fragment) for fragment in self._fragments)
                if size > self._max_size:
                    raise MessageTooBig(size, self._max_size)

            if frame.fin:
                break

        opcode = self._fragment_opcode
        payload = b''.join(self._fragments)

        self._fragments.clear()
        self._fragment_opcode = None

        if opcode is WebSocketOpcode.TEXT:
            try:
                payload.decode('utf-8')
            except UnicodeDecodeError:
                raise InvalidWebSocketPayload('Received a text message that is not valid UTF-8') from None

        return Data(opcode, payload)  # type: ignore

    async def receive_bytes(self) -> bytes:
        """
        Receives bytes.
        """
        data = await self.receive()
        return data.data

    async def receive_str(self) -> str:
        """
        Receives a string.
        """
        data = await self.receive()
        return data.text()

    async def receive_json(self) -> Any:
        """
        Receives a JSON object.
        """
        data = await self.receive()
        return data.json()


class ServerWebSocket(BaseWebSocket):
    """
    A server-side websocket.
    Frames sent are never masked, and every frame received must be masked.
    """
    expects_masked = True

    @clear_docstring
    def send_frame(self, frame: WebSocketFrame):
        return super().send_frame(frame, masked=False)

class ClientWebSocket(BaseWebSocket):
    """
    A client-side websocket.
    Frames sent are always masked, and frames received must not be masked.

    Parameters
    -----------
    close_timeout: :class:`float`
        How long :meth:`close` waits for the server's close frame.
    """
    expects_masked = False

    def __init__(
        self,
        reader: StreamReader,
        writer: StreamWriter,
        *,
        max_size: Optional[int] = DEFAULT_MAX_SIZE,
        close_timeout: float = 10.0
    ) -> None:
        super().__init__(reader, writer, max_size=max_size)
        self.close_timeout = close_timeout

    @clear_docstring
    def send_frame(self, frame: WebSocketFrame):
        return super().send_frame(frame, masked=True)

    async def _drain_until_close(self) -> None:
        while True:
            frame = await self._read_frame()
            if frame.opcode is WebSocketOpcode.CLOSE:
                self._received_close_frame = True
                self._close_data = Data.from_frame(frame)

                return

    async def wait_for_close_frame(self) -> None:
        """
        Discards incoming frames until the server's close frame arrives, the connection
        is lost or ``close_timeout`` expires.
        """
        try:
            await asyncio.wait_for(self._drain_until_close(), self.close_timeout)
        except (WebSocketError, PartialRead, ConnectionError, asyncio.TimeoutError) as exc:
            log.debug(f'[WebSocket] Closing handshake did not complete: {exc!r}')


WebSocket = ServerWebSocket
