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

from typing import TYPE_CHECKING, Any, Literal, Optional, Tuple, Type, TypeVar, overload
import struct
import os

from tramway.types import BytesLike, Reader
from tramway.utils import loads
from .enums import WebSocketCloseCode, WebSocketOpcode, VALID_OPCODES, is_valid_close_code
from .errors import (
    InvalidWebSocketCloseCode,
    InvalidWebSocketControlFrame,
    InvalidWebSocketFrame,
    InvalidWebSocketOpcode,
    InvalidWebSocketPayload,
    FragmentedControlFrame,
    MessageTooBig,
)

if TYPE_CHECKING:
    Format = Literal['short', 'longlong', 'head']

    from enum import IntEnum
    _T = TypeVar('_T', bound=IntEnum)

SHORT = struct.Struct('!H')
LONGLONG = struct.Struct('!Q')
HEAD = struct.Struct('!BB')

FORMATS = {
    'short': SHORT,
    'longlong': LONGLONG,
    'head': HEAD
}

MAX_CONTROL_PAYLOAD = 125


def _try_enum(enum: Type[_T], value: int) -> int:
    try:
        return enum(value)
    except ValueError:
        return value


__all__ = (
    'Data',
    'WebSocketFrame',
)


class Data:
    """
    Returned by :meth:`~tramway.websockets.ServerWebSocket.receive`.
    The opcode tells which kind of message this is: text, binary, close, ping or pong.

    Attributes
    -----------
    opcode: :class:`~tramway.websockets.WebSocketOpcode`
        The opcode of the message.
    data: :class:`bytes`
        The payload received. For close messages this excludes the close code.
    close_code: Optional[:class:`int`]
        The close code, only set for close messages that carried one.
    close_reason: :class:`str`
        The close reason, only set for close messages.
    """
    __slots__ = ('opcode', 'data', 'close_code', 'close_reason')

    def __init__(
        self,
        opcode: WebSocketOpcode,
        data: BytesLike = b'',
        *,
        close_code: Optional[int] = None,
        close_reason: str = ''
    ) -> None:
        self.opcode = opcode
        self.data = bytes(data)
        self.close_code = close_code
        self.close_reason = close_reason

    def __repr__(self) -> str:
        return f'<Data opcode={self.opcode!r} length={len(self.data)}>'

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Data):
            return NotImplemented

        return (
            self.opcode == other.opcode
            and self.data == other.data
            and self.close_code == other.close_code
        )

    @classmethod
    def from_frame(cls, frame: WebSocketFrame) -> Data:
        return cls(
            frame.opcode,  # type: ignore
            frame.data,
            close_code=frame.close_code,
            close_reason=frame.close_reason
        )

    def is_text(self) -> bool:
        return self.opcode is WebSocketOpcode.TEXT

    def is_binary(self) -> bool:
        return self.opcode is WebSocketOpcode.BINARY

    def is_close(self) -> bool:
        return self.opcode is WebSocketOpcode.CLOSE

    def text(self) -> str:
        """
        The data received as a string.
        """
        return self.data.decode('utf-8')

    def json(self) -> Any:
        """
        The data received as a JSON object.
        """
        return loads(self.data)


class WebSocketFrame:
    """
    Represents a websocket data frame.

    Parameters
    -----------
    data: :class:`bytes`
        The frame's data. Can be any bytes-like object.
    head: :class:`int`
        The frame's first byte, holding the fin bit, the reserved bits and the opcode.
    """
    def __init__(self, *, data: BytesLike = b'', head: int = 0):
        self.data = bytes(data)

        self._head = head
        self.close_code: Optional[int] = None
        self.close_reason: str = ''

    def __repr__(self) -> str:
        attrs = ('opcode', 'fin', 'rsv1', 'rsv2', 'rsv3')
        s = ' '.join(f'{name}={getattr(self, name)!r}' for name in attrs)
        return f'<{self.__class__.__name__} {s}>'

    def _modify_head(self, value: bool, bit: int):
        if value:
            self._head |= 1 << bit
        else:
            self._head &= ~(1 << bit)

    @classmethod
    def create(cls, data: BytesLike, *, opcode: WebSocketOpcode, fin: bool = True):
        """
        Creates a non-control frame.

        Parameters
        ----------
        data: :class:`bytes`
            The frame's data. Can be any bytes-like object.
        opcode: :class:`~.WebSocketOpcode`
            The frame's opcode
        fin: :class:`bool`
            Whether this is the final frame of a message.
        """
        self = cls(data=data)

        self.opcode = opcode
        self.fin = fin

        return self

    @classmethod
    def create_control_frame(cls, data: BytesLike, *, opcode: WebSocketOpcode):
        """
        Creates a control frame.

        Parameters
        ----------
        data: :class:`bytes`
            The frame's data. Can be any bytes-like object.
        opcode: :class:`~.WebSocketOpcode`
            The frame's opcode

        Raises
        -------
        InvalidWebSocketControlFrame
            If the data is longer than 125 bytes.
        """
        if len(data) > MAX_CONTROL_PAYLOAD:
            raise InvalidWebSocketControlFrame('Control frames must not carry more than 125 bytes')

        return cls.create(data=data, opcode=opcode)

    @classmethod
    def create_close_frame(cls, code: Optional[int] = None, reason: str = ''):
        """
        Creates a close frame.

        Parameters
        ----------
        code: Optional[:class:`int`]
            The close code. If not given, the frame is sent with an empty payload.
        reason: :class:`str`
            The close reason. Ignored if ``code`` is not given.
        """
        self = cls.create_control_frame(
            cls.pack_close_payload(code, reason), opcode=WebSocketOpcode.CLOSE
        )
        self.close_code = code
        self.close_reason = reason if code is not None else ''

        return self

    @staticmethod
    def pack_close_payload(code: Optional[int], reason: str = '') -> bytes:
        if code is None:
            return b''

        return SHORT.pack(code) + reason.encode('utf-8')

    def _parse_close_payload(self) -> None:
        data = self.data
        if not data:
            return

        if len(data) < 2:
            raise InvalidWebSocketFrame('Received a close frame with a payload of 1 byte')

        code, = SHORT.unpack(data[:2])
        if not is_valid_close_code(code):
            raise InvalidWebSocketCloseCode(code)

        try:
            reason = data[2:].decode('utf-8')
        except UnicodeDecodeError:
            raise InvalidWebSocketPayload('Received a close frame with an invalid UTF-8 reason') from None

        self.close_code = _try_enum(WebSocketCloseCode, code)
        self.close_reason = reason
        self.data = data[2:]

    @classmethod
    async def decode(
        cls,
        reader: Reader,
        *,
        max_size: Optional[int] = None,
        masked: Optional[bool] = None
    ) -> WebSocketFrame:
        """
        Decodes a websocket frame.

        Parameters
        ----------
        reader: Callable[[int], Coroutine[Any, Any, bytes]]
            A coroutine function that takes in an integer and returns the data read.
            The data read will be and must be of the length passed in.
        max_size: Optional[:class:`int`]
            The maximum payload length accepted.
        masked: Optional[:class:`bool`]
            Whether the frame is required to be masked (``True``), required to be unmasked (``False``)
            or either (``None``).

        Raises
        -------
        InvalidWebSocketOpcode
            If the opcode received is not a valid one.
        InvalidWebSocketFrame
            If the frame received has reserved bits set, is not masked as required
            or is a close frame with a 1 byte payload.
        InvalidWebSocketCloseCode
            If a close frame carries a close code that must not be sent.
        InvalidWebSocketPayload
            If a close frame's reason is not valid UTF-8.
        FragmentedControlFrame
            If the control frame received is fragmented.
        InvalidWebSocketControlFrame
            If the control frame received's data length is more than 125.
        MessageTooBig
            If the payload length exceeds ``max_size``.
        """
        fbyte, sbyte = await cls.unpack(reader, 2, 'head')

        frame = cls(head=fbyte)

        opcode = fbyte & 0x0F
        if opcode not in VALID_OPCODES:
            raise InvalidWebSocketOpcode(opcode)

        if any((frame.rsv1, frame.rsv2, frame.rsv3)):
            raise InvalidWebSocketFrame('Received a frame with reserved bits set')

        is_masked = bool(sbyte & 0x80)
        if masked is not None and is_masked is not masked:
            if masked:
                raise InvalidWebSocketFrame('Received an unmasked frame from a client')

            raise InvalidWebSocketFrame('Received a masked frame from a server')

        length = sbyte & 0x7F

        if frame.is_control():
            if not frame.fin:
                raise FragmentedControlFrame

            if length > MAX_CONTROL_PAYLOAD:
                raise InvalidWebSocketControlFrame(
                    'Received a control frame with a payload length of more than 125 bytes'
                )

        if length == 126:
            length, = await cls.unpack(reader, 2, 'short')
        elif length == 127:
            length, = await cls.unpack(reader, 8, 'longlong')

        if max_size is not None and length > max_size:
            raise MessageTooBig(length, max_size)

        mask = None
        if is_masked:
            mask = await reader(4)

        data = await reader(length) if length else b''
        if mask is not None:
            data = cls.mask(data, mask)

        frame.data = data
        if frame.opcode is WebSocketOpcode.CLOSE:
            frame._parse_close_payload()

        return frame

    def encode(self, *, masked: bool = False) -> bytes:
        """
        Encodes the frame into its wire representation.

        Parameters
        ----------
        masked: :class:`bool`
            Whether to mask the payload with a random key. Clients must mask every frame they send.
        """
        if self.opcode is WebSocketOpcode.CLOSE and self.close_code is not None:
            data = self.pack_close_payload(self.close_code, self.close_reason)
        else:
            data = self.data

        buffer = bytearray(self.pack(self._head, 'byte'))
        mask_bit = 0x80 if masked else 0

        length = len(data)
        if length < 126:
            buffer.extend(self.pack(mask_bit | length, 'byte'))
        elif length < (1 << 16):
            buffer.extend(self.pack(mask_bit | 126, 'byte'))
            buffer.extend(self.pack(length, 'short'))
        else:
            buffer.extend(self.pack(mask_bit | 127, 'byte'))
            buffer.extend(self.pack(length, 'longlong'))

        if masked:
            mask = os.urandom(4)

            buffer.extend(mask)
            data = self.mask(data, mask)

        buffer.extend(data)
        return bytes(buffer)

    @overload
    @staticmethod
    async def unpack(reader: Reader, size: int, format: Literal['short', 'longlong']) -> Tuple[int]:
        ...
    @overload
    @staticmethod
    async def unpack(reader: Reader, size: int, format: Literal['head']) -> Tuple[int, int]:
        ...
    @staticmethod
    async def unpack(reader: Reader, size: int, format: Format) -> Tuple[int, ...]:
        """
        Reads data from the reader and unpacks the data.
        Valid formats are: ``short``, ``longlong``, ``head``.

        Parameters
        ----------
        reader: Callable[[int], Coroutine[Any, Any, bytes]]
            A coroutine function that takes in an integer and returns the data read.
            The data read will be and must be of the length passed in.
        size: :class:`int`
            The size of the data to be read.
        format: :class:`str`
            The format to unpack the data with.

        Raises
        -------
        ValueError
            If the format is not valid.
        """
        struct = FORMATS.get(format)
        if not struct:
            raise ValueError(f'Unknown format {format}')

        data = await reader(size)
        return struct.unpack(data)

    @staticmethod
    def pack(data: int, format: Literal['byte', 'short', 'longlong']) -> bytes:
        """
        Packs the data into the format.
        Valid formats are: ``byte``, ``short``, ``longlong``.

        Parameters
        ----------
        data: :class:`int`
            The data to be packed.
        format: :class:`str`
            The format to pack the data with.

        Raises
        -------
        ValueError
            If the format is not valid.
        """
        if format == 'byte':
            return bytes((data,))

        fmt = FORMATS.get(format)
        if not fmt or format == 'head':
            raise ValueError(f'Unknown format {format}')

        return fmt.pack(data)

    @staticmethod
    def mask(data: bytes, mask: bytes) -> bytes:
        """
        Masks the data passed in. Masking is its own inverse, so this also unmasks.

        Parameters
        ----------
        data: :class:`bytes`
            The data to mask.
        mask: :class:`bytes`
            The 4 byte mask to use.
        """
        length = len(data)
        if not length:
            return b''

        key = (mask * (length // 4 + 1))[:length]
        value = int.from_bytes(data, 'big') ^ int.from_bytes(key, 'big')

        return value.to_bytes(length, 'big')

    @property
    def opcode(self) -> int:
        """
        The frame's opcode
        """
        return _try_enum(WebSocketOpcode, self._head & 0x0F)

    @opcode.setter
    def opcode(self, value: WebSocketOpcode):
        self._head = (self._head & 0xF0) | int(value)

    @property
    def fin(self) -> bool:
        """
        Whether the frame is the final frame in a fragmented message.
        """
        return bool(self._head & 0x80)

    @fin.setter
    def fin(self, value: bool):
        self._modify_head(value, 7)

    @property
    def rsv1(self) -> bool:
        return bool(self._head & 0x40)

    @rsv1.setter
    def rsv1(self, value: bool):
        self._modify_head(value, 6)

    @property
    def rsv2(self) -> bool:
        return bool(self._head & 0x20)

    @rsv2.setter
    def rsv2(self, value: bool):
        self._modify_head(value, 5)

    @property
    def rsv3(self) -> bool:
        return bool(self._head & 0x10)

    @rsv3.setter
    def rsv3(self, value: bool):
        self._modify_head(value, 4)

    def is_control(self) -> bool:
        """
        Whether this frame is a control frame or not
        """
        return (self._head & 0x0F) > 0x7
