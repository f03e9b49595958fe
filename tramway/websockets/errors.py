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
from typing import Optional

from tramway.errors import TramwayException
from .enums import WebSocketCloseCode

__all__ = (
    'WebSocketError',
    'WebSocketWarning',
    'WebSocketClosed',
    'InvalidWebSocketFrame',
    'InvalidWebSocketCloseCode',
    'InvalidWebSocketOpcode',
    'InvalidWebSocketPayload',
    'InvalidWebSocketControlFrame',
    'FragmentedControlFrame',
    'MessageTooBig',
)


class WebSocketError(TramwayException):
    """
    Base class for all websocket related errors.

    Attributes
    ----------
    close_code: :class:`~tramway.websockets.WebSocketCloseCode`
        The close code that should be reported to the peer because of this error.
    """
    close_code: WebSocketCloseCode = WebSocketCloseCode.PROTOCOL_ERROR


class WebSocketWarning(Warning):
    """
    A warning related to websocket operations.
    """


class WebSocketClosed(WebSocketError):
    """
    Raised when trying to send or receive on a websocket that is closing or closed.
    """
    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or 'websocket is closed')


class InvalidWebSocketFrame(WebSocketError):
    """
    Base class for all invalid non-control frames errors.
    """


class InvalidWebSocketCloseCode(InvalidWebSocketFrame):
    """
    Raised when a close frame is received with an invalid code.
    """
    def __init__(self, code: int) -> None:
        self.code = code
        super().__init__(f'Received an invalid close code: {code}')


class InvalidWebSocketOpcode(InvalidWebSocketFrame):
    """
    Raised when an invalid opcode is received.
    """
    def __init__(self, opcode: int) -> None:
        self.opcode = opcode
        super().__init__(f'Received an invalid opcode: {opcode}')


class InvalidWebSocketPayload(InvalidWebSocketFrame):
    """
    Raised when a text message or a close reason is not valid UTF-8.
    """
    close_code = WebSocketCloseCode.UNSUPPORTED_PAYLOAD


class InvalidWebSocketControlFrame(WebSocketError):
    """
    Base class for all invalid control frames errors.
    """


class FragmentedControlFrame(InvalidWebSocketControlFrame):
    """
    Raised whenever a control frame is fragmented.
    """
    def __init__(self, received: bool = True) -> None:
        if received:
            message = 'Received a fragmented control frame'
        else:
            message = 'Control frames must not be fragmented'

        super().__init__(message)


class MessageTooBig(WebSocketError):
    """
    Raised when a frame or a reassembled message exceeds the maximum allowed size.
    """
    close_code = WebSocketCloseCode.TOO_LARGE

    def __init__(self, size: int, max_size: int) -> None:
        self.size = size
        self.max_size = max_size

        super().__init__(f'Message of {size} bytes exceeds the limit of {max_size} bytes')
