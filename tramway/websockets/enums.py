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
import enum
from typing import FrozenSet

__all__ = (
    'WebSocketState',
    'WebSocketOpcode',
    'WebSocketCloseCode',
    'VALID_OPCODES',
    'VALID_CLOSE_CODES',
    'is_valid_close_code',
)

class WebSocketState(enum.Enum):
    """
    An enumeration.
    """
    OPEN = 1
    CLOSING = 2
    CLOSED = 3

class WebSocketOpcode(enum.IntEnum):
    """
    An enumeration.
    """
    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA

    def is_control(self) -> bool:
        return self > 0x7

class WebSocketCloseCode(enum.IntEnum):
    """
    An enumeration. \
    Taken from https://developer.mozilla.org/en-US/docs/Web/API/CloseEvent/code#value

    Attributes
    ----------
    value: :class:`int`
        The value of the enum.
    name: :class:`str`
        The name of the enum.
    description: :class:`str`
        A description of the close code.
    reason: :class:`str`
        The reason for the close code.
    """
    description: str
    reason: str

    def __new__(cls, value: int, reason: str = '', description: str = '') -> 'WebSocketCloseCode':
        obj = int.__new__(cls, value)

        obj._value_ = value
        obj.reason = reason
        obj.description = description

        obj.__doc__ = description
        return obj

    NORMAL = 1000, 'Normal Closure', \
        'Normal closure; the connection successfully completed whatever purpose for which it was created.'
    GOING_AWAY = 1001, 'Going Away', \
        'The endpoint is going away, either because of a server failure or because the browser is navigating away from the page that opened the connection.'
    PROTOCOL_ERROR = 1002, 'Protocol Error', \
        'The endpoint is terminating the connection due to a protocol error.'
    UNSUPPORTED = 1003, 'Unsupported Data', \
        'The connection is being terminated because the endpoint received data of a type it cannot accept (for example, a text-only endpoint received binary data).'
    RESERVED = 1004, 'Reserved', \
        'Reserved for future use by the WebSocket standard.'
    NO_STATUS = 1005, 'No Status Received', \
        'Indicates that no status code was provided even though one was expected.'
    ABNORMAL = 1006, 'Abnormal Closure', \
        'Used to indicate that a connection was closed abnormally (that is, with no close frame being sent) when a status code is expected.'
    UNSUPPORTED_PAYLOAD = 1007, 'Unsupported Payload Data', \
        'Indicates that an endpoint is terminating the connection because it received a message that contained inconsistent data (e.g., non-UTF-8 data within a text message).'
    POLICY_VIOLATION = 1008, 'Policy Violation', \
        'Indicates that an endpoint is terminating the connection because it received a message that violates its policy. This is a generic status code, used when codes 1003 and 1009 are not suitable.'
    TOO_LARGE = 1009, 'Message Too Large', \
        'Indicates that an endpoint is terminating the connection because it received a message that is too big for it to process.'
    MANDATORY_EXTENSION = 1010, 'Mandatory Extension', \
        'Indicates that an endpoint (client) is terminating the connection because it expected the server to negotiate one or more extension, but the server didn\'t.'
    INTERNAL_ERROR = 1011, 'Internal Error', \
        'Indicates that an endpoint is terminating the connection because it encountered an unexpected condition that prevented it from fulfilling the request.'
    SERVICE_RESTART = 1012, 'Service Restart', \
        'Indicates that the service will be restarted.'
    TRY_AGAIN_LATER = 1013, 'Try Again Later', \
        'Indicates that the service is restarted after a temporary interruption.'
    BAD_GATEWAY = 1014, 'Bad Gateway', \
        'Indicates that the server, while acting as a gateway or proxy, received an invalid response from the upstream server it accessed in attempting to fulfill the request.'
    TLS_HANDSHAKE = 1015, 'TLS Handshake', \
        'Indicates that the connection was closed due to a failure to perform a TLS handshake (e.g., the server certificate can\'t be verified).'


VALID_OPCODES: FrozenSet[int] = frozenset(opcode.value for opcode in WebSocketOpcode)

# 1004, 1005, 1006 and 1015 must never be sent on the wire
VALID_CLOSE_CODES: FrozenSet[int] = frozenset(
    code.value for code in WebSocketCloseCode
    if code not in (1004, 1005, 1006, 1015)
)

def is_valid_close_code(code: int) -> bool:
    """
    Checks whether a close code may appear inside of a close frame.
    Codes in the 3000-4999 range are reserved for libraries and applications and are always valid.

    Parameters
    ----------
    code: :class:`int`
        The close code to check.
    """
    return code in VALID_CLOSE_CODES or 3000 <= code <= 4999
