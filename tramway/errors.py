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

__all__ = (
    'TramwayException',
    'PartialRead',
    'LimitOverrun',
    'BindError',
    'HandshakeError',
    'InvalidSetting',
)

class TramwayException(Exception):
    """Base inheritance class for errors that occur during the server's runtime."""

class PartialRead(TramwayException):
    """Raised when the peer closes the stream before enough data could be read."""
    def __init__(self, partial: bytes, expected: Optional[int]) -> None:
        self.partial = partial
        self.length = len(partial)
        self.expected = 'unspecified' if expected is None else str(expected)

        super().__init__(f'Expected a total of {self.expected} bytes, but only got {self.length}')

class LimitOverrun(TramwayException):
    """Raised when a delimiter is not found within the allowed number of bytes."""
    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f'Delimiter not found within {limit} bytes')

class BindError(TramwayException):
    """
    Raised when the listening socket could not be bound.

    Attributes
    ----------
    host: Optional[:class:`str`]
        The host that was being bound.
    port: Optional[:class:`int`]
        The port that was being bound.
    """
    def __init__(self, host: Optional[str], port: Optional[int], error: OSError) -> None:
        self.host = host
        self.port = port
        self.error = error

        super().__init__(f'Could not bind to {host}:{port}: {error.strerror or error}')

class HandshakeError(TramwayException):
    """
    Raised when an opening handshake does not conform to the websocket upgrade protocol.

    Attributes
    ----------
    status: :class:`int`
        The HTTP status the server answers with.
    """
    def __init__(self, message: str, *, status: int = 400) -> None:
        self.status = status
        super().__init__(message)

class InvalidSetting(TramwayException, ValueError):
    """Raised when a setting has an invalid value."""
    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f'Invalid value for {name!r}: {message}')
