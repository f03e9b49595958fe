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

from typing import TYPE_CHECKING, Callable, NamedTuple, Optional, Protocol
import enum

from .websockets import Data, WebSocketOpcode

if TYPE_CHECKING:
    from .settings import Settings

__all__ = (
    'Action',
    'Decision',
    'Policy',
    'TransformPolicy',
    'EchoPolicy',
)

class Action(enum.Enum):
    """
    What a connection should do with a received message.
    """
    REPLY = 'reply'
    IGNORE = 'ignore'
    CLOSE = 'close'

class Decision(NamedTuple):
    action: Action
    response: Optional[Data] = None

    @classmethod
    def reply(cls, response: Data) -> Decision:
        return cls(Action.REPLY, response)

    @classmethod
    def ignore(cls) -> Decision:
        return cls(Action.IGNORE)

    @classmethod
    def close(cls) -> Decision:
        return cls(Action.CLOSE)

class Policy(Protocol):
    """
    Decides, per received message, whether to reply, ignore it or close the connection.
    A policy must be deterministic and must not keep state shared between connections.
    """
    def dispatch(self, data: Data) -> Decision:
        ...

class TransformPolicy:
    """
    A policy which answers every text message with ``transform(text)``.

    Parameters
    ----------
    transform: Callable[[:class:`str`], :class:`str`]
        The function applied to the payload of text messages.
    forward_binary: :class:`bool`
        Whether binary messages are sent back verbatim. If ``False`` they are ignored.
    """
    def __init__(self, transform: Callable[[str], str], *, forward_binary: bool = True) -> None:
        self.transform = transform
        self.forward_binary = forward_binary

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} forward_binary={self.forward_binary}>'

    def dispatch(self, data: Data) -> Decision:
        opcode = data.opcode

        if opcode is WebSocketOpcode.TEXT:
            response = Data(WebSocketOpcode.TEXT, self.transform(data.text()).encode('utf-8'))
            return Decision.reply(response)

        if opcode is WebSocketOpcode.BINARY:
            if not self.forward_binary:
                return Decision.ignore()

            return Decision.reply(Data(WebSocketOpcode.BINARY, data.data))

        if opcode is WebSocketOpcode.CLOSE:
            return Decision.close()

        # Pings are answered by the websocket itself.
        return Decision.ignore()

class EchoPolicy(TransformPolicy):
    """
    Echoes text messages back with ``prefix`` prepended. The default empty prefix is a pure echo.

    Parameters
    ----------
    prefix: :class:`str`
        A literal prepended to every echoed text message, e.g. ``'Echo: '``.
    forward_binary: :class:`bool`
        Whether binary messages are sent back verbatim. If ``False`` they are ignored.
    """
    def __init__(self, prefix: str = '', *, forward_binary: bool = True) -> None:
        self.prefix = prefix
        super().__init__(self.echo, forward_binary=forward_binary)

    def __repr__(self) -> str:
        return f'<EchoPolicy prefix={self.prefix!r} forward_binary={self.forward_binary}>'

    def echo(self, text: str) -> str:
        return self.prefix + text

    @classmethod
    def from_settings(cls, settings: Settings) -> EchoPolicy:
        return cls(settings.prefix, forward_binary=settings.forward_binary)
