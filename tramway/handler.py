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
import enum
import logging

from .dispatcher import Action, Policy
from .errors import PartialRead
from .websockets import BaseWebSocket, WebSocketCloseCode, WebSocketError

__all__ = (
    'ConnectionState',
    'ConnectionHandler',
)

log = logging.getLogger(__name__)

# Errors which mean the transport itself is gone, so no closing handshake is attempted.
TRANSPORT_ERRORS = (PartialRead, ConnectionError, OSError)

class ConnectionState(enum.Enum):
    OPEN = 'open'
    CLOSING = 'closing'
    CLOSED = 'closed'

class ConnectionHandler:
    """
    Runs the receive loop of a single websocket connection.

    Every received message is handed to the policy, whose decision is then acted upon.
    Messages are handled one at a time, in the order they arrive, and a handler only ever
    reads from and writes to its own websocket.

    Parameters
    ----------
    websocket: :class:`~tramway.websockets.BaseWebSocket`
        The websocket owned by this handler.
    policy: :class:`~tramway.dispatcher.Policy`
        The policy used to decide what to do with each message.
    id: :class:`int`
        An identifier used in log messages.

    Attributes
    ----------
    state: :class:`~tramway.handler.ConnectionState`
        The state of the connection.
    messages: :class:`int`
        The number of messages received so far.
    """
    def __init__(self, websocket: BaseWebSocket, policy: Policy, *, id: int = 0) -> None:
        self.websocket = websocket
        self.policy = policy
        self.id = id
        self.state = ConnectionState.OPEN
        self.messages = 0
        self.error: Optional[BaseException] = None

    def __repr__(self) -> str:
        return f'<ConnectionHandler id={self.id} state={self.state}>'

    @property
    def name(self) -> str:
        return f'Connection-{self.id}'

    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def abandon(self) -> None:
        """
        Drops the connection without a closing handshake.
        """
        self.state = ConnectionState.CLOSED
        self.websocket.abort()

    async def close(self, code: Optional[int] = None) -> None:
        """
        Performs the closing handshake, falling back to dropping the connection if the
        close frame cannot be written.

        Parameters
        ----------
        code: Optional[:class:`int`]
            The close code to send. If not given and the peer sent a close frame, its code is echoed.
        """
        if self.is_closed():
            return

        self.state = ConnectionState.CLOSING

        try:
            await self.websocket.close(code=code)
        except (WebSocketError, *TRANSPORT_ERRORS) as exc:
            log.debug(f'[{self.name}] Could not send a close frame: {exc!r}')

        self.abandon()

    async def run(self) -> None:
        """
        Receives messages until the peer closes the connection or an error occurs.
        This never raises for connection level failures, they are logged instead.
        """
        try:
            await self._run()
        finally:
            if not self.is_closed():
                self.abandon()

            log.info(f'[{self.name}] Connection closed after {self.messages} message(s).')

    async def _run(self) -> None:
        while self.state is ConnectionState.OPEN:
            try:
                data = await self.websocket.receive()
            except WebSocketError as exc:
                log.warning(f'[{self.name}] Protocol error: {exc}')
                self.error = exc

                return await self.close(exc.close_code)
            except TRANSPORT_ERRORS as exc:
                log.warning(f'[{self.name}] Connection lost while reading: {exc!r}')
                self.error = exc

                return self.abandon()

            self.messages += 1
            log.debug(f'[{self.name}] Received {data!r}.')

            try:
                decision = self.policy.dispatch(data)
            except Exception as exc:
                log.exception(f'[{self.name}] Policy failed to handle {data!r}')
                self.error = exc

                return await self.close(WebSocketCloseCode.INTERNAL_ERROR)

            if decision.action is Action.CLOSE:
                log.debug(f'[{self.name}] Received a close frame with code {data.close_code!r}.')
                return await self.close()

            if decision.action is Action.REPLY and decision.response is not None:
                try:
                    await self.websocket.send_data(decision.response)
                except (WebSocketError, *TRANSPORT_ERRORS) as exc:
                    log.warning(f'[{self.name}] Connection lost while writing: {exc!r}')
                    self.error = exc

                    return self.abandon()
