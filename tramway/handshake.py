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

from typing import Dict, Mapping, NamedTuple, Optional
from http import HTTPStatus
import binascii
import hashlib
import base64
import os

from .streams import StreamReader, StreamWriter
from .errors import HandshakeError, LimitOverrun, PartialRead
from .utils import GUID, CLRF, parse_http_data

__all__ = (
    'HandshakeRequest',
    'HandshakeResponse',
    'MAX_HEAD_SIZE',
    'create_accept_key',
    'generate_websocket_key',
    'validate_request',
    'server_handshake',
    'client_handshake',
)

MAX_HEAD_SIZE = 8192
WEBSOCKET_VERSION = '13'

class HandshakeRequest(NamedTuple):
    method: str
    path: str
    version: str
    headers: Dict[str, str]

class HandshakeResponse(NamedTuple):
    version: str
    status: int
    reason: str
    headers: Dict[str, str]

def create_accept_key(key: str) -> str:
    """
    Computes the ``Sec-WebSocket-Accept`` value for a ``Sec-WebSocket-Key``.

    Parameters
    ----------
    key: :class:`str`
        The key sent by the client.
    """
    sha1 = hashlib.sha1((key + GUID).encode()).digest()
    return base64.b64encode(sha1).decode()

def generate_websocket_key() -> str:
    """
    Generates a random ``Sec-WebSocket-Key``.
    """
    return base64.b64encode(os.urandom(16)).decode()

def _has_token(value: Optional[str], token: str) -> bool:
    if value is None:
        return False

    return token in (part.strip().lower() for part in value.split(','))

def build_http_message(start_line: str, headers: Mapping[str, str]) -> bytes:
    lines = [start_line]
    lines.extend(f'{name}: {value}' for name, value in headers.items())

    return CLRF.join(line.encode('latin-1') for line in lines) + CLRF * 2

async def read_http_head(reader: StreamReader, *, limit: int = MAX_HEAD_SIZE) -> bytes:
    try:
        return await reader.readuntil(CLRF * 2, include=True, limit=limit)
    except PartialRead:
        raise HandshakeError('Connection closed during the opening handshake') from None
    except LimitOverrun:
        raise HandshakeError(
            f'Opening handshake exceeds {limit} bytes', status=HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE
        ) from None

def parse_request(head: bytes) -> HandshakeRequest:
    result = parse_http_data(head)

    parts = (result.status_line or '').split(' ')
    if len(parts) != 3:
        raise HandshakeError(f'Malformed request line: {result.status_line!r}')

    method, path, version = parts
    return HandshakeRequest(method, path, version, result.headers)

def validate_request(request: HandshakeRequest) -> str:
    """
    Validates an opening handshake request and returns its ``Sec-WebSocket-Key``.
    Header names are expected to be lowercased.

    Parameters
    ----------
    request: :class:`~tramway.handshake.HandshakeRequest`
        The request to validate.

    Raises
    ------
    HandshakeError
        If the request is not a valid websocket upgrade request.
    """
    headers = request.headers

    if request.method != 'GET':
        raise HandshakeError(f'Expected a GET request, got {request.method!r}')

    if request.version != 'HTTP/1.1':
        raise HandshakeError(f'Expected HTTP/1.1, got {request.version!r}')

    if 'host' not in headers:
        raise HandshakeError("Missing 'Host' header")

    if not _has_token(headers.get('upgrade'), 'websocket'):
        raise HandshakeError(f"Expected 'Upgrade' header with value 'websocket', got {headers.get('upgrade')!r}")

    if not _has_token(headers.get('connection'), 'upgrade'):
        raise HandshakeError(f"Expected 'Connection' header with value 'upgrade', got {headers.get('connection')!r}")

    version = headers.get('sec-websocket-version')
    if version != WEBSOCKET_VERSION:
        raise HandshakeError(
            f'Unsupported websocket version: {version!r}', status=HTTPStatus.UPGRADE_REQUIRED
        )

    key = headers.get('sec-websocket-key')
    if key is None:
        raise HandshakeError("Missing 'Sec-WebSocket-Key' header")

    try:
        decoded = base64.b64decode(key, validate=True)
    except binascii.Error:
        raise HandshakeError(f'Invalid websocket key: {key!r}') from None

    if len(decoded) != 16:
        raise HandshakeError(f'Invalid websocket key: {key!r}')

    return key

async def reject(writer: StreamWriter, error: HandshakeError) -> None:
    """
    Answers a failed opening handshake with an HTTP error response.

    Parameters
    ----------
    writer: :class:`~tramway.streams.StreamWriter`
        The writer of the connection.
    error: :class:`~tramway.errors.HandshakeError`
        The error that made the handshake fail.
    """
    status = HTTPStatus(error.status)
    headers = {
        'Content-Type': 'text/plain; charset=utf-8',
        'Content-Length': '0',
        'Connection': 'close',
    }

    if status is HTTPStatus.UPGRADE_REQUIRED:
        headers['Sec-WebSocket-Version'] = WEBSOCKET_VERSION

    data = build_http_message(f'HTTP/1.1 {status.value} {status.phrase}', headers)
    await writer.write(data, drain=True)

async def server_handshake(
    reader: StreamReader, writer: StreamWriter, *, limit: int = MAX_HEAD_SIZE
) -> HandshakeRequest:
    """
    Performs the server side of the opening handshake.
    Reads the request, validates it and answers with ``101 Switching Protocols``.

    On failure the appropriate HTTP error response is written before :exc:`~tramway.errors.HandshakeError`
    is raised. The caller is responsible for closing the connection.

    Parameters
    ----------
    reader: :class:`~tramway.streams.StreamReader`
        The reader of the connection.
    writer: :class:`~tramway.streams.StreamWriter`
        The writer of the connection.
    limit: :class:`int`
        The maximum size of the request head.
    """
    try:
        head = await read_http_head(reader, limit=limit)
        request = parse_request(head)
        key = validate_request(request)
    except HandshakeError as exc:
        if not writer.is_closing():
            await reject(writer, exc)

        raise

    headers = {
        'Upgrade': 'websocket',
        'Connection': 'Upgrade',
        'Sec-WebSocket-Accept': create_accept_key(key),
    }

    status = HTTPStatus.SWITCHING_PROTOCOLS
    data = build_http_message(f'HTTP/1.1 {status.value} {status.phrase}', headers)

    await writer.write(data, drain=True)
    return request

async def client_handshake(
    reader: StreamReader,
    writer: StreamWriter,
    host: str,
    path: str = '/',
    *,
    headers: Optional[Mapping[str, str]] = None
) -> HandshakeResponse:
    """
    Performs the client side of the opening handshake.

    Parameters
    ----------
    reader: :class:`~tramway.streams.StreamReader`
        The reader of the connection.
    writer: :class:`~tramway.streams.StreamWriter`
        The writer of the connection.
    host: :class:`str`
        The value of the ``Host`` header.
    path: :class:`str`
        The resource to request.
    headers: Optional[Mapping[:class:`str`, :class:`str`]]
        Extra headers to send.

    Raises
    ------
    HandshakeError
        If the server did not accept the upgrade.
    """
    key = generate_websocket_key()
    request_headers = {
        'Host': host,
        'Upgrade': 'websocket',
        'Connection': 'Upgrade',
        'Sec-WebSocket-Key': key,
        'Sec-WebSocket-Version': WEBSOCKET_VERSION,
    }

    if headers:
        request_headers.update(headers)

    await writer.write(build_http_message(f'GET {path} HTTP/1.1', request_headers), drain=True)

    head = await read_http_head(reader)
    result = parse_http_data(head)

    version, _, rest = (result.status_line or '').partition(' ')
    code, _, reason = rest.partition(' ')

    if not code.isdigit():
        raise HandshakeError(f'Malformed status line: {result.status_line!r}')

    response = HandshakeResponse(version, int(code), reason, result.headers)
    if response.status != HTTPStatus.SWITCHING_PROTOCOLS:
        raise HandshakeError(
            f'Expected status code 101, but received {response.status!r} instead', status=response.status
        )

    if not _has_token(response.headers.get('upgrade'), 'websocket'):
        raise HandshakeError(f"Expected 'Upgrade' header with value 'websocket', got {response.headers.get('upgrade')!r}")

    if not _has_token(response.headers.get('connection'), 'upgrade'):
        raise HandshakeError(f"Expected 'Connection' header with value 'upgrade', got {response.headers.get('connection')!r}")

    accept = response.headers.get('sec-websocket-accept')
    if accept != create_accept_key(key):
        raise HandshakeError(f'Invalid Sec-WebSocket-Accept value: {accept!r}')

    return response
