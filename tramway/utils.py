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

from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, Optional, TypeVar
import functools
import asyncio
import socket

import orjson

from .types import Address, Header, ParsedResult

if TYPE_CHECKING:
    F = TypeVar('F', bound=Callable[..., Any])

__all__ = (
    'LOCALHOST',
    'LOCALHOST_V6',
    'GUID',
    'CLRF',
    'SETTING_ENV_PREFIX',
    'dumps',
    'loads',
    'iscoroutinefunction',
    'clear_docstring',
    'has_ipv6',
    'is_ipv6',
    'is_ipv4',
    'validate_ip',
    'parse_address',
    'parse_headers',
    'parse_http_data',
)

LOCALHOST = '127.0.0.1'
LOCALHOST_V6 = '::1'
GUID = '258EAFA5-E914-47DA-95CA-C5AB0DC85B11'
CLRF = b'\r\n'
SETTING_ENV_PREFIX = 'TRAMWAY_'

def dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode('utf-8')

def loads(obj: Any) -> Any:
    return orjson.loads(obj)

def unwrap_function(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Unwraps a function.

    Parameters
    ----------
    func: Callable[..., Any]
        The function to unwrap.
    """
    while True:
        if hasattr(func, '__wrapped__'):
            func = func.__wrapped__
        elif isinstance(func, functools.partial):
            func = func.func
        else:
            return func

def iscoroutinefunction(obj: Any) -> bool:
    """
    Checks if a given object is a coroutine function.

    Parameters
    ----------
    obj: Any
        The object to check.
    """
    obj = unwrap_function(obj)
    return asyncio.iscoroutinefunction(obj)

def clear_docstring(func: F) -> F:
    """
    Clears the docstring of the decorated function.

    Parameters
    ----------
    func: Callable[..., Any]
        The function to clear the docstring of.
    """
    func.__doc__ = ''
    return func

def has_ipv6() -> bool:
    """
    A helper function that checks if the system supports IPv6.
    """
    return socket.has_ipv6

def is_ipv6(ip: str) -> bool:
    """
    A helper function that checks if a given IP address is a valid IPv6 one.

    Parameters
    ----------
    ip: :class:`str`
        A string representing an IP address.
    """
    try:
        socket.inet_pton(socket.AF_INET6, ip)
        return True
    except (OSError, ValueError):
        return False

def is_ipv4(ip: str) -> bool:
    """
    A helper function that checks if a given IP address is a valid IPv4 one.

    Parameters
    ----------
    ip: :class:`str`
        A string representing an IP address.
    """
    try:
        socket.inet_pton(socket.AF_INET, ip)
        return True
    except (OSError, ValueError):
        return False

def validate_ip(ip: Optional[str] = None, *, ipv6: bool = False) -> str:
    """
    A helper function that validates an IP address.
    If an IP address is not given it will return the localhost address.
    ``localhost`` is accepted as-is.

    Parameters
    ----------
    ip: Optional[:class:`str`]
        The IP address to validate.
    ipv6: Optional[:class:`bool`]
        Whether to validate an IPv6 address or not. Defaults to `False`.
    """
    if not ip:
        if ipv6:
            return LOCALHOST_V6

        return LOCALHOST

    if ip == 'localhost':
        return ip

    if ipv6:
        if not is_ipv6(ip):
            raise ValueError(f'{ip!r} is not a valid IPv6 address')

        return ip
    else:
        if not is_ipv4(ip):
            raise ValueError(f'{ip!r} is not a valid IPv4 address')

        return ip

def parse_address(address: str) -> Address:
    """
    Parses a ``host:port`` bind address.
    IPv6 hosts must be enclosed in brackets, e.g. ``[::1]:8080``.

    Parameters
    ----------
    address: :class:`str`
        The address to parse.

    Raises
    ------
    ValueError
        If the address is malformed, the host is not a valid IP address or the port is out of range.
    """
    address = address.strip()

    if address.startswith('['):
        host, sep, port = address[1:].partition(']:')
        if not sep:
            raise ValueError(f'{address!r} is not a valid address')

        validate_ip(host, ipv6=True)
    else:
        host, sep, port = address.rpartition(':')
        if not sep or not host:
            raise ValueError(f'{address!r} is not a valid address, expected host:port')

        validate_ip(host)

    if not port.isdigit():
        raise ValueError(f'{port!r} is not a valid port')

    number = int(port)
    if not 0 <= number <= 65535:
        raise ValueError('port must be in range 0-65535')

    return Address(host, number)

def parse_headers(raw_headers: bytes) -> Iterator[Header]:
    for line in raw_headers.split(b'\r\n'):
        if not line:
            break
        name, _, value = line.partition(b':')

        if not value:
            continue

        yield Header(name.decode('latin-1').strip(), value.decode('latin-1').strip())

def parse_http_data(data: bytes, *, strip_status_line: bool = True) -> ParsedResult:
    end = data.find(b'\r\n\r\n') + 4
    headers, body = data[:end], data[end:]

    status_line, raw_headers = None, headers
    if strip_status_line:
        line, _, raw_headers = headers.partition(b'\r\n')
        status_line = line.decode('latin-1')

    # Repeated headers are folded into one comma separated value.
    parsed: Dict[str, str] = {}
    for header in parse_headers(raw_headers):
        name = header.name.lower()
        parsed[name] = f'{parsed[name]}, {header.value}' if name in parsed else header.value

    return ParsedResult(status_line=status_line, body=body, headers=parsed)

