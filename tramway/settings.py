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

from typing import Any, Callable, Dict, Optional, TypedDict, Union
import ssl as _ssl
import logging
import os

from .errors import InvalidSetting
from .types import StrPath
from .utils import LOCALHOST, LOCALHOST_V6, SETTING_ENV_PREFIX, loads, parse_address, validate_ip

__all__ = (
    'SettingsDict',
    'Settings',
    'default_ssl_context',
)

DEFAULT_PORT = 8080
DEFAULT_BACKLOG = 200
DEFAULT_MAX_SIZE = 2 ** 20
DEFAULT_LOG_LEVEL = 'INFO'

def default_ssl_context() -> _ssl.SSLContext:
    return _ssl.create_default_context(purpose=_ssl.Purpose.CLIENT_AUTH)

def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')

    return bool(value)

class SettingsDict(TypedDict):
    host: str
    port: int
    ipv6: bool
    backlog: int
    prefix: str
    forward_binary: bool
    max_size: int
    ssl: Optional[_ssl.SSLContext]
    log_level: str

class Settings:
    """
    The configuration of an echo server.

    Parameters
    ----------
    host: Optional[:class:`str`]
        The host to bind. Defaults to ``127.0.0.1``, or ``::1`` if ``ipv6`` is set.
    port: Optional[:class:`int`]
        The port to bind. Defaults to ``8080``.
    ipv6: :class:`bool`
        Whether to bind an IPv6 socket.
    backlog: Optional[:class:`int`]
        The maximum number of queued connections. Defaults to ``200``.
    prefix: Optional[:class:`str`]
        A literal prepended to echoed text messages. Defaults to an empty string, a pure echo.
    forward_binary: :class:`bool`
        Whether binary messages are echoed back. Defaults to ``True``.
    max_size: Optional[:class:`int`]
        The maximum size of a message in bytes. Defaults to 1 MiB.
    ssl: Union[:class:`bool`, :class:`ssl.SSLContext`]
        An SSL context, or ``True`` to create a default one.
    log_level: Optional[:class:`str`]
        The name of the logging level. Defaults to ``INFO``.

    Raises
    ------
    InvalidSetting
        If any of the values is invalid.
    """
    __slots__ = (
        'host', 'port', 'ipv6', 'backlog', 'prefix', 'forward_binary', 'max_size', 'ssl', 'log_level'
    )

    def __init__(
        self,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
        ipv6: bool = False,
        backlog: Optional[int] = None,
        prefix: Optional[str] = None,
        forward_binary: bool = True,
        max_size: Optional[int] = None,
        ssl: Union[bool, _ssl.SSLContext, None] = False,
        log_level: Optional[str] = None
    ):
        self.ipv6 = _to_bool(ipv6)
        self.host = self._validate_host(host)
        self.port = self._validate_int('port', port, DEFAULT_PORT, minimum=0, maximum=65535)
        self.backlog = self._validate_int('backlog', backlog, DEFAULT_BACKLOG, minimum=0)
        self.max_size = self._validate_int('max_size', max_size, DEFAULT_MAX_SIZE, minimum=1)
        self.forward_binary = _to_bool(forward_binary)

        if prefix is not None and not isinstance(prefix, str):
            raise InvalidSetting('prefix', 'must be a str')
        self.prefix = prefix or ''

        if isinstance(ssl, _ssl.SSLContext):
            self.ssl: Optional[_ssl.SSLContext] = ssl
        else:
            self.ssl = default_ssl_context() if _to_bool(ssl) else None

        level = (log_level or DEFAULT_LOG_LEVEL).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise InvalidSetting('log_level', f'unknown logging level {log_level!r}')
        self.log_level = level

    def __repr__(self) -> str:
        return f'<Settings host={self.host!r} port={self.port!r} prefix={self.prefix!r}>'

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Settings):
            return NotImplemented

        return self.to_dict() == other.to_dict()

    def __getitem__(self, item: str):
        try:
            return self.__getattribute__(item)
        except AttributeError:
            raise KeyError(item) from None

    def __setitem__(self, key: str, value: Any) -> None:
        return self.__setattr__(key, value)

    def _validate_host(self, host: Optional[str]) -> str:
        try:
            return validate_ip(host, ipv6=self.ipv6)
        except ValueError as exc:
            raise InvalidSetting('host', str(exc)) from None

    @staticmethod
    def _validate_int(
        name: str, value: Any, default: int, *, minimum: int, maximum: Optional[int] = None
    ) -> int:
        if value is None:
            return default

        if isinstance(value, str):
            if not value.strip().isdigit():
                raise InvalidSetting(name, f'{value!r} is not an integer')

            value = int(value)

        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidSetting(name, 'must be an integer')

        if value < minimum or (maximum is not None and value > maximum):
            bounds = f'{minimum}-{maximum}' if maximum is not None else f'>= {minimum}'
            raise InvalidSetting(name, f'must be in range {bounds}')

        return value

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> Settings:
        """
        Creates settings from ``TRAMWAY_*`` environment variables, e.g. ``TRAMWAY_PORT``.
        Unset variables fall back to the defaults.

        Parameters
        ----------
        environ: Optional[Dict[:class:`str`, :class:`str`]]
            The mapping to read from. Defaults to :data:`os.environ`.
        """
        env = os.environ if environ is None else environ
        return cls(**cls._collect(lambda name: env.get(SETTING_ENV_PREFIX + name.upper())))

    @classmethod
    def from_json(cls, data: Union[StrPath, Dict[str, Any]]) -> Settings:
        """
        Creates settings from a JSON file or an already parsed dictionary.

        Parameters
        ----------
        data: Union[:class:`str`, :class:`os.PathLike`, :class:`dict`]
            A path to a JSON file or a dictionary.
        """
        if isinstance(data, (str, os.PathLike)):
            with open(data, 'rb') as f:
                value = loads(f.read())
        else:
            value = data

        if not isinstance(value, dict):
            raise InvalidSetting('config', 'expected a JSON object')

        unknown = set(value) - set(cls.__slots__)
        if unknown:
            raise InvalidSetting('config', f'unknown settings {sorted(unknown)!r}')

        return cls(**value)

    @classmethod
    def from_address(cls, address: str, **kwargs: Any) -> Settings:
        """
        Creates settings from a ``host:port`` address string.

        Parameters
        ----------
        address: :class:`str`
            The address to parse, e.g. ``127.0.0.1:8080`` or ``[::1]:8080``.
        **kwargs: Any
            Other settings.
        """
        try:
            parsed = parse_address(address)
        except ValueError as exc:
            raise InvalidSetting('address', str(exc)) from None

        kwargs.setdefault('ipv6', parsed.is_ipv6())
        return cls(host=parsed.host, port=parsed.port, **kwargs)

    @classmethod
    def _collect(cls, getter: Callable[[str], Any]) -> Dict[str, Any]:
        kwargs = {}
        for setting in cls.__slots__:
            value = getter(setting)
            if value is not None:
                kwargs[setting] = value

        return kwargs

    def update(self, **kwargs: Any) -> Settings:
        """
        Returns new settings with the given values replaced. ``None`` values are ignored.
        """
        values: Dict[str, Any] = self.to_dict()
        values.update({key: value for key, value in kwargs.items() if value is not None})

        if 'ipv6' in kwargs and kwargs['ipv6'] and 'host' not in kwargs:
            if values['host'] == LOCALHOST:
                values['host'] = LOCALHOST_V6

        return self.__class__(**values)

    def to_dict(self) -> SettingsDict:
        return {
            'host': self.host,
            'port': self.port,
            'ipv6': self.ipv6,
            'backlog': self.backlog,
            'prefix': self.prefix,
            'forward_binary': self.forward_binary,
            'max_size': self.max_size,
            'ssl': self.ssl,
            'log_level': self.log_level,
        }
