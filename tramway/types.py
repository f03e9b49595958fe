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
from typing import Any, Callable, Coroutine, Dict, NamedTuple, Optional, TypeVar, Union
from os import PathLike

T = TypeVar('T')

Coro = Coroutine[Any, Any, T]
BytesLike = Union[bytes, bytearray, memoryview]
StrPath = Union[str, 'PathLike[str]']
Reader = Callable[[int], Coro[bytes]]

class Address(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        if ':' in self.host:
            return f'[{self.host}]:{self.port}'

        return f'{self.host}:{self.port}'

    def is_ipv6(self) -> bool:
        return ':' in self.host

class Header(NamedTuple):
    name: str
    value: str

class ParsedResult(NamedTuple):
    status_line: Optional[str]
    body: bytes
    headers: Dict[str, str]
