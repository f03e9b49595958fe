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
from typing import Any, List, Optional, Type
import argparse
import logging
import sys

from . import compat
from .app import EchoServer
from .errors import BindError
from .settings import Settings
from .utils import loads

log = logging.getLogger('tramway')

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

def create_argument(parser: argparse.ArgumentParser, *names: str, type: Type[Any], help: str) -> None:
    parser.add_argument(*names, type=type, required=False, default=None, help=help)

def create_arguments() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='tramway', description='A websocket echo server.')

    parser.add_argument('address', nargs='?', default=None, help='The address to bind, as host:port.')
    create_argument(parser, '--host', type=str, help='The host to bind.')
    create_argument(parser, '--port', '-p', type=int, help='The port to bind.')
    create_argument(parser, '--prefix', type=str, help='A literal prepended to echoed text messages.')
    create_argument(parser, '--max-size', type=int, help='The maximum size of a message in bytes.')
    create_argument(parser, '--backlog', type=int, help='The maximum number of queued connections.')
    create_argument(parser, '--config', '-c', type=str, help='A JSON file to load settings from.')
    create_argument(parser, '--log-level', type=str, help='The logging level, e.g. DEBUG or INFO.')

    parser.add_argument('--ipv6', action='store_true', default=None, help='Bind an IPv6 socket.')
    parser.add_argument(
        '--no-binary', dest='forward_binary', action='store_false', default=None,
        help='Ignore binary messages instead of echoing them.'
    )

    return parser

def load_settings(args: argparse.Namespace) -> Settings:
    """
    Builds the settings with the precedence: defaults < environment < config file < command line.
    """
    settings = Settings.from_env()

    if args.config is not None:
        with open(args.config, 'rb') as f:
            values = loads(f.read())

        # Only the keys present in the file override the environment.
        Settings.from_json(values)
        settings = settings.update(**values)

    if args.address is not None:
        address = Settings.from_address(args.address)
        settings = settings.update(host=address.host, port=address.port, ipv6=address.ipv6 or None)

    return settings.update(
        host=args.host,
        port=args.port,
        ipv6=args.ipv6,
        prefix=args.prefix,
        forward_binary=args.forward_binary,
        max_size=args.max_size,
        backlog=args.backlog,
        log_level=args.log_level,
    )

def main(argv: Optional[List[str]] = None) -> int:
    parser = create_arguments()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    try:
        settings = load_settings(args)
    except (ValueError, OSError) as exc:
        parser.error(str(exc))

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    compat.install_uvloop()

    loop = compat.new_event_loop()
    compat.set_event_loop(loop)

    server = EchoServer(settings, loop=loop)

    try:
        server.run()
    except BindError as exc:
        log.error(f'[Server] {exc}')
        return 1
    finally:
        loop.close()
        compat.set_event_loop(None)

    return 0

if __name__ == '__main__':
    sys.exit(main())
