from itertools import repeat
from urllib.parse import urlparse

import hiredis

from . import _errors
from ._commands import (
    ConnectionCommands,
    ServerCommands,
    StringCommands,
)
from ._config import Timeouts
from ._connection import Connection


__all__ = [
    'Redis',
]


_commands = (
    ConnectionCommands,
    ServerCommands,
    StringCommands,
)


DEFAULT_HOST = 'localhost'
DEFAULT_PORT = 6379
DEFAULT_SENTINEL_PORT = 26379


class _BaseRedis:
    """Abstract class for Redis clients."""
    # Alias exceptions. No need to import them. :)
    RedisError = _errors.RedisError
    ConnectError = _errors.ConnectError
    BusyError = _errors.BusyError
    ClosedError = _errors.ClosedError
    TimeoutError = _errors.TimeoutError
    ProtocolError = _errors.ProtocolError
    ReplyError = _errors.ReplyError
    ReadOnlyError = _errors.ReadOnlyError

    async def execute(self, command, parse_callback=None):
        reply = (await self.execute_many([command], [parse_callback or _noop]))[0]
        if isinstance(reply, _errors.ReplyError):
            raise reply
        return reply

    async def execute_many(self, commands, parse_callbacks=None):
        """Execute ``commands`` and return their replies in order.

        Error replies are returned as ``ReplyError`` instances, so one
        failing command does not hide the replies of the others.
        """
        raise NotImplementedError('please implement this')


class _BareRedis(_BaseRedis):
    """Redis client w/o command methods."""

    @classmethod
    def from_url(cls, url, timeouts=None):
        kwargs = _parse_url(url)
        return cls(timeouts=timeouts, **kwargs)

    @classmethod
    def from_address(cls, address, timeouts=None, db=None):
        host, port = parse_address(address)
        return cls(host, port, db=db, timeouts=timeouts)

    def __init__(self, host=None, port=None, db=None, timeouts=None):
        self.host = host or DEFAULT_HOST
        self.port = DEFAULT_PORT if port is None else port
        self.db = db
        self.timeouts = Timeouts.coerce(timeouts)
        self._conn = Connection(self.host, self.port, self.timeouts)

    def __repr__(self):
        return f'<{type(self).__name__} {self.address}>'

    @property
    def address(self):
        return f'{self.host}:{self.port}'

    @property
    def is_connected(self):
        return self._conn.is_connected

    async def connect(self):
        await self._conn.connect()
        if self.db is not None:
            await self.select(self.db)

    async def aclose(self):
        await self._conn.aclose()

    async def execute_many(self, commands, parse_callbacks=None):
        if not parse_callbacks:
            parse_callbacks = repeat(_noop)

        replies = await self._conn.execute_many(commands)
        replies = [
            self._parse_reply(reply, cb)
            for reply, cb in zip(replies, parse_callbacks)
        ]

        return replies

    def _parse_reply(self, reply, parse_callback):
        if isinstance(reply, hiredis.ReplyError):
            reply = _errors.create_error_from_reply(reply)
        else:
            reply = parse_callback(reply)
        return reply


class Redis(_BareRedis, *_commands):
    """Basic Redis client."""


def parse_address(address, default_port=DEFAULT_PORT):
    """Parse a ``host:port`` string or a ``(host, port)`` pair.

    The port is split off at the last colon, the host part may contain
    colons itself.
    """
    if isinstance(address, (tuple, list)):
        try:
            host, port = address
        except ValueError:
            raise _errors.ConfigError(f'invalid address {address!r}') from None
    elif isinstance(address, str):
        host, sep, port = address.rpartition(':')
        if not sep:
            host, port = address, default_port
    else:
        raise _errors.ConfigError(f'invalid address {address!r}')

    if not host:
        raise _errors.ConfigError(f'missing host in {address!r}')
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise _errors.ConfigError(f'invalid port in {address!r}') from None

    return host, port


def _parse_url(url, default_port=DEFAULT_PORT):
    """Parse a Redis URL.

    This is only a partial implementation that only supports a hostname,
    port, and database. Query parameters are rejected. See the `URI
    scheme`_ at IANA for a complete description of the URI scheme.

    .. _URI scheme: https://www.iana.org/assignments/uri-schemes/prov/redis
    """
    kwargs = {
        'host': DEFAULT_HOST,
        'port': default_port,
    }

    url = urlparse(url)
    if not url.scheme:
        raise _errors.ConfigError(f'missing scheme in {url!r}')
    if url.scheme != 'redis':
        raise _errors.ConfigError(f'unsupported scheme in {url!r}')

    if url.hostname:
        kwargs['host'] = url.hostname
    if url.port:
        kwargs['port'] = url.port

    db = url.path[1:]
    if db:
        if not db.isdigit():
            raise _errors.ConfigError(f'db must be a digit in {url!r}')
        kwargs['db'] = int(db)

    if url.query:
        raise _errors.ConfigError(f'query parameters are not supported in {url!r}')

    return kwargs


def _noop(value):
    return value
