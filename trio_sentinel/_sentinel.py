import logging
from collections import namedtuple

import trio

from ._commands import SentinelCommands
from ._config import Timeouts
from ._errors import ConfigError, RedisError, SentinelError
from ._redis import DEFAULT_SENTINEL_PORT, _BareRedis, _parse_url, parse_address


__all__ = [
    'Sentinel',
]


logger = logging.getLogger(__name__)


# The active address index and the (optional) client connected to it.
# Always replaced as a whole, the two must never disagree.
_Session = namedtuple('_Session', ['index', 'client'])


class SentinelNode(_BareRedis, SentinelCommands):
    """Client for a single sentinel."""


class Sentinel:
    """Sentinel client that fails over between sentinel addresses.

    A single connection is kept to the sentinel that answered last. When
    a command fails, the connection is dropped and the next address in
    the list is tried. Every address is tried at most once per command,
    so in a worst-case scenario a command takes ``len(addresses)`` times
    the configured timeouts. Keep the timeouts short, as the Redis
    sentinel client guidelines recommend.

    See: https://redis.io/topics/sentinel-clients

    An instance can be used concurrently. Commands are serialized by a
    lock, only one command is sent to a sentinel at a time.
    """
    node_class = SentinelNode

    @classmethod
    def from_url(cls, urls, timeouts=None):
        addresses = []

        for url in urls:
            tmp = _parse_url(url, default_port=DEFAULT_SENTINEL_PORT)
            if 'db' in tmp:
                raise ConfigError('sentinel client does not support db selection')
            addresses.append((tmp['host'], tmp['port']))

        return cls(addresses, timeouts)

    def __init__(self, addresses, timeouts=None):
        self.addresses = tuple(parse_address(a, DEFAULT_SENTINEL_PORT) for a in addresses)
        if not self.addresses:
            raise ConfigError('at least one sentinel address is required')
        self.timeouts = Timeouts.coerce(timeouts)

        self._session = _Session(0, None)
        self._lock = trio.Lock()

    @property
    def active_address(self):
        host, port = self.addresses[self._session.index]
        return f'{host}:{port}'

    @property
    def is_connected(self):
        client = self._session.client
        return client is not None and client.is_connected

    async def master_address(self, name):
        """Return the ``host:port`` address of master ``name``."""
        async with self._lock:
            try:
                host, port = await self._execute(
                    lambda client: client.get_master_addr_by_name(name),
                )
            except RedisError as exc:
                raise SentinelError(
                    f'unable to get address of master {name!r} from sentinels'
                ) from exc

        logger.debug('master %r is at %s:%s', name, host, port)
        return f'{host}:{port}'

    async def aclose(self):
        async with self._lock:
            await self._drop_client()

    async def _execute(self, command):
        """Execute ``command`` on the first sentinel that answers.

        ``command`` is called with a connected client. Must be called with
        the lock held. The last error is raised if all sentinels fail.
        """
        error = None

        for _ in range(len(self.addresses)):
            try:
                return await self._execute_once(command)
            except RedisError as exc:
                error = exc
                failed = self.active_address
                await self._drop_client(rotate=True)
                logger.warning(
                    'sentinel %s failed, trying %s next: %s',
                    failed, self.active_address, exc,
                )

        raise error

    async def _execute_once(self, command):
        index, client = self._session

        if client is None or not client.is_connected:
            host, port = self.addresses[index]
            client = self.node_class(host, port, timeouts=self.timeouts)
            await client.connect()
            self._session = _Session(index, client)

        return await command(client)

    async def _drop_client(self, rotate=False):
        index, client = self._session
        if rotate:
            index = (index + 1) % len(self.addresses)
        self._session = _Session(index, None)

        if client is not None and client.is_connected:
            await client.aclose()
