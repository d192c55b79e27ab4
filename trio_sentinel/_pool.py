import logging
from contextlib import asynccontextmanager

import trio

from ._errors import (
    ClosedError,
    ConnectError,
    DialError,
    MasterAddressError,
    RedisError,
    RoleError,
)
from ._redis import Redis, _BaseRedis, _commands
from ._role import MASTER, check_role
from ._sentinel import Sentinel


__all__ = [
    'ConnectionPool',
    'RedisDialer',
    'SentinelDialer',
    'new_pool',
]


logger = logging.getLogger(__name__)


class SentinelDialer:
    """Dials and validates connections to a Sentinel managed master.

    ``config`` is a ``ClusterConfig``. It's validated before anything
    else happens. One ``Sentinel`` client is created and shared by all
    ``dial`` calls, so master lookups are serialized.
    """
    def __init__(self, config):
        self.config = config.validate()
        self.sentinel = Sentinel(config.sentinels, config.sentinel_timeouts)

    async def dial(self):
        """Connect to the current master.

        Only returns a client if sentinel knows the master, the master is
        reachable and the master still reports itself as master.
        """
        name = self.config.name

        try:
            address = await self.sentinel.master_address(name)
        except RedisError as exc:
            raise MasterAddressError(f'could not get master address of {name!r}: {exc}') from exc

        client = Redis.from_address(address, timeouts=self.config.redis_timeouts)
        try:
            await client.connect()
        except RedisError as exc:
            raise DialError(f'could not connect to master {name!r} at {address}: {exc}') from exc

        try:
            await check_role(client, MASTER)
        except RoleError as exc:
            if client.is_connected:
                await client.aclose()
            raise RoleError(f'dial {address}: failed role check: {exc}') from exc

        logger.debug('connected to master %r at %s', name, address)
        return client

    async def test_on_borrow(self, client, last_used):
        """Raise ``RoleError`` unless ``client`` is still connected to a master."""
        await check_role(client, MASTER)

    async def aclose(self):
        await self.sentinel.aclose()


class RedisDialer:
    """Dials connections to a single Redis server."""
    def __init__(self, host=None, port=None, db=None, url=None, timeouts=None):
        if ((host or port) and url) or not ((host or port) or url):
            raise ValueError('either host and port OR url must be given')
        self.host = host
        self.port = port
        self.db = db
        self.url = url
        self.timeouts = timeouts

    async def dial(self):
        if self.url:
            client = Redis.from_url(self.url, timeouts=self.timeouts)
        else:
            client = Redis(self.host, self.port, self.db, timeouts=self.timeouts)
        await client.connect()
        return client

    async def test_on_borrow(self, client, last_used):
        await client.ping()

    async def aclose(self):
        pass


class ConnectionPool(_BaseRedis, *_commands):
    """A pool of Redis clients.

    It's not needed to explicitly borrow a client from the pool. All
    commands (except SELECT) are implemented, acquiring and releasing
    clients is done behind the scenes.

    ``dialer`` creates and validates clients. It has three async
    methods: ``dial()`` returns a new connected client,
    ``test_on_borrow(client, last_used)`` raises if an idle client must
    not be handed out again and ``aclose()`` releases the dialer's own
    resources. ``last_used`` is the ``trio.current_time()`` at which the
    client was released.

    ``minimum`` clients are created by ``connect()``. At most ``maximum``
    clients are handed out at the same time, ``acquire()`` blocks when
    this limit is reached. At most ``max_idle`` released clients are
    kept, the rest is closed. Idle clients older than ``idle_timeout``
    seconds are closed instead of handed out.

    An instance of this class can be used concurrently. Instances of
    ``Redis`` cannot.
    """
    def __init__(self, dialer, minimum=1, maximum=10, max_idle=10, idle_timeout=240.0):
        self.dialer = dialer
        self.minimum = minimum
        self.maximum = maximum
        self.max_idle = max_idle
        self.idle_timeout = idle_timeout

        self._limit = trio.Semaphore(maximum)
        self._free = []  # (client, last_used) pairs, most recent last.
        self._not_free = []

    @classmethod
    def redis(cls, host=None, port=None, db=None, url=None, timeouts=None, **pool_kwargs):
        return cls(RedisDialer(host, port, db, url, timeouts), **pool_kwargs)

    @classmethod
    def sentinel(cls, config, **pool_kwargs):
        return cls(SentinelDialer(config), **pool_kwargs)

    @property
    def idle(self):
        return [client for client, _ in self._free]

    async def connect(self):
        async def add():
            client = await self.dialer.dial()
            self._free.append((client, trio.current_time()))

        async with trio.open_nursery() as nursery:
            for n in range(self.minimum):
                nursery.start_soon(add)

    async def aclose(self):
        async with trio.open_nursery() as nursery:
            for client in self.idle:
                nursery.start_soon(self._discard, client)
            for client in self._not_free:
                nursery.start_soon(self._discard, client)

        self._free = []
        self._not_free = []
        await self.dialer.aclose()

    async def acquire(self):
        """Acquire a client from the pool.

        Blocks if no client if available.
        """
        await self._limit.acquire()

        try:
            client = await self._get_idle_client()
            if client is None:
                client = await self.dialer.dial()
        except BaseException:
            self._limit.release()
            raise

        self._not_free.append(client)

        return client

    async def _get_idle_client(self):
        now = trio.current_time()

        while self._free:
            client, last_used = self._free.pop()

            if self.idle_timeout is not None and now - last_used > self.idle_timeout:
                logger.debug('closing %r, idle for %.1fs', client, now - last_used)
                await self._discard(client)
                continue

            try:
                await self.dialer.test_on_borrow(client, last_used)
            except RedisError as exc:
                logger.warning('discarding %r: %s', client, exc)
                await self._discard(client)
                continue

            return client

        return None

    async def release(self, client, discard=False):
        """Return ``client`` to the pool.

        Closed clients and clients released with ``discard`` set are
        closed instead of kept.
        """
        self._not_free.remove(client)

        try:
            if discard or not client.is_connected or len(self._free) >= self.max_idle:
                await self._discard(client)
            else:
                self._free.append((client, trio.current_time()))
        finally:
            self._limit.release()

    async def _discard(self, client):
        if client.is_connected:
            await client.aclose()

    @asynccontextmanager
    async def borrow(self):
        """Explicitly borrow a client from the pool.

        For example::

            async with pool.borrow() as client:
                await client.set('a', 1)
                await client.set('b', 2)
                await client.set('c', 3)

        The client is closed instead of returned when the block raises
        ``ClosedError`` or ``ConnectError``.
        """
        client = await self.acquire()
        discard = False
        try:
            yield client
        except (ClosedError, ConnectError):
            discard = True
            raise
        finally:
            await self.release(client, discard=discard)

    async def execute_many(self, commands, parse_callbacks=None):
        client = await self.acquire()
        try:
            return await client.execute_many(commands, parse_callbacks)
        finally:
            await self.release(client)

    def select(self, index):
        raise NotImplementedError('SELECT not implemented for ConnectionPool')


def new_pool(config, **pool_kwargs):
    """Create a pool of clients connected to the master of ``config``.

    ``config`` is validated before anything else, a ``ConfigError`` is
    raised if it's invalid.
    """
    return ConnectionPool.sentinel(config, **pool_kwargs)
