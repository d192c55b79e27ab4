import pytest
import trio

from trio_sentinel import (
    ClosedError,
    ConfigError,
    ConnectError,
    ProtocolError,
    ReplyError,
    Sentinel,
    SentinelError,
    TimeoutError,
    Timeouts,
)
from trio_sentinel.testing_utils import FakeRedisServer, Raw, fake_sentinel, unused_address


TIMEOUTS = Timeouts(1.0, 0.2, 0.2)


class BrokenSentinel(FakeRedisServer):
    async def handle_command(self, command):
        return self.CLOSE


class FlakySentinel(FakeRedisServer):
    """Drops the connection for the first ``failures`` commands."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    async def handle_command(self, command):
        if self.failures:
            self.failures -= 1
            return self.CLOSE
        return [b'10.0.0.9', b'6379']


async def test_master_address(start_server):
    server = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([server.address], TIMEOUTS)
    assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert server.commands == [[b'SENTINEL', b'get-master-addr-by-name', b'mycluster']]
    await sentinel.aclose()


async def test_failover_to_next_sentinel(start_server):
    s1 = await start_server(BrokenSentinel())
    s2 = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([s1.address, s2.address], TIMEOUTS)
    assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert sentinel.active_address == s2.address
    assert len(s1.commands) == 1
    assert len(s2.commands) == 1
    await sentinel.aclose()


async def test_failover_after_timeout(start_server):
    s1 = await start_server(FakeRedisServer({b'SENTINEL': FakeRedisServer.HANG}))
    s2 = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([s1.address, s2.address], TIMEOUTS)
    with trio.fail_after(2.0):
        assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert sentinel.active_address == s2.address
    await sentinel.aclose()


async def test_failover_from_unreachable_sentinel(start_server):
    server = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([unused_address(), server.address], TIMEOUTS)
    assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert sentinel.active_address == server.address
    await sentinel.aclose()


async def test_sticks_to_working_sentinel(start_server):
    s1 = await start_server(BrokenSentinel())
    s2 = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([s1.address, s2.address], TIMEOUTS)
    for _ in range(3):
        assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'

    # The connection to the working sentinel is reused.
    assert len(s1.commands) == 1
    assert len(s2.commands) == 3
    assert s2.connections == 1
    await sentinel.aclose()


async def test_all_sentinels_fail(start_server):
    servers = [await start_server(BrokenSentinel()) for _ in range(3)]

    sentinel = Sentinel([s.address for s in servers], TIMEOUTS)
    with pytest.raises(SentinelError) as exc_info:
        await sentinel.master_address('mycluster')

    assert isinstance(exc_info.value.__cause__, ClosedError)
    # Every sentinel is tried exactly once.
    assert [len(s.commands) for s in servers] == [1, 1, 1]
    assert not sentinel.is_connected
    await sentinel.aclose()


async def test_last_error_is_raised(start_server):
    s1 = await start_server(BrokenSentinel())

    sentinel = Sentinel([s1.address, unused_address()], TIMEOUTS)
    with pytest.raises(SentinelError) as exc_info:
        await sentinel.master_address('mycluster')

    assert isinstance(exc_info.value.__cause__, ConnectError)


async def test_rotation_wraps_around(start_server):
    s1 = await start_server(FlakySentinel(failures=1))
    s2 = await start_server(BrokenSentinel())

    sentinel = Sentinel([s1.address, s2.address], TIMEOUTS)
    with pytest.raises(SentinelError):
        await sentinel.master_address('mycluster')
    assert sentinel.active_address == s1.address

    assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert len(s2.commands) == 1
    await sentinel.aclose()


async def test_unknown_master_tries_next_sentinel(start_server):
    s1 = await start_server(FakeRedisServer({b'SENTINEL': None}))
    s2 = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([s1.address, s2.address], TIMEOUTS)
    assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert sentinel.active_address == s2.address
    await sentinel.aclose()


async def test_invalid_reply_tries_next_sentinel(start_server):
    s1 = await start_server(FakeRedisServer({
        b'SENTINEL': Raw(b'HTTP/1.1 400 Bad Request\r\n\r\n'),
    }))
    s2 = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([s1.address, s2.address], TIMEOUTS)
    assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert sentinel.active_address == s2.address

    # The connection with the broken stream is closed.
    with trio.fail_after(1.0):
        while s1.active_connections:
            await trio.sleep(0.01)
    await sentinel.aclose()


async def test_unknown_master(start_server):
    server = await start_server(FakeRedisServer({b'SENTINEL': None}))

    sentinel = Sentinel([server.address], TIMEOUTS)
    with pytest.raises(SentinelError) as exc_info:
        await sentinel.master_address('mycluster')
    assert isinstance(exc_info.value.__cause__, ProtocolError)


async def test_error_reply(start_server):
    server = await start_server(FakeRedisServer({
        b'SENTINEL': Exception('ERR No such master with that name'),
    }))

    sentinel = Sentinel([server.address], TIMEOUTS)
    with pytest.raises(SentinelError) as exc_info:
        await sentinel.master_address('mycluster')
    assert isinstance(exc_info.value.__cause__, ReplyError)


async def test_timeout(start_server):
    server = await start_server(FakeRedisServer({b'SENTINEL': FakeRedisServer.HANG}))

    sentinel = Sentinel([server.address], TIMEOUTS)
    with pytest.raises(SentinelError) as exc_info:
        await sentinel.master_address('mycluster')
    assert isinstance(exc_info.value.__cause__, TimeoutError)


async def test_concurrent_master_address(start_server):
    class SlowSentinel(FakeRedisServer):
        in_flight = 0
        max_in_flight = 0

        async def handle_command(self, command):
            self.in_flight += 1
            self.max_in_flight = max(self.in_flight, self.max_in_flight)
            await trio.sleep(0.01)
            self.in_flight -= 1
            return [b'10.0.0.9', b'6379']

    server = await start_server(SlowSentinel())
    sentinel = Sentinel([server.address], TIMEOUTS)
    results = []

    async def lookup():
        results.append(await sentinel.master_address('mycluster'))

    async with trio.open_nursery() as nursery:
        for _ in range(10):
            nursery.start_soon(lookup)

    assert results == ['10.0.0.9:6379'] * 10
    assert server.max_in_flight == 1
    assert server.connections == 1
    await sentinel.aclose()


async def test_aclose(start_server):
    server = await start_server(fake_sentinel('10.0.0.9', 6379))

    sentinel = Sentinel([server.address], TIMEOUTS)
    await sentinel.master_address('mycluster')
    assert sentinel.is_connected

    await sentinel.aclose()
    assert not sentinel.is_connected
    # Closing twice is fine.
    await sentinel.aclose()

    # The next lookup reconnects to the same sentinel.
    assert await sentinel.master_address('mycluster') == '10.0.0.9:6379'
    assert server.connections == 2
    await sentinel.aclose()


def test_addresses():
    sentinel = Sentinel(['10.0.0.1:26379', ('10.0.0.2', 26380), '10.0.0.3'])
    assert sentinel.addresses == (
        ('10.0.0.1', 26379),
        ('10.0.0.2', 26380),
        ('10.0.0.3', 26379),
    )
    assert sentinel.active_address == '10.0.0.1:26379'


def test_from_url():
    sentinel = Sentinel.from_url(['redis://10.0.0.1', 'redis://10.0.0.2:26380'])
    assert sentinel.addresses == (('10.0.0.1', 26379), ('10.0.0.2', 26380))


def test_from_url_with_db():
    with pytest.raises(ConfigError):
        Sentinel.from_url(['redis://10.0.0.1/1'])


def test_no_addresses():
    with pytest.raises(ConfigError):
        Sentinel([])
