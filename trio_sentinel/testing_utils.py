"""
Testing utilities for trio_sentinel.

Load as a pytest plugin, e.g. in ``conftest.py``::

    pytest_plugins = ['trio_sentinel.testing_utils']
"""

import socket
from functools import partial

import hiredis
import pytest
import trio


@pytest.fixture(scope='function')
async def start_server(nursery):
    """Start a ``FakeRedisServer`` in the test's nursery.

    Returns the started server::

        server = await start_server(FakeRedisServer({b'PING': 'PONG'}))
    """
    async def start(server):
        return await nursery.start(server.run_forever)
    return start


class FakeRedisServer:
    """A TCP server that speaks just enough RESP for tests.

    ``replies`` maps command names (upper case bytes) to replies. Other
    commands get an error reply. Subclasses can override
    ``handle_command()`` for more control. Besides a reply, it can return
    ``HANG`` to never reply or ``CLOSE`` to close the connection.

    All received commands are recorded in ``commands``. ``connections``
    counts accepted connections and ``active_connections`` the ones that
    are still open.
    """
    HANG = object()
    CLOSE = object()

    def __init__(self, replies=None):
        self.replies = replies or {}
        self.host = '127.0.0.1'
        self.port = None
        self.commands = []
        self.connections = 0
        self.active_connections = 0

    @property
    def address(self):
        return f'{self.host}:{self.port}'

    async def run_forever(self, task_status=trio.TASK_STATUS_IGNORED):
        async with trio.open_nursery() as nursery:
            listeners = await nursery.start(
                partial(trio.serve_tcp, self.handle_client, 0, host=self.host),
            )
            self.port = listeners[0].socket.getsockname()[1]
            task_status.started(self)

    async def handle_client(self, stream):
        self.connections += 1
        self.active_connections += 1
        parser = hiredis.Reader()

        try:
            while True:
                data = await stream.receive_some()
                if not data:
                    return
                parser.feed(data)
                while True:
                    command = parser.gets()
                    if command is False:
                        break  # Read more data.
                    self.commands.append(command)
                    reply = await self.handle_command(command)
                    if reply is self.HANG:
                        await trio.sleep_forever()
                    if reply is self.CLOSE:
                        return
                    await stream.send_all(encode_reply(reply))
        except (trio.BrokenResourceError, trio.ClosedResourceError):
            # The client went away, nothing left to do.
            pass
        finally:
            self.active_connections -= 1

    async def handle_command(self, command):
        name = command[0].upper()
        if name in self.replies:
            return self.replies[name]
        return Exception(f"ERR unknown command '{name.decode()}'")


def fake_sentinel(master_host='127.0.0.1', master_port=6379):
    return FakeRedisServer({
        b'SENTINEL': [master_host.encode(), str(master_port).encode()],
    })


def fake_redis(role=b'master'):
    return FakeRedisServer({
        b'ROLE': [role, 0, []],
        b'PING': 'PONG',
        b'SET': 'OK',
        b'GET': None,
    })


class Raw(bytes):
    """Reply bytes that are sent without RESP encoding."""


def encode_reply(value):
    """Encode ``value`` as a RESP reply.

    ``str`` becomes a simple string, ``bytes`` a bulk string and an
    exception an error reply. ``Raw`` bytes are sent as they are.
    """
    if value is None:
        return b'$-1\r\n'
    if isinstance(value, Raw):
        return bytes(value)
    if isinstance(value, Exception):
        return b'-%b\r\n' % str(value).encode('utf-8')
    if isinstance(value, str):
        return b'+%b\r\n' % value.encode('utf-8')
    if isinstance(value, int):
        return b':%d\r\n' % value
    if isinstance(value, bytes):
        return b'$%d\r\n%b\r\n' % (len(value), value)
    if isinstance(value, (list, tuple)):
        return b'*%d\r\n' % len(value) + b''.join(encode_reply(v) for v in value)
    raise ValueError(f'cannot encode {value!r}')


def unused_address():
    """Return a ``host:port`` address nobody listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return '127.0.0.1:%d' % sock.getsockname()[1]
