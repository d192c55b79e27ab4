import logging
import math

import hiredis
import trio

from ._config import Timeouts
from ._errors import BusyError, ClosedError, ConnectError, ProtocolError, TimeoutError


__all__ = [
    'Connection',
]


logger = logging.getLogger(__name__)


class Connection:
    """A TCP connection to a Redis server or sentinel.

    Connecting is bounded by the connect timeout of ``timeouts``. The
    write timeout bounds sending a request and the read timeout bounds
    reading its replies. A timed out connection is closed, because a
    late reply would otherwise be read as the reply of the next command.
    """
    def __init__(self, host, port, timeouts=None):
        self.host = host
        self.port = port
        self.timeouts = Timeouts.coerce(timeouts)

        self._is_connected = False
        self._is_busy = False
        self._stream = None
        self._parser = hiredis.Reader()

        self._cleanup_timeout = 5.0

    def __repr__(self):
        return f'<{type(self).__name__} {self.host}:{self.port} connected={self._is_connected}>'

    @property
    def is_connected(self):
        return self._is_connected

    async def connect(self):
        if self._is_connected:
            raise BusyError('already connected')
        logger.debug('connecting to %s:%s', self.host, self.port)
        try:
            with trio.fail_after(_seconds(self.timeouts.connect)):
                self._stream = await trio.open_tcp_stream(self.host, self.port)
        except trio.TooSlowError:
            raise ConnectError(f'timed out connecting to {self.host}:{self.port}') from None
        except OSError as exc:
            raise ConnectError(f'unable to connect to {self.host}:{self.port}: {exc}') from exc
        self._parser = hiredis.Reader()
        self._is_connected = True

    async def aclose(self):
        if not self._is_connected:
            raise ClosedError('already closed')
        try:
            await self._stream.aclose()
        finally:
            self._stream = None
            self._is_connected = False

    async def execute(self, command):
        return (await self.execute_many((command,)))[0]

    async def execute_many(self, commands):
        if not self._is_connected:
            raise ClosedError('cannot execute command, connection is closed')
        if self._is_busy:
            raise BusyError('another task is currently executing a command')
        self._is_busy = True

        try:
            request = b''.join([_build_request(cmd) for cmd in commands])
            with trio.fail_after(_seconds(self.timeouts.write)):
                await self._stream.send_all(request)
            with trio.fail_after(_seconds(self.timeouts.read)):
                return await self._read_reply(expected=len(commands))
        except trio.TooSlowError:
            await self._close_after_failure()
            raise TimeoutError(f'timed out waiting for {self.host}:{self.port}') from None
        except (trio.BrokenResourceError, trio.ClosedResourceError, OSError) as exc:
            await self._close_after_failure()
            raise ClosedError(f'connection to {self.host}:{self.port} broke: {exc}') from exc
        except hiredis.ProtocolError as exc:
            # The parser can't recover, the rest of the stream is garbage.
            await self._close_after_failure()
            raise ProtocolError(f'invalid reply from {self.host}:{self.port}: {exc}') from exc
        except ClosedError:
            await self._close_after_failure()
            raise
        except trio.Cancelled:
            # The old connection might still receive a reply from Redis
            # and the next command would read it as its own reply.
            await self._close_after_failure()
            raise
        finally:
            self._is_busy = False

    async def _close_after_failure(self):
        if not self._is_connected:
            return
        with trio.move_on_after(self._cleanup_timeout) as cleanup_scope:
            cleanup_scope.shield = True
            await self.aclose()

    async def _read_reply(self, expected=1):
        """Read and parse replies from connection.

        ``expected`` is the amount of expected replies. In case of
        pipelining this number is set to the amount of commands sent.
        """
        replies = []

        while True:
            data = await self._stream.receive_some()
            if data == b'':
                raise ClosedError('connection unexpectedly closed')
            self._parser.feed(data)
            while True:
                reply = self._parser.gets()
                if reply is False:
                    break  # Read more data, go back to the outer loop.
                replies.append(reply)
                if len(replies) == expected:
                    return replies


def _seconds(timeout):
    return math.inf if timeout is None else timeout


def _build_request(args):
    """Build a RESP request.

    A request is a RESP array of bulk strings, e.g. ``ROLE``::

        *1\r\n$4\r\nROLE\r\n

    See `Redis Protocol specification`_ for more information.

    .. _Redis Protocol specification: https://redis.io/topics/protocol

    hiredis only decodes replies, it has no API to build requests.
    """
    out = b'*%d\r\n' % len(args)

    for part in args:
        if isinstance(part, str):
            part = part.encode('utf-8')
        elif isinstance(part, int):
            part = b'%d' % part
        elif not isinstance(part, bytes):
            raise ValueError('only bytes, str, and int are supported')
        out += b'$%d\r\n%b\r\n' % (len(part), part)

    return out
