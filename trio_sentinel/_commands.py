# Reply parsing follows redis-py where possible.
# See: https://github.com/andymccurdy/redis-py/blob/master/redis/client.py


from ._errors import ProtocolError


__all__ = [
    'ConnectionCommands',
    'SentinelCommands',
    'ServerCommands',
    'StringCommands',
]


def bool_ok(reply):
    return reply == b'OK'


def decode(value):
    if not isinstance(value, bytes):
        raise ProtocolError(f'expected a bulk string, got {value!r}')
    try:
        return value.decode('utf-8')
    except UnicodeDecodeError as exc:
        raise ProtocolError(f'cannot decode {value!r}') from exc


def parse_master_addr(reply):
    """Parse the ``[host, port]`` reply of get-master-addr-by-name.

    Sentinel replies with a null when it does not know the master.
    """
    if not isinstance(reply, list) or len(reply) != 2:
        raise ProtocolError(f'expected a [host, port] reply, got {reply!r}')
    host, port = (decode(v) for v in reply)
    return host, port


def parse_role(reply):
    if not isinstance(reply, list) or not reply:
        raise ProtocolError(f'expected a non-empty ROLE reply, got {reply!r}')
    return decode(reply[0])


class ConnectionCommands:
    def select(self, index):
        return self.execute([b'SELECT', index], bool_ok)

    def ping(self):
        return self.execute([b'PING'])


class ServerCommands:
    def flushdb(self):
        return self.execute([b'FLUSHDB'], bool_ok)

    def role(self):
        """Return the raw ROLE reply, e.g. ``[b'master', 0, []]``."""
        return self.execute([b'ROLE'])


class SentinelCommands:
    def get_master_addr_by_name(self, name):
        return self.execute([b'SENTINEL', b'get-master-addr-by-name', name], parse_master_addr)


class StringCommands:
    def set(self, key, value, ex=None, px=None, nx=False, xx=False):
        pieces = [b'SET', key, value]

        if ex is not None:
            pieces.extend([b'EX', ex])
        if px is not None:
            pieces.extend([b'PX', px])

        if nx:
            pieces.append(b'NX')
        if xx:
            pieces.append(b'XX')

        return self.execute(pieces, bool_ok)

    def get(self, key):
        return self.execute([b'GET', key])
