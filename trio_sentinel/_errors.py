class RedisError(Exception):
    pass


class ConnectError(RedisError):
    pass


class DialError(ConnectError):
    pass


class MasterAddressError(ConnectError):
    pass


class BusyError(RedisError):
    pass


class ClosedError(RedisError):
    pass


class TimeoutError(ClosedError):
    pass


class ProtocolError(RedisError):
    pass


class SentinelError(RedisError):
    pass


class RoleError(RedisError):
    pass


class ConfigError(RedisError, ValueError):
    pass


def create_error_from_reply(obj):
    msg = str(obj)

    if msg.startswith('READONLY'):
        cls = ReadOnlyError
    else:
        cls = ReplyError

    return cls(msg)


class ReplyError(RedisError):
    pass


class ReadOnlyError(ReplyError):
    pass
