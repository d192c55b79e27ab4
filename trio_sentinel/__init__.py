from ._config import ClusterConfig, Timeouts
from ._errors import (
    BusyError,
    ClosedError,
    ConfigError,
    ConnectError,
    DialError,
    MasterAddressError,
    ProtocolError,
    ReadOnlyError,
    RedisError,
    ReplyError,
    RoleError,
    SentinelError,
    TimeoutError,
)
from ._pool import ConnectionPool, RedisDialer, SentinelDialer, new_pool
from ._redis import Redis
from ._role import check_role
from ._sentinel import Sentinel


__all__ = [
    'BusyError',
    'ClosedError',
    'ClusterConfig',
    'ConfigError',
    'ConnectError',
    'ConnectionPool',
    'DialError',
    'MasterAddressError',
    'ProtocolError',
    'ReadOnlyError',
    'Redis',
    'RedisDialer',
    'RedisError',
    'ReplyError',
    'RoleError',
    'Sentinel',
    'SentinelDialer',
    'SentinelError',
    'TimeoutError',
    'Timeouts',
    'check_role',
    'new_pool',
]
