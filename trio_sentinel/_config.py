from collections import namedtuple
from dataclasses import dataclass, field

from ._errors import ConfigError


__all__ = [
    'ClusterConfig',
    'Timeouts',
]


class Timeouts(namedtuple('Timeouts', ['connect', 'read', 'write'])):
    """Connect, read and write timeouts in seconds.

    ``None`` means the operation is not bounded.
    """
    __slots__ = ()

    def __new__(cls, connect=None, read=None, write=None):
        return super().__new__(cls, connect, read, write)

    @classmethod
    def coerce(cls, value):
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        try:
            connect, read, write = value
        except (TypeError, ValueError):
            raise ConfigError(
                f'timeouts must be a (connect, read, write) triple, got {value!r}'
            ) from None
        return cls(connect, read, write)


def _is_positive(value):
    return value is not None and value > 0


@dataclass
class ClusterConfig:
    """Configuration of a Sentinel managed Redis master.

    ``sentinels`` contains sentinel addresses, either ``host:port``
    strings or ``(host, port)`` pairs. ``sentinel_timeouts`` are used for
    connections to sentinels and ``redis_timeouts`` for connections to
    the master itself.

    Only the connect timeout of ``redis_timeouts`` is required, unless
    ``strict_timeouts`` is set. Then the read and write timeouts must be
    given too. Negative timeouts are never accepted.
    """
    name: str
    sentinels: list
    sentinel_timeouts: Timeouts = field(default_factory=Timeouts)
    redis_timeouts: Timeouts = field(default_factory=Timeouts)
    strict_timeouts: bool = False

    def __post_init__(self):
        self.sentinels = list(self.sentinels or [])
        self.sentinel_timeouts = Timeouts.coerce(self.sentinel_timeouts)
        self.redis_timeouts = Timeouts.coerce(self.redis_timeouts)

    def validate(self):
        if not self.name:
            raise ConfigError('master name is required')
        if not self.sentinels:
            raise ConfigError('at least one sentinel address is required')

        for kind, value in self.sentinel_timeouts._asdict().items():
            if not _is_positive(value):
                raise ConfigError(f'sentinel {kind} timeout must be positive, got {value!r}')

        required = Timeouts._fields if self.strict_timeouts else ('connect',)
        for kind in required:
            value = getattr(self.redis_timeouts, kind)
            if not _is_positive(value):
                raise ConfigError(f'redis {kind} timeout must be positive, got {value!r}')

        for kind, value in self.redis_timeouts._asdict().items():
            if value is not None and value < 0:
                raise ConfigError(f'redis {kind} timeout must not be negative, got {value!r}')

        return self
