from ._commands import parse_role
from ._errors import RedisError, RoleError


__all__ = [
    'check_role',
]


MASTER = 'master'


async def check_role(client, expected_role):
    """Check that the server behind ``client`` reports ``expected_role``.

    Uses the ROLE command (Redis 2.8.12+). The Redis client guidelines
    recommend testing the role of every new connection, because a node
    may still be reachable at an address that sentinel no longer
    considers the master. Raises ``RoleError`` if the role differs or
    the reply can't be read.
    """
    try:
        role = await client.execute([b'ROLE'], parse_role)
    except RedisError as exc:
        raise RoleError(f'unable to read role of {client!r}: {exc}') from exc

    if role != expected_role:
        raise RoleError(f'expected role {expected_role!r}, {client!r} reports {role!r}')
