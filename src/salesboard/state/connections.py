"""Live connections partitioned by declared role."""

from __future__ import annotations

import logging
from typing import Protocol

from salesboard.models.messages import ClientRole

_logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Structural interface of a bidirectional text channel.

    :class:`aiohttp.web.WebSocketResponse` satisfies it; tests pass small
    in-memory doubles.
    """

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def close(self) -> object: ...


class ConnectionRegistry:
    """Two disjoint connection sets, one per role.

    The role recorded at registration is the one used for removal, so a
    connection never has to be re-inspected on disconnect.
    """

    def __init__(self) -> None:
        self._members: dict[ClientRole, set[Connection]] = {role: set() for role in ClientRole}
        self._roles: dict[Connection, ClientRole] = {}

    def register(self, connection: Connection, role: ClientRole) -> bool:
        """Add *connection* to the set for *role*.

        A role is fixed for the lifetime of a connection: registering again
        with the same role is a no-op, with another role it is refused.
        """
        current = self._roles.get(connection)
        if current is not None:
            if current != role:
                _logger.warning("Refusing role change %s -> %s for registered connection", current, role)
                return False
            return True
        self._roles[connection] = role
        self._members[role].add(connection)
        return True

    def unregister(self, connection: Connection) -> ClientRole | None:
        role = self._roles.pop(connection, None)
        if role is not None:
            self._members[role].discard(connection)
        return role

    def role_of(self, connection: Connection) -> ClientRole | None:
        return self._roles.get(connection)

    def members(self, role: ClientRole) -> tuple[Connection, ...]:
        """Snapshot of the connections holding *role* at call time."""
        return tuple(self._members[role])

    def count(self, role: ClientRole) -> int:
        return len(self._members[role])
