"""ServerPool — authoritative state for a fixed set of backend servers.

Owns every mutation of server load and availability. Routing reads
value copies from snapshot() so decisions never alias live state.
"""

import logging
from typing import Iterable

from lb_simulator.config import BackendServer
from lb_simulator.errors import InvalidServerReference, PoolInvariantError

logger = logging.getLogger(__name__)


class ServerPool:
    """Ordered, fixed-size collection of backend servers.

    Server identity is stable for the life of the pool; there is no
    add/remove. Load is kept within [0, capacity].
    """

    def __init__(self, servers: Iterable[BackendServer]):
        self.servers: dict[int, BackendServer] = {
            s.id: s.model_copy() for s in servers
        }
        self._initial = [s.model_copy() for s in self.servers.values()]

    def __len__(self) -> int:
        return len(self.servers)

    def get(self, server_id: int) -> BackendServer:
        """Return the live server record, or raise InvalidServerReference."""
        try:
            return self.servers[server_id]
        except KeyError:
            raise InvalidServerReference(server_id) from None

    def server_ids(self) -> list[int]:
        return list(self.servers)

    def eligible_servers(self) -> list[BackendServer]:
        """Servers that are available with spare capacity, in pool order.

        An empty list means the pool is saturated.
        """
        return [s.model_copy() for s in self.servers.values() if s.is_eligible]

    def increment_load(self, server_id: int) -> None:
        """Take one slot on an eligible server.

        Routing only hands out eligible ids, so anything else is a defect
        in the caller and fails fast.
        """
        server = self.servers.get(server_id)
        if server is None:
            raise PoolInvariantError(f"increment_load on unknown server {server_id}")
        if not server.is_eligible:
            raise PoolInvariantError(
                f"increment_load on ineligible {server.name} "
                f"(available={server.available}, "
                f"load={server.load}/{server.capacity})"
            )
        server.load += 1
        logger.debug(f"{server.name} load {server.load}/{server.capacity}")

    def decrement_load(self, server_id: int) -> None:
        """Release one slot. Clamped at zero, legal even on an unavailable server."""
        server = self.get(server_id)
        server.load = max(0, server.load - 1)
        logger.debug(f"{server.name} load {server.load}/{server.capacity}")

    def set_availability(self, server_id: int, available: bool) -> bool:
        """Set availability; going down abandons in-flight load.

        Returns True if the availability actually changed.
        """
        server = self.get(server_id)
        if server.available == available:
            return False
        server.available = available
        if not available:
            # In-flight requests are abandoned, not drained.
            server.load = 0
        logger.info(
            f"{server.name} is now {'available' if available else 'unavailable'}"
        )
        return True

    def toggle_availability(self, server_id: int) -> bool:
        """Flip availability and return the new value."""
        server = self.get(server_id)
        self.set_availability(server_id, not server.available)
        return server.available

    def snapshot(self) -> list[BackendServer]:
        """Value copies of every server, in pool order."""
        return [s.model_copy() for s in self.servers.values()]

    def loads(self) -> tuple[int, ...]:
        return tuple(s.load for s in self.servers.values())

    def reset(self) -> None:
        """Restore every server to its initial definition with zero load."""
        self.servers = {
            s.id: s.model_copy(update={"load": 0}) for s in self._initial
        }
        logger.info("Server pool reset")
