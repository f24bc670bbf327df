"""RoutingEngine — stateful policy selector for the load balancer.

Given a policy, a pool snapshot and a client identifier, picks a target
server or reports that no server has capacity. Owns every policy's
rotation cursor and the sticky-session table; nothing else reads or
writes them.
"""

import enum
import logging
import random
from dataclasses import dataclass
from typing import Optional, Sequence

from lb_simulator.config import BackendServer

logger = logging.getLogger(__name__)


class RoutingPolicy(str, enum.Enum):
    ROUND_ROBIN = "round_robin"
    WEIGHTED_ROUND_ROBIN = "weighted_round_robin"
    LEAST_CONNECTIONS = "least_connections"
    IP_HASH = "ip_hash"

    @classmethod
    def parse(cls, value: "str | RoutingPolicy") -> "RoutingPolicy":
        """Accept an enum member, its value, or a legacy camelCase mode id."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return _LEGACY_IDS[value]
        except KeyError:
            raise ValueError(f"Unknown routing policy: {value!r}") from None


_LEGACY_IDS = {
    "roundRobin": RoutingPolicy.ROUND_ROBIN,
    "weightedRR": RoutingPolicy.WEIGHTED_ROUND_ROBIN,
    "leastConnections": RoutingPolicy.LEAST_CONNECTIONS,
    "ipHash": RoutingPolicy.IP_HASH,
}


@dataclass(frozen=True)
class PolicyInfo:
    name: str
    description: str


POLICY_INFO: dict[RoutingPolicy, PolicyInfo] = {
    RoutingPolicy.ROUND_ROBIN: PolicyInfo(
        "Round Robin",
        "Distributes sequential requests uniformly across servers.",
    ),
    RoutingPolicy.WEIGHTED_ROUND_ROBIN: PolicyInfo(
        "Weighted Round Robin",
        'Servers with higher "weight" receive a larger proportion of '
        "requests, reflecting greater capacity.",
    ),
    RoutingPolicy.LEAST_CONNECTIONS: PolicyInfo(
        "Least Connections",
        "Routes new requests to the server with the fewest currently "
        'active connections (the "lightest" load).',
    ),
    RoutingPolicy.IP_HASH: PolicyInfo(
        "IP Hash (Sticky)",
        "Requests from the same simulated client are always sent to the "
        'same server, ensuring "sticky sessions".',
    ),
}


class StickyOutcome(str, enum.Enum):
    KEPT = "kept"
    NEW = "new"
    REASSIGNED = "reassigned"


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of one routing attempt. server_id None means no capacity."""

    policy: RoutingPolicy
    client_id: str
    server_id: Optional[int]
    message: str
    fallback: bool = False
    sticky: Optional[StickyOutcome] = None

    @property
    def no_capacity(self) -> bool:
        return self.server_id is None


def short_client(client_id: str) -> str:
    return client_id[:4]


class RoutingEngine:
    """Selects target servers under the four routing policies.

    The random source is injected so weighted-round-robin fallbacks can
    be pinned in tests.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.reset()

    def reset(self) -> None:
        """Clear every rotation cursor and the sticky table."""
        self._rr_cursor = 0
        self._wrr_cursor = 0
        self._sticky_cursor = 0
        self.sticky_table: dict[str, int] = {}

    @property
    def round_robin_cursor(self) -> int:
        return self._rr_cursor

    @property
    def weighted_cursor(self) -> int:
        return self._wrr_cursor

    def select_target(
        self,
        policy: RoutingPolicy,
        snapshot: Sequence[BackendServer],
        client_id: str,
    ) -> RoutingDecision:
        """Pick a target for `client_id` from the pool snapshot.

        Returns a RoutingDecision whose server_id is None when no server
        is eligible; cursors and the sticky table are left untouched then.
        """
        eligible = [s for s in snapshot if s.is_eligible]
        if not eligible:
            decision = RoutingDecision(
                policy=policy,
                client_id=client_id,
                server_id=None,
                message="All servers are full or unavailable. Request dropped.",
            )
        elif policy is RoutingPolicy.ROUND_ROBIN:
            decision = self._round_robin(eligible, client_id)
        elif policy is RoutingPolicy.WEIGHTED_ROUND_ROBIN:
            decision = self._weighted_round_robin(snapshot, eligible, client_id)
        elif policy is RoutingPolicy.LEAST_CONNECTIONS:
            decision = self._least_connections(eligible, client_id)
        elif policy is RoutingPolicy.IP_HASH:
            decision = self._ip_hash(eligible, client_id)
        else:
            raise ValueError(f"Unknown routing policy: {policy!r}")

        logger.debug(f"{policy.value}: {decision.message}")
        return decision

    # ─────────────────────────────────────────────────────────────
    # Policies
    # ─────────────────────────────────────────────────────────────

    def _round_robin(
        self, eligible: list[BackendServer], client_id: str
    ) -> RoutingDecision:
        # The cursor is reinterpreted against whatever the eligible count is
        # now, so servers can appear skipped when availability flaps.
        target = eligible[self._rr_cursor % len(eligible)]
        self._rr_cursor = (self._rr_cursor + 1) % len(eligible)
        return RoutingDecision(
            policy=RoutingPolicy.ROUND_ROBIN,
            client_id=client_id,
            server_id=target.id,
            message=f"Request routed to {target.name} (Round Robin)",
        )

    @staticmethod
    def weighted_sequence(servers: Sequence[BackendServer]) -> list[int]:
        """Each server id repeated `weight` times, in pool order."""
        return [s.id for s in servers for _ in range(s.weight)]

    def _weighted_round_robin(
        self,
        snapshot: Sequence[BackendServer],
        eligible: list[BackendServer],
        client_id: str,
    ) -> RoutingDecision:
        sequence = self.weighted_sequence(snapshot)
        wanted = sequence[self._wrr_cursor % len(sequence)]
        self._wrr_cursor = (self._wrr_cursor + 1) % len(sequence)

        target = next((s for s in eligible if s.id == wanted), None)
        if target is not None:
            return RoutingDecision(
                policy=RoutingPolicy.WEIGHTED_ROUND_ROBIN,
                client_id=client_id,
                server_id=target.id,
                message=f"Request routed to {target.name} (weight {target.weight})",
            )

        target = self.rng.choice(eligible)
        wanted_name = next((s.name for s in snapshot if s.id == wanted), wanted)
        return RoutingDecision(
            policy=RoutingPolicy.WEIGHTED_ROUND_ROBIN,
            client_id=client_id,
            server_id=target.id,
            message=(
                f"Weighted server {wanted_name} unavailable, "
                f"using fallback {target.name}."
            ),
            fallback=True,
        )

    def _least_connections(
        self, eligible: list[BackendServer], client_id: str
    ) -> RoutingDecision:
        # min() keeps the first of equal loads, so pool order breaks ties.
        target = min(eligible, key=lambda s: s.load)
        return RoutingDecision(
            policy=RoutingPolicy.LEAST_CONNECTIONS,
            client_id=client_id,
            server_id=target.id,
            message=(
                f"Request routed to {target.name} "
                f"(fewest connections: {target.load})"
            ),
        )

    def _ip_hash(
        self, eligible: list[BackendServer], client_id: str
    ) -> RoutingDecision:
        short = short_client(client_id)
        pinned = self.sticky_table.get(client_id)

        if pinned is not None:
            target = next((s for s in eligible if s.id == pinned), None)
            if target is not None:
                return RoutingDecision(
                    policy=RoutingPolicy.IP_HASH,
                    client_id=client_id,
                    server_id=target.id,
                    message=(
                        f"Client {short} routed to {target.name} "
                        "(Sticky Session Maintained)"
                    ),
                    sticky=StickyOutcome.KEPT,
                )

        target = eligible[self._sticky_cursor % len(eligible)]
        self._sticky_cursor = (self._sticky_cursor + 1) % len(eligible)
        self.sticky_table[client_id] = target.id

        if pinned is not None:
            logger.info(
                f"Sticky server {pinned} ineligible for client {short}, "
                f"re-pinned to {target.id}"
            )
            return RoutingDecision(
                policy=RoutingPolicy.IP_HASH,
                client_id=client_id,
                server_id=target.id,
                message=(
                    f"Client {short}: Sticky server failed. "
                    f"Assigned new session to {target.name}."
                ),
                sticky=StickyOutcome.REASSIGNED,
            )
        return RoutingDecision(
            policy=RoutingPolicy.IP_HASH,
            client_id=client_id,
            server_id=target.id,
            message=f"Client {short} routed to {target.name} (New Sticky Session)",
            sticky=StickyOutcome.NEW,
        )
