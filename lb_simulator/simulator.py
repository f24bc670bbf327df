"""LoadBalancerSimulator — command/query surface over the simulation core.

Owns one pool, routing engine, timeline, request lifecycle and clock.
Every mutation runs on the caller's thread or event loop, and commands
land between timeline advances, so never inside a tick.
"""

import asyncio
import logging
import random
from typing import Callable, Optional

from lb_simulator.clock import HistorySample, SimulationClock, SimulationStats
from lb_simulator.config import BackendServer, SimulationConfig
from lb_simulator.lifecycle import Request, RequestLifecycle
from lb_simulator.pool import ServerPool
from lb_simulator.routing import RoutingDecision, RoutingEngine, RoutingPolicy
from lb_simulator.scheduler import Timeline

logger = logging.getLogger(__name__)


class LoadBalancerSimulator:
    """Load balancer simulation over a fixed pool of backend servers.

    `routing_rng` feeds the weighted round robin fallback; client and
    request identifiers come from a separate source seeded by
    `config.seed`.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        policy: "RoutingPolicy | str" = RoutingPolicy.ROUND_ROBIN,
        routing_rng: Optional[random.Random] = None,
    ):
        self.config = config or SimulationConfig()
        seed = self.config.seed
        id_rng = random.Random(seed)

        self.timeline = Timeline()
        self.pool = ServerPool(self.config.servers)
        self.engine = RoutingEngine(routing_rng or random.Random(seed))
        self.lifecycle = RequestLifecycle(
            self.pool,
            self.timeline,
            service_duration_ms=self.config.service_duration_ms,
            max_age_ms=self.config.request_max_age_ms,
            rng=id_rng,
        )
        self.clock = SimulationClock(
            self.config,
            self.pool,
            self.engine,
            self.lifecycle,
            self.timeline,
            policy=RoutingPolicy.parse(policy),
            rng=id_rng,
        )

    # ─────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        self.clock.start()

    def stop(self) -> None:
        self.clock.stop()

    def reset(self) -> None:
        """Stop and return to a clean slate.

        Loads are zeroed, availability restored, history cleared, cursors
        and the sticky table emptied, and in-flight requests forgotten.
        """
        self.clock.reset()
        self.lifecycle.clear()
        self.pool.reset()
        self.engine.reset()
        logger.info("Simulation reset")

    def set_policy(self, policy: "RoutingPolicy | str") -> None:
        """Switch policy. Always stops and resets, never applied mid-flight."""
        policy = RoutingPolicy.parse(policy)
        self.reset()
        self.clock.policy = policy
        logger.info(f"Routing policy set to {policy.value}")

    def set_availability(self, server_id: int, available: bool) -> None:
        self.pool.set_availability(server_id, available)

    def toggle_availability(self, server_id: int) -> bool:
        """Flip a server's availability and return the new value.

        Raises InvalidServerReference for unknown ids, leaving state as is.
        """
        try:
            return self.pool.toggle_availability(server_id)
        except LookupError:
            logger.warning(f"toggle_availability: unknown server {server_id!r}")
            raise

    def add_completion_listener(self, callback: Callable[[Request], None]) -> None:
        self.lifecycle.add_listener(callback)

    def add_drop_listener(self, callback: Callable[[RoutingDecision], None]) -> None:
        self.clock.add_drop_listener(callback)

    # ─────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────

    @property
    def policy(self) -> RoutingPolicy:
        return self.clock.policy

    @property
    def is_running(self) -> bool:
        return self.clock.is_running

    @property
    def now(self) -> float:
        return self.timeline.now

    def pool_snapshot(self) -> list[BackendServer]:
        return self.pool.snapshot()

    def history_snapshot(self) -> list[HistorySample]:
        """Retained samples, oldest first."""
        return list(self.clock.history)

    def last_decision_message(self) -> str:
        return self.clock.message

    def stats(self) -> SimulationStats:
        return self.clock.stats

    def in_flight_requests(self) -> list[Request]:
        return self.lifecycle.in_flight()

    # ─────────────────────────────────────────────────────────────
    # Drivers
    # ─────────────────────────────────────────────────────────────

    def advance(self, ms: float) -> int:
        """Move simulated time forward, firing due ticks and completions."""
        return self.timeline.advance(ms)

    def run_ticks(self, count: int) -> None:
        """Start (if needed) and fast-forward through `count` ticks."""
        self.start()
        self.advance(count * self.config.tick_interval_ms)

    async def run(
        self, duration_ms: Optional[float] = None, speed: float = 1.0
    ) -> None:
        """Drive the simulation in real time until stopped.

        Sleeps one tick interval (divided by `speed`) between advances so
        other coroutines can issue commands between ticks. Stops the clock
        on exit, including cancellation.
        """
        if speed <= 0:
            raise ValueError(f"speed must be positive, got {speed}")
        interval = self.config.tick_interval_ms
        elapsed = 0.0
        self.start()
        try:
            while self.is_running:
                if duration_ms is not None and elapsed >= duration_ms:
                    break
                await asyncio.sleep(interval / 1000 / speed)
                if not self.is_running:
                    break
                self.advance(interval)
                elapsed += interval
        except Exception as e:
            logger.error(f"Simulation loop crashed: {e}", exc_info=True)
            raise
        finally:
            self.stop()
