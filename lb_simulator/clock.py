"""SimulationClock — drives admission ticks on the simulated timeline.

Each tick, as one step: sweep stale requests, record load history, make
up a client, route it, then either admit the request or record a drop.
"""

import collections
import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

from lb_simulator.config import SimulationConfig
from lb_simulator.lifecycle import Request, RequestLifecycle, new_token
from lb_simulator.pool import ServerPool
from lb_simulator.routing import (
    RoutingDecision,
    RoutingEngine,
    RoutingPolicy,
    StickyOutcome,
)
from lb_simulator.scheduler import ScheduledEvent, Timeline

logger = logging.getLogger(__name__)


class ClockState(str, enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class HistorySample:
    """Per-server loads, in pool order, taken at the start of a tick."""

    tick: int
    time: float
    loads: tuple[int, ...]


@dataclass
class SimulationStats:
    ticks: int = 0
    accepted: int = 0
    dropped: int = 0
    completed: int = 0
    fallbacks: int = 0
    sticky_reassignments: int = 0
    per_server: collections.Counter = field(default_factory=collections.Counter)

    def as_dict(self) -> dict:
        return {
            "ticks": self.ticks,
            "accepted": self.accepted,
            "dropped": self.dropped,
            "completed": self.completed,
            "fallbacks": self.fallbacks,
            "sticky_reassignments": self.sticky_reassignments,
            "per_server": dict(sorted(self.per_server.items())),
        }


class SimulationClock:
    """Fixed-interval tick driver with a Stopped/Running state machine."""

    def __init__(
        self,
        config: SimulationConfig,
        pool: ServerPool,
        engine: RoutingEngine,
        lifecycle: RequestLifecycle,
        timeline: Timeline,
        policy: RoutingPolicy = RoutingPolicy.ROUND_ROBIN,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.pool = pool
        self.engine = engine
        self.lifecycle = lifecycle
        self.timeline = timeline
        self.policy = policy
        self.rng = rng or random.Random()

        self.state = ClockState.STOPPED
        self.history: collections.deque[HistorySample] = collections.deque(
            maxlen=config.history_length
        )
        self.stats = SimulationStats()
        self.message = ""
        self._tick_count = 0
        self._next_tick: Optional[ScheduledEvent] = None
        self._drop_listeners: list[Callable[[RoutingDecision], None]] = []
        self._clients: list[str] = [
            new_token(self.rng) for _ in range(config.client_population or 0)
        ]

        self.lifecycle.add_listener(self._on_completed)

    @property
    def is_running(self) -> bool:
        return self.state is ClockState.RUNNING

    def add_drop_listener(self, callback: Callable[[RoutingDecision], None]) -> None:
        self._drop_listeners.append(callback)

    def start(self) -> None:
        if self.is_running:
            return
        self.state = ClockState.RUNNING
        self._schedule_next()
        logger.info(f"Clock started ({self.policy.value})")

    def stop(self) -> None:
        if not self.is_running:
            return
        self.state = ClockState.STOPPED
        # In-flight completions stay scheduled and still release their slots.
        self.timeline.cancel(self._next_tick)
        self._next_tick = None
        logger.info(f"Clock stopped after {self._tick_count} ticks")

    def reset(self) -> None:
        """Stop and clear history, counters and the status message."""
        self.stop()
        self.history.clear()
        self.stats = SimulationStats()
        self.message = ""
        self._tick_count = 0

    def _schedule_next(self) -> None:
        self._next_tick = self.timeline.schedule_in(
            self.config.tick_interval_ms, self._on_tick, name="tick"
        )

    def _on_tick(self) -> None:
        self._next_tick = None
        self.tick()
        if self.is_running:
            self._schedule_next()

    def tick(self) -> RoutingDecision:
        """Run one admission step and return its routing decision."""
        swept = self.lifecycle.sweep()
        if swept:
            logger.warning(f"Swept {len(swept)} stale requests")

        self.history.append(
            HistorySample(
                tick=self._tick_count, time=self.timeline.now, loads=self.pool.loads()
            )
        )
        self._tick_count += 1
        self.stats.ticks += 1

        client_id = self.next_client_id()
        decision = self.engine.select_target(
            self.policy, self.pool.snapshot(), client_id
        )
        self.message = decision.message

        if decision.no_capacity:
            self.stats.dropped += 1
            logger.warning(f"Request from client {client_id} dropped: pool saturated")
            for listener in self._drop_listeners:
                listener(decision)
            return decision

        self.pool.increment_load(decision.server_id)
        self.lifecycle.admit(decision.server_id, client_id)
        self.stats.accepted += 1
        self.stats.per_server[decision.server_id] += 1
        if decision.fallback:
            self.stats.fallbacks += 1
        if decision.sticky is StickyOutcome.REASSIGNED:
            self.stats.sticky_reassignments += 1
        return decision

    def next_client_id(self) -> str:
        if self._clients:
            return self.rng.choice(self._clients)
        return new_token(self.rng)

    def _on_completed(self, request: Request) -> None:
        self.stats.completed += 1
