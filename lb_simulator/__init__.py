"""lb-simulator — Routing decision engine for a simulated load balancer.

Public API:
    LoadBalancerSimulator — command/query facade driving the simulation
    ServerPool            — authoritative backend server state
    RoutingEngine         — round robin, weighted, least-connections and sticky routing
    SimulationClock       — fixed-interval admission ticks and load history
    RequestLifecycle      — admission → completion tracking for in-flight requests
    Timeline              — simulated-time event scheduler
    SimulationConfig      — Pydantic model for simulation settings
    BackendServer         — Pydantic model for per-server state
"""

from lb_simulator.config import BackendServer, SimulationConfig
from lb_simulator.errors import InvalidServerReference, PoolInvariantError
from lb_simulator.pool import ServerPool
from lb_simulator.routing import (
    POLICY_INFO,
    RoutingDecision,
    RoutingEngine,
    RoutingPolicy,
    StickyOutcome,
)
from lb_simulator.scheduler import ScheduledEvent, Timeline
from lb_simulator.lifecycle import Request, RequestLifecycle, RequestState
from lb_simulator.clock import (
    ClockState,
    HistorySample,
    SimulationClock,
    SimulationStats,
)
from lb_simulator.simulator import LoadBalancerSimulator

__all__ = [
    "LoadBalancerSimulator",
    "ServerPool",
    "RoutingEngine",
    "RoutingPolicy",
    "RoutingDecision",
    "StickyOutcome",
    "POLICY_INFO",
    "SimulationClock",
    "ClockState",
    "HistorySample",
    "SimulationStats",
    "RequestLifecycle",
    "Request",
    "RequestState",
    "Timeline",
    "ScheduledEvent",
    "SimulationConfig",
    "BackendServer",
    "InvalidServerReference",
    "PoolInvariantError",
]
