"""Configuration models — backend server state and simulation settings."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_CAPACITY = 20
DEFAULT_WEIGHTS = (1, 2, 1, 3)
DEFAULT_TICK_INTERVAL_MS = 100
DEFAULT_SERVICE_DURATION_MS = 3000
DEFAULT_HISTORY_LENGTH = 100

# Requests are normally completed by their own timer; the sweep only catches
# records whose timer was lost, so its horizon sits well past the service time.
SWEEP_GRACE_MS = 1500


class BackendServer(BaseModel):
    """State of a single backend server.

    Capacity and weight are fixed for the life of the pool; load and
    availability are mutated only through ServerPool.
    """

    id: int = Field(gt=0)
    name: str
    capacity: int = Field(default=DEFAULT_CAPACITY, gt=0)
    weight: int = Field(default=1, gt=0)
    load: int = Field(default=0, ge=0)
    available: bool = True

    @property
    def is_eligible(self) -> bool:
        """Eligible when available and a slot is free."""
        return self.available and self.load < self.capacity

    @property
    def utilization(self) -> float:
        return self.load / self.capacity


def _default_servers() -> list[BackendServer]:
    return [
        BackendServer(id=i + 1, name=f"Server {chr(ord('A') + i)}", weight=w)
        for i, w in enumerate(DEFAULT_WEIGHTS)
    ]


class SimulationConfig(BaseModel):
    """Externally settable simulation constants.

    All durations are simulated milliseconds.
    """

    tick_interval_ms: int = Field(default=DEFAULT_TICK_INTERVAL_MS, gt=0)
    service_duration_ms: int = Field(default=DEFAULT_SERVICE_DURATION_MS, gt=0)
    history_length: int = Field(default=DEFAULT_HISTORY_LENGTH, gt=0)
    request_max_age_ms: Optional[int] = Field(default=None, gt=0)
    seed: Optional[int] = None
    # When set, clients are drawn from this many returning clients instead
    # of a fresh identifier per request.
    client_population: Optional[int] = Field(default=None, gt=0)
    servers: list[BackendServer] = Field(default_factory=_default_servers)

    @field_validator("servers")
    @classmethod
    def _check_servers(cls, servers: list[BackendServer]) -> list[BackendServer]:
        if not servers:
            raise ValueError("at least one server is required")
        ids = [s.id for s in servers]
        if len(set(ids)) != len(ids):
            raise ValueError(f"server ids must be unique, got {ids}")
        return servers

    @model_validator(mode="after")
    def _default_max_age(self) -> "SimulationConfig":
        if self.request_max_age_ms is None:
            self.request_max_age_ms = self.service_duration_ms + SWEEP_GRACE_MS
        elif self.request_max_age_ms < self.service_duration_ms:
            raise ValueError(
                "request_max_age_ms must not be shorter than service_duration_ms"
            )
        return self

    @classmethod
    def uniform(
        cls,
        count: int,
        capacity: int = DEFAULT_CAPACITY,
        weights: Optional[list[int]] = None,
        **kwargs,
    ) -> "SimulationConfig":
        """Build a config with `count` servers sharing one capacity."""
        weights = weights or [1] * count
        if len(weights) != count:
            raise ValueError(f"expected {count} weights, got {len(weights)}")
        servers = [
            BackendServer(
                id=i + 1,
                name=f"Server {chr(ord('A') + i)}" if i < 26 else f"Server {i + 1}",
                capacity=capacity,
                weight=weights[i],
            )
            for i in range(count)
        ]
        return cls(servers=servers, **kwargs)

    def with_capacity(self, capacity: int) -> "SimulationConfig":
        """Copy of this config with every server's capacity replaced."""
        servers = [{**s.model_dump(), "capacity": capacity} for s in self.servers]
        return type(self).model_validate({**self.model_dump(), "servers": servers})

    def with_weights(self, weights: list[int]) -> "SimulationConfig":
        """Copy of this config with per-server weights replaced, in pool order."""
        if len(weights) != len(self.servers):
            raise ValueError(
                f"expected {len(self.servers)} weights, got {len(weights)}"
            )
        servers = [
            {**s.model_dump(), "weight": w} for s, w in zip(self.servers, weights)
        ]
        return type(self).model_validate({**self.model_dump(), "servers": servers})
