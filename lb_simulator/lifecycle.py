"""RequestLifecycle — tracks admitted requests until their completion.

Each admitted request holds one server slot for a fixed service time.
Completion releases that slot exactly once, whether it is triggered by
the request's own timer or by the stale-record sweep.
"""

import enum
import logging
import random
import string
from dataclasses import dataclass, field
from typing import Callable, Optional

from lb_simulator.pool import ServerPool
from lb_simulator.scheduler import ScheduledEvent, Timeline

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.digits + string.ascii_lowercase
TOKEN_LENGTH = 7


def new_token(rng: random.Random) -> str:
    """Short base36 token, used for request and client identifiers."""
    return "".join(rng.choices(TOKEN_ALPHABET, k=TOKEN_LENGTH))


class RequestState(str, enum.Enum):
    ADMITTED = "admitted"
    COMPLETED = "completed"


@dataclass
class Request:
    """An admitted request occupying one slot on its target server."""

    id: str
    server_id: int
    client_id: str
    admitted_at: float
    state: RequestState = RequestState.ADMITTED
    completion: Optional[ScheduledEvent] = field(default=None, repr=False)

    def age(self, now: float) -> float:
        return now - self.admitted_at


class RequestLifecycle:
    """Admission → completion bookkeeping for in-flight requests."""

    def __init__(
        self,
        pool: ServerPool,
        timeline: Timeline,
        service_duration_ms: float,
        max_age_ms: float,
        rng: Optional[random.Random] = None,
    ):
        self.pool = pool
        self.timeline = timeline
        self.service_duration_ms = service_duration_ms
        self.max_age_ms = max_age_ms
        self.rng = rng or random.Random()
        self._requests: dict[str, Request] = {}
        self._listeners: list[Callable[[Request], None]] = []

    def __len__(self) -> int:
        return len(self._requests)

    def add_listener(self, callback: Callable[[Request], None]) -> None:
        """Subscribe to completions. Listeners must not mutate the pool."""
        self._listeners.append(callback)

    def admit(self, server_id: int, client_id: str) -> Request:
        """Track a request whose slot was just taken on `server_id`."""
        request_id = new_token(self.rng)
        while request_id in self._requests:
            request_id = new_token(self.rng)

        request = Request(
            id=request_id,
            server_id=server_id,
            client_id=client_id,
            admitted_at=self.timeline.now,
        )
        request.completion = self.timeline.schedule_in(
            self.service_duration_ms,
            lambda: self.complete(request_id),
            name=f"complete:{request_id}",
        )
        self._requests[request_id] = request
        logger.debug(
            f"Admitted request {request_id} on server {server_id} "
            f"({len(self._requests)} in flight)"
        )
        return request

    def complete(self, request_id: str) -> bool:
        """Release the request's slot. Returns False if already completed."""
        request = self._requests.pop(request_id, None)
        if request is None:
            return False
        self.timeline.cancel(request.completion)
        # The server may have gone down meanwhile; the pool clamps at zero.
        self.pool.decrement_load(request.server_id)
        request.state = RequestState.COMPLETED
        for listener in self._listeners:
            listener(request)
        return True

    def sweep(self) -> list[str]:
        """Complete any record older than the maximum age.

        Only catches requests whose completion timer was lost; safe to run
        repeatedly.
        """
        now = self.timeline.now
        stale = [
            r.id for r in self._requests.values() if r.age(now) > self.max_age_ms
        ]
        for request_id in stale:
            logger.warning(f"Sweeping stale request {request_id}")
            self.complete(request_id)
        return stale

    def in_flight(self) -> list[Request]:
        """Admitted requests, oldest first."""
        return sorted(self._requests.values(), key=lambda r: r.admitted_at)

    def clear(self) -> None:
        """Forget every request without releasing slots."""
        for request in self._requests.values():
            self.timeline.cancel(request.completion)
        self._requests.clear()
