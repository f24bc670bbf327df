"""Timeline — a simulated-time scheduler backed by a min-heap.

Ticks and request completions are events on one timeline instead of
wall-clock timers, so runs are deterministic and can be fast-forwarded.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class ScheduledEvent:
    """A callback due at a simulated time (ms).

    Ordered by (time, seq) so events due at the same instant fire in the
    order they were scheduled.
    """

    time: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    name: str = field(default="", compare=False)
    cancelled: bool = field(default=False, compare=False)


class Timeline:
    def __init__(self, start: float = 0.0):
        self._now = start
        self._heap: list[ScheduledEvent] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    def schedule_at(
        self, time: float, callback: Callable[[], None], name: str = ""
    ) -> ScheduledEvent:
        if time < self._now:
            raise ValueError(
                f"Cannot schedule {name or 'event'} at {time} before now ({self._now})"
            )
        event = ScheduledEvent(time, next(self._seq), callback, name)
        heapq.heappush(self._heap, event)
        return event

    def schedule_in(
        self, delay: float, callback: Callable[[], None], name: str = ""
    ) -> ScheduledEvent:
        return self.schedule_at(self._now + delay, callback, name)

    def cancel(self, event: Optional[ScheduledEvent]) -> None:
        """Cancel lazily; the entry is skipped when it reaches the top."""
        if event is not None:
            event.cancelled = True

    def pending(self) -> int:
        return sum(1 for e in self._heap if not e.cancelled)

    def peek(self) -> Optional[ScheduledEvent]:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0] if self._heap else None

    def run_until(self, time: float) -> int:
        """Fire every event due at or before `time`, then move now to `time`.

        Callbacks may schedule further events, including at the current
        instant; those fire in the same call. Returns the number fired.
        """
        if time < self._now:
            raise ValueError(f"Cannot run backwards to {time} from {self._now}")
        fired = 0
        while True:
            event = self.peek()
            if event is None or event.time > time:
                break
            heapq.heappop(self._heap)
            self._now = event.time
            event.callback()
            fired += 1
        self._now = time
        return fired

    def advance(self, delta: float) -> int:
        return self.run_until(self._now + delta)

    def clear(self) -> None:
        """Drop every pending event. The current time is kept."""
        for event in self._heap:
            event.cancelled = True
        self._heap.clear()
        logger.debug("Timeline cleared")
