from enum import IntEnum
from typing import Callable, Dict, List, Optional

from config import PHYSICS_INTERVAL, FAIRNESS_INTERVAL, DECISION_INTERVAL, CHART_INTERVAL


class TickKind(IntEnum):
    # ticks due at the same instant fire in this order
    PHYSICS = 0
    FAIRNESS = 1
    DECISION = 2
    CHART = 3


DEFAULT_CADENCES = {
    TickKind.PHYSICS: PHYSICS_INTERVAL,
    TickKind.FAIRNESS: FAIRNESS_INTERVAL,
    TickKind.DECISION: DECISION_INTERVAL,
    TickKind.CHART: CHART_INTERVAL,
}

TickCallback = Callable[[TickKind, float], None]


class TickScheduler:
    """
    Fires periodic ticks at fixed cadences on a single logical thread.

    Time only moves when advance()/advance_to() is called, so callers
    decide whether the clock is a wall clock or a test fixture.
    """

    def __init__(self, cadences: Optional[Dict[TickKind, float]] = None, start: float = 0.0):
        self.cadences = dict(DEFAULT_CADENCES if cadences is None else cadences)
        for kind, period in self.cadences.items():
            if period <= 0:
                raise ValueError(f"cadence for {kind.name} must be positive, got {period}")

        self.now = start
        self._origin = start
        self._callbacks: Dict[TickKind, List[TickCallback]] = {k: [] for k in self.cadences}
        self._last_fired = {k: start for k in self.cadences}
        self._fired = {k: 0 for k in self.cadences}

    def register(self, kind: TickKind, callback: TickCallback):
        if kind not in self.cadences:
            raise ValueError(f"no cadence configured for {kind.name}")
        self._callbacks[kind].append(callback)

    def _next_due(self, kind: TickKind) -> float:
        # counted from the origin so float error does not drift the cadence
        return self._origin + (self._fired[kind] + 1) * self.cadences[kind]

    def advance_to(self, now: float) -> int:
        if now < self.now:
            raise ValueError("clock went backwards")

        fired = 0
        while True:
            kind, due = min(
                ((k, self._next_due(k)) for k in self.cadences),
                key=lambda item: (item[1], item[0]),
            )
            if due > now + 1e-9:
                break
            elapsed = due - self._last_fired[kind]
            self._last_fired[kind] = due
            self._fired[kind] += 1
            self.now = due
            for callback in self._callbacks[kind]:
                callback(kind, elapsed)
            fired += 1

        self.now = max(self.now, now)
        return fired

    def advance(self, dt: float) -> int:
        return self.advance_to(self.now + dt)

    def count(self, kind: TickKind) -> int:
        return self._fired[kind]
