# simulator.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from config import CROSS_TIME, SERVICE_RATE, TRAFFIC_PATTERNS, ControllerConfig
from controller import SignalController
from lights import DIRECTIONS, LightState, Signal
from scheduler import TickKind, TickScheduler

logger = logging.getLogger(__name__)


@dataclass
class Vehicle:
    origin: str
    waiting: bool = True
    wait_s: float = 0.0
    travel_left: float = CROSS_TIME


@dataclass
class TrafficSnapshot:
    queues: Dict[str, int]
    waiting: Dict[str, List[bool]]
    cleared: int = 0
    completed_wait: float = 0.0


class Simulator:
    """
    Minimal stochastic queue model of one four-approach junction.

    Vehicles arrive at the stop line and queue; while their head is GREEN
    the queue discharges at SERVICE_RATE and released vehicles take
    CROSS_TIME seconds to clear the junction.
    """

    def __init__(self, pattern: str = "balanced", seed: int = 42):
        self.set_pattern(pattern)
        self.rng = np.random.default_rng(seed)
        self.t = 0.0
        self.vehicles: Dict[str, List[Vehicle]] = {d: [] for d in DIRECTIONS}

    def set_pattern(self, pattern: str):
        if pattern not in TRAFFIC_PATTERNS:
            raise ValueError(f"unknown traffic pattern {pattern!r}; expected one of {sorted(TRAFFIC_PATTERNS)}")
        self.pattern = pattern

    def spawn(self, direction: Optional[str] = None):
        if direction is None:
            p = TRAFFIC_PATTERNS[self.pattern]
            weights = np.array([p[d] for d in DIRECTIONS], dtype=float)
            direction = str(self.rng.choice(DIRECTIONS, p=weights / weights.sum()))
        self.vehicles[direction].append(Vehicle(direction))

    def inject(self, direction: str, count: int = 1):
        if count < 1:
            raise ValueError("count must be at least 1")
        targets = DIRECTIONS if direction == "ALL" else (direction,)
        for d in targets:
            if d not in self.vehicles:
                raise ValueError(f"unknown direction {direction!r}")
            for _ in range(count):
                self.spawn(d)

    def active_count(self) -> int:
        return sum(len(q) for q in self.vehicles.values())

    def step(self, dt: float, lights: LightState) -> TrafficSnapshot:
        self.t += dt

        if self.rng.random() < TRAFFIC_PATTERNS[self.pattern]["rate"] * dt:
            self.spawn()

        cleared = 0
        completed_wait = 0.0
        for d, queue in self.vehicles.items():
            head = next((v for v in queue if v.waiting), None)
            if head is not None and lights.lane_signal(d) is Signal.GREEN:
                if self.rng.random() < SERVICE_RATE * dt:
                    head.waiting = False

            for v in queue:
                if v.waiting:
                    v.wait_s += dt
                else:
                    v.travel_left -= dt

            done = [v for v in queue if not v.waiting and v.travel_left <= 0]
            if done:
                cleared += len(done)
                completed_wait += sum(v.wait_s for v in done)
                self.vehicles[d] = [v for v in queue if v.waiting or v.travel_left > 0]

        return TrafficSnapshot(
            queues={d: sum(v.waiting for v in q) for d, q in self.vehicles.items()},
            waiting={d: [v.waiting for v in q] for d, q in self.vehicles.items()},
            cleared=cleared,
            completed_wait=completed_wait,
        )


class Session:
    """Simulator + controller driven by one tick scheduler."""

    def __init__(
        self,
        pattern: str = "balanced",
        seed: int = 42,
        config: Optional[ControllerConfig] = None,
    ):
        self.seed = seed
        self.config = config
        self.simulator = Simulator(pattern, seed=seed)
        self.controller = SignalController(config, seed=seed)
        self.scheduler = TickScheduler()
        for kind in TickKind:
            self.scheduler.register(kind, self._on_tick)

    @property
    def pattern(self) -> str:
        return self.simulator.pattern

    def _on_tick(self, kind: TickKind, elapsed: float):
        ctrl = self.controller
        if kind is TickKind.PHYSICS:
            if not ctrl.running:
                return
            snap = self.simulator.step(elapsed * ctrl.time_scale, ctrl.lights)
            ctrl.ingest_snapshot(snap.queues, snap.waiting, snap.cleared, snap.completed_wait)
        else:
            ctrl.tick(kind, elapsed)

    def advance(self, wall_seconds: float) -> int:
        if wall_seconds < 0:
            raise ValueError("cannot advance by a negative amount")
        return self.scheduler.advance(wall_seconds)

    def set_pattern(self, pattern: str):
        self.simulator.set_pattern(pattern)

    def reset(self, seed: Optional[int] = None):
        if seed is not None:
            self.seed = seed
        self.simulator = Simulator(self.simulator.pattern, seed=self.seed)
        self.controller.reset()

    def run_compare(self, duration: float = 60) -> Dict:
        """Headless baseline-vs-adaptive run on a fresh session with the same seed."""
        if duration <= 0:
            raise ValueError("duration must be positive")
        s = Session(self.pattern, seed=self.seed, config=self.config)
        ctrl = s.controller
        ctrl.request_baseline_run(duration)

        # two windows plus slack for a yellow in flight at the boundary
        limit = 2 * duration / ctrl.time_scale + 10
        waited = 0.0
        while ctrl.comparison.active and waited < limit:
            s.advance(1.0)
            waited += 1.0

        logger.info("comparison finished after %.0f wall seconds", waited)
        return {
            "pattern": s.pattern,
            "seed": s.seed,
            **ctrl.comparison.result(),
        }

    def snapshot(self) -> Dict:
        return {
            "pattern": self.pattern,
            "seed": self.seed,
            "vehicles": self.simulator.active_count(),
            **self.controller.snapshot(),
        }
