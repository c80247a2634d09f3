from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional

from lights import Axis
from fairness import max_red

if TYPE_CHECKING:
    from controller import SignalController

logger = logging.getLogger(__name__)

# metric -> True when a larger adaptive value is the better outcome
METRIC_HIGHER_IS_BETTER = {
    "avg_wait": False,
    "co2": False,
    "fuel": False,
    "nox": False,
    "max_wait": False,
    "throughput": True,
}


class Stage(str, Enum):
    IDLE = "IDLE"
    BASELINE = "BASELINE"
    ADAPTIVE = "ADAPTIVE"
    DONE = "DONE"


@dataclass(frozen=True)
class ComparisonRecord:
    avg_wait: float
    co2: float
    fuel: float
    nox: float
    max_wait: float
    throughput: int
    duration: float

    def to_dict(self) -> Dict:
        return asdict(self)


def pct_improve(baseline: float, improved: float, higher_is_better: bool = False) -> float:
    if baseline == 0:
        return 0.0
    if higher_is_better:
        return round((improved - baseline) / baseline * 100.0, 2)
    return round((baseline - improved) / baseline * 100.0, 2)


def compute_deltas(baseline: ComparisonRecord, adaptive: ComparisonRecord) -> Dict[str, Dict]:
    """Per-metric improvement of the adaptive run; positive is always better."""
    deltas = {}
    for name, higher in METRIC_HIGHER_IS_BETTER.items():
        b = getattr(baseline, name)
        a = getattr(adaptive, name)
        pct = pct_improve(b, a, higher_is_better=higher)
        deltas[name] = {
            "baseline": b,
            "adaptive": a,
            "improvement_pct": pct,
            "improved": pct > 0,
        }
    return deltas


class ComparisonEngine:
    """
    Baseline (fixed cycle) run followed by an adaptive run of equal length.

    Both windows start from zeroed accumulators and end with an immutable
    ComparisonRecord. Advanced by the controller's fairness tick in
    simulated seconds.
    """

    def __init__(self, controller: "SignalController"):
        self.controller = controller
        self.stage = Stage.IDLE
        self.duration = float(controller.config.baseline_duration)
        self.phase_interval = float(controller.config.baseline_phase_interval)
        self.timer = 0.0
        self.phase_timer = 0.0
        self.baseline: Optional[ComparisonRecord] = None
        self.adaptive: Optional[ComparisonRecord] = None
        self.deltas: Optional[Dict[str, Dict]] = None

    @property
    def active(self) -> bool:
        return self.stage in (Stage.BASELINE, Stage.ADAPTIVE)

    def start(self, duration: Optional[float] = None) -> bool:
        if self.active:
            logger.info("comparison already in progress (%s); ignoring request", self.stage.value)
            return False

        duration = self.controller.config.baseline_duration if duration is None else duration
        if duration <= 0:
            raise ValueError(f"duration must be positive, got {duration}")

        self.duration = float(duration)
        self.baseline = None
        self.adaptive = None
        self.deltas = None

        ctrl = self.controller
        ctrl.metrics.reset()
        ctrl.adaptive = False
        self.stage = Stage.BASELINE
        self.timer = 0.0
        self.phase_timer = 0.0

        ctrl.emit(
            "baseline",
            f"BASELINE started: fixed {self.phase_interval:g}s/{self.phase_interval:g}s cycle for {self.duration:g}s",
            duration=self.duration,
        )
        return True

    def advance(self, dt: float):
        if self.stage is Stage.BASELINE:
            self.timer += dt
            self.phase_timer += dt
            if self.timer >= self.duration:
                self._end_baseline()
                return
            if self.phase_timer >= self.phase_interval:
                self.phase_timer = 0.0
                self.controller.perform_switch("fixed cycle")

        elif self.stage is Stage.ADAPTIVE:
            self.timer += dt
            if self.timer >= self.duration:
                self._end_adaptive()

    def cancel(self):
        if self.active:
            logger.info("comparison cancelled during %s", self.stage.value)
        self.stage = Stage.IDLE
        self.timer = 0.0
        self.phase_timer = 0.0
        self.baseline = None
        self.adaptive = None
        self.deltas = None

    def _record(self) -> ComparisonRecord:
        ctrl = self.controller
        m = ctrl.metrics
        worst_red = max(max_red(ctrl.lanes, Axis.NS), max_red(ctrl.lanes, Axis.EW))
        return ComparisonRecord(
            avg_wait=round(m.avg_wait(), 1),
            co2=round(m.co2, 1),
            fuel=round(m.fuel, 4),
            nox=round(m.nox, 2),
            max_wait=round(worst_red, 1),
            throughput=m.throughput,
            duration=self.duration,
        )

    def _end_baseline(self):
        ctrl = self.controller
        self.baseline = self._record()
        ctrl.emit(
            "baseline",
            f"BASELINE complete: avg wait {self.baseline.avg_wait}s, CO2 {self.baseline.co2}g",
            record=self.baseline.to_dict(),
        )

        ctrl.metrics.reset()
        ctrl.agent.forget()
        ctrl.adaptive = True
        self.stage = Stage.ADAPTIVE
        self.timer = 0.0
        ctrl.emit("adaptive", "ADAPTIVE mode on, recording metrics for comparison")

    def _end_adaptive(self):
        self.adaptive = self._record()
        self.deltas = compute_deltas(self.baseline, self.adaptive)
        self.stage = Stage.DONE
        self.controller.emit(
            "comparison",
            f"ADAPTIVE metrics recorded: avg wait {self.adaptive.avg_wait}s, CO2 {self.adaptive.co2}g",
            record=self.adaptive.to_dict(),
            deltas=self.deltas,
        )

    def result(self) -> Dict:
        return {
            "stage": self.stage.value,
            "duration": self.duration,
            "progress": round(min(1.0, self.timer / self.duration), 3) if self.active else None,
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "adaptive": self.adaptive.to_dict() if self.adaptive else None,
            "improvement": self.deltas,
        }
