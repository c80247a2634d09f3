# controller.py
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional

import numpy as np

from config import ControllerConfig, EVENT_LOG_SIZE
from comparison import ComparisonEngine, Stage
from fairness import axis_priority, max_red, starvation_level, starved_axis, update_priorities
from lights import (
    DIRECTIONS,
    Axis,
    ControllerPhase,
    LightState,
    PHASE_SERVES,
    advance_red_durations,
    make_lanes,
    parse_phase,
)
from metrics import Metrics, scalability_projection
from optimizer import Action, QAgent, compute_reward, state_key
from scheduler import TickKind

logger = logging.getLogger(__name__)

INITIAL_GREEN = Axis.EW


@dataclass
class ControllerEvent:
    kind: str
    message: str
    sim_time: float
    data: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {"kind": self.kind, "message": self.message, "t": self.sim_time, **self.data}


class Decision(NamedTuple):
    action: Optional[Action]
    reason: str


EventCallback = Callable[[ControllerEvent], None]


class SignalController:
    """
    Adaptive controller for one two-phase intersection.

    Consumes per-lane queue snapshots, keeps red-duration and priority
    bookkeeping, and on every decision tick applies (in order) the
    starvation override, the minimum-green lock, the maximum-green limit
    and finally the Q-learning policy. All timing is in simulated seconds
    (wall elapsed * time_scale), including the yellow clearance.
    """

    def __init__(
        self,
        config: Optional[ControllerConfig] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        self.config = config or ControllerConfig()
        if self.config.time_scale <= 0:
            raise ValueError("time_scale must be positive")

        self.agent = QAgent(
            alpha=self.config.q_alpha,
            gamma=self.config.q_gamma,
            epsilon=self.config.epsilon,
            epsilon_decay=self.config.epsilon_decay,
            epsilon_min=self.config.epsilon_min,
            rng=rng if rng is not None else np.random.default_rng(seed),
        )
        self.metrics = Metrics(
            idle_rates=dict(self.config.idle_emissions),
            moving_rates=dict(self.config.moving_emissions),
        )
        self.lanes = make_lanes()
        self.lights = LightState(green=INITIAL_GREEN)
        self.comparison = ComparisonEngine(self)

        self.time_scale = self.config.time_scale
        self.running = False
        self.adaptive = False

        self.sim_time = 0.0
        self.phase_started = 0.0
        self.starvation_events = 0
        self.switch_count = 0

        self.queues: Dict[str, int] = {d: 0 for d in DIRECTIONS}
        self.waiting: Dict[str, List[bool]] = {d: [] for d in DIRECTIONS}

        self.events = deque(maxlen=EVENT_LOG_SIZE)
        self._subscribers: List[EventCallback] = []

    # ─── events ─────────────────────────────────────────────────────────

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, kind: str, message: str, level: int = logging.INFO, **data) -> ControllerEvent:
        event = ControllerEvent(kind, message, round(self.sim_time, 2), data)
        self.events.append(event)
        logger.log(level, "[t=%.1f] %s", self.sim_time, message)

        # subscriber errors are logged, not raised
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("event subscriber %r failed; skipping", callback)
        return event

    # ─── inputs ─────────────────────────────────────────────────────────

    def ingest_snapshot(
        self,
        queues: Optional[Dict[str, int]],
        waiting: Dict[str, List[bool]],
        cleared: int = 0,
        completed_wait: float = 0.0,
    ):
        """
        Latest per-lane state from the simulation.

        `waiting` holds one flag per active vehicle on each approach (True
        while it is stopped). `queues` defaults to the count of waiting
        flags. `cleared`/`completed_wait` report vehicles that left the
        junction since the previous snapshot.
        """
        unknown = (set(waiting) | set(queues or {})) - set(DIRECTIONS)
        if unknown:
            raise ValueError(f"unknown approaches in snapshot: {sorted(unknown)}")
        if cleared < 0 or completed_wait < 0:
            raise ValueError("cleared and completed_wait must be non-negative")

        self.waiting = {d: [bool(w) for w in waiting.get(d, ())] for d in DIRECTIONS}
        if queues is None:
            self.queues = {d: sum(self.waiting[d]) for d in DIRECTIONS}
        else:
            if any(queues.get(d, 0) < 0 for d in DIRECTIONS):
                raise ValueError("queue counts must be non-negative")
            self.queues = {d: int(queues.get(d, 0)) for d in DIRECTIONS}

        if cleared:
            self.metrics.record_departures(cleared, completed_wait)

    def vehicle_counts(self):
        idle = sum(sum(flags) for flags in self.waiting.values())
        total = sum(len(flags) for flags in self.waiting.values())
        return idle, total - idle

    def axis_queue(self, axis: Axis) -> int:
        return sum(self.queues[d] for d in PHASE_SERVES[axis])

    # ─── ticks ──────────────────────────────────────────────────────────

    def tick(self, kind: TickKind, elapsed: float):
        if not self.running:
            return
        if kind is TickKind.FAIRNESS:
            self._fairness_tick(elapsed * self.time_scale)
        elif kind is TickKind.DECISION:
            self.decide()
        elif kind is TickKind.CHART:
            self._chart_tick()

    def _fairness_tick(self, dt: float):
        self.sim_time += dt
        if self.lights.due(self.sim_time):
            self._finish_switch()

        idle, moving = self.vehicle_counts()
        self.metrics.record_emissions(idle, moving, dt)

        advance_red_durations(self.lanes.values(), self.lights, dt)
        update_priorities(self.lanes, self.queues, self.config.fair_alpha, self.config.fair_beta)

        self.comparison.advance(dt)

    def _chart_tick(self):
        idle, moving = self.vehicle_counts()
        self.metrics.record_chart(sum(self.queues.values()), idle, moving)

    # ─── decisions ──────────────────────────────────────────────────────

    def phase_elapsed(self) -> float:
        return self.sim_time - self.phase_started

    def decide(self) -> Decision:
        if not self.running or self.lights.switching:
            return Decision(None, "idle")
        if self.comparison.stage is Stage.BASELINE:
            return Decision(None, "baseline")
        if not self.adaptive:
            return Decision(None, "manual")

        cfg = self.config
        elapsed = self.phase_elapsed()
        green = self.lights.green_axis
        red_ns = max_red(self.lanes, Axis.NS)
        red_ew = max_red(self.lanes, Axis.EW)

        starved = starved_axis(self.lanes, green, cfg.starvation_threshold)
        if starved is not None and elapsed >= cfg.min_green:
            self.starvation_events += 1
            waited = red_ns if starved is Axis.NS else red_ew
            self.emit(
                "starvation",
                f"STARVATION! {starved.value} red for {math.floor(waited)}s, forcing green",
                level=logging.WARNING,
                axis=starved.value,
                red_duration=round(waited, 1),
                count=self.starvation_events,
            )
            self.perform_switch("starvation")
            return Decision(Action.SWITCH, "starvation")

        if elapsed < cfg.min_green:
            return Decision(None, "min_green")

        if elapsed > cfg.max_green:
            self.emit("max_green", f"Max green ({cfg.max_green:g}s) reached, rotating")
            self.perform_switch("max_green")
            return Decision(Action.SWITCH, "max_green")

        q_ns = self.axis_queue(Axis.NS)
        q_ew = self.axis_queue(Axis.EW)
        opposing_red = red_ew if green is Axis.NS else red_ns
        key = state_key(q_ns, q_ew, opposing_red, cfg.queue_bins, cfg.red_bins)
        reward = compute_reward(q_ns, q_ew, red_ns, red_ew)
        action = self.agent.decide(key, reward)

        prio_ns = axis_priority(self.lanes, Axis.NS)
        prio_ew = axis_priority(self.lanes, Axis.EW)
        details = dict(
            action=action.name,
            state=str(key),
            priority_ns=round(prio_ns, 2),
            priority_ew=round(prio_ew, 2),
            epsilon=round(self.agent.epsilon, 3),
        )
        if action is Action.SWITCH:
            self.emit(
                "decision",
                f"Q-Agent: SWITCH -> {green.opposite.value} | P(NS)={prio_ns:.2f} P(EW)={prio_ew:.2f} eps={self.agent.epsilon:.3f}",
                **details,
            )
            self.perform_switch("policy")
        else:
            self.emit(
                "decision",
                f"KEEP {green.value} green | Q={q_ns}/{q_ew} | eps={self.agent.epsilon:.3f}",
                level=logging.DEBUG,
                **details,
            )
        return Decision(action, "policy")

    def perform_switch(self, reason: str = "") -> bool:
        if self.lights.switching:
            logger.debug("switch (%s) rejected: transition already in flight", reason)
            return False

        outgoing = self.lights.green_axis
        self.lights.begin_switch(self.sim_time, self.config.yellow)
        self.emit("yellow", f"{outgoing.value} -> YELLOW", axis=outgoing.value, reason=reason)

        if self.config.yellow <= 0:
            self._finish_switch()
        return True

    def _finish_switch(self):
        incoming = self.lights.complete_switch()
        self.phase_started = self.sim_time
        self.switch_count += 1
        self.emit(
            "switch",
            f"{incoming.opposite.value}: RED | {incoming.value}: GREEN",
            green=incoming.value,
        )

    # ─── queries ────────────────────────────────────────────────────────

    def current_phase(self) -> Dict[str, str]:
        return self.lights.snapshot()

    def controller_phase(self) -> ControllerPhase:
        return self.lights.phase()

    def current_priorities(self) -> Dict[str, float]:
        return {d: lane.priority for d, lane in self.lanes.items()}

    def metrics_snapshot(self) -> Dict:
        return self.metrics.snapshot()

    # ─── control toggles ────────────────────────────────────────────────

    def set_running(self, running: bool):
        self.running = bool(running)

    def set_adaptive(self, enabled: bool) -> bool:
        if self.comparison.active:
            logger.info("adaptive toggle ignored while a comparison is running")
            return False
        self.adaptive = bool(enabled)
        self.emit("mode", "ADAPTIVE mode on" if self.adaptive else "MANUAL mode")
        return True

    def set_time_scale(self, scale: float):
        if scale <= 0:
            raise ValueError(f"time scale must be positive, got {scale}")
        self.time_scale = float(scale)

    def force_phase(self, phase: str) -> bool:
        """
        Manual override. Raises InvalidPhaseError for unknown phase strings.

        Returns False (and changes nothing) when the adaptive policy or a
        comparison owns the lights, a transition is in flight, or the
        requested axis is already green. Otherwise starts the normal
        yellow transition towards `phase`.
        """
        target = parse_phase(phase)

        if self.adaptive or self.comparison.active:
            self.emit("override", f"manual {target.value} ignored: controller is not in manual mode")
            return False
        if self.lights.switching or self.lights.green_axis is target:
            return False
        return self.perform_switch("manual")

    def request_baseline_run(self, duration: Optional[float] = None) -> bool:
        if not self.comparison.active and not self.running:
            self.set_running(True)
        return self.comparison.start(duration)

    def reset(self):
        """
        Back to a fresh intersection: lanes, lights, metrics, episode memory
        and any comparison are cleared. An in-flight yellow is dropped and the
        lights rest on the initial phase. The Q-table and epsilon are kept.
        """
        self.running = False
        self.adaptive = False
        self.lights.force_clear(INITIAL_GREEN)
        for lane in self.lanes.values():
            lane.reset()
        self.metrics.reset()
        self.metrics.clear_series()
        self.agent.reset_episode()
        self.comparison.cancel()

        self.sim_time = 0.0
        self.phase_started = 0.0
        self.starvation_events = 0
        self.switch_count = 0
        self.queues = {d: 0 for d in DIRECTIONS}
        self.waiting = {d: [] for d in DIRECTIONS}
        self.events.clear()
        self.emit("reset", "Controller reset; learned Q-table kept", q_states=len(self.agent.table))

    def snapshot(self) -> Dict:
        return {
            "running": self.running,
            "adaptive": self.adaptive,
            "time_scale": self.time_scale,
            "t": round(self.sim_time, 2),
            "signals": self.current_phase(),
            "phase": self.controller_phase().value,
            "phase_elapsed": round(self.phase_elapsed(), 2),
            "lanes": {
                d: {
                    "queue": self.queues[d],
                    "red_duration": round(lane.red_duration, 1),
                    "priority": round(lane.priority, 3),
                    "level": starvation_level(lane.red_duration, self.config.starvation_threshold),
                }
                for d, lane in self.lanes.items()
            },
            "starvation_events": self.starvation_events,
            "switches": self.switch_count,
            "agent": {
                "epsilon": round(self.agent.epsilon, 4),
                "total_reward": round(self.agent.total_reward, 2),
                "score": self.agent.score(),
                "steps": self.agent.steps,
                "q_states": len(self.agent.table),
            },
            "metrics": {**self.metrics.snapshot(), "series": self.metrics.series()},
            "projection": scalability_projection(self.metrics.co2, self.sim_time),
            "comparison": self.comparison.result(),
            "events": [e.to_dict() for e in reversed(self.events)],
        }
