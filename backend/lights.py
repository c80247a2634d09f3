# lights.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional


class Signal(str, Enum):
    RED = "RED"
    YELLOW = "YELLOW"
    GREEN = "GREEN"


class Axis(str, Enum):
    NS = "NS"
    EW = "EW"

    @property
    def opposite(self) -> "Axis":
        return Axis.EW if self is Axis.NS else Axis.NS


class ControllerPhase(str, Enum):
    GREEN_NS = "GREEN_NS"
    GREEN_EW = "GREEN_EW"
    SWITCHING = "SWITCHING"


DIRECTIONS = ("N", "S", "E", "W")
PHASE_SERVES = {Axis.NS: ("N", "S"), Axis.EW: ("E", "W")}
LANE_AXIS = {d: axis for axis, lanes in PHASE_SERVES.items() for d in lanes}

# manual override strings accepted from the control panel (N/E/S/W heads)
PHASE_ALIASES = {
    "NS": Axis.NS,
    "EW": Axis.EW,
    "GrGr": Axis.NS,
    "rGrG": Axis.EW,
}


class SignalInvariantError(RuntimeError):
    """Raised when a signal write would break the light invariants."""


class InvalidPhaseError(ValueError):
    pass


def parse_phase(text: str) -> Axis:
    if not isinstance(text, str):
        raise InvalidPhaseError(f"phase must be a string, got {type(text).__name__}")
    key = text.strip()
    if key.upper() in ("NS", "EW"):
        key = key.upper()
    if key not in PHASE_ALIASES:
        raise InvalidPhaseError(f"unknown phase {text!r}; expected one of {sorted(PHASE_ALIASES)}")
    return PHASE_ALIASES[key]


@dataclass
class LaneState:
    direction: str
    red_duration: float = 0.0
    priority: float = 0.0

    def reset(self):
        self.red_duration = 0.0
        self.priority = 0.0


def make_lanes() -> Dict[str, LaneState]:
    return {d: LaneState(d) for d in DIRECTIONS}


class LightState:
    """
    Two composite signal heads (NS and EW) plus the in-flight transition.

    Every write goes through _set(), so both heads can never be GREEN at
    the same time. A switch is GREEN -> YELLOW (begin_switch) and later
    YELLOW -> RED with the other head turning GREEN (complete_switch).
    """

    def __init__(self, green: Axis = Axis.EW):
        self._signals: Dict[Axis, Signal] = {Axis.NS: Signal.RED, Axis.EW: Signal.RED}
        self._set(green, Signal.GREEN)

        self.switching: bool = False
        self.deadline: Optional[float] = None
        self.next_axis: Optional[Axis] = None

    def _set(self, axis: Axis, signal: Signal):
        other = self._signals[axis.opposite]
        if signal is Signal.GREEN and other is not Signal.RED:
            raise SignalInvariantError(f"{axis.value} cannot turn GREEN while {axis.opposite.value} is {other.value}")
        self._signals[axis] = signal

    def signal(self, axis: Axis) -> Signal:
        return self._signals[axis]

    def lane_signal(self, direction: str) -> Signal:
        return self._signals[LANE_AXIS[direction]]

    @property
    def green_axis(self) -> Optional[Axis]:
        for axis, sig in self._signals.items():
            if sig is Signal.GREEN:
                return axis
        return None

    def phase(self) -> ControllerPhase:
        if self.switching:
            return ControllerPhase.SWITCHING
        return ControllerPhase.GREEN_NS if self.green_axis is Axis.NS else ControllerPhase.GREEN_EW

    def begin_switch(self, now: float, clearance: float):
        if self.switching:
            raise SignalInvariantError("switch requested while a transition is already in flight")
        outgoing = self.green_axis
        if outgoing is None:
            raise SignalInvariantError("no GREEN head to switch away from")
        self._set(outgoing, Signal.YELLOW)
        self.switching = True
        self.deadline = now + clearance
        self.next_axis = outgoing.opposite

    def due(self, now: float) -> bool:
        return self.switching and now >= self.deadline

    def complete_switch(self) -> Axis:
        if not self.switching:
            raise SignalInvariantError("no transition to complete")
        incoming = self.next_axis
        self._set(incoming.opposite, Signal.RED)
        self._set(incoming, Signal.GREEN)
        self.switching = False
        self.deadline = None
        self.next_axis = None
        return incoming

    def force_clear(self, green: Axis):
        """Abort any transition and rest on `green` (RED/RED first, then GREEN)."""
        self._set(Axis.NS, Signal.RED)
        self._set(Axis.EW, Signal.RED)
        self._set(green, Signal.GREEN)
        self.switching = False
        self.deadline = None
        self.next_axis = None

    def snapshot(self) -> Dict[str, str]:
        return {axis.value: sig.value for axis, sig in self._signals.items()}


def advance_red_durations(lanes: Iterable[LaneState], lights: LightState, elapsed: float):
    for lane in lanes:
        if lights.lane_signal(lane.direction) is Signal.GREEN:
            lane.red_duration = 0.0
        else:
            lane.red_duration += elapsed
