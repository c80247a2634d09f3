from typing import Dict, Optional

from config import FAIR_ALPHA, FAIR_BETA, STARVATION_THRESHOLD
from lights import Axis, LaneState, PHASE_SERVES


def update_priorities(
    lanes: Dict[str, LaneState],
    queues: Dict[str, int],
    alpha: float = FAIR_ALPHA,
    beta: float = FAIR_BETA,
) -> Dict[str, float]:
    """
    priority = alpha * queue / max_queue + beta * red / max_red

    Both maxima are floored at 1 so an empty junction scores 0 everywhere.
    Recomputed from scratch each tick; nothing is smoothed.
    """
    max_q = max([1] + [queues.get(d, 0) for d in lanes])
    max_red = max([1.0] + [lane.red_duration for lane in lanes.values()])

    for d, lane in lanes.items():
        norm_q = queues.get(d, 0) / max_q
        norm_red = lane.red_duration / max_red
        lane.priority = alpha * norm_q + beta * norm_red

    return {d: lane.priority for d, lane in lanes.items()}


def max_red(lanes: Dict[str, LaneState], axis: Axis) -> float:
    return max(lanes[d].red_duration for d in PHASE_SERVES[axis])


def axis_priority(lanes: Dict[str, LaneState], axis: Axis) -> float:
    return sum(lanes[d].priority for d in PHASE_SERVES[axis])


def starved_axis(
    lanes: Dict[str, LaneState],
    green_axis: Axis,
    threshold: float = STARVATION_THRESHOLD,
) -> Optional[Axis]:
    waiting = green_axis.opposite
    if max_red(lanes, waiting) > threshold:
        return waiting
    return None


def starvation_level(red_duration: float, threshold: float = STARVATION_THRESHOLD) -> str:
    if red_duration > threshold * 0.8:
        return "critical"
    if red_duration > threshold * 0.5:
        return "warn"
    return "ok"
