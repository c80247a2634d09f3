from dataclasses import dataclass, field
from typing import Dict, Tuple

# Tick cadences (wall-clock seconds)
PHYSICS_INTERVAL = 0.05
FAIRNESS_INTERVAL = 0.5      # priorities, red durations, emissions
DECISION_INTERVAL = 1.5      # signal decisions
CHART_INTERVAL = 1.0

TIME_SCALE = 1.0             # simulated seconds per wall second

MIN_GREEN = 7
MAX_GREEN = 60
YELLOW = 2                   # clearance, simulated seconds
STARVATION_THRESHOLD = 120   # force green after this much red

# Fairness weights: congestion vs. time spent on red
FAIR_ALPHA = 0.6
FAIR_BETA = 0.4

# Q-learning
Q_ALPHA = 0.15
Q_GAMMA = 0.9
EPSILON = 0.3
EPSILON_DECAY = 0.998
EPSILON_MIN = 0.05
QUEUE_BINS = (0, 3, 7, 12, 20)
RED_BINS = (0, 10, 30, 60, 100)      # seconds
FAIRNESS_PENALTY = 0.1

# Emissions per vehicle per simulated second (grams, litres, milligrams)
IDLE_EMISSIONS = {"co2": 2.3, "fuel": 0.0008, "nox": 0.015}
MOVING_EMISSIONS = {"co2": 0.5, "fuel": 0.0002, "nox": 0.003}

# Baseline vs adaptive comparison
BASELINE_DURATION = 60
BASELINE_PHASE_INTERVAL = 30

EVENT_LOG_SIZE = 40
CHART_POINTS = 60

# Roll-out projection
PROJECTION_INTERSECTIONS = 500
PROJECTION_SAVING = 0.17
PROJECTION_FALLBACK_G_PER_HOUR = 900

# Queue model used by the simulator
SERVICE_RATE = 0.65          # queued vehicles released per second on green
CROSS_TIME = 4.0             # seconds from stop line to clear of the junction

TRAFFIC_PATTERNS = {
    "balanced": {"N": 0.25, "S": 0.25, "E": 0.25, "W": 0.25, "rate": 0.40},
    "rushNS":   {"N": 0.40, "S": 0.35, "E": 0.15, "W": 0.10, "rate": 0.55},
    "rushEW":   {"N": 0.12, "S": 0.13, "E": 0.40, "W": 0.35, "rate": 0.55},
    "burst":    {"N": 0.25, "S": 0.25, "E": 0.25, "W": 0.25, "rate": 0.80},
}

LOG_LEVEL = "INFO"


@dataclass
class ControllerConfig:
    min_green: float = MIN_GREEN
    max_green: float = MAX_GREEN
    yellow: float = YELLOW
    starvation_threshold: float = STARVATION_THRESHOLD
    fair_alpha: float = FAIR_ALPHA
    fair_beta: float = FAIR_BETA

    q_alpha: float = Q_ALPHA
    q_gamma: float = Q_GAMMA
    epsilon: float = EPSILON
    epsilon_decay: float = EPSILON_DECAY
    epsilon_min: float = EPSILON_MIN
    queue_bins: Tuple[float, ...] = QUEUE_BINS
    red_bins: Tuple[float, ...] = RED_BINS

    idle_emissions: Dict[str, float] = field(default_factory=lambda: dict(IDLE_EMISSIONS))
    moving_emissions: Dict[str, float] = field(default_factory=lambda: dict(MOVING_EMISSIONS))

    baseline_duration: float = BASELINE_DURATION
    baseline_phase_interval: float = BASELINE_PHASE_INTERVAL
    time_scale: float = TIME_SCALE
