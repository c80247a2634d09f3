import logging
import math
from enum import IntEnum
from typing import Dict, NamedTuple, Optional, Sequence

import numpy as np

from config import (
    Q_ALPHA,
    Q_GAMMA,
    EPSILON,
    EPSILON_DECAY,
    EPSILON_MIN,
    QUEUE_BINS,
    RED_BINS,
    FAIRNESS_PENALTY,
)

logger = logging.getLogger(__name__)


class Action(IntEnum):
    KEEP = 0
    SWITCH = 1


class StateKey(NamedTuple):
    ns_bin: int
    ew_bin: int
    red_bin: int

    def __str__(self) -> str:
        return f"{self.ns_bin}_{self.ew_bin}_{self.red_bin}"


def discretize(value: float, bins: Sequence[float]) -> int:
    """Index of the highest threshold <= value (0 below the first one)."""
    for i in range(len(bins) - 1, -1, -1):
        if value >= bins[i]:
            return i
    return 0


def state_key(
    q_ns: int,
    q_ew: int,
    max_red: float,
    queue_bins: Sequence[float] = QUEUE_BINS,
    red_bins: Sequence[float] = RED_BINS,
) -> StateKey:
    return StateKey(
        discretize(q_ns, queue_bins),
        discretize(q_ew, queue_bins),
        discretize(max_red, red_bins),
    )


def compute_reward(q_ns: int, q_ew: int, max_red_ns: float, max_red_ew: float) -> float:
    # imbalance between the two axes' red times is a penalty, never a bonus
    fairness_bonus = -abs(max_red_ns - max_red_ew) * FAIRNESS_PENALTY
    return -(q_ns + q_ew) + fairness_bonus


class QTable:
    def __init__(self):
        self._rows: Dict[StateKey, np.ndarray] = {}

    def row(self, key: StateKey) -> np.ndarray:
        if key not in self._rows:
            self._rows[key] = np.zeros(len(Action))
        return self._rows[key]

    def value(self, key: StateKey, action: Action) -> float:
        return float(self.row(key)[action])

    def set_value(self, key: StateKey, action: Action, value: float):
        self.row(key)[action] = value

    def best_action(self, key: StateKey) -> Action:
        row = self.row(key)
        return Action.KEEP if row[Action.KEEP] >= row[Action.SWITCH] else Action.SWITCH

    def best_value(self, key: StateKey) -> float:
        return float(self.row(key).max())

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key) -> bool:
        return key in self._rows

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            str(key): {a.name: float(row[a]) for a in Action}
            for key, row in self._rows.items()
        }


class QAgent:
    """
    Tabular one-step Q-learning over (queue NS, queue EW, red time) bins.

    The pending (state, action) pair is credited on the next decision, so
    the first decision after forget() learns nothing. The table and the
    exploration rate survive forget() and reset_episode().
    """

    def __init__(
        self,
        alpha: float = Q_ALPHA,
        gamma: float = Q_GAMMA,
        epsilon: float = EPSILON,
        epsilon_decay: float = EPSILON_DECAY,
        epsilon_min: float = EPSILON_MIN,
        rng: Optional[np.random.Generator] = None,
    ):
        self.alpha = alpha
        self.gamma = gamma
        self.epsilon = epsilon
        self.epsilon_decay = epsilon_decay
        self.epsilon_min = epsilon_min
        self.rng = rng if rng is not None else np.random.default_rng()

        self.table = QTable()
        self.prev_key: Optional[StateKey] = None
        self.prev_action: Optional[Action] = None
        self.total_reward = 0.0
        self.steps = 0

    def update(self, key: StateKey, action: Action, reward: float, next_key: StateKey) -> float:
        old_q = self.table.value(key, action)
        best_future = self.table.best_value(next_key)
        new_q = old_q + self.alpha * (reward + self.gamma * best_future - old_q)
        self.table.set_value(key, action, new_q)
        return new_q

    def choose(self, key: StateKey) -> Action:
        if self.rng.random() < self.epsilon:
            return Action.KEEP if self.rng.random() < 0.5 else Action.SWITCH
        return self.table.best_action(key)

    def decay(self):
        self.epsilon = max(self.epsilon_min, self.epsilon * self.epsilon_decay)

    def decide(self, key: StateKey, reward: float) -> Action:
        if self.prev_key is not None and self.prev_action is not None:
            self.total_reward += reward
            new_q = self.update(self.prev_key, self.prev_action, reward, key)
            logger.debug("Q[%s, %s] <- %.3f (reward %.2f)", self.prev_key, self.prev_action.name, new_q, reward)

        action = self.choose(key)
        self.decay()

        self.prev_key = key
        self.prev_action = action
        self.steps += 1
        return action

    def forget(self):
        self.prev_key = None
        self.prev_action = None

    def reset_episode(self):
        self.forget()
        self.total_reward = 0.0
        self.steps = 0

    def score(self) -> int:
        return max(0, math.floor(1000 + self.total_reward))
