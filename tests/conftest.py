import pytest

from config import ControllerConfig
from controller import SignalController
from lights import Axis
from scheduler import TickKind, TickScheduler


def greedy_config(**overrides):
    """No exploration and no learning: the policy always answers KEEP."""
    params = dict(epsilon=0.0, epsilon_min=0.0, q_alpha=0.0)
    params.update(overrides)
    return ControllerConfig(**params)


def attach_clock(controller, fairness=0.5, decision=1.5):
    clock = TickScheduler({TickKind.FAIRNESS: fairness, TickKind.DECISION: decision})
    clock.register(TickKind.FAIRNESS, controller.tick)
    clock.register(TickKind.DECISION, controller.tick)
    return clock


def start_on(controller, axis):
    controller.lights.force_clear(axis)
    controller.phase_started = controller.sim_time


@pytest.fixture
def controller():
    ctrl = SignalController(greedy_config(), seed=1)
    ctrl.set_running(True)
    return ctrl


@pytest.fixture
def adaptive(controller):
    controller.set_adaptive(True)
    start_on(controller, Axis.NS)
    return controller


@pytest.fixture
def clock(controller):
    return attach_clock(controller)
