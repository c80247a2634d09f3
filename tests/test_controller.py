import logging

import pytest

from conftest import attach_clock, greedy_config, start_on
from controller import Decision, SignalController
from lights import Axis, ControllerPhase, InvalidPhaseError
from optimizer import Action, StateKey


def kinds(controller):
    return [e.kind for e in controller.events]


def first_event(controller, kind):
    return next(e for e in controller.events if e.kind == kind)


class TestStarvationOverride:
    def test_forced_switch_at_first_decision_past_threshold(self, adaptive):
        clock = attach_clock(adaptive, decision=1.0)
        adaptive.lanes["E"].red_duration = 70.5   # reaches 120.5 s at t=50

        clock.advance(49.0)
        assert adaptive.starvation_events == 0
        assert adaptive.lights.green_axis is Axis.NS

        clock.advance(1.0)
        assert adaptive.starvation_events == 1
        assert adaptive.controller_phase() is ControllerPhase.SWITCHING
        assert adaptive.current_phase() == {"NS": "YELLOW", "EW": "RED"}
        assert first_event(adaptive, "starvation").sim_time == 50.0

        clock.advance(5.0)
        assert adaptive.current_phase() == {"NS": "RED", "EW": "GREEN"}
        assert adaptive.starvation_events == 1
        assert kinds(adaptive).count("starvation") == 1

    def test_override_ignores_learned_preference(self):
        ctrl = SignalController(greedy_config(), seed=0)
        ctrl.set_running(True)
        ctrl.set_adaptive(True)
        start_on(ctrl, Axis.NS)
        for ns in range(5):
            for ew in range(5):
                for red in range(5):
                    ctrl.agent.table.set_value(StateKey(ns, ew, red), Action.KEEP, 100.0)
        ctrl.lanes["W"].red_duration = 300.0
        ctrl.sim_time = 10.0

        assert ctrl.decide() == Decision(Action.SWITCH, "starvation")

    def test_waits_for_minimum_green(self, adaptive, clock):
        adaptive.lanes["E"].red_duration = 500.0

        clock.advance(6.0)
        assert adaptive.starvation_events == 0
        assert not adaptive.lights.switching

        clock.advance(1.5)
        assert adaptive.starvation_events == 1
        assert first_event(adaptive, "yellow").sim_time == 7.5


class TestGreenBounds:
    def test_min_green_blocks_policy(self, adaptive):
        adaptive.sim_time = 3.0
        assert adaptive.decide() == Decision(None, "min_green")

    def test_max_green_forces_switch(self, adaptive, clock):
        clock.advance(60.0)
        assert adaptive.lights.green_axis is Axis.NS

        clock.advance(1.5)
        assert adaptive.lights.switching
        assert first_event(adaptive, "max_green").sim_time == 61.5
        assert adaptive.starvation_events == 0

    def test_policy_keep_leaves_lights_alone(self, adaptive):
        adaptive.sim_time = 20.0
        assert adaptive.decide() == Decision(Action.KEEP, "policy")
        assert adaptive.lights.green_axis is Axis.NS


class TestDecisionGuards:
    def test_manual_mode_takes_no_decision(self, controller):
        assert controller.decide() == Decision(None, "manual")

    def test_stopped_controller_takes_no_decision(self, adaptive):
        adaptive.set_running(False)
        adaptive.sim_time = 30.0
        assert adaptive.decide() == Decision(None, "idle")

    def test_no_decision_while_switching(self, adaptive):
        adaptive.sim_time = 30.0
        adaptive.perform_switch()
        assert adaptive.decide() == Decision(None, "idle")

    def test_switch_is_not_reentrant(self, controller, clock):
        assert controller.perform_switch("first") is True
        assert controller.perform_switch("second") is False

        clock.advance(2.0)
        assert controller.switch_count == 1
        assert controller.current_phase() == {"NS": "GREEN", "EW": "RED"}

    def test_zero_clearance_switches_immediately(self):
        ctrl = SignalController(greedy_config(yellow=0), seed=0)
        assert ctrl.perform_switch() is True
        assert ctrl.current_phase() == {"NS": "GREEN", "EW": "RED"}
        assert ctrl.switch_count == 1

    def test_phase_timer_restarts_when_green_begins(self, controller, clock):
        clock.advance(10.0)
        controller.perform_switch()
        clock.advance(2.0)
        assert controller.phase_elapsed() == 0.0
        clock.advance(3.0)
        assert controller.phase_elapsed() == 3.0


class TestSnapshots:
    def test_emissions_for_constant_fleet(self, controller, clock):
        controller.ingest_snapshot(None, {"N": [True, True, True], "E": [True, True], "W": [False] * 4})
        assert controller.queues == {"N": 3, "S": 0, "E": 2, "W": 0}

        clock.advance(10.0)
        assert controller.metrics.co2 == pytest.approx(5 * 2.3 * 10 + 4 * 0.5 * 10)

    def test_departures_feed_wait_and_throughput(self, controller):
        controller.ingest_snapshot({"N": 0}, {}, cleared=2, completed_wait=12.0)
        assert controller.metrics_snapshot()["throughput"] == 2
        assert controller.metrics_snapshot()["avg_wait"] == 6.0

    def test_unknown_lane_rejected(self, controller):
        with pytest.raises(ValueError):
            controller.ingest_snapshot({"X": 1}, {})

    def test_negative_queue_rejected(self, controller):
        with pytest.raises(ValueError):
            controller.ingest_snapshot({"N": -1}, {})

    def test_priorities_follow_queues(self, controller, clock):
        controller.ingest_snapshot({"N": 10, "S": 5, "E": 0, "W": 0}, {})
        clock.advance(0.5)
        prio = controller.current_priorities()
        assert prio["N"] > prio["S"]
        assert prio["N"] == pytest.approx(0.6 + 0.4 * (0.5 / 1.0))

    def test_stopped_controller_does_not_advance(self, controller, clock):
        controller.set_running(False)
        clock.advance(10.0)
        assert controller.sim_time == 0.0

    def test_time_scale_stretches_simulated_time(self, controller, clock):
        controller.set_time_scale(2.0)
        clock.advance(5.0)
        assert controller.sim_time == 10.0
        with pytest.raises(ValueError):
            controller.set_time_scale(0)

    def test_snapshot_shape(self, controller):
        snap = controller.snapshot()
        assert snap["signals"] == {"NS": "RED", "EW": "GREEN"}
        assert snap["phase"] == "GREEN_EW"
        assert set(snap["lanes"]) == {"N", "S", "E", "W"}
        assert snap["comparison"]["stage"] == "IDLE"


class TestManualOverride:
    def test_malformed_phase_changes_nothing(self, controller):
        with pytest.raises(InvalidPhaseError):
            controller.force_phase("GGGG")
        assert controller.current_phase() == {"NS": "RED", "EW": "GREEN"}
        assert not controller.lights.switching

    def test_override_goes_through_yellow(self, controller, clock):
        assert controller.force_phase("GrGr") is True
        assert controller.current_phase() == {"NS": "RED", "EW": "YELLOW"}
        clock.advance(2.0)
        assert controller.current_phase() == {"NS": "GREEN", "EW": "RED"}

    def test_already_green_is_a_no_op(self, controller):
        assert controller.force_phase("rGrG") is False
        assert not controller.lights.switching

    def test_ignored_in_adaptive_mode(self, adaptive):
        assert adaptive.force_phase("EW") is False
        assert adaptive.lights.green_axis is Axis.NS


class TestReset:
    def test_reset_clears_state_but_keeps_learning(self, adaptive, clock):
        adaptive.agent.table.set_value(StateKey(1, 1, 1), Action.SWITCH, -3.0)
        adaptive.ingest_snapshot(None, {"N": [True] * 4})
        clock.advance(20.0)
        adaptive.agent.epsilon = 0.11
        adaptive.perform_switch()

        adaptive.reset()

        assert adaptive.controller_phase() is ControllerPhase.GREEN_EW
        assert adaptive.current_phase() == {"NS": "RED", "EW": "GREEN"}
        assert not adaptive.running and not adaptive.adaptive
        assert adaptive.metrics.co2 == 0.0
        assert all(l.red_duration == 0.0 and l.priority == 0.0 for l in adaptive.lanes.values())
        assert adaptive.agent.prev_key is None
        assert adaptive.agent.table.value(StateKey(1, 1, 1), Action.SWITCH) == -3.0
        assert adaptive.agent.epsilon == pytest.approx(0.11)
        assert kinds(adaptive) == ["reset"]


class TestEvents:
    def test_failing_subscriber_does_not_stop_the_loop(self, controller, clock, caplog):
        received = []

        def broken(event):
            raise RuntimeError("display gone")

        controller.subscribe(broken)
        controller.subscribe(received.append)

        with caplog.at_level(logging.ERROR):
            assert controller.perform_switch() is True
            clock.advance(2.0)

        assert [e.kind for e in received] == ["yellow", "switch"]
        assert controller.switch_count == 1
        assert "failed" in caplog.text

    def test_unsubscribe(self, controller):
        received = []
        unsubscribe = controller.subscribe(received.append)
        unsubscribe()
        controller.perform_switch()
        assert received == []

    def test_event_log_is_bounded(self, controller):
        for i in range(100):
            controller.emit("note", f"event {i}")
        assert len(controller.events) == 40
        assert controller.snapshot()["events"][0]["message"] == "event 99"
