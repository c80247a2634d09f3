import pytest

from lights import (
    Axis,
    ControllerPhase,
    InvalidPhaseError,
    LightState,
    Signal,
    SignalInvariantError,
    advance_red_durations,
    make_lanes,
    parse_phase,
)


class TestLightState:
    def test_initial_state_has_one_green(self):
        lights = LightState(green=Axis.EW)
        assert lights.snapshot() == {"NS": "RED", "EW": "GREEN"}
        assert lights.phase() is ControllerPhase.GREEN_EW

    def test_switch_passes_through_yellow(self):
        lights = LightState(green=Axis.NS)
        lights.begin_switch(now=10.0, clearance=2.0)

        assert lights.signal(Axis.NS) is Signal.YELLOW
        assert lights.signal(Axis.EW) is Signal.RED
        assert lights.phase() is ControllerPhase.SWITCHING
        assert not lights.due(11.5)
        assert lights.due(12.0)

        assert lights.complete_switch() is Axis.EW
        assert lights.snapshot() == {"NS": "RED", "EW": "GREEN"}
        assert lights.phase() is ControllerPhase.GREEN_EW

    def test_second_switch_while_switching_is_refused(self):
        lights = LightState()
        lights.begin_switch(0.0, 2.0)
        with pytest.raises(SignalInvariantError):
            lights.begin_switch(0.5, 2.0)

    def test_both_green_is_impossible(self):
        lights = LightState(green=Axis.NS)
        with pytest.raises(SignalInvariantError):
            lights._set(Axis.EW, Signal.GREEN)
        assert lights.snapshot() == {"NS": "GREEN", "EW": "RED"}

    def test_green_while_other_is_yellow_is_impossible(self):
        lights = LightState(green=Axis.NS)
        lights.begin_switch(0.0, 2.0)
        with pytest.raises(SignalInvariantError):
            lights._set(Axis.EW, Signal.GREEN)

    def test_complete_without_switch_is_an_error(self):
        with pytest.raises(SignalInvariantError):
            LightState().complete_switch()

    def test_force_clear_drops_transition(self):
        lights = LightState(green=Axis.NS)
        lights.begin_switch(0.0, 2.0)
        lights.force_clear(Axis.EW)
        assert not lights.switching
        assert lights.snapshot() == {"NS": "RED", "EW": "GREEN"}


class TestRedDurations:
    def test_non_green_lanes_accumulate_and_green_lanes_reset(self):
        lanes = make_lanes()
        lights = LightState(green=Axis.NS)
        lanes["N"].red_duration = 5.0

        advance_red_durations(lanes.values(), lights, 1.5)

        assert lanes["N"].red_duration == 0.0
        assert lanes["S"].red_duration == 0.0
        assert lanes["E"].red_duration == 1.5
        assert lanes["W"].red_duration == 1.5

    def test_yellow_counts_as_not_green(self):
        lanes = make_lanes()
        lights = LightState(green=Axis.NS)
        lights.begin_switch(0.0, 2.0)
        advance_red_durations(lanes.values(), lights, 1.0)
        assert lanes["N"].red_duration == 1.0
        assert lanes["E"].red_duration == 1.0


class TestParsePhase:
    @pytest.mark.parametrize("text,axis", [
        ("NS", Axis.NS),
        ("ew", Axis.EW),
        ("GrGr", Axis.NS),
        ("rGrG", Axis.EW),
        (" NS ", Axis.NS),
    ])
    def test_accepted(self, text, axis):
        assert parse_phase(text) is axis

    @pytest.mark.parametrize("text", ["GGGG", "rrrr", "", "north", "grgr", None, 3])
    def test_rejected(self, text):
        with pytest.raises(InvalidPhaseError):
            parse_phase(text)

    def test_invalid_phase_is_a_value_error(self):
        assert issubclass(InvalidPhaseError, ValueError)
