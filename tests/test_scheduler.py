import pytest

from scheduler import TickKind, TickScheduler


def recorder(log):
    def callback(kind, elapsed):
        log.append((kind, elapsed))
    return callback


class TestTickScheduler:
    def test_fires_at_each_cadence(self):
        sched = TickScheduler({TickKind.FAIRNESS: 0.5, TickKind.DECISION: 1.5})
        log = []
        sched.register(TickKind.FAIRNESS, recorder(log))
        sched.register(TickKind.DECISION, recorder(log))

        sched.advance(3.0)

        assert sched.count(TickKind.FAIRNESS) == 6
        assert sched.count(TickKind.DECISION) == 2
        assert all(elapsed == pytest.approx(0.5) for kind, elapsed in log if kind is TickKind.FAIRNESS)
        assert all(elapsed == pytest.approx(1.5) for kind, elapsed in log if kind is TickKind.DECISION)

    def test_same_instant_ticks_fire_in_kind_order(self):
        sched = TickScheduler({TickKind.CHART: 1.0, TickKind.DECISION: 1.0, TickKind.FAIRNESS: 0.5})
        log = []
        for kind in sched.cadences:
            sched.register(kind, recorder(log))

        sched.advance(1.0)

        assert [k for k, _ in log] == [
            TickKind.FAIRNESS,
            TickKind.FAIRNESS,
            TickKind.DECISION,
            TickKind.CHART,
        ]

    def test_partial_advances_accumulate(self):
        sched = TickScheduler({TickKind.DECISION: 1.5})
        for _ in range(10):
            sched.advance(0.1)
        assert sched.count(TickKind.DECISION) == 0
        sched.advance(0.5)
        assert sched.count(TickKind.DECISION) == 1

    def test_no_drift_over_many_ticks(self):
        sched = TickScheduler({TickKind.PHYSICS: 0.05})
        sched.advance(100.0)
        assert sched.count(TickKind.PHYSICS) == 2000

    def test_advance_to_absolute_time(self):
        sched = TickScheduler({TickKind.FAIRNESS: 0.5}, start=10.0)
        assert sched.advance_to(12.0) == 4
        assert sched.now == 12.0
        with pytest.raises(ValueError):
            sched.advance_to(11.0)

    def test_rejects_bad_cadence(self):
        with pytest.raises(ValueError):
            TickScheduler({TickKind.FAIRNESS: 0})

    def test_register_unknown_kind(self):
        sched = TickScheduler({TickKind.FAIRNESS: 0.5})
        with pytest.raises(ValueError):
            sched.register(TickKind.CHART, recorder([]))
