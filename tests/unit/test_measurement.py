import pytest

from apps.worker.lib.measurement import (
    MeasurementTracker,
    MeasurementUnavailable,
    measure_key,
    settle,
)


def test_measure_key_changes_with_inputs():
    base = measure_key(["A", "B"], [2, 1], [0, 1], 10)
    assert base == measure_key(["A", "B"], [2, 1], [0, 1], 10)
    assert base != measure_key(["A", "B"], [3, 1], [0, 1], 10)
    assert base != measure_key(["A", "B"], [2, 1], [0, 1], 11)
    assert base != measure_key(["B", "A"], [2, 1], [0, 1], 10)
    assert base != measure_key(["A", "B"], [2, 1], [0, 1], 10, history_enabled=False)


def test_tracker_applies_current_result():
    tracker = MeasurementTracker()
    ticket = tracker.begin("k1")
    assert tracker.complete(ticket, "result")
    assert tracker.result_for("k1") == "result"
    assert tracker.result_for("k2") is None


def test_tracker_discards_superseded_generation():
    tracker = MeasurementTracker()
    old = tracker.begin("k1")
    new = tracker.begin("k1")
    assert tracker.is_stale(old)
    assert not tracker.complete(old, "old")
    assert tracker.result_for("k1") is None
    assert tracker.complete(new, "new")
    assert tracker.result_for("k1") == "new"


def test_tracker_discards_result_for_changed_inputs():
    tracker = MeasurementTracker()
    first = tracker.begin("k1")
    tracker.begin("k2")
    assert not tracker.complete(first, "stale")
    assert tracker.result_for("k1") is None
    assert tracker.generation == 2


def test_tracker_keeps_result_when_remeasuring_same_key():
    tracker = MeasurementTracker()
    tracker.complete(tracker.begin("k1"), "r1")
    tracker.begin("k1")
    assert tracker.result_for("k1") == "r1"


def test_settle_needs_two_agreeing_passes():
    values = iter([10, 12, 12])
    assert settle(lambda: next(values), max_passes=3) == 12


def test_settle_stable_on_second_pass():
    calls = []

    def measure():
        calls.append(1)
        return 5

    assert settle(measure) == 5
    assert len(calls) == 2


def test_settle_raises_when_layout_never_settles():
    values = iter([1, 2, 3])
    with pytest.raises(MeasurementUnavailable):
        settle(lambda: next(values), max_passes=3)


def test_settle_rejects_single_pass():
    with pytest.raises(ValueError):
        settle(lambda: 1, max_passes=1)
