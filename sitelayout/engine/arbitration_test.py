"""Tests for input arbitration between mouse, touch and pen sources."""

import pytest

from sitelayout.engine.arbitration import (
    DEFAULT_SOURCES,
    ActivationConstraint,
    InputAction,
    InputArbiter,
    InputSource,
    PressTracker,
    RawInputEvent,
    arbitrate,
    constraint_satisfied,
)
from sitelayout.engine.types import InputKind

MOUSE = InputKind.MOUSE
TOUCH = InputKind.TOUCH
POINTER = InputKind.POINTER


def down(kind, x, z, t=0.0):
    return RawInputEvent(kind, InputAction.DOWN, (x, z), t)


def move(kind, x, z, t=0.0):
    return RawInputEvent(kind, InputAction.MOVE, (x, z), t)


def up(kind, x, z, t=0.0):
    return RawInputEvent(kind, InputAction.UP, (x, z), t)


def _types(events):
    return [(e.type, e.kind) for e in events]


class TestConstraintSatisfied:
    def test_distance(self):
        c = ActivationConstraint(distance=10)
        tracker = PressTracker(origin=(0, 0), current=(6, 8), down_ms=0)
        assert constraint_satisfied(c, tracker, 0)
        tracker.current = (6, 7)
        assert not constraint_satisfied(c, tracker, 1000)

    def test_delay_and_tolerance(self):
        c = ActivationConstraint(delay_ms=250, tolerance=5)
        tracker = PressTracker(origin=(0, 0), current=(3, 0), down_ms=100)
        tracker.max_drift = 3
        assert not constraint_satisfied(c, tracker, 349)
        assert constraint_satisfied(c, tracker, 350)
        tracker.max_drift = 5.5
        assert not constraint_satisfied(c, tracker, 1000)

    def test_unconstrained(self):
        tracker = PressTracker(origin=(0, 0), current=(0, 0), down_ms=0)
        assert constraint_satisfied(ActivationConstraint(), tracker, 0)


class TestArbitrate:
    def test_priority_order(self):
        trackers = {
            TOUCH: PressTracker((0, 0), (0, 0), down_ms=0),
            POINTER: PressTracker((0, 0), (9, 0), down_ms=0),
            MOUSE: PressTracker((0, 0), (11, 0), down_ms=0),
        }
        assert arbitrate(DEFAULT_SOURCES, trackers, 300) is MOUSE
        del trackers[MOUSE]
        assert arbitrate(DEFAULT_SOURCES, trackers, 300) is POINTER
        del trackers[POINTER]
        assert arbitrate(DEFAULT_SOURCES, trackers, 300) is TOUCH
        assert arbitrate(DEFAULT_SOURCES, trackers, 100) is None

    def test_no_trackers(self):
        assert arbitrate(DEFAULT_SOURCES, {}, 0) is None


class TestMouse:
    def test_arms_after_distance(self):
        arb = InputArbiter()
        assert arb.tick([down(MOUSE, 0, 0), move(MOUSE, 5, 0)]) == []
        assert not arb.is_armed
        assert arb.active_kind is InputKind.NONE

        out = arb.tick([move(MOUSE, 10, 0)])
        assert _types(out) == [("armed", MOUSE)]
        assert out[0].origin == (0, 0)
        assert out[0].point == (10, 0)
        assert arb.active_kind is MOUSE

    def test_move_and_release(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 0, 0), move(MOUSE, 12, 0)])
        out = arb.tick([move(MOUSE, 20, 5), up(MOUSE, 21, 5)])
        assert _types(out) == [("moved", MOUSE), ("released", MOUSE)]
        assert out[0].point == (20, 5)
        assert out[1].point == (21, 5)
        assert not arb.is_armed

    def test_click_is_a_tap(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 5, 5)])
        out = arb.tick([up(MOUSE, 6, 5)])
        assert _types(out) == [("tap", MOUSE)]
        assert out[0].point == (6, 5)
        assert not arb.is_armed

    def test_press_drag_release_in_one_tick(self):
        arb = InputArbiter()
        out = arb.tick(
            [down(MOUSE, 0, 0), move(MOUSE, 50, 0), up(MOUSE, 50, 0)]
        )
        assert _types(out) == [("armed", MOUSE), ("released", MOUSE)]
        assert out[0].origin == (0, 0)
        assert out[1].point == (50, 0)
        assert not arb.is_armed

    def test_moves_after_arming_in_same_tick(self):
        arb = InputArbiter()
        out = arb.tick(
            [down(MOUSE, 0, 0), move(MOUSE, 12, 0), move(MOUSE, 30, 0)]
        )
        assert _types(out) == [("armed", MOUSE), ("moved", MOUSE)]
        assert out[1].point == (30, 0)

    def test_move_without_press_ignored(self):
        arb = InputArbiter()
        assert arb.tick([move(MOUSE, 50, 50)]) == []


class TestTouch:
    def test_arms_after_hold(self):
        arb = InputArbiter()
        assert arb.tick([down(TOUCH, 0, 0, t=0)]) == []
        assert arb.tick([move(TOUCH, 3, 0, t=100)]) == []
        assert arb.tick([], now_ms=249) == []
        out = arb.tick([], now_ms=250)
        assert _types(out) == [("armed", TOUCH)]
        assert out[0].point == (3, 0)

    def test_drift_during_hold_aborts(self):
        arb = InputArbiter()
        arb.tick([down(TOUCH, 0, 0, t=0)])
        arb.tick([move(TOUCH, 6, 0, t=100)])
        assert arb.tick([], now_ms=1000) == []
        # A scroll, not a tap.
        assert arb.tick([up(TOUCH, 6, 0, t=1100)]) == []

    def test_drift_after_hold_still_arms(self):
        arb = InputArbiter()
        arb.tick([down(TOUCH, 0, 0, t=0)])
        out = arb.tick([move(TOUCH, 20, 0, t=260)], now_ms=260)
        assert _types(out) == [("armed", TOUCH)]

    def test_quick_tap(self):
        arb = InputArbiter()
        arb.tick([down(TOUCH, 4, 4, t=0)])
        out = arb.tick([up(TOUCH, 4, 4, t=120)])
        assert _types(out) == [("tap", TOUCH)]

    def test_now_defaults_to_latest_timestamp(self):
        arb = InputArbiter()
        arb.tick([down(TOUCH, 0, 0, t=0)])
        out = arb.tick([move(TOUCH, 1, 0, t=300)])
        assert _types(out) == [("armed", TOUCH)]


class TestMutualExclusion:
    def test_simultaneous_qualifiers_pick_by_priority(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 0, 0, t=0), down(TOUCH, 0, 0, t=0)])
        out = arb.tick([move(MOUSE, 15, 0, t=300)], now_ms=300)
        assert _types(out) == [("armed", MOUSE)]

    def test_pointer_beats_touch(self):
        arb = InputArbiter()
        arb.tick([down(TOUCH, 0, 0, t=0), down(POINTER, 0, 0, t=0)])
        out = arb.tick([move(POINTER, 8, 0, t=400)], now_ms=400)
        assert _types(out) == [("armed", POINTER)]

    def test_first_qualifier_in_tick_wins(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 0, 0), down(POINTER, 0, 0)])
        out = arb.tick([move(POINTER, 9, 0), move(MOUSE, 15, 0)])
        assert _types(out) == [("armed", POINTER)]
        assert arb.active_kind is POINTER

    def test_other_sources_ignored_while_armed(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 0, 0), move(MOUSE, 12, 0)])
        out = arb.tick(
            [
                down(POINTER, 0, 0),
                move(POINTER, 30, 0),
                down(TOUCH, 5, 5),
                move(MOUSE, 14, 0),
            ],
            now_ms=1000,
        )
        assert _types(out) == [("moved", MOUSE)]
        assert arb.active_kind is MOUSE

    def test_losers_do_not_resume(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 0, 0, t=0), down(TOUCH, 0, 0, t=0)])
        arb.tick([move(MOUSE, 15, 0, t=300)], now_ms=300)
        arb.tick([up(MOUSE, 15, 0, t=310)])
        # The touch press was discarded when the mouse armed.
        assert arb.tick([], now_ms=2000) == []
        assert arb.tick([up(TOUCH, 0, 0, t=2000)]) == []


class TestCancel:
    def test_cancel_armed(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 0, 0), move(MOUSE, 12, 0)])
        ev = arb.cancel()
        assert ev.type == "cancelled"
        assert ev.kind is MOUSE
        assert ev.point == (12, 0)
        assert not arb.is_armed

    def test_cancel_idle(self):
        assert InputArbiter().cancel() is None

    def test_cancel_event_from_source(self):
        arb = InputArbiter()
        arb.tick([down(MOUSE, 0, 0), move(MOUSE, 12, 0)])
        out = arb.tick([RawInputEvent(MOUSE, InputAction.CANCEL, (12, 0))])
        assert _types(out) == [("cancelled", MOUSE)]
        assert not arb.is_armed


def test_custom_sources():
    arb = InputArbiter(
        [InputSource(TOUCH, ActivationConstraint(delay_ms=100))]
    )
    assert arb.tick([down(MOUSE, 0, 0), move(MOUSE, 50, 0)]) == []
    arb.tick([down(TOUCH, 0, 0, t=0)])
    out = arb.tick([], now_ms=100)
    assert _types(out) == [("armed", TOUCH)]


def test_raw_event_defaults():
    ev = RawInputEvent(MOUSE, InputAction.DOWN, (1, 2))
    assert ev.timestamp_ms == pytest.approx(0.0)
