"""Unit tests for swipe detection."""

import pytest

from conftest import event_names
from feedback_wizard.gestures import (
    GestureConfig,
    GestureIntent,
    GestureNavigator,
    Point,
    classify_swipe,
)

ORIGIN = Point(200, 300)


def _swipe(dx, dy=0, duration=100, config=GestureConfig()):
    return classify_swipe(ORIGIN, 1000, Point(ORIGIN.x + dx, ORIGIN.y + dy), 1000 + duration, config)


class TestClassifySwipe:
    """Test cases for the pure classifier."""

    def test_direction(self):
        """Swiping left advances, swiping right retreats."""
        assert _swipe(-80) is GestureIntent.ADVANCE
        assert _swipe(80) is GestureIntent.RETREAT

    def test_horizontal_threshold(self):
        """Exactly the threshold counts; one pixel less does not."""
        assert _swipe(-50) is GestureIntent.ADVANCE
        assert _swipe(-49) is GestureIntent.NONE
        assert _swipe(-51) is GestureIntent.ADVANCE

    def test_vertical_limit(self):
        """More vertical travel than allowed is a scroll, not a swipe."""
        assert _swipe(-80, dy=100) is GestureIntent.ADVANCE
        assert _swipe(-80, dy=-101) is GestureIntent.NONE
        assert _swipe(-80, dy=101) is GestureIntent.NONE

    def test_minimum_speed(self):
        """Slow drags are ignored: 60px over 300ms is 0.2px/ms."""
        assert _swipe(-60, duration=300) is GestureIntent.NONE
        assert _swipe(-60, duration=150) is GestureIntent.ADVANCE

    def test_zero_duration_counts_as_fast(self):
        assert _swipe(-60, duration=0) is GestureIntent.ADVANCE

    def test_end_before_start_is_rejected(self):
        """An end timestamp earlier than the start gives a negative speed."""
        assert _swipe(-80, duration=-10) is GestureIntent.NONE
        assert _swipe(80, duration=-10) is GestureIntent.NONE

    def test_custom_config(self):
        config = GestureConfig(threshold=100, max_vertical=20, min_speed=1.0)

        assert _swipe(-80, config=config) is GestureIntent.NONE
        assert _swipe(-120, dy=30, config=config) is GestureIntent.NONE
        assert _swipe(-120, duration=100, config=config) is GestureIntent.ADVANCE


class TestGestureNavigator:
    """Test cases for the stateful navigator."""

    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def navigator(self, calls):
        return GestureNavigator(lambda: calls.append("advance"), lambda: calls.append("retreat"))

    def test_swipe_invokes_callback(self, navigator, calls, events):
        navigator.on_gesture_start(ORIGIN, 0)
        assert navigator.active

        intent = navigator.on_gesture_end(Point(ORIGIN.x - 80, ORIGIN.y), 100)

        assert intent is GestureIntent.ADVANCE
        assert calls == ["advance"]
        assert not navigator.active
        assert "gesture_recognized" in event_names(events)

    def test_retreat(self, navigator, calls):
        navigator.on_gesture_start(ORIGIN, 0)
        navigator.on_gesture_end(Point(ORIGIN.x + 80, ORIGIN.y), 100)

        assert calls == ["retreat"]

    def test_end_without_start_is_noop(self, navigator, calls):
        assert navigator.on_gesture_end(Point(0, 0), 100) is GestureIntent.NONE
        assert calls == []

    def test_start_is_reset_after_end(self, navigator, calls):
        """A second end without a new start does nothing."""
        navigator.on_gesture_start(ORIGIN, 0)
        navigator.on_gesture_end(Point(ORIGIN.x - 80, ORIGIN.y), 100)
        navigator.on_gesture_end(Point(ORIGIN.x - 160, ORIGIN.y), 150)

        assert calls == ["advance"]

    def test_rejected_gesture_resets_start(self, navigator, calls):
        navigator.on_gesture_start(ORIGIN, 0)

        assert navigator.on_gesture_end(Point(ORIGIN.x - 10, ORIGIN.y), 100) is GestureIntent.NONE
        assert not navigator.active
        assert calls == []

    def test_disabled_navigator_ignores_gestures(self, navigator, calls):
        navigator.enabled = False

        navigator.on_gesture_start(ORIGIN, 0)
        intent = navigator.on_gesture_end(Point(ORIGIN.x - 80, ORIGIN.y), 100)

        assert intent is GestureIntent.NONE
        assert not navigator.active
        assert calls == []

    def test_disabling_mid_gesture_drops_it(self, calls):
        """Switching off between start and end clears the stored start."""
        state = {"enabled": True}
        navigator = GestureNavigator(
            lambda: calls.append("advance"),
            lambda: calls.append("retreat"),
            enabled=lambda: state["enabled"],
        )

        navigator.on_gesture_start(ORIGIN, 0)
        state["enabled"] = False
        assert navigator.on_gesture_end(Point(ORIGIN.x - 80, ORIGIN.y), 100) is GestureIntent.NONE
        assert not navigator.active

        state["enabled"] = True
        assert navigator.on_gesture_end(Point(ORIGIN.x - 80, ORIGIN.y), 100) is GestureIntent.NONE
        assert calls == []
