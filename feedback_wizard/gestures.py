"""Swipe detection for section-to-section navigation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .wizard_logging import log_wizard_event

logger = logging.getLogger("feedback_wizard.gestures")


class GestureIntent(str, Enum):
    ADVANCE = "advance"
    RETREAT = "retreat"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class Point:
    x: float
    y: float


@dataclass(slots=True, frozen=True)
class GestureConfig:
    """Swipe thresholds: pixels, pixels and pixels per millisecond."""

    threshold: float = 50
    max_vertical: float = 100
    min_speed: float = 0.3


def classify_swipe(
    start: Point,
    start_ms: float,
    end: Point,
    end_ms: float,
    config: GestureConfig = GestureConfig(),
) -> GestureIntent:
    """Classify one touch-start/touch-end pair.

    A swipe left (negative dx) advances, a swipe right retreats. Too much
    vertical travel, too little horizontal travel or too slow a release
    yields ``NONE``.
    """
    dx = end.x - start.x
    dy = abs(end.y - start.y)
    dt = end_ms - start_ms
    speed = abs(dx) / dt if dt != 0 else math.inf

    if dy > config.max_vertical:
        return GestureIntent.NONE
    if abs(dx) < config.threshold:
        return GestureIntent.NONE
    if speed < config.min_speed:
        return GestureIntent.NONE
    return GestureIntent.ADVANCE if dx < 0 else GestureIntent.RETREAT


@dataclass(slots=True, frozen=True)
class _GestureStart:
    point: Point
    time_ms: float


class GestureNavigator:
    """Turns touch start/end events into advance/retreat callbacks.

    ``enabled`` may be a bool or a zero-argument callable evaluated on
    every event, so the owner can switch swiping off per wizard step.
    """

    def __init__(
        self,
        on_advance: Callable[[], object],
        on_retreat: Callable[[], object],
        *,
        config: GestureConfig = GestureConfig(),
        enabled: Union[bool, Callable[[], bool]] = True,
    ) -> None:
        self.on_advance = on_advance
        self.on_retreat = on_retreat
        self.config = config
        self._enabled = enabled
        self._start: Optional[_GestureStart] = None

    @property
    def enabled(self) -> bool:
        return bool(self._enabled()) if callable(self._enabled) else bool(self._enabled)

    @enabled.setter
    def enabled(self, value: Union[bool, Callable[[], bool]]) -> None:
        self._enabled = value

    @property
    def active(self) -> bool:
        return self._start is not None

    def on_gesture_start(self, point: Point, time_ms: float) -> None:
        if not self.enabled:
            return
        self._start = _GestureStart(point, time_ms)

    def on_gesture_end(self, point: Point, time_ms: float) -> GestureIntent:
        start, self._start = self._start, None
        if start is None or not self.enabled:
            return GestureIntent.NONE

        intent = classify_swipe(start.point, start.time_ms, point, time_ms, self.config)
        if intent is GestureIntent.NONE:
            logger.debug(f"Ignored gesture from {start.point} to {point}")
            return intent

        log_wizard_event("gesture_recognized", intent=intent.value)
        if intent is GestureIntent.ADVANCE:
            self.on_advance()
        else:
            self.on_retreat()
        return intent
