"""
Motion-sensitivity auto-tuner.

Keeps the share of "white" (bright) cells in the accumulation map inside a
target band by nudging ``motion_sensitivity`` one step at a time.  It polls
quickly (every 0.2 s) until the band is first reached, then slows down to
once a second.
"""

from __future__ import annotations

import logging

from face_pulse.motion_accumulator import MotionAccumulator

logger = logging.getLogger(__name__)

FAST_INTERVAL = 0.2
SLOW_INTERVAL = 1.0
MIN_SENSITIVITY = 10
MAX_SENSITIVITY = 90


class AutoTuner:
    """
    Parameters
    ----------
    white_threshold:
        Map intensity above which a cell counts as white (1 – 255).
    min_white_percent, max_white_percent:
        Target band for the white-cell percentage.
    """

    def __init__(
        self,
        white_threshold: int = 50,
        min_white_percent: float = 4.0,
        max_white_percent: float = 6.0,
    ) -> None:
        self.white_threshold = white_threshold
        self.min_white_percent = min_white_percent
        self.max_white_percent = max_white_percent

        self._interval = FAST_INTERVAL
        self._last_tune: float | None = None
        self._locked = False
        self._last_white_percent = 0.0

    def update(self, accumulator: MotionAccumulator, now: float) -> bool:
        """
        Run one tuning step if the polling interval has elapsed.

        Returns *True* when a step ran (whether or not it changed anything).
        """
        if self._last_tune is not None and now - self._last_tune < self._interval:
            return False
        self._last_tune = now

        white = accumulator.white_percent(self.white_threshold)
        self._last_white_percent = white

        if self.min_white_percent <= white <= self.max_white_percent:
            if not self._locked:
                self._locked = True
                self._interval = SLOW_INTERVAL
                logger.info(
                    "Auto-tune locked at sensitivity=%d (%.2f%% white)",
                    accumulator.motion_sensitivity, white,
                )
        elif white > self.max_white_percent:
            accumulator.motion_sensitivity = min(
                MAX_SENSITIVITY, accumulator.motion_sensitivity + 1
            )
        else:
            accumulator.motion_sensitivity = max(
                MIN_SENSITIVITY, accumulator.motion_sensitivity - 1
            )
        return True

    def reset(self) -> None:
        self._interval = FAST_INTERVAL
        self._last_tune = None
        self._locked = False
        self._last_white_percent = 0.0

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def last_white_percent(self) -> float:
        return self._last_white_percent
