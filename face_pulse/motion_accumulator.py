"""
Frame differencer and motion accumulator.

Algorithm
---------
1. Difference the current face crop against the previous one, weighting the
   green channel four times (green is most sensitive to haemoglobin
   absorption changes): ``diff = 4·|ΔG| + |ΔR| + |ΔB|``.
2. A pixel is *moving* when ``diff > motion_sensitivity``.
3. If too many pixels moved at once (head turn, camera shake) the whole
   accumulation map is faded hard and the frame contributes no motion.
4. Otherwise the map fades slowly and every moving pixel is raised to
   ``clamp(diff · motion_sensitivity // 5, 0, 255)`` if that is brighter than
   its decayed value, leaving a glowing trail of recent micro-motion.

The sum of the boosts is the frame's *motion energy*, which the pulse
reducer turns into one sample per frame.
"""

from __future__ import annotations

import logging
from typing import List

import numpy as np

logger = logging.getLogger(__name__)


class MotionAccumulator:
    """
    Owns the current/previous frame buffers and the accumulation map.

    Parameters
    ----------
    resolution:
        Side length ``R`` of the square RGB crops that will be pushed.
    motion_sensitivity:
        Per-pixel difference threshold (1 – 100).  Also scales the boost.
    max_moving_percent:
        Percentage of moving pixels above which a frame is suppressed.
    fade_strength:
        Fraction of the map removed on a suppressed (big-motion) frame.
    trail_fade:
        Fraction of the map removed on every normal frame.
    """

    def __init__(
        self,
        resolution: int = 256,
        motion_sensitivity: int = 50,
        max_moving_percent: float = 20.0,
        fade_strength: float = 0.5,
        trail_fade: float = 0.018,
    ) -> None:
        self.resolution = resolution
        self.motion_sensitivity = motion_sensitivity
        self.max_moving_percent = max_moving_percent
        self.fade_strength = fade_strength
        self.trail_fade = trail_fade

        shape = (resolution, resolution, 3)
        self._frames: List[np.ndarray] = [
            np.zeros(shape, dtype=np.uint8),
            np.zeros(shape, dtype=np.uint8),
        ]
        self._current = 0
        self._has_previous = False

        self._accumulation = np.zeros((resolution, resolution), dtype=np.uint8)

        self._last_moving_percent: float = 0.0
        self._last_big_motion: bool = False
        self._last_energy: float = 0.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def push_frame(self, frame: np.ndarray) -> float:
        """
        Copy *frame* into the owned current buffer, difference it against
        the previous one and swap.

        Returns the motion energy of this frame (0.0 for the very first
        frame of a session, which only primes the previous buffer).

        Parameters
        ----------
        frame:
            RGB image array (R × R × 3, uint8).
        """
        current = self._frames[self._current]
        previous = self._frames[1 - self._current]
        np.copyto(current, frame)

        if not self._has_previous:
            self._has_previous = True
            energy = 0.0
            self._last_energy = energy
        else:
            energy = self.tick(current, previous)

        self._current = 1 - self._current
        return energy

    def tick(self, current: np.ndarray, previous: np.ndarray) -> float:
        """
        Update the accumulation map in place from one frame pair.

        Returns the motion energy: the sum of the boosts of all moving
        pixels, or exactly 0.0 when the frame was suppressed as big motion.
        """
        now = current.astype(np.int32)
        old = previous.astype(np.int32)
        delta = np.abs(now - old)
        diff = delta[:, :, 1] * 4 + delta[:, :, 0] + delta[:, :, 2]

        moving = diff > self.motion_sensitivity
        moving_count = int(np.count_nonzero(moving))
        moving_percent = moving_count / diff.size * 100.0

        self._last_moving_percent = moving_percent
        self._last_big_motion = moving_percent > self.max_moving_percent

        if self._last_big_motion:
            self._fade(self.fade_strength)
            logger.debug("Big movement suppressed (%.1f%% moving)", moving_percent)
            energy = 0.0
        else:
            boost = np.clip(diff * self.motion_sensitivity // 5, 0, 255).astype(np.uint8)
            self._fade(self.trail_fade)
            np.copyto(
                self._accumulation,
                np.maximum(self._accumulation, boost),
                where=moving,
            )
            energy = float(boost[moving].sum(dtype=np.int64))

        self._last_energy = energy
        return energy

    def white_percent(self, threshold: int) -> float:
        """Percentage of map cells strictly brighter than *threshold*."""
        white = int(np.count_nonzero(self._accumulation > threshold))
        return white / self._accumulation.size * 100.0

    def reset(self) -> None:
        """Clear the accumulation map and forget the previous frame."""
        self._accumulation.fill(0)
        for buf in self._frames:
            buf.fill(0)
        self._current = 0
        self._has_previous = False
        self._last_moving_percent = 0.0
        self._last_big_motion = False
        self._last_energy = 0.0

    @property
    def accumulation(self) -> np.ndarray:
        """Read-only view of the accumulation map (R × R, uint8)."""
        view = self._accumulation.view()
        view.flags.writeable = False
        return view

    @property
    def has_previous(self) -> bool:
        return self._has_previous

    @property
    def last_moving_percent(self) -> float:
        return self._last_moving_percent

    @property
    def last_big_motion(self) -> bool:
        return self._last_big_motion

    @property
    def last_energy(self) -> float:
        return self._last_energy

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _fade(self, amount: float) -> None:
        """Scale the map by ``1 − amount``, truncating back to bytes."""
        faded = self._accumulation * (1.0 - amount)
        np.copyto(self._accumulation, faded.astype(np.uint8))
