"""
Pulse signal reducer.

Turns the per-frame motion energy into a normalised pulse sample, smooths it
with a first-order low-pass and keeps a fixed-size circular history of the
smoothed values for the waveform display.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np


class PulseSample(NamedTuple):
    """One smoothed pulse value and the time it was taken at."""

    value: float
    timestamp: float


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation from *a* to *b*, with *t* clamped to [0, 1]."""
    t = min(max(t, 0.0), 1.0)
    return a + (b - a) * t


def reduce_pulse(
    motion_energy: float,
    normalization_factor: float,
    previous_smoothed: float,
    smoothing: float = 0.7,
) -> float:
    """
    Normalise *motion_energy* and blend it into *previous_smoothed*.

    ``smoothing`` is the weight kept from the previous value; the new raw
    value enters with weight ``1 − smoothing``.
    """
    raw = motion_energy * normalization_factor
    return lerp(previous_smoothed, raw, 1.0 - smoothing)


class PulseReducer:
    """
    Stateful reducer with a circular history.

    Parameters
    ----------
    resolution:
        Side length of the accumulation map; fixes the normalisation so a
        fully saturated map maps to 1.0 regardless of resolution.
    smoothing:
        Low-pass weight kept from the previous sample (default 0.7).
    history_size:
        Number of slots in the circular history.
    """

    def __init__(
        self,
        resolution: int = 256,
        smoothing: float = 0.7,
        history_size: int = 256,
    ) -> None:
        self.smoothing = smoothing
        self.normalization_factor = 1.0 / (resolution * resolution * 255.0)

        self._history = np.zeros(history_size, dtype=np.float64)
        self._index = 0
        self._smoothed: float = 0.0

    def push(self, motion_energy: float, timestamp: float) -> PulseSample:
        """Reduce one frame's motion energy and record it in the history."""
        self._smoothed = reduce_pulse(
            motion_energy,
            self.normalization_factor,
            self._smoothed,
            self.smoothing,
        )
        self._history[self._index] = self._smoothed
        self._index = (self._index + 1) % len(self._history)
        return PulseSample(self._smoothed, timestamp)

    def reset(self) -> None:
        self._history.fill(0.0)
        self._index = 0
        self._smoothed = 0.0

    @property
    def smoothed(self) -> float:
        return self._smoothed

    @property
    def history(self) -> np.ndarray:
        """Read-only view of the circular history buffer."""
        view = self._history.view()
        view.flags.writeable = False
        return view

    @property
    def write_index(self) -> int:
        """Index of the slot the next sample will overwrite (the oldest)."""
        return self._index

    def ordered_history(self) -> np.ndarray:
        """History unrolled oldest → newest."""
        return np.roll(self._history, -self._index)
