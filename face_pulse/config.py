"""
Tunable parameters for the pulse pipeline.

All knobs live on a single :class:`PulseConfig` dataclass so the CLI, the
auto-tuner and the tests can share one source of defaults.  The defaults
reproduce the values the pipeline was tuned with on phone front cameras.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Dict, Tuple

# Allowed (inclusive) range for every externally settable field.
_RANGES: Dict[str, Tuple[float, float]] = {
    "motion_sensitivity": (1, 100),
    "max_moving_pixels_percent": (5.0, 50.0),
    "big_movement_fade_strength": (0.05, 0.5),
    "white_threshold": (1, 255),
    "max_plausible_pulse_value": (0.05, 0.15),
    "min_plausible_pulse_value": (0.0005, 0.002),
    "relative_threshold": (0.3, 0.6),
    "min_time_between_beats": (0.35, 0.45),
    "tolerance_percent": (15.0, 30.0),
    "min_beats_for_lock": (4, 10),
    "max_allowed_variability": (0.15, 0.35),
    "trail_fade": (0.0, 1.0),
    "pulse_smoothing": (0.0, 1.0),
}


@dataclass
class PulseConfig:
    """
    Session configuration.

    Parameters
    ----------
    resolution:
        Side length ``R`` of the square face crop (pixels).
    history_size:
        Number of slots in the circular pulse history used for display.
    motion_sensitivity:
        Per-pixel difference a pixel must exceed to count as moving.  Also
        scales the accumulation boost.  Varies a lot between cameras.
    max_moving_pixels_percent:
        Percentage of moving pixels above which the frame is treated as a
        gross head/camera movement and ignored.
    big_movement_fade_strength:
        Fraction of the accumulation map removed on a big-movement frame.
    white_threshold:
        Map intensity above which a cell counts as "white" for auto-tuning.
    max_plausible_pulse_value, min_plausible_pulse_value:
        Pulse samples outside this band are rejected by the beat detector.
    relative_threshold:
        Hysteresis threshold as a fraction of the peak–trough envelope.
    min_time_between_beats:
        Refractory period in seconds (0.375 s ⇒ 160 BPM ceiling).
    tolerance_percent:
        Relative IBI tolerance used when matching an interval to a pattern.
    min_beats_for_lock:
        Pattern count required for a high-confidence reading.
    max_allowed_variability:
        Largest ``max − min`` IBI spread (seconds) for a confident reading.
    trail_fade:
        Per-frame decay of the accumulation map during normal operation.
    pulse_smoothing:
        First-order low-pass weight kept from the previous pulse value.
    auto_tune:
        Enable the sensitivity auto-tuner.
    min_white_percent, max_white_percent:
        Target band of white accumulation cells for the auto-tuner.
    auto_center_speed:
        Lerp factor used by the waveform display to re-centre on the mean.
    graph_gain:
        Vertical zoom of the waveform display (pixels per pulse unit).
    """

    resolution: int = 256
    history_size: int = 256

    motion_sensitivity: int = 50
    max_moving_pixels_percent: float = 20.0
    big_movement_fade_strength: float = 0.5
    white_threshold: int = 50

    max_plausible_pulse_value: float = 0.09
    min_plausible_pulse_value: float = 0.0005
    relative_threshold: float = 0.42
    min_time_between_beats: float = 0.375

    tolerance_percent: float = 22.0
    min_beats_for_lock: int = 6
    max_allowed_variability: float = 0.25

    trail_fade: float = 0.018
    pulse_smoothing: float = 0.7

    auto_tune: bool = False
    min_white_percent: float = 4.0
    max_white_percent: float = 6.0

    auto_center_speed: float = 10.0
    graph_gain: float = 50000.0

    def validate(self) -> "PulseConfig":
        """
        Check every ranged field and the buffer sizes.

        Returns *self* so it can be chained.  Raises :class:`ValueError`
        naming the first offending field.
        """
        for f in fields(self):
            if f.name not in _RANGES:
                continue
            lo, hi = _RANGES[f.name]
            value = getattr(self, f.name)
            if not lo <= value <= hi:
                raise ValueError(
                    f"{f.name}={value!r} is outside the allowed range [{lo}, {hi}]"
                )
        if self.resolution <= 0:
            raise ValueError(f"resolution must be positive, got {self.resolution}")
        if self.history_size <= 1:
            raise ValueError(f"history_size must be > 1, got {self.history_size}")
        if self.min_white_percent > self.max_white_percent:
            raise ValueError("min_white_percent must not exceed max_white_percent")
        return self

    @staticmethod
    def allowed_range(name: str) -> Tuple[float, float]:
        """Return the inclusive ``(low, high)`` range for field *name*."""
        return _RANGES[name]
