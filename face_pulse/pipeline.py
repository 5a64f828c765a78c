"""
Per-session pulse pipeline.

One :meth:`PulsePipeline.tick` per video frame drives, in order, the motion
accumulator, the pulse reducer, the beat detector and the pattern clusterer.
Everything the display needs is exposed as read-only properties that are
safe to read between ticks.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from face_pulse.auto_tuner import AutoTuner
from face_pulse.beat_detector import BeatDetector, BeatEvent, SampleReport
from face_pulse.config import PulseConfig
from face_pulse.motion_accumulator import MotionAccumulator
from face_pulse.pattern_clusterer import BpmReading, Pattern, PatternClusterer
from face_pulse.pulse_reducer import PulseReducer, PulseSample

logger = logging.getLogger(__name__)


class PulsePipeline:
    """
    Wires the four processing stages together for one capture session.

    Parameters
    ----------
    config:
        Session configuration; validated on construction.  Defaults to
        :class:`PulseConfig` defaults.
    """

    def __init__(self, config: PulseConfig | None = None) -> None:
        self.config = (config or PulseConfig()).validate()
        cfg = self.config

        self.accumulator = MotionAccumulator(
            resolution=cfg.resolution,
            motion_sensitivity=cfg.motion_sensitivity,
            max_moving_percent=cfg.max_moving_pixels_percent,
            fade_strength=cfg.big_movement_fade_strength,
            trail_fade=cfg.trail_fade,
        )
        self.reducer = PulseReducer(
            resolution=cfg.resolution,
            smoothing=cfg.pulse_smoothing,
            history_size=cfg.history_size,
        )
        self.detector = BeatDetector(
            min_plausible=cfg.min_plausible_pulse_value,
            max_plausible=cfg.max_plausible_pulse_value,
            relative_threshold=cfg.relative_threshold,
            min_time_between_beats=cfg.min_time_between_beats,
        )
        self.clusterer = PatternClusterer(
            tolerance_percent=cfg.tolerance_percent,
            min_beats_for_lock=cfg.min_beats_for_lock,
            max_allowed_variability=cfg.max_allowed_variability,
        )
        self.tuner = AutoTuner(
            white_threshold=cfg.white_threshold,
            min_white_percent=cfg.min_white_percent,
            max_white_percent=cfg.max_white_percent,
        )

        self.auto_tune = cfg.auto_tune
        self._analysis_enabled = True
        self._last_sample: Optional[PulseSample] = None
        self._frames = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tick(self, frame: np.ndarray, timestamp: float) -> Optional[BeatEvent]:
        """
        Process one RGB face crop taken at *timestamp* (seconds, monotonic).

        Returns the beat confirmed by this frame, if any.
        """
        energy = self.accumulator.push_frame(frame)
        sample = self.reducer.push(energy, timestamp)
        self._last_sample = sample
        self._frames += 1

        event: Optional[BeatEvent] = None
        if self._analysis_enabled:
            event = self.detector.register(sample.value, sample.timestamp)
            if event is not None and event.interval is not None:
                self.clusterer.add_interval(event.interval)

        if self.auto_tune:
            self.tuner.update(self.accumulator, timestamp)

        return event

    def reset(self) -> None:
        """Clear all session state in every stage."""
        self.accumulator.reset()
        self.accumulator.motion_sensitivity = self.config.motion_sensitivity
        self.reducer.reset()
        self.detector.reset()
        self.clusterer.reset()
        self.tuner.reset()
        self._last_sample = None
        self._frames = 0
        logger.info("Pulse pipeline reset.")

    @property
    def analysis_enabled(self) -> bool:
        return self._analysis_enabled

    @analysis_enabled.setter
    def analysis_enabled(self, enabled: bool) -> None:
        """Toggling BPM analysis restarts beat detection and clustering."""
        if enabled == self._analysis_enabled:
            return
        self._analysis_enabled = enabled
        self.detector.reset()
        self.clusterer.reset()
        logger.info("BPM analysis %s.", "enabled" if enabled else "disabled")

    # ------------------------------------------------------------------
    # Read-only state for display
    # ------------------------------------------------------------------

    @property
    def accumulation_map(self) -> np.ndarray:
        return self.accumulator.accumulation

    @property
    def pulse_history(self) -> np.ndarray:
        return self.reducer.history

    @property
    def history_index(self) -> int:
        return self.reducer.write_index

    @property
    def last_sample(self) -> Optional[PulseSample]:
        return self._last_sample

    @property
    def last_report(self) -> Optional[SampleReport]:
        return self.detector.last_report

    @property
    def beat_timestamps(self) -> List[float]:
        return self.detector.beat_timestamps

    @property
    def patterns(self) -> List[Pattern]:
        return self.clusterer.patterns

    @property
    def reading(self) -> BpmReading:
        return self.clusterer.reading()

    @property
    def white_percent(self) -> float:
        return self.accumulator.white_percent(self.tuner.white_threshold)

    @property
    def frame_count(self) -> int:
        return self._frames
