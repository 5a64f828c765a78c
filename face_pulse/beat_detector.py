"""
Adaptive hysteresis beat detector.

The smoothed pulse stream is tracked by three envelopes: a slow baseline
(midline), a peak that decays down towards the signal and a trough that
decays up towards it.  A beat is a rising edge above the upper threshold
followed by a dip below the lower one, provided the refractory period since
the previous beat has elapsed.

States
------
``READY``               waiting for a rising edge above the upper threshold.
``WAITING_FOR_TROUGH``  a rise was seen; the next dip below the lower
                        threshold confirms (or refractory-rejects) the beat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from face_pulse.pulse_reducer import lerp

logger = logging.getLogger(__name__)

TOO_LOUD = "TOO LOUD"
TOO_QUIET = "TOO QUIET"
REFRACTORY = "REFRACTORY"
ACCEPTED = "OK"

_BASELINE_RATE = 0.008
_PEAK_DECAY = 0.99
_TROUGH_DECAY = 1.01
_MIN_RANGE = 0.0001
_LOWER_ASYMMETRY = 0.85


class DetectorState(Enum):
    READY = "ready"
    WAITING_FOR_TROUGH = "waiting_for_trough"


@dataclass(frozen=True)
class BeatEvent:
    """A confirmed beat; ``interval`` is the IBI to the previous beat, if any."""

    timestamp: float
    interval: Optional[float] = None


@dataclass(frozen=True)
class SampleReport:
    """What the detector made of the most recent sample (for annotation)."""

    value: float
    timestamp: float
    beat: bool = False
    rejected: bool = False
    reason: str = ""
    upper: float = 0.0
    lower: float = 0.0


class BeatDetector:
    """
    Streaming beat detector.

    Parameters
    ----------
    min_plausible:
        Samples below this are rejected as "no signal".
    max_plausible:
        Samples above this are rejected as saturation.
    relative_threshold:
        Hysteresis half-width as a fraction of the peak–trough range.
    min_time_between_beats:
        Refractory period in seconds.
    """

    def __init__(
        self,
        min_plausible: float = 0.0005,
        max_plausible: float = 0.09,
        relative_threshold: float = 0.42,
        min_time_between_beats: float = 0.375,
    ) -> None:
        self.min_plausible = min_plausible
        self.max_plausible = max_plausible
        self.relative_threshold = relative_threshold
        self.min_time_between_beats = min_time_between_beats

        self._beats: List[float] = []
        self._baseline = 0.0
        self._peak = 0.0
        self._trough = 0.0
        self._was_above = False
        self._state = DetectorState.READY
        self._last_rejection = ""
        self._last_report: Optional[SampleReport] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(self, value: float, timestamp: float) -> Optional[BeatEvent]:
        """
        Feed one pulse sample.

        Returns a :class:`BeatEvent` when this sample confirmed a beat,
        otherwise *None*.  Envelopes are left untouched for rejected
        (implausible) samples.
        """
        if value > self.max_plausible:
            return self._reject(value, timestamp, TOO_LOUD)
        if value < self.min_plausible:
            return self._reject(value, timestamp, TOO_QUIET)

        self._baseline = lerp(self._baseline, value, _BASELINE_RATE)
        self._peak = max(self._peak * _PEAK_DECAY, value)
        seed = value if self._trough == 0.0 else self._trough * _TROUGH_DECAY
        self._trough = min(seed, value)

        spread = max(self._peak - self._trough, _MIN_RANGE)
        upper = self._baseline + spread * self.relative_threshold
        lower = self._baseline - spread * self.relative_threshold * _LOWER_ASYMMETRY

        is_above = value > upper
        is_below = value < lower

        if self._state is DetectorState.READY and is_above and not self._was_above:
            self._state = DetectorState.WAITING_FOR_TROUGH

        event: Optional[BeatEvent] = None
        if self._state is DetectorState.WAITING_FOR_TROUGH and is_below:
            self._state = DetectorState.READY

            if self._beats and timestamp - self._beats[-1] < self.min_time_between_beats:
                # Candidate dropped; _was_above keeps the previous sample's value.
                self._last_rejection = REFRACTORY
                logger.debug("Beat at %.3fs rejected (refractory)", timestamp)
                self._last_report = SampleReport(
                    value, timestamp, rejected=True, reason=REFRACTORY,
                    upper=upper, lower=lower,
                )
                return None

            interval = timestamp - self._beats[-1] if self._beats else None
            self._beats.append(timestamp)
            self._last_rejection = ACCEPTED
            event = BeatEvent(timestamp, interval)
            logger.debug("Beat at %.3fs (ibi=%s)", timestamp, interval)

        self._was_above = is_above
        self._last_report = SampleReport(
            value, timestamp, beat=event is not None, reason=self._last_rejection,
            upper=upper, lower=lower,
        )
        return event

    def reset(self) -> None:
        """Return to ``READY`` and clear envelopes and beat history."""
        self._beats.clear()
        self._baseline = self._peak = self._trough = 0.0
        self._was_above = False
        self._state = DetectorState.READY
        self._last_rejection = ""
        self._last_report = None

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def beat_timestamps(self) -> List[float]:
        """Copy of all confirmed beat timestamps this session."""
        return list(self._beats)

    @property
    def baseline(self) -> float:
        return self._baseline

    @property
    def peak(self) -> float:
        return self._peak

    @property
    def trough(self) -> float:
        return self._trough

    @property
    def last_rejection(self) -> str:
        """Reason recorded by the latest gating/refractory decision."""
        return self._last_rejection

    @property
    def last_report(self) -> Optional[SampleReport]:
        return self._last_report

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _reject(self, value: float, timestamp: float, reason: str) -> None:
        self._last_rejection = reason
        self._last_report = SampleReport(value, timestamp, rejected=True, reason=reason)
        return None
