"""
Inter-beat-interval pattern clustering.

Every valid IBI either joins the first existing pattern whose mean interval
is within a relative tolerance, or starts a new pattern.  After each update
the patterns are re-ranked by member count, so the best-supported BPM
hypothesis is always first.  Ranking also decides which pattern is tried
first on the next match.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

MIN_IBI = 0.375   # 160 BPM
MAX_IBI = 1.0     # 60 BPM
MEDIUM_CONFIDENCE_BEATS = 4


@dataclass
class Pattern:
    """One BPM hypothesis and the intervals supporting it."""

    name: str
    ibis: List[float] = field(default_factory=list)
    count: int = 0
    average_ibi: float = 0.0
    estimated_bpm: int = 0
    variability: float = 0.0

    @property
    def description(self) -> str:
        return f"{self.count}x beats, +/-{self.variability:0.3f}s var"

    def add(self, ibi: float) -> None:
        self.ibis.append(ibi)
        self.count += 1
        self.average_ibi = sum(self.ibis) / len(self.ibis)
        self.estimated_bpm = round(60.0 / self.average_ibi)
        if len(self.ibis) > 1:
            self.variability = max(self.ibis) - min(self.ibis)


class Confidence(Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class BpmReading:
    """The reported BPM and how much to trust it."""

    bpm: Optional[int]
    confidence: Confidence
    count: int = 0

    @property
    def text(self) -> str:
        if self.bpm is None:
            return "-- BPM"
        if self.confidence is Confidence.LOW:
            return f"{self.bpm} BPM ({self.count}x)"
        return f"{self.bpm} BPM"


NO_READING = BpmReading(None, Confidence.NONE)


class PatternClusterer:
    """
    Clusters IBIs into BPM patterns.

    Parameters
    ----------
    tolerance_percent:
        Match tolerance as a percentage of the incoming IBI (15 – 30).
    min_beats_for_lock:
        Pattern count required for a high-confidence reading.
    max_allowed_variability:
        Largest IBI spread (seconds) a confident pattern may have.
    """

    def __init__(
        self,
        tolerance_percent: float = 22.0,
        min_beats_for_lock: int = 6,
        max_allowed_variability: float = 0.25,
    ) -> None:
        self.tolerance_percent = tolerance_percent
        self.min_beats_for_lock = min_beats_for_lock
        self.max_allowed_variability = max_allowed_variability
        self._patterns: List[Pattern] = []

    def add_interval(self, ibi: float) -> Optional[Pattern]:
        """
        Cluster one inter-beat interval.

        Returns the pattern that absorbed (or was created for) *ibi*, or
        *None* when the interval lies outside the 60 – 160 BPM range.
        """
        if ibi < MIN_IBI or ibi > MAX_IBI:
            return None

        tolerance = ibi * (self.tolerance_percent / 100.0)
        match = next(
            (p for p in self._patterns if abs(p.average_ibi - ibi) <= tolerance),
            None,
        )

        if match is None:
            bpm = round(60.0 / ibi)
            match = Pattern(name=f"{bpm} BPM")
            match.add(ibi)
            self._patterns.append(match)
        else:
            match.add(ibi)

        # list.sort is stable, so equal counts keep their previous order.
        self._patterns.sort(key=lambda p: p.count, reverse=True)
        return match

    def reading(self) -> BpmReading:
        """Confidence-tiered BPM from the highest-count pattern."""
        top = self.best
        if top is None:
            return NO_READING

        steady = top.variability <= self.max_allowed_variability
        if top.count >= self.min_beats_for_lock and steady:
            tier = Confidence.HIGH
        elif top.count >= MEDIUM_CONFIDENCE_BEATS and steady:
            tier = Confidence.MEDIUM
        else:
            tier = Confidence.LOW
        return BpmReading(top.estimated_bpm, tier, top.count)

    def reset(self) -> None:
        self._patterns.clear()

    @property
    def patterns(self) -> List[Pattern]:
        """Patterns ranked by count, highest first."""
        return list(self._patterns)

    @property
    def best(self) -> Optional[Pattern]:
        return self._patterns[0] if self._patterns else None
