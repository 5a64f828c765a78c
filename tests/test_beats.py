"""
Unit tests for BeatDetector and PatternClusterer.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from face_pulse.beat_detector import (
    REFRACTORY,
    TOO_LOUD,
    TOO_QUIET,
    BeatDetector,
    DetectorState,
)
from face_pulse.pattern_clusterer import BpmReading, Confidence, PatternClusterer


def _sine(duration: float, period: float, fps: float = 30.0,
          mean: float = 0.01, amp: float = 0.005):
    """Synthetic smoothed pulse stream as ``(value, timestamp)`` pairs."""
    n = int(duration * fps)
    t = np.arange(n) / fps
    values = mean + amp * np.sin(2 * np.pi * t / period)
    return list(zip(values.tolist(), t.tolist()))


def _run(detector: BeatDetector, samples, clusterer: PatternClusterer | None = None):
    reasons = set()
    for value, ts in samples:
        event = detector.register(value, ts)
        reasons.add(detector.last_rejection)
        if clusterer is not None and event is not None and event.interval is not None:
            clusterer.add_interval(event.interval)
    return reasons


# ---------------------------------------------------------------------------
# BeatDetector tests
# ---------------------------------------------------------------------------

class TestBeatDetector:

    def test_too_loud_rejected_without_touching_envelopes(self):
        det = BeatDetector()
        assert det.register(0.2, 0.0) is None
        assert det.last_rejection == TOO_LOUD
        assert det.baseline == 0.0
        assert det.peak == 0.0
        assert det.last_report.rejected is True

    def test_too_quiet_rejected(self):
        det = BeatDetector()
        assert det.register(0.0001, 0.0) is None
        assert det.last_rejection == TOO_QUIET
        assert det.trough == 0.0

    def test_envelopes_track_signal(self):
        det = BeatDetector()
        det.register(0.01, 0.0)
        assert det.baseline == pytest.approx(0.01 * 0.008)
        assert det.peak == pytest.approx(0.01)
        assert det.trough == pytest.approx(0.01)
        assert det.state is DetectorState.WAITING_FOR_TROUGH

    def test_periodic_signal_yields_regular_beats(self):
        det = BeatDetector()
        _run(det, _sine(30.0, 0.8))
        beats = det.beat_timestamps
        assert len(beats) >= 6
        ibis = np.diff(beats)
        assert np.all(np.abs(ibis - 0.8) < 0.05)

    def test_refractory_period_enforced(self):
        det = BeatDetector(min_time_between_beats=0.375)
        # 300 BPM is far above the 160 BPM ceiling.
        reasons = _run(det, _sine(20.0, 0.2))
        beats = det.beat_timestamps
        assert len(beats) >= 2
        assert REFRACTORY in reasons
        assert np.all(np.diff(beats) >= 0.375)

    def test_report_flags_beat_only_on_confirming_sample(self):
        det = BeatDetector()
        confirmed = 0
        for value, ts in _sine(20.0, 0.8):
            event = det.register(value, ts)
            assert det.last_report.timestamp == ts
            assert det.last_report.beat is (event is not None)
            confirmed += event is not None
        assert confirmed == len(det.beat_timestamps) > 0

    def test_refractory_dip_keeps_rising_edge_memory(self):
        det = BeatDetector()
        # Settle the baseline just under a flat 0.01 level.
        for i in range(1000):
            det.register(0.01, i / 30)

        assert det.register(0.005, 100.0) is not None          # beat 1
        assert det.register(0.02, 100.1) is None               # rising edge
        assert det.register(0.001, 100.2) is None              # dip too soon
        assert det.last_rejection == REFRACTORY
        assert det.state is DetectorState.READY

        # The rejected dip did not clear the "above" memory, so this rise
        # is not a new edge and the following dip confirms nothing.
        assert det.register(0.02, 100.6) is None
        assert det.state is DetectorState.READY
        assert det.register(0.001, 100.9) is None
        assert det.beat_timestamps == [100.0]

        # A fresh rise then dip is needed for the next beat.
        assert det.register(0.02, 101.2) is None
        assert det.state is DetectorState.WAITING_FOR_TROUGH
        event = det.register(0.001, 101.5)
        assert event is not None
        assert event.interval == pytest.approx(1.5)
        assert det.last_report.beat is True

    def test_ten_cycles_are_still_warming_up(self):
        # The baseline starts at zero and follows the signal at 0.8 % per
        # sample, so 8 s of a 75 BPM pulse only yields the first two beats.
        det = BeatDetector()
        pc = PatternClusterer()
        _run(det, _sine(8.0, 0.8), pc)
        assert det.beat_timestamps == pytest.approx([209 / 30, 232 / 30])
        assert pc.reading() == BpmReading(78, Confidence.LOW, 1)

    def test_lock_takes_about_twelve_seconds(self):
        det = BeatDetector()
        pc = PatternClusterer(min_beats_for_lock=6)
        lock_time = None
        for value, ts in _sine(20.0, 0.8):
            event = det.register(value, ts)
            if event is not None and event.interval is not None:
                pc.add_interval(event.interval)
            if pc.reading().confidence is Confidence.HIGH:
                lock_time = ts
                break
        assert lock_time is not None
        assert 10.0 < lock_time < 14.0
        assert 74 <= pc.reading().bpm <= 78

    def test_reset(self):
        det = BeatDetector()
        _run(det, _sine(20.0, 0.8))
        det.reset()
        assert det.state is DetectorState.READY
        assert det.beat_timestamps == []
        assert det.baseline == det.peak == det.trough == 0.0
        assert det.last_rejection == ""
        assert det.last_report is None


# ---------------------------------------------------------------------------
# PatternClusterer tests
# ---------------------------------------------------------------------------

class TestPatternClusterer:

    def test_out_of_range_intervals_discarded(self):
        pc = PatternClusterer()
        assert pc.add_interval(0.3) is None
        assert pc.add_interval(1.2) is None
        assert pc.patterns == []
        assert pc.add_interval(0.375) is not None
        assert pc.add_interval(1.0) is not None

    def test_new_pattern(self):
        pc = PatternClusterer()
        p = pc.add_interval(0.8)
        assert p.name == "75 BPM"
        assert p.count == 1
        assert p.estimated_bpm == 75
        assert p.variability == 0.0

    def test_description(self):
        pc = PatternClusterer()
        pc.add_interval(0.8)
        p = pc.add_interval(0.82)
        assert p.description == "2x beats, +/-0.020s var"

    def test_match_within_tolerance(self):
        pc = PatternClusterer()
        pc.add_interval(0.8)
        p = pc.add_interval(0.82)
        assert len(pc.patterns) == 1
        assert p.count == 2
        assert p.average_ibi == pytest.approx(0.81)
        assert p.estimated_bpm == 74
        assert p.variability == pytest.approx(0.02)

    def test_ranked_by_count(self):
        pc = PatternClusterer()
        pc.add_interval(0.5)
        pc.add_interval(0.8)
        pc.add_interval(0.8)
        assert [p.estimated_bpm for p in pc.patterns] == [75, 120]
        assert pc.best.count == 2

    def test_first_match_wins_over_closest(self):
        pc = PatternClusterer(tolerance_percent=15.0)
        pc.add_interval(0.6)
        pc.add_interval(0.6)
        pc.add_interval(0.72)
        assert len(pc.patterns) == 2
        p = pc.add_interval(0.67)        # closer to 0.72, but 0.6 ranks first
        assert p is pc.patterns[0]
        assert p.count == 3
        assert pc.patterns[1].count == 1

    def test_equal_counts_keep_previous_order(self):
        pc = PatternClusterer()
        pc.add_interval(0.5)
        pc.add_interval(0.9)
        pc.add_interval(0.9)
        pc.add_interval(0.5)
        assert [p.name for p in pc.patterns] == ["67 BPM", "120 BPM"]

    def test_reading_tiers(self):
        pc = PatternClusterer(min_beats_for_lock=6)
        reading = pc.reading()
        assert reading.bpm is None
        assert reading.confidence is Confidence.NONE
        assert reading.text == "-- BPM"

        for _ in range(3):
            pc.add_interval(0.8)
        assert pc.reading().confidence is Confidence.LOW
        assert pc.reading().text == "75 BPM (3x)"

        pc.add_interval(0.8)
        assert pc.reading().confidence is Confidence.MEDIUM
        assert pc.reading().text == "75 BPM"

        pc.add_interval(0.8)
        pc.add_interval(0.8)
        assert pc.reading().confidence is Confidence.HIGH

    def test_high_variability_stays_low_confidence(self):
        pc = PatternClusterer(max_allowed_variability=0.15)
        for ibi in (0.75, 0.9, 1.0, 0.8, 0.85, 0.9):
            pc.add_interval(ibi)
        assert len(pc.patterns) == 1
        assert pc.best.variability == pytest.approx(0.25)
        reading = pc.reading()
        assert reading.confidence is Confidence.LOW
        assert reading.text == "69 BPM (6x)"

    def test_periodic_beats_converge_to_one_pattern(self):
        det = BeatDetector()
        pc = PatternClusterer(min_beats_for_lock=6)
        _run(det, _sine(40.0, 0.8), pc)
        assert len(pc.patterns) == 1
        best = pc.best
        assert best.count >= 6
        assert best.estimated_bpm == 75
        assert best.variability < 0.1
        assert all(0.375 <= ibi <= 1.0 for ibi in best.ibis)
        assert pc.reading().confidence is Confidence.HIGH

    def test_reset(self):
        pc = PatternClusterer()
        pc.add_interval(0.8)
        pc.reset()
        assert pc.patterns == []
        assert pc.best is None
