"""
Real-time overlay visualiser.

Draws the following elements onto each video frame:
  • The face crop rectangle.
  • An inset of the motion accumulation map.
  • A scrolling ECG-style strip of the smoothed pulse history.
  • BPM readout coloured by confidence tier.
  • Detector debug lines and the ranked pattern list.
  • Optional frame-rate counter.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import cv2
import numpy as np

from face_pulse.beat_detector import DetectorState, SampleReport
from face_pulse.pattern_clusterer import BpmReading, Confidence, Pattern
from face_pulse.pipeline import PulsePipeline
from face_pulse.pulse_reducer import lerp


# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_GREEN  = (0, 220,  80)
_RED    = (0,  50, 220)
_YELLOW = (0, 210, 210)
_WHITE  = (255, 255, 255)
_BLACK  = (0, 0, 0)
_CYAN   = (220, 200,  0)
_GRAY   = (140, 140, 140)
_DARK   = (30, 30, 30)

_TIER_COLOURS = {
    Confidence.HIGH: _GREEN,
    Confidence.MEDIUM: _CYAN,
    Confidence.LOW: _YELLOW,
    Confidence.NONE: _GRAY,
}


class WaveformScaler:
    """
    Maps the circular pulse history onto pixel rows of a fixed-height strip.

    The strip re-centres on the mean of the history every update and draws
    values outside a window around that mean at the centre line, so a
    single motion spike cannot squash the waveform.

    Parameters
    ----------
    height:
        Strip height in pixels.
    gain:
        Pixels per pulse unit.
    auto_center_speed:
        Lerp factor towards the current mean (values ≥ 1 snap to it).
    center_fraction:
        Height of the centre line as a fraction of the strip, from the bottom.
    """

    def __init__(
        self,
        height: int = 120,
        gain: float = 50000.0,
        auto_center_speed: float = 10.0,
        center_fraction: float = 0.5,
    ) -> None:
        self.height = height
        self.gain = gain
        self.auto_center_speed = auto_center_speed
        self.center_fraction = center_fraction
        self.baseline = 0.0
        self.window_min = 0.0
        self.window_max = 0.0

    def update(self, history: np.ndarray, index: int) -> Tuple[np.ndarray, int, int]:
        """
        Return ``(ys, min_y, max_y)``: row heights (from the bottom) of the
        history ordered oldest → newest, and the rows of the window limits.
        """
        ordered = np.roll(np.asarray(history, dtype=np.float64), -index)
        self.baseline = lerp(self.baseline, float(ordered.mean()), self.auto_center_speed)

        data_gap = self.height * 0.4 / self.gain
        self.window_min = self.baseline - data_gap * 0.2
        self.window_max = self.baseline + data_gap * 0.5

        outside = (ordered < self.window_min) | (ordered > self.window_max)
        shown = np.where(outside, self.baseline, ordered)

        center = self.height * self.center_fraction
        ys = self._to_rows(shown, center)
        min_y = int(self._to_rows(np.array([self.window_min]), center)[0])
        max_y = int(self._to_rows(np.array([self.window_max]), center)[0])
        return ys, min_y, max_y

    def reset(self) -> None:
        self.baseline = self.window_min = self.window_max = 0.0

    def _to_rows(self, values: np.ndarray, center: float) -> np.ndarray:
        rows = center + (values - self.baseline) * self.gain
        return np.clip(np.rint(rows), 0, self.height - 1).astype(int)


def debug_lines(
    report: Optional[SampleReport],
    state: DetectorState,
    beats: int,
    baseline: float,
    patterns: List[Pattern],
) -> List[Tuple[str, Tuple[int, int, int]]]:
    """Text lines (and their colours) describing the detector and patterns."""
    lines: List[Tuple[str, Tuple[int, int, int]]] = []
    if report is not None:
        if report.rejected:
            status, colour = f"[REJECT: {report.reason}]", _RED
        elif report.beat:
            status, colour = "BEAT", _GREEN
        else:
            status, colour = "OK", _WHITE
        lines.append((f"Sig: {report.value:0.4f} {status}", colour))
        lines.append((
            f"Mid: {baseline:0.4f} | Up: {report.upper:0.4f} | Dn: {report.lower:0.4f}",
            _WHITE,
        ))
    waiting = state is DetectorState.WAITING_FOR_TROUGH
    lines.append((f"State: {'WaitDip' if waiting else 'Ready'} | Beats: {beats}", _WHITE))

    shown = [p for p in patterns if p.count >= 2]
    if not shown:
        lines.append(("Building pattern...", _GRAY))
    for p in shown:
        lines.append((
            f"{p.estimated_bpm} BPM -> {p.description} | IBI {p.average_ibi:0.3f}s",
            _CYAN,
        ))
    return lines


class Visualizer:
    """
    Draws pulse monitoring UI onto OpenCV frames in-place.

    Parameters
    ----------
    resolution:
        (width, height) of the video frame.
    waveform_height:
        Pixel height of the scrolling waveform panel at the bottom.
    inset_size:
        Side length of the accumulation-map inset (top-right corner).
    gain, auto_center_speed:
        Passed to :class:`WaveformScaler`.
    show_fps:
        Whether to overlay computed FPS.
    show_debug:
        Whether to list detector state and patterns.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (1280, 720),
        waveform_height: int = 120,
        inset_size: int = 200,
        gain: float = 50000.0,
        auto_center_speed: float = 10.0,
        show_fps: bool = True,
        show_debug: bool = True,
    ) -> None:
        self.w, self.h = resolution
        self.waveform_height = waveform_height
        self.inset_size = inset_size
        self.show_fps = show_fps
        self.show_debug = show_debug

        self.scaler = WaveformScaler(
            height=waveform_height,
            gain=gain,
            auto_center_speed=auto_center_speed,
        )

        self._fps_tick = cv2.getTickCount()
        self._fps_display: float = 0.0
        self._frames_seen = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def draw(
        self,
        frame: np.ndarray,
        pipeline: PulsePipeline,
        roi: Optional[Tuple[int, int, int, int]] = None,
    ) -> np.ndarray:
        """
        Annotate *frame* in-place and return it.

        Parameters
        ----------
        frame:
            BGR frame from the camera.
        pipeline:
            The running session; only read from.
        roi:
            Optional ``(x, y, w, h)`` of the face crop to outline.
        """
        self._update_fps()
        # A shrinking frame count means the session was reset.
        if pipeline.frame_count < self._frames_seen:
            self.scaler.reset()
        self._frames_seen = pipeline.frame_count
        reading = pipeline.reading

        if roi is not None:
            x, y, rw, rh = roi
            colour = _TIER_COLOURS[reading.confidence]
            cv2.rectangle(frame, (x, y), (x + rw, y + rh), colour, 2)
            cv2.putText(
                frame, "Keep still, face the camera",
                (x, y - 8), cv2.FONT_HERSHEY_SIMPLEX, 0.5, colour, 1, cv2.LINE_AA,
            )

        self._draw_inset(frame, pipeline.accumulation_map, pipeline.white_percent)
        self._draw_bpm(frame, reading, pipeline.analysis_enabled)
        if self.show_debug:
            self._draw_debug(
                frame,
                pipeline.last_report,
                pipeline.detector.state,
                len(pipeline.beat_timestamps),
                pipeline.detector.baseline,
                pipeline.patterns,
            )
        self._draw_waveform(frame, pipeline.pulse_history, pipeline.history_index)

        if self.show_fps:
            cv2.putText(
                frame,
                f"FPS {self._fps_display:.1f}",
                (self.w - 100, self.h - self.waveform_height - 10),
                cv2.FONT_HERSHEY_SIMPLEX, 0.45, _WHITE, 1, cv2.LINE_AA,
            )

        return frame

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_inset(self, frame: np.ndarray, acc: np.ndarray, white_percent: float) -> None:
        size = min(self.inset_size, self.w - 20, self.h - 20)
        inset = cv2.resize(np.array(acc), (size, size), interpolation=cv2.INTER_NEAREST)
        x0 = self.w - size - 10
        y0 = 10
        frame[y0:y0 + size, x0:x0 + size] = cv2.cvtColor(inset, cv2.COLOR_GRAY2BGR)
        cv2.rectangle(frame, (x0, y0), (x0 + size, y0 + size), _WHITE, 1)
        cv2.putText(
            frame, f"white {white_percent:.1f}%",
            (x0, y0 + size + 16), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_bpm(self, frame: np.ndarray, reading: BpmReading, enabled: bool) -> None:
        colour = _TIER_COLOURS[reading.confidence]
        text = reading.text if enabled else "analysis off"
        cv2.putText(
            frame, text,
            (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.4, _BLACK, 5, cv2.LINE_AA,
        )
        cv2.putText(
            frame, text,
            (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.4, colour, 3, cv2.LINE_AA,
        )

    def _draw_debug(
        self,
        frame: np.ndarray,
        report: Optional[SampleReport],
        state: DetectorState,
        beats: int,
        baseline: float,
        patterns: List[Pattern],
    ) -> None:
        y = 84
        for text, colour in debug_lines(report, state, beats, baseline, patterns):
            cv2.putText(
                frame, text, (16, y), cv2.FONT_HERSHEY_SIMPLEX, 0.45, colour, 1, cv2.LINE_AA,
            )
            y += 18

    def _draw_waveform(self, frame: np.ndarray, history: np.ndarray, index: int) -> None:
        """Draw the pulse history in a dark strip at the bottom of the frame."""
        panel_top = self.h - self.waveform_height
        cv2.rectangle(frame, (0, panel_top), (self.w, self.h), _DARK, -1)

        ys, min_y, max_y = self.scaler.update(history, index)
        bottom = self.h - 1
        xs = np.linspace(0, self.w - 1, len(ys)).astype(int)
        pts = np.column_stack([xs, bottom - ys]).astype(np.int32)
        cv2.polylines(frame, [pts[:, None, :]], False, _RED, 2, cv2.LINE_AA)

        for row in (min_y, max_y):
            cv2.line(frame, (0, bottom - row), (self.w - 1, bottom - row), _GREEN, 1)

        cv2.putText(
            frame, "PULSE",
            (4, panel_top + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _update_fps(self) -> None:
        """Compute rolling FPS."""
        now = cv2.getTickCount()
        elapsed = (now - self._fps_tick) / cv2.getTickFrequency()
        if elapsed > 0:
            self._fps_display = 1.0 / elapsed
        self._fps_tick = now
