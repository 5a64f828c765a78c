#!/usr/bin/env python3
"""
Face Pulse – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH       Camera resolution (default: 1280x720)
    --fps INT              Target frame rate (default: 30)
    --crop INT             Side of the square face crop fed to the pipeline (default: 256)
    --zoom FLOAT           Centre-crop zoom onto the face (default: 2.35)
    --sensitivity INT      Motion sensitivity 1–100 (default: 50)
    --max-moving FLOAT     Big-movement threshold in % of pixels (default: 20)
    --fade FLOAT           Big-movement fade strength (default: 0.5)
    --auto-tune            Auto-tune the motion sensitivity
    --no-flip              Disable horizontal mirror
    --camera-index INT     OpenCV camera index (default: 0)
    --save PATH            Save annotated video to file (optional)
    --headless             Run without display window (log BPM to stdout)
    --no-debug             Hide detector/pattern debug lines

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
    r        – reset the session
    b        – toggle BPM analysis
    a        – toggle sensitivity auto-tune
    s        – save a single annotated frame as PNG
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

import cv2

from face_pulse.camera import FaceCamera, crop_face, crop_region
from face_pulse.config import PulseConfig
from face_pulse.pipeline import PulsePipeline
from face_pulse.visualizer import Visualizer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("face_pulse")

WINDOW = "Face Pulse"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Contactless pulse from face micro-motion (rPPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="1280x720",
                        help="Camera resolution, e.g. 1280x720")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--crop", type=int, default=256,
                        help="Side of the square face crop in pixels")
    parser.add_argument("--zoom", type=float, default=2.35,
                        help="Centre-crop zoom onto the face")
    parser.add_argument("--sensitivity", type=int, default=50,
                        help="Motion sensitivity (1-100)")
    parser.add_argument("--max-moving", type=float, default=20.0,
                        help="Percentage of moving pixels treated as big movement")
    parser.add_argument("--fade", type=float, default=0.5,
                        help="Accumulation fade strength on big movement")
    parser.add_argument("--auto-tune", action="store_true",
                        help="Auto-tune motion sensitivity")
    parser.add_argument("--no-flip", action="store_true",
                        help="Disable horizontal image flip")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--save", type=Path, default=None,
                        help="Save annotated video to this file path")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log BPM to stdout only")
    parser.add_argument("--no-debug", action="store_true",
                        help="Hide detector and pattern debug lines")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PulseConfig:
    """Translate CLI flags into a validated :class:`PulseConfig`."""
    return PulseConfig(
        resolution=args.crop,
        motion_sensitivity=args.sensitivity,
        max_moving_pixels_percent=args.max_moving,
        big_movement_fade_strength=args.fade,
        auto_tune=args.auto_tune,
    ).validate()


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 1280x720.")
        return 1

    if args.fps <= 0:
        logger.error("--fps must be a positive integer, got %d.", args.fps)
        return 1

    try:
        config = build_config(args)
    except ValueError as exc:
        logger.error("Invalid tuning option: %s", exc)
        return 1

    resolution = (res_w, res_h)

    camera = FaceCamera(
        resolution=resolution,
        fps=args.fps,
        flip_horizontal=not args.no_flip,
        camera_index=args.camera_index,
    )
    pipeline = PulsePipeline(config)
    vis = Visualizer(
        resolution=resolution,
        gain=config.graph_gain,
        auto_center_speed=config.auto_center_speed,
        show_fps=not args.headless,
        show_debug=not args.no_debug,
    )

    writer: cv2.VideoWriter | None = None
    if args.save:
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        writer = cv2.VideoWriter(str(args.save), fourcc, args.fps, resolution)
        logger.info("Saving video to %s", args.save)

    logger.info("Starting face pulse monitor.  Press 'q' or ESC to quit.")

    if not args.headless:
        cv2.namedWindow(WINDOW, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW, res_w, res_h)

    frame_idx = 0
    log_interval = args.fps  # log to stdout every ~1 second

    try:
        with camera:
            for frame in camera.frames():
                if frame.shape[1] != res_w or frame.shape[0] != res_h:
                    frame = cv2.resize(frame, resolution)

                face = crop_face(frame, resolution=config.resolution, zoom=args.zoom)
                event = pipeline.tick(face, time.monotonic())
                if event is not None and event.interval is not None:
                    logger.debug("Beat: ibi=%.3fs", event.interval)

                annotated = vis.draw(
                    frame, pipeline, roi=crop_region(frame.shape, args.zoom),
                )

                if writer is not None:
                    writer.write(annotated)

                if args.headless and frame_idx % log_interval == 0:
                    ts = time.strftime("%H:%M:%S")
                    reading = pipeline.reading
                    print(
                        f"[{ts}] {reading.text}  confidence={reading.confidence.value}"
                        f"  beats={len(pipeline.beat_timestamps)}"
                        f"  sensitivity={pipeline.accumulator.motion_sensitivity}"
                    )

                if not args.headless:
                    cv2.imshow(WINDOW, annotated)
                    key = cv2.waitKey(1) & 0xFF
                    if key in (ord("q"), 27):          # q or ESC
                        logger.info("Quit requested by user.")
                        break
                    elif key == ord("r"):
                        pipeline.reset()
                    elif key == ord("b"):
                        pipeline.analysis_enabled = not pipeline.analysis_enabled
                    elif key == ord("a"):
                        pipeline.auto_tune = not pipeline.auto_tune
                        logger.info("Auto-tune %s.", "on" if pipeline.auto_tune else "off")
                    elif key == ord("s"):
                        fname = f"snapshot_{int(time.time())}.png"
                        cv2.imwrite(fname, annotated)
                        logger.info("Saved snapshot: %s", fname)

                frame_idx += 1

    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        if writer is not None:
            writer.release()
        if not args.headless:
            cv2.destroyAllWindows()

    return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
