"""
Webcam capture and face-area cropping.

Wraps OpenCV ``VideoCapture`` to provide an iterator of BGR frames and a
helper that centre-crops a zoomed square (the forehead/face area when the
user looks into the camera) and resizes it to the pipeline's fixed
resolution as RGB.
"""

from __future__ import annotations

import logging
from typing import Generator, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def crop_region(frame_shape: Tuple[int, ...], zoom: float) -> Tuple[int, int, int, int]:
    """
    Return ``(x, y, w, h)`` of the centred square covering ``1 / zoom`` of
    the shorter frame side.
    """
    h, w = frame_shape[:2]
    side = max(1, int(min(w, h) / zoom))
    x = (w - side) // 2
    y = (h - side) // 2
    return x, y, side, side


def crop_face(frame: np.ndarray, resolution: int = 256, zoom: float = 2.35) -> np.ndarray:
    """
    Centre-crop *frame* by *zoom* and resize to ``resolution × resolution``.

    Parameters
    ----------
    frame:
        BGR image array (H × W × 3, uint8) as returned by OpenCV.

    Returns
    -------
    numpy.ndarray
        RGB array (resolution × resolution × 3, uint8).
    """
    x, y, w, h = crop_region(frame.shape, zoom)
    patch = frame[y:y + h, x:x + w]
    patch = cv2.resize(patch, (resolution, resolution), interpolation=cv2.INTER_AREA)
    return cv2.cvtColor(patch, cv2.COLOR_BGR2RGB)


class FaceCamera:
    """
    Thin wrapper around an OpenCV capture device.

    Parameters
    ----------
    resolution:
        (width, height) requested from the device.
    fps:
        Target frame rate.  30 fps avoids the flicker many webcams show
        at 60 fps.
    flip_horizontal:
        Mirror the image left-to-right (selfie view).
    camera_index:
        OpenCV camera index.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (1280, 720),
        fps: int = 30,
        flip_horizontal: bool = True,
        camera_index: int = 0,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.flip_horizontal = flip_horizontal
        self.camera_index = camera_index

        self._cam: cv2.VideoCapture | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Open and configure the capture device."""
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            raise RuntimeError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cam = cap
        logger.info(
            "Camera opened – index=%d resolution=%s fps=%d",
            self.camera_index, self.resolution, self.fps,
        )

    def close(self) -> None:
        """Release the capture device."""
        if self._cam is None:
            return
        self._cam.release()
        self._cam = None
        logger.info("Camera closed.")

    def __enter__(self) -> "FaceCamera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray | None:
        """
        Capture a single frame.

        Returns
        -------
        numpy.ndarray
            BGR image array (H × W × 3, dtype uint8), or *None* on failure.
        """
        if self._cam is None:
            raise RuntimeError("Camera is not open.  Call open() first.")

        ok, frame = self._cam.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        if self.flip_horizontal:
            frame = cv2.flip(frame, 1)
        return frame

    def frames(self) -> Generator[np.ndarray, None, None]:
        """
        Yield frames until the camera is closed or it keeps failing.

        Usage::

            with FaceCamera() as cam:
                for frame in cam.frames():
                    process(frame)
        """
        null_streak = 0
        while self._cam is not None:
            frame = self.read_frame()
            if frame is None:
                null_streak += 1
                if null_streak >= 10:
                    logger.error(
                        "Camera returned 10 consecutive None frames – aborting."
                    )
                    break
                continue
            null_streak = 0
            yield frame
