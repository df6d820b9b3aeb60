"""
camera/capture.py — Thread-safe fingertip capture
===================================================
A background thread grabs frames from the (rear) camera, reduces each one
to a `Sample` and hands it to a sink — typically
`PipelineWorker.submit`.  The processing pipeline never blocks on I/O and
never sees raw frames.

Frame reduction
---------------
Only the centre square of the frame (`ROI_FRACTION` of each side) is used;
the fingertip covering the lens fills it.  Per frame we report:

    red / green / blue  : channel means over the ROI
    coverage_ratio      : share of ROI pixels that look like lit tissue
                          (red ≥ TISSUE_MIN_RED and red ≥ 1.2 · green)
    saturation_ratio    : share of ROI pixels with red clipped (≥ CLIP_LEVEL)

Design notes
------------
* The capture thread runs as a daemon; `release()` should still be called.
* Timestamps come from `time.monotonic()` at grab time, in milliseconds.
  Camera frame rates drift, so downstream time maths uses these deltas
  rather than the nominal FPS.
"""

import threading
import time
from typing import Callable

import cv2
import numpy as np

from config import (
    CAMERA_FPS,
    CAMERA_HEIGHT,
    CAMERA_INDEX,
    CAMERA_LOCK_EXPOSURE,
    CAMERA_MANUAL_EXPOSURE_MODE,
    CAMERA_WIDTH,
    CLIP_LEVEL,
    ROI_FRACTION,
    TISSUE_MIN_RED,
    TISSUE_RED_GREEN_RATIO,
)
from ppg.types import Sample
from utils.logger import get_logger

logger = get_logger("camera.capture")


def frame_to_sample(frame: np.ndarray, timestamp_ms: float,
                    roi_fraction: float = ROI_FRACTION) -> Sample:
    """
    Reduce one BGR uint8 frame to a `Sample`.

    Parameters
    ----------
    frame        : ndarray, shape (H, W, 3)  BGR image as returned by OpenCV.
    timestamp_ms : float                     Capture time.
    roi_fraction : float                     Side length of the centre ROI relative to the frame.
    """
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"Expected a BGR frame of shape (H, W, 3), got {frame.shape}.")

    h, w = frame.shape[:2]
    rh = max(1, int(h * roi_fraction))
    rw = max(1, int(w * roi_fraction))
    top = (h - rh) // 2
    left = (w - rw) // 2
    roi = frame[top: top + rh, left: left + rw]

    # OpenCV orders channels B, G, R
    blue_mean, green_mean, red_mean = cv2.mean(roi)[:3]

    roi_f = roi.astype(np.float32)
    blue, green, red = roi_f[..., 0], roi_f[..., 1], roi_f[..., 2]
    tissue = (red >= TISSUE_MIN_RED) & (red >= TISSUE_RED_GREEN_RATIO * green)
    clipped = red >= CLIP_LEVEL

    return Sample(
        timestamp_ms=timestamp_ms,
        red=float(red_mean),
        green=float(green_mean),
        blue=float(blue_mean),
        coverage_ratio=float(tissue.mean()),
        saturation_ratio=float(clipped.mean()),
    )


class CameraSampleSource:
    """Owns one camera and streams its frames as `Sample`s to a sink."""

    def __init__(self, sink: Callable[[Sample], object], device_index: int = CAMERA_INDEX):
        self._sink = sink
        self._device_index = device_index
        self._cap: cv2.VideoCapture | None = None
        self._latest: Sample | None = None
        self._lock = threading.Lock()
        self._first_sample = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._frame_count = 0
        self.is_open = False

    # ── Public API ───────────────────────────────────────────────────────────

    def open(self) -> bool:
        """
        Open the device, apply the capture settings and start streaming samples.

        Returns
        -------
        bool
            False when the device could not be opened.
        """
        if self.is_open:
            logger.warning("open() called on a running source; nothing to do.")
            return True

        cap = cv2.VideoCapture(self._device_index)
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, CAMERA_WIDTH)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, CAMERA_HEIGHT)
        cap.set(cv2.CAP_PROP_FPS, CAMERA_FPS)
        if CAMERA_LOCK_EXPOSURE:
            # Auto-exposure and auto-white-balance chase the pulsation itself
            # and flatten it; not every backend honours these requests.
            cap.set(cv2.CAP_PROP_AUTO_EXPOSURE, CAMERA_MANUAL_EXPOSURE_MODE)
            cap.set(cv2.CAP_PROP_AUTO_WB, 0)
        self._cap = cap

        if not self._cap.isOpened():
            logger.error(
                "Camera %d is unavailable. "
                "Check that a camera is connected and not in use.",
                self._device_index,
            )
            self._cap.release()
            self._cap = None
            return False

        actual_fps = self._cap.get(cv2.CAP_PROP_FPS)
        logger.info("Camera opened — index %d @ %.1f FPS", self._device_index, actual_fps)

        self._stop_event.clear()
        self._first_sample.clear()
        self._thread = threading.Thread(target=self._capture_loop, name="camera-capture", daemon=True)
        self._thread.start()
        self.is_open = True
        return True

    def release(self) -> None:
        """Stop the capture thread and release the device."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        if self._cap:
            self._cap.release()
            self._cap = None
        self.is_open = False
        logger.info("Camera released after %d frames.", self._frame_count)

    @property
    def latest_sample(self) -> Sample | None:
        with self._lock:
            return self._latest

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def wait_for_sample(self, timeout: float = 1.0) -> Sample | None:
        """Block until the first sample arrives or `timeout` seconds elapse."""
        self._first_sample.wait(timeout=timeout)
        return self.latest_sample

    # ── Private ──────────────────────────────────────────────────────────────

    def _capture_loop(self) -> None:
        while not self._stop_event.is_set():
            ret, frame = self._cap.read()  # type: ignore[union-attr]
            if not ret:
                logger.warning("No frame from the camera; stopping the sample stream.")
                break
            sample = frame_to_sample(frame, time.monotonic() * 1000.0)
            with self._lock:
                self._latest = sample
            self._frame_count += 1
            self._first_sample.set()
            self._sink(sample)
        logger.debug("Sample stream stopped after %d frames.", self._frame_count)
