# Module: capture
# License: MIT (TRIALROOM project)
# Description: Capture source interface and an OpenCV webcam implementation.
# Platform: Local (webcam)
# Dependencies: opencv-python, numpy, threading

"""
Capture Source
==============
Provides the most recent video frame and its dimensions. Frame size is read
from the frame itself each time, so a camera that changes resolution is
picked up on the next frame.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import cv2
import numpy as np

from trialroom.config import CaptureConfig
from trialroom.errors import CaptureError

logger = logging.getLogger("trialroom.capture")


class CaptureSource(ABC):
    @abstractmethod
    def open(self) -> None:
        """Start the device. Raises CaptureError on failure."""

    @abstractmethod
    def current_frame(self) -> Optional[np.ndarray]:
        """Latest BGR frame, or None before the first frame arrives."""

    @abstractmethod
    def release(self) -> None:
        """Stop the device. Idempotent."""

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        frame = self.current_frame()
        if frame is None:
            return None
        return (int(frame.shape[1]), int(frame.shape[0]))


class OpenCVCapture(CaptureSource):
    """
    cv2.VideoCapture read on a daemon thread that keeps only the latest
    frame. Readers never wait for the camera.
    """

    def __init__(self, device: int = 0, width: Optional[int] = None, height: Optional[int] = None):
        self.device = device
        self.width = width
        self.height = height
        self._cap: Optional[cv2.VideoCapture] = None
        self._frame: Optional[np.ndarray] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.frames_read = 0

    @classmethod
    def from_config(cls, config: CaptureConfig) -> "OpenCVCapture":
        return cls(device=config.device, width=config.width, height=config.height)

    def open(self) -> None:
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            cap.release()
            raise CaptureError(f"Failed to open camera device {self.device}")
        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        self._cap = cap
        self._stop.clear()
        self._thread = threading.Thread(target=self._read_loop, name="trialroom-capture", daemon=True)
        self._thread.start()
        logger.info("Camera %s opened", self.device)

    def _read_loop(self) -> None:
        failures = 0
        while not self._stop.is_set():
            ok, frame = self._cap.read()
            if not ok or frame is None:
                failures += 1
                if failures == 1 or failures % 100 == 0:
                    logger.warning("Camera %s returned no frame (%d consecutive)", self.device, failures)
                time.sleep(0.01)
                continue
            failures = 0
            self._frame = frame
            self.frames_read += 1

    def current_frame(self) -> Optional[np.ndarray]:
        return self._frame

    def release(self) -> None:
        if self._cap is None:
            return
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        self._cap.release()
        self._cap = None
        self._frame = None
        logger.info("Camera %s released", self.device)
