# Module: helpers
# License: MIT (TRIALROOM project)
# Description: Shared fakes and builders for the test suite.
# Dependencies: numpy

"""
tests/helpers.py
Fake capture source, fake estimator and pose builders. No camera or model
is needed by any test that uses these.
"""

import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from trialroom.capture import CaptureSource
from trialroom.estimator import LandmarkEstimator
from trialroom.landmarks import Pose

# Full-body standing pose in a 640x480 frame, every landmark at score 1.0
STANDING = {
    "nose": (320, 80),
    "left_eye": (310, 70),
    "right_eye": (330, 70),
    "left_ear": (300, 75),
    "right_ear": (340, 75),
    "left_shoulder": (270, 140),
    "right_shoulder": (370, 140),
    "left_elbow": (250, 200),
    "right_elbow": (390, 200),
    "left_wrist": (240, 260),
    "right_wrist": (400, 260),
    "left_hip": (290, 270),
    "right_hip": (350, 270),
    "left_knee": (285, 350),
    "right_knee": (355, 350),
    "left_ankle": (285, 430),
    "right_ankle": (355, 430),
    "left_thumb": (235, 270),
    "right_thumb": (405, 270),
    "left_index": (238, 275),
    "right_index": (402, 275),
    "left_pinky": (242, 272),
    "right_pinky": (398, 272),
}


def make_pose(
    points: Optional[Dict[str, Tuple[float, float]]] = None,
    score: float = 1.0,
    scores: Optional[Dict[str, float]] = None,
    drop: Sequence[str] = (),
) -> Pose:
    """Build a Pose from name → (x, y), with a default score and per-part overrides."""
    points = STANDING if points is None else points
    scores = scores or {}
    named = {
        name: (x, y, scores.get(name, score))
        for name, (x, y) in points.items()
        if name not in drop
    }
    return Pose.from_named(named)


def solid_frame(width: int = 640, height: int = 480, bgr=(40, 80, 120)) -> np.ndarray:
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:] = bgr
    return frame


def gradient_frame(width: int = 640, height: int = 480) -> np.ndarray:
    """Frame whose pixels differ by position, so sampling errors are visible."""
    xs = np.linspace(0, 255, width, dtype=np.float32)[None, :]
    ys = np.linspace(0, 255, height, dtype=np.float32)[:, None]
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :, 0] = xs.astype(np.uint8)
    frame[:, :, 1] = ys.astype(np.uint8)
    frame[:, :, 2] = 200
    return frame


def garment_image(width: int = 100, height: int = 200, bgra=(0, 0, 255, 255)) -> np.ndarray:
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[:] = bgra
    return image


class FakeCapture(CaptureSource):
    """Capture source serving a fixed frame; records lifecycle calls."""

    def __init__(self, frame: Optional[np.ndarray] = None, events: Optional[List[str]] = None,
                 fail_open: Optional[Exception] = None):
        self.frame = frame
        self.events = events if events is not None else []
        self.fail_open = fail_open
        self.opened = False

    def open(self) -> None:
        if self.fail_open is not None:
            raise self.fail_open
        self.opened = True
        self.events.append("capture.open")

    def current_frame(self) -> Optional[np.ndarray]:
        return self.frame

    def release(self) -> None:
        if self.opened:
            self.events.append("capture.release")
        self.opened = False


class FakeEstimator(LandmarkEstimator):
    """
    Estimator returning scripted results.

    Each call pops the next item of `script`: a list of poses is returned,
    an Exception is raised. The last item repeats. When `gate` is given,
    estimate() blocks until it is set.
    """

    def __init__(self, script: Sequence = ((),), gate: Optional[threading.Event] = None,
                 events: Optional[List[str]] = None):
        self.script = list(script)
        self.gate = gate
        self.events = events if events is not None else []
        self.calls = 0
        self.started = threading.Event()
        self.closed = False

    def name(self) -> str:
        return "fake"

    def estimate(self, frame: np.ndarray) -> List[Pose]:
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        item = self.script[min(self.calls - 1, len(self.script) - 1)]
        if isinstance(item, Exception):
            raise item
        return list(item)

    def close(self) -> None:
        self.closed = True
        self.events.append("estimator.close")


def estimator_factory(estimator: LandmarkEstimator) -> Callable[[], LandmarkEstimator]:
    return lambda: estimator
