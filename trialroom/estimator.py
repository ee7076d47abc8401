# Module: estimator
# License: MIT (TRIALROOM project)
# Description: Landmark estimator interface and the MediaPipe BlazePose adapter.
# Platform: Both (CPU)
# Dependencies: mediapipe, opencv-python, numpy

"""
Landmark Estimator
==================
The estimation model is a black box behind LandmarkEstimator:
    estimate(frame_bgr) → list of Pose (one per detected subject, may be empty)

Construction failures are fatal and raise EstimatorInitError. Failures of a
single estimate() call are raised as-is and handled by the scheduler.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

import cv2
import numpy as np

from trialroom.config import EstimationConfig
from trialroom.errors import EstimationError, EstimatorInitError
from trialroom.landmarks import NUM_BODY_PARTS, BodyPart, Pose

logger = logging.getLogger("trialroom.estimator")


class LandmarkEstimator(ABC):
    """
    Model adapter interface.

    Implementations take a BGR frame (H, W, 3 uint8) and return poses with
    coordinates in that frame's pixel space.
    """

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def estimate(self, frame: np.ndarray) -> List[Pose]: ...

    @abstractmethod
    def close(self) -> None: ...


# BlazePose landmark index for every BodyPart
BLAZEPOSE_INDEX = {
    BodyPart.NOSE: 0,
    BodyPart.LEFT_EYE: 2,
    BodyPart.RIGHT_EYE: 5,
    BodyPart.LEFT_EAR: 7,
    BodyPart.RIGHT_EAR: 8,
    BodyPart.LEFT_SHOULDER: 11,
    BodyPart.RIGHT_SHOULDER: 12,
    BodyPart.LEFT_ELBOW: 13,
    BodyPart.RIGHT_ELBOW: 14,
    BodyPart.LEFT_WRIST: 15,
    BodyPart.RIGHT_WRIST: 16,
    BodyPart.LEFT_PINKY: 17,
    BodyPart.RIGHT_PINKY: 18,
    BodyPart.LEFT_INDEX: 19,
    BodyPart.RIGHT_INDEX: 20,
    BodyPart.LEFT_THUMB: 21,
    BodyPart.RIGHT_THUMB: 22,
    BodyPart.LEFT_HIP: 23,
    BodyPart.RIGHT_HIP: 24,
    BodyPart.LEFT_KNEE: 25,
    BodyPart.RIGHT_KNEE: 26,
    BodyPart.LEFT_ANKLE: 27,
    BodyPart.RIGHT_ANKLE: 28,
}


class MediaPipePoseEstimator(LandmarkEstimator):
    """
    MediaPipe BlazePose, single subject.

    Notes:
    - MediaPipe returns normalized coordinates; they are converted to pixels.
    - `visibility` is used as the confidence score.
    """

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ):
        try:
            import mediapipe as mp
        except ImportError as e:
            raise EstimatorInitError(
                "MediaPipe is not installed. Install via: pip install 'trialroom[pose]'"
            ) from e

        logger.info("Loading MediaPipe Pose (complexity=%d)...", model_complexity)
        try:
            self._pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=int(model_complexity),
                enable_segmentation=False,
                smooth_landmarks=True,
                min_detection_confidence=float(min_detection_confidence),
                min_tracking_confidence=float(min_tracking_confidence),
            )
        except Exception as e:
            raise EstimatorInitError(f"MediaPipe Pose failed to initialize: {e}") from e

    def name(self) -> str:
        return "mediapipe_pose"

    def estimate(self, frame: np.ndarray) -> List[Pose]:
        h, w = frame.shape[:2]
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        try:
            result = self._pose.process(rgb)
        except Exception as e:
            raise EstimationError(f"MediaPipe inference failed: {e}") from e

        if not result or not result.pose_landmarks:
            return []

        landmarks = result.pose_landmarks.landmark
        positions = np.zeros((NUM_BODY_PARTS, 2))
        scores = np.zeros(NUM_BODY_PARTS)
        present = np.zeros(NUM_BODY_PARTS, dtype=bool)
        for part, idx in BLAZEPOSE_INDEX.items():
            if idx >= len(landmarks):
                continue
            p = landmarks[idx]
            positions[part] = (float(p.x) * w, float(p.y) * h)
            scores[part] = float(getattr(p, "visibility", 0.0) or 0.0)
            present[part] = True

        return [Pose(positions, scores, present)]

    def close(self) -> None:
        if self._pose is not None:
            self._pose.close()
            self._pose = None


def create_estimator(config: EstimationConfig) -> LandmarkEstimator:
    """
    Build the configured estimator.

    Raises:
        EstimatorInitError: unknown backend or model construction failure.
    """
    backend = (config.backend or "mediapipe").strip().lower()
    if backend in ("mediapipe", "blazepose"):
        return MediaPipePoseEstimator(
            model_complexity=config.model_complexity,
            min_detection_confidence=config.min_detection_confidence,
            min_tracking_confidence=config.min_tracking_confidence,
        )
    raise EstimatorInitError(f"Unknown estimation backend: {config.backend!r}")
