# Module: landmarks
# License: MIT (TRIALROOM project)
# Description: Fixed-schema body landmark record indexed by an enumerated body part.
# Platform: Both
# Dependencies: numpy

"""
Landmark Record
===============
One detected body is stored as three fixed-size arrays indexed by BodyPart:
    positions (N, 2)  — x, y in source-frame pixels
    scores    (N,)    — confidence in [0, 1]
    present   (N,)    — whether the estimator reported the landmark

Absent landmarks are representable and read back as None.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

import numpy as np


class BodyPart(IntEnum):
    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 2
    LEFT_EAR = 3
    RIGHT_EAR = 4
    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16
    LEFT_THUMB = 17
    RIGHT_THUMB = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_PINKY = 21
    RIGHT_PINKY = 22

    @property
    def key(self) -> str:
        """snake_case name, as used by most pose estimators."""
        return self.name.lower()


NUM_BODY_PARTS = len(BodyPart)

_BY_KEY: Dict[str, BodyPart] = {p.key: p for p in BodyPart}


# ═══════════════════════════════════════════════════════════════════════
# REGION COLORS
# ═══════════════════════════════════════════════════════════════════════

REGION_COLORS = {
    "face": "#ff6b6b",
    "arm": "#96ceb4",
    "leg": "#ff9ff3",
    "hand": "#feca57",
}


def region_of(part: int) -> str:
    """Map a body part index onto one of the four joint color regions."""
    if part <= BodyPart.RIGHT_EAR:
        return "face"
    if part <= BodyPart.RIGHT_WRIST:
        return "arm"
    if part <= BodyPart.RIGHT_ANKLE:
        return "leg"
    return "hand"


def region_color(part: int) -> str:
    return REGION_COLORS[region_of(part)]


# ═══════════════════════════════════════════════════════════════════════
# RECORD
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Landmark:
    part: BodyPart
    x: float
    y: float
    score: float

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)


class Pose:
    """
    Immutable landmark record for one subject in one frame.

    Build with Pose.from_named() or Pose.from_landmarks(); index with a
    BodyPart to get a Landmark, or None if the part was not reported.
    """

    __slots__ = ("_positions", "_scores", "_present")

    def __init__(
        self,
        positions: np.ndarray,
        scores: np.ndarray,
        present: np.ndarray,
    ):
        positions = np.asarray(positions, dtype=np.float64).reshape(NUM_BODY_PARTS, 2)
        scores = np.clip(np.asarray(scores, dtype=np.float64).reshape(NUM_BODY_PARTS), 0.0, 1.0)
        present = np.asarray(present, dtype=bool).reshape(NUM_BODY_PARTS)

        for arr in (positions, scores, present):
            arr.setflags(write=False)

        self._positions = positions
        self._scores = scores
        self._present = present

    @classmethod
    def empty(cls) -> "Pose":
        return cls(
            np.zeros((NUM_BODY_PARTS, 2)),
            np.zeros(NUM_BODY_PARTS),
            np.zeros(NUM_BODY_PARTS, dtype=bool),
        )

    @classmethod
    def from_named(cls, keypoints: Mapping[str, Tuple[float, float, float]]) -> "Pose":
        """
        Build from {"left_hip": (x, y, score), ...}. Names that are not a
        BodyPart are ignored.
        """
        positions = np.zeros((NUM_BODY_PARTS, 2))
        scores = np.zeros(NUM_BODY_PARTS)
        present = np.zeros(NUM_BODY_PARTS, dtype=bool)

        for name, (x, y, score) in keypoints.items():
            part = _BY_KEY.get(name)
            if part is None:
                continue
            positions[part] = (x, y)
            scores[part] = score
            present[part] = True

        return cls(positions, scores, present)

    @classmethod
    def from_landmarks(cls, landmarks: Iterable[Landmark]) -> "Pose":
        return cls.from_named({lm.part.key: (lm.x, lm.y, lm.score) for lm in landmarks})

    def __getitem__(self, part: BodyPart) -> Optional[Landmark]:
        idx = int(part)
        if not self._present[idx]:
            return None
        x, y = self._positions[idx]
        return Landmark(BodyPart(idx), float(x), float(y), float(self._scores[idx]))

    def __iter__(self) -> Iterator[Landmark]:
        for idx in np.flatnonzero(self._present):
            yield self[BodyPart(int(idx))]

    def __len__(self) -> int:
        return int(self._present.sum())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pose):
            return NotImplemented
        return (
            np.array_equal(self._present, other._present)
            and np.array_equal(self._positions[self._present], other._positions[other._present])
            and np.array_equal(self._scores[self._present], other._scores[other._present])
        )

    __hash__ = None

    def has(self, part: BodyPart) -> bool:
        return bool(self._present[int(part)])

    def score(self, part: BodyPart) -> float:
        """Confidence of a part; 0.0 when absent."""
        idx = int(part)
        return float(self._scores[idx]) if self._present[idx] else 0.0

    def confident(self, part: BodyPart, threshold: float) -> bool:
        """True iff the part is present and its score is strictly above threshold."""
        idx = int(part)
        return bool(self._present[idx] and self._scores[idx] > threshold)

    def __repr__(self) -> str:
        return f"Pose(present={len(self)}/{NUM_BODY_PARTS})"
