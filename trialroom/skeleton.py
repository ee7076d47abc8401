# Module: skeleton
# License: MIT (TRIALROOM project)
# Description: Skeleton, joint and face-highlight overlays drawn from one pose.
# Platform: Both
# Dependencies: numpy

"""
Skeleton Renderer
=================
Bone topology uses three virtual anchors that the estimator does not
report directly — the midpoints of the eyes, the shoulders and the hips.
An anchor's score is the lower of its two endpoint scores.

A bone is drawn iff both endpoint scores are strictly above the confidence
threshold. Anything else is silently skipped.
"""

import logging
from typing import List, NamedTuple, Optional, Tuple, Union

import numpy as np

from trialroom.geometry import SurfaceTransform, face_highlight_geometry
from trialroom.landmarks import BodyPart, Pose, region_color
from trialroom.surface import Surface

logger = logging.getLogger("trialroom.skeleton")

BONE_COLORS = {
    "head": "#ff6b6b",
    "spine": "#4ecdc4",
    "shoulders": "#4ecdc4",
    "pelvis": "#45b7d1",
    "arms": "#96ceb4",
    "hands": "#feca57",
    "legs": "#ff9ff3",
}

BONE_WIDTH = 8
JOINT_RADIUS = 6
JOINT_STROKE = "#000000"
JOINT_STROKE_WIDTH = 2
ANKLE_STUB_LENGTH = 20.0  # source pixels

EYE_MID = "eye_mid"
SHOULDER_MID = "shoulder_mid"
HIP_MID = "hip_mid"

ANCHORS = {
    EYE_MID: (BodyPart.LEFT_EYE, BodyPart.RIGHT_EYE),
    SHOULDER_MID: (BodyPart.LEFT_SHOULDER, BodyPart.RIGHT_SHOULDER),
    HIP_MID: (BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP),
}

Endpoint = Union[BodyPart, str]


class Bone(NamedTuple):
    start: Endpoint
    end: Endpoint
    group: str


BONES: Tuple[Bone, ...] = (
    Bone(BodyPart.NOSE, EYE_MID, "head"),
    Bone(EYE_MID, SHOULDER_MID, "head"),
    Bone(SHOULDER_MID, HIP_MID, "spine"),
    Bone(BodyPart.LEFT_SHOULDER, BodyPart.RIGHT_SHOULDER, "shoulders"),
    Bone(BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP, "pelvis"),
    Bone(BodyPart.LEFT_SHOULDER, BodyPart.LEFT_HIP, "spine"),
    Bone(BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_HIP, "spine"),
    Bone(BodyPart.LEFT_SHOULDER, BodyPart.LEFT_ELBOW, "arms"),
    Bone(BodyPart.LEFT_ELBOW, BodyPart.LEFT_WRIST, "arms"),
    Bone(BodyPart.RIGHT_SHOULDER, BodyPart.RIGHT_ELBOW, "arms"),
    Bone(BodyPart.RIGHT_ELBOW, BodyPart.RIGHT_WRIST, "arms"),
    Bone(BodyPart.LEFT_HIP, BodyPart.LEFT_KNEE, "legs"),
    Bone(BodyPart.LEFT_KNEE, BodyPart.LEFT_ANKLE, "legs"),
    Bone(BodyPart.RIGHT_HIP, BodyPart.RIGHT_KNEE, "legs"),
    Bone(BodyPart.RIGHT_KNEE, BodyPart.RIGHT_ANKLE, "legs"),
    Bone(BodyPart.LEFT_WRIST, BodyPart.LEFT_THUMB, "hands"),
    Bone(BodyPart.LEFT_WRIST, BodyPart.LEFT_INDEX, "hands"),
    Bone(BodyPart.LEFT_WRIST, BodyPart.LEFT_PINKY, "hands"),
    Bone(BodyPart.RIGHT_WRIST, BodyPart.RIGHT_THUMB, "hands"),
    Bone(BodyPart.RIGHT_WRIST, BodyPart.RIGHT_INDEX, "hands"),
    Bone(BodyPart.RIGHT_WRIST, BodyPart.RIGHT_PINKY, "hands"),
)

ANKLE_STUBS = (BodyPart.LEFT_ANKLE, BodyPart.RIGHT_ANKLE)


class Segment(NamedTuple):
    start: Tuple[float, float]  # source pixels
    end: Tuple[float, float]
    color: str


def resolve_endpoint(pose: Pose, endpoint: Endpoint) -> Optional[Tuple[float, float, float]]:
    """(x, y, score) of a body part or virtual anchor; None if absent."""
    if isinstance(endpoint, BodyPart):
        lm = pose[endpoint]
        return None if lm is None else (lm.x, lm.y, lm.score)

    a, b = (pose[p] for p in ANCHORS[endpoint])
    if a is None or b is None:
        return None
    return ((a.x + b.x) / 2, (a.y + b.y) / 2, min(a.score, b.score))


def visible_segments(pose: Pose, threshold: float) -> List[Segment]:
    """Bones and ankle stubs that pass the confidence gate, in draw order."""
    segments = []
    for bone in BONES:
        start = resolve_endpoint(pose, bone.start)
        end = resolve_endpoint(pose, bone.end)
        if start is None or end is None:
            continue
        if start[2] > threshold and end[2] > threshold:
            segments.append(Segment(start[:2], end[:2], BONE_COLORS[bone.group]))

    for part in ANKLE_STUBS:
        if pose.confident(part, threshold):
            ankle = pose[part]
            segments.append(Segment(
                (ankle.x, ankle.y),
                (ankle.x, ankle.y + ANKLE_STUB_LENGTH),
                BONE_COLORS["legs"],
            ))
    return segments


class SkeletonRenderer:
    """Draws bones, joints and the face highlight for one pose at a time."""

    def __init__(self, threshold: float = 0.3):
        self.threshold = threshold

    def draw_skeleton(self, surface: Surface, pose: Pose, transform: SurfaceTransform) -> int:
        segments = visible_segments(pose, self.threshold)
        for seg in segments:
            x0, y0 = transform.point(*seg.start)
            x1, y1 = transform.point(*seg.end)
            surface.draw_line(x0, y0, x1, y1, seg.color, BONE_WIDTH)
        return len(segments)

    def draw_keypoints(self, surface: Surface, pose: Pose, transform: SurfaceTransform) -> int:
        drawn = 0
        for lm in pose:
            if lm.score <= self.threshold:
                continue
            x, y = transform.point(*lm.xy)
            surface.fill_circle(x, y, JOINT_RADIUS, region_color(lm.part))
            surface.stroke_circle(x, y, JOINT_RADIUS, JOINT_STROKE, JOINT_STROKE_WIDTH)
            drawn += 1
        return drawn

    def draw_face_highlight(
        self,
        surface: Surface,
        pose: Pose,
        frame: np.ndarray,
        transform: SurfaceTransform,
    ) -> bool:
        """
        Re-draw the face region of the source frame inside a circle on the
        nose. Sampling goes through an off-screen buffer filled from the
        source frame, never from the surface, so overlays already drawn this
        frame are not picked up.

        Returns:
            True if the highlight was drawn.
        """
        frame_h, frame_w = frame.shape[:2]
        face = face_highlight_geometry(pose, self.threshold, (frame_w, frame_h))
        if face is None:
            logger.debug("Face highlight skipped: nose or eyes missing or below threshold")
            return False

        buf_w = max(1, int(round(face.sample.width)))
        buf_h = max(1, int(round(face.sample.height)))
        offscreen = Surface(buf_w, buf_h)
        offscreen.draw_image(frame, dest=(0, 0, buf_w, buf_h), src=face.sample.as_tuple())

        radius = face.side / 2
        cx, cy = transform.point(*face.center)
        dest_x, dest_y = transform.point(face.center[0] - radius, face.center[1] - radius)

        surface.save()
        try:
            surface.clip_ellipse(cx, cy, radius * transform.sx, radius * transform.sy)
            surface.draw_image(
                offscreen,
                dest=(dest_x, dest_y, face.side * transform.sx, face.side * transform.sy),
            )
        finally:
            surface.restore()
        return True
