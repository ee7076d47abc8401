# Module: geometry
# License: MIT (TRIALROOM project)
# Description: Pure overlay placement math — garment boxes, draw rects, face highlight box.
# Platform: Both
# Dependencies: none

"""
Overlay Geometry
================
Everything here is a pure function of (pose, threshold, sizes, aspect).
Boxes are computed in source-frame pixels; SurfaceTransform converts a box
to surface pixels once, when the draw rectangle is produced.

Lower garment (trousers / skirt):
    needs both hips present; bottom reference = ankles → knees above
    threshold → hips
    paddingX = 0.4 × hipWidth, paddingY = 0.15 × hipWidth
    width-driven aspect fit, height is never clamped

Upper garment (shirt / jacket):
    needs both shoulders and both hips above threshold
    padding = 0.25 × max(shoulderWidth, hipWidth)
    width-driven aspect fit, shrunk to the box height if taller
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from trialroom.landmarks import BodyPart, Pose

LOWER_PADDING_X = 0.4
LOWER_PADDING_Y = 0.15
UPPER_PADDING = 0.25

FACE_PADDING = 40.0
FACE_LIFT = 0.2


@dataclass(frozen=True)
class SurfaceTransform:
    """Source-frame → surface scale, re-derived every frame."""

    sx: float = 1.0
    sy: float = 1.0

    @classmethod
    def between(cls, source_size: Tuple[int, int], target_size: Tuple[int, int]) -> "SurfaceTransform":
        sw, sh = source_size
        tw, th = target_size
        if sw <= 0 or sh <= 0:
            raise ValueError(f"Source frame must be non-empty, got {sw}x{sh}")
        return cls(sx=tw / sw, sy=th / sh)

    def point(self, x: float, y: float) -> Tuple[float, float]:
        return (x * self.sx, y * self.sy)


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


@dataclass(frozen=True)
class DrawRect:
    x: float
    y: float
    width: float
    height: float

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class GarmentPlacement:
    box: BoundingBox  # source-frame pixels
    rect: DrawRect    # surface pixels


# ═══════════════════════════════════════════════════════════════════════
# GARMENT BOXES
# ═══════════════════════════════════════════════════════════════════════


def _pair(pose: Pose, left: BodyPart, right: BodyPart):
    a, b = pose[left], pose[right]
    if a is None or b is None:
        return None
    return a, b


def _confident_pair(pose: Pose, left: BodyPart, right: BodyPart, threshold: float):
    if not (pose.confident(left, threshold) and pose.confident(right, threshold)):
        return None
    return pose[left], pose[right]


def lower_garment_box(pose: Pose, threshold: float) -> Optional[BoundingBox]:
    """
    Bounding box for a lower garment, or None when a hip is missing.
    Hips and ankles only need to be present. Knees are used as the bottom
    reference only when both score strictly above threshold; otherwise the
    box falls back to the hips.
    """
    hips = _pair(pose, BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP)
    if hips is None:
        return None
    left_hip, right_hip = hips

    bottom = (
        _pair(pose, BodyPart.LEFT_ANKLE, BodyPart.RIGHT_ANKLE)
        or _confident_pair(pose, BodyPart.LEFT_KNEE, BodyPart.RIGHT_KNEE, threshold)
        or hips
    )
    bottom_left, bottom_right = bottom

    hip_width = abs(left_hip.x - right_hip.x)
    padding_x = LOWER_PADDING_X * hip_width
    padding_y = LOWER_PADDING_Y * hip_width

    xs = (left_hip.x, right_hip.x, bottom_left.x, bottom_right.x)
    return BoundingBox(
        left=min(xs) - padding_x,
        top=min(left_hip.y, right_hip.y) - padding_y,
        right=max(xs) + padding_x,
        bottom=max(bottom_left.y, bottom_right.y),
    )


def upper_garment_box(pose: Pose, threshold: float) -> Optional[BoundingBox]:
    """
    Bounding box for an upper garment, or None unless both shoulders and
    both hips score strictly above threshold.
    """
    parts = (BodyPart.LEFT_SHOULDER, BodyPart.RIGHT_SHOULDER, BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP)
    if not all(pose.confident(p, threshold) for p in parts):
        return None
    ls, rs, lh, rh = (pose[p] for p in parts)

    shoulder_width = abs(ls.x - rs.x)
    hip_width = abs(lh.x - rh.x)
    padding = UPPER_PADDING * max(shoulder_width, hip_width)

    xs = (ls.x, rs.x, lh.x, rh.x)
    ys = (ls.y, rs.y, lh.y, rh.y)
    return BoundingBox(
        left=min(xs) - padding,
        top=min(ys) - padding,
        right=max(xs) + padding,
        bottom=max(ys) + padding,
    )


def fit_draw_rect(
    box: BoundingBox,
    transform: SurfaceTransform,
    aspect: float,
    clamp_height: bool,
) -> DrawRect:
    """
    Aspect-preserving draw rectangle for an image inside box, in surface
    pixels. Width drives the size; with clamp_height the height is capped at
    the box height and the width recomputed. Centered horizontally, top
    aligned.
    """
    box_width = box.width * transform.sx
    box_height = box.height * transform.sy

    draw_width = box_width
    draw_height = draw_width / aspect
    if clamp_height and draw_height > box_height:
        draw_height = box_height
        draw_width = draw_height * aspect

    x = box.left * transform.sx + (box_width - draw_width) / 2
    y = box.top * transform.sy
    return DrawRect(x=x, y=y, width=draw_width, height=draw_height)


def lower_garment_geometry(
    pose: Pose,
    threshold: float,
    transform: SurfaceTransform,
    aspect: float,
) -> Optional[GarmentPlacement]:
    box = lower_garment_box(pose, threshold)
    if box is None:
        return None
    return GarmentPlacement(box=box, rect=fit_draw_rect(box, transform, aspect, clamp_height=False))


def upper_garment_geometry(
    pose: Pose,
    threshold: float,
    transform: SurfaceTransform,
    aspect: float,
) -> Optional[GarmentPlacement]:
    box = upper_garment_box(pose, threshold)
    if box is None:
        return None
    return GarmentPlacement(box=box, rect=fit_draw_rect(box, transform, aspect, clamp_height=True))


# ═══════════════════════════════════════════════════════════════════════
# FACE HIGHLIGHT
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FaceHighlight:
    sample: DrawRect           # region of the source frame, source pixels
    center: Tuple[float, float]  # nose, source pixels
    side: float                # square side / circle diameter, source pixels


def face_highlight_geometry(
    pose: Pose,
    threshold: float,
    frame_size: Tuple[int, int],
) -> Optional[FaceHighlight]:
    """
    Square face region around nose and eyes, lifted to include the forehead.
    None unless nose and both eyes score above threshold.
    """
    parts = (BodyPart.NOSE, BodyPart.LEFT_EYE, BodyPart.RIGHT_EYE)
    if not all(pose.confident(p, threshold) for p in parts):
        return None
    nose, left_eye, right_eye = (pose[p] for p in parts)

    xs = (nose.x, left_eye.x, right_eye.x)
    ys = (nose.y, left_eye.y, right_eye.y)
    box_w = max(xs) - min(xs) + 2 * FACE_PADDING
    box_h = max(ys) - min(ys) + 2 * FACE_PADDING
    side = max(box_w, box_h)

    frame_w, frame_h = frame_size
    x = max(0.0, min(xs) - FACE_PADDING)
    y = max(0.0, min(ys) - FACE_PADDING - side * FACE_LIFT)
    w = min(frame_w - x, side)
    h = min(frame_h - y, side)
    if w <= 0 or h <= 0:
        return None

    return FaceHighlight(sample=DrawRect(x, y, w, h), center=(nose.x, nose.y), side=side)
