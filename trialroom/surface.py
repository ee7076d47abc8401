# Module: surface
# License: MIT (TRIALROOM project)
# Description: Resizable 2D drawing surface backed by a BGR numpy buffer.
# Platform: Both
# Dependencies: numpy, opencv-python

"""
Drawing Surface
===============
A small canvas-style API over a (H, W, 3) uint8 BGR buffer:
    clear_rect, draw_image (sub-rect → sub-rect, alpha aware),
    draw_line, fill_circle / stroke_circle,
    save / restore / clip_ellipse.

All coordinates are surface pixels. Draws may extend past the edges; the
visible part is kept. While a clip is active every primitive only touches
pixels inside the clip mask.
"""

import logging
from typing import List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger("trialroom.surface")

Color = Union[str, Sequence[int]]
Rect = Tuple[float, float, float, float]


def parse_color(color: Color) -> Tuple[int, int, int]:
    """
    Convert '#rrggbb' or an (r, g, b) sequence to an OpenCV BGR tuple.
    """
    if isinstance(color, str):
        value = color.lstrip("#")
        if len(value) != 6:
            raise ValueError(f"Expected #rrggbb color, got {color!r}")
        r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    else:
        r, g, b = (int(c) for c in color[:3])
    return (b, g, r)


def _as_bgr_or_bgra(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    return image


def _point(x: float, y: float) -> Tuple[int, int]:
    return (int(round(x)), int(round(y)))


class Surface:
    """Resizable drawing target. Starts black."""

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface must be non-empty, got {width}x{height}")
        self._buf = np.zeros((int(height), int(width), 3), dtype=np.uint8)
        self._clip: Optional[np.ndarray] = None
        self._stack: List[Optional[np.ndarray]] = []

    @property
    def width(self) -> int:
        return self._buf.shape[1]

    @property
    def height(self) -> int:
        return self._buf.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def resize(self, width: int, height: int) -> None:
        """Resize the surface. Contents and clip state are discarded."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface must be non-empty, got {width}x{height}")
        if (width, height) == self.size:
            return
        self._buf = np.zeros((int(height), int(width), 3), dtype=np.uint8)
        self._clip = None
        self._stack.clear()
        logger.debug("Surface resized to %dx%d", width, height)

    def pixels(self) -> np.ndarray:
        """Copy of the current BGR buffer."""
        return self._buf.copy()

    def encode_jpeg(self, quality: int = 80) -> bytes:
        ok, encoded = cv2.imencode(".jpg", self._buf, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
        if not ok:
            raise RuntimeError("JPEG encoding failed")
        return encoded.tobytes()

    # ═══════════════════════════════════════════════════════════════════
    # STATE
    # ═══════════════════════════════════════════════════════════════════

    def save(self) -> None:
        self._stack.append(self._clip)

    def restore(self) -> None:
        if self._stack:
            self._clip = self._stack.pop()

    def clip_ellipse(self, cx: float, cy: float, rx: float, ry: float) -> None:
        """Intersect the current clip with an axis-aligned ellipse."""
        mask = np.zeros((self.height, self.width), dtype=np.uint8)
        axes = (max(0, int(round(rx))), max(0, int(round(ry))))
        cv2.ellipse(mask, _point(cx, cy), axes, 0, 0, 360, 255, thickness=-1)
        region = mask > 0
        self._clip = region if self._clip is None else (self._clip & region)

    def _paint(self, draw) -> None:
        """Run a cv2 primitive on the buffer, honoring the clip."""
        if self._clip is None:
            draw(self._buf)
            return
        layer = self._buf.copy()
        draw(layer)
        self._buf[self._clip] = layer[self._clip]

    # ═══════════════════════════════════════════════════════════════════
    # PRIMITIVES
    # ═══════════════════════════════════════════════════════════════════

    def clear_rect(self, x: float, y: float, w: float, h: float) -> None:
        x0, y0 = max(0, int(round(x))), max(0, int(round(y)))
        x1, y1 = min(self.width, int(round(x + w))), min(self.height, int(round(y + h)))
        if x1 <= x0 or y1 <= y0:
            return
        region = self._buf[y0:y1, x0:x1]
        if self._clip is None:
            region[:] = 0
        else:
            region[self._clip[y0:y1, x0:x1]] = 0

    def draw_line(self, x0: float, y0: float, x1: float, y1: float, color: Color, width: int = 1) -> None:
        bgr = parse_color(color)
        self._paint(lambda buf: cv2.line(
            buf, _point(x0, y0), _point(x1, y1), bgr,
            thickness=max(1, int(width)), lineType=cv2.LINE_AA,
        ))

    def fill_circle(self, cx: float, cy: float, radius: float, color: Color) -> None:
        bgr = parse_color(color)
        self._paint(lambda buf: cv2.circle(
            buf, _point(cx, cy), max(0, int(round(radius))), bgr,
            thickness=-1, lineType=cv2.LINE_AA,
        ))

    def stroke_circle(self, cx: float, cy: float, radius: float, color: Color, width: int = 1) -> None:
        bgr = parse_color(color)
        self._paint(lambda buf: cv2.circle(
            buf, _point(cx, cy), max(0, int(round(radius))), bgr,
            thickness=max(1, int(width)), lineType=cv2.LINE_AA,
        ))

    def draw_image(
        self,
        image: Union[np.ndarray, "Surface"],
        dest: Rect,
        src: Optional[Rect] = None,
    ) -> None:
        """
        Resample the src rectangle of image into the dest rectangle.

        Args:
            image: BGR/BGRA/grayscale array, or another Surface.
            dest: (x, y, w, h) in surface pixels. May extend off-surface.
            src: (x, y, w, h) in image pixels, clamped to the image.
                None means the whole image.
        """
        pixels = image._buf if isinstance(image, Surface) else _as_bgr_or_bgra(image)
        ih, iw = pixels.shape[:2]

        if src is None:
            sx0, sy0, sx1, sy1 = 0, 0, iw, ih
        else:
            sx, sy, sw, sh = src
            sx0, sy0 = max(0, int(round(sx))), max(0, int(round(sy)))
            sx1, sy1 = min(iw, int(round(sx + sw))), min(ih, int(round(sy + sh)))
        if sx1 <= sx0 or sy1 <= sy0:
            return

        dx, dy = _point(dest[0], dest[1])
        dw, dh = int(round(dest[2])), int(round(dest[3]))
        if dw <= 0 or dh <= 0:
            return

        x0, y0 = max(dx, 0), max(dy, 0)
        x1, y1 = min(dx + dw, self.width), min(dy + dh, self.height)
        if x1 <= x0 or y1 <= y0:
            return

        crop = pixels[sy0:sy1, sx0:sx1]
        if crop.shape[1] == dw and crop.shape[0] == dh:
            resized = crop
        else:
            resized = cv2.resize(crop, (dw, dh), interpolation=cv2.INTER_LINEAR)
        patch = resized[y0 - dy:y1 - dy, x0 - dx:x1 - dx]
        target = self._buf[y0:y1, x0:x1]

        has_alpha = patch.ndim == 3 and patch.shape[2] == 4
        if not has_alpha and self._clip is None:
            target[:] = patch
            return

        if has_alpha:
            alpha = patch[:, :, 3:4].astype(np.float32) / 255.0
            color = patch[:, :, :3].astype(np.float32)
        else:
            alpha = np.ones(patch.shape[:2] + (1,), dtype=np.float32)
            color = patch.astype(np.float32)

        if self._clip is not None:
            alpha = alpha * self._clip[y0:y1, x0:x1, None]

        blended = color * alpha + target.astype(np.float32) * (1.0 - alpha)
        target[:] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
