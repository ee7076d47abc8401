# Module: render_loop
# License: MIT (TRIALROOM project)
# Description: Refresh-paced render loop compositing frame, garments and skeleton.
# Platform: Both
# Dependencies: asyncio, numpy

"""
Render Loop
===========
One step per display refresh:
    1. clear the surface
    2. draw the current source frame scaled to the surface
    3. read the latest snapshot (never waits on the estimator)
    4. lower garment → upper garment → skeleton → joints → face highlight
    5. hand the surface to the presenter

Every overlay runs in its own guard: a failure is logged and counted and
the remaining overlays still draw. Nothing raised inside a step escapes it.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from trialroom.capture import CaptureSource
from trialroom.garments import GarmentAligner, GarmentSelection
from trialroom.geometry import SurfaceTransform
from trialroom.skeleton import SkeletonRenderer
from trialroom.snapshot import SnapshotCell
from trialroom.surface import Surface

logger = logging.getLogger("trialroom.render")

Presenter = Callable[[Surface], None]


class RenderLoop:
    def __init__(
        self,
        capture: CaptureSource,
        cell: SnapshotCell,
        surface: Surface,
        skeleton: SkeletonRenderer,
        aligner: GarmentAligner,
        selection: GarmentSelection,
        fps: float = 60.0,
        presenter: Optional[Presenter] = None,
        show_skeleton: bool = True,
        show_keypoints: bool = True,
        show_face_highlight: bool = True,
        show_garments: bool = True,
    ):
        if fps <= 0:
            raise ValueError(f"fps must be > 0, got {fps}")
        self.capture = capture
        self.cell = cell
        self.surface = surface
        self.skeleton = skeleton
        self.aligner = aligner
        self.selection = selection
        self.fps = fps
        self.presenter = presenter

        self.show_skeleton = show_skeleton
        self.show_keypoints = show_keypoints
        self.show_face_highlight = show_face_highlight
        self.show_garments = show_garments

        self._task: Optional[asyncio.Task] = None
        self.frames = 0
        self.last_sequence = 0
        self.overlay_failures: Dict[str, int] = {}
        self.last_frame_ms: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def stats(self) -> Dict[str, object]:
        return {
            "running": self.running,
            "frames": self.frames,
            "snapshot_sequence": self.last_sequence,
            "overlay_failures": dict(self.overlay_failures),
            "last_frame_ms": self.last_frame_ms,
            "surface": list(self.surface.size),
        }

    # ═══════════════════════════════════════════════════════════════════
    # FRAME STEP
    # ═══════════════════════════════════════════════════════════════════

    def _guarded(self, overlay: str, draw, *args) -> None:
        try:
            draw(*args)
        except Exception as e:
            count = self.overlay_failures.get(overlay, 0) + 1
            self.overlay_failures[overlay] = count
            if count == 1 or count % 100 == 0:
                logger.error("Overlay '%s' failed (%d so far): %s", overlay, count, str(e),
                             extra={"overlay": overlay})

    def render_frame(self) -> bool:
        """
        Draw one frame onto the surface.

        Returns:
            True if a source frame was available and drawn.
        """
        start = time.perf_counter()
        try:
            drawn = self._render()
        except Exception as e:
            logger.error("Render step failed: %s", str(e))
            drawn = False
        self.last_frame_ms = (time.perf_counter() - start) * 1000
        if drawn and self.presenter is not None:
            self._guarded("presenter", self.presenter, self.surface)
        return drawn

    def _render(self) -> bool:
        surface = self.surface
        surface.clear_rect(0, 0, surface.width, surface.height)

        frame = self.capture.current_frame()
        if frame is None:
            return False

        frame_h, frame_w = frame.shape[:2]
        surface.draw_image(frame, dest=(0, 0, surface.width, surface.height))
        transform = SurfaceTransform.between((frame_w, frame_h), surface.size)

        snapshot = self.cell.read()
        self.frames += 1
        self.last_sequence = snapshot.sequence

        primary = snapshot.primary
        if primary is not None and self.show_garments:
            self._guarded("lower_garment", self.aligner.draw_lower, surface, primary, self.selection.lower, transform)
            self._guarded("upper_garment", self.aligner.draw_upper, surface, primary, self.selection.upper, transform)

        for pose in snapshot.poses:
            if self.show_skeleton:
                self._guarded("skeleton", self.skeleton.draw_skeleton, surface, pose, transform)
            if self.show_keypoints:
                self._guarded("keypoints", self.skeleton.draw_keypoints, surface, pose, transform)
            if self.show_face_highlight:
                self._guarded("face_highlight", self.skeleton.draw_face_highlight, surface, pose, frame, transform)
        return True

    # ═══════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════

    def start(self) -> None:
        """Start rendering. Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="trialroom-render")
        logger.info("Render loop started (%.0f fps, surface %dx%d)", self.fps, *self.surface.size)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        period = 1.0 / self.fps
        while True:
            tick_start = loop.time()
            self.render_frame()
            await asyncio.sleep(max(0.0, period - (loop.time() - tick_start)))

    async def stop(self, release_capture: bool = True) -> None:
        """Cancel the pending tick, then release the capture device."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Render loop stopped after %d frames", self.frames)
        if release_capture:
            self.capture.release()
