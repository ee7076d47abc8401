# Module: test_render_loop
# License: MIT (TRIALROOM project)
# Description: Per-frame compositing tests — base frame, z-order, failure isolation, idempotence.
# Dependencies: pytest, numpy

"""
tests/test_render_loop.py
Assert:
  - With no poses the output is exactly the scaled source frame
  - Lower garment is drawn before the upper; upper wins at the waist
  - A failing overlay does not stop the others
  - Rendering the same pose twice gives pixel-identical output
  - No frame yet → nothing presented
  - The source → surface scale follows frame and surface size changes
"""

import asyncio
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from helpers import FakeCapture, garment_image, gradient_frame, make_pose
from trialroom.garments import GarmentAligner, GarmentAsset, GarmentSelection
from trialroom.render_loop import RenderLoop
from trialroom.skeleton import SkeletonRenderer
from trialroom.snapshot import SnapshotCell
from trialroom.surface import Surface

THRESHOLD = 0.3


def _build_loop(frame=None, surface_size=(640, 480), skeleton=None, aligner=None, selection=None, **flags):
    cell = SnapshotCell()
    loop = RenderLoop(
        capture=FakeCapture(frame if frame is not None else gradient_frame()),
        cell=cell,
        surface=Surface(*surface_size),
        skeleton=skeleton or SkeletonRenderer(THRESHOLD),
        aligner=aligner or GarmentAligner(THRESHOLD),
        selection=selection or GarmentSelection(),
        **flags,
    )
    return loop, cell


class RecordingSkeleton:
    def __init__(self, calls, fail=()):
        self.calls = calls
        self.fail = fail

    def _record(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise RuntimeError(f"{name} exploded")

    def draw_skeleton(self, surface, pose, transform):
        self._record("skeleton")

    def draw_keypoints(self, surface, pose, transform):
        self._record("keypoints")

    def draw_face_highlight(self, surface, pose, frame, transform):
        self._record("face_highlight")


class TransformRecordingSkeleton(RecordingSkeleton):
    """Keeps the transform handed to each skeleton draw."""

    def __init__(self):
        super().__init__([])
        self.transforms = []

    def draw_skeleton(self, surface, pose, transform):
        self.transforms.append((transform.sx, transform.sy))


class RecordingAligner:
    def __init__(self, calls, fail=()):
        self.calls = calls
        self.fail = fail

    def draw_lower(self, surface, pose, asset, transform):
        self.calls.append("lower_garment")
        if "lower_garment" in self.fail:
            raise RuntimeError("lower exploded")

    def draw_upper(self, surface, pose, asset, transform):
        self.calls.append("upper_garment")


class TestBaseFrame:
    """Frame without overlays."""

    def test_zero_poses_renders_source_only(self):
        frame = gradient_frame()
        loop, _ = _build_loop(frame)
        assert loop.render_frame()
        assert np.array_equal(loop.surface.pixels(), frame)

    def test_source_scaled_to_surface(self):
        frame = np.full((240, 320, 3), 77, dtype=np.uint8)
        loop, _ = _build_loop(frame, surface_size=(640, 480))
        loop.render_frame()
        assert (loop.surface.pixels() == 77).all()

    def test_no_frame_presents_nothing(self):
        presented = []
        loop, _ = _build_loop()
        loop.capture.frame = None
        loop.presenter = presented.append
        assert not loop.render_frame()
        assert presented == []
        assert loop.frames == 0

    def test_presenter_receives_surface(self):
        presented = []
        loop, _ = _build_loop()
        loop.presenter = presented.append
        loop.render_frame()
        assert presented == [loop.surface]


class TestZOrder:
    """Garments under skeleton, lower under upper."""

    def test_call_order(self):
        calls = []
        loop, cell = _build_loop(skeleton=RecordingSkeleton(calls), aligner=RecordingAligner(calls))
        cell.write([make_pose()])
        loop.render_frame()
        assert calls == ["lower_garment", "upper_garment", "skeleton", "keypoints", "face_highlight"]

    def test_upper_covers_lower_at_waist(self):
        selection = GarmentSelection(
            lower=GarmentAsset.from_array("lower", garment_image(118, 169, (0, 0, 255, 255))),
            upper=GarmentAsset.from_array("upper", garment_image(150, 180, (255, 0, 0, 255))),
        )
        loop, cell = _build_loop(
            selection=selection,
            show_skeleton=False, show_keypoints=False, show_face_highlight=False,
        )
        cell.write([make_pose()])
        loop.render_frame()

        pixels = loop.surface.pixels()
        # Upper rect spans y 115..295, lower rect starts at y 261
        assert tuple(pixels[280, 320]) == (255, 0, 0), "upper garment must win at the overlap"
        assert tuple(pixels[350, 320]) == (0, 0, 255), "lower garment visible below the upper"
        assert tuple(pixels[150, 320]) == (255, 0, 0)

    def test_garments_only_on_primary_pose(self):
        calls = []
        loop, cell = _build_loop(skeleton=RecordingSkeleton(calls), aligner=RecordingAligner(calls))
        cell.write([make_pose(), make_pose()])
        loop.render_frame()
        assert calls.count("lower_garment") == 1
        assert calls.count("skeleton") == 2


class TestFailureIsolation:
    """One overlay failing never blocks the rest."""

    def test_failing_overlay_skipped(self):
        calls = []
        loop, cell = _build_loop(
            skeleton=RecordingSkeleton(calls, fail=("skeleton",)),
            aligner=RecordingAligner(calls, fail=("lower_garment",)),
        )
        cell.write([make_pose()])
        assert loop.render_frame()
        assert calls == ["lower_garment", "upper_garment", "skeleton", "keypoints", "face_highlight"]
        assert loop.overlay_failures == {"lower_garment": 1, "skeleton": 1}

    def test_failing_presenter_does_not_raise(self):
        def presenter(surface):
            raise RuntimeError("window closed")

        loop, _ = _build_loop()
        loop.presenter = presenter
        assert loop.render_frame()
        assert loop.overlay_failures["presenter"] == 1

    def test_unloaded_garment_skipped(self):
        selection = GarmentSelection(upper=GarmentAsset.pending("shirt", "/nonexistent.png"))
        frame = gradient_frame()
        loop, cell = _build_loop(
            frame,
            selection=selection,
            show_skeleton=False, show_keypoints=False, show_face_highlight=False,
        )
        cell.write([make_pose()])
        loop.render_frame()
        assert np.array_equal(loop.surface.pixels(), frame)
        assert loop.overlay_failures == {}


class TestSurfaceTransform:
    """Scale is re-derived every frame, per axis."""

    def test_frame_size_change(self):
        skeleton = TransformRecordingSkeleton()
        loop, cell = _build_loop(np.full((240, 320, 3), 10, dtype=np.uint8), skeleton=skeleton)
        cell.write([make_pose()])

        loop.render_frame()
        loop.capture.frame = np.full((240, 640, 3), 20, dtype=np.uint8)
        loop.render_frame()

        assert skeleton.transforms == [(2.0, 2.0), (1.0, 2.0)]
        assert (loop.surface.pixels() == 20).all()

    def test_surface_resize(self):
        skeleton = TransformRecordingSkeleton()
        loop, cell = _build_loop(np.full((240, 320, 3), 30, dtype=np.uint8), skeleton=skeleton)
        cell.write([make_pose()])

        loop.render_frame()
        loop.surface.resize(1280, 480)
        loop.render_frame()

        assert skeleton.transforms == [(2.0, 2.0), (4.0, 2.0)]
        pixels = loop.surface.pixels()
        assert pixels.shape == (480, 1280, 3)
        assert (pixels == 30).all()


class TestIdempotence:
    def test_same_pose_same_pixels(self):
        selection = GarmentSelection(
            upper=GarmentAsset.from_array("upper", garment_image(150, 180, (255, 0, 0, 200))),
        )
        loop, cell = _build_loop(selection=selection)
        cell.write([make_pose()])

        loop.render_frame()
        first = loop.surface.pixels()
        loop.render_frame()
        second = loop.surface.pixels()
        assert np.array_equal(first, second)
        assert loop.frames == 2


class TestLifecycle:
    def test_start_and_stop(self):
        async def scenario():
            loop, _ = _build_loop(fps=200)
            loop.capture.open()
            loop.start()
            await asyncio.sleep(0.05)
            assert loop.running
            await loop.stop()
            return loop

        loop = asyncio.run(scenario())
        assert not loop.running
        assert loop.frames > 0
        assert loop.capture.events == ["capture.open", "capture.release"]
