# Module: compositor
# License: MIT (TRIALROOM project)
# Description: Owns one capture → estimation → render session and its ordered start/stop.
# Platform: Both
# Dependencies: asyncio, concurrent.futures

"""
Compositor
==========
Wires the capture source, estimator, snapshot cell, scheduler and render
loop together.

start():
    open capture device and build the estimator first; either failing
    raises before any loop runs.
stop(), in order:
    1. render loop's pending tick is cancelled
    2. scheduler stopped; waits for a running estimation, discards its result
    3. capture device released
    4. estimator closed
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional, Set

from trialroom.capture import CaptureSource, OpenCVCapture
from trialroom.config import CompositorConfig
from trialroom.estimator import LandmarkEstimator, create_estimator
from trialroom.garments import GarmentAligner, GarmentAsset, GarmentCatalog, GarmentSelection
from trialroom.render_loop import Presenter, RenderLoop
from trialroom.scheduler import EstimationScheduler
from trialroom.skeleton import SkeletonRenderer
from trialroom.snapshot import SnapshotCell
from trialroom.surface import Surface

logger = logging.getLogger("trialroom.compositor")

EstimatorFactory = Callable[[], LandmarkEstimator]


class Compositor:
    def __init__(
        self,
        config: Optional[CompositorConfig] = None,
        capture: Optional[CaptureSource] = None,
        estimator_factory: Optional[EstimatorFactory] = None,
        presenter: Optional[Presenter] = None,
    ):
        self.config = config or CompositorConfig()
        self.capture = capture or OpenCVCapture.from_config(self.config.capture)
        self._estimator_factory = estimator_factory or (lambda: create_estimator(self.config.estimation))

        overlay = self.config.overlay
        self.cell = SnapshotCell()
        self.selection = GarmentSelection()
        self.catalog = GarmentCatalog.from_config(self.config.garments)
        self.surface = Surface(self.config.render.width, self.config.render.height)
        self.render_loop = RenderLoop(
            capture=self.capture,
            cell=self.cell,
            surface=self.surface,
            skeleton=SkeletonRenderer(overlay.confidence_threshold),
            aligner=GarmentAligner(overlay.confidence_threshold),
            selection=self.selection,
            fps=self.config.render.fps,
            presenter=presenter,
            show_skeleton=overlay.show_skeleton,
            show_keypoints=overlay.show_keypoints,
            show_face_highlight=overlay.show_face_highlight,
            show_garments=overlay.show_garments,
        )

        self.estimator: Optional[LandmarkEstimator] = None
        self.scheduler: Optional[EstimationScheduler] = None
        self._asset_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="trialroom-assets")
        self._loading: Set[GarmentAsset] = set()
        self._loading_lock = threading.Lock()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    # ═══════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """
        Open the camera, build the estimator, then start both loops.

        Raises:
            CaptureError: camera could not be opened.
            EstimatorInitError: estimator could not be built.
        """
        if self._started:
            return

        self.capture.open()
        try:
            self.estimator = self._estimator_factory()
        except Exception:
            self.capture.release()
            raise
        logger.info("Estimator ready: %s", self.estimator.name())

        self.cell.clear()
        self.scheduler = EstimationScheduler(
            self.estimator,
            self.capture,
            self.cell,
            interval=self.config.estimation.interval_s,
        )

        for slot, name in (("upper", self.config.garments.default_upper),
                           ("lower", self.config.garments.default_lower)):
            if name:
                self.select_garment(slot, name)

        self.scheduler.start()
        self.render_loop.start()
        self._started = True
        logger.info("Compositor started")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False

        await self.render_loop.stop(release_capture=False)
        if self.scheduler is not None:
            await self.scheduler.stop()
        self.capture.release()
        if self.estimator is not None:
            self.estimator.close()
            self.estimator = None
        logger.info("Compositor stopped")

    async def __aenter__(self) -> "Compositor":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    def close(self) -> None:
        """Release worker threads. Call once the compositor is stopped for good."""
        self._asset_executor.shutdown(wait=False)

    # ═══════════════════════════════════════════════════════════════════
    # GARMENTS
    # ═══════════════════════════════════════════════════════════════════

    def select_garment(self, slot: str, name: str) -> GarmentAsset:
        """
        Make a catalog garment current. The asset is selected immediately
        and loaded in the background; until then it is skipped when drawing.
        Selecting an asset whose load is still running does not load it again.

        Raises:
            UnknownGarmentError: slot or name not in the catalog.
        """
        asset = self.catalog.asset(slot, name)
        self.selection.set(slot, asset)
        if not asset.is_loaded:
            self._load_in_background(asset)
        return asset

    def _load_in_background(self, asset: GarmentAsset) -> None:
        with self._loading_lock:
            if asset in self._loading:
                return
            self._loading.add(asset)
        future = self._asset_executor.submit(asset.load)
        future.add_done_callback(lambda f: self._load_done(asset, f))

    def _load_done(self, asset: GarmentAsset, future) -> None:
        with self._loading_lock:
            self._loading.discard(asset)
        _log_load_failure(asset, future)

    def clear_garment(self, slot: str) -> None:
        self.selection.clear(slot)

    # ═══════════════════════════════════════════════════════════════════
    # STATUS
    # ═══════════════════════════════════════════════════════════════════

    def stats(self) -> Dict[str, object]:
        return {
            "started": self._started,
            "estimator": self.estimator.name() if self.estimator else None,
            "estimation": self.scheduler.stats() if self.scheduler else None,
            "render": self.render_loop.stats(),
            "garments": self.selection.as_dict(),
        }

    def latest_jpeg(self, quality: int = 80) -> bytes:
        return self.surface.encode_jpeg(quality)


def _log_load_failure(asset: GarmentAsset, future) -> None:
    error = future.exception()
    if error is not None:
        logger.error("Garment '%s' failed to load from %s: %s", asset.name, asset.source, str(error))


async def run_forever(compositor: Compositor, stop_event: Optional[asyncio.Event] = None) -> None:
    """Run a compositor until stop_event is set (or the task is cancelled)."""
    stop_event = stop_event or asyncio.Event()
    await compositor.start()
    try:
        await stop_event.wait()
    finally:
        await compositor.stop()
