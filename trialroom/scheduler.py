# Module: scheduler
# License: MIT (TRIALROOM project)
# Description: Fixed-cadence estimation loop feeding the snapshot cell.
# Platform: Both
# Dependencies: asyncio, concurrent.futures

"""
Estimation Scheduler
====================
Ticks every `interval` seconds, independent of the render rate.

Per tick:
    estimation still in flight → skip the tick
    no frame yet               → nothing to do
    otherwise                  → run the estimator on a worker thread

Success replaces the snapshot. Failure is logged and the previous snapshot
stays in place; the next tick simply tries again. After stop() any result
that was still in flight is discarded.
"""

import asyncio
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional

from trialroom.capture import CaptureSource
from trialroom.estimator import LandmarkEstimator
from trialroom.snapshot import SnapshotCell

logger = logging.getLogger("trialroom.scheduler")


class EstimationScheduler:
    def __init__(
        self,
        estimator: LandmarkEstimator,
        capture: CaptureSource,
        cell: SnapshotCell,
        interval: float = 0.033,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.estimator = estimator
        self.capture = capture
        self.cell = cell
        self.interval = interval

        # One worker: estimations never overlap
        self._own_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="trialroom-pose")

        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None
        self._work: Optional[Future] = None
        self._generation = 0
        self._stats = {"ticks": 0, "completed": 0, "failures": 0, "skipped_ticks": 0, "discarded": 0}
        self.last_latency_ms: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def stats(self) -> Dict[str, object]:
        out = dict(self._stats)
        out["running"] = self.running
        out["busy"] = self.busy
        out["last_latency_ms"] = self.last_latency_ms
        return out

    # ═══════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════

    def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self.running:
            return
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="trialroom-pose")
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(self._run(), name="trialroom-estimation")
        logger.info("Estimation scheduler started (interval=%.0fms)", self.interval * 1000)

    async def stop(self) -> None:
        """
        Stop ticking and drop any in-flight result. Returns only once the
        worker thread has left estimate(), so the estimator can be closed
        safely; the result of that call is never written.
        """
        self._generation += 1
        task, self._task = self._task, None
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            self._stats["discarded"] += 1

        for pending in (task, inflight):
            if pending is not None and not pending.done():
                pending.cancel()
        for pending in (task, inflight):
            if pending is None:
                continue
            try:
                await pending
            except asyncio.CancelledError:
                pass

        work, self._work = self._work, None
        if work is not None and not work.done():
            # Estimator must be idle before anyone closes it
            waiter = asyncio.wrap_future(work)
            await asyncio.wait([waiter])
            if not waiter.cancelled():
                waiter.exception()

        if self._own_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        logger.info("Estimation scheduler stopped")

    # ═══════════════════════════════════════════════════════════════════
    # LOOP
    # ═══════════════════════════════════════════════════════════════════

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            self.tick()
            next_tick += self.interval
            delay = next_tick - loop.time()
            if delay < 0:
                # Fell behind; realign rather than firing a burst of ticks
                next_tick = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    def tick(self) -> bool:
        """
        Run one scheduling decision.

        Returns:
            True if an estimation was launched.
        """
        self._stats["ticks"] += 1
        if self.busy:
            self._stats["skipped_ticks"] += 1
            return False

        frame = self.capture.current_frame()
        if frame is None:
            return False

        self._inflight = asyncio.ensure_future(self._estimate(frame, self._generation))
        return True

    async def _estimate(self, frame, generation: int) -> None:
        start = time.perf_counter()
        try:
            self._work = self._executor.submit(self.estimator.estimate, frame)
            poses = await asyncio.wrap_future(self._work)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats["failures"] += 1
            logger.warning("Estimation failed, keeping previous snapshot: %s", str(e))
            return

        if generation != self._generation:
            self._stats["discarded"] += 1
            logger.debug("Discarding estimation result from a stopped run")
            return

        self.last_latency_ms = (time.perf_counter() - start) * 1000
        self.cell.write(poses)
        self._stats["completed"] += 1
        logger.debug("Estimated %d pose(s) in %.1fms", len(poses), self.last_latency_ms,
                     extra={"loop": "estimation", "latency_ms": self.last_latency_ms})
