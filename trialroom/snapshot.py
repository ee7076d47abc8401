# Module: snapshot
# License: MIT (TRIALROOM project)
# Description: Single-slot, last-write-wins holder for the most recent estimation result.
# Platform: Both
# Dependencies: none

"""
Snapshot Cell
=============
Shared by handle between the estimation scheduler (single writer) and the
render loop (reader). A write replaces the held Snapshot with one attribute
assignment; a read returns whatever reference is current. Snapshots are
immutable, so a reader can never observe a partially written value and no
lock is needed.
"""

import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from trialroom.landmarks import Pose


@dataclass(frozen=True)
class Snapshot:
    poses: Tuple[Pose, ...] = ()
    sequence: int = 0
    captured_at: float = field(default_factory=time.monotonic)

    @property
    def primary(self) -> Optional[Pose]:
        return self.poses[0] if self.poses else None

    def __bool__(self) -> bool:
        return bool(self.poses)


EMPTY_SNAPSHOT = Snapshot(poses=(), sequence=0, captured_at=0.0)


class SnapshotCell:
    """Holds at most one Snapshot. Never queues."""

    def __init__(self):
        self._snapshot: Snapshot = EMPTY_SNAPSHOT
        self._writes = 0

    def write(self, poses: Sequence[Pose]) -> Snapshot:
        """Replace the held snapshot. Returns the new one."""
        self._writes += 1
        snapshot = Snapshot(poses=tuple(poses), sequence=self._writes)
        self._snapshot = snapshot
        return snapshot

    def read(self) -> Snapshot:
        return self._snapshot

    def clear(self) -> None:
        self._snapshot = EMPTY_SNAPSHOT

    @property
    def writes(self) -> int:
        return self._writes
