# Module: garments
# License: MIT (TRIALROOM project)
# Description: Garment assets, the current selection, the named catalog, and the aligner that blits them.
# Platform: Both
# Dependencies: numpy, Pillow, opencv-python

"""
Garment Aligner
===============
Two independent policies, always drawn lower first, upper second, so the
upper garment covers the lower one at the waist.

Placement math lives in trialroom.geometry; this module only decides
whether an asset is drawable and blits it.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

import cv2
import numpy as np
from PIL import Image

from trialroom.config import GarmentCatalogConfig
from trialroom.errors import UnknownGarmentError
from trialroom.geometry import (
    GarmentPlacement,
    SurfaceTransform,
    lower_garment_geometry,
    upper_garment_geometry,
)
from trialroom.landmarks import Pose
from trialroom.surface import Surface

logger = logging.getLogger("trialroom.garments")

LOWER = "lower"
UPPER = "upper"
SLOTS = (LOWER, UPPER)


# ═══════════════════════════════════════════════════════════════════════
# ASSETS
# ═══════════════════════════════════════════════════════════════════════


class GarmentAsset:
    """
    Garment image handle. Starts unloaded when built with pending(); the
    image becomes visible to readers with a single assignment in load().
    """

    def __init__(self, name: str, image: Optional[np.ndarray] = None, source: Optional[str] = None):
        self.name = name
        self.source = source
        self._image = image

    @classmethod
    def pending(cls, name: str, source: Optional[str] = None) -> "GarmentAsset":
        return cls(name, image=None, source=source)

    @classmethod
    def from_array(cls, name: str, image: np.ndarray) -> "GarmentAsset":
        return cls(name, image=image)

    @classmethod
    def from_file(cls, path: str, name: Optional[str] = None) -> "GarmentAsset":
        return cls(name or Path(path).stem, source=str(path)).load()

    def load(self) -> "GarmentAsset":
        """Read the source image as BGRA. Safe to call from a worker thread."""
        if self.source is None:
            raise ValueError(f"Garment '{self.name}' has no source path")
        with Image.open(self.source) as img:
            rgba = np.array(img.convert("RGBA"))
        self._image = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
        logger.info("Garment loaded: %s (%dx%d)", self.name, self.natural_width, self.natural_height)
        return self

    @property
    def image(self) -> Optional[np.ndarray]:
        return self._image

    @property
    def natural_width(self) -> int:
        return 0 if self._image is None else int(self._image.shape[1])

    @property
    def natural_height(self) -> int:
        return 0 if self._image is None else int(self._image.shape[0])

    @property
    def is_loaded(self) -> bool:
        return self.natural_width > 0 and self.natural_height > 0

    @property
    def aspect(self) -> float:
        return self.natural_width / self.natural_height

    def __repr__(self) -> str:
        state = f"{self.natural_width}x{self.natural_height}" if self.is_loaded else "pending"
        return f"GarmentAsset({self.name!r}, {state})"


class GarmentSelection:
    """Currently worn garments. Mutated from outside, read every frame."""

    def __init__(self, lower: Optional[GarmentAsset] = None, upper: Optional[GarmentAsset] = None):
        self.lower = lower
        self.upper = upper

    def get(self, slot: str) -> Optional[GarmentAsset]:
        _check_slot(slot)
        return getattr(self, slot)

    def set(self, slot: str, asset: Optional[GarmentAsset]) -> None:
        _check_slot(slot)
        setattr(self, slot, asset)

    def clear(self, slot: str) -> None:
        self.set(slot, None)

    def as_dict(self) -> Dict[str, Optional[dict]]:
        out = {}
        for slot in SLOTS:
            asset = self.get(slot)
            out[slot] = None if asset is None else {"name": asset.name, "loaded": asset.is_loaded}
        return out


def _check_slot(slot: str) -> None:
    if slot not in SLOTS:
        raise UnknownGarmentError(f"Unknown garment slot: {slot!r} (expected one of {SLOTS})")


class GarmentCatalog:
    """Named garment images per slot. Assets are created once and reused."""

    def __init__(self, entries: Optional[Dict[str, Dict[str, str]]] = None):
        self._entries = {slot: dict((entries or {}).get(slot, {})) for slot in SLOTS}
        self._assets: Dict[str, Dict[str, GarmentAsset]] = {slot: {} for slot in SLOTS}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: GarmentCatalogConfig) -> "GarmentCatalog":
        return cls({UPPER: config.upper, LOWER: config.lower})

    def names(self, slot: str) -> List[str]:
        _check_slot(slot)
        return sorted(self._entries[slot])

    def asset(self, slot: str, name: str) -> GarmentAsset:
        _check_slot(slot)
        if name not in self._entries[slot]:
            raise UnknownGarmentError(f"No {slot} garment named {name!r}")
        with self._lock:
            asset = self._assets[slot].get(name)
            if asset is None:
                asset = GarmentAsset.pending(name, source=self._entries[slot][name])
                self._assets[slot][name] = asset
        return asset

    def as_dict(self) -> Dict[str, List[str]]:
        return {slot: self.names(slot) for slot in SLOTS}


# ═══════════════════════════════════════════════════════════════════════
# ALIGNER
# ═══════════════════════════════════════════════════════════════════════


class GarmentAligner:
    """Fits garment images onto the body region of one pose."""

    def __init__(self, threshold: float = 0.3):
        self.threshold = threshold

    def place_lower(
        self,
        pose: Pose,
        asset: Optional[GarmentAsset],
        transform: SurfaceTransform,
    ) -> Optional[GarmentPlacement]:
        if asset is None or not asset.is_loaded:
            return None
        return lower_garment_geometry(pose, self.threshold, transform, asset.aspect)

    def place_upper(
        self,
        pose: Pose,
        asset: Optional[GarmentAsset],
        transform: SurfaceTransform,
    ) -> Optional[GarmentPlacement]:
        if asset is None or not asset.is_loaded:
            return None
        return upper_garment_geometry(pose, self.threshold, transform, asset.aspect)

    def draw_lower(self, surface: Surface, pose: Pose, asset: Optional[GarmentAsset], transform: SurfaceTransform) -> bool:
        placement = self.place_lower(pose, asset, transform)
        if placement is None:
            return False
        surface.draw_image(asset.image, dest=placement.rect.as_tuple())
        return True

    def draw_upper(self, surface: Surface, pose: Pose, asset: Optional[GarmentAsset], transform: SurfaceTransform) -> bool:
        placement = self.place_upper(pose, asset, transform)
        if placement is None:
            return False
        surface.draw_image(asset.image, dest=placement.rect.as_tuple())
        return True
