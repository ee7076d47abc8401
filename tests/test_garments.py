# Module: test_garments
# License: MIT (TRIALROOM project)
# Description: Garment asset, selection and catalog tests.
# Dependencies: pytest, numpy, Pillow

"""
tests/test_garments.py
Assert:
  - Garment assets report unloaded until their image has a size
  - PNG garments load as BGRA with alpha kept
  - Selection slots are "upper" and "lower" only
  - The catalog hands out one asset per name
"""

import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from helpers import garment_image
from trialroom.errors import UnknownGarmentError
from trialroom.garments import GarmentAsset, GarmentCatalog, GarmentSelection


class TestGarmentAsset:
    def test_pending_is_not_loaded(self):
        asset = GarmentAsset.pending("shirt", "/tmp/shirt.png")
        assert not asset.is_loaded
        assert asset.natural_width == 0

    def test_zero_size_image_is_not_loaded(self):
        asset = GarmentAsset.from_array("blank", np.zeros((0, 10, 4), dtype=np.uint8))
        assert not asset.is_loaded

    def test_aspect(self):
        asset = GarmentAsset.from_array("shirt", garment_image(100, 200))
        assert asset.is_loaded
        assert asset.aspect == pytest.approx(0.5)

    def test_from_file_converts_to_bgra(self, tmp_path):
        path = tmp_path / "shirt.png"
        Image.new("RGBA", (40, 30), (255, 0, 0, 128)).save(path, "PNG")
        asset = GarmentAsset.from_file(str(path))
        assert asset.name == "shirt"
        assert (asset.natural_width, asset.natural_height) == (40, 30)
        assert tuple(asset.image[0, 0]) == (0, 0, 255, 128)

    def test_load_without_source(self):
        with pytest.raises(ValueError):
            GarmentAsset.pending("ghost").load()


class TestSelection:
    def test_set_and_clear(self):
        selection = GarmentSelection()
        asset = GarmentAsset.from_array("jeans", garment_image())
        selection.set("lower", asset)
        assert selection.get("lower") is asset
        selection.clear("lower")
        assert selection.lower is None

    def test_unknown_slot(self):
        with pytest.raises(UnknownGarmentError):
            GarmentSelection().set("hat", None)

    def test_catalog_reuses_assets(self):
        catalog = GarmentCatalog({"upper": {"shirt": "/tmp/shirt.png"}})
        assert catalog.asset("upper", "shirt") is catalog.asset("upper", "shirt")
        assert catalog.as_dict() == {"lower": [], "upper": ["shirt"]}

    def test_catalog_unknown_name_is_keyerror(self):
        catalog = GarmentCatalog({})
        with pytest.raises(KeyError):
            catalog.asset("lower", "jeans")
