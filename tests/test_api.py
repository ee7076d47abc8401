# Module: test_api
# License: MIT (TRIALROOM project)
# Description: FastAPI preview server integration tests.
# Dependencies: pytest, httpx, fastapi, Pillow

"""
tests/test_api.py
Assert:
  - GET /health reports loop stats
  - GET /frame returns a JPEG once a frame is rendered
  - GET /garments lists the catalog and current selection
  - PUT /garments/{slot} selects, 404 for unknown names
  - DELETE /garments/{slot} returns HTTP 204
  - MJPEG stream chunks carry the multipart boundary and JPEG data
  - Camera failure aborts startup
"""

import asyncio
import io
import sys
import time
from pathlib import Path

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient

from helpers import FakeCapture, FakeEstimator, estimator_factory, gradient_frame, make_pose
from trialroom.compositor import Compositor
from trialroom.config import CompositorConfig
from trialroom.errors import CaptureError
from trialroom.server import MJPEG_BOUNDARY, create_app, mjpeg_frames


@pytest.fixture
def garment_dir(tmp_path):
    Image.new("RGBA", (150, 180), (200, 30, 30, 255)).save(tmp_path / "shirt.png", "PNG")
    Image.new("RGBA", (118, 169), (30, 30, 200, 255)).save(tmp_path / "jeans.png", "PNG")
    return tmp_path


def _make_config(garment_dir) -> CompositorConfig:
    return CompositorConfig.from_dict({
        "render": {"fps": 100},
        "estimation": {"interval_ms": 10},
        "garments": {
            "upper": {"shirt": "shirt.png"},
            "lower": {"jeans": "jeans.png"},
        },
    }, base_dir=garment_dir)


def _factory(config, capture=None):
    def build():
        return Compositor(
            config,
            capture=capture or FakeCapture(gradient_frame()),
            estimator_factory=estimator_factory(FakeEstimator([[make_pose()]])),
        )
    return build


@pytest.fixture
def client(garment_dir):
    """Create a test client with a running fake compositor."""
    app = create_app(_factory(_make_config(garment_dir)))
    with TestClient(app) as c:
        yield c


def _wait_for_frame(client, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if client.get("/health").json()["render"]["frames"] > 0:
            return
        time.sleep(0.02)
    raise TimeoutError("render loop produced no frame")


class TestHealth:
    def test_reports_stats(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "ok"
        assert data["estimator"] == "fake"
        assert "frames" in data["render"]
        assert data["garments"] == {"lower": None, "upper": None}


class TestFrame:
    def test_returns_jpeg(self, client):
        _wait_for_frame(client)
        r = client.get("/frame")
        assert r.status_code == 200
        assert r.headers["content-type"] == "image/jpeg"
        img = Image.open(io.BytesIO(r.content))
        assert img.size == (640, 480), f"Unexpected frame size: {img.size}"


class TestGarments:
    def test_catalog(self, client):
        r = client.get("/garments")
        assert r.status_code == 200
        assert r.json()["catalog"] == {"lower": ["jeans"], "upper": ["shirt"]}

    def test_select(self, client):
        r = client.put("/garments/upper", json={"name": "shirt"})
        assert r.status_code == 200
        assert r.json()["name"] == "shirt"

        selected = client.get("/garments").json()["selected"]
        assert selected["upper"]["name"] == "shirt"

    def test_unknown_name_404(self, client):
        r = client.put("/garments/upper", json={"name": "tuxedo"})
        assert r.status_code == 404

    def test_unknown_slot_404(self, client):
        r = client.put("/garments/hat", json={"name": "shirt"})
        assert r.status_code == 404

    def test_missing_name_422(self, client):
        r = client.put("/garments/upper", json={})
        assert r.status_code == 422

    def test_delete_returns_204(self, client):
        client.put("/garments/lower", json={"name": "jeans"})
        r = client.delete("/garments/lower")
        assert r.status_code == 204
        assert client.get("/garments").json()["selected"]["lower"] is None


class TestStream:
    def test_mjpeg_chunks(self, garment_dir):
        async def scenario():
            compositor = _factory(_make_config(garment_dir))()
            await compositor.start()
            try:
                while compositor.render_loop.frames == 0:
                    await asyncio.sleep(0.01)
                stream = mjpeg_frames(compositor, fps=30, quality=70)
                chunks = [await stream.__anext__() for _ in range(4)]
                await stream.aclose()
            finally:
                await compositor.stop()
                compositor.close()
            return chunks

        boundary, content_type, length, body = asyncio.run(scenario())
        assert boundary == b"--" + MJPEG_BOUNDARY + b"\r\n"
        assert content_type == b"Content-Type: image/jpeg\r\n"
        assert body[:2] == b"\xff\xd8"
        assert int(length.split(b":")[1]) == len(body) - 2


class TestStartup:
    def test_camera_failure_aborts(self, garment_dir):
        capture = FakeCapture(fail_open=CaptureError("no camera"))
        app = create_app(_factory(_make_config(garment_dir), capture=capture))
        with pytest.raises(CaptureError):
            with TestClient(app):
                pass
