# Module: server
# License: MIT (TRIALROOM project)
# Description: FastAPI preview server — live MJPEG stream, health, and garment selection.
# Platform: Local / LAN
# Dependencies: fastapi, uvicorn

"""
TRIALROOM Preview Server
========================
Runs one Compositor for the lifetime of the app.

REST endpoints:
    GET    /health            — loop stats and selected garments
    GET    /frame             — latest composited frame (JPEG)
    GET    /stream            — composited frames as MJPEG
    GET    /garments          — garment catalog per slot
    PUT    /garments/{slot}   — select a catalog garment {"name": ...}
    DELETE /garments/{slot}   — take a garment off
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel

from trialroom import __version__
from trialroom.compositor import Compositor
from trialroom.errors import UnknownGarmentError

logger = logging.getLogger("trialroom.server")

CompositorFactory = Callable[[], Compositor]

MJPEG_BOUNDARY = b"frame"


class GarmentChoice(BaseModel):
    name: str


def _default_factory() -> Compositor:
    from trialroom.config import get_config
    return Compositor(get_config())


async def mjpeg_frames(compositor: Compositor, fps: float, quality: int) -> AsyncIterator[bytes]:
    """
    Yield multipart MJPEG chunks of the composited surface, at most `fps`
    per second and only when the render loop produced a new frame.
    """
    min_interval = 1.0 / fps
    last_frame = -1
    while compositor.started:
        frames = compositor.render_loop.frames
        if frames == last_frame:
            await asyncio.sleep(0.01)
            continue
        sent_at = time.monotonic()
        last_frame = frames
        jpeg = compositor.latest_jpeg(quality)
        yield b"--" + MJPEG_BOUNDARY + b"\r\n"
        yield b"Content-Type: image/jpeg\r\n"
        yield b"Content-Length: " + str(len(jpeg)).encode("ascii") + b"\r\n\r\n"
        yield jpeg + b"\r\n"
        await asyncio.sleep(max(0.0, min_interval - (time.monotonic() - sent_at)))


def create_app(compositor_factory: Optional[CompositorFactory] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        compositor_factory: Builds the Compositor at startup. Defaults to one
            configured from configs/trialroom.yaml.
    """
    factory = compositor_factory or _default_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("TRIALROOM preview server starting...")
        compositor = factory()
        # Camera/model failures propagate and abort startup
        await compositor.start()
        app.state.compositor = compositor
        yield
        logger.info("TRIALROOM preview server shutting down...")
        await compositor.stop()
        compositor.close()

    app = FastAPI(
        title="TRIALROOM API",
        description="Live landmark-driven garment overlay preview",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def compositor_of(request: Request) -> Compositor:
        return request.app.state.compositor

    @app.get("/health")
    async def health(request: Request):
        compositor = compositor_of(request)
        return {
            "status": "ok" if compositor.started else "stopped",
            "version": __version__,
            **compositor.stats(),
        }

    @app.get("/frame")
    async def frame(request: Request):
        compositor = compositor_of(request)
        if compositor.render_loop.frames == 0:
            raise HTTPException(503, "No frame rendered yet")
        jpeg = compositor.latest_jpeg(compositor.config.server.jpeg_quality)
        return Response(content=jpeg, media_type="image/jpeg")

    @app.get("/stream")
    async def stream(request: Request):
        compositor = compositor_of(request)
        server_cfg = compositor.config.server
        return StreamingResponse(
            mjpeg_frames(compositor, server_cfg.stream_fps, server_cfg.jpeg_quality),
            media_type=f"multipart/x-mixed-replace; boundary={MJPEG_BOUNDARY.decode()}",
        )

    @app.get("/garments")
    async def garments(request: Request):
        compositor = compositor_of(request)
        return {
            "catalog": compositor.catalog.as_dict(),
            "selected": compositor.selection.as_dict(),
        }

    @app.put("/garments/{slot}")
    async def select_garment(slot: str, choice: GarmentChoice, request: Request):
        compositor = compositor_of(request)
        try:
            asset = compositor.select_garment(slot, choice.name)
        except UnknownGarmentError as e:
            raise HTTPException(404, str(e))
        logger.info("Selected %s garment: %s", slot, choice.name)
        return {"slot": slot, "name": asset.name, "loaded": asset.is_loaded}

    @app.delete("/garments/{slot}", status_code=204)
    async def clear_garment(slot: str, request: Request):
        compositor = compositor_of(request)
        try:
            compositor.clear_garment(slot)
        except UnknownGarmentError as e:
            raise HTTPException(404, str(e))
        return Response(status_code=204)

    return app


app = create_app()


def main(config_path: Optional[str] = None, host: Optional[str] = None, port: Optional[int] = None):
    """
    Start the TRIALROOM preview server.

    Args:
        config_path: YAML config. Defaults to $TRIALROOM_CONFIG or configs/trialroom.yaml.
        host: Bind host; overrides $TRIALROOM_HOST and server.host.
        port: Bind port; overrides $TRIALROOM_PORT and server.port.
    """
    from trialroom.config import get_config, setup_logging
    setup_logging(
        os.environ.get("TRIALROOM_LOG_LEVEL", "INFO"),
        json_format=os.environ.get("TRIALROOM_LOG_JSON", "0") == "1",
    )

    config = get_config(config_path)
    host = host or os.environ.get("TRIALROOM_HOST") or config.server.host
    port = int(port or os.environ.get("TRIALROOM_PORT") or config.server.port)

    logger.info("Starting TRIALROOM preview server on %s:%d", host, port)

    uvicorn.run(
        create_app(lambda: Compositor(config)),
        host=host,
        port=port,
        workers=1,  # one camera, one compositor
        log_level="info",
    )


if __name__ == "__main__":
    main()
