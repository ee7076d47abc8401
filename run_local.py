#!/usr/bin/env python3
"""
TRIALROOM -- Local Launcher
===========================
One-command launcher for the compositor on your laptop.

Usage:
    python run_local.py                      # Preview window (q / Esc to quit)
    python run_local.py --mode server        # MJPEG preview server
    python run_local.py --mode server --port 9000
    python run_local.py --config my.yaml     # Custom config
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# -- Ensure project root is on sys.path --
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

logger = logging.getLogger("trialroom.launcher")

QUIT_KEYS = (ord("q"), 27)


def check_dependencies():
    """Quick check that critical packages are installed."""
    missing = []
    for pkg in ["cv2", "numpy", "PIL", "yaml", "fastapi", "uvicorn", "mediapipe"]:
        try:
            __import__(pkg)
        except ImportError:
            missing.append(pkg)

    if missing:
        print(f"  [WARN] Missing packages: {', '.join(missing)}")
        print(f"    Run: pip install -e '.[pose]'")
    else:
        print(f"  [OK] Core dependencies OK")
    return not missing


def make_window_presenter(title: str, stop_event: asyncio.Event):
    """Presenter that shows each composited frame in an OpenCV window."""
    import cv2

    def present(surface):
        cv2.imshow(title, surface.pixels())
        key = cv2.waitKey(1) & 0xFF
        if key in QUIT_KEYS:
            stop_event.set()

    return present


async def run_window(config):
    import cv2
    from trialroom.compositor import Compositor, run_forever

    stop_event = asyncio.Event()
    compositor = Compositor(
        config,
        presenter=make_window_presenter(config.render.window_title, stop_event),
    )
    try:
        await run_forever(compositor, stop_event)
    finally:
        compositor.close()
        cv2.destroyAllWindows()


def main():
    parser = argparse.ArgumentParser(description="TRIALROOM Local Launcher")
    parser.add_argument("--mode", choices=("window", "server"), default="window", help="Preview target")
    parser.add_argument("--config", default=None, help="YAML config path")
    parser.add_argument("--host", default=None, help="Bind host (server mode)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (server mode)")
    parser.add_argument("--log-level", default=os.environ.get("TRIALROOM_LOG_LEVEL", "INFO"))
    args = parser.parse_args()

    print()
    print("=" * 60)
    print("  TRIALROOM -- Local Launcher")
    print("=" * 60)
    print()

    if not check_dependencies():
        sys.exit(1)

    if args.mode == "server":
        from trialroom.server import main as serve
        serve(config_path=args.config, host=args.host, port=args.port)
        return

    from trialroom.config import get_config, setup_logging
    from trialroom.errors import TrialroomError

    setup_logging(args.log_level)
    try:
        config = get_config(args.config)
        print("  Press q or Esc in the preview window to stop.")
        print("=" * 60)
        print()
        asyncio.run(run_window(config))
    except TrialroomError as e:
        logger.error("Startup failed: %s", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
