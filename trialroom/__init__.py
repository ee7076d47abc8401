# Module: trialroom
# License: MIT (TRIALROOM project)
# Description: TRIALROOM package — live landmark-driven garment and skeleton overlay compositor.
# Platform: Both (local webcam + preview server)
# Dependencies: See pyproject.toml

"""
TRIALROOM Compositor Package
============================
Overlays garment images and a pose skeleton on a live camera feed:
  - Landmark model and snapshots (landmarks, snapshot)
  - Pose estimation on a fixed cadence (estimator, scheduler)
  - Pure placement math (geometry)
  - Drawing (surface, skeleton, garments)
  - Refresh-paced compositing (render_loop, compositor)
  - Preview server (server)
"""

__version__ = "0.1.0"
__license__ = "MIT"
