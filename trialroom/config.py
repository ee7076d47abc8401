# Module: config
# License: MIT (TRIALROOM project)
# Description: YAML configuration loading, validation and logging setup.
# Platform: Both
# Dependencies: yaml, os, pathlib

"""
Configuration
=============
Loads configs/trialroom.yaml (or $TRIALROOM_CONFIG), expands ${VAR}
placeholders from the environment, and builds a frozen CompositorConfig.
All other modules take their settings from here.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from trialroom.errors import ConfigError

logger = logging.getLogger("trialroom.config")

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


# ═══════════════════════════════════════════════════════════════════════
# CONFIG TREE
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OverlayConfig:
    confidence_threshold: float = 0.3
    show_skeleton: bool = True
    show_keypoints: bool = True
    show_face_highlight: bool = True
    show_garments: bool = True


@dataclass(frozen=True)
class EstimationConfig:
    backend: str = "mediapipe"
    interval_ms: float = 33.0
    model_complexity: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0


@dataclass(frozen=True)
class RenderConfig:
    fps: float = 60.0
    width: int = 640
    height: int = 480
    window_title: str = "TRIALROOM"


@dataclass(frozen=True)
class CaptureConfig:
    device: int = 0
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    stream_fps: float = 15.0
    jpeg_quality: int = 80


@dataclass(frozen=True)
class GarmentCatalogConfig:
    # name -> image path, per slot
    upper: Dict[str, str] = field(default_factory=dict)
    lower: Dict[str, str] = field(default_factory=dict)
    default_upper: Optional[str] = None
    default_lower: Optional[str] = None


@dataclass(frozen=True)
class CompositorConfig:
    overlay: OverlayConfig = field(default_factory=OverlayConfig)
    estimation: EstimationConfig = field(default_factory=EstimationConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    garments: GarmentCatalogConfig = field(default_factory=GarmentCatalogConfig)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]], base_dir: Optional[Path] = None) -> "CompositorConfig":
        """
        Build and validate a config tree from a parsed YAML mapping.

        Args:
            raw: Parsed configuration (missing sections use defaults).
            base_dir: Directory that relative garment paths resolve against.

        Returns:
            CompositorConfig

        Raises:
            ConfigError: on unknown keys or out-of-range values.
        """
        raw = raw or {}
        try:
            overlay = OverlayConfig(**raw.get("overlay", {}))
            estimation = EstimationConfig(**raw.get("estimation", {}))
            render = RenderConfig(**raw.get("render", {}))
            capture = CaptureConfig(**raw.get("capture", {}))
            server = ServerConfig(**raw.get("server", {}))
            garments = _catalog_from_dict(raw.get("garments", {}), base_dir)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        config = cls(
            overlay=overlay,
            estimation=estimation,
            render=render,
            capture=capture,
            server=server,
            garments=garments,
        )
        config.validate()
        return config

    def validate(self) -> None:
        if not 0.0 <= self.overlay.confidence_threshold <= 1.0:
            raise ConfigError(
                f"overlay.confidence_threshold must be within [0, 1], got {self.overlay.confidence_threshold}"
            )
        if self.estimation.interval_ms <= 0:
            raise ConfigError(f"estimation.interval_ms must be > 0, got {self.estimation.interval_ms}")
        if self.render.fps <= 0:
            raise ConfigError(f"render.fps must be > 0, got {self.render.fps}")
        if self.render.width <= 0 or self.render.height <= 0:
            raise ConfigError(
                f"render surface must be non-empty, got {self.render.width}x{self.render.height}"
            )
        if self.server.stream_fps <= 0:
            raise ConfigError(f"server.stream_fps must be > 0, got {self.server.stream_fps}")

        for slot, default in (("upper", self.garments.default_upper), ("lower", self.garments.default_lower)):
            if default is not None and default not in getattr(self.garments, slot):
                raise ConfigError(f"garments.default_{slot} '{default}' is not in the {slot} catalog")


def _catalog_from_dict(raw: Dict[str, Any], base_dir: Optional[Path]) -> GarmentCatalogConfig:
    def resolve(entries: Dict[str, str]) -> Dict[str, str]:
        out = {}
        for name, path in (entries or {}).items():
            p = Path(path)
            if base_dir is not None and not p.is_absolute():
                p = base_dir / p
            out[str(name)] = str(p)
        return out

    return GarmentCatalogConfig(
        upper=resolve(raw.get("upper", {})),
        lower=resolve(raw.get("lower", {})),
        default_upper=raw.get("default_upper"),
        default_lower=raw.get("default_lower"),
    )


# ═══════════════════════════════════════════════════════════════════════
# LOADING
# ═══════════════════════════════════════════════════════════════════════


def project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def get_default_config_path() -> Path:
    env_path = os.environ.get("TRIALROOM_CONFIG")
    if env_path:
        return Path(env_path)
    return project_root() / "configs" / "trialroom.yaml"


def expand_env(raw: str) -> str:
    """Replace ${VAR} with the environment value (empty string if unset)."""
    return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), raw)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the YAML config file with environment variable expansion.

    Args:
        config_path: Path to the YAML config file. If None, uses
            $TRIALROOM_CONFIG or configs/trialroom.yaml.

    Returns:
        dict: Parsed configuration.
    """
    path = Path(config_path) if config_path else get_default_config_path()
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = expand_env(f.read())

    try:
        config = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at top level")

    logger.debug("Loaded config from %s", path)
    return config


def get_config(config_path: Optional[str] = None) -> CompositorConfig:
    """
    Load and validate the compositor configuration.
    Relative garment paths resolve against the config file's directory.
    """
    path = Path(config_path) if config_path else get_default_config_path()
    raw = load_config(str(path))
    return CompositorConfig.from_dict(raw, base_dir=path.resolve().parent)


# ═══════════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════════


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        for attr in ("loop", "overlay", "latency_ms"):
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            log_entry["error"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure logging for the compositor.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_format: Emit one JSON object per record instead of plain text.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    logging.basicConfig(level=log_level, handlers=[handler], force=True)
    logging.getLogger("trialroom").setLevel(log_level)

