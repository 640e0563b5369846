"""Session configuration loading for the calibration tool."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from configs.validator import validate_config
from exceptions import InvalidConfigError
from log_config.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default.yaml")

# Flat option name -> (section, key) in the YAML document
OVERRIDE_KEYS: Dict[str, Tuple[str, str]] = {
    "backend": ("camera", "backend"),
    "width": ("camera", "width"),
    "height": ("camera", "height"),
    "fps": ("camera", "fps"),
    "first_sensor": ("camera", "first_sensor"),
    "second_sensor": ("camera", "second_sensor"),
    "out": ("calibration", "out"),
    "match_mode": ("calibration", "match_mode"),
}


@dataclass(frozen=True)
class CameraConfig:
    width: int
    height: int
    fps: int
    backend: str = "gstreamer"
    first_sensor: int = 0
    second_sensor: int = 1
    read_timeout_ms: int = 200

    @property
    def image_size(self) -> Tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class CalibrationConfig:
    out: str
    match_mode: int = 0
    max_correspondences: int = 5000
    ratio_test: float = 0.75
    ransac_reproj_px: float = 3.0
    min_correspondences: int = 12


@dataclass(frozen=True)
class UiConfig:
    window_width: int = 1280
    window_height: int = 720
    key_poll_ms: int = 1
    show_quality_overlay: bool = True


@dataclass(frozen=True)
class SessionConfig:
    camera: CameraConfig
    calibration: CalibrationConfig
    ui: UiConfig


def apply_overrides(data: Dict[str, Any], overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Apply flat command line overrides onto a raw configuration document.

    Options whose value is None are treated as not given.

    Raises:
        InvalidConfigError: If an override name is unknown
    """
    if not overrides:
        return data

    for name, value in overrides.items():
        if value is None:
            continue
        if name not in OVERRIDE_KEYS:
            raise InvalidConfigError(f"Unknown configuration override: {name}")
        section, key = OVERRIDE_KEYS[name]
        section_data = data.setdefault(section, {})
        if not isinstance(section_data, dict):
            raise InvalidConfigError(f"Configuration section '{section}' must be a mapping")
        section_data[key] = value
        logger.debug(f"Override {section}.{key} = {value!r}")
    return data


def load_config(
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SessionConfig:
    """Load and validate session configuration from a YAML file.

    Args:
        path: Path to configuration file (packaged default.yaml if None)
        overrides: Flat option values from the command line, see OVERRIDE_KEYS

    Returns:
        Validated SessionConfig instance

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    try:
        logger.info(f"Loading configuration from {path}")
        if not path.exists():
            raise InvalidConfigError(f"Configuration file not found: {path}")

        data = yaml.safe_load(path.read_text())
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidConfigError(f"Configuration root must be a mapping: {path}")

        data = apply_overrides(data, overrides)

        # Validate against JSON Schema (also fills in defaults)
        validate_config(data)

    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML configuration: {e}")
        raise InvalidConfigError(f"Failed to parse configuration file: {e}")
    except OSError as e:
        logger.error(f"Failed to read configuration: {e}")
        raise InvalidConfigError(f"Failed to read configuration file: {e}")

    try:
        config = SessionConfig(
            camera=CameraConfig(**data["camera"]),
            calibration=CalibrationConfig(**data["calibration"]),
            ui=UiConfig(**data["ui"]),
        )
    except (KeyError, TypeError) as e:
        logger.error(f"Failed to construct configuration objects: {e}")
        raise InvalidConfigError(f"Failed to construct configuration: {e}")

    if config.camera.first_sensor == config.camera.second_sensor:
        raise InvalidConfigError(
            f"Both cameras use sensor {config.camera.first_sensor}; two distinct sensors are required"
        )

    logger.info(
        f"Configuration loaded successfully: {config.camera.backend} backend, "
        f"{config.camera.width}x{config.camera.height}@{config.camera.fps}fps, "
        f"output {config.calibration.out}"
    )
    return config


__all__ = [
    "CalibrationConfig",
    "CameraConfig",
    "DEFAULT_CONFIG_PATH",
    "SessionConfig",
    "UiConfig",
    "apply_overrides",
    "load_config",
]
