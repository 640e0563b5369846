from pathlib import Path

import pytest

from configs.settings import DEFAULT_CONFIG_PATH, load_config
from configs.validator import validate_config
from exceptions import ConfigValidationError, InvalidConfigError


def test_load_default_config() -> None:
    config = load_config(DEFAULT_CONFIG_PATH)

    assert config.camera.width == 1920
    assert config.camera.height == 1080
    assert config.camera.fps == 30
    assert config.camera.image_size == (1920, 1080)
    assert config.calibration.out == "cameras.xml"
    assert config.calibration.match_mode == 0
    assert config.ui.window_width == 1280
    assert config.ui.window_height == 720


def test_overrides_replace_file_values() -> None:
    config = load_config(
        DEFAULT_CONFIG_PATH,
        overrides={"width": 1280, "height": 720, "fps": 60, "out": "/tmp/cameras-720p.xml", "backend": "sim"},
    )

    assert config.camera.image_size == (1280, 720)
    assert config.camera.fps == 60
    assert config.camera.backend == "sim"
    assert config.calibration.out == "/tmp/cameras-720p.xml"


def test_none_overrides_are_ignored() -> None:
    config = load_config(DEFAULT_CONFIG_PATH, overrides={"width": None, "out": None})

    assert config.camera.width == 1920
    assert config.calibration.out == "cameras.xml"


def test_defaults_filled_for_minimal_file(tmp_path: Path) -> None:
    path = tmp_path / "minimal.yaml"
    path.write_text("camera: {width: 640, height: 480, fps: 15}\ncalibration: {out: rig.xml}\n")

    config = load_config(path)

    assert config.camera.backend == "gstreamer"
    assert config.camera.first_sensor == 0
    assert config.camera.second_sensor == 1
    assert config.calibration.max_correspondences == 5000
    assert config.ui.key_poll_ms == 1


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml")


def test_out_of_range_width_fails_validation() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(DEFAULT_CONFIG_PATH, overrides={"width": 0})

    assert any("width" in message for message in excinfo.value.validation_errors)


def test_unknown_match_mode_fails_validation() -> None:
    with pytest.raises(ConfigValidationError):
        load_config(DEFAULT_CONFIG_PATH, overrides={"match_mode": 9})


def test_same_sensor_twice_is_rejected() -> None:
    with pytest.raises(InvalidConfigError, match="distinct sensors"):
        load_config(DEFAULT_CONFIG_PATH, overrides={"first_sensor": 1, "second_sensor": 1})


def test_unknown_override_is_rejected() -> None:
    with pytest.raises(InvalidConfigError, match="Unknown configuration override"):
        load_config(DEFAULT_CONFIG_PATH, overrides={"exposure": 100})


def test_unknown_key_in_section_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "typo.yaml"
    path.write_text("camera: {width: 640, height: 480, fps: 15, widht: 1}\ncalibration: {out: rig.xml}\n")

    with pytest.raises(InvalidConfigError):
        load_config(path)


def test_validator_collects_every_error() -> None:
    data = {"camera": {"width": 10, "height": 10, "fps": 0}, "calibration": {"out": ""}}

    with pytest.raises(ConfigValidationError) as excinfo:
        validate_config(data)

    assert len(excinfo.value.validation_errors) == 4


def test_validator_does_not_share_default_sections() -> None:
    first = {"camera": {"width": 640, "height": 480, "fps": 30}, "calibration": {"out": "a.xml"}}
    second = {"camera": {"width": 640, "height": 480, "fps": 30}, "calibration": {"out": "b.xml"}}

    validate_config(first)
    first["ui"]["window_width"] = 999
    validate_config(second)

    assert second["ui"]["window_width"] == 1280
