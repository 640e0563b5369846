"""Tests for the command line entry point and scoped session startup."""

from __future__ import annotations

from unittest.mock import Mock, patch

import cv2
import pytest

import camerascalib
from camerascalib import ExitCode, main, run_session
from app import StopFlag
from capture import CameraDevice, SimulatedCamera
from configs.settings import DEFAULT_CONFIG_PATH, load_config
from exceptions import CameraConnectionError, EngineConstructionError
from ui.render import PresentationSink


@pytest.fixture(autouse=True)
def _keep_log_handlers():
    with patch("camerascalib.configure_logging"):
        yield


def _config(tmp_path, backend="sim"):
    return load_config(
        DEFAULT_CONFIG_PATH,
        overrides={
            "backend": backend,
            "width": 320,
            "height": 240,
            "fps": 240,
            "out": str(tmp_path / "cameras.xml"),
        },
    )


def _quitting_sink():
    sink = Mock(spec=PresentationSink)
    sink.poll_key.return_value = "q"
    return sink


def _failing_camera(message="sensor busy"):
    camera = Mock(spec=CameraDevice)
    camera.open.side_effect = CameraConnectionError(message, camera_id="1")
    return camera


class TestArguments:
    def test_help_exits_cleanly_with_key_legend(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--help"])

        assert excinfo.value.code == 0
        out = capsys.readouterr().out
        assert "--match-mode" in out
        assert "runtime commands" in out

    def test_invalid_width_is_a_config_error(self):
        assert main(["--width", "0", "--backend", "sim"]) == ExitCode.INVALID_CONFIG

    def test_missing_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.yaml")]) == ExitCode.INVALID_CONFIG

    def test_match_mode_accepts_names(self):
        args = camerascalib.parse_args(["--match-mode", "akaze", "--log-level", "debug"])

        assert args.match_mode == 1
        assert args.log_level == "DEBUG"

    def test_unknown_match_mode_rejected(self):
        with pytest.raises(SystemExit) as excinfo:
            camerascalib.parse_args(["--match-mode", "surf"])
        assert excinfo.value.code == 2

    def test_options_reach_the_session_config(self, tmp_path):
        with patch("camerascalib.run_session", return_value=ExitCode.OK) as run:
            code = main(
                [
                    "--backend", "sim",
                    "--width", "1280",
                    "--height", "720",
                    "--fps", "60",
                    "--out", str(tmp_path / "cameras-720p.xml"),
                ]
            )

        assert code == 0
        config = run.call_args.args[0]
        assert config.camera.image_size == (1280, 720)
        assert config.camera.fps == 60
        assert config.calibration.out == str(tmp_path / "cameras-720p.xml")


class TestRunSession:
    def test_quit_key_releases_everything(self, tmp_path):
        first, second = SimulatedCamera(), SimulatedCamera()
        sink = _quitting_sink()
        sink_factory = Mock(return_value=sink)

        with patch("capture.frame_source.create_camera", side_effect=[first, second]):
            code = run_session(_config(tmp_path), sink_factory=sink_factory)

        assert code == ExitCode.OK
        sink_factory.assert_called_once_with(window_width=1280, window_height=720, show_quality_overlay=True)
        sink.show.assert_called_once()
        sink.close.assert_called_once()
        assert not first.is_open
        assert not second.is_open

    def test_preset_stop_flag_runs_no_iterations(self, tmp_path):
        stop_flag = StopFlag()
        stop_flag.set()
        sink = _quitting_sink()

        code = run_session(_config(tmp_path), stop_flag=stop_flag, sink_factory=Mock(return_value=sink))

        assert code == ExitCode.OK
        sink.show.assert_not_called()
        sink.close.assert_called_once()

    def test_first_camera_failure(self, tmp_path, capsys):
        first = _failing_camera()
        sink_factory = Mock()

        with patch("capture.frame_source.create_camera", return_value=first):
            code = run_session(_config(tmp_path, backend="gstreamer"), sink_factory=sink_factory)

        assert code == ExitCode.FIRST_CAMERA_FAILED
        first.close.assert_called_once()
        sink_factory.assert_not_called()
        err = capsys.readouterr().err
        assert "nvarguscamerasrc sensor-id=0" in err
        assert "Failed to open capture for first camera!" in err

    def test_second_camera_failure_closes_first(self, tmp_path, capsys):
        first = SimulatedCamera()
        second = _failing_camera()

        with patch("capture.frame_source.create_camera", side_effect=[first, second]):
            code = run_session(_config(tmp_path), sink_factory=Mock())

        assert code == ExitCode.SECOND_CAMERA_FAILED
        assert not first.is_open
        second.close.assert_called_once()
        assert "Failed to open capture for second camera!" in capsys.readouterr().err

    def test_engine_failure_closes_both_cameras(self, tmp_path):
        first, second = SimulatedCamera(), SimulatedCamera()
        sink_factory = Mock()
        engine_factory = Mock(side_effect=EngineConstructionError("SIFT not available"))

        with patch("capture.frame_source.create_camera", side_effect=[first, second]):
            code = run_session(_config(tmp_path), engine_factory=engine_factory, sink_factory=sink_factory)

        assert code == ExitCode.ENGINE_FAILED
        assert not first.is_open
        assert not second.is_open
        sink_factory.assert_not_called()

    def test_display_failure_closes_both_cameras(self, tmp_path):
        first, second = SimulatedCamera(), SimulatedCamera()
        sink_factory = Mock(side_effect=cv2.error("cannot connect to display"))

        with patch("capture.frame_source.create_camera", side_effect=[first, second]):
            code = run_session(_config(tmp_path), sink_factory=sink_factory)

        assert code == ExitCode.DISPLAY_FAILED
        assert not first.is_open
        assert not second.is_open
