"""Tests for the bounded-wait and retry helpers used when opening cameras."""

from __future__ import annotations

import threading
import time
from unittest.mock import Mock

import pytest

from capture.timeout_utils import (
    RetryPolicy,
    exponential_backoff,
    retry_on_failure,
    run_with_timeout,
)
from exceptions import CameraConnectionError


class TestRunWithTimeout:
    def test_returns_result(self):
        assert run_with_timeout(lambda: "opened", timeout_seconds=1.0) == "opened"

    def test_passes_arguments_through(self):
        def open_sensor(sensor_id, width, height=None):
            return f"{sensor_id}:{width}x{height}"

        assert run_with_timeout(open_sensor, 1.0, "ignored", 1, 1920, height=1080) == "1:1920x1080"

    def test_hung_call_raises_connection_error_quickly(self):
        def hung_pipeline():
            time.sleep(2.0)

        start = time.monotonic()
        with pytest.raises(CameraConnectionError, match="Pipeline start timed out"):
            run_with_timeout(hung_pipeline, timeout_seconds=0.2, error_message="Pipeline start timed out")
        assert time.monotonic() - start < 1.5

    def test_exception_from_call_propagates(self):
        def broken():
            raise ValueError("bad sensor id")

        with pytest.raises(ValueError, match="bad sensor id"):
            run_with_timeout(broken, timeout_seconds=1.0)

    def test_late_result_handed_to_cleanup(self):
        released = []
        done = threading.Event()

        def slow_open():
            time.sleep(0.2)
            return "capture"

        def release(capture):
            released.append(capture)
            done.set()

        with pytest.raises(CameraConnectionError):
            run_with_timeout(slow_open, timeout_seconds=0.05, on_late_result=release)

        assert done.wait(timeout=2.0)
        assert released == ["capture"]

    def test_late_failure_skips_cleanup(self):
        release = Mock()
        finished = threading.Event()

        def slow_failure():
            try:
                time.sleep(0.2)
                raise RuntimeError("pipeline refused")
            finally:
                finished.set()

        with pytest.raises(CameraConnectionError):
            run_with_timeout(slow_failure, timeout_seconds=0.05, on_late_result=release)

        assert finished.wait(timeout=2.0)
        time.sleep(0.05)
        release.assert_not_called()

    def test_cleanup_not_used_when_call_is_on_time(self):
        release = Mock()

        assert run_with_timeout(lambda: "capture", timeout_seconds=1.0, on_late_result=release) == "capture"
        release.assert_not_called()


class TestBackoff:
    def test_doubles_each_attempt(self):
        assert [exponential_backoff(i, base_delay=0.5, max_delay=10.0) for i in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_capped_at_max_delay(self):
        assert exponential_backoff(10, base_delay=1.0, max_delay=5.0) == 5.0


class TestRetryPolicy:
    def test_retries_only_configured_exceptions(self):
        policy = RetryPolicy(retry_on=(CameraConnectionError,))
        assert policy.should_retry(0, CameraConnectionError("busy", "0"))
        assert not policy.should_retry(0, ValueError("bad"))

    def test_stops_at_max_attempts(self):
        policy = RetryPolicy(max_attempts=2)
        assert policy.should_retry(0, CameraConnectionError("busy", "0"))
        assert not policy.should_retry(1, CameraConnectionError("busy", "0"))


class TestRetryOnFailure:
    def test_succeeds_after_transient_failures(self):
        opener = Mock(side_effect=[CameraConnectionError("busy", "1"), "opened"])

        @retry_on_failure(RetryPolicy(max_attempts=3, base_delay=0.01))
        def open_camera():
            return opener()

        assert open_camera() == "opened"
        assert opener.call_count == 2

    def test_gives_up_after_max_attempts(self):
        opener = Mock(side_effect=CameraConnectionError("gone", "1"))

        @retry_on_failure(RetryPolicy(max_attempts=3, base_delay=0.01))
        def open_camera():
            return opener()

        with pytest.raises(CameraConnectionError, match="gone"):
            open_camera()
        assert opener.call_count == 3

    def test_does_not_retry_other_errors(self):
        opener = Mock(side_effect=ValueError("not an index"))

        @retry_on_failure(RetryPolicy(max_attempts=3, base_delay=0.01))
        def open_camera():
            return opener()

        with pytest.raises(ValueError):
            open_camera()
        assert opener.call_count == 1

    def test_preserves_function_metadata(self):
        @retry_on_failure()
        def open_camera():
            """Open the camera."""

        assert open_camera.__name__ == "open_camera"
        assert open_camera.__doc__ == "Open the camera."
