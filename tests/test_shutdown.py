"""Tests for the stop flag and interrupt signal wiring."""

from __future__ import annotations

import signal
import threading

import pytest

from app.lifecycle import StopFlag, interrupt_handler


def test_stop_flag_starts_clear_and_stays_set():
    flag = StopFlag()
    assert not flag.is_set()

    flag.set()
    flag.set()

    assert flag.is_set()
    assert not hasattr(flag, "clear")


def test_stop_flag_set_from_another_thread():
    flag = StopFlag()
    worker = threading.Thread(target=flag.set)
    worker.start()
    worker.join(timeout=1.0)

    assert flag.is_set()


@pytest.mark.skipif(not hasattr(signal, "raise_signal"), reason="signal.raise_signal unavailable")
def test_sigint_sets_flag_instead_of_raising():
    flag = StopFlag()

    with interrupt_handler(flag):
        signal.raise_signal(signal.SIGINT)

    assert flag.is_set()


@pytest.mark.skipif(not hasattr(signal, "SIGTERM"), reason="SIGTERM unavailable")
def test_previous_handlers_restored():
    before_int = signal.getsignal(signal.SIGINT)
    before_term = signal.getsignal(signal.SIGTERM)

    with interrupt_handler(StopFlag()):
        assert signal.getsignal(signal.SIGINT) is not before_int

    assert signal.getsignal(signal.SIGINT) is before_int
    assert signal.getsignal(signal.SIGTERM) is before_term


def test_handlers_restored_when_block_raises():
    before = signal.getsignal(signal.SIGINT)

    with pytest.raises(ValueError):
        with interrupt_handler(StopFlag()):
            raise ValueError("loop failed")

    assert signal.getsignal(signal.SIGINT) is before
