"""Stop flag and interrupt signal wiring for the calibration loop."""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple

from log_config.logger import get_logger

logger = get_logger(__name__)

INTERRUPT_SIGNALS: Tuple[signal.Signals, ...] = tuple(
    sig for sig in (getattr(signal, "SIGINT", None), getattr(signal, "SIGTERM", None)) if sig is not None
)


class StopFlag:
    """Process-wide stop request observed once per loop iteration.

    It has no clear(); once set it stays set for the rest of the run.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()


@contextmanager
def interrupt_handler(stop_flag: StopFlag) -> Iterator[StopFlag]:
    """Install SIGINT/SIGTERM handlers that only set stop_flag.

    Previous handlers are restored on exit. Must be entered from the main
    thread.
    """
    previous: Dict[signal.Signals, object] = {}

    def _handler(signum, frame) -> None:
        stop_flag.set()

    try:
        for sig in INTERRUPT_SIGNALS:
            previous[sig] = signal.signal(sig, _handler)
        logger.debug(f"Interrupt handler installed for {[s.name for s in previous]}")
        yield stop_flag
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
