"""Interactive capture / evaluate / display / command loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

from app.lifecycle import StopFlag
from calib.engine import CalibrationEngine
from capture.frame_source import StereoFrameSource
from contracts import QualitySnapshot
from log_config.logger import get_logger
from ui.render import PresentationSink

logger = get_logger(__name__)


class Command(Enum):
    ESTIMATE = "estimate"
    SAVE = "save"
    RESET = "reset"
    QUIT = "quit"


KEY_COMMANDS: Dict[str, Command] = {
    "c": Command.ESTIMATE,
    "s": Command.SAVE,
    "r": Command.RESET,
    "q": Command.QUIT,
}


@dataclass
class SessionStats:
    iterations: int = 0
    dropped_pairs: int = 0
    failed_iterations: int = 0
    failed_commands: int = 0
    commands: Dict[Command, int] = field(default_factory=dict)
    last_quality: Optional[QualitySnapshot] = None


class CalibrationController:
    """Runs the calibration session until the stop flag is set.

    Every iteration pulls one frame pair, feeds it to the engine, shows the
    match overlay and the stitched preview, then polls one key and maps it
    to an engine command. The controller keeps no calibration phase of its
    own; the engine decides whether a command has enough data to act on.
    Failures inside an iteration are logged and the loop carries on.
    """

    # Consecutive dropped pairs between repeated warnings
    DROP_LOG_INTERVAL = 30

    def __init__(
        self,
        engine: CalibrationEngine,
        source: StereoFrameSource,
        sink: PresentationSink,
        stop_flag: StopFlag,
        read_timeout_ms: int = 200,
        key_poll_ms: int = 1,
    ) -> None:
        self._engine = engine
        self._source = source
        self._sink = sink
        self._stop = stop_flag
        self._read_timeout_ms = read_timeout_ms
        self._key_poll_ms = key_poll_ms
        self._consecutive_drops = 0
        self._stats = SessionStats()
        self._handlers: Dict[Command, Callable[[], object]] = {
            Command.ESTIMATE: engine.estimate,
            Command.SAVE: engine.save,
            Command.RESET: engine.reset,
            Command.QUIT: stop_flag.set,
        }

    @property
    def stats(self) -> SessionStats:
        return self._stats

    def run(self) -> SessionStats:
        logger.info("Capturing. Keys: c = calibrate, s = save, r = reset, q = quit")
        while not self._stop.is_set():
            self._stats.iterations += 1
            self.step()

        logger.info(
            f"Session stopped after {self._stats.iterations} iterations "
            f"({self._stats.dropped_pairs} dropped pairs, {self._stats.failed_iterations} failed)"
        )
        return self._stats

    def step(self) -> None:
        """Run one iteration of the loop."""
        pair = self._source.read_pair(self._read_timeout_ms)
        if pair is None:
            self._on_dropped_pair()
            return
        if self._consecutive_drops:
            logger.info(f"Frames resumed after {self._consecutive_drops} dropped pairs")
            self._consecutive_drops = 0

        try:
            self._engine.feed(pair)
            matches_image = self._engine.matches(pair)
            quality, stitched_image = self._engine.evaluate(pair)
            self._sink.show(matches_image, stitched_image, quality)
            key = self._sink.poll_key(self._key_poll_ms)
        except Exception as e:
            self._stats.failed_iterations += 1
            logger.warning(f"Iteration {self._stats.iterations} skipped: {e}")
            return

        self._stats.last_quality = quality
        self.dispatch(key)

    def dispatch(self, key: Optional[str]) -> Optional[Command]:
        """Apply the command bound to key; unknown keys are ignored."""
        command = KEY_COMMANDS.get(key) if key else None
        if command is None:
            return None

        self._stats.commands[command] = self._stats.commands.get(command, 0) + 1
        logger.info(f"Command: {command.value}")
        try:
            result = self._handlers[command]()
        except Exception as e:
            self._stats.failed_commands += 1
            logger.error(f"Command {command.value} failed: {e}")
            return command

        if result is False:
            logger.info(f"Command {command.value} had nothing to act on")
        return command

    def _on_dropped_pair(self) -> None:
        self._stats.dropped_pairs += 1
        self._consecutive_drops += 1
        if self._consecutive_drops == 1 or self._consecutive_drops % self.DROP_LOG_INTERVAL == 0:
            logger.warning(f"No frame pair available ({self._consecutive_drops} consecutive drops)")
