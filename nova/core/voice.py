"""
Voice Session Coordinator.
Continuous speech recognition with echo-suppressing pause/resume around
assistant playback and automatic restart on transient engine errors.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from nova.core.exceptions import RecognitionException

logger = logging.getLogger(__name__)


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PAUSED = "paused"


class SpeechRecognizer(ABC):
    """
    Recognition engine the coordinator drives.

    Engines report through three hooks bound by the coordinator:
    on_result(text, is_final), on_error(code) and on_end(). Like browser
    engines, an engine stops itself after an error and reports on_end when
    it stops for any reason.
    """

    def __init__(self):
        self.on_result: Callable[[str, bool], None] = lambda text, is_final: None
        self.on_error: Callable[[str], None] = lambda code: None
        self.on_end: Callable[[], None] = lambda: None

    def bind(
        self,
        on_result: Callable[[str, bool], None],
        on_error: Callable[[str], None],
        on_end: Callable[[], None]
    ):
        self.on_result = on_result
        self.on_error = on_error
        self.on_end = on_end

    @abstractmethod
    def start(self):
        """Begin continuous recognition with interim results."""

    @abstractmethod
    def stop(self):
        """Stop recognition."""


def _call_later(delay: float, callback: Callable[[], None]):
    return asyncio.get_running_loop().call_later(delay, callback)


class VoiceSessionCoordinator:
    """
    Drives a SpeechRecognizer through IDLE, LISTENING and PAUSED.

    Restarts are scheduled through `scheduler(delay, callback)`, which must
    return a handle with `cancel()`. The callback re-checks the live flags
    when it fires, so ending or pausing during the delay is respected.
    """

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        on_transcript: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[RecognitionException], None]] = None,
        restart_delay: float = 0.1,
        scheduler: Optional[Callable] = None
    ):
        self.recognizer = recognizer
        self.on_transcript = on_transcript
        self.on_error = on_error
        self.restart_delay = restart_delay
        self._scheduler = scheduler or _call_later

        self.active = False
        self.paused = False
        self.transcript = ""
        self._pending_restart = None

        recognizer.bind(self._handle_result, self._handle_error, self._handle_end)

    @property
    def state(self) -> VoiceState:
        if not self.active:
            return VoiceState.IDLE
        return VoiceState.PAUSED if self.paused else VoiceState.LISTENING

    # =========================
    # Caller API
    # =========================

    def start(self):
        if self.active:
            return
        self.transcript = ""
        self.active = True
        self.paused = False
        logger.info("Voice session started")
        self._start_engine()

    def pause(self):
        """Suspend recognition while assistant audio plays."""
        if not self.active or self.paused:
            return
        self.paused = True
        self._cancel_restart()
        self._stop_engine()
        logger.debug("Voice session paused")

    def resume(self):
        """Resume after playback; restarts the engine only if still active."""
        if not self.paused:
            return
        self.paused = False
        if self.active:
            logger.debug("Voice session resumed")
            self._start_engine()

    def end(self):
        if not self.active and not self.paused:
            return
        self.active = False
        self.paused = False
        self._cancel_restart()
        self._stop_engine()
        logger.info("Voice session ended")

    # =========================
    # Engine hooks
    # =========================

    def _handle_result(self, text: str, is_final: bool):
        if not self.active or self.paused:
            # Stale or echo audio
            logger.debug(f"Dropping recognition result while {self.state.value}")
            return
        if not is_final or not text:
            return

        self.transcript = text
        if self.on_transcript:
            self.on_transcript(text)

    def _handle_error(self, code: str):
        error = RecognitionException(code)

        if not error.recoverable:
            logger.error(f"Fatal speech recognition error: {code}")
            was_active = self.active
            self.active = False
            self.paused = False
            self._cancel_restart()
            if was_active and self.on_error:
                self.on_error(error)
            return

        logger.warning(f"Speech recognition error: {code}")
        if self.active and not self.paused:
            self._schedule_restart()

    def _handle_end(self):
        if self.active and not self.paused:
            self._schedule_restart()

    # =========================
    # Internals
    # =========================

    def _schedule_restart(self):
        if self._pending_restart is not None:
            return
        self._pending_restart = self._scheduler(self.restart_delay, self._restart)

    def _cancel_restart(self):
        if self._pending_restart is not None:
            self._pending_restart.cancel()
            self._pending_restart = None

    def _restart(self):
        self._pending_restart = None
        if self.active and not self.paused:
            logger.debug("Restarting speech recognition")
            self._start_engine()

    def _start_engine(self):
        try:
            self.recognizer.start()
        except RecognitionException as e:
            logger.error(f"Could not start recognition: {e.message}")
            self._handle_error(e.code)

    def _stop_engine(self):
        try:
            self.recognizer.stop()
        except RecognitionException as e:
            logger.warning(f"Could not stop recognition: {e.message}")
