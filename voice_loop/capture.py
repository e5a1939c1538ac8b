"""
Speech capture session.

Wraps a continuous speech-to-text engine. start/stop are idempotent and may
be called rapidly; results that arrive while the session is stopped are
dropped so no increment leaks into the next listening episode.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from logging_setup import get_logger, Component
from .errors import CaptureError, CaptureErrorCode


logger = get_logger(Component.CAPTURE)


class SpeechRecognizer(Protocol):
    supported: bool

    def start(self) -> None:
        """Begin delivering results; raise CaptureError if the device is unavailable."""
        ...

    def stop(self) -> None:
        ...


class SpeechCaptureSession:
    def __init__(
        self,
        recognizer: SpeechRecognizer,
        *,
        on_increment: Optional[Callable[[str, bool], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
    ):
        self._recognizer = recognizer
        self.on_increment = on_increment
        self.on_error = on_error
        self.active: bool = False

    @property
    def supported(self) -> bool:
        return bool(getattr(self._recognizer, "supported", True))

    def start_listening(self) -> None:
        if self.active:
            return
        try:
            self._recognizer.start()
        except CaptureError as e:
            self._report(e.code)
            return
        except Exception as e:
            logger.warning("Capture start failed", error=str(e), error_type=type(e).__name__)
            self._report(CaptureErrorCode.AUDIO_CAPTURE)
            return
        self.active = True
        logger.debug("Capture started")

    def stop_listening(self) -> None:
        if not self.active:
            return
        self.active = False
        try:
            self._recognizer.stop()
        except Exception as e:
            # Best-effort: the engine may already be stopped.
            logger.warning("Capture stop failed", error=str(e), error_type=type(e).__name__)
        logger.debug("Capture stopped")

    def handle_result(self, text: str, is_final: bool) -> None:
        """Entry point for the engine's transcript callbacks."""
        if not self.active or not text:
            return
        if self.on_increment is not None:
            self.on_increment(text, is_final)

    def handle_error(self, code: str) -> None:
        """Entry point for the engine's error callbacks."""
        if not self.active:
            return
        self.active = False
        self._report(code)

    def _report(self, code: str) -> None:
        logger.warning("Capture error", code=code)
        if self.on_error is not None:
            self.on_error(code)
