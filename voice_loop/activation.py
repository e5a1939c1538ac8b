"""
Playback activation gate.

Audio output may only begin after a direct user gesture (click or key combo).
The gate is a two-state machine, Locked <-> Unlocked, that starts locked every
session. Only attempt_unlock() - called from a gesture handler - can unlock
it, and a "not-allowed" playback error locks it again.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from logging_setup import get_logger, Component
from .errors import PlaybackError


logger = get_logger(Component.ACTIVATION)


class ActivationStatus(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class ActivationGate:
    def __init__(
        self,
        supported: bool = True,
        on_change: Optional[Callable[[ActivationStatus, Optional[str]], Any]] = None,
    ):
        self.supported = supported
        self.status = ActivationStatus.LOCKED
        self.last_error: Optional[str] = None
        self.on_change = on_change

    @property
    def unlocked(self) -> bool:
        return self.status is ActivationStatus.UNLOCKED

    def _set(self, status: ActivationStatus, reason: Optional[str] = None) -> None:
        if status is self.status:
            return
        self.status = status
        logger.info("Activation changed", status=status.value, reason=reason)
        if self.on_change is not None:
            self.on_change(status, reason)

    async def attempt_unlock(self, start_playback: Callable[[], Awaitable[Any]]) -> bool:
        """
        Unlock by starting a short confirmation utterance.

        `start_playback` must start audio and raise PlaybackError if it could
        not. Resolves True iff playback actually started.
        """
        if not self.supported:
            self.last_error = "unsupported"
            return False

        try:
            await start_playback()
        except PlaybackError as e:
            self.last_error = e.cause
            if e.not_allowed:
                self._set(ActivationStatus.LOCKED, reason=e.cause)
            logger.warning("Activation attempt failed", cause=e.cause)
            return False

        self.last_error = None
        self._set(ActivationStatus.UNLOCKED, reason="gesture")
        return True

    def grant(self) -> None:
        """Unlock from a gesture that arrived while other speech is pending."""
        self.last_error = None
        self._set(ActivationStatus.UNLOCKED, reason="gesture")

    def relock(self, cause: str) -> None:
        """Playback was refused by the platform; a new gesture is required."""
        self.last_error = cause
        self._set(ActivationStatus.LOCKED, reason=cause)
