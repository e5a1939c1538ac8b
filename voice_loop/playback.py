"""
Speech playback session.

Wraps a text-to-speech engine: one utterance at a time, start/end/error
reporting and cancellation. Calls while the activation gate is locked fail
fast with PlaybackLockedError before the engine is touched.

Every started utterance gets a generation number; callbacks from an utterance
that has since been cancelled or replaced are dropped.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Protocol

from logging_setup import get_logger, Component
from .activation import ActivationGate
from .errors import PlaybackError, PlaybackErrorCause, PlaybackLockedError


logger = get_logger(Component.PLAYBACK)


class PlaybackHandle(Protocol):
    async def wait(self) -> None:
        """Return when playback finished; raise PlaybackError if it failed."""
        ...

    def cancel(self) -> None:
        ...


class SpeechSynthesizer(Protocol):
    supported: bool

    async def play(self, text: str) -> PlaybackHandle:
        """Start speaking `text`; raise PlaybackError if audio could not start."""
        ...


class SpeechPlaybackSession:
    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        gate: Optional[ActivationGate] = None,
        *,
        on_started: Optional[Callable[[str], Any]] = None,
        on_ended: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
    ):
        self._synth = synthesizer
        self.gate = gate or ActivationGate(supported=getattr(synthesizer, "supported", True))
        self.on_started = on_started
        self.on_ended = on_ended
        self.on_error = on_error

        self.active: bool = False
        self.current_text: Optional[str] = None
        self._generation = 0
        self._handle: Optional[PlaybackHandle] = None
        self._watch_task: Optional[asyncio.Task] = None

    @property
    def supported(self) -> bool:
        return bool(getattr(self._synth, "supported", True))

    @property
    def watch_task(self) -> Optional[asyncio.Task]:
        """Task waiting for the current utterance to finish, if any."""
        return self._watch_task

    async def speak(self, text: str) -> None:
        """Start speaking. Raises PlaybackLockedError / PlaybackError if it cannot start."""
        if not self.gate.unlocked:
            raise PlaybackLockedError()
        await self._start(text)

    async def unlock(self, confirmation: str) -> bool:
        """Gesture-driven unlock: plays `confirmation` without the lock check."""
        return await self.gate.attempt_unlock(lambda: self._start(confirmation))

    async def _start(self, text: str) -> None:
        self.stop_speech()
        self._generation += 1
        generation = self._generation

        try:
            handle = await self._synth.play(text)
        except PlaybackError:
            raise
        except Exception as e:
            raise PlaybackError(PlaybackErrorCause.SYNTHESIS_FAILED, str(e)) from e

        if generation != self._generation:
            # Cancelled while the engine was starting.
            handle.cancel()
            return

        self._handle = handle
        self.active = True
        self.current_text = text
        logger.debug("Playback started", text_length=len(text))
        if self.on_started is not None:
            self.on_started(text)
        self._watch_task = asyncio.create_task(self._watch(handle, generation))

    async def _watch(self, handle: PlaybackHandle, generation: int) -> None:
        cause: Optional[str] = None
        try:
            await handle.wait()
        except asyncio.CancelledError:
            raise
        except PlaybackError as e:
            cause = e.cause
        except Exception as e:
            logger.warning("Playback failed", error=str(e), error_type=type(e).__name__)
            cause = PlaybackErrorCause.SYNTHESIS_FAILED

        if generation != self._generation:
            return

        self.active = False
        self._handle = None
        self.current_text = None

        if cause is None or cause == PlaybackErrorCause.CANCELED:
            if self.on_ended is not None:
                self.on_ended()
        elif self.on_error is not None:
            self.on_error(cause)

    def stop_speech(self) -> bool:
        """
        Cancel the current utterance, if any. Idempotent.

        Returns True if something was playing.
        """
        self._generation += 1
        handle, self._handle = self._handle, None
        was_active = self.active
        self.active = False
        self.current_text = None

        if handle is not None:
            try:
                handle.cancel()
            except Exception as e:
                logger.warning("Playback cancel failed", error=str(e), error_type=type(e).__name__)
        return was_active
