"""
Silence-based utterance segmentation.

Transcript increments arrive from the recognizer; every increment (re)arms a
single quiet-period timer. When the timer fires without new speech the
accumulated final text is handed over as one Utterance and the buffers are
cleared.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from logging_setup import get_logger, Component


logger = get_logger(Component.SEGMENTER)


@dataclass(frozen=True)
class Transcript:
    final_text: str = ""
    interim_text: str = ""


@dataclass(frozen=True)
class Utterance:
    """One finalized block of user speech (monotonic timestamps)."""

    text: str
    started_at: float
    finalized_at: float

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


def _join(existing: str, increment: str) -> str:
    if not existing:
        return increment
    if not increment or existing[-1].isspace() or increment[0].isspace():
        return existing + increment
    return f"{existing} {increment}"


class SilenceSegmenter:
    """
    Debounces transcript increments into utterances.

    A finalize may carry blank text (e.g. only interim results were heard);
    the caller treats that as a no-op.
    """

    def __init__(
        self,
        on_finalize: Callable[[Utterance], Any],
        *,
        timeout_ms: int = 2000,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self._on_finalize = on_finalize
        self.timeout_ms = timeout_ms
        self._now = now
        self._sleep = sleep

        self._final_text = ""
        self._interim_text = ""
        self._episode_started_at: Optional[float] = None
        self._timer: Optional[asyncio.Task] = None

    @property
    def transcript(self) -> Transcript:
        return Transcript(final_text=self._final_text, interim_text=self._interim_text)

    @property
    def armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def on_increment(self, text: str, is_final: bool) -> None:
        if self._episode_started_at is None:
            self._episode_started_at = self._now()

        if is_final:
            self._final_text = _join(self._final_text, text.strip())
            self._interim_text = ""
        else:
            self._interim_text = text

        self._arm()

    def reset(self) -> None:
        """Cancel the timer and clear buffers without emitting."""
        self._cancel_timer()
        self._clear()

    def _clear(self) -> None:
        self._final_text = ""
        self._interim_text = ""
        self._episode_started_at = None

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _arm(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(self._run_timer())

    async def _run_timer(self) -> None:
        try:
            await self._sleep(self.timeout_ms / 1000.0)
        except asyncio.CancelledError:
            return
        self._timer = None
        self._fire()

    def _fire(self) -> None:
        utterance = Utterance(
            text=self._final_text,
            started_at=self._episode_started_at if self._episode_started_at is not None else self._now(),
            finalized_at=self._now(),
        )
        self._clear()
        logger.debug(
            "Silence detected",
            timeout_ms=self.timeout_ms,
            transcript_length=len(utterance.text),
        )
        self._on_finalize(utterance)
