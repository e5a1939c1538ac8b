"""
LiveKit adapters for the capture and playback engines.

The conversation core only knows the SpeechRecognizer / SpeechSynthesizer
protocols. Here they are backed by a LiveKit AgentSession:
- capture: the session's audio input is enabled/disabled, and its
  `user_input_transcribed` events are fed into the capture session
- playback: `session.say()` speaks through the configured TTS; the returned
  SpeechHandle is awaited for completion and interrupted to cancel

The session is duck-typed so the adapters can be exercised with fakes.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Optional, Set

from logging_setup import get_logger, Component
from .capture import SpeechCaptureSession
from .control_channel import NOTICE_TOPIC
from .errors import CaptureErrorCode, PlaybackError, PlaybackErrorCause

if TYPE_CHECKING:
    from livekit import rtc
    from livekit.agents import AgentSession


logger = get_logger(Component.WORKER)


class LiveKitRecognizer:
    supported = True

    def __init__(self, session: "AgentSession"):
        self._session = session
        self._capture: Optional[SpeechCaptureSession] = None

    def attach(self, capture: SpeechCaptureSession) -> None:
        self._capture = capture
        self._session.on("user_input_transcribed", self._on_user_input_transcribed)
        self._session.on("error", self._on_error)

    def start(self) -> None:
        self._session.input.set_audio_enabled(True)

    def stop(self) -> None:
        self._session.input.set_audio_enabled(False)

    def _on_user_input_transcribed(self, ev: Any) -> None:
        if self._capture is None:
            return
        text = getattr(ev, "transcript", "") or ""
        self._capture.handle_result(text, bool(getattr(ev, "is_final", False)))

    def _on_error(self, ev: Any) -> None:
        source = getattr(ev, "source", None)
        if self._capture is None or "STT" not in type(source).__name__:
            return
        error = getattr(ev, "error", None)
        logger.warning("STT error", error=str(error), recoverable=getattr(error, "recoverable", None))
        if not getattr(error, "recoverable", False):
            self._capture.handle_error(CaptureErrorCode.NETWORK)


class _SpeechHandleAdapter:
    def __init__(self, handle: Any):
        self._handle = handle
        self._cancelled = False

    async def wait(self) -> None:
        await self._handle
        if getattr(self._handle, "interrupted", False) and not self._cancelled:
            raise PlaybackError(PlaybackErrorCause.CANCELED)

    def cancel(self) -> None:
        self._cancelled = True
        if not getattr(self._handle, "done", lambda: False)():
            self._handle.interrupt()


class LiveKitSynthesizer:
    supported = True

    def __init__(self, session: "AgentSession"):
        self._session = session

    async def play(self, text: str) -> _SpeechHandleAdapter:
        try:
            handle = self._session.say(text, allow_interruptions=True, add_to_chat_ctx=False)
        except Exception as e:
            raise PlaybackError(PlaybackErrorCause.SYNTHESIS_FAILED, str(e)) from e
        return _SpeechHandleAdapter(handle)


class NoticePublisher:
    """Sends user-facing notices to the editor client as room data packets."""

    def __init__(self, room: "rtc.Room"):
        self._room = room
        self._tasks: Set[asyncio.Task] = set()

    def __call__(self, message: str) -> None:
        task = asyncio.create_task(self._publish(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _publish(self, message: str) -> None:
        payload = json.dumps({"type": "notice", "message": message}, ensure_ascii=False).encode("utf-8")
        try:
            await self._room.local_participant.publish_data(payload, reliable=True, topic=NOTICE_TOPIC)
        except Exception as e:
            # Best-effort: the client may already have left.
            logger.warning("Notice not delivered", error=str(e), error_type=type(e).__name__)
