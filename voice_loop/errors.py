"""
Error taxonomy for the conversation loop.

Capture and playback errors are turned into state machine events and never
escape the core; agent errors are caught at the call site and recovered by
the fallback interpreter. Categories are stable strings so events and logs
can be filtered on them.
"""
import asyncio
from typing import Optional

import aiohttp


class CaptureErrorCode:
    """Speech-to-text failure codes (Web Speech style names)."""

    NOT_ALLOWED = "not-allowed"
    AUDIO_CAPTURE = "audio-capture"
    NETWORK = "network"
    NO_SPEECH = "no-speech"
    ABORTED = "aborted"


class PlaybackErrorCause:
    """Text-to-speech failure causes."""

    NOT_ALLOWED = "not-allowed"
    CANCELED = "canceled"
    LOCKED = "locked"
    SYNTHESIS_FAILED = "synthesis-failed"


class AgentErrorCategory:
    """Stable agent failure categories."""

    NETWORK_ERROR = "agent.network_error"
    TIMEOUT = "agent.timeout"
    HTTP_ERROR = "agent.http_error"
    BAD_STREAM = "agent.bad_stream"
    UNKNOWN_ERROR = "agent.unknown_error"


class VoiceLoopError(Exception):
    """Base class for conversation loop errors."""


class CaptureError(VoiceLoopError):
    def __init__(self, code: str, detail: Optional[str] = None):
        super().__init__(detail or code)
        self.code = code


class PlaybackError(VoiceLoopError):
    def __init__(self, cause: str, detail: Optional[str] = None):
        super().__init__(detail or cause)
        self.cause = cause

    @property
    def not_allowed(self) -> bool:
        return self.cause == PlaybackErrorCause.NOT_ALLOWED


class PlaybackLockedError(PlaybackError):
    """speak() was called before playback was unlocked by a user gesture."""

    def __init__(self):
        super().__init__(PlaybackErrorCause.LOCKED, "playback is locked until a user gesture unlocks it")


class AgentError(VoiceLoopError):
    def __init__(self, category: str, detail: Optional[str] = None, status: Optional[int] = None):
        super().__init__(detail or category)
        self.category = category
        self.status = status


def classify_agent_error(error: BaseException) -> str:
    """
    Classify an exception raised while talking to the agent.

    Returns one of the AgentErrorCategory strings; never raises.
    """
    if isinstance(error, AgentError):
        return error.category

    if isinstance(error, asyncio.TimeoutError):
        return AgentErrorCategory.TIMEOUT

    if isinstance(error, aiohttp.ClientResponseError):
        return AgentErrorCategory.HTTP_ERROR

    if isinstance(error, (aiohttp.ClientPayloadError, UnicodeDecodeError)):
        return AgentErrorCategory.BAD_STREAM

    if isinstance(error, (aiohttp.ClientError, ConnectionError, OSError)):
        return AgentErrorCategory.NETWORK_ERROR

    error_str = str(error).lower()
    if "timeout" in error_str or "timed out" in error_str:
        return AgentErrorCategory.TIMEOUT
    if "connection" in error_str or "network" in error_str:
        return AgentErrorCategory.NETWORK_ERROR

    return AgentErrorCategory.UNKNOWN_ERROR
