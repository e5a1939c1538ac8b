"""
Conversation control surface: keyboard shortcuts and voice phrases.

Keyboard (primary modifier is Cmd on macOS, Ctrl elsewhere):
- Primary + Shift + Space: activation gesture (unlocks playback)
- Primary + S: stop the conversation

Voice phrases are checked before an utterance goes to the agent. An
activation phrase never unlocks playback: the platform requires a real
gesture, so it only yields guidance.
"""

from __future__ import annotations

import string
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Shortcut(str, Enum):
    ACTIVATE = "activate"
    STOP = "stop"


class VoiceCommand(str, Enum):
    STOP = "stop"
    ACTIVATE = "activate"
    RESTART = "restart"


STOP_PHRASES = ("dừng lại", "dừng trò chuyện", "stop")
ACTIVATE_PHRASES = ("kích hoạt đọc", "activate")
RESTART_PHRASES = ("bắt đầu nghe", "khởi động giọng nói", "start listening")


@dataclass(frozen=True)
class KeyPress:
    """A key event as the browser reports it (KeyboardEvent.code + modifiers)."""

    code: str
    meta: bool = False
    ctrl: bool = False
    shift: bool = False
    alt: bool = False


def is_mac(platform: str) -> bool:
    platform = (platform or "").lower()
    return "mac" in platform or platform == "darwin"


def resolve_shortcut(key: KeyPress, platform: str = "") -> Optional[Shortcut]:
    primary = key.meta if is_mac(platform) else key.ctrl
    if not primary:
        return None
    if key.shift and key.code == "Space":
        return Shortcut.ACTIVATE
    if key.code == "KeyS":
        return Shortcut.STOP
    return None


def shortcut_label(shortcut: Shortcut, platform: str = "") -> str:
    modifier = "Cmd" if is_mac(platform) else "Ctrl"
    if shortcut is Shortcut.ACTIVATE:
        return f"{modifier} + Shift + Space"
    return f"{modifier} + S"


def _normalize(text: str) -> str:
    return text.lower().strip().strip(string.punctuation + " ")


def match_voice_command(utterance: str) -> Optional[VoiceCommand]:
    """
    Recognise a control phrase.

    Stop and activation phrases must be the whole utterance so dictated text
    that merely contains them is not mistaken for a command; restart phrases
    match anywhere.
    """
    normalized = _normalize(utterance)
    if not normalized:
        return None
    if normalized in STOP_PHRASES:
        return VoiceCommand.STOP
    if normalized in ACTIVATE_PHRASES:
        return VoiceCommand.ACTIVATE
    if any(phrase in normalized for phrase in RESTART_PHRASES):
        return VoiceCommand.RESTART
    return None
