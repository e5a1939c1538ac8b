"""
Agent response stream decoding.

Each server-sent `data:` line carries one JSON value. Known shapes decode into
a tagged union; anything else becomes Unrecognized and is skipped.
"""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from logging_setup import get_logger, Component


logger = get_logger(Component.AGENT_CLIENT)


@dataclass(frozen=True)
class TextChunk:
    """A bare JSON string."""

    text: str


@dataclass(frozen=True)
class MessagesChunk:
    """An object holding `agent.messages` or `messages`: role-tagged messages."""

    contents: Tuple[str, ...]

    @property
    def text(self) -> str:
        return "".join(self.contents)


@dataclass(frozen=True)
class ContentChunk:
    """An object with a direct `content` string."""

    text: str


@dataclass(frozen=True)
class Unrecognized:
    raw: Any


StreamEvent = Union[TextChunk, MessagesChunk, ContentChunk, Unrecognized]


def _decode_text(value: Any) -> Optional[StreamEvent]:
    if isinstance(value, str):
        return TextChunk(value)
    return None


def _message_contents(messages: List[Any]) -> Tuple[str, ...]:
    return tuple(
        m["content"]
        for m in messages
        if isinstance(m, dict) and isinstance(m.get("content"), str) and m["content"]
    )


def _decode_messages(value: Any) -> Optional[StreamEvent]:
    if not isinstance(value, dict):
        return None
    agent = value.get("agent")
    if isinstance(agent, dict) and isinstance(agent.get("messages"), list):
        return MessagesChunk(_message_contents(agent["messages"]))
    if isinstance(value.get("messages"), list):
        return MessagesChunk(_message_contents(value["messages"]))
    return None


def _decode_content(value: Any) -> Optional[StreamEvent]:
    if isinstance(value, dict) and isinstance(value.get("content"), str):
        return ContentChunk(value["content"])
    return None


_DECODERS: Tuple[Callable[[Any], Optional[StreamEvent]], ...] = (
    _decode_text,
    _decode_messages,
    _decode_content,
)


def decode_event(value: Any) -> StreamEvent:
    for decoder in _DECODERS:
        event = decoder(value)
        if event is not None:
            return event
    return Unrecognized(value)


def event_text(event: StreamEvent) -> str:
    if isinstance(event, Unrecognized):
        return ""
    return event.text


def accumulate_reply(events: Iterable[StreamEvent]) -> Optional[str]:
    """Concatenate chunk texts in arrival order; None when no chunk carried text."""
    parts = [text for text in (event_text(e) for e in events) if text]
    if not parts:
        return None
    return "".join(parts)


class SSEDecoder:
    """
    Incremental server-sent-events reader.

    Feed raw body bytes as they arrive; get back the decoded JSON values of
    complete `data:` lines. Lines that are not valid JSON are logged and
    skipped.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[Any]:
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> List[Any]:
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = [self._buffer], ""
        return self._parse_lines(lines)

    def _parse_lines(self, lines: List[str]) -> List[Any]:
        values = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith("data:"):
                continue
            payload = line[len("data:"):]
            if payload.startswith(" "):
                payload = payload[1:]
            if not payload.strip():
                continue
            try:
                values.append(json.loads(payload))
            except json.JSONDecodeError:
                logger.warning("Skipping undecodable stream line", line_length=len(line))
        return values
