"""Bounded dialogue history keyed to the current document."""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional


class DialogueHistory:
    """
    Most recent N role-tagged messages, oldest evicted first.

    The history belongs to one document context: bind() with a different
    document id clears it.
    """

    def __init__(self, max_entries: int = 20):
        self.max_entries = max_entries
        self._entries: Deque[Dict[str, str]] = deque(maxlen=max_entries)
        self.document_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self._entries)

    def bind(self, document_id: Optional[str]) -> bool:
        """Switch document context. Returns True if the history was cleared."""
        if document_id == self.document_id:
            return False
        self.document_id = document_id
        had_entries = bool(self._entries)
        self._entries.clear()
        return had_entries

    def append(self, role: str, content: str) -> None:
        if role not in ("user", "assistant"):
            raise ValueError(f"Invalid role: {role}")
        self._entries.append({"role": role, "content": content})

    def add_turn(self, user_message: str, reply: str) -> None:
        self.append("user", user_message)
        self.append("assistant", reply)

    def messages(self) -> List[Dict[str, str]]:
        return [dict(entry) for entry in self._entries]

    def clear(self) -> None:
        self._entries.clear()
