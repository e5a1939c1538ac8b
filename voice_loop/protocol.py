"""
Agent reply protocol.

The agent answers in a small line-oriented format:

    Action: <action-type>
    Action content: <content, possibly multi-line>
    Answer: <answer, possibly multi-line, rest of the reply>

Prefixes are case-sensitive and matched after stripping each line. A reply
without an `Action:` line is plain conversational text, not an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

ACTION_PREFIX = "Action:"
CONTENT_PREFIX = "Action content:"
ANSWER_PREFIX = "Answer:"


class ActionType(str, Enum):
    ADD_TO_PAGE = "add_to_page"
    REWRITE_PAGE = "rewrite_page"
    CREATE_DOC = "create_doc"
    SET_TITLE_DOC = "set_title_doc"
    READ_TITLE_DOC = "read_title_doc"
    SET_TITLE_PAGE = "set_title_page"
    READ_TITLE_PAGE = "read_title_page"
    ADD_PAGE = "add_page"
    NEXT_PAGE = "next_page"
    PREV_PAGE = "prev_page"
    READ_PAGE = "read_page"
    DELETE_PAGE = "delete_page"
    REMOVE_DOC = "remove_doc"
    SAVE_DOC = "save_doc"
    REPLY_USER = "reply_user"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def resolve(cls, raw: str) -> "ActionType":
        """Case-insensitive lookup; anything outside the vocabulary is UNRECOGNIZED."""
        try:
            action = cls(raw.strip().lower())
        except ValueError:
            return cls.UNRECOGNIZED
        return action


@dataclass(frozen=True)
class ParsedAction:
    action_type: str
    action_content: str = ""
    answer: str = ""

    @property
    def kind(self) -> ActionType:
        return ActionType.resolve(self.action_type)


def parse_agent_reply(raw: str) -> Optional[ParsedAction]:
    """
    Parse an accumulated agent reply.

    Returns None when the reply has no (non-empty) `Action:` line: plain text.
    """
    action_type: Optional[str] = None
    content_lines: List[str] = []
    answer_lines: List[str] = []
    mode: Optional[str] = None  # None -> header, "content", "answer"

    for line in raw.strip().split("\n"):
        stripped = line.strip()

        if mode == "answer":
            # Continuation lines keep their indentation.
            answer_lines.append(line.rstrip("\r"))
            continue

        if stripped.startswith(ANSWER_PREFIX) and (mode == "content" or action_type is not None):
            answer_lines.append(stripped[len(ANSWER_PREFIX):].strip())
            mode = "answer"
            continue

        if mode == "content":
            content_lines.append(stripped)
            continue

        if stripped.startswith(CONTENT_PREFIX):
            content_lines.append(stripped[len(CONTENT_PREFIX):].strip())
            mode = "content"
            continue

        if stripped.startswith(ACTION_PREFIX):
            action_type = stripped[len(ACTION_PREFIX):].strip()

    if not action_type:
        return None

    return ParsedAction(
        action_type=action_type,
        action_content="\n".join(content_lines).strip(),
        answer="\n".join(answer_lines).strip(),
    )


def serialize_action(action: ParsedAction) -> str:
    return (
        f"{ACTION_PREFIX} {action.action_type}\n"
        f"{CONTENT_PREFIX} {action.action_content}\n"
        f"{ANSWER_PREFIX} {action.answer}"
    )
