"""
Document model for the page editor.

A document is an ordered list of pages; `current_page` is the 1-based page
number the user is working on.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

DEFAULT_DOCUMENT_TITLE = "Tài liệu mới"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Page:
    page_number: int
    content: str = ""
    title: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def touch(self) -> None:
        self.updated_at = _now()


@dataclass
class Document:
    title: str
    pages: List[Page] = field(default_factory=list)
    current_page: int = 1
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        if not self.pages:
            self.pages.append(Page(page_number=1))

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def touch(self) -> None:
        self.updated_at = _now()

    def summary(self) -> dict:
        """Compact description sent to the agent as turn metadata."""
        return {
            "id": self.id,
            "title": self.title,
            "total_pages": self.total_pages,
            "current_page": self.current_page,
        }


def extract_title(content: str) -> str:
    """
    Derive a document title from its initial content.

    Uses the first line when it is short enough, otherwise its first eight
    words followed by an ellipsis.
    """
    if not content:
        return ""

    first_line = content.split("\n")[0].strip()
    if 0 < len(first_line) <= 100:
        return first_line

    words = first_line.split(" ")[:8]
    return " ".join(words) + ("..." if len(words) == 8 else "")
