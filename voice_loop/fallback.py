"""
Local fallback interpreter.

Runs only when the agent failed or returned nothing. It is a deliberately
low-precision keyword matcher over the lowercased utterance; anything it does
not recognise is appended verbatim to the current page.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from logging_setup import get_logger, Component
from editor.models import DEFAULT_DOCUMENT_TITLE
from editor.store import DocumentStore
from .messages import MessageCatalog, get_catalog


logger = get_logger(Component.DISPATCHER)

# Most specific first.
_SEARCH_PATTERNS = (
    re.compile(r"tìm kiếm về (.*)"),
    re.compile(r"tìm kiếm (.*)"),
    re.compile(r"tìm về (.*)"),
    re.compile(r"tìm (.*)"),
)


class FallbackIntent:
    CREATE = "create"
    SEARCH = "search"
    EDIT = "edit"
    DELETE = "delete"
    READ = "read"
    APPEND = "append"
    UNHANDLED = "unhandled"


@dataclass(frozen=True)
class FallbackResult:
    intent: str
    speech: str


def extract_search_term(utterance: str) -> str:
    lowered = utterance.lower()
    for pattern in _SEARCH_PATTERNS:
        match = pattern.search(lowered)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return ""


class FallbackInterpreter:
    def __init__(self, store: DocumentStore, catalog: Optional[MessageCatalog] = None):
        self.store = store
        self.catalog = catalog or get_catalog()

    def _msg(self, key: str, **params) -> str:
        return self.catalog.get(f"fallback.{key}", **params)

    def interpret(self, utterance: str) -> FallbackResult:
        text = utterance.strip()
        lowered = text.lower()
        doc = self.store.current_document

        if "tạo" in lowered and ("tài liệu" in lowered or "mới" in lowered):
            self.store.create_document(DEFAULT_DOCUMENT_TITLE, "")
            self.store.editing = True
            return self._result(FallbackIntent.CREATE, self._msg("created"))

        if "tìm" in lowered:
            term = extract_search_term(text)
            if not term:
                return self._result(FallbackIntent.SEARCH, self._msg("search_term_missing"))
            self.store.search(term)
            return self._result(FallbackIntent.SEARCH, self._msg("searching", term=term))

        if "chỉnh sửa" in lowered or "sửa" in lowered:
            if doc is None:
                return self._result(FallbackIntent.EDIT, self._msg("editing_no_document"))
            self.store.editing = True
            return self._result(FallbackIntent.EDIT, self._msg("editing", title=doc.title))

        if "xóa" in lowered:
            # Never deletes on a low-precision match; asks for a manual confirmation.
            if doc is None:
                return self._result(FallbackIntent.DELETE, self._msg("delete_no_document"))
            return self._result(FallbackIntent.DELETE, self._msg("delete_confirm", title=doc.title))

        if "đọc" in lowered or "xem" in lowered:
            page = self.store.get_current_page(doc) if doc is not None else None
            if doc is None or page is None:
                return self._result(FallbackIntent.READ, self._msg("read_no_document"))
            if page.content:
                return self._result(
                    FallbackIntent.READ,
                    self._msg("read", page=page.page_number, title=doc.title, content=page.content),
                )
            return self._result(FallbackIntent.READ, self._msg("read_empty", page=page.page_number, title=doc.title))

        page = self.store.append_to_current_page(text)
        if page is None:
            return self._result(FallbackIntent.UNHANDLED, self._msg("unhandled"))
        return self._result(FallbackIntent.APPEND, self._msg("appended", page=page.page_number, content=text))

    def _result(self, intent: str, speech: str) -> FallbackResult:
        logger.info("Fallback interpreted utterance", intent=intent)
        return FallbackResult(intent=intent, speech=speech)
