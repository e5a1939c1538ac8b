"""
Action dispatcher.

Maps a parsed agent action onto at most one document-store call and always
produces a spoken response. The agent's own answer is spoken verbatim when
present, even if the mutation could not be performed (e.g. next_page on the
last page); such cases are reported as applied=False so they can be observed.
Unknown action types never mutate and get the canned "not understood" text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from logging_setup import get_logger, Component
from editor.models import DEFAULT_DOCUMENT_TITLE, extract_title
from editor.store import DocumentStore
from .messages import MessageCatalog, get_catalog
from .protocol import ActionType, ParsedAction


logger = get_logger(Component.DISPATCHER)


@dataclass(frozen=True)
class DispatchResult:
    action: ActionType
    speech: str
    # False when the action needed a mutation that could not be performed.
    applied: bool
    used_agent_answer: bool = False


# (applied, canned response)
_Outcome = Tuple[bool, str]


class ActionDispatcher:
    def __init__(self, store: DocumentStore, catalog: Optional[MessageCatalog] = None):
        self.store = store
        self.catalog = catalog or get_catalog()
        self._handlers: Dict[ActionType, Callable[[str], _Outcome]] = {
            ActionType.ADD_TO_PAGE: self._add_to_page,
            ActionType.REWRITE_PAGE: self._rewrite_page,
            ActionType.CREATE_DOC: self._create_doc,
            ActionType.SET_TITLE_DOC: self._set_title_doc,
            ActionType.READ_TITLE_DOC: self._read_title_doc,
            ActionType.SET_TITLE_PAGE: self._set_title_page,
            ActionType.READ_TITLE_PAGE: self._read_title_page,
            ActionType.ADD_PAGE: self._add_page,
            ActionType.NEXT_PAGE: self._next_page,
            ActionType.PREV_PAGE: self._prev_page,
            ActionType.READ_PAGE: self._read_page,
            ActionType.DELETE_PAGE: self._delete_page,
            ActionType.REMOVE_DOC: self._remove_doc,
            ActionType.SAVE_DOC: self._save_doc,
        }

    def _msg(self, action: ActionType, key: str, **params) -> str:
        return self.catalog.get(f"actions.{action.value}.{key}", **params)

    def dispatch(self, parsed: ParsedAction) -> DispatchResult:
        kind = parsed.kind

        if kind is ActionType.UNRECOGNIZED:
            logger.warning("Unknown action type", action_type=parsed.action_type)
            speech = self.catalog.get("actions.unrecognized", action=parsed.action_type)
            return DispatchResult(kind, speech, applied=False)

        if kind is ActionType.REPLY_USER:
            return DispatchResult(kind, parsed.answer or parsed.action_content, applied=True,
                                  used_agent_answer=bool(parsed.answer))

        applied, canned = self._handlers[kind](parsed.action_content)
        speech = parsed.answer or canned

        logger.info(
            "Action dispatched",
            action=kind.value,
            applied=applied,
            used_agent_answer=bool(parsed.answer),
        )
        return DispatchResult(kind, speech, applied=applied, used_agent_answer=bool(parsed.answer))

    # --- handlers: each returns (applied, canned response) ---

    def _add_to_page(self, content: str) -> _Outcome:
        if self.store.current_document is None:
            return False, self._msg(ActionType.ADD_TO_PAGE, "no_document")
        page = self.store.get_current_page()
        if page is None or not content:
            return False, self._msg(ActionType.ADD_TO_PAGE, "done", page=page.page_number if page else 1)
        self.store.append_to_current_page(content)
        return True, self._msg(ActionType.ADD_TO_PAGE, "done", page=page.page_number)

    def _rewrite_page(self, content: str) -> _Outcome:
        page = self.store.replace_current_page(content)
        if page is None:
            return False, self._msg(ActionType.REWRITE_PAGE, "no_document")
        return True, self._msg(ActionType.REWRITE_PAGE, "done", page=page.page_number)

    def _create_doc(self, content: str) -> _Outcome:
        doc = self.store.create_document(extract_title(content) or DEFAULT_DOCUMENT_TITLE, content)
        return True, self._msg(ActionType.CREATE_DOC, "done", title=doc.title)

    def _set_title_doc(self, content: str) -> _Outcome:
        doc = self.store.set_document_title(content)
        if doc is None:
            return False, self._msg(ActionType.SET_TITLE_DOC, "no_document")
        return True, self._msg(ActionType.SET_TITLE_DOC, "done", title=content)

    def _read_title_doc(self, _content: str) -> _Outcome:
        doc = self.store.current_document
        if doc is None:
            return False, self._msg(ActionType.READ_TITLE_DOC, "no_document")
        return True, self._msg(ActionType.READ_TITLE_DOC, "done", title=doc.title)

    def _set_title_page(self, content: str) -> _Outcome:
        page = self.store.set_page_title(content)
        if page is None:
            return False, self._msg(ActionType.SET_TITLE_PAGE, "no_document")
        return True, self._msg(ActionType.SET_TITLE_PAGE, "done", page=page.page_number, title=content)

    def _read_title_page(self, _content: str) -> _Outcome:
        page = self.store.get_current_page()
        if page is None:
            return False, self._msg(ActionType.READ_TITLE_PAGE, "no_document")
        if page.title:
            return True, self._msg(ActionType.READ_TITLE_PAGE, "done", page=page.page_number, title=page.title)
        return True, self._msg(ActionType.READ_TITLE_PAGE, "untitled", page=page.page_number)

    def _add_page(self, content: str) -> _Outcome:
        page = self.store.add_page(content)
        if page is None:
            return False, self._msg(ActionType.ADD_PAGE, "no_document")
        return True, self._msg(ActionType.ADD_PAGE, "done", page=page.page_number)

    def _next_page(self, _content: str) -> _Outcome:
        doc = self.store.current_document
        if doc is None:
            return False, self._msg(ActionType.NEXT_PAGE, "no_document")
        if not self.store.next_page():
            return False, self._msg(ActionType.NEXT_PAGE, "last_page")
        return True, self._msg(ActionType.NEXT_PAGE, "done", page=doc.current_page)

    def _prev_page(self, _content: str) -> _Outcome:
        doc = self.store.current_document
        if doc is None:
            return False, self._msg(ActionType.PREV_PAGE, "no_document")
        if not self.store.prev_page():
            return False, self._msg(ActionType.PREV_PAGE, "first_page")
        return True, self._msg(ActionType.PREV_PAGE, "done", page=doc.current_page)

    def _read_page(self, _content: str) -> _Outcome:
        page = self.store.get_current_page()
        if page is None:
            return False, self._msg(ActionType.READ_PAGE, "no_document")
        if not page.content:
            return True, self._msg(ActionType.READ_PAGE, "empty", page=page.page_number)
        title = f' "{page.title}"' if page.title else ""
        return True, self._msg(ActionType.READ_PAGE, "done", page=page.page_number, title=title, content=page.content)

    def _delete_page(self, _content: str) -> _Outcome:
        if self.store.current_document is None:
            return False, self._msg(ActionType.DELETE_PAGE, "no_document")
        deleted = self.store.delete_current_page()
        if deleted is None:
            return False, self._msg(ActionType.DELETE_PAGE, "only_page")
        return True, self._msg(ActionType.DELETE_PAGE, "done", page=deleted)

    def _remove_doc(self, _content: str) -> _Outcome:
        doc = self.store.current_document
        if doc is None:
            return False, self._msg(ActionType.REMOVE_DOC, "no_document")
        self.store.delete_document(doc.id)
        return True, self._msg(ActionType.REMOVE_DOC, "done", title=doc.title)

    def _save_doc(self, _content: str) -> _Outcome:
        doc = self.store.current_document
        if doc is None:
            return False, self._msg(ActionType.SAVE_DOC, "no_document")
        self.store.editing = False
        return True, self._msg(ActionType.SAVE_DOC, "done", title=doc.title)
