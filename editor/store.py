"""
In-memory page editor store.

All operations are synchronous and never raise for a missing document or
page: they return None / False instead so callers can turn the situation into
a spoken explanation.
"""

from __future__ import annotations

from typing import List, Optional

from logging_setup import get_logger, Component
from .models import DEFAULT_DOCUMENT_TITLE, Document, Page


logger = get_logger(Component.DOCUMENT_STORE)


class DocumentStore:
    """Holds the open documents and which one is current."""

    def __init__(self):
        self._documents: List[Document] = []
        self._current_id: Optional[str] = None
        self.editing: bool = False
        self.search_query: str = ""

    @classmethod
    def with_blank_document(cls) -> "DocumentStore":
        """Store with a single empty document selected, as a new session starts."""
        store = cls()
        store.create_document(DEFAULT_DOCUMENT_TITLE, "")
        return store

    # --- documents ---

    @property
    def documents(self) -> List[Document]:
        return list(self._documents)

    @property
    def current_document(self) -> Optional[Document]:
        if self._current_id is None:
            return None
        return self._find(self._current_id)

    @property
    def current_document_id(self) -> Optional[str]:
        return self._current_id

    def _find(self, document_id: str) -> Optional[Document]:
        for doc in self._documents:
            if doc.id == document_id:
                return doc
        return None

    def create_document(self, title: str, initial_content: str = "") -> Document:
        doc = Document(title=title or DEFAULT_DOCUMENT_TITLE, pages=[Page(page_number=1, content=initial_content)])
        self._documents.insert(0, doc)
        self._current_id = doc.id
        logger.info("Document created", document_id=doc.id, total_documents=len(self._documents))
        return doc

    def update_document(self, doc: Document) -> None:
        doc.touch()
        for i, existing in enumerate(self._documents):
            if existing.id == doc.id:
                self._documents[i] = doc
                break
        else:
            self._documents.insert(0, doc)
        self._current_id = doc.id

    def select_document(self, document_id: str) -> Optional[Document]:
        doc = self._find(document_id)
        if doc is not None:
            self._current_id = doc.id
            self.editing = False
        return doc

    def delete_document(self, document_id: str) -> None:
        doc = self._find(document_id)
        if doc is None:
            return
        self._documents.remove(doc)
        if self._current_id == document_id:
            self._current_id = None
            self.editing = False
        logger.info("Document deleted", document_id=document_id, total_documents=len(self._documents))

    def set_document_title(self, title: str) -> Optional[Document]:
        doc = self.current_document
        if doc is None:
            return None
        doc.title = title
        self.update_document(doc)
        return doc

    def search(self, query: str) -> List[Document]:
        """Case-insensitive match on document titles and page contents."""
        self.search_query = query
        needle = query.lower().strip()
        if not needle:
            return []
        return [
            doc for doc in self._documents
            if needle in doc.title.lower() or any(needle in p.content.lower() for p in doc.pages)
        ]

    # --- pages ---

    def get_current_page(self, doc: Optional[Document] = None) -> Optional[Page]:
        doc = doc or self.current_document
        if doc is None:
            return None
        for page in doc.pages:
            if page.page_number == doc.current_page:
                return page
        return None

    def append_to_current_page(self, text: str) -> Optional[Page]:
        doc = self.current_document
        page = self.get_current_page(doc)
        if page is None:
            return None
        page.content = page.content + ("\n" if page.content else "") + text
        page.touch()
        self.update_document(doc)
        return page

    def replace_current_page(self, text: str) -> Optional[Page]:
        doc = self.current_document
        page = self.get_current_page(doc)
        if page is None:
            return None
        page.content = text
        page.touch()
        self.update_document(doc)
        return page

    def set_page_title(self, title: str) -> Optional[Page]:
        doc = self.current_document
        page = self.get_current_page(doc)
        if page is None:
            return None
        page.title = title
        page.touch()
        self.update_document(doc)
        return page

    def add_page(self, content: str = "", title: Optional[str] = None) -> Optional[Page]:
        """Append a page at the end of the current document and switch to it."""
        doc = self.current_document
        if doc is None:
            return None
        page = Page(page_number=doc.total_pages + 1, content=content, title=title or None)
        doc.pages.append(page)
        doc.current_page = page.page_number
        self.update_document(doc)
        return page

    def next_page(self) -> bool:
        doc = self.current_document
        if doc is None or doc.current_page >= doc.total_pages:
            return False
        doc.current_page += 1
        return True

    def prev_page(self) -> bool:
        doc = self.current_document
        if doc is None or doc.current_page <= 1:
            return False
        doc.current_page -= 1
        return True

    def delete_current_page(self) -> Optional[int]:
        """
        Delete the current page and renumber the rest.

        Returns the deleted page number, or None when there is no document or
        the page is the only one.
        """
        doc = self.current_document
        if doc is None or doc.total_pages <= 1:
            return None
        deleted = doc.current_page
        doc.pages = [p for p in doc.pages if p.page_number != deleted]
        for index, page in enumerate(doc.pages):
            page.page_number = index + 1
        doc.current_page = min(deleted, doc.total_pages)
        self.update_document(doc)
        return deleted
