"""
Page editor collaborator.

An in-memory document store the voice loop reads and mutates. It stands in
for the editor UI's own data model and is intentionally small.
"""

from .models import Document, Page, extract_title
from .store import DocumentStore

__all__ = ["Document", "Page", "DocumentStore", "extract_title"]
