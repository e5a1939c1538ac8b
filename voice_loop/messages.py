"""
Spoken responses and user-facing notices.

Texts live in locales/<language>.yaml so wording can change without touching
the dispatcher. We use PyYAML's safe_load; the file must contain a mapping at
top level. Keys are addressed with dotted paths ("actions.next_page.done").
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_LANGUAGE = "vi"


def _get_locales_dir() -> Path:
    return Path(__file__).parent / "locales"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Locale file {path} must contain a mapping at top-level")
        return data


class MessageCatalog:
    """Dotted-path lookup over a loaded locale file."""

    def __init__(self, data: Dict[str, Any], language: str = DEFAULT_LANGUAGE):
        self._data = data
        self.language = language

    def _lookup(self, path: str) -> Optional[str]:
        node: Any = self._data
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node if isinstance(node, str) else None

    def has(self, path: str) -> bool:
        return self._lookup(path) is not None

    def get(self, path: str, **params: Any) -> str:
        """Render the message at `path`. Raises KeyError for unknown paths."""
        template = self._lookup(path)
        if template is None:
            raise KeyError(path)
        return template.format(**params) if params else template

    def first(self, *paths: str, **params: Any) -> str:
        """Render the first path that exists (e.g. a specific code, then "default")."""
        for path in paths:
            if self.has(path):
                return self.get(path, **params)
        raise KeyError(paths[-1] if paths else "")


_catalogs: Dict[str, MessageCatalog] = {}


def get_catalog(language: str = DEFAULT_LANGUAGE) -> MessageCatalog:
    """
    Get (and cache) the catalog for a language.

    Falls back to the default language when no locale file exists.
    """
    if language not in _catalogs:
        path = _get_locales_dir() / f"{language}.yaml"
        if not path.exists():
            path = _get_locales_dir() / f"{DEFAULT_LANGUAGE}.yaml"
        _catalogs[language] = MessageCatalog(_load_file(path), language=language)
    return _catalogs[language]
