from __future__ import annotations

from typing import Optional

from .config import get_settings
from .store import LibraryStore


_store: Optional[LibraryStore] = None


def init_store() -> LibraryStore:
    global _store
    if _store is None:
        _store = LibraryStore.from_settings(get_settings())
    return _store


def close_store() -> None:
    global _store
    if _store is not None:
        try:
            _store.close()
        finally:
            _store = None


def get_store() -> LibraryStore:
    if _store is None:
        return init_store()
    return _store
