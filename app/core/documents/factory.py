"""
Factory functions for document store backend selection.

Provides a single process-wide store chosen by the DOCUMENT_STORE_BACKEND
setting, mirroring how other infrastructure backends are selected:

    memory    -> MemoryDocumentStore
    orm       -> OrmDocumentStore (Django database)
    data_api  -> DataApiDocumentStore (remote HTTP facade)

Usage:
    from core.documents import get_document_store

    store = get_document_store()
    registry = ChatRegistry(store)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

if TYPE_CHECKING:
    from core.documents.base import DocumentStore

logger = logging.getLogger(__name__)

_store: DocumentStore | None = None
_store_lock = threading.Lock()


def build_document_store(backend: str | None = None) -> DocumentStore:
    """
    Build a new store for ``backend`` (defaults to the configured one).

    Raises:
        ImproperlyConfigured: For unknown backends or missing Data API settings
    """
    backend = backend or settings.DOCUMENT_STORE_BACKEND

    if backend == "memory":
        from core.documents.memory import MemoryDocumentStore

        return MemoryDocumentStore()

    if backend == "orm":
        from core.documents.orm import OrmDocumentStore

        return OrmDocumentStore()

    if backend == "data_api":
        from core.documents.data_api import DataApiDocumentStore

        config = settings.DATA_API
        missing = [key for key in ("URL", "API_KEY", "DATA_SOURCE", "DATABASE") if not config.get(key)]
        if missing:
            raise ImproperlyConfigured(f"DATA_API settings missing: {', '.join(missing)}")
        return DataApiDocumentStore(
            base_url=config["URL"],
            api_key=config["API_KEY"],
            data_source=config["DATA_SOURCE"],
            database=config["DATABASE"],
            timeout=config.get("TIMEOUT", 10.0),
        )

    raise ImproperlyConfigured(f"Unknown DOCUMENT_STORE_BACKEND: {backend!r}")


def get_document_store() -> DocumentStore:
    """Return the process-wide document store, building it on first use."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = build_document_store()
                logger.info(f"Document store backend: {_store.backend_name}")
    return _store


def reset_document_store() -> None:
    """Forget the process-wide store so the next call rebuilds it (tests)."""
    global _store
    with _store_lock:
        _store = None
