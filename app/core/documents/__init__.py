"""
Document storage port and its adapters.

Usage:
    from core.documents import DocumentStore, get_document_store

    store = get_document_store()
    chat_id = await store.insert_one("chats", {"type": "group", "name": "Team"})
"""

from core.documents.base import (
    DocumentStore,
    DuplicateKeyError,
    IndexSpec,
    UpdateResult,
)
from core.documents.factory import (
    build_document_store,
    get_document_store,
    reset_document_store,
)

__all__ = [
    "DocumentStore",
    "DuplicateKeyError",
    "IndexSpec",
    "UpdateResult",
    "build_document_store",
    "get_document_store",
    "reset_document_store",
]
