"""
In-memory document store.

Holds every collection as a dict of deep-copied documents keyed by ``_id``.
Callers never share references with the store, so mutating a returned
document does not change stored state.

Used by the test-suite and by single-process development setups
(DOCUMENT_STORE_BACKEND=memory). State lives only as long as the process.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING

from core.documents.base import (
    DocumentStore,
    DuplicateKeyError,
    UpdateResult,
    find_unique_violation,
)
from core.documents.query import apply_update, matches, sort_documents
from core.helpers import new_object_id

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class MemoryDocumentStore(DocumentStore):
    """Process-local adapter enforcing declared unique indexes."""

    backend_name = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, dict]] = {}

    def _collection(self, name: str) -> dict[str, dict]:
        return self._collections.setdefault(name, {})

    def _check_unique(self, collection: str, candidate: dict) -> None:
        others = (
            document
            for document_id, document in self._collection(collection).items()
            if document_id != candidate["_id"]
        )
        violated = find_unique_violation(self.indexes_for(collection), candidate, others)
        if violated is not None:
            raise DuplicateKeyError(
                f"Duplicate key for index {violated.name} in {collection}",
                details={"collection": collection, "index": violated.name},
            )

    def clear(self) -> None:
        """Drop every document; declared indexes are kept."""
        logger.debug(f"Clearing {len(self._collections)} in-memory collections")
        self._collections.clear()

    async def insert_one(self, collection: str, document: dict) -> str:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", new_object_id())
        documents = self._collection(collection)
        if stored["_id"] in documents:
            raise DuplicateKeyError(
                f"Duplicate _id in {collection}",
                details={"collection": collection, "index": "_id"},
            )
        self._check_unique(collection, stored)
        documents[stored["_id"]] = stored
        return stored["_id"]

    def _matching(self, collection: str, criteria: dict | None) -> list[dict]:
        # _id lookups skip the scan
        if criteria and isinstance(criteria.get("_id"), str):
            document = self._collection(collection).get(criteria["_id"])
            return [document] if document is not None and matches(document, criteria) else []
        return [
            document
            for document in self._collection(collection).values()
            if matches(document, criteria)
        ]

    async def find(
        self,
        collection: str,
        criteria: dict[str, Any] | None = None,
        *,
        sort=None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict]:
        documents = self._matching(collection, criteria)
        if sort:
            sort_documents(documents, sort)
        if skip:
            documents = documents[skip:]
        if limit:
            documents = documents[:limit]
        return copy.deepcopy(documents)

    async def _update(self, collection: str, criteria: dict, update: dict, many: bool) -> UpdateResult:
        targets = self._matching(collection, criteria)
        if not many:
            targets = targets[:1]
        matched = modified = 0
        for stored in targets:
            matched += 1
            candidate = copy.deepcopy(stored)
            if not apply_update(candidate, update):
                continue
            self._check_unique(collection, candidate)
            self._collection(collection)[candidate["_id"]] = candidate
            modified += 1
        return UpdateResult(matched=matched, modified=modified)

    async def update_one(self, collection: str, criteria: dict, update: dict) -> UpdateResult:
        return await self._update(collection, criteria, update, many=False)

    async def update_many(self, collection: str, criteria: dict, update: dict) -> UpdateResult:
        return await self._update(collection, criteria, update, many=True)

    async def _delete(self, collection: str, criteria: dict, many: bool) -> int:
        targets = self._matching(collection, criteria)
        if not many:
            targets = targets[:1]
        documents = self._collection(collection)
        for document in targets:
            documents.pop(document["_id"], None)
        return len(targets)

    async def delete_one(self, collection: str, criteria: dict) -> int:
        return await self._delete(collection, criteria, many=False)

    async def delete_many(self, collection: str, criteria: dict) -> int:
        return await self._delete(collection, criteria, many=True)

    async def count(self, collection: str, criteria: dict[str, Any] | None = None) -> int:
        return len(self._matching(collection, criteria))
