"""
Base types and abstract base class for document store adapters.

This module defines the interface every storage adapter must follow so the
domain services never depend on which backend is active:

- MemoryDocumentStore: process-local, used by tests and single-process dev
- OrmDocumentStore: Django database via the StoredDocument model
- DataApiDocumentStore: remote HTTP data-access facade

Filters and updates use the document-store query language implemented in
core.documents.query.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.documents.query import MISSING, get_value
from core.exceptions import ConflictError

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

Document = dict
SortSpec = list  # [(field, 1 | -1), ...]


class DuplicateKeyError(ConflictError):
    """
    Raised by an adapter when a write violates a unique index.

    Subclasses ConflictError so an unhandled violation still surfaces as a
    409 at the REST boundary.
    """

    default_error_code: str = "DUPLICATE_KEY"


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class UpdateResult:
    """
    Outcome of update_one / update_many.

    Attributes:
        matched: Documents that matched the filter
        modified: Documents whose content actually changed
    """

    matched: int = 0
    modified: int = 0


@dataclass(frozen=True)
class IndexSpec:
    """
    Declared index on a collection.

    Attributes:
        keys: Dotted field paths making up the index key
        unique: Reject writes producing a duplicate key
        sparse: Skip documents missing any key field
    """

    keys: tuple[str, ...]
    unique: bool = False
    sparse: bool = False
    name: str = field(default="", compare=False)

    def key_for(self, document: Document) -> tuple | None:
        """Return the index key of a document, or None when sparse skips it."""
        values = tuple(get_value(document, key) for key in self.keys)
        if self.sparse and any(value is MISSING for value in values):
            return None
        return tuple(None if value is MISSING else value for value in values)


def find_unique_violation(
    indexes: Iterable[IndexSpec],
    candidate: Document,
    others: Iterable[Document],
) -> IndexSpec | None:
    """
    Return the first unique index ``candidate`` would violate against ``others``.

    ``others`` must not contain the candidate itself.
    """
    unique_indexes = [index for index in indexes if index.unique]
    if not unique_indexes:
        return None
    others = list(others)
    for index in unique_indexes:
        key = index.key_for(candidate)
        if key is None:
            continue
        for other in others:
            if index.key_for(other) == key:
                return index
    return None


# =============================================================================
# Abstract Base Class
# =============================================================================


class DocumentStore(ABC):
    """
    Abstract storage port used by every domain service.

    Every operation is a coroutine. Documents are plain dicts keyed by
    field name with an ``_id`` string; datetimes are timezone-aware
    ``datetime`` objects on both sides of the port.
    """

    backend_name: str = "abstract"

    def __init__(self) -> None:
        self._indexes: dict[str, list[IndexSpec]] = {}

    def create_index(
        self,
        collection: str,
        keys: list[str] | tuple[str, ...],
        *,
        unique: bool = False,
        sparse: bool = False,
    ) -> IndexSpec:
        """
        Declare an index on a collection.

        Declaring the same index twice is a no-op. Adapters that cannot
        enforce uniqueness themselves simply record the declaration.
        """
        spec = IndexSpec(
            keys=tuple(keys),
            unique=unique,
            sparse=sparse,
            name="_".join(keys) + ("_unique" if unique else ""),
        )
        declared = self._indexes.setdefault(collection, [])
        if spec not in declared:
            declared.append(spec)
        return spec

    def indexes_for(self, collection: str) -> list[IndexSpec]:
        return list(self._indexes.get(collection, []))

    @abstractmethod
    async def insert_one(self, collection: str, document: Document) -> str:
        """Insert a document, assigning ``_id`` when absent. Returns the id."""

    @abstractmethod
    async def find(
        self,
        collection: str,
        criteria: dict[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[Document]:
        """Return matching documents; ``limit=0`` means no limit."""

    async def find_one(
        self,
        collection: str,
        criteria: dict[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
    ) -> Document | None:
        documents = await self.find(collection, criteria, sort=sort, limit=1)
        return documents[0] if documents else None

    @abstractmethod
    async def update_one(
        self, collection: str, criteria: dict[str, Any], update: dict[str, Any]
    ) -> UpdateResult:
        """Apply update operators to the first matching document."""

    @abstractmethod
    async def update_many(
        self, collection: str, criteria: dict[str, Any], update: dict[str, Any]
    ) -> UpdateResult:
        """Apply update operators to every matching document."""

    @abstractmethod
    async def delete_one(self, collection: str, criteria: dict[str, Any]) -> int:
        """Delete the first matching document. Returns the deleted count."""

    @abstractmethod
    async def delete_many(self, collection: str, criteria: dict[str, Any]) -> int:
        """Delete every matching document. Returns the deleted count."""

    @abstractmethod
    async def count(self, collection: str, criteria: dict[str, Any] | None = None) -> int:
        """Count matching documents."""

    async def ping(self) -> bool:
        """Round-trip check used by the health endpoint."""
        await self.count("_health", {"_id": "ping"})
        return True
