"""
Django ORM document store.

Persists every document as one core.models.StoredDocument row and lets the
database do the querying: criteria become ``Q`` objects (see
core.documents.lookups), sorts become ``order_by`` with slicing for
skip/limit, and counts run as ``COUNT(*)``.

Two side tables are rewritten on every write:
    - DocumentKey: scalars reached through arrays, so ``participants.user``
      style conditions are answered with an indexed subquery
    - DocumentUniqueKey: one row per declared unique index, backed by a
      database unique constraint. Sparse indexes write no row for
      documents missing the key, so unsetting the field frees it.

Updates are applied in Python with core.documents.query.apply_update on
rows locked with ``select_for_update``.

All ORM access runs through channels' ``database_sync_to_async`` so the
store can be awaited from consumers and async services alike.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING

from channels.db import database_sync_to_async
from django.db import DatabaseError, IntegrityError, transaction

from core.documents.base import DocumentStore, DuplicateKeyError, UpdateResult
from core.documents.codec import decode_document, encode_document
from core.documents.lookups import CriteriaTranslator, array_keys, canonical, order_by_fields
from core.documents.query import apply_update
from core.exceptions import ExternalServiceError
from core.helpers import new_object_id
from core.models import DocumentKey, DocumentUniqueKey, StoredDocument

if TYPE_CHECKING:
    from typing import Any

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)


class OrmDocumentStore(DocumentStore):
    """Adapter storing documents in the Django database."""

    backend_name = "orm"

    # =========================================================================
    # Synchronous internals
    # =========================================================================

    def _rows(self, collection: str, criteria: dict | None, *, for_update: bool = False) -> QuerySet:
        queryset = StoredDocument.objects.filter(collection=collection).filter(
            CriteriaTranslator(collection).translate(criteria)
        )
        if for_update:
            queryset = queryset.select_for_update()
        return queryset

    def _write_keys(self, row: StoredDocument, document: dict) -> None:
        """
        Replace the array keys and unique keys of a row.

        Raises:
            DuplicateKeyError: If another document holds the same unique key
        """
        row.keys.all().delete()
        DocumentKey.objects.bulk_create(
            DocumentKey(document=row, collection=row.collection, path=path, value=value)
            for path, value in sorted(array_keys(document))
        )

        row.unique_keys.all().delete()
        unique_keys = []
        for index in self.indexes_for(row.collection):
            if not index.unique:
                continue
            key = index.key_for(document)
            if key is None:
                continue
            unique_keys.append(
                DocumentUniqueKey(
                    document=row,
                    collection=row.collection,
                    index=index.name,
                    value=canonical(list(key)),
                )
            )
        if not unique_keys:
            return
        try:
            with transaction.atomic():
                DocumentUniqueKey.objects.bulk_create(unique_keys)
        except IntegrityError as exc:
            clash = next(
                (
                    unique_key.index
                    for unique_key in unique_keys
                    if DocumentUniqueKey.objects.filter(
                        collection=row.collection, index=unique_key.index, value=unique_key.value
                    )
                    .exclude(document=row)
                    .exists()
                ),
                "unknown",
            )
            raise DuplicateKeyError(
                f"Duplicate key for index {clash} in {row.collection}",
                details={"collection": row.collection, "index": clash},
            ) from exc

    def _insert_sync(self, collection: str, document: dict) -> str:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", new_object_id())
        with transaction.atomic():
            try:
                with transaction.atomic():
                    row = StoredDocument.objects.create(
                        collection=collection,
                        doc_id=stored["_id"],
                        body=encode_document(stored),
                    )
            except IntegrityError as exc:
                logger.info(f"Rejected duplicate _id {stored['_id']} in {collection}")
                raise DuplicateKeyError(
                    f"Duplicate _id in {collection}",
                    details={"collection": collection, "index": "_id"},
                ) from exc
            self._write_keys(row, stored)
        return stored["_id"]

    def _find_sync(self, collection: str, criteria: dict | None, sort, skip: int, limit: int) -> list[dict]:
        queryset = self._rows(collection, criteria).order_by(*order_by_fields(sort))
        if limit:
            queryset = queryset[skip : skip + limit]
        elif skip:
            queryset = queryset[skip:]
        return [decode_document(body) for body in queryset.values_list("body", flat=True)]

    def _update_sync(self, collection: str, criteria: dict, update: dict, many: bool) -> UpdateResult:
        matched = modified = 0
        with transaction.atomic():
            rows = self._rows(collection, criteria, for_update=True).order_by("id")
            if not many:
                rows = rows[:1]
            for row in list(rows):
                matched += 1
                document = decode_document(row.body)
                if not apply_update(document, update):
                    continue
                row.body = encode_document(document)
                row.save(update_fields=["body", "updated_at"])
                self._write_keys(row, document)
                modified += 1
        return UpdateResult(matched=matched, modified=modified)

    def _delete_sync(self, collection: str, criteria: dict, many: bool) -> int:
        with transaction.atomic():
            targets = self._rows(collection, criteria, for_update=True).order_by("id").values_list("pk", flat=True)
            pks = list(targets if many else targets[:1])
            if not pks:
                return 0
            StoredDocument.objects.filter(pk__in=pks).delete()
        return len(pks)

    def _count_sync(self, collection: str, criteria: dict | None) -> int:
        return self._rows(collection, criteria).count()

    # =========================================================================
    # DocumentStore interface
    # =========================================================================

    async def insert_one(self, collection: str, document: dict) -> str:
        return await database_sync_to_async(self._insert_sync)(collection, document)

    async def find(
        self,
        collection: str,
        criteria: dict[str, Any] | None = None,
        *,
        sort=None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict]:
        return await database_sync_to_async(self._find_sync)(collection, criteria, sort, skip, limit)

    async def update_one(self, collection: str, criteria: dict, update: dict) -> UpdateResult:
        return await database_sync_to_async(self._update_sync)(collection, criteria, update, False)

    async def update_many(self, collection: str, criteria: dict, update: dict) -> UpdateResult:
        return await database_sync_to_async(self._update_sync)(collection, criteria, update, True)

    async def delete_one(self, collection: str, criteria: dict) -> int:
        return await database_sync_to_async(self._delete_sync)(collection, criteria, False)

    async def delete_many(self, collection: str, criteria: dict) -> int:
        return await database_sync_to_async(self._delete_sync)(collection, criteria, True)

    async def count(self, collection: str, criteria: dict[str, Any] | None = None) -> int:
        return await database_sync_to_async(self._count_sync)(collection, criteria)

    async def ping(self) -> bool:
        try:
            return await super().ping()
        except DatabaseError as exc:
            logger.error(f"Database ping failed: {exc}")
            raise ExternalServiceError("Database unavailable", error_code="DATABASE_UNAVAILABLE") from exc
