"""
Relational backing for the ORM document store.

The domain layer stores schemaless documents; when DOCUMENT_STORE_BACKEND
is ``orm`` every document becomes one StoredDocument row. The JSON body is
kept in extended-JSON form (see core.documents.codec) so datetimes
survive the round-trip.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)

Models:
    StoredDocument: One document of one collection
    DocumentKey: One value reached through an array inside a document
    DocumentUniqueKey: One unique-index key of a document
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing row timestamps.

    Fields:
        created_at: Automatically set when the row is first created
        updated_at: Automatically updated whenever the row is saved
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"


class StoredDocument(BaseModel):
    """
    A single document held by the ORM document store.

    Fields:
        collection: Logical collection name ("users", "chats", ...)
        doc_id: The document's ``_id``, unique within its collection
        body: Full document including ``_id``, extended-JSON encoded
    """

    collection = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Logical collection the document belongs to",
    )
    doc_id = models.CharField(
        max_length=64,
        help_text="Document identifier, unique within the collection",
    )
    body = models.JSONField(
        default=dict,
        help_text="Document body in extended JSON",
    )

    class Meta:
        db_table = "core_stored_document"
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["collection", "doc_id"],
                name="unique_document_per_collection",
            )
        ]

    def __str__(self) -> str:
        return f"{self.collection}/{self.doc_id}"


class DocumentKey(models.Model):
    """
    A scalar reached through an array inside a stored document.

    JSON key lookups cannot look inside arrays on every database, so each
    array element value is written out here under its dotted path, e.g.
    ``participants.user`` -> ``"64f0..."``. Rewritten on every save.

    Fields:
        document: Owning StoredDocument
        collection: Copied from the document for index locality
        path: Dotted path without array positions
        value: Canonical JSON of the element value
    """

    document = models.ForeignKey(
        StoredDocument,
        on_delete=models.CASCADE,
        related_name="keys",
    )
    collection = models.CharField(max_length=64)
    path = models.CharField(max_length=255)
    value = models.TextField()

    class Meta:
        db_table = "core_document_key"
        indexes = [
            models.Index(fields=["collection", "path", "value"], name="document_key_lookup"),
        ]

    def __str__(self) -> str:
        return f"{self.collection}.{self.path}={self.value}"


class DocumentUniqueKey(models.Model):
    """
    The key a document holds in one declared unique index.

    The database constraint is what rejects a duplicate, so two concurrent
    writers cannot both succeed. Sparse indexes simply have no row for
    documents missing a key field.

    Fields:
        document: Owning StoredDocument
        collection: Collection the index is declared on
        index: Index name, e.g. ``pair_key_unique``
        value: Canonical JSON of the key tuple
    """

    document = models.ForeignKey(
        StoredDocument,
        on_delete=models.CASCADE,
        related_name="unique_keys",
    )
    collection = models.CharField(max_length=64)
    index = models.CharField(max_length=255)
    value = models.TextField()

    class Meta:
        db_table = "core_document_unique_key"
        constraints = [
            models.UniqueConstraint(
                fields=["collection", "index", "value"],
                name="unique_index_key_per_collection",
            )
        ]

    def __str__(self) -> str:
        return f"{self.collection}.{self.index}={self.value}"
