"""
Translate store criteria into Django ORM expressions.

OrmDocumentStore keeps each document in StoredDocument.body (a JSONField).
This module turns the criteria and sort specs the services pass to the
storage port into ``Q`` objects and ``order_by`` fields, so filtering,
ordering, paging and counting all run in the database.

Dotted paths become JSON key transforms. JSON key lookups cannot look
inside arrays on every database, so scalars reached through an array are
also written out as DocumentKey rows and matched with a subquery:

    {"participants.user": "u7", "is_active": True}
    ->  (body->participants->user = "u7" OR pk IN <DocumentKey participants.user = "u7">)
        AND body->is_active = true

Supported operators:
    Equality, $eq $ne $in $nin $gt $gte $lt $lte $exists $regex ($options)
    $all $not, and the logical $and $or $nor.

Ordering comparisons and $regex look at the value stored at the path
itself, not inside arrays. Negations are evaluated as ``pk NOT IN (...)``
so documents missing the field match them, as they do in the other
adapters.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import TYPE_CHECKING

from django.db.models import Q

from core.documents.codec import DATE_KEY, encode_document
from core.documents.query import normalize_sort
from core.models import DocumentKey, StoredDocument

if TYPE_CHECKING:
    from typing import Any

    from django.db.models import QuerySet

_COMPARISONS = {"$gt": "gt", "$gte": "gte", "$lt": "lt", "$lte": "lte"}

# $options letters that become inline regex flags; "i" selects iregex
_INLINE_REGEX_FLAGS = ("m", "s", "x")


# =============================================================================
# Key Rows
# =============================================================================


def canonical(value: Any) -> str:
    """Stable JSON text of a value; the form DocumentKey rows are compared in."""
    return json.dumps(encode_document(value), sort_keys=True, separators=(",", ":"))


def array_keys(document: dict) -> set[tuple[str, str]]:
    """
    Collect ``(path, canonical value)`` for every scalar reached through an array.

    Example:
        array_keys({"participants": [{"user": "a"}], "tags": ["x"], "name": "n"})
        # {("participants.user", '"a"'), ("tags", '"x"')}
    """
    keys: set[tuple[str, str]] = set()
    _walk(document, "", False, keys)
    return keys


def _walk(value: Any, path: str, in_array: bool, keys: set[tuple[str, str]]) -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            _walk(item, f"{path}.{key}" if path else key, in_array, keys)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _walk(item, path, True, keys)
    elif in_array:
        keys.add((path, canonical(value)))


# =============================================================================
# Ordering
# =============================================================================


def order_by_fields(sort: Any) -> list[str]:
    """
    Turn a sort spec into ``order_by`` arguments.

    Row insertion order breaks ties, matching the stable sort of the
    memory adapter. Datetimes are stored as ``{"$date": "<fixed-width
    UTC>"}`` so ordering by the JSON value orders them chronologically.
    """
    fields = []
    for path, direction in normalize_sort(sort):
        name = "doc_id" if path == "_id" else _json_lookup(path)
        fields.append(f"-{name}" if direction < 0 else name)
    fields.append("id")
    return fields


def _json_lookup(path: str) -> str:
    return "body__" + path.replace(".", "__")


def _is_operator_dict(condition: Any) -> bool:
    return (
        isinstance(condition, dict)
        and bool(condition)
        and all(isinstance(key, str) and key.startswith("$") for key in condition)
    )


# =============================================================================
# Criteria
# =============================================================================


class CriteriaTranslator:
    """
    Build the ``Q`` for criteria on one collection.

    Usage:
        q = CriteriaTranslator("chats").translate({"participants.user": user_id})
        StoredDocument.objects.filter(collection="chats").filter(q)
    """

    def __init__(self, collection: str):
        self.collection = collection

    def translate(self, criteria: dict | None) -> Q:
        q = Q()
        for key, condition in (criteria or {}).items():
            if key == "$and":
                for clause in condition:
                    q &= self.translate(clause)
            elif key == "$or":
                q &= self._any(condition)
            elif key == "$nor":
                q &= self._negate(self._any(condition))
            elif key.startswith("$"):
                raise ValueError(f"Unsupported top-level operator: {key}")
            else:
                q &= self._field(key, condition)
        return q

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    def _documents(self, q: Q) -> QuerySet:
        return StoredDocument.objects.filter(collection=self.collection).filter(q).values("pk")

    def _keys(self, path: str, **lookups) -> QuerySet:
        return DocumentKey.objects.filter(
            collection=self.collection, path=path, **lookups
        ).values("document_id")

    def _negate(self, q: Q) -> Q:
        return ~Q(pk__in=self._documents(q))

    def _any(self, clauses) -> Q:
        combined = Q(pk__in=[])
        for clause in clauses:
            combined |= self.translate(clause)
        return combined

    # -------------------------------------------------------------------------
    # Field conditions
    # -------------------------------------------------------------------------

    def _field(self, path: str, condition: Any) -> Q:
        if isinstance(condition, re.Pattern):
            options = "i" if condition.flags & re.IGNORECASE else ""
            return self._regex(path, condition.pattern, options)
        if not _is_operator_dict(condition):
            return self._equals(path, condition)

        q = Q()
        for operator, operand in condition.items():
            if operator == "$options":
                continue
            q &= self._operator(path, operator, operand, condition)
        return q

    def _operator(self, path: str, operator: str, operand: Any, condition: dict) -> Q:
        if operator == "$eq":
            return self._equals(path, operand)
        if operator == "$ne":
            return self._negate(self._equals(path, operand))
        if operator == "$in":
            return self._in(path, operand)
        if operator == "$nin":
            return self._negate(self._in(path, operand))
        if operator in _COMPARISONS:
            return self._compare(path, _COMPARISONS[operator], operand)
        if operator == "$exists":
            return self._exists(path) if operand else self._negate(self._exists(path))
        if operator == "$regex":
            return self._regex(path, operand, condition.get("$options", ""))
        if operator == "$all":
            q = Q()
            for item in operand:
                q &= self._equals(path, item)
            return q
        if operator == "$not":
            return self._negate(self._field(path, operand))
        raise ValueError(f"Unsupported query operator: {operator}")

    def _equals(self, path: str, value: Any) -> Q:
        if path == "_id":
            return Q(doc_id=value)
        if value is None:
            # null or absent
            return Q(**{_json_lookup(path): None}) | self._negate(self._exists(path))
        if isinstance(value, datetime):
            stored = Q(**{f"{_json_lookup(path)}__{DATE_KEY}": encode_document(value)[DATE_KEY]})
        else:
            stored = Q(**{_json_lookup(path): value})
        if isinstance(value, (dict, list)):
            return stored
        return stored | Q(pk__in=self._keys(path, value=canonical(value)))

    def _in(self, path: str, options) -> Q:
        options = list(options)
        if path == "_id":
            return Q(doc_id__in=[str(option) for option in options])
        q = Q(pk__in=[])
        for option in options:
            q |= self._equals(path, option)
        return q

    def _exists(self, path: str) -> Q:
        *parents, last = path.split(".")
        if parents:
            present = Q(**{f"{_json_lookup('.'.join(parents))}__has_key": last})
        else:
            present = Q(body__has_key=last)
        return present | Q(pk__in=self._keys(path))

    def _compare(self, path: str, lookup: str, operand: Any) -> Q:
        if path == "_id":
            return Q(**{f"doc_id__{lookup}": operand})
        if isinstance(operand, datetime):
            return Q(**{f"{_json_lookup(path)}__{DATE_KEY}__{lookup}": encode_document(operand)[DATE_KEY]})
        return Q(**{f"{_json_lookup(path)}__{lookup}": operand})

    def _regex(self, path: str, pattern: str, options: str) -> Q:
        options = options or ""
        flags = "".join(flag for flag in _INLINE_REGEX_FLAGS if flag in options)
        if flags:
            pattern = f"(?{flags}){pattern}"
        lookup = "iregex" if "i" in options else "regex"
        field = "doc_id" if path == "_id" else _json_lookup(path)
        return Q(**{f"{field}__{lookup}": pattern})
