"""
Document-store query language evaluated in Python.

Implements the filter, update and sort subset the domain services use, with
the semantics of the usual document-store operators:

Filters:
    Equality on dotted paths ("participants.user" traverses arrays of
    sub-documents), comparison ($eq $ne $gt $gte $lt $lte), membership
    ($in $nin $all), $exists, $regex with $options,
    $not, and the logical $and / $or / $nor.

Updates:
    $set $unset $inc $push (with $each) $addToSet $pull

Usage:
    from core.documents.query import apply_update, matches, sort_documents

    matches(chat, {"participants.user": user_id, "is_active": True})
    apply_update(message, {"$push": {"read_by": {"user": reader_id, "read_at": now}}})
    sort_documents(chats, [("updated_at", -1), ("_id", 1)])

The memory adapter evaluates filters here; the ORM adapter translates the
same subset into SQL (core.documents.lookups) and the remote adapter sends
it to a server that implements it natively. Both adapters apply updates
with apply_update.
"""

from __future__ import annotations

import copy
import re
from datetime import date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


# =============================================================================
# Path Helpers
# =============================================================================


def get_value(document: Any, path: str) -> Any:
    """
    Return the value at a dotted path without fanning out over arrays.

    Numeric segments index into lists. Returns MISSING when any segment is
    absent.
    """
    current = document
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def _collect(value: Any, parts: list[str]) -> list[Any]:
    """Collect every value reachable through ``parts``, fanning out over arrays."""
    if not parts:
        return [value]
    head, rest = parts[0], parts[1:]
    if isinstance(value, dict):
        if head not in value:
            return []
        return _collect(value[head], rest)
    if isinstance(value, list):
        if head.isdigit():
            index = int(head)
            return _collect(value[index], rest) if index < len(value) else []
        collected: list[Any] = []
        for item in value:
            if isinstance(item, dict):
                collected.extend(_collect(item, parts))
        return collected
    return []


def _expand(values: list[Any]):
    for value in values:
        yield value
        if isinstance(value, list):
            yield from value


def _is_operator_dict(condition: Any) -> bool:
    return (
        isinstance(condition, dict)
        and bool(condition)
        and all(isinstance(key, str) and key.startswith("$") for key in condition)
    )


def _eq(left: Any, right: Any) -> bool:
    # True == 1 in Python but not in the store
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _equals_any(values: list[Any], target: Any) -> bool:
    if not values:
        return target is None
    return any(_eq(value, target) for value in _expand(values))


def _compare(value: Any, operand: Any, operator: str) -> bool:
    if value is None or operand is None or isinstance(value, (list, dict)):
        return False
    try:
        if operator == "$gt":
            return value > operand
        if operator == "$gte":
            return value >= operand
        if operator == "$lt":
            return value < operand
        return value <= operand
    except TypeError:
        return False


def _compile_regex(pattern: Any, options: str = "") -> re.Pattern:
    if isinstance(pattern, re.Pattern):
        return pattern
    flags = 0
    for option in options or "":
        flags |= _REGEX_FLAGS.get(option, 0)
    return re.compile(pattern, flags)


# =============================================================================
# Filter Matching
# =============================================================================


def matches(document: dict, criteria: dict | None) -> bool:
    """Return True when ``document`` satisfies ``criteria``."""
    if not criteria:
        return True
    for key, condition in criteria.items():
        if key == "$and":
            if not all(matches(document, clause) for clause in condition):
                return False
        elif key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
        elif key == "$nor":
            if any(matches(document, clause) for clause in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level operator: {key}")
        elif not _match_values(_collect(document, key.split(".")), condition):
            return False
    return True


def _match_values(values: list[Any], condition: Any) -> bool:
    if isinstance(condition, re.Pattern):
        return any(isinstance(v, str) and condition.search(v) for v in _expand(values))
    if not _is_operator_dict(condition):
        return _equals_any(values, condition)
    for operator, operand in condition.items():
        if operator == "$options":
            continue
        if not _apply_operator(operator, operand, values, condition):
            return False
    return True


def _apply_operator(operator: str, operand: Any, values: list[Any], condition: dict) -> bool:
    if operator == "$eq":
        return _equals_any(values, operand)
    if operator == "$ne":
        return not _equals_any(values, operand)
    if operator == "$in":
        return any(_equals_any(values, option) for option in operand)
    if operator == "$nin":
        return not any(_equals_any(values, option) for option in operand)
    if operator in ("$gt", "$gte", "$lt", "$lte"):
        return any(_compare(value, operand, operator) for value in _expand(values))
    if operator == "$exists":
        return bool(values) == bool(operand)
    if operator == "$regex":
        pattern = _compile_regex(operand, condition.get("$options", ""))
        return any(isinstance(v, str) and pattern.search(v) for v in _expand(values))
    if operator == "$all":
        return all(_equals_any(values, item) for item in operand)
    if operator == "$not":
        return not _match_values(values, operand)
    raise ValueError(f"Unsupported query operator: {operator}")


# =============================================================================
# Updates
# =============================================================================


def _set_path(document: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    current: Any = document
    for part in parts[:-1]:
        if isinstance(current, list) and part.isdigit():
            current = current[int(part)]
            continue
        if part not in current or not isinstance(current[part], (dict, list)):
            current[part] = {}
        current = current[part]
    last = parts[-1]
    if isinstance(current, list) and last.isdigit():
        current[int(last)] = value
    else:
        current[last] = value


def _unset_path(document: dict, path: str) -> None:
    parts = path.split(".")
    parent = get_value(document, ".".join(parts[:-1])) if len(parts) > 1 else document
    if isinstance(parent, dict):
        parent.pop(parts[-1], None)


def _array_at(document: dict, path: str, operator: str) -> list:
    current = get_value(document, path)
    if current is MISSING or current is None:
        current = []
        _set_path(document, path, current)
    if not isinstance(current, list):
        raise ValueError(f"{operator} requires an array at '{path}'")
    return current


def _each(value: Any) -> list[Any]:
    if isinstance(value, dict) and "$each" in value:
        return [copy.deepcopy(item) for item in value["$each"]]
    return [copy.deepcopy(value)]


def _op_set(document: dict, path: str, value: Any) -> None:
    _set_path(document, path, copy.deepcopy(value))


def _op_unset(document: dict, path: str, value: Any) -> None:
    _unset_path(document, path)


def _op_inc(document: dict, path: str, value: Any) -> None:
    current = get_value(document, path)
    _set_path(document, path, (0 if current is MISSING else current) + value)


def _op_push(document: dict, path: str, value: Any) -> None:
    _array_at(document, path, "$push").extend(_each(value))


def _op_add_to_set(document: dict, path: str, value: Any) -> None:
    array = _array_at(document, path, "$addToSet")
    for item in _each(value):
        if not any(_eq(existing, item) for existing in array):
            array.append(item)


def _op_pull(document: dict, path: str, value: Any) -> None:
    current = get_value(document, path)
    if not isinstance(current, list):
        return
    if _is_operator_dict(value):
        keep = [item for item in current if not _match_values([item], value)]
    elif isinstance(value, dict):
        keep = [item for item in current if not (isinstance(item, dict) and matches(item, value))]
    else:
        keep = [item for item in current if not _eq(item, value)]
    current[:] = keep


_UPDATE_OPERATORS = {
    "$set": _op_set,
    "$unset": _op_unset,
    "$inc": _op_inc,
    "$push": _op_push,
    "$addToSet": _op_add_to_set,
    "$pull": _op_pull,
}


def apply_update(document: dict, update: dict) -> bool:
    """
    Apply update operators to ``document`` in place.

    Returns True when the document content changed.

    Raises:
        ValueError: If the update is not expressed with supported operators
    """
    if not update or not all(key.startswith("$") for key in update):
        raise ValueError("Updates must be expressed with update operators")
    before = copy.deepcopy(document)
    for operator, fields in update.items():
        handler = _UPDATE_OPERATORS.get(operator)
        if handler is None:
            raise ValueError(f"Unsupported update operator: {operator}")
        for path, value in fields.items():
            if path == "_id":
                raise ValueError("The _id field is immutable")
            handler(document, path, value)
    return document != before


# =============================================================================
# Sorting
# =============================================================================


def normalize_sort(sort: Any) -> list[tuple[str, int]]:
    """Accept ``[(field, dir), ...]`` or ``{field: dir}`` and return a list."""
    if not sort:
        return []
    if isinstance(sort, dict):
        return [(field, int(direction)) for field, direction in sort.items()]
    return [(field, int(direction)) for field, direction in sort]


def _sort_key(value: Any) -> tuple:
    if value is MISSING or value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, (datetime, date)):
        return (4, value)
    return (5, str(value))


def sort_documents(documents: list[dict], sort: Any) -> list[dict]:
    """Sort documents in place by a multi-key sort spec and return them."""
    for field, direction in reversed(normalize_sort(sort)):
        documents.sort(key=lambda document: _sort_key(get_value(document, field)), reverse=direction < 0)
    return documents
