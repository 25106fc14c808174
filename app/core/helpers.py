"""
Helper functions for common infrastructure operations.

This module provides domain-agnostic utility functions for:
- Document identifier generation
- Pagination arguments
- Boolean query-parameter parsing

Usage:
    from core.helpers import new_object_id, normalize_pagination

    document_id = new_object_id()
    page, limit = normalize_pagination(request.query_params.get("page"), None)
"""

from __future__ import annotations

import itertools
import os
import threading
import time

# 5 random bytes per process and a 3-byte counter, as in document-store object ids
_PROCESS_RANDOM = os.urandom(5).hex()
_counter = itertools.count(int.from_bytes(os.urandom(3), "big"))
_counter_lock = threading.Lock()

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def new_object_id() -> str:
    """
    Generate a 24 hex character, object-id shaped identifier.

    Layout: 4-byte seconds timestamp, 5-byte per-process random value,
    3-byte incrementing counter. Ids created by one process therefore sort
    in creation order, which the stores use as a tie-break.

    Example:
        new_object_id()  # '6650f1c2a3b4c5d6e7000001'
    """
    with _counter_lock:
        count = next(_counter) % 0xFFFFFF
    return f"{int(time.time()) & 0xFFFFFFFF:08x}{_PROCESS_RANDOM}{count:06x}"


def normalize_pagination(
    page: object,
    limit: object,
    *,
    default_limit: int = 50,
    max_limit: int = 100,
) -> tuple[int, int]:
    """
    Coerce page / limit arguments into usable values.

    Non-numeric or non-positive values fall back to page 1 and the default
    limit; limits above ``max_limit`` are capped.

    Example:
        normalize_pagination("2", "500")  # (2, 100)
        normalize_pagination(None, "abc")  # (1, 50)
    """
    try:
        page_number = int(page)
    except (TypeError, ValueError):
        page_number = 1
    try:
        page_size = int(limit)
    except (TypeError, ValueError):
        page_size = default_limit

    if page_number < 1:
        page_number = 1
    if page_size < 1:
        page_size = default_limit
    return page_number, min(page_size, max_limit)


def parse_bool(value: object, default: bool = False) -> bool:
    """Interpret a query-string style flag ("true", "1", "yes", "on")."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES
