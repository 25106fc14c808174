"""
Extended-JSON codec for documents leaving the process.

Datetimes are the only non-JSON values the domain stores. They are written
as ``{"$date": "<iso8601>"}`` (relaxed extended JSON), which the remote Data
API understands natively and which survives a JSONField round-trip.

Usage:
    from core.documents.codec import decode_document, encode_document

    payload = encode_document({"created_at": timezone.now()})
    # {"created_at": {"$date": "2024-05-01T10:00:00.000000Z"}}
    decode_document(payload)["created_at"]  # aware datetime again
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

DATE_KEY = "$date"


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(value: Any) -> datetime:
    # canonical form nests milliseconds since epoch
    if isinstance(value, dict) and "$numberLong" in value:
        return datetime.fromtimestamp(int(value["$numberLong"]) / 1000, tz=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def encode_document(value: Any) -> Any:
    """Recursively replace datetimes with extended-JSON date wrappers."""
    if isinstance(value, datetime):
        return {DATE_KEY: _format_datetime(value)}
    if isinstance(value, dict):
        return {key: encode_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_document(item) for item in value]
    return value


def decode_document(value: Any) -> Any:
    """Recursively turn extended-JSON date wrappers back into datetimes."""
    if isinstance(value, dict):
        if len(value) == 1 and DATE_KEY in value:
            return _parse_datetime(value[DATE_KEY])
        return {key: decode_document(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_document(item) for item in value]
    return value
