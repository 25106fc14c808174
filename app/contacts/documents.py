"""
Contact document type.

Stored in the ``contacts`` collection, one per (owner, contact) pair:

    {
        "_id": "...",
        "owner": "<identity id>",
        "contact": "<identity id>",
        "name": "Ana (work)",
        "is_blocked": false,
        "created_at": <datetime>,
        "updated_at": <datetime>
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from authentication.documents import Identity

CONTACTS_COLLECTION = "contacts"


@dataclass
class Contact:
    id: str
    owner: str
    contact: str
    name: str
    is_blocked: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Target identity, attached by ContactBook for representations
    identity: Identity | None = field(default=None, compare=False)

    @classmethod
    def from_document(cls, document: dict) -> Contact:
        return cls(
            id=document["_id"],
            owner=document["owner"],
            contact=document["contact"],
            name=document.get("name", ""),
            is_blocked=bool(document.get("is_blocked", False)),
            created_at=document.get("created_at"),
            updated_at=document.get("updated_at"),
        )
