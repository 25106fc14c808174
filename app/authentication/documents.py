"""
Identity document type.

An Identity is a registered account as stored in the ``users`` collection:

    {
        "_id": "6650f1c2a3b4c5d6e7000001",
        "name": "Ana",
        "email": "ana@example.com",
        "password": "<django password hash>",
        "virtual_number": "+5511987654321",
        "avatar": "",
        "status": "Available",
        "is_online": false,
        "last_seen": <datetime>,
        "created_at": <datetime>,
        "updated_at": <datetime>
    }

Identity doubles as the authenticated principal on ``request.user`` and on
websocket scopes, hence ``is_authenticated`` and ``pk``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

USERS_COLLECTION = "users"
DEFAULT_STATUS = "Available"


@dataclass
class Identity:
    id: str
    name: str
    email: str
    virtual_number: str
    password: str = field(default="", repr=False)
    avatar: str = ""
    status: str = DEFAULT_STATUS
    is_online: bool = False
    last_seen: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Principal protocol used by DRF permissions and throttles
    is_authenticated = True
    is_anonymous = False

    @property
    def pk(self) -> str:
        return self.id

    @classmethod
    def from_document(cls, document: dict) -> Identity:
        return cls(
            id=document["_id"],
            name=document.get("name", ""),
            email=document.get("email", ""),
            virtual_number=document.get("virtual_number", ""),
            password=document.get("password", ""),
            avatar=document.get("avatar") or "",
            status=document.get("status") or DEFAULT_STATUS,
            is_online=bool(document.get("is_online", False)),
            last_seen=document.get("last_seen"),
            created_at=document.get("created_at"),
            updated_at=document.get("updated_at"),
        )

    def __str__(self) -> str:
        return f"{self.name} <{self.virtual_number}>"
