"""
Chat and message document types.

Chats live in the ``chats`` collection:

    {
        "_id": "...",
        "type": "individual" | "group",
        "name": "", "description": "", "avatar": "",
        "participants": [{"user": "<id>", "role": "admin", "joined_at": <dt>}],
        "last_message": "<message id>" | null,
        "is_active": true,
        "pair_key": "<id>:<id>",        # individual chats only, removed on deactivate
        "created_by": "<id>",
        "created_at": <dt>, "updated_at": <dt>
    }

Messages live in the ``messages`` collection:

    {
        "_id": "...",
        "chat": "<chat id>", "sender": "<identity id>",
        "content": "hello", "message_type": "text",
        "reply_to": "<message id>" | null,
        "attachment": {...} | null,
        "read_by": [{"user": "<id>", "read_at": <dt>}],
        "is_deleted": false, "deleted_at": null, "edited_at": null,
        "created_at": <dt>, "updated_at": <dt>
    }

The sender of a message never appears in its read_by implicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from authentication.documents import Identity

CHATS_COLLECTION = "chats"
MESSAGES_COLLECTION = "messages"


class ChatType(models.TextChoices):
    INDIVIDUAL = "individual", "Individual"
    GROUP = "group", "Group"


class ParticipantRole(models.TextChoices):
    ADMIN = "admin", "Admin"
    MEMBER = "member", "Member"


class MessageType(models.TextChoices):
    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    VIDEO = "video", "Video"
    AUDIO = "audio", "Audio"
    DOCUMENT = "document", "Document"


def pair_key(user_a: str, user_b: str) -> str:
    """Order-independent key of an individual chat's two identities."""
    first, second = sorted((str(user_a), str(user_b)))
    return f"{first}:{second}"


# =============================================================================
# Chat
# =============================================================================


@dataclass
class Participant:
    user: str
    role: str = ParticipantRole.MEMBER
    joined_at: datetime | None = None
    identity: Identity | None = field(default=None, compare=False)

    @classmethod
    def from_document(cls, document: dict) -> Participant:
        return cls(
            user=document["user"],
            role=document.get("role", ParticipantRole.MEMBER),
            joined_at=document.get("joined_at"),
        )

    def to_document(self) -> dict:
        return {"user": self.user, "role": str(self.role), "joined_at": self.joined_at}


@dataclass
class Chat:
    """
    A conversation container.

    ``preview`` and ``unread_count`` are filled in by chat.hydration for
    listings; they are not stored.
    """

    id: str
    type: str
    participants: list[Participant]
    name: str = ""
    description: str = ""
    avatar: str = ""
    last_message: str | None = None
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    preview: Message | None = field(default=None, compare=False)
    unread_count: int = field(default=0, compare=False)

    @classmethod
    def from_document(cls, document: dict) -> Chat:
        return cls(
            id=document["_id"],
            type=document["type"],
            participants=[Participant.from_document(p) for p in document.get("participants", [])],
            name=document.get("name") or "",
            description=document.get("description") or "",
            avatar=document.get("avatar") or "",
            last_message=document.get("last_message"),
            is_active=bool(document.get("is_active", True)),
            created_by=document.get("created_by"),
            created_at=document.get("created_at"),
            updated_at=document.get("updated_at"),
        )

    @property
    def is_group(self) -> bool:
        return self.type == ChatType.GROUP

    @property
    def participant_ids(self) -> list[str]:
        return [participant.user for participant in self.participants]

    def get_participant(self, user_id: str) -> Participant | None:
        for participant in self.participants:
            if participant.user == user_id:
                return participant
        return None

    def has_participant(self, user_id: str) -> bool:
        return self.get_participant(user_id) is not None

    def is_admin(self, user_id: str) -> bool:
        participant = self.get_participant(user_id)
        return participant is not None and participant.role == ParticipantRole.ADMIN


# =============================================================================
# Message
# =============================================================================


@dataclass
class ReadReceipt:
    user: str
    read_at: datetime | None = None


@dataclass
class Message:
    """
    A single authored item within a chat.

    ``sender_identity`` and ``reply_preview`` are filled in by
    chat.hydration for representations; they are not stored.
    """

    id: str
    chat: str
    sender: str
    content: str
    message_type: str = MessageType.TEXT
    reply_to: str | None = None
    attachment: dict | None = None
    read_by: list[ReadReceipt] = field(default_factory=list)
    is_deleted: bool = False
    deleted_at: datetime | None = None
    edited_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    sender_identity: Identity | None = field(default=None, compare=False)
    reply_preview: Message | None = field(default=None, compare=False)

    @classmethod
    def from_document(cls, document: dict) -> Message:
        return cls(
            id=document["_id"],
            chat=document["chat"],
            sender=document["sender"],
            content=document.get("content", ""),
            message_type=document.get("message_type", MessageType.TEXT),
            reply_to=document.get("reply_to"),
            attachment=document.get("attachment"),
            read_by=[
                ReadReceipt(user=receipt["user"], read_at=receipt.get("read_at"))
                for receipt in document.get("read_by", [])
            ],
            is_deleted=bool(document.get("is_deleted", False)),
            deleted_at=document.get("deleted_at"),
            edited_at=document.get("edited_at"),
            created_at=document.get("created_at"),
            updated_at=document.get("updated_at"),
        )

    @property
    def is_edited(self) -> bool:
        return self.edited_at is not None

    def is_read_by(self, user_id: str) -> bool:
        return any(receipt.user == user_id for receipt in self.read_by)


@dataclass
class MessagePage:
    """One page of a chat's history, oldest first."""

    messages: list[Message]
    page: int
    limit: int
    total: int
