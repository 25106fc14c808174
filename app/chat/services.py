"""
Chat domain services.

This module provides:
- ChatRegistry: chats, membership rolls, roles, last-message pointer
- MessageStore: messages, read receipts, soft deletion, text edits

Both are used by the REST views and the realtime consumer, so every rule
lives here exactly once.

Authorization:
    Every message operation is gated on chat participation. Group
    membership changes require the admin role, except self-removal.

Consistency:
    Message creation and the last-message pointer update are two separate
    writes. A failure between them leaves the pointer one message behind
    until the next send.

Usage:
    store = get_document_store()
    chats = ChatRegistry(store)
    messages = MessageStore(store, chats)

    chat = await chats.create_individual(alice_id, bob_id)
    message = await messages.send(chat.id, alice_id, "hello")
    unread = await messages.count_unread(chat.id, bob_id)
"""

from __future__ import annotations

import re

from django.utils import timezone

from authentication.services import IdentityDirectory
from chat.constants import GROUP_CONFIG, MESSAGE_CONFIG
from chat.documents import (
    CHATS_COLLECTION,
    MESSAGES_COLLECTION,
    Chat,
    ChatType,
    Message,
    MessagePage,
    MessageType,
    ParticipantRole,
    pair_key,
)
from core.documents import DuplicateKeyError
from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.services import BaseService

CHAT_LISTING_SORT = [("updated_at", -1), ("_id", 1)]
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


# =============================================================================
# Chat Registry
# =============================================================================


class ChatRegistry(BaseService):
    """
    Owns chat documents and their participant lists.

    Invariants:
        - Individual chats have exactly two participants and no name
        - At most one active individual chat per unordered pair
          (sparse unique index on pair_key)
        - Group chats are created with the creator as admin
    """

    collection = CHATS_COLLECTION

    def __init__(self, store):
        super().__init__(store)
        store.create_index(self.collection, ["pair_key"], unique=True, sparse=True)
        self.directory = IdentityDirectory(store)

    # =========================================================================
    # Lookup
    # =========================================================================

    async def get_by_id(self, chat_id: str) -> Chat:
        """
        Raises:
            NotFoundError: If the chat does not exist
        """
        document = await self.store.find_one(self.collection, {"_id": chat_id})
        if document is None:
            raise NotFoundError(
                "Chat not found",
                error_code="CHAT_NOT_FOUND",
                details={"chat_id": chat_id},
            )
        return Chat.from_document(document)

    async def get_for_participant(self, chat_id: str, user_id: str) -> Chat:
        """
        Load a chat on behalf of one of its participants.

        Raises:
            NotFoundError: If the chat does not exist
            PermissionDeniedError: If user_id is not a participant
        """
        chat = await self.get_by_id(chat_id)
        if not chat.has_participant(user_id):
            raise PermissionDeniedError(
                "You are not a participant in this chat",
                error_code="NOT_PARTICIPANT",
                details={"chat_id": chat_id},
            )
        return chat

    async def is_participant(self, chat_id: str, user_id: str) -> bool:
        if not chat_id or not user_id:
            return False
        return await self.store.count(
            self.collection, {"_id": chat_id, "participants.user": user_id}
        ) > 0

    async def list_for_user(self, user_id: str) -> list[Chat]:
        """Active chats of a user, most recently updated first."""
        documents = await self.store.find(
            self.collection,
            {"participants.user": user_id, "is_active": True},
            sort=CHAT_LISTING_SORT,
        )
        return [Chat.from_document(document) for document in documents]

    async def chat_ids_for(self, user_id: str, active_only: bool = False) -> list[str]:
        criteria: dict = {"participants.user": user_id}
        if active_only:
            criteria["is_active"] = True
        documents = await self.store.find(self.collection, criteria, sort=CHAT_LISTING_SORT)
        return [document["_id"] for document in documents]

    async def search_groups(self, user_id: str, term: str) -> list[Chat]:
        """Active group chats of the user whose name contains ``term``."""
        term = (term or "").strip()
        if not term:
            return []
        documents = await self.store.find(
            self.collection,
            {
                "participants.user": user_id,
                "is_active": True,
                "type": ChatType.GROUP.value,
                "name": {"$regex": re.escape(term), "$options": "i"},
            },
            sort=[("name", 1), ("_id", 1)],
            limit=GROUP_CONFIG.SEARCH_MAX_RESULTS,
        )
        return [Chat.from_document(document) for document in documents]

    # =========================================================================
    # Creation
    # =========================================================================

    async def get_or_create_individual(self, user_a: str, user_b: str) -> tuple[Chat, bool]:
        """
        Return the active individual chat of a pair, creating it if needed.

        Returns:
            (chat, created)

        Raises:
            ValidationError: If both ids are the same identity
            NotFoundError: If either identity does not exist
        """
        if user_a == user_b:
            raise ValidationError(
                "Cannot start a chat with yourself",
                error_code="CANNOT_CHAT_WITH_SELF",
            )
        await self.directory.require(user_a)
        await self.directory.require(user_b)

        key = pair_key(user_a, user_b)
        existing = await self.store.find_one(self.collection, {"pair_key": key, "is_active": True})
        if existing is not None:
            return Chat.from_document(existing), False

        now = timezone.now()
        document = {
            "type": ChatType.INDIVIDUAL.value,
            "name": "",
            "description": "",
            "avatar": "",
            "participants": [
                {"user": user_a, "role": ParticipantRole.MEMBER.value, "joined_at": now},
                {"user": user_b, "role": ParticipantRole.MEMBER.value, "joined_at": now},
            ],
            "last_message": None,
            "is_active": True,
            "pair_key": key,
            "created_by": user_a,
            "created_at": now,
            "updated_at": now,
        }
        try:
            document["_id"] = await self.store.insert_one(self.collection, document)
        except DuplicateKeyError:
            # Lost a creation race: the winner's chat is the answer
            existing = await self.store.find_one(self.collection, {"pair_key": key})
            if existing is None:
                raise
            return Chat.from_document(existing), False

        self.get_logger().info(f"Created individual chat {document['_id']} for {key}")
        return Chat.from_document(document), True

    async def create_individual(self, user_a: str, user_b: str) -> Chat:
        chat, _ = await self.get_or_create_individual(user_a, user_b)
        return chat

    async def create_group(
        self,
        creator_id: str,
        name: str,
        participant_ids: list[str],
        description: str = "",
        avatar: str = "",
    ) -> Chat:
        """
        Create a group chat with the creator as admin.

        Raises:
            ValidationError: If the name is blank or nobody besides the creator is listed
            NotFoundError: Naming the first participant id that does not resolve
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name is required", error_code="GROUP_NAME_REQUIRED")

        members: list[str] = []
        for participant_id in participant_ids or []:
            participant_id = str(participant_id)
            if participant_id != creator_id and participant_id not in members:
                members.append(participant_id)
        if not members:
            raise ValidationError(
                "A group needs at least one participant besides the creator",
                error_code="PARTICIPANTS_REQUIRED",
            )

        await self.directory.require(creator_id)
        identities = await self.directory.get_many(members)
        for member_id in members:
            if member_id not in identities:
                raise NotFoundError(
                    f"User {member_id} not found",
                    error_code="USER_NOT_FOUND",
                    details={"user_id": member_id},
                )

        now = timezone.now()
        participants = [{"user": creator_id, "role": ParticipantRole.ADMIN.value, "joined_at": now}]
        participants += [
            {"user": member_id, "role": ParticipantRole.MEMBER.value, "joined_at": now}
            for member_id in members
        ]
        document = {
            "type": ChatType.GROUP.value,
            "name": name,
            "description": description or "",
            "avatar": avatar or "",
            "participants": participants,
            "last_message": None,
            "is_active": True,
            "created_by": creator_id,
            "created_at": now,
            "updated_at": now,
        }
        document["_id"] = await self.store.insert_one(self.collection, document)
        self.get_logger().info(
            f"Created group chat {document['_id']} by {creator_id} with {len(participants)} participants"
        )
        return Chat.from_document(document)

    # =========================================================================
    # Membership & metadata
    # =========================================================================

    def _require_group(self, chat: Chat) -> None:
        if not chat.is_group:
            raise ValidationError(
                "This operation is only available for group chats",
                error_code="NOT_A_GROUP",
                details={"chat_id": chat.id},
            )

    def _require_admin(self, chat: Chat, user_id: str) -> None:
        if not chat.is_admin(user_id):
            raise PermissionDeniedError(
                "Only group admins can do this",
                error_code="NOT_CHAT_ADMIN",
                details={"chat_id": chat.id},
            )

    async def add_participant(
        self,
        chat_id: str,
        acting_user_id: str,
        new_user_id: str,
        role: str = ParticipantRole.MEMBER,
    ) -> Chat:
        """
        Add an identity to a group chat.

        Raises:
            ValidationError: If the chat is not a group or the role is unknown
            PermissionDeniedError: If the acting user is not an admin
            NotFoundError: If the chat or the new identity does not exist
            ConflictError: If the identity is already a participant
        """
        if role not in ParticipantRole.values:
            raise ValidationError(f"Unknown role: {role}", error_code="INVALID_ROLE")

        chat = await self.get_by_id(chat_id)
        self._require_group(chat)
        self._require_admin(chat, acting_user_id)
        await self.directory.require(new_user_id)

        conflict = ConflictError(
            "User is already a participant",
            error_code="ALREADY_PARTICIPANT",
            details={"chat_id": chat_id, "user_id": new_user_id},
        )
        if chat.has_participant(new_user_id):
            raise conflict

        now = timezone.now()
        result = await self.store.update_one(
            self.collection,
            {"_id": chat_id, "participants.user": {"$ne": new_user_id}},
            {
                "$push": {"participants": {"user": new_user_id, "role": str(role), "joined_at": now}},
                "$set": {"updated_at": now},
            },
        )
        if result.modified == 0:
            raise conflict

        self.get_logger().info(f"{acting_user_id} added {new_user_id} to chat {chat_id} as {role}")
        return await self.get_by_id(chat_id)

    async def remove_participant(self, chat_id: str, acting_user_id: str, target_user_id: str) -> Chat:
        """
        Remove an identity from a group chat (or leave it).

        Admins may remove anyone; anyone may remove themselves. When the
        last admin leaves, the longest-standing remaining participant is
        promoted. When nobody is left the chat is deactivated.

        Raises:
            ValidationError: If the chat is not a group
            PermissionDeniedError: If a non-admin removes someone else
            NotFoundError: If the chat does not exist or the target is not a participant
        """
        chat = await self.get_by_id(chat_id)
        self._require_group(chat)
        if acting_user_id != target_user_id:
            self._require_admin(chat, acting_user_id)
        if not chat.has_participant(target_user_id):
            raise NotFoundError(
                "User is not a participant in this chat",
                error_code="PARTICIPANT_NOT_FOUND",
                details={"chat_id": chat_id, "user_id": target_user_id},
            )

        await self.store.update_one(
            self.collection,
            {"_id": chat_id},
            {
                "$pull": {"participants": {"user": target_user_id}},
                "$set": {"updated_at": timezone.now()},
            },
        )
        self.get_logger().info(f"{acting_user_id} removed {target_user_id} from chat {chat_id}")

        chat = await self.get_by_id(chat_id)
        if not chat.participants:
            return await self.deactivate(chat_id)
        if not any(p.role == ParticipantRole.ADMIN for p in chat.participants):
            chat = await self._promote_successor(chat)
        return chat

    async def _promote_successor(self, chat: Chat) -> Chat:
        successor = min(
            enumerate(chat.participants),
            key=lambda item: (item[1].joined_at is None, item[1].joined_at or 0, item[0]),
        )[1]
        successor.role = ParticipantRole.ADMIN
        await self.store.update_one(
            self.collection,
            {"_id": chat.id},
            {"$set": {"participants": [p.to_document() for p in chat.participants]}},
        )
        self.get_logger().info(f"Promoted {successor.user} to admin of chat {chat.id}")
        return await self.get_by_id(chat.id)

    async def update_metadata(
        self,
        chat_id: str,
        acting_user_id: str,
        name: str | None = None,
        description: str | None = None,
        avatar: str | None = None,
    ) -> Chat:
        """
        Change a group's name, description and/or avatar.

        Raises:
            ValidationError: If the chat is not a group or the new name is blank
            PermissionDeniedError: If the acting user is not an admin
        """
        chat = await self.get_by_id(chat_id)
        self._require_group(chat)
        self._require_admin(chat, acting_user_id)

        changes: dict = {}
        if name is not None:
            changes["name"] = name.strip()
            if not changes["name"]:
                raise ValidationError("Group name is required", error_code="GROUP_NAME_REQUIRED")
        if description is not None:
            changes["description"] = description
        if avatar is not None:
            changes["avatar"] = avatar
        if changes:
            changes["updated_at"] = timezone.now()
            await self.store.update_one(self.collection, {"_id": chat_id}, {"$set": changes})
        return await self.get_by_id(chat_id)

    async def record_last_message(self, chat_id: str, message_id: str) -> None:
        await self.store.update_one(
            self.collection,
            {"_id": chat_id},
            {"$set": {"last_message": message_id, "updated_at": timezone.now()}},
        )

    async def deactivate(self, chat_id: str) -> Chat:
        """
        Mark a chat inactive. Its messages stay readable.

        Dropping pair_key frees the pair for a new individual chat.
        """
        await self.get_by_id(chat_id)
        await self.store.update_one(
            self.collection,
            {"_id": chat_id},
            {"$set": {"is_active": False, "updated_at": timezone.now()}, "$unset": {"pair_key": ""}},
        )
        self.get_logger().info(f"Deactivated chat {chat_id}")
        return await self.get_by_id(chat_id)


# =============================================================================
# Message Store
# =============================================================================


class MessageStore(BaseService):
    """
    Owns message documents and their read-by lists.

    State machine per message:
        active --(edit_content, sender, text only)--> active
        active --(soft_delete, sender)--> deleted (terminal)

    Read receipts are appended with a conditional update
    (``read_by.user $ne reader``) so a reader is recorded at most once.
    """

    collection = MESSAGES_COLLECTION

    def __init__(self, store, chats: ChatRegistry | None = None):
        super().__init__(store)
        self.chats = chats or ChatRegistry(store)

    def _unread_filter(self, reader_id: str) -> dict:
        return {
            "is_deleted": False,
            "sender": {"$ne": reader_id},
            "read_by.user": {"$ne": reader_id},
        }

    async def get_by_id(self, message_id: str) -> Message:
        """
        Raises:
            NotFoundError: If the message does not exist
        """
        document = await self.store.find_one(self.collection, {"_id": message_id})
        if document is None:
            raise NotFoundError(
                "Message not found",
                error_code="MESSAGE_NOT_FOUND",
                details={"message_id": message_id},
            )
        return Message.from_document(document)

    async def get_many(self, message_ids) -> dict[str, Message]:
        ids = sorted({message_id for message_id in message_ids if message_id})
        if not ids:
            return {}
        documents = await self.store.find(self.collection, {"_id": {"$in": ids}})
        return {document["_id"]: Message.from_document(document) for document in documents}

    # =========================================================================
    # Sending & listing
    # =========================================================================

    def _validate_content(self, content, message_type: str) -> str:
        if message_type not in MessageType.values:
            raise ValidationError(
                f"Unknown message type: {message_type}",
                error_code="INVALID_MESSAGE_TYPE",
            )
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content cannot be empty", error_code="EMPTY_MESSAGE")
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Message content exceeds {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )
        return content

    async def send(
        self,
        chat_id: str,
        sender_id: str,
        content: str,
        message_type: str = MessageType.TEXT,
        reply_to: str | None = None,
        attachment: dict | None = None,
    ) -> Message:
        """
        Create a message and move the chat's last-message pointer.

        Raises:
            ValidationError: For empty/oversized content, an unknown type,
                or a reply_to outside this chat
            NotFoundError: If the chat does not exist
            PermissionDeniedError: If the sender is not a participant
            ConflictError: If the chat has been deactivated
        """
        content = self._validate_content(content, message_type)
        chat = await self.chats.get_for_participant(chat_id, sender_id)
        if not chat.is_active:
            raise ConflictError("This chat is no longer active", error_code="CHAT_INACTIVE")

        if reply_to:
            target = await self.store.find_one(self.collection, {"_id": reply_to, "chat": chat_id})
            if target is None:
                raise ValidationError(
                    "Reply target must be a message in the same chat",
                    error_code="INVALID_REPLY",
                    details={"reply_to": reply_to},
                )

        now = timezone.now()
        document = {
            "chat": chat_id,
            "sender": sender_id,
            "content": content,
            "message_type": str(message_type),
            "reply_to": reply_to or None,
            "attachment": attachment,
            "read_by": [],
            "is_deleted": False,
            "deleted_at": None,
            "edited_at": None,
            "created_at": now,
            "updated_at": now,
        }
        document["_id"] = await self.store.insert_one(self.collection, document)
        await self.chats.record_last_message(chat_id, document["_id"])

        self.get_logger().info(f"Message {document['_id']} sent to chat {chat_id} by {sender_id}")
        return Message.from_document(document)

    async def list_page(
        self,
        chat_id: str,
        viewer_id: str,
        page: int = 1,
        page_size: int = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE,
        include_deleted: bool = False,
    ) -> MessagePage:
        """
        One page of history in chronological order (oldest first).

        Page 1 holds the newest ``page_size`` messages. Deleted messages are
        left out unless ``include_deleted`` is set; representations blank
        their content either way.

        Raises:
            ValidationError: If page < 1 or page_size < 1
            NotFoundError / PermissionDeniedError: Participation gate
        """
        if page < 1 or page_size < 1:
            raise ValidationError(
                "page and page size must be positive",
                error_code="INVALID_PAGINATION",
            )
        page_size = min(page_size, MESSAGE_CONFIG.MAX_PAGE_SIZE)
        await self.chats.get_for_participant(chat_id, viewer_id)

        criteria: dict = {"chat": chat_id}
        if not include_deleted:
            criteria["is_deleted"] = False
        total = await self.store.count(self.collection, criteria)
        documents = await self.store.find(
            self.collection,
            criteria,
            sort=NEWEST_FIRST,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        messages = [Message.from_document(document) for document in reversed(documents)]
        return MessagePage(messages=messages, page=page, limit=page_size, total=total)

    # =========================================================================
    # Read receipts
    # =========================================================================

    async def mark_read(self, message_id: str, reader_id: str) -> Message:
        """
        Record that ``reader_id`` has read a message. Idempotent.

        The sender reading their own message is a no-op.

        Raises:
            NotFoundError: If the message does not exist
            PermissionDeniedError: If the reader is not a participant
        """
        message = await self.get_by_id(message_id)
        await self.chats.get_for_participant(message.chat, reader_id)
        if message.sender == reader_id:
            return message

        await self.store.update_one(
            self.collection,
            {"_id": message_id, "read_by.user": {"$ne": reader_id}},
            {"$push": {"read_by": {"user": reader_id, "read_at": timezone.now()}}},
        )
        return await self.get_by_id(message_id)

    async def mark_many_read(
        self, chat_id: str, reader_id: str, message_ids: list[str] | None = None
    ) -> int:
        """
        Mark the reader's unread messages in a chat as read.

        Without ``message_ids`` every unread message is targeted; otherwise
        only those ids within this chat.

        Returns:
            Number of messages actually modified
        """
        await self.chats.get_for_participant(chat_id, reader_id)

        criteria = {"chat": chat_id, **self._unread_filter(reader_id)}
        if message_ids:
            criteria["_id"] = {"$in": [str(message_id) for message_id in message_ids]}
        result = await self.store.update_many(
            self.collection,
            criteria,
            {"$push": {"read_by": {"user": reader_id, "read_at": timezone.now()}}},
        )
        if result.modified:
            self.get_logger().debug(f"{reader_id} read {result.modified} messages in chat {chat_id}")
        return result.modified

    async def count_unread(self, chat_id: str, reader_id: str) -> int:
        return await self.store.count(
            self.collection, {"chat": chat_id, **self._unread_filter(reader_id)}
        )

    async def find_unread_for_user(self, reader_id: str) -> list[Message]:
        """Unread messages across every chat the reader belongs to, newest first."""
        chat_ids = await self.chats.chat_ids_for(reader_id)
        if not chat_ids:
            return []
        documents = await self.store.find(
            self.collection,
            {"chat": {"$in": chat_ids}, **self._unread_filter(reader_id)},
            sort=NEWEST_FIRST,
        )
        return [Message.from_document(document) for document in documents]

    # =========================================================================
    # Edit & delete
    # =========================================================================

    def _require_sender(self, message: Message, user_id: str, action: str) -> None:
        if message.sender != user_id:
            raise PermissionDeniedError(
                f"Only the sender can {action} this message",
                error_code="NOT_MESSAGE_SENDER",
                details={"message_id": message.id},
            )

    async def soft_delete(self, message_id: str, acting_user_id: str) -> Message:
        """
        Mark a message deleted. The record and its read-by list are kept.

        Raises:
            NotFoundError: If the message does not exist
            PermissionDeniedError: If the acting user is not the sender
            ConflictError: If the message is already deleted
        """
        message = await self.get_by_id(message_id)
        self._require_sender(message, acting_user_id, "delete")
        if message.is_deleted:
            raise ConflictError("Message is already deleted", error_code="MESSAGE_ALREADY_DELETED")

        now = timezone.now()
        await self.store.update_one(
            self.collection,
            {"_id": message_id, "is_deleted": False},
            {"$set": {"is_deleted": True, "deleted_at": now, "updated_at": now}},
        )
        self.get_logger().info(f"Message {message_id} deleted by {acting_user_id}")
        return await self.get_by_id(message_id)

    async def edit_content(self, message_id: str, acting_user_id: str, new_content: str) -> Message:
        """
        Replace the content of a text message. No history is kept.

        Raises:
            NotFoundError: If the message does not exist
            PermissionDeniedError: If the acting user is not the sender
            ConflictError: If the message is deleted
            ValidationError: If the message is not text or the content is empty
        """
        message = await self.get_by_id(message_id)
        self._require_sender(message, acting_user_id, "edit")
        if message.is_deleted:
            raise ConflictError("Deleted messages cannot be edited", error_code="MESSAGE_DELETED")
        if message.message_type != MessageType.TEXT:
            raise ValidationError("Only text messages can be edited", error_code="NOT_TEXT_MESSAGE")
        content = self._validate_content(new_content, MessageType.TEXT)

        now = timezone.now()
        await self.store.update_one(
            self.collection,
            {"_id": message_id, "is_deleted": False},
            {"$set": {"content": content, "edited_at": now, "updated_at": now}},
        )
        self.get_logger().info(f"Message {message_id} edited by {acting_user_id}")
        return await self.get_by_id(message_id)
