"""
Serializers for chat API.

This module provides serializers for the chat system:
- Chat serializers (read, individual/group create, metadata update)
- Participant serializers (read, add)
- Message serializers (read, send, edit, mark-read)

Serializer Hierarchy:
    ChatSerializer: Chat with participants, last-message preview, unread count
    IndividualChatCreateSerializer: Start (or reopen) a 1:1 chat
    GroupChatCreateSerializer: Create a group
    ChatUpdateSerializer: Group name/description/avatar

    ParticipantSerializer: Participant with identity summary
    ParticipantCreateSerializer: Add participant to group

    MessageSerializer: Message with deleted-content suppression
    MessagePreviewSerializer: Minimal message for previews and reply-to
    MessageCreateSerializer / MessageEditSerializer / MarkReadSerializer

Design Decisions:
    - Read and write serializers are separate for clarity
    - Deleted message content and attachment are blanked in every
      representation, previews included
    - Chats and messages are dataclasses, so these are plain Serializers
      over attributes filled in by chat.hydration
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import IdentitySummarySerializer
from chat.constants import GROUP_CONFIG, MESSAGE_CONFIG
from chat.documents import Message, MessageType, ParticipantRole

DELETED_CONTENT = ""


# =============================================================================
# Message Serializers
# =============================================================================


class ReadReceiptSerializer(serializers.Serializer):
    user_id = serializers.CharField(source="user", read_only=True)
    read_at = serializers.DateTimeField(read_only=True, allow_null=True)


class MessagePreviewSerializer(serializers.Serializer):
    """
    Minimal message serializer for chat list previews and reply-to quotes.
    """

    id = serializers.CharField(read_only=True)
    sender_id = serializers.CharField(source="sender", read_only=True)
    sender_name = serializers.SerializerMethodField(help_text="Display name of the message sender")
    content = serializers.SerializerMethodField(help_text="Message content (blank if deleted)")
    message_type = serializers.CharField(read_only=True)
    is_deleted = serializers.BooleanField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True, allow_null=True)

    def get_sender_name(self, obj: Message) -> str | None:
        if obj.sender_identity is None:
            return None
        return obj.sender_identity.name

    def get_content(self, obj: Message) -> str:
        if obj.is_deleted:
            return DELETED_CONTENT
        return obj.content


class MessageSerializer(serializers.Serializer):
    """
    Full message serializer for history, sends and realtime events.

    Includes sender details, reply preview and read receipts.
    """

    id = serializers.CharField(read_only=True)
    chat_id = serializers.CharField(source="chat", read_only=True)
    sender_id = serializers.CharField(source="sender", read_only=True)
    sender = IdentitySummarySerializer(source="sender_identity", read_only=True, allow_null=True)
    content = serializers.SerializerMethodField(help_text="Message content (blank if deleted)")
    message_type = serializers.CharField(read_only=True)
    attachment = serializers.SerializerMethodField()
    reply_to = serializers.CharField(read_only=True, allow_null=True)
    reply_preview = MessagePreviewSerializer(read_only=True, allow_null=True)
    read_by = ReadReceiptSerializer(many=True, read_only=True)
    is_deleted = serializers.BooleanField(read_only=True)
    is_edited = serializers.BooleanField(read_only=True)
    deleted_at = serializers.DateTimeField(read_only=True, allow_null=True)
    edited_at = serializers.DateTimeField(read_only=True, allow_null=True)
    created_at = serializers.DateTimeField(read_only=True, allow_null=True)
    updated_at = serializers.DateTimeField(read_only=True, allow_null=True)

    def get_content(self, obj: Message) -> str:
        if obj.is_deleted:
            return DELETED_CONTENT
        return obj.content

    def get_attachment(self, obj: Message) -> dict | None:
        if obj.is_deleted:
            return None
        return obj.attachment


class MessageCreateSerializer(serializers.Serializer):
    """
    Serializer for sending messages.

    Content limits are enforced by MessageStore so REST and realtime sends
    fail identically.
    """

    content = serializers.CharField(
        trim_whitespace=False,
        help_text=f"Message content (max {MESSAGE_CONFIG.MAX_CONTENT_LENGTH:,} characters)",
    )
    message_type = serializers.ChoiceField(
        choices=MessageType.choices,
        required=False,
        default=MessageType.TEXT,
    )
    reply_to = serializers.CharField(
        required=False,
        allow_null=True,
        allow_blank=True,
        help_text="Id of a message in the same chat (optional)",
    )


class AttachmentUploadSerializer(serializers.Serializer):
    file = serializers.FileField(help_text="Image, video, audio or document, max 10 MiB")
    reply_to = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class MessageEditSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=False)


class MarkReadSerializer(serializers.Serializer):
    message_ids = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_empty=True,
        help_text="Messages to mark; omit to mark every unread message in the chat",
    )


class MarkReadResponseSerializer(serializers.Serializer):
    chat_id = serializers.CharField()
    count = serializers.IntegerField()


class MessagePageSerializer(serializers.Serializer):
    """Response body of a history page."""

    messages = MessageSerializer(many=True)
    page = serializers.IntegerField()
    limit = serializers.IntegerField()
    total = serializers.IntegerField()


# =============================================================================
# Participant Serializers
# =============================================================================


class ParticipantSerializer(serializers.Serializer):
    user_id = serializers.CharField(source="user", read_only=True)
    role = serializers.CharField(read_only=True)
    joined_at = serializers.DateTimeField(read_only=True, allow_null=True)
    user = IdentitySummarySerializer(source="identity", read_only=True, allow_null=True)


class ParticipantCreateSerializer(serializers.Serializer):
    user_id = serializers.CharField()
    role = serializers.ChoiceField(
        choices=ParticipantRole.choices,
        required=False,
        default=ParticipantRole.MEMBER,
    )


# =============================================================================
# Chat Serializers
# =============================================================================


class ChatSerializer(serializers.Serializer):
    """
    Chat with participants, the last-message preview and the caller's
    unread count.
    """

    id = serializers.CharField(read_only=True)
    type = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    description = serializers.CharField(read_only=True)
    avatar = serializers.CharField(read_only=True)
    participants = ParticipantSerializer(many=True, read_only=True)
    last_message = MessagePreviewSerializer(source="preview", read_only=True, allow_null=True)
    unread_count = serializers.IntegerField(read_only=True)
    is_active = serializers.BooleanField(read_only=True)
    created_by = serializers.CharField(read_only=True, allow_null=True)
    created_at = serializers.DateTimeField(read_only=True, allow_null=True)
    updated_at = serializers.DateTimeField(read_only=True, allow_null=True)


class IndividualChatCreateSerializer(serializers.Serializer):
    participant_id = serializers.CharField(help_text="Identity to chat with")


class GroupChatCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=GROUP_CONFIG.MAX_NAME_LENGTH)
    participant_ids = serializers.ListField(
        child=serializers.CharField(),
        min_length=1,
        help_text="Identities to include besides the creator",
    )
    description = serializers.CharField(required=False, allow_blank=True, default="")
    avatar = serializers.CharField(required=False, allow_blank=True, default="")


class ChatUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating group metadata.

    Any subset of name, description and avatar.
    """

    name = serializers.CharField(required=False, max_length=GROUP_CONFIG.MAX_NAME_LENGTH)
    description = serializers.CharField(required=False, allow_blank=True)
    avatar = serializers.CharField(required=False, allow_blank=True)

    def validate_name(self, value: str) -> str:
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Name cannot be empty")
        return value
