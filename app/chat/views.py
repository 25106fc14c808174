"""
ViewSets for chat API.

This module provides REST API endpoints for the chat system:
- ChatViewSet: chats, group membership, history, sends, read receipts
- MessageViewSet: edits, deletes and read receipts of single messages

URL Structure:
    /api/v1/chats/                                   GET (?search=)
    /api/v1/chats/individual/                        POST
    /api/v1/chats/group/                             POST
    /api/v1/chats/{id}/                              GET, PATCH
    /api/v1/chats/{id}/participants/                 POST
    /api/v1/chats/{id}/participants/{user_id}/       DELETE
    /api/v1/chats/{id}/leave/                        POST
    /api/v1/chats/{id}/messages/                     GET, POST
    /api/v1/chats/{id}/messages/attachments/         POST (multipart)
    /api/v1/chats/{id}/read/                         POST
    /api/v1/messages/unread/                         GET
    /api/v1/messages/{id}/                           PATCH, DELETE
    /api/v1/messages/{id}/read/                      POST

Design Decisions:
    - Views are thin: validation by serializers, rules by chat.services
    - Services are async; views call them through async_to_sync
    - Sends and read receipts made over REST are relayed to the chat's
      realtime room, and membership changes ask affected connections to
      refresh their rooms
"""

from __future__ import annotations

from asgiref.sync import async_to_sync
from django.utils import timezone
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from chat import broadcasts
from chat.attachments import discard_attachment, store_attachment
from chat.constants import MESSAGE_CONFIG
from chat.hydration import hydrate_chats, hydrate_messages
from chat.serializers import (
    AttachmentUploadSerializer,
    ChatSerializer,
    ChatUpdateSerializer,
    GroupChatCreateSerializer,
    IndividualChatCreateSerializer,
    MarkReadResponseSerializer,
    MarkReadSerializer,
    MessageCreateSerializer,
    MessageEditSerializer,
    MessagePageSerializer,
    MessageSerializer,
    ParticipantCreateSerializer,
)
from chat.services import ChatRegistry, MessageStore
from core.documents import get_document_store
from core.helpers import normalize_pagination, parse_bool


class ChatServicesMixin:
    """Builds the chat services over the configured document store."""

    def get_message_store(self) -> MessageStore:
        store = get_document_store()
        return MessageStore(store, ChatRegistry(store))

    def render_chat(self, messages: MessageStore, chat, viewer_id: str) -> dict:
        async_to_sync(hydrate_chats)(messages, [chat], viewer_id)
        return ChatSerializer(chat).data

    def render_messages(self, messages: MessageStore, items) -> list:
        async_to_sync(hydrate_messages)(messages, items)
        return MessageSerializer(items, many=True).data


# =============================================================================
# Chat ViewSet
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        summary="List my chats",
        description="Active chats, most recently updated first. "
        "With ?search= only group chats whose name matches are returned.",
        tags=["Chats"],
        parameters=[OpenApiParameter(name="search", type=str, required=False)],
        responses=ChatSerializer(many=True),
    ),
    retrieve=extend_schema(summary="Get chat", tags=["Chats"], responses=ChatSerializer),
    partial_update=extend_schema(
        summary="Update group metadata",
        tags=["Chats"],
        request=ChatUpdateSerializer,
        responses={
            200: ChatSerializer,
            400: OpenApiResponse(description="Not a group"),
            403: OpenApiResponse(description="Not an admin"),
        },
    ),
)
class ChatViewSet(ChatServicesMixin, viewsets.ViewSet):
    """
    ViewSet for chats the caller participates in.

    list: Active chats with preview and unread count
    retrieve: One chat (participants only)
    partial_update: Group name/description/avatar (admins only)
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = "[^/]+"

    def list(self, request):
        messages = self.get_message_store()
        search = request.query_params.get("search", "").strip()
        if search:
            chats = async_to_sync(messages.chats.search_groups)(request.user.id, search)
        else:
            chats = async_to_sync(messages.chats.list_for_user)(request.user.id)
        async_to_sync(hydrate_chats)(messages, chats, request.user.id)
        return Response(ChatSerializer(chats, many=True).data)

    def retrieve(self, request, pk=None):
        messages = self.get_message_store()
        chat = async_to_sync(messages.chats.get_for_participant)(pk, request.user.id)
        return Response(self.render_chat(messages, chat, request.user.id))

    def partial_update(self, request, pk=None):
        serializer = ChatUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        chat = async_to_sync(messages.chats.update_metadata)(
            pk, request.user.id, **serializer.validated_data
        )
        return Response(self.render_chat(messages, chat, request.user.id))

    @extend_schema(
        summary="Start individual chat",
        description="Returns the existing active chat of the pair when there is one.",
        tags=["Chats"],
        request=IndividualChatCreateSerializer,
        responses={200: ChatSerializer, 201: ChatSerializer},
    )
    @action(detail=False, methods=["post"])
    def individual(self, request):
        serializer = IndividualChatCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        chat, created = async_to_sync(messages.chats.get_or_create_individual)(
            request.user.id, serializer.validated_data["participant_id"]
        )
        if created:
            broadcasts.announce_membership_change(chat.participant_ids)
        return Response(
            self.render_chat(messages, chat, request.user.id),
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @extend_schema(
        summary="Create group chat",
        tags=["Chats"],
        request=GroupChatCreateSerializer,
        responses={201: ChatSerializer},
    )
    @action(detail=False, methods=["post"])
    def group(self, request):
        serializer = GroupChatCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        chat = async_to_sync(messages.chats.create_group)(
            request.user.id,
            serializer.validated_data["name"],
            serializer.validated_data["participant_ids"],
            description=serializer.validated_data.get("description", ""),
            avatar=serializer.validated_data.get("avatar", ""),
        )
        broadcasts.announce_membership_change(chat.participant_ids)
        return Response(
            self.render_chat(messages, chat, request.user.id),
            status=status.HTTP_201_CREATED,
        )

    # =========================================================================
    # Membership
    # =========================================================================

    @extend_schema(
        summary="Add participant",
        tags=["Chats - Participants"],
        request=ParticipantCreateSerializer,
        responses={
            200: ChatSerializer,
            403: OpenApiResponse(description="Not an admin"),
            409: OpenApiResponse(description="Already a participant"),
        },
    )
    @action(detail=True, methods=["post"])
    def participants(self, request, pk=None):
        serializer = ParticipantCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        user_id = serializer.validated_data["user_id"]
        chat = async_to_sync(messages.chats.add_participant)(
            pk, request.user.id, user_id, serializer.validated_data["role"]
        )
        broadcasts.announce_membership_change([user_id])
        return Response(self.render_chat(messages, chat, request.user.id))

    @extend_schema(
        summary="Remove participant",
        description="Admins may remove anyone; anyone may remove themselves.",
        tags=["Chats - Participants"],
        request=None,
        responses={200: ChatSerializer},
    )
    @action(
        detail=True,
        methods=["delete"],
        url_path=r"participants/(?P<user_id>[^/]+)",
        url_name="remove-participant",
    )
    def remove_participant(self, request, pk=None, user_id=None):
        messages = self.get_message_store()
        chat = async_to_sync(messages.chats.remove_participant)(pk, request.user.id, user_id)
        broadcasts.announce_membership_change([user_id])
        if request.user.id == user_id:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(self.render_chat(messages, chat, request.user.id))

    @extend_schema(
        summary="Leave group",
        tags=["Chats - Participants"],
        request=None,
        responses={204: None},
    )
    @action(detail=True, methods=["post"])
    def leave(self, request, pk=None):
        messages = self.get_message_store()
        async_to_sync(messages.chats.remove_participant)(pk, request.user.id, request.user.id)
        broadcasts.announce_membership_change([request.user.id])
        return Response(status=status.HTTP_204_NO_CONTENT)

    # =========================================================================
    # Messages
    # =========================================================================

    @extend_schema(
        methods=["GET"],
        summary="List messages",
        description="Page 1 holds the newest messages; each page is oldest first.",
        tags=["Chats - Messages"],
        parameters=[
            OpenApiParameter(name="page", type=int, required=False),
            OpenApiParameter(
                name="limit",
                type=int,
                required=False,
                description=f"Default {MESSAGE_CONFIG.DEFAULT_PAGE_SIZE}, max {MESSAGE_CONFIG.MAX_PAGE_SIZE}",
            ),
            OpenApiParameter(name="include_deleted", type=bool, required=False),
        ],
        responses=MessagePageSerializer,
    )
    @extend_schema(
        methods=["POST"],
        summary="Send message",
        tags=["Chats - Messages"],
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        if request.method == "POST":
            return self._send(request, pk)

        page, limit = normalize_pagination(
            request.query_params.get("page"),
            request.query_params.get("limit"),
            default_limit=MESSAGE_CONFIG.DEFAULT_PAGE_SIZE,
            max_limit=MESSAGE_CONFIG.MAX_PAGE_SIZE,
        )
        messages = self.get_message_store()
        result = async_to_sync(messages.list_page)(
            pk,
            request.user.id,
            page=page,
            page_size=limit,
            include_deleted=parse_bool(request.query_params.get("include_deleted")),
        )
        return Response(
            {
                "messages": self.render_messages(messages, result.messages),
                "page": result.page,
                "limit": result.limit,
                "total": result.total,
            }
        )

    def _send(self, request, pk):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        message = async_to_sync(messages.send)(
            pk,
            request.user.id,
            serializer.validated_data["content"],
            message_type=serializer.validated_data["message_type"],
            reply_to=serializer.validated_data.get("reply_to") or None,
        )
        data = self.render_messages(messages, [message])[0]
        broadcasts.announce_message(data)
        return Response(data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Send attachment",
        description="Image, video, audio or document up to 10 MiB.",
        tags=["Chats - Messages"],
        request={"multipart/form-data": AttachmentUploadSerializer},
        responses={201: MessageSerializer, 400: OpenApiResponse(description="File rejected")},
    )
    @action(
        detail=True,
        methods=["post"],
        url_path="messages/attachments",
        url_name="attachments",
        parser_classes=[MultiPartParser, FormParser],
    )
    def attachments(self, request, pk=None):
        serializer = AttachmentUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        # Gate before writing the blob
        async_to_sync(messages.chats.get_for_participant)(pk, request.user.id)
        stored = store_attachment(pk, serializer.validated_data["file"])
        try:
            message = async_to_sync(messages.send)(
                pk,
                request.user.id,
                stored.file_name,
                message_type=stored.message_type,
                reply_to=serializer.validated_data.get("reply_to") or None,
                attachment=stored.metadata,
            )
        except Exception:
            # No message references the blob
            discard_attachment(stored)
            raise
        data = self.render_messages(messages, [message])[0]
        broadcasts.announce_message(data)
        return Response(data, status=status.HTTP_201_CREATED)

    @extend_schema(
        summary="Mark messages as read",
        description="Without message_ids every unread message in the chat is marked.",
        tags=["Chats - Messages"],
        request=MarkReadSerializer,
        responses=MarkReadResponseSerializer,
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        message_ids = serializer.validated_data.get("message_ids") or []
        count = async_to_sync(messages.mark_many_read)(pk, request.user.id, message_ids)
        if count:
            broadcasts.announce_messages_read(
                pk, request.user.id, message_ids, count, timezone.now().isoformat()
            )
        return Response({"chat_id": pk, "count": count})


# =============================================================================
# Message ViewSet
# =============================================================================


@extend_schema_view(
    partial_update=extend_schema(
        summary="Edit message",
        description="Only the sender can edit, and only text messages.",
        tags=["Messages"],
        request=MessageEditSerializer,
        responses={
            200: MessageSerializer,
            403: OpenApiResponse(description="Not the sender"),
            409: OpenApiResponse(description="Message deleted"),
        },
    ),
    destroy=extend_schema(
        summary="Delete message",
        description="Soft delete; the message stays in history with blank content.",
        tags=["Messages"],
        responses={200: MessageSerializer},
    ),
)
class MessageViewSet(ChatServicesMixin, viewsets.ViewSet):
    """
    ViewSet for single messages, addressed by id.
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = "[^/]+"

    def partial_update(self, request, pk=None):
        serializer = MessageEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        messages = self.get_message_store()
        message = async_to_sync(messages.edit_content)(
            pk, request.user.id, serializer.validated_data["content"]
        )
        return Response(self.render_messages(messages, [message])[0])

    def destroy(self, request, pk=None):
        messages = self.get_message_store()
        message = async_to_sync(messages.soft_delete)(pk, request.user.id)
        return Response(self.render_messages(messages, [message])[0])

    @extend_schema(
        summary="List my unread messages",
        description="Unread messages across all my chats, newest first.",
        tags=["Messages"],
        responses=MessageSerializer(many=True),
    )
    @action(detail=False, methods=["get"])
    def unread(self, request):
        messages = self.get_message_store()
        items = async_to_sync(messages.find_unread_for_user)(request.user.id)
        return Response(self.render_messages(messages, items))

    @extend_schema(
        summary="Mark message as read",
        tags=["Messages"],
        request=None,
        responses={200: MessageSerializer},
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        messages = self.get_message_store()
        before = async_to_sync(messages.get_by_id)(pk)
        message = async_to_sync(messages.mark_read)(pk, request.user.id)
        if not before.is_read_by(request.user.id) and message.is_read_by(request.user.id):
            broadcasts.announce_messages_read(
                message.chat, request.user.id, [message.id], 1, timezone.now().isoformat()
            )
        return Response(self.render_messages(messages, [message])[0])
