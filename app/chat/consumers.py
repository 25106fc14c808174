"""
WebSocket consumer for the chat application.

One connection per session carries every chat the identity belongs to,
plus presence and call signalling.

Consumers:
    RealtimeConsumer: Handles the single ws/chat/ connection of a session

Authentication:
    JWTAuthMiddleware attaches the identity to self.scope["identity"].
    Connections without one are closed with code 4001 before accepting.

Channel Groups:
    presence      every connection; online/offline events
    user_<id>     every connection of one identity; subscription refreshes
    chat_<id>     one per chat the identity participates in

Message Types (from client):
    - send-message {chat_id, content, message_type?, reply_to?}
    - typing / stop-typing {chat_id}
    - mark-as-read {chat_id, message_ids?}
    - call-user {chat_id, call_type, offer}, accept-call {chat_id, answer},
      reject-call {chat_id}, end-call {chat_id}, ice-candidate {chat_id, candidate}
    - refresh-subscriptions {}
    - ping {}

Message Types (to client):
    - new-message, user-typing, user-stop-typing, messages-read
    - incoming-call, call-accepted, call-rejected, call-ended, ice-candidate
    - user-online, user-offline
    - subscriptions-refreshed, pong
    - error {message, error_code}

Every chat-scoped event re-checks participation through ChatRegistry;
client-claimed membership is never trusted. Domain errors are answered
with an error event and the connection stays open.
"""

from __future__ import annotations

import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.utils import timezone

from authentication.serializers import IdentitySummarySerializer
from chat import broadcasts
from chat.constants import REALTIME_CONFIG
from chat.documents import MessageType
from chat.hydration import hydrate_messages
from chat.middleware import JWT_SUBPROTOCOL
from chat.serializers import MessageSerializer
from chat.services import ChatRegistry, MessageStore
from core.documents import get_document_store
from core.exceptions import BaseApplicationError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

# Call signalling: inbound type -> (outbound type, relayed fields, actor key)
CALL_EVENTS = {
    "call-user": ("incoming-call", ("call_type", "offer"), "caller"),
    "accept-call": ("call-accepted", ("answer",), "accepter"),
    "reject-call": ("call-rejected", (), "rejector"),
    "end-call": ("call-ended", (), "ender"),
    "ice-candidate": ("ice-candidate", ("candidate",), "sender"),
}


class RealtimeConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for real-time chat functionality.

    Handles:
        - Connection authentication and presence
        - Joining/leaving chat rooms, with refresh on membership changes
        - Sending messages, typing indicators, read receipts
        - Call signalling relay

    Attributes:
        identity: Authenticated identity (after connect)
        rooms: Ids of the chats whose group this connection has joined
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.identity = None
        self.rooms: set[str] = set()
        self.messages: MessageStore | None = None

    @property
    def chats(self) -> ChatRegistry:
        return self.messages.chats

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self):
        """
        Handle WebSocket connection.

        Order: authenticate, mark online, announce to the presence group,
        join the personal group and one room per active chat.
        """
        identity = self.scope.get("identity")
        if identity is None:
            logger.warning("Rejected unauthenticated websocket connection")
            await self.close(code=REALTIME_CONFIG.CLOSE_UNAUTHENTICATED)
            return

        self.identity = identity
        store = get_document_store()
        self.messages = MessageStore(store, ChatRegistry(store))

        subprotocols = self.scope.get("subprotocols") or []
        await self.accept(subprotocol=JWT_SUBPROTOCOL if JWT_SUBPROTOCOL in subprotocols else None)

        self.identity = await self.chats.directory.set_presence(identity.id, True) or identity
        await self.channel_layer.group_add(REALTIME_CONFIG.PRESENCE_GROUP, self.channel_name)
        await self.channel_layer.group_add(broadcasts.user_group(identity.id), self.channel_name)
        await broadcasts.publish(
            REALTIME_CONFIG.PRESENCE_GROUP,
            {
                "type": "user-online",
                "user_id": identity.id,
                "user": self._summary(),
            },
            exclude=self.channel_name,
            channel_layer=self.channel_layer,
        )
        await self._sync_rooms()
        logger.info(f"Identity {identity.id} connected with {len(self.rooms)} chat rooms")

    async def disconnect(self, close_code):
        """
        Handle WebSocket disconnection.

        Marks the identity offline and leaves every group joined.
        """
        if self.identity is None:
            return

        identity_id = self.identity.id
        updated = await self.chats.directory.set_presence(identity_id, False)
        last_seen = updated.last_seen if updated and updated.last_seen else timezone.now()

        await self.channel_layer.group_discard(REALTIME_CONFIG.PRESENCE_GROUP, self.channel_name)
        await self.channel_layer.group_discard(broadcasts.user_group(identity_id), self.channel_name)
        for chat_id in list(self.rooms):
            await self._leave_room(chat_id)

        await broadcasts.publish(
            REALTIME_CONFIG.PRESENCE_GROUP,
            {"type": "user-offline", "user_id": identity_id, "last_seen": last_seen.isoformat()},
            channel_layer=self.channel_layer,
        )
        logger.info(f"Identity {identity_id} disconnected ({close_code})")

    async def _join_room(self, chat_id: str) -> None:
        if chat_id not in self.rooms:
            await self.channel_layer.group_add(broadcasts.chat_group(chat_id), self.channel_name)
            self.rooms.add(chat_id)

    async def _leave_room(self, chat_id: str) -> None:
        if chat_id in self.rooms:
            await self.channel_layer.group_discard(broadcasts.chat_group(chat_id), self.channel_name)
            self.rooms.discard(chat_id)

    async def _sync_rooms(self) -> list[str]:
        """Make joined rooms match the identity's active chats."""
        chat_ids = await self.chats.chat_ids_for(self.identity.id, active_only=True)
        for chat_id in self.rooms - set(chat_ids):
            await self._leave_room(chat_id)
        for chat_id in chat_ids:
            await self._join_room(chat_id)
        return chat_ids

    # =========================================================================
    # Inbound events
    # =========================================================================

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        if text_data is None:
            await self._send_error("Only text frames are supported", "INVALID_FRAME")
            return
        try:
            content = await self.decode_json(text_data)
        except (TypeError, ValueError):
            await self._send_error("Malformed JSON payload", "INVALID_JSON")
            return
        await self.receive_json(content, **kwargs)

    async def receive_json(self, content, **kwargs):
        """
        Dispatch an inbound event by its ``type``.

        Expected message format:
            {"type": "send-message", "chat_id": "...", "content": "Hello!"}
            {"type": "typing", "chat_id": "..."}
        """
        if not isinstance(content, dict):
            await self._send_error("Event must be a JSON object", "INVALID_PAYLOAD")
            return

        event_type = content.get("type")
        handler = self.handlers.get(event_type)
        if handler is None and event_type in CALL_EVENTS:
            handler = RealtimeConsumer._handle_call_event
        if handler is None:
            await self._send_error(f"Unknown event type: {event_type}", "UNKNOWN_EVENT")
            return

        try:
            await handler(self, content)
        except BaseApplicationError as e:
            await self._send_error(e.message, e.error_code)
        except Exception:
            logger.exception(f"Unhandled error processing {event_type} from {self.identity.id}")
            await self._send_error("Something went wrong processing this event", "INTERNAL_ERROR")

    def _chat_id(self, content: dict) -> str:
        chat_id = content.get("chat_id")
        if not isinstance(chat_id, str) or not chat_id:
            raise ValidationError("chat_id is required", error_code="CHAT_ID_REQUIRED")
        return chat_id

    async def _require_participation(self, chat_id: str) -> None:
        if not await self.chats.is_participant(chat_id, self.identity.id):
            raise PermissionDeniedError(
                "You are not a participant in this chat",
                error_code="NOT_PARTICIPANT",
            )

    async def _handle_send_message(self, content: dict):
        """
        Create the message and broadcast it to the chat room, sender's
        own connections included.
        """
        chat_id = self._chat_id(content)
        message = await self.messages.send(
            chat_id,
            self.identity.id,
            content.get("content"),
            message_type=content.get("message_type") or MessageType.TEXT,
            reply_to=content.get("reply_to") or None,
        )
        await hydrate_messages(self.messages, [message])
        await self._join_room(chat_id)
        await broadcasts.publish(
            broadcasts.chat_group(chat_id),
            {"type": "new-message", "message": MessageSerializer(message).data},
            channel_layer=self.channel_layer,
        )

    async def _handle_typing(self, content: dict):
        chat_id = self._chat_id(content)
        await self._require_participation(chat_id)
        await self._relay(
            chat_id,
            {
                "type": "user-typing",
                "chat_id": chat_id,
                "user_id": self.identity.id,
                "user_name": self.identity.name,
            },
        )

    async def _handle_stop_typing(self, content: dict):
        chat_id = self._chat_id(content)
        await self._require_participation(chat_id)
        await self._relay(
            chat_id,
            {"type": "user-stop-typing", "chat_id": chat_id, "user_id": self.identity.id},
        )

    async def _handle_mark_as_read(self, content: dict):
        chat_id = self._chat_id(content)
        message_ids = content.get("message_ids") or []
        if not isinstance(message_ids, list):
            raise ValidationError("message_ids must be a list", error_code="INVALID_PAYLOAD")

        count = await self.messages.mark_many_read(chat_id, self.identity.id, message_ids)
        await self._relay(
            chat_id,
            {
                "type": "messages-read",
                "chat_id": chat_id,
                "user_id": self.identity.id,
                "message_ids": message_ids,
                "count": count,
                "read_at": timezone.now().isoformat(),
            },
        )

    async def _handle_call_event(self, content: dict):
        """Relay call signalling to the other room members. Payloads are opaque."""
        chat_id = self._chat_id(content)
        await self._require_participation(chat_id)

        outbound_type, fields, actor_key = CALL_EVENTS[content["type"]]
        event = {"type": outbound_type, "chat_id": chat_id}
        for field in fields:
            event[field] = content.get(field)
        event[actor_key] = self._summary()
        await self._relay(chat_id, event)

    async def _handle_refresh_subscriptions(self, content: dict):
        chat_ids = await self._sync_rooms()
        await self.send_json({"type": "subscriptions-refreshed", "chat_ids": chat_ids})

    async def _handle_ping(self, content: dict):
        await self.send_json({"type": "pong"})

    handlers = {
        "send-message": _handle_send_message,
        "typing": _handle_typing,
        "stop-typing": _handle_stop_typing,
        "mark-as-read": _handle_mark_as_read,
        "refresh-subscriptions": _handle_refresh_subscriptions,
        "ping": _handle_ping,
    }

    # =========================================================================
    # Channel layer handlers
    # =========================================================================

    async def relay_event(self, event):
        """
        Handle relay.event messages from the channel layer.

        Forwards the wrapped wire event unless this connection originated it.
        """
        if event.get("exclude") == self.channel_name:
            return
        await self.send_json(event["event"])

    async def subscriptions_refresh(self, event):
        """Membership changed elsewhere; recompute rooms and tell the client."""
        chat_ids = await self._sync_rooms()
        await self.send_json({"type": "subscriptions-refreshed", "chat_ids": chat_ids})

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _relay(self, chat_id: str, event: dict) -> None:
        await broadcasts.publish(
            broadcasts.chat_group(chat_id),
            event,
            exclude=self.channel_name,
            channel_layer=self.channel_layer,
        )

    async def _send_error(self, message: str, error_code: str | None) -> None:
        await self.send_json({"type": "error", "message": message, "error_code": error_code})

    def _summary(self) -> dict:
        return IdentitySummarySerializer(self.identity).data

