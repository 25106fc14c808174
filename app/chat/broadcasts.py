"""
Channel layer fan-out shared by the consumer and the REST views.

Group names:
    presence        every live connection
    user_<id>       every connection of one identity
    chat_<id>       every connection subscribed to one chat

Every payload put on the layer is either a ``relay.event`` carrying a
ready-to-send wire event (optionally excluding the originating channel) or
a ``subscriptions.refresh`` asking connections to recompute their rooms.
"""

from __future__ import annotations

import json
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from chat.constants import REALTIME_CONFIG

logger = logging.getLogger(__name__)


def chat_group(chat_id: str) -> str:
    return f"{REALTIME_CONFIG.CHAT_GROUP_PREFIX}{chat_id}"


def user_group(user_id: str) -> str:
    return f"{REALTIME_CONFIG.USER_GROUP_PREFIX}{user_id}"


async def publish(group: str, event: dict, exclude: str | None = None, channel_layer=None) -> None:
    """Relay ``event`` to every connection in ``group`` except ``exclude``."""
    layer = channel_layer or get_channel_layer()
    if layer is None:
        logger.warning(f"No channel layer configured, dropping {event.get('type')} for {group}")
        return
    # Serializer output holds ReturnDict/OrderedDict; ship plain JSON types
    payload = json.loads(json.dumps(event))
    await layer.group_send(group, {"type": "relay.event", "event": payload, "exclude": exclude})


async def request_refresh(user_ids, channel_layer=None) -> None:
    """Ask every connection of the given identities to recompute their rooms."""
    layer = channel_layer or get_channel_layer()
    if layer is None:
        return
    for user_id in sorted(set(user_ids)):
        await layer.group_send(user_group(user_id), {"type": "subscriptions.refresh"})


# =============================================================================
# Sync entry points for the REST views
# =============================================================================


def announce_message(message_data: dict) -> None:
    async_to_sync(publish)(
        chat_group(message_data["chat_id"]),
        {"type": "new-message", "message": message_data},
    )


def announce_messages_read(chat_id: str, user_id: str, message_ids, count: int, read_at: str) -> None:
    async_to_sync(publish)(
        chat_group(chat_id),
        {
            "type": "messages-read",
            "chat_id": chat_id,
            "user_id": user_id,
            "message_ids": list(message_ids or []),
            "count": count,
            "read_at": read_at,
        },
    )


def announce_membership_change(user_ids) -> None:
    async_to_sync(request_refresh)(user_ids)
