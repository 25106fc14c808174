"""
Attach referenced documents to chats and messages before serialization.

Services return bare documents with ids in place of related records.
These helpers resolve those ids in batches so a listing costs a fixed
number of store round trips regardless of its length.
"""

from __future__ import annotations

from authentication.services import IdentityDirectory
from chat.documents import Chat, Message
from chat.services import MessageStore


async def hydrate_messages(messages: MessageStore, items: list[Message]) -> list[Message]:
    """Fill sender_identity and reply_preview on each message in place."""
    if not items:
        return items

    directory = messages.chats.directory
    known = {item.id: item for item in items}
    missing_replies = [item.reply_to for item in items if item.reply_to and item.reply_to not in known]
    replies = dict(known)
    replies.update(await messages.get_many(missing_replies))

    sender_ids = {item.sender for item in items}
    sender_ids.update(reply.sender for reply in replies.values())
    identities = await directory.get_many(sender_ids)

    for reply in replies.values():
        reply.sender_identity = identities.get(reply.sender)
    for item in items:
        if item.reply_to:
            item.reply_preview = replies.get(item.reply_to)
    return items


async def hydrate_chats(
    messages: MessageStore,
    chats: list[Chat],
    viewer_id: str | None = None,
) -> list[Chat]:
    """
    Fill participant identities, the last-message preview and, when a
    viewer is given, the viewer's unread count.
    """
    if not chats:
        return chats

    directory: IdentityDirectory = messages.chats.directory
    identities = await directory.get_many(
        participant.user for chat in chats for participant in chat.participants
    )
    previews = await messages.get_many(chat.last_message for chat in chats)
    await hydrate_messages(messages, list(previews.values()))

    for chat in chats:
        for participant in chat.participants:
            participant.identity = identities.get(participant.user)
        chat.preview = previews.get(chat.last_message) if chat.last_message else None
        if viewer_id is not None:
            chat.unread_count = await messages.count_unread(chat.id, viewer_id)
    return chats
