"""
Chat application configuration.

This app provides the chat system with:
- Individual (1:1) and group chats
- Admin/member roles for groups
- Messages with replies, attachments, edits and soft deletion
- Read receipts and unread counts
- The realtime websocket surface
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
