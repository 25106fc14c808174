"""
Constants and configuration for chat features.

This module centralizes configuration values for:
- Message operations (content limits, pagination)
- Attachment handling (size limit, allowed extensions)
- Group search
- Realtime coordination (group names, close codes)

Import example:
    from chat.constants import MESSAGE_CONFIG, REALTIME_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100


# =============================================================================
# Attachment Configuration
# =============================================================================


class ATTACHMENT_CONFIG:
    """Configuration for message attachments."""

    # Overridable through settings.CHAT_ATTACHMENT_MAX_BYTES
    DEFAULT_MAX_SIZE_BYTES: Final[int] = 10 * 1024 * 1024

    # Extension -> message type
    EXTENSION_MESSAGE_TYPES: Final[dict] = {
        "jpg": "image",
        "jpeg": "image",
        "png": "image",
        "gif": "image",
        "mp4": "video",
        "mov": "video",
        "avi": "video",
        "mp3": "audio",
        "wav": "audio",
        "ogg": "audio",
        "pdf": "document",
        "doc": "document",
        "docx": "document",
        "txt": "document",
    }

    UPLOAD_DIRECTORY: Final[str] = "chat"


# =============================================================================
# Group Configuration
# =============================================================================


class GROUP_CONFIG:
    """Configuration for group chats."""

    MAX_NAME_LENGTH: Final[int] = 100
    SEARCH_MAX_RESULTS: Final[int] = 10


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Channel layer naming and websocket close codes."""

    PRESENCE_GROUP: Final[str] = "presence"
    CHAT_GROUP_PREFIX: Final[str] = "chat_"
    USER_GROUP_PREFIX: Final[str] = "user_"

    CLOSE_UNAUTHENTICATED: Final[int] = 4001
