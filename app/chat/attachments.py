"""
Chat attachment validation and storage.

Attachments are identified by their content, not by what the client says
they are. An upload is accepted when:
    - its extension is on the allow-list
    - libmagic (python-magic) recognises the first bytes as an allowed MIME
      type of the same message type
    - that MIME type is one the extension can carry (a PDF named x.jpg is
      rejected)
    - it is no larger than ``CHAT_ATTACHMENT_MAX_BYTES``

The declared content type of the upload is ignored; the stored metadata
carries the detected one. Accepted files are written through Django's
``default_storage`` so the blob backend is a settings concern.

Usage:
    stored = store_attachment(chat_id, uploaded_file)
    try:
        message = await messages.send(
            chat_id, sender_id, stored.file_name,
            message_type=stored.message_type, attachment=stored.metadata,
        )
    except BaseApplicationError:
        discard_attachment(stored)
        raise
"""

from __future__ import annotations

import functools
import logging
import os
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

import magic
from django.conf import settings
from django.core.files.storage import default_storage

from chat.constants import ATTACHMENT_CONFIG
from core.exceptions import ValidationError

if TYPE_CHECKING:
    from django.core.files.uploadedfile import UploadedFile

logger = logging.getLogger(__name__)

# Bytes handed to libmagic
SNIFF_BYTES = 2048


# =============================================================================
# Configuration
# =============================================================================

ALLOWED_MIME_TYPES: dict[str, set[str]] = {
    "image": {
        "image/jpeg",
        "image/png",
        "image/gif",
    },
    "video": {
        "video/mp4",
        "video/quicktime",
        "video/x-msvideo",
    },
    "audio": {
        "audio/mpeg",
        "audio/wav",
        "audio/x-wav",
        "audio/ogg",
    },
    "document": {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        # .docx is a zip archive; a short header often sniffs as a bare zip
        "application/zip",
        "text/plain",
    },
}

# Extensions each detected MIME type may be stored under
MIME_TO_EXTENSIONS: dict[str, set[str]] = {
    "image/jpeg": {"jpg", "jpeg"},
    "image/png": {"png"},
    "image/gif": {"gif"},
    "video/mp4": {"mp4"},
    "video/quicktime": {"mov"},
    "video/x-msvideo": {"avi"},
    "audio/mpeg": {"mp3"},
    "audio/wav": {"wav"},
    "audio/x-wav": {"wav"},
    "audio/ogg": {"ogg"},
    "application/pdf": {"pdf"},
    "application/msword": {"doc"},
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": {"docx"},
    "application/zip": {"docx"},
    "text/plain": {"txt"},
}


def max_attachment_size() -> int:
    return getattr(settings, "CHAT_ATTACHMENT_MAX_BYTES", ATTACHMENT_CONFIG.DEFAULT_MAX_SIZE_BYTES)


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class AttachmentType:
    """
    What an accepted upload turned out to be.

    Attributes:
        message_type: image, video, audio or document
        mime_type: MIME type detected from the file content
    """

    message_type: str
    mime_type: str


@functools.cache
def _mime_detector() -> magic.Magic:
    return magic.Magic(mime=True)


def detect_mime_type(file: UploadedFile) -> str | None:
    """
    Detect the MIME type from the first bytes of the file using libmagic.

    The file position is left at the start. Returns None for an empty file
    or content libmagic cannot read.
    """
    file.seek(0)
    header = file.read(SNIFF_BYTES)
    file.seek(0)

    if not header:
        return None
    try:
        return _mime_detector().from_buffer(header)
    except magic.MagicException as exc:
        logger.warning(f"Could not detect type of {getattr(file, 'name', '?')}: {exc}")
        return None


def _not_allowed(message: str, **details) -> ValidationError:
    return ValidationError(message, error_code="ATTACHMENT_TYPE_NOT_ALLOWED", details=details or None)


def validate_attachment(file: UploadedFile) -> AttachmentType:
    """
    Check an upload against the allow-list and size limit.

    Returns:
        The message type and detected MIME type

    Raises:
        ValidationError: If the extension, detected content or size is not allowed
    """
    name = getattr(file, "name", "") or ""
    extension = os.path.splitext(name)[1].lstrip(".").lower()
    message_type = ATTACHMENT_CONFIG.EXTENSION_MESSAGE_TYPES.get(extension)
    if message_type is None:
        raise _not_allowed(
            f"File type .{extension or '?'} is not allowed",
            allowed=sorted(ATTACHMENT_CONFIG.EXTENSION_MESSAGE_TYPES),
        )

    if not file.size:
        raise ValidationError("File is empty", error_code="ATTACHMENT_EMPTY")

    limit = max_attachment_size()
    if file.size > limit:
        raise ValidationError(
            f"File size must be less than {limit / 1024 / 1024:.0f}MB. "
            f"Current size: {file.size / 1024 / 1024:.1f}MB",
            error_code="ATTACHMENT_TOO_LARGE",
            details={"max_bytes": limit},
        )

    mime_type = detect_mime_type(file)
    if mime_type is None or mime_type not in ALLOWED_MIME_TYPES[message_type]:
        logger.info(f"Rejected .{extension} upload detected as {mime_type}")
        raise _not_allowed(
            f"File content ({mime_type or 'unknown'}) is not an allowed {message_type}",
            detected=mime_type,
        )
    if extension not in MIME_TO_EXTENSIONS.get(mime_type, ()):
        logger.info(f"Rejected .{extension} upload detected as {mime_type}")
        raise _not_allowed(
            f"File content ({mime_type}) does not match .{extension}",
            detected=mime_type,
        )
    return AttachmentType(message_type=message_type, mime_type=mime_type)


# =============================================================================
# Storage
# =============================================================================


@dataclass(frozen=True)
class StoredAttachment:
    message_type: str
    file_name: str
    path: str
    metadata: dict


def store_attachment(chat_id: str, file: UploadedFile) -> StoredAttachment:
    """
    Validate and persist an upload under ``chat/<chat_id>/``.

    The stored name is random; the original name is kept in the metadata.
    """
    detected = validate_attachment(file)
    extension = os.path.splitext(file.name)[1].lower()
    path = f"{ATTACHMENT_CONFIG.UPLOAD_DIRECTORY}/{chat_id}/{uuid.uuid4().hex}{extension}"
    saved_path = default_storage.save(path, file)
    file_name = os.path.basename(saved_path)

    logger.info(f"Stored {detected.message_type} attachment {saved_path} ({file.size} bytes)")
    return StoredAttachment(
        message_type=detected.message_type,
        file_name=file_name,
        path=saved_path,
        metadata={
            "original_name": file.name,
            "file_name": file_name,
            "size": file.size,
            "content_type": detected.mime_type,
            "url": default_storage.url(saved_path),
        },
    )


def discard_attachment(stored: StoredAttachment) -> None:
    """Delete a stored blob whose message could not be sent."""
    default_storage.delete(stored.path)
    logger.info(f"Discarded attachment {stored.path}")
