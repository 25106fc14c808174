"""
Base service layer pattern for domain logic.

Services encapsulate business rules separate from transport concerns:
views and consumers handle HTTP / websocket framing, the document store
handles persistence, services handle the rules in between.

Every service is constructed around a DocumentStore and is otherwise
stateless, so building one per request or per connection is cheap.

Usage:
    from core.documents import get_document_store
    from core.services import BaseService

    class ChatRegistry(BaseService):
        collection = "chats"

        async def get_by_id(self, chat_id: str) -> Chat:
            document = await self.store.find_one(self.collection, {"_id": chat_id})
            if document is None:
                raise NotFoundError("Chat not found", error_code="CHAT_NOT_FOUND")
            self.get_logger().debug(f"Loaded chat {chat_id}")
            return Chat.from_document(document)

    registry = ChatRegistry(get_document_store())

Design Notes:
    - Failures are raised as core.exceptions types, never returned
    - Every store call is awaited; there are no in-process locks
    - Uniqueness invariants are declared as store indexes in __init__
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.documents import DocumentStore


class BaseService:
    """
    Base class for document-backed domain services.

    Attributes:
        collection: Name of the collection the service primarily owns
        store: DocumentStore the service reads and writes through
    """

    collection: str = ""

    def __init__(self, store: DocumentStore):
        self.store = store

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Example:
            class MessageStore(BaseService):
                async def send(self, ...):
                    self.get_logger().info(f"Message {message_id} sent to chat {chat_id}")
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
