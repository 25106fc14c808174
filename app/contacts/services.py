"""
Contact Book service.

Owner-scoped address book. Each entry references a target identity and
carries a display-name override and a blocked flag.

Entry references:
    block / unblock / rename / remove accept either the entry id or the
    target identity id. An entry id owned by someone else is Forbidden;
    a reference matching nothing is NotFound.

Uniqueness:
    At most one entry per (owner, contact). Backed by a unique index, so a
    racing duplicate insert surfaces as the same ConflictError.
"""

from __future__ import annotations

import re

from django.utils import timezone

from authentication.services import IdentityDirectory
from contacts.constants import CONTACT_CONFIG
from contacts.documents import CONTACTS_COLLECTION, Contact
from core.documents import DuplicateKeyError
from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.services import BaseService


class ContactBook(BaseService):
    """
    Per-user address book.

    Usage:
        book = ContactBook(get_document_store())
        contact = await book.add(owner_id, "+5511987654321", name="Ana")
        await book.block(owner_id, contact.id)
        results = await book.search(owner_id, "an")
    """

    collection = CONTACTS_COLLECTION

    def __init__(self, store):
        super().__init__(store)
        store.create_index(self.collection, ["owner", "contact"], unique=True)
        self.directory = IdentityDirectory(store)

    async def _with_identities(self, contacts: list[Contact]) -> list[Contact]:
        identities = await self.directory.get_many(contact.contact for contact in contacts)
        for contact in contacts:
            contact.identity = identities.get(contact.contact)
        return contacts

    async def _load(self, contact_id: str) -> Contact:
        document = await self.store.find_one(self.collection, {"_id": contact_id})
        contact = Contact.from_document(document)
        return (await self._with_identities([contact]))[0]

    async def _get_entry(self, owner_id: str, reference: str) -> Contact:
        document = await self.store.find_one(self.collection, {"_id": reference})
        if document is not None:
            if document["owner"] != owner_id:
                raise PermissionDeniedError(
                    "You can only change your own contacts",
                    error_code="NOT_CONTACT_OWNER",
                )
            return Contact.from_document(document)

        document = await self.store.find_one(
            self.collection, {"owner": owner_id, "contact": reference}
        )
        if document is None:
            raise NotFoundError(
                "Contact not found",
                error_code="CONTACT_NOT_FOUND",
                details={"contact": reference},
            )
        return Contact.from_document(document)

    # =========================================================================
    # Lookup & creation
    # =========================================================================

    async def lookup(self, handle: str):
        """
        Find an identity by virtual number.

        Raises:
            NotFoundError: If no identity has this handle
        """
        identity = await self.directory.get_by_virtual_number(handle)
        if identity is None:
            raise NotFoundError(
                "No user with this number",
                error_code="USER_NOT_FOUND",
                details={"virtual_number": handle},
            )
        return identity

    async def add(self, owner_id: str, target_reference: str, name: str | None = None) -> Contact:
        """
        Add a contact by virtual number or identity id.

        Raises:
            NotFoundError: If the target cannot be resolved
            ValidationError: If the owner tries to add themselves
            ConflictError: If the pair already exists
        """
        target = await self.directory.resolve(target_reference)
        if target is None:
            raise NotFoundError(
                "User not found",
                error_code="USER_NOT_FOUND",
                details={"reference": target_reference},
            )
        if target.id == owner_id:
            raise ValidationError("You cannot add yourself as a contact", error_code="CANNOT_ADD_SELF")

        existing = await self.store.find_one(
            self.collection, {"owner": owner_id, "contact": target.id}
        )
        if existing is not None:
            raise ConflictError("Contact already exists", error_code="CONTACT_EXISTS")

        now = timezone.now()
        document = {
            "owner": owner_id,
            "contact": target.id,
            "name": (name or "").strip() or target.name,
            "is_blocked": False,
            "created_at": now,
            "updated_at": now,
        }
        try:
            document["_id"] = await self.store.insert_one(self.collection, document)
        except DuplicateKeyError as exc:
            raise ConflictError("Contact already exists", error_code="CONTACT_EXISTS") from exc

        self.get_logger().info(f"Identity {owner_id} added contact {target.id}")
        contact = Contact.from_document(document)
        contact.identity = target
        return contact

    # =========================================================================
    # Listing & search
    # =========================================================================

    async def list(self, owner_id: str, include_blocked: bool = True) -> list[Contact]:
        criteria: dict = {"owner": owner_id}
        if not include_blocked:
            criteria["is_blocked"] = False
        documents = await self.store.find(
            self.collection, criteria, sort=[("name", 1), ("_id", 1)]
        )
        return await self._with_identities([Contact.from_document(d) for d in documents])

    async def list_unblocked(self, owner_id: str) -> list[Contact]:
        return await self.list(owner_id, include_blocked=False)

    async def list_blocked(self, owner_id: str) -> list[Contact]:
        documents = await self.store.find(
            self.collection,
            {"owner": owner_id, "is_blocked": True},
            sort=[("name", 1), ("_id", 1)],
        )
        return await self._with_identities([Contact.from_document(d) for d in documents])

    async def search(self, owner_id: str, term: str) -> list[Contact]:
        """
        Case-insensitive substring search over unblocked entry names.

        Raises:
            ValidationError: If the trimmed term is shorter than the minimum
        """
        term = (term or "").strip()
        if len(term) < CONTACT_CONFIG.SEARCH_MIN_QUERY_LENGTH:
            raise ValidationError(
                f"Search term must be at least {CONTACT_CONFIG.SEARCH_MIN_QUERY_LENGTH} characters",
                error_code="SEARCH_TERM_TOO_SHORT",
            )
        documents = await self.store.find(
            self.collection,
            {
                "owner": owner_id,
                "is_blocked": False,
                "name": {"$regex": re.escape(term), "$options": "i"},
            },
            sort=[("name", 1), ("_id", 1)],
            limit=CONTACT_CONFIG.SEARCH_MAX_RESULTS,
        )
        return await self._with_identities([Contact.from_document(d) for d in documents])

    # =========================================================================
    # Mutations
    # =========================================================================

    async def _set(self, owner_id: str, reference: str, changes: dict) -> Contact:
        entry = await self._get_entry(owner_id, reference)
        changes["updated_at"] = timezone.now()
        await self.store.update_one(self.collection, {"_id": entry.id}, {"$set": changes})
        return await self._load(entry.id)

    async def block(self, owner_id: str, reference: str) -> Contact:
        contact = await self._set(owner_id, reference, {"is_blocked": True})
        self.get_logger().info(f"Identity {owner_id} blocked {contact.contact}")
        return contact

    async def unblock(self, owner_id: str, reference: str) -> Contact:
        return await self._set(owner_id, reference, {"is_blocked": False})

    async def rename(self, owner_id: str, reference: str, name: str) -> Contact:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Contact name cannot be empty", error_code="NAME_REQUIRED")
        return await self._set(owner_id, reference, {"name": name})

    async def remove(self, owner_id: str, reference: str) -> None:
        """
        Delete an entry permanently.

        Raises:
            NotFoundError: If the entry does not exist (including already removed)
        """
        entry = await self._get_entry(owner_id, reference)
        await self.store.delete_one(self.collection, {"_id": entry.id})
        self.get_logger().info(f"Identity {owner_id} removed contact {entry.contact}")
