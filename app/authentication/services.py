"""
Identity Directory and account services.

IdentityDirectory resolves identities by id, email or virtual number and
tracks presence. AccountService builds registration, login and profile
management on top of it.

Related files:
    - documents.py: Identity document type
    - tokens.py: Bearer token issuing / verification
    - backends.py: DRF authentication backed by the directory

Security:
    - Passwords hashed with Django's configured PASSWORD_HASHERS
    - Login failures use one message for unknown email and wrong password
"""

from __future__ import annotations

import re
import secrets

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.utils import timezone

from authentication.documents import DEFAULT_STATUS, USERS_COLLECTION, Identity
from authentication.tokens import issue_token
from core.documents import DuplicateKeyError
from core.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from core.services import BaseService

VIRTUAL_NUMBER_ATTEMPTS = 20
SEARCH_MAX_RESULTS = 20


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def generate_virtual_number(country_code: str | None = None) -> str:
    """
    Generate a phone-number shaped handle: +<country><area><9 digits>.

    Example:
        generate_virtual_number("55")  # '+5511987654321'
    """
    country = country_code or settings.VIRTUAL_NUMBER_COUNTRY_CODE
    area = 11 + secrets.randbelow(89)
    number = 100_000_000 + secrets.randbelow(900_000_000)
    return f"+{country}{area}{number}"


class IdentityDirectory(BaseService):
    """
    Lookup and presence tracking for identities.

    Usage:
        directory = IdentityDirectory(get_document_store())
        identity = await directory.resolve("+5511987654321")
        await directory.set_presence(identity.id, online=True)
    """

    collection = USERS_COLLECTION

    def __init__(self, store):
        super().__init__(store)
        store.create_index(self.collection, ["email"], unique=True)
        store.create_index(self.collection, ["virtual_number"], unique=True)

    async def _find(self, criteria: dict) -> Identity | None:
        document = await self.store.find_one(self.collection, criteria)
        return Identity.from_document(document) if document else None

    async def get_by_id(self, identity_id: str) -> Identity | None:
        if not identity_id:
            return None
        return await self._find({"_id": str(identity_id)})

    async def get_by_email(self, email: str) -> Identity | None:
        return await self._find({"email": normalize_email(email)})

    async def get_by_virtual_number(self, virtual_number: str) -> Identity | None:
        return await self._find({"virtual_number": (virtual_number or "").strip()})

    async def resolve(self, handle_or_id: str) -> Identity | None:
        """Resolve a virtual number (leading "+") or an identity id."""
        reference = (handle_or_id or "").strip()
        if reference.startswith("+"):
            return await self.get_by_virtual_number(reference)
        return await self.get_by_id(reference)

    async def require(self, identity_id: str) -> Identity:
        """
        Return the identity or fail.

        Raises:
            NotFoundError: If no identity has this id
        """
        identity = await self.get_by_id(identity_id)
        if identity is None:
            raise NotFoundError(
                f"User {identity_id} not found",
                error_code="USER_NOT_FOUND",
                details={"user_id": identity_id},
            )
        return identity

    async def get_many(self, identity_ids) -> dict[str, Identity]:
        """Batch lookup keyed by id; unknown ids are simply absent."""
        ids = sorted({str(identity_id) for identity_id in identity_ids if identity_id})
        if not ids:
            return {}
        documents = await self.store.find(self.collection, {"_id": {"$in": ids}})
        return {document["_id"]: Identity.from_document(document) for document in documents}

    async def search(self, term: str, exclude_id: str | None = None) -> list[Identity]:
        """
        Case-insensitive substring match over name, email and virtual number.

        The term is matched literally. ``exclude_id`` (usually the caller)
        is left out of the results.
        """
        term = (term or "").strip()
        if not term:
            return []
        pattern = {"$regex": re.escape(term), "$options": "i"}
        criteria: dict = {"$or": [{"name": pattern}, {"email": pattern}, {"virtual_number": pattern}]}
        if exclude_id:
            criteria["_id"] = {"$ne": exclude_id}
        documents = await self.store.find(
            self.collection,
            criteria,
            sort=[("name", 1), ("_id", 1)],
            limit=SEARCH_MAX_RESULTS,
        )
        return [Identity.from_document(document) for document in documents]

    async def create(self, name: str, email: str, password_hash: str, avatar: str = "") -> Identity:
        """
        Insert a new identity with a freshly generated virtual number.

        Numbers are regenerated until unused; a unique-index collision on
        insert is treated the same way.

        Raises:
            ConflictError: If the email is already registered
        """
        email = normalize_email(email)
        now = timezone.now()
        for _ in range(VIRTUAL_NUMBER_ATTEMPTS):
            virtual_number = generate_virtual_number()
            if await self.get_by_virtual_number(virtual_number) is not None:
                continue
            document = {
                "name": name.strip(),
                "email": email,
                "password": password_hash,
                "virtual_number": virtual_number,
                "avatar": avatar or "",
                "status": DEFAULT_STATUS,
                "is_online": False,
                "last_seen": now,
                "created_at": now,
                "updated_at": now,
            }
            try:
                document["_id"] = await self.store.insert_one(self.collection, document)
            except DuplicateKeyError:
                if await self.get_by_email(email) is not None:
                    raise ConflictError("Email already registered", error_code="EMAIL_EXISTS")
                self.get_logger().warning(f"Virtual number collision on {virtual_number}, retrying")
                continue
            self.get_logger().info(f"Registered identity {document['_id']} as {virtual_number}")
            return Identity.from_document(document)

        raise ConflictError(
            "Could not allocate a unique virtual number",
            error_code="VIRTUAL_NUMBER_EXHAUSTED",
        )

    async def set_presence(self, identity_id: str, online: bool) -> Identity | None:
        """Flip the online flag and stamp last_seen."""
        now = timezone.now()
        await self.store.update_one(
            self.collection,
            {"_id": identity_id},
            {"$set": {"is_online": online, "last_seen": now}},
        )
        self.get_logger().debug(f"Identity {identity_id} is {'online' if online else 'offline'}")
        return await self.get_by_id(identity_id)

    async def update_profile(self, identity_id: str, **changes) -> Identity:
        """
        Update name, avatar and/or status.

        Raises:
            NotFoundError: If the identity does not exist
            ValidationError: If a provided name is blank
        """
        allowed = {key: value for key, value in changes.items() if key in ("name", "avatar", "status")}
        if "name" in allowed:
            allowed["name"] = (allowed["name"] or "").strip()
            if not allowed["name"]:
                raise ValidationError("Name cannot be empty", error_code="NAME_REQUIRED")
        await self.require(identity_id)
        if allowed:
            allowed["updated_at"] = timezone.now()
            await self.store.update_one(self.collection, {"_id": identity_id}, {"$set": allowed})
        return await self.require(identity_id)


class AccountService(BaseService):
    """
    Registration, login and profile management.

    Usage:
        accounts = AccountService(get_document_store())
        identity, token = await accounts.register("Ana", "ana@example.com", "secret1")
        identity, token = await accounts.login("ana@example.com", "secret1")
    """

    collection = USERS_COLLECTION

    def __init__(self, store):
        super().__init__(store)
        self.directory = IdentityDirectory(store)

    async def register(
        self, name: str, email: str, password: str, avatar: str = ""
    ) -> tuple[Identity, str]:
        """
        Create an account and issue its first token.

        Raises:
            ValidationError: If name, email or password is missing
            ConflictError: If the email is already registered
        """
        if not (name or "").strip() or not normalize_email(email) or not password:
            raise ValidationError(
                "Name, email and password are required",
                error_code="REGISTRATION_INCOMPLETE",
            )
        if await self.directory.get_by_email(email) is not None:
            raise ConflictError("Email already registered", error_code="EMAIL_EXISTS")

        identity = await self.directory.create(
            name=name,
            email=email,
            password_hash=make_password(password),
            avatar=avatar,
        )
        return identity, issue_token(identity)

    async def login(self, email: str, password: str) -> tuple[Identity, str]:
        """
        Verify credentials and issue a token.

        Raises:
            AuthenticationError: For an unknown email or a wrong password
        """
        identity = await self.directory.get_by_email(email)
        if identity is None or not check_password(password, identity.password):
            self.get_logger().info(f"Failed login for {normalize_email(email)}")
            raise AuthenticationError("Invalid credentials", error_code="INVALID_CREDENTIALS")
        return identity, issue_token(identity)

    async def get_profile(self, identity_id: str) -> Identity:
        return await self.directory.require(identity_id)

    async def update_profile(self, identity_id: str, **changes) -> Identity:
        return await self.directory.update_profile(identity_id, **changes)
