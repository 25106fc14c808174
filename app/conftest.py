"""
Project-wide pytest configuration and fixtures.

Tests run against the in-memory document store and the in-memory channel
layer; both are reset around every test. Tests parametrized indirectly over
``document_backend`` also run against the ORM store on the test database:

    @pytest.mark.parametrize("document_backend", ["memory", "orm"], indirect=True)
    class TestUnread:
        ...

Services are async, so fixtures hand out ``Synced`` wrappers that run
coroutine methods to completion.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass

import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from rest_framework.test import APIClient

from authentication.documents import Identity
from authentication.services import AccountService, IdentityDirectory
from authentication.tests.factories import RegistrationFactory
from chat.services import ChatRegistry, MessageStore
from contacts.services import ContactBook
from core.documents import get_document_store, reset_document_store


def pytest_configure():
    """Adjust settings for the test run."""
    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    settings.DOCUMENT_STORE_BACKEND = "memory"
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full user journey workflows)
    - test_views.py, test_services.py, test_consumers.py, etc. → integration
    - test_query.py, test_serializers.py, test_validators.py, etc. → unit
    - Unmatched files → integration

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_consumers.py",
        "test_message_store.py",
        "test_orm_store.py",
        "test_data_api_store.py",
    ]

    unit_patterns = [
        "test_query.py",
        "test_codec.py",
        "test_helpers.py",
        "test_exceptions.py",
        "test_memory_store.py",
        "test_serializers.py",
        "test_validators.py",
        "test_tokens.py",
        "test_settings.py",
        "test_naming.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


class Synced:
    """
    Wrap an async service so tests can call it synchronously.

    Example:
        registry = Synced(ChatRegistry(store))
        chat = registry.create_individual(a.id, b.id)
    """

    def __init__(self, target):
        self.target = target

    def __getattr__(self, name):
        attribute = getattr(self.target, name)
        if inspect.iscoroutinefunction(attribute):
            return async_to_sync(attribute)
        return attribute


@dataclass
class RegisteredUser:
    identity: Identity
    token: str
    password: str

    @property
    def id(self) -> str:
        return self.identity.id


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_document_store():
    """Every test starts with an empty in-memory store."""
    reset_document_store()
    yield
    reset_document_store()


@pytest.fixture(autouse=True)
def fresh_channel_layer():
    yield
    layer = get_channel_layer()
    if layer is not None and hasattr(layer, "flush"):
        async_to_sync(layer.flush)()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def document_backend(request, settings):
    """
    Select the document store backend for a test; "memory" unless parametrized.

    The ORM store goes through database_sync_to_async, which closes
    connections between calls, so it needs a transactional database.
    """
    backend = getattr(request, "param", "memory")
    if backend == "orm":
        request.getfixturevalue("transactional_db")
    settings.DOCUMENT_STORE_BACKEND = backend
    reset_document_store()
    return backend


@pytest.fixture
def document_store(document_backend):
    return get_document_store()


@pytest.fixture
def accounts(document_store):
    return Synced(AccountService(document_store))


@pytest.fixture
def directory(document_store):
    return Synced(IdentityDirectory(document_store))


@pytest.fixture
def contact_book(document_store):
    return Synced(ContactBook(document_store))


@pytest.fixture
def chat_registry(document_store):
    return Synced(ChatRegistry(document_store))


@pytest.fixture
def message_store(document_store):
    return Synced(MessageStore(document_store, ChatRegistry(document_store)))


# =============================================================================
# Identities
# =============================================================================


@pytest.fixture
def make_user(accounts):
    """
    Factory fixture registering an identity.

    Usage:
        def test_something(make_user):
            ana = make_user(name="Ana")
            ana.identity, ana.token
    """

    def _make_user(**overrides) -> RegisteredUser:
        data = RegistrationFactory(**overrides)
        identity, token = accounts.register(**data)
        return RegisteredUser(identity=identity, token=token, password=data["password"])

    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user(name="Alice")


@pytest.fixture
def bob(make_user):
    return make_user(name="Bob")


@pytest.fixture
def carol(make_user):
    return make_user(name="Carol")


@pytest.fixture
def dave(make_user):
    return make_user(name="Dave")


# =============================================================================
# API clients
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client():
    """
    Factory fixture returning an APIClient carrying a user's bearer token.

    Usage:
        client = auth_client(alice)
        client.get("/api/v1/chats/")
    """

    def _auth_client(user: RegisteredUser) -> APIClient:
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {user.token}")
        return client

    return _auth_client
