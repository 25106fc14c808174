"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure shared by the domain apps:

- Generic, reusable base classes (no domain-specific logic)
- The document storage port and its adapters
- The application error taxonomy and its REST rendering

Documents (import from core.documents):
    - DocumentStore: Storage port (insert/find/update/delete/count)
    - get_document_store: Process-wide store for DOCUMENT_STORE_BACKEND
    - Adapters: memory, orm (StoredDocument rows), data_api (HTTP)

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)
    - StoredDocument: One document of the orm adapter

Services (import from core.services):
    - BaseService: Base class for document-backed services

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - AuthenticationError: Missing or invalid credentials
    - PermissionDeniedError: Authorization failures
    - NotFoundError: Resource not found
    - ConflictError: State conflicts (duplicates, etc.)
    - ExternalServiceError: Storage backend failures

Helpers (import from core.helpers):
    - new_object_id: Sortable 24-hex document ids
    - normalize_pagination: page / limit coercion
    - parse_bool: Query-string flags

Usage:
    from core.documents import get_document_store
    from core.exceptions import NotFoundError
    from core.services import BaseService

Note:
    - Business logic should NOT go here. Extend core classes in your domain apps.
    - Django models are NOT imported here to avoid AppRegistryNotReady
      errors. Import them directly from core.models.
"""

# Services (no Django model dependencies)
from .services import BaseService

# Exceptions (no Django dependencies)
from .exceptions import (
    AuthenticationError,
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# Helpers (no Django model dependencies)
from .helpers import new_object_id, normalize_pagination, parse_bool

__all__ = [
    # Services
    "BaseService",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
    # Helpers
    "new_object_id",
    "normalize_pagination",
    "parse_bool",
]
