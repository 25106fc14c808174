"""
Tests for chat app.

This package contains test modules for:
- test_services.py: ChatRegistry tests
- test_message_store.py: MessageStore tests
- test_validators.py: Attachment validation and storage
- test_views.py: REST API endpoint tests
- test_consumers.py: WebSocket consumer tests
- test_integration.py: User journeys across the whole API

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
