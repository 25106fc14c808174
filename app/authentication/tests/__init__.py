"""
Tests for authentication app.

This package contains test modules for:
- test_services.py: AccountService and IdentityDirectory tests
- test_tokens.py: Bearer token issue/verify tests
- test_views.py: API endpoint tests

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_views.py
"""
