"""
Test configuration and fixtures for authentication tests.

Identity fixtures (alice, bob, make_user) and the auth_client factory come
from the project conftest; this module adds request payloads.

Usage:
    def test_example(registration_data, api_client):
        response = api_client.post(REGISTER_URL, registration_data, format="json")
        assert response.status_code == 201
"""

import pytest

from authentication.tests.factories import RegistrationFactory


@pytest.fixture
def registration_data():
    """A valid registration body with a unique email."""
    return RegistrationFactory(name="Ana Souza")


@pytest.fixture
def authenticated_client(auth_client, alice):
    """APIClient authenticated as alice."""
    return auth_client(alice)
